"""Medical necessity validation (decision tree node G).

Checks diagnosis codes against the active coding rules for a procedure.
Rules carry ICD-10 patterns that are either an exact code or a prefix
followed by a single trailing ``*``:

    E11.*   matches E11.9, E11.65    but not E10.9 or E11
    I10     matches I10 only

A diagnosis set is valid when no excluded pattern matches any diagnosis
and, when any rule has required patterns, at least one diagnosis
matches one of them. A procedure with no active rule is presumed valid.
"""

import logging
from dataclasses import dataclass, field

from app.core.exceptions import InvalidPatternError
from app.schemas.base import RuleSource
from app.services.billing.reference_data import CodingRule, ReferenceDataInterface

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class ICD10Pattern:
    """Compiled ICD-10 pattern: a literal prefix plus an optional trailing wildcard."""

    literal: str
    wildcard: bool

    @classmethod
    def compile(cls, pattern: str) -> "ICD10Pattern":
        """Compile a pattern string.

        Raises:
            InvalidPatternError: empty pattern, or a ``*`` anywhere but the end.
        """
        text = pattern.strip().upper()
        if not text:
            raise InvalidPatternError(f"Empty ICD-10 pattern: {pattern!r}")
        wildcard = text.endswith(WILDCARD)
        literal = text[:-1] if wildcard else text
        if WILDCARD in literal:
            raise InvalidPatternError(f"Wildcard must be the last character: {pattern!r}")
        return cls(literal=literal, wildcard=wildcard)

    def matches(self, code: str) -> bool:
        candidate = code.strip().upper()
        if self.wildcard:
            return candidate.startswith(self.literal)
        return candidate == self.literal

    def __str__(self) -> str:
        return self.literal + (WILDCARD if self.wildcard else "")


def compile_patterns(patterns: list[str]) -> list[ICD10Pattern]:
    """Compile patterns, skipping (and logging) malformed ones."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(ICD10Pattern.compile(pattern))
        except InvalidPatternError as e:
            logger.warning(f"Skipping coding rule pattern: {e}")
    return compiled


def matches_pattern(code: str, pattern: str) -> bool:
    """Check a single code against a single pattern string."""
    return ICD10Pattern.compile(pattern).matches(code)


@dataclass
class DiagnosisCheck:
    """Per-diagnosis validation detail."""

    cpt: str
    icd10: str
    valid: bool
    reason: str


@dataclass
class MedicalNecessityCheck:
    """Result of validating diagnoses against a procedure's coding rules."""

    is_valid: bool
    cpt_code: str
    icd10_codes: list[str]
    valid_combinations: list[DiagnosisCheck] = field(default_factory=list)
    excluded_matches: list[str] = field(default_factory=list)
    rules_evaluated: int = 0
    lcd_reference: str | None = None
    ncd_reference: str | None = None
    reference_data_unavailable: bool = False


@dataclass
class _CompiledRule:
    rule: CodingRule
    required: list[ICD10Pattern]
    excluded: list[ICD10Pattern]


def _references(rules: list[CodingRule]) -> tuple[str | None, str | None]:
    lcd = ncd = None
    for rule in rules:
        if not rule.reference_url:
            continue
        if rule.source == RuleSource.NCD:
            ncd = ncd or rule.reference_url
        else:
            lcd = lcd or rule.reference_url
    return lcd or ncd, ncd


def evaluate_rules(cpt_code: str, icd10_codes: list[str], rules: list[CodingRule]) -> MedicalNecessityCheck:
    """Apply coding rules to a diagnosis list (pure function)."""
    codes = [c.strip().upper() for c in icd10_codes if c and c.strip()]

    if not rules:
        return MedicalNecessityCheck(
            is_valid=True,
            cpt_code=cpt_code,
            icd10_codes=codes,
            valid_combinations=[
                DiagnosisCheck(cpt_code, code, True, "No specific coverage rules found (review recommended)")
                for code in codes
            ],
        )

    compiled = [
        _CompiledRule(rule, compile_patterns(rule.required_patterns), compile_patterns(rule.excluded_patterns))
        for rule in rules
    ]

    excluded_matches = [
        code for code in codes
        if any(p.matches(code) for r in compiled for p in r.excluded)
    ]

    supporting: set[str] = set()
    for r in compiled:
        candidates = codes[:1] if r.rule.primary_diagnosis_only else codes
        supporting |= {code for code in candidates if any(p.matches(code) for p in r.required)}

    has_required = any(r.required for r in compiled)
    required_satisfied = not has_required or bool(supporting)
    combinations = []
    for code in codes:
        if code in excluded_matches:
            combinations.append(DiagnosisCheck(cpt_code, code, False, "Diagnosis excluded by coverage rule"))
        elif not has_required or code in supporting:
            combinations.append(DiagnosisCheck(cpt_code, code, True, "Meets medical necessity requirements"))
        else:
            combinations.append(DiagnosisCheck(cpt_code, code, False, "Does not meet coverage requirements"))

    if combinations and not combinations[0].valid:
        combinations[0].reason += " - Primary diagnosis must support procedure"

    lcd, ncd = _references(rules)
    return MedicalNecessityCheck(
        is_valid=not excluded_matches and required_satisfied,
        cpt_code=cpt_code,
        icd10_codes=codes,
        valid_combinations=combinations,
        excluded_matches=excluded_matches,
        rules_evaluated=len(rules),
        lcd_reference=lcd,
        ncd_reference=ncd,
    )


async def validate_medical_necessity(
    reference_data: ReferenceDataInterface,
    cpt_code: str,
    icd10_codes: list[str],
) -> MedicalNecessityCheck:
    """Validate diagnoses against the procedure's active coding rules.

    A rules lookup fault is treated like "no rule": the code is presumed
    valid and the result is flagged ``reference_data_unavailable``.
    """
    try:
        rules = [r for r in await reference_data.get_coding_rules(cpt_code) if r.active]
    except Exception as e:
        logger.warning(f"Coding rules lookup failed for {cpt_code}: {e}")
        result = evaluate_rules(cpt_code, icd10_codes, [])
        result.reference_data_unavailable = True
        return result
    return evaluate_rules(cpt_code, icd10_codes, rules)
