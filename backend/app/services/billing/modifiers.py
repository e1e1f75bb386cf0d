"""Modifier determination (decision tree node E)."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ModifierRule:
    """Circumstance tag that maps to a billing modifier."""

    circumstance: str
    modifier: str
    rationale: str


# Table order is the output order
MODIFIER_RULES: tuple[ModifierRule, ...] = (
    ModifierRule("em_with_procedure", "25", "Significant, separately identifiable E/M service on same day as procedure"),
    ModifierRule("telehealth", "95", "Telehealth service (synchronous)"),
    ModifierRule("telehealth_async", "GQ", "Telehealth service (asynchronous)"),
    ModifierRule("telehealth_gt", "GT", "Telehealth service via interactive audio/video"),
    ModifierRule("professional_component", "26", "Professional component only"),
    ModifierRule("technical_component", "TC", "Technical component only"),
    ModifierRule("distinct_procedure", "59", "Distinct procedural service"),
    ModifierRule("bilateral", "50", "Bilateral procedure"),
    ModifierRule("left_side", "LT", "Left side"),
    ModifierRule("right_side", "RT", "Right side"),
    ModifierRule("repeat_same_physician", "76", "Repeat procedure by same physician"),
    ModifierRule("repeat_different_physician", "77", "Repeat procedure by different physician"),
    ModifierRule("reduced_service", "52", "Reduced services"),
    ModifierRule("discontinued", "53", "Discontinued procedure"),
    ModifierRule("assistant_surgeon", "80", "Assistant surgeon"),
)

KNOWN_CIRCUMSTANCES = frozenset(rule.circumstance for rule in MODIFIER_RULES)


@dataclass
class ModifierDecision:
    """Modifiers derived for a procedure code."""

    cpt_code: str
    modifiers_applied: list[str] = field(default_factory=list)
    modifier_rationale: dict[str, str] = field(default_factory=dict)
    special_circumstances: list[str] = field(default_factory=list)
    unrecognized_circumstances: list[str] = field(default_factory=list)


def determine_modifiers(cpt_code: str, circumstances: list[str] | set[str] | tuple[str, ...]) -> ModifierDecision:
    """Map asserted circumstances to modifiers.

    Order-independent and additive; no circumstances yields no modifiers.
    """
    asserted = set(circumstances)
    decision = ModifierDecision(
        cpt_code=cpt_code,
        special_circumstances=sorted(asserted),
        unrecognized_circumstances=sorted(asserted - KNOWN_CIRCUMSTANCES),
    )
    for rule in MODIFIER_RULES:
        if rule.circumstance in asserted:
            decision.modifiers_applied.append(rule.modifier)
            decision.modifier_rationale[rule.modifier] = rule.rationale
    return decision
