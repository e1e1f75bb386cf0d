"""Tests for medical necessity validation and ICD-10 pattern matching."""

import pytest

from app.core.exceptions import InvalidPatternError
from app.schemas.base import RuleSource
from app.services.billing import CodingRule, InMemoryReferenceData, matches_pattern, validate_medical_necessity
from app.services.billing.necessity import ICD10Pattern, compile_patterns, evaluate_rules


# ============================================================================
# Pattern Tests
# ============================================================================


class TestICD10Pattern:
    """Test exact and trailing-wildcard patterns."""

    @pytest.mark.parametrize("code", ["E11.9", "E11.65", "e11.9"])
    def test_wildcard_matches_suffixes(self, code: str) -> None:
        assert matches_pattern(code, "E11.*") is True

    @pytest.mark.parametrize("code", ["E10.9", "E11", "E1"])
    def test_wildcard_rejects_other_codes(self, code: str) -> None:
        assert matches_pattern(code, "E11.*") is False

    def test_exact_pattern(self) -> None:
        assert matches_pattern("I10", "I10") is True
        assert matches_pattern("I10.1", "I10") is False

    def test_pattern_is_case_insensitive(self) -> None:
        assert matches_pattern("Z00.00", "z00.*") is True

    def test_inner_wildcard_rejected(self) -> None:
        with pytest.raises(InvalidPatternError):
            ICD10Pattern.compile("E*1.9")

    def test_empty_pattern_rejected(self) -> None:
        with pytest.raises(ValueError):
            ICD10Pattern.compile("  ")

    def test_compile_patterns_skips_malformed(self) -> None:
        compiled = compile_patterns(["I10", "E*1", "M17.*"])
        assert [str(p) for p in compiled] == ["I10", "M17.*"]


# ============================================================================
# Rule Evaluation Tests
# ============================================================================


class TestEvaluateRules:
    """Test set-level rule semantics."""

    def test_no_rules_presumed_valid(self) -> None:
        result = evaluate_rules("93000", ["R07.9"], [])
        assert result.is_valid is True
        assert result.rules_evaluated == 0

    def test_required_pattern_matched(self) -> None:
        rule = CodingRule("99213", required_patterns=["I10", "E11.*"])
        result = evaluate_rules("99213", ["E11.65"], [rule])
        assert result.is_valid is True

    def test_one_supporting_diagnosis_is_enough(self) -> None:
        rule = CodingRule("99213", required_patterns=["I10"])
        result = evaluate_rules("99213", ["R51.9", "I10"], [rule])
        assert result.is_valid is True
        assert [c.valid for c in result.valid_combinations] == [False, True]

    def test_required_pattern_missing(self) -> None:
        rule = CodingRule("99213", required_patterns=["I10"])
        result = evaluate_rules("99213", ["R51.9"], [rule])
        assert result.is_valid is False
        assert "Primary diagnosis must support procedure" in result.valid_combinations[0].reason

    def test_excluded_wildcard(self) -> None:
        """Test Z00.* excludes Z00.00 even with a supporting diagnosis present."""
        rule = CodingRule("99213", required_patterns=["I10"], excluded_patterns=["Z00.*"])
        result = evaluate_rules("99213", ["I10", "Z00.00"], [rule])
        assert result.is_valid is False
        assert result.excluded_matches == ["Z00.00"]

    def test_exclusion_only_rule(self) -> None:
        rule = CodingRule("99213", excluded_patterns=["Z00.*"])
        assert evaluate_rules("99213", ["R51.9"], [rule]).is_valid is True

    def test_exclusion_applies_across_rules(self) -> None:
        rules = [
            CodingRule("99213", required_patterns=["I10"]),
            CodingRule("99213", excluded_patterns=["Z00.*"]),
        ]
        assert evaluate_rules("99213", ["I10", "Z00.01"], rules).is_valid is False

    def test_primary_diagnosis_only(self) -> None:
        rule = CodingRule("20610", required_patterns=["M17.*"], primary_diagnosis_only=True)
        assert evaluate_rules("20610", ["M17.11", "I10"], [rule]).is_valid is True
        assert evaluate_rules("20610", ["I10", "M17.11"], [rule]).is_valid is False

    def test_references(self) -> None:
        rules = [
            CodingRule("99213", required_patterns=["I10"], source=RuleSource.NCD, reference_url="ncd-url"),
            CodingRule("99213", required_patterns=["E11.*"], source=RuleSource.LCD, reference_url="lcd-url"),
        ]
        result = evaluate_rules("99213", ["I10"], rules)
        assert result.lcd_reference == "lcd-url"
        assert result.ncd_reference == "ncd-url"

    def test_ncd_used_when_no_lcd(self) -> None:
        rule = CodingRule("20610", required_patterns=["M17.*"], source=RuleSource.NCD, reference_url="ncd-url")
        result = evaluate_rules("20610", ["M17.11"], [rule])
        assert result.lcd_reference == "ncd-url"


# ============================================================================
# Collaborator Tests
# ============================================================================


class TestValidateMedicalNecessity:
    """Test rule lookup through the reference data collaborator."""

    @pytest.mark.asyncio
    async def test_valid_combination(self, reference_data: InMemoryReferenceData) -> None:
        result = await validate_medical_necessity(reference_data, "99213", ["I10"])
        assert result.is_valid is True
        assert result.lcd_reference is not None

    @pytest.mark.asyncio
    async def test_screening_diagnosis_excluded(self, reference_data: InMemoryReferenceData) -> None:
        result = await validate_medical_necessity(reference_data, "99213", ["Z00.00"])
        assert result.is_valid is False

    @pytest.mark.asyncio
    async def test_inactive_rule_ignored(self, reference_data: InMemoryReferenceData) -> None:
        reference_data.add_coding_rule(CodingRule("93000", required_patterns=["I48.*"], active=False))
        result = await validate_medical_necessity(reference_data, "93000", ["R07.9"])
        assert result.is_valid is True
        assert result.rules_evaluated == 0

    @pytest.mark.asyncio
    async def test_rules_fault_presumed_valid(self) -> None:
        data = InMemoryReferenceData(failing={"get_coding_rules"})
        result = await validate_medical_necessity(data, "99213", ["Z00.00"])
        assert result.is_valid is True
        assert result.reference_data_unavailable is True
