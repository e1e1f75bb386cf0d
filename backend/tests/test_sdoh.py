"""Tests for SDOH claim enhancement."""

from datetime import date

import pytest

from app.core.audit import AuditAction, InMemoryAuditSink
from app.models import SDOHAssessmentRecord
from app.schemas.base import CCMTier, IssueSeverity, SDOHDomain, SDOHSeverity
from app.schemas.billing import ClaimLine, ProcessResult
from app.services.billing import InMemorySDOHSource, SDOHAssessment, SDOHFactor, enhance_with_sdoh
from app.services.billing.sdoh import assessment_from_record


def _successful_result(icd10_codes: list[str]) -> ProcessResult:
    return ProcessResult(
        success=True,
        claim_line=ClaimLine(
            cpt_code="99213",
            icd10_codes=icd10_codes,
            billed_amount=112.5,
            payer_id="aetna-commercial",
            service_date=date(2026, 3, 16),
            place_of_service="11",
            rendering_provider_id="PROV-1",
            medical_necessity_validated=True,
        ),
    )


class TestEnhanceWithSDOH:
    """Test Z-code augmentation and CCM flagging."""

    @pytest.mark.asyncio
    async def test_z_codes_appended_in_domain_order(self, sdoh_source: InMemorySDOHSource) -> None:
        result = await enhance_with_sdoh(_successful_result(["I10"]), "P001", sdoh_source)
        assert result.claim_line is not None
        assert result.claim_line.icd10_codes == ["I10", "Z59.00", "Z59.41"]

    @pytest.mark.asyncio
    async def test_duplicate_codes_not_repeated(self, sdoh_source: InMemorySDOHSource) -> None:
        result = await enhance_with_sdoh(_successful_result(["I10", "Z59.00"]), "P001", sdoh_source)
        assert result.claim_line.icd10_codes == ["I10", "Z59.00", "Z59.41"]

    @pytest.mark.asyncio
    async def test_ccm_eligible_warning(self, sdoh_source: InMemorySDOHSource) -> None:
        result = await enhance_with_sdoh(_successful_result(["I10"]), "P001", sdoh_source)
        assert result.has_warning("CCM_ELIGIBLE")
        warning = next(w for w in result.warnings if w.code == "CCM_ELIGIBLE")
        assert warning.severity == IssueSeverity.INFO
        assert "complex" in warning.message

    @pytest.mark.asyncio
    async def test_original_result_untouched(self, sdoh_source: InMemorySDOHSource) -> None:
        original = _successful_result(["I10"])
        enhanced = await enhance_with_sdoh(original, "P001", sdoh_source)
        assert enhanced is not original
        assert original.claim_line.icd10_codes == ["I10"]
        assert original.warnings == []

    @pytest.mark.asyncio
    async def test_failed_result_returned_unchanged(self, sdoh_source: InMemorySDOHSource) -> None:
        failed = ProcessResult(success=False)
        assert await enhance_with_sdoh(failed, "P001", sdoh_source) is failed

    @pytest.mark.asyncio
    async def test_no_assessment(self, sdoh_source: InMemorySDOHSource) -> None:
        original = _successful_result(["I10"])
        assert await enhance_with_sdoh(original, "P002", sdoh_source) is original

    @pytest.mark.asyncio
    async def test_collaborator_fault_leaves_result(self) -> None:
        original = _successful_result(["I10"])
        source = InMemorySDOHSource(failing=True)
        assert await enhance_with_sdoh(original, "P001", source) is original

    @pytest.mark.asyncio
    async def test_not_ccm_eligible(self) -> None:
        source = InMemorySDOHSource({
            "P001": SDOHAssessment(
                patient_id="P001",
                factors={SDOHDomain.TRANSPORTATION: SDOHFactor(SDOHSeverity.LOW, "Z59.82")},
            ),
        })
        result = await enhance_with_sdoh(_successful_result(["I10"]), "P001", source)
        assert result.claim_line.icd10_codes == ["I10", "Z59.82"]
        assert not result.has_warning("CCM_ELIGIBLE")

    @pytest.mark.asyncio
    async def test_phi_access_audited(self, sdoh_source: InMemorySDOHSource) -> None:
        sink = InMemoryAuditSink()
        await enhance_with_sdoh(_successful_result(["I10"]), "P001", sdoh_source, audit_sink=sink)
        events = sink.by_action(AuditAction.PHI_ACCESS)
        assert len(events) == 1
        assert events[0].resource_type == "SDOHAssessment"


class TestAssessmentFromRecord:
    """Test conversion of stored assessments."""

    def test_record_conversion(self) -> None:
        record = SDOHAssessmentRecord(
            patient_id="P001",
            assessment_date=date(2026, 2, 1),
            factors={
                "housing": {"severity": "high", "z_code": "Z59.00"},
                "weather": {"severity": "high", "z_code": "Z99.99"},
                "food": {"severity": "extreme"},
            },
            overall_complexity_score=5,
            ccm_eligible=True,
            ccm_tier="standard",
        )
        assessment = assessment_from_record(record)
        assert list(assessment.factors) == [SDOHDomain.HOUSING]
        assert assessment.z_codes() == ["Z59.00"]
        assert assessment.ccm_tier == CCMTier.STANDARD
