"""Social determinants of health (SDOH) claim enhancement.

Adds SDOH Z-codes from the patient's latest assessment to a successful
claim line and flags chronic care management (CCM) eligibility.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit import AuditSink, log_phi_access
from app.core.exceptions import ReferenceDataError
from app.models import SDOHAssessmentRecord
from app.schemas.base import CCMTier, IssueSeverity, SDOHDomain, SDOHSeverity
from app.schemas.billing import ProcessResult, ValidationIssue

logger = logging.getLogger(__name__)

# Domain order used when appending Z-codes
SDOH_DOMAIN_ORDER: tuple[SDOHDomain, ...] = (
    SDOHDomain.HOUSING,
    SDOHDomain.FOOD,
    SDOHDomain.TRANSPORTATION,
    SDOHDomain.SOCIAL_ISOLATION,
    SDOHDomain.FINANCIAL,
    SDOHDomain.EDUCATION,
    SDOHDomain.EMPLOYMENT,
)


@dataclass
class SDOHFactor:
    """Assessment of one SDOH domain."""

    severity: SDOHSeverity = SDOHSeverity.NONE
    z_code: str | None = None


@dataclass
class SDOHAssessment:
    """A patient's SDOH assessment."""

    patient_id: str
    assessment_date: date | None = None
    factors: dict[SDOHDomain, SDOHFactor] = field(default_factory=dict)
    overall_complexity_score: int = 0
    ccm_eligible: bool = False
    ccm_tier: CCMTier | None = None

    def z_codes(self) -> list[str]:
        """Populated Z-codes in domain order."""
        codes = []
        for domain in SDOH_DOMAIN_ORDER:
            factor = self.factors.get(domain)
            if factor is not None and factor.z_code:
                codes.append(factor.z_code.strip().upper())
        return codes


class SDOHAssessmentSource(ABC):
    """Collaborator that supplies SDOH assessments."""

    @abstractmethod
    async def get_assessment(self, patient_id: str) -> SDOHAssessment | None:
        """Latest assessment for a patient, or None when never assessed."""
        pass  # pragma: no cover


class InMemorySDOHSource(SDOHAssessmentSource):
    """Dictionary-backed SDOH assessments."""

    def __init__(self, assessments: dict[str, SDOHAssessment] | None = None, failing: bool = False) -> None:
        self.assessments = dict(assessments or {})
        self.failing = failing

    async def get_assessment(self, patient_id: str) -> SDOHAssessment | None:
        if self.failing:
            raise ReferenceDataError("SDOH assessments unavailable")
        return self.assessments.get(patient_id)


def assessment_from_record(record: SDOHAssessmentRecord) -> SDOHAssessment:
    """Convert a stored assessment row; unknown domains and severities are ignored."""
    factors: dict[SDOHDomain, SDOHFactor] = {}
    for key, value in (record.factors or {}).items():
        try:
            domain = SDOHDomain(key)
            severity = SDOHSeverity(value.get("severity", "none"))
        except (ValueError, AttributeError):
            logger.warning(f"Ignoring malformed SDOH factor '{key}' for patient={record.patient_id}")
            continue
        factors[domain] = SDOHFactor(severity=severity, z_code=value.get("z_code"))

    tier = None
    if record.ccm_tier:
        try:
            tier = CCMTier(record.ccm_tier)
        except ValueError:
            tier = None

    return SDOHAssessment(
        patient_id=record.patient_id,
        assessment_date=record.assessment_date,
        factors=factors,
        overall_complexity_score=record.overall_complexity_score,
        ccm_eligible=record.ccm_eligible,
        ccm_tier=tier,
    )


class DatabaseSDOHSource(SDOHAssessmentSource):
    """Reads the most recent row of ``sdoh_assessments``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_assessment(self, patient_id: str) -> SDOHAssessment | None:
        stmt = (
            select(SDOHAssessmentRecord)
            .where(SDOHAssessmentRecord.patient_id == patient_id)
            .order_by(SDOHAssessmentRecord.assessment_date.desc())
            .limit(1)
        )
        try:
            record = (await self._session.execute(stmt)).scalars().first()
        except SQLAlchemyError as e:
            raise ReferenceDataError("SDOH assessment lookup failed") from e
        return assessment_from_record(record) if record is not None else None


async def enhance_with_sdoh(
    result: ProcessResult,
    patient_id: str,
    source: SDOHAssessmentSource,
    audit_sink: AuditSink | None = None,
) -> ProcessResult:
    """Append SDOH Z-codes and a CCM eligibility warning to a successful result.

    Unsuccessful results, and results whose assessment cannot be fetched,
    are returned unchanged. The original result and claim line are never
    modified; a new ProcessResult is returned.
    """
    if not result.success or result.claim_line is None:
        return result

    log_phi_access(patient_id, "SDOHAssessment", "enhance_with_sdoh", sink=audit_sink)

    try:
        assessment = await source.get_assessment(patient_id)
    except Exception as e:
        logger.warning(f"SDOH enhancement skipped for patient={patient_id}: {e}")
        return result

    if assessment is None:
        return result

    icd10_codes = list(result.claim_line.icd10_codes)
    for code in assessment.z_codes():
        if code not in icd10_codes:
            icd10_codes.append(code)

    warnings = list(result.warnings)
    if assessment.ccm_eligible:
        tier = assessment.ccm_tier.value if assessment.ccm_tier else CCMTier.STANDARD.value
        warnings.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            code="CCM_ELIGIBLE",
            message=f"Patient eligible for {tier} CCM services",
            suggestion="Consider adding CCM codes if time requirements are met",
        ))

    claim_line = result.claim_line.model_copy(update={"icd10_codes": icd10_codes})
    additional = [
        line.model_copy(update={"icd10_codes": icd10_codes})
        for line in result.additional_claim_lines
    ]
    return result.model_copy(update={
        "claim_line": claim_line,
        "additional_claim_lines": additional,
        "warnings": warnings,
    })
