"""SQLAlchemy models for billing reference data.

The decision engine only reads these tables; they are maintained by the
platform's reference data pipelines.
"""

from datetime import date

from sqlalchemy import Boolean, Date, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class PatientCoverage(Base):
    """A patient's current insurance coverage."""

    __tablename__ = "patient_coverage"

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    insurance_payer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    insurance_member_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    insurance_status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    authorization_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<PatientCoverage(patient_id='{self.patient_id}', payer='{self.insurance_payer_id}', status='{self.insurance_status}')>"


class Payer(Base):
    """Payer with its dollars-per-RVU multiplier."""

    __tablename__ = "payers"

    payer_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    rvu_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)


class CPTCode(Base):
    """CPT/HCPCS procedure code catalog entry with RVUs."""

    __tablename__ = "codes_cpt"

    code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True, index=True)
    short_desc: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    long_desc: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)
    work_rvu: Mapped[float | None] = mapped_column(Float, nullable=True)
    practice_rvu: Mapped[float | None] = mapped_column(Float, nullable=True)
    malpractice_rvu: Mapped[float | None] = mapped_column(Float, nullable=True)

    def __repr__(self) -> str:
        return f"<CPTCode(code='{self.code}', status='{self.status}')>"


class ICD10Code(Base):
    """ICD-10-CM diagnosis code."""

    __tablename__ = "codes_icd10"

    code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")


class FeeScheduleItem(Base):
    """Contracted amount for a code under a payer's fee schedule."""

    __tablename__ = "fee_schedule_items"

    payer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    code_type: Mapped[str] = mapped_column(String(10), nullable=False, default="CPT")
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)


class CodingRuleRecord(Base):
    """Medical necessity rule tying a CPT code to ICD-10 patterns."""

    __tablename__ = "coding_rules"

    cpt_code: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    required_icd10_patterns: Mapped[list[str] | None] = mapped_column(ARRAY(String(20)), nullable=True)
    excluded_icd10_patterns: Mapped[list[str] | None] = mapped_column(ARRAY(String(20)), nullable=True)
    primary_diagnosis_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="internal")
    reference_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)


class EncounterRecord(Base):
    """Historical encounter, used for new-vs-established determination."""

    __tablename__ = "encounters"

    encounter_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    encounter_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)


class SDOHAssessmentRecord(Base):
    """Stored SDOH assessment for a patient."""

    __tablename__ = "sdoh_assessments"

    patient_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    assessment_date: Mapped[date] = mapped_column(Date, nullable=False)
    # {"housing": {"severity": "high", "z_code": "Z59.00"}, ...}
    factors: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    overall_complexity_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ccm_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ccm_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
