"""SQLAlchemy ORM models for billing reference data.

All models inherit from Base which provides:
- id: UUID primary key
- created_at: Timestamp
"""

from app.core.database import Base
from app.models.billing import (
    CodingRuleRecord,
    CPTCode,
    EncounterRecord,
    FeeScheduleItem,
    ICD10Code,
    PatientCoverage,
    Payer,
    SDOHAssessmentRecord,
)

__all__ = [
    "Base",
    "CodingRuleRecord",
    "CPTCode",
    "EncounterRecord",
    "FeeScheduleItem",
    "ICD10Code",
    "PatientCoverage",
    "Payer",
    "SDOHAssessmentRecord",
]
