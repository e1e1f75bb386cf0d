"""Pydantic schemas for the Billing Decision Engine."""

from app.schemas.base import (
    ClassificationType,
    DecisionResult,
    EncounterType,
    IssueSeverity,
    RateSource,
)
from app.schemas.billing import (
    ClaimLine,
    DecisionRecord,
    DocumentationQuality,
    EncounterInput,
    PerformedProcedure,
    PresentingDiagnosis,
    ProcessResult,
    ValidationIssue,
)

__all__ = [
    # Enums
    "ClassificationType",
    "DecisionResult",
    "EncounterType",
    "IssueSeverity",
    "RateSource",
    # Encounter input
    "DocumentationQuality",
    "EncounterInput",
    "PerformedProcedure",
    "PresentingDiagnosis",
    # Output
    "ClaimLine",
    "DecisionRecord",
    "ProcessResult",
    "ValidationIssue",
]
