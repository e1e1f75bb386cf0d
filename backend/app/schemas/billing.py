"""Encounter input and claim output schemas."""

from datetime import UTC, date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.schemas.base import (
    DataAmount,
    DecisionResult,
    EncounterType,
    ExamDetail,
    IssueSeverity,
    RiskLevel,
)


class PresentingDiagnosis(BaseModel):
    """A diagnosis as documented on the encounter."""

    model_config = ConfigDict(frozen=True)

    term: str = Field(default="", description="Free-text diagnosis term")
    icd10_code: str | None = Field(None, description="ICD-10-CM code if already coded")


class PerformedProcedure(BaseModel):
    """A procedure performed during the encounter."""

    model_config = ConfigDict(frozen=True)

    description: str = Field(default="", description="Free-text procedure description")
    cpt_code: str | None = Field(None, description="CPT code if supplied")


class EncounterInput(BaseModel):
    """Read-only description of a clinical encounter."""

    model_config = ConfigDict(frozen=True)

    encounter_id: str = Field(..., description="Encounter identifier")
    patient_id: str = Field(..., description="Patient identifier")
    provider_id: str = Field(..., description="Rendering provider identifier")
    payer_id: str = Field(..., description="Payer the claim is billed to")
    policy_status: str | None = Field(None, description="Policy status as reported by the caller")
    service_date: date = Field(..., description="Date of service")
    encounter_type: EncounterType = Field(..., description="Kind of encounter")
    place_of_service: str | None = Field(None, description="CMS place-of-service code (defaults to 11)")
    chief_complaint: str = Field(default="", description="Chief complaint text")
    presenting_diagnoses: list[PresentingDiagnosis] = Field(default_factory=list)
    procedures_performed: list[PerformedProcedure] = Field(default_factory=list)
    time_spent: int | None = Field(None, ge=0, description="Total time on the date of service, minutes")
    circumstances: list[str] = Field(
        default_factory=list,
        description="Extra circumstance tags for modifiers (bilateral, left_side, ...)",
    )
    prior_authorization_number: str | None = Field(None, description="Prior authorization reference")


class DocumentationQuality(BaseModel):
    """Completeness of the clinician's documentation for E/M leveling."""

    model_config = ConfigDict(frozen=True)

    history_of_present_illness: bool = False
    review_of_systems: bool = False
    past_family_social_history: bool = False
    examination_performed: bool = False
    examination_detail: ExamDetail = ExamDetail.PROBLEM_FOCUSED
    number_of_diagnoses: int = Field(default=0, ge=0)
    amount_of_data: DataAmount = DataAmount.LIMITED
    risk_level: RiskLevel = RiskLevel.LOW
    total_time: int | None = Field(None, ge=0)
    completeness_score: int = Field(default=75, ge=0, le=100)


class DecisionRecord(BaseModel):
    """One decision tree node outcome in the audit trail."""

    model_config = ConfigDict(frozen=True)

    node_id: str
    node_name: str
    question: str
    answer: str
    result: DecisionResult
    rationale: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ValidationIssue(BaseModel):
    """A validation error (blocking) or warning (non-blocking)."""

    model_config = ConfigDict(frozen=True)

    severity: IssueSeverity
    code: str
    message: str
    suggestion: str | None = None


class ClaimLine(BaseModel):
    """A billable claim line. Never mutated after construction."""

    model_config = ConfigDict(frozen=True)

    cpt_code: str
    cpt_modifiers: list[str] = Field(default_factory=list)
    icd10_codes: list[str] = Field(default_factory=list)
    billed_amount: float
    allowed_amount: float | None = None
    payer_id: str
    service_date: date
    units: int = Field(default=1, ge=1)
    place_of_service: str
    rendering_provider_id: str
    medical_necessity_validated: bool


class ProcessResult(BaseModel):
    """Outcome of one decision tree run."""

    model_config = ConfigDict(frozen=True)

    success: bool
    claim_line: ClaimLine | None = None
    additional_claim_lines: list[ClaimLine] = Field(default_factory=list)
    decisions: list[DecisionRecord] = Field(default_factory=list)
    validation_errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    requires_manual_review: bool = False
    manual_review_reason: str | None = None

    @model_validator(mode="after")
    def _failed_runs_have_no_claim(self) -> "ProcessResult":
        if not self.success and (self.claim_line is not None or self.additional_claim_lines):
            raise ValueError("a failed run cannot carry claim lines")
        return self

    def has_warning(self, code: str) -> bool:
        """Check whether a warning with the given code was raised."""
        return any(w.code == code for w in self.warnings)

    def has_error(self, code: str) -> bool:
        """Check whether a validation error with the given code was raised."""
        return any(e.code == code for e in self.validation_errors)


class ProcessEncounterRequest(BaseModel):
    """Request body for the process-encounter endpoint."""

    encounter: EncounterInput
    documentation: DocumentationQuality | None = None
    enhance_with_sdoh: bool = False


class MedicalNecessityRequest(BaseModel):
    """Request body for a standalone medical necessity check."""

    cpt_code: str = Field(..., min_length=1)
    icd10_codes: list[str] = Field(default_factory=list)


class ModifierRequest(BaseModel):
    """Request body for modifier determination."""

    cpt_code: str = Field(..., min_length=1)
    circumstances: list[str] = Field(default_factory=list)
