"""Billing decision engine API endpoints.

Provides:
- Encounter processing: run an encounter through the billing decision tree
- Medical necessity: validate diagnoses against a procedure's coding rules
- Modifiers: map circumstance tags to billing modifiers
- Fee lookup: resolve the billed amount for a code and payer

Reference data is injected with the get_reference_data dependency so
tests and tooling can swap in the in-memory implementation.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.base import RateSource
from app.schemas.billing import (
    MedicalNecessityRequest,
    ModifierRequest,
    ProcessEncounterRequest,
    ProcessResult,
)
from app.services.billing import (
    BillingDecisionTreeService,
    DatabaseReferenceData,
    DatabaseSDOHSource,
    ReferenceDataInterface,
    SDOHAssessmentSource,
    determine_modifiers,
    lookup_fee,
    validate_medical_necessity,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])

DbSession = Annotated[AsyncSession, Depends(get_db)]


# ============================================================================
# Dependencies
# ============================================================================


async def get_reference_data(session: DbSession) -> ReferenceDataInterface:
    """Database-backed reference data bound to the request session."""
    return DatabaseReferenceData(session)


async def get_sdoh_source(session: DbSession) -> SDOHAssessmentSource:
    """Database-backed SDOH assessments bound to the request session."""
    return DatabaseSDOHSource(session)


ReferenceData = Annotated[ReferenceDataInterface, Depends(get_reference_data)]
SDOHSource = Annotated[SDOHAssessmentSource, Depends(get_sdoh_source)]


# ============================================================================
# Response Models
# ============================================================================


class DiagnosisCheckResponse(BaseModel):
    """Validation detail for one diagnosis."""

    model_config = ConfigDict(from_attributes=True)

    cpt: str
    icd10: str
    valid: bool
    reason: str


class MedicalNecessityResponse(BaseModel):
    """Medical necessity check result."""

    model_config = ConfigDict(from_attributes=True)

    is_valid: bool = Field(..., description="Whether the diagnoses support the procedure")
    cpt_code: str
    icd10_codes: list[str]
    valid_combinations: list[DiagnosisCheckResponse] = Field(default_factory=list)
    excluded_matches: list[str] = Field(default_factory=list)
    rules_evaluated: int = 0
    lcd_reference: str | None = None
    ncd_reference: str | None = None
    reference_data_unavailable: bool = False


class ModifierResponse(BaseModel):
    """Modifiers derived for a procedure code."""

    model_config = ConfigDict(from_attributes=True)

    cpt_code: str
    modifiers_applied: list[str] = Field(default_factory=list, description="Modifiers in billing order")
    modifier_rationale: dict[str, str] = Field(default_factory=dict)
    special_circumstances: list[str] = Field(default_factory=list)
    unrecognized_circumstances: list[str] = Field(default_factory=list)


class FeeScheduleResponse(BaseModel):
    """Fee resolved for a procedure code."""

    model_config = ConfigDict(from_attributes=True)

    cpt_code: str
    payer_id: str
    fee_found: bool
    applied_rate: float
    rate_source: RateSource
    allowed_amount: float | None = None
    contracted_rate: float | None = None
    total_rvu: float | None = None
    multiplier: float | None = None
    degraded_tiers: list[str] = Field(default_factory=list)


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/encounters/process",
    response_model=ProcessResult,
    summary="Process encounter into a claim line",
    description="Run an encounter through eligibility, coding, pricing and necessity checks.",
)
async def process_encounter(
    request: ProcessEncounterRequest,
    reference_data: ReferenceData,
    sdoh_source: SDOHSource,
) -> ProcessResult:
    """Process one encounter.

    The response is always a ProcessResult; failures are reported through
    ``success`` and ``validation_errors`` rather than HTTP errors.
    """
    logger.info(
        f"Processing encounter {request.encounter.encounter_id} "
        f"type={request.encounter.encounter_type.value} payer={request.encounter.payer_id}"
    )
    service = BillingDecisionTreeService(reference_data, sdoh_source=sdoh_source)
    result = await service.process_encounter(
        request.encounter,
        request.documentation,
        enhance_with_sdoh=request.enhance_with_sdoh,
    )
    logger.info(
        f"Encounter {request.encounter.encounter_id} processed: success={result.success} "
        f"manual_review={result.requires_manual_review}"
    )
    return result


@router.post(
    "/medical-necessity",
    response_model=MedicalNecessityResponse,
    summary="Validate medical necessity",
)
async def check_medical_necessity(
    request: MedicalNecessityRequest,
    reference_data: ReferenceData,
) -> MedicalNecessityResponse:
    """Validate ICD-10 codes against the procedure's active coding rules."""
    check = await validate_medical_necessity(reference_data, request.cpt_code, request.icd10_codes)
    return MedicalNecessityResponse.model_validate(check)


@router.post(
    "/modifiers",
    response_model=ModifierResponse,
    summary="Determine modifiers",
)
async def get_modifiers(request: ModifierRequest) -> ModifierResponse:
    """Map circumstance tags to modifiers."""
    return ModifierResponse.model_validate(determine_modifiers(request.cpt_code, request.circumstances))


@router.get(
    "/fees/{cpt_code}",
    response_model=FeeScheduleResponse,
    summary="Look up fee",
)
async def get_fee(
    cpt_code: str,
    reference_data: ReferenceData,
    payer_id: Annotated[str, Query(min_length=1, description="Payer identifier")],
    provider_id: Annotated[str, Query(description="Rendering provider identifier")] = "",
) -> FeeScheduleResponse:
    """Resolve the fee for a code through contracted, RVU and chargemaster tiers."""
    fee = await lookup_fee(reference_data, cpt_code, payer_id, provider_id)
    return FeeScheduleResponse(
        cpt_code=cpt_code,
        payer_id=payer_id,
        fee_found=fee.fee_found,
        applied_rate=fee.applied_rate,
        rate_source=fee.rate_source,
        allowed_amount=fee.allowed_amount,
        contracted_rate=fee.contracted_rate,
        total_rvu=fee.total_rvu,
        multiplier=fee.multiplier,
        degraded_tiers=list(fee.degraded_tiers),
    )
