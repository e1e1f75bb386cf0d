"""Eligibility and authorization validation (decision tree node A)."""

import logging
from dataclasses import dataclass

from app.core.config import settings
from app.services.billing.reference_data import ReferenceDataInterface

logger = logging.getLogger(__name__)

DENIAL_PATIENT_NOT_FOUND = "Patient not found in system"
DENIAL_POLICY_INACTIVE = "Insurance policy is not active"
DENIAL_PAYER_MISMATCH = "Payer mismatch with patient insurance"
DENIAL_LOOKUP_FAILED = "Error checking eligibility"


@dataclass
class EligibilityCheckResult:
    """Result of checking a patient's coverage with a payer."""

    eligible: bool
    authorized: bool
    authorization_required: bool = False
    denial_reason: str | None = None
    reference_data_unavailable: bool = False


def _denied(reason: str, unavailable: bool = False) -> EligibilityCheckResult:
    return EligibilityCheckResult(
        eligible=False,
        authorized=False,
        denial_reason=reason,
        reference_data_unavailable=unavailable,
    )


async def validate_eligibility(
    reference_data: ReferenceDataInterface,
    patient_id: str,
    payer_id: str,
    prior_authorization_number: str | None = None,
    policy_status: str | None = None,
) -> EligibilityCheckResult:
    """Confirm the patient has active coverage with the requested payer.

    Denial reasons are checked in priority order: unknown patient,
    inactive policy, payer mismatch. A lookup fault is a denial, never an
    exception.

    Args:
        reference_data: Patient/payer lookup collaborator
        patient_id: Patient being billed
        payer_id: Payer on the claim
        prior_authorization_number: Authorization reference, if obtained
        policy_status: Status reported on the encounter; an inactive value
            denies even when the stored coverage is active

    Returns:
        EligibilityCheckResult
    """
    try:
        coverage = await reference_data.get_patient_coverage(patient_id)
    except Exception as e:
        logger.warning(f"Eligibility lookup failed for patient={patient_id} payer={payer_id}: {e}")
        return _denied(DENIAL_LOOKUP_FAILED, unavailable=True)

    if coverage is None:
        return _denied(DENIAL_PATIENT_NOT_FOUND)

    if not isinstance(coverage.insurance_status, str):
        logger.warning(f"Malformed coverage record for patient={patient_id}")
        return _denied(DENIAL_LOOKUP_FAILED, unavailable=True)

    if not coverage.is_active or (policy_status and policy_status.lower() != "active"):
        return _denied(DENIAL_POLICY_INACTIVE)

    if coverage.payer_id != payer_id:
        return _denied(DENIAL_PAYER_MISMATCH)

    authorization_required = settings.require_authorization or coverage.authorization_required
    return EligibilityCheckResult(
        eligible=True,
        authorized=not authorization_required or bool(prior_authorization_number),
        authorization_required=authorization_required,
    )
