"""Billing decision engine.

Stages of the billing decision tree, the reference data collaborators
they read from, and the BillingDecisionTreeService that sequences them.
"""

from app.services.billing.classification import ServiceClassification, classify_service, validate_place_of_service
from app.services.billing.decision_tree import BillingDecisionTreeService
from app.services.billing.eligibility import EligibilityCheckResult, validate_eligibility
from app.services.billing.em_level import EMEvaluationResult, evaluate_em_level, is_new_patient
from app.services.billing.fees import FeeScheduleResult, lookup_fee
from app.services.billing.modifiers import ModifierDecision, determine_modifiers
from app.services.billing.necessity import MedicalNecessityCheck, matches_pattern, validate_medical_necessity
from app.services.billing.procedures import ProcedureLookupResult, lookup_procedure_cpt
from app.services.billing.prolonged import ProlongedServiceResult, check_prolonged_services
from app.services.billing.reference_data import (
    CodingRule,
    DatabaseReferenceData,
    InMemoryReferenceData,
    ReferenceDataInterface,
)
from app.services.billing.sdoh import (
    DatabaseSDOHSource,
    InMemorySDOHSource,
    SDOHAssessment,
    SDOHAssessmentSource,
    SDOHFactor,
    enhance_with_sdoh,
)

__all__ = [
    # Orchestrator
    "BillingDecisionTreeService",
    # Stages
    "EligibilityCheckResult",
    "validate_eligibility",
    "ServiceClassification",
    "classify_service",
    "validate_place_of_service",
    "ProcedureLookupResult",
    "lookup_procedure_cpt",
    "EMEvaluationResult",
    "evaluate_em_level",
    "is_new_patient",
    "ModifierDecision",
    "determine_modifiers",
    "FeeScheduleResult",
    "lookup_fee",
    "MedicalNecessityCheck",
    "matches_pattern",
    "validate_medical_necessity",
    "ProlongedServiceResult",
    "check_prolonged_services",
    # SDOH
    "SDOHAssessment",
    "SDOHAssessmentSource",
    "SDOHFactor",
    "InMemorySDOHSource",
    "DatabaseSDOHSource",
    "enhance_with_sdoh",
    # Reference data
    "CodingRule",
    "ReferenceDataInterface",
    "InMemoryReferenceData",
    "DatabaseReferenceData",
]
