"""Billing decision tree.

Turns one clinical encounter into a billable claim line:

    NODE_A  eligibility and authorization
    NODE_B  service classification
    NODE_C  procedure code lookup
    NODE_D  E/M level determination
    NODE_E  modifiers
    NODE_F  fee schedule lookup
    NODE_G  medical necessity
    NODE_H  prolonged services
    FINAL   claim line generation

Stages run strictly in that order. Ineligibility stops the run; every
other stage only adds warnings and may raise the manual review flag, so
a best-effort claim line is still produced. Nothing raised inside the
tree escapes process_encounter.

Note: claim lines are decision support output. Claims flagged for manual
review must be adjudicated by a qualified coder before submission.
"""

import logging
from dataclasses import dataclass, field

from app.core.audit import AuditSink, log_billing_decision, log_billing_issue, log_phi_access
from app.core.config import settings
from app.schemas.base import ClassificationType, DecisionResult, EncounterType, IssueSeverity
from app.schemas.billing import (
    ClaimLine,
    DecisionRecord,
    DocumentationQuality,
    EncounterInput,
    ProcessResult,
    ValidationIssue,
)
from app.services.billing.classification import DEFAULT_PLACE_OF_SERVICE, ServiceClassification, classify_service
from app.services.billing.eligibility import validate_eligibility
from app.services.billing.em_level import (
    EMEvaluationResult,
    documentation_from_encounter,
    evaluate_em_level,
    is_em_code,
)
from app.services.billing.fees import FeeScheduleResult, lookup_fee
from app.services.billing.modifiers import ModifierDecision, determine_modifiers
from app.services.billing.necessity import MedicalNecessityCheck, validate_medical_necessity
from app.services.billing.procedures import ProcedureLookupResult, lookup_procedure_cpt
from app.services.billing.prolonged import ProlongedServiceResult, check_prolonged_services
from app.services.billing.reference_data import ReferenceDataInterface
from app.services.billing.sdoh import SDOHAssessmentSource
from app.services.billing.sdoh import enhance_with_sdoh as apply_sdoh_enhancement

logger = logging.getLogger(__name__)

# Blocking validation errors
INELIGIBLE = "INELIGIBLE"
AUTHORIZATION_REQUIRED = "AUTHORIZATION_REQUIRED"
PROCESSING_ERROR = "PROCESSING_ERROR"

# Non-blocking warnings
UNLISTED_PROCEDURE = "UNLISTED_PROCEDURE"
UNCLASSIFIED_SERVICE = "UNCLASSIFIED_SERVICE"
MEDICAL_NECESSITY_FAILED = "MEDICAL_NECESSITY_FAILED"
LOW_DOCUMENTATION_SCORE = "LOW_DOCUMENTATION_SCORE"
EM_DOCUMENTATION_INCOMPLETE = "EM_DOCUMENTATION_INCOMPLETE"

UNSPECIFIED_DIAGNOSIS = "Z00.00"


@dataclass
class _RunState:
    """Accumulator for one decision tree run."""

    encounter: EncounterInput
    decisions: list[DecisionRecord] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    review_reasons: list[str] = field(default_factory=list)

    def decide(
        self,
        node_id: str,
        node_name: str,
        question: str,
        answer: str,
        result: DecisionResult,
        rationale: str,
    ) -> None:
        self.decisions.append(DecisionRecord(
            node_id=node_id,
            node_name=node_name,
            question=question,
            answer=answer,
            result=result,
            rationale=rationale,
        ))

    def warn(self, code: str, message: str, suggestion: str | None = None, review_reason: str | None = None) -> None:
        self.warnings.append(ValidationIssue(
            severity=IssueSeverity.WARNING,
            code=code,
            message=message,
            suggestion=suggestion,
        ))
        if review_reason:
            self.review_reasons.append(review_reason)

    def fail(self, code: str, message: str, suggestion: str | None = None, manual_review: bool = False) -> ProcessResult:
        self.errors.append(ValidationIssue(
            severity=IssueSeverity.ERROR,
            code=code,
            message=message,
            suggestion=suggestion,
        ))
        return ProcessResult(
            success=False,
            claim_line=None,
            decisions=list(self.decisions),
            validation_errors=list(self.errors),
            warnings=list(self.warnings),
            requires_manual_review=manual_review,
            manual_review_reason=message if manual_review else None,
        )


class BillingDecisionTreeService:
    """Runs encounters through the billing decision tree.

    The service holds only its collaborators; each call builds its own
    state, so one instance can serve concurrent runs.

    Usage:
        service = BillingDecisionTreeService(reference_data)
        result = await service.process_encounter(encounter)
        if result.success and not result.requires_manual_review:
            submit(result.claim_line)
    """

    def __init__(
        self,
        reference_data: ReferenceDataInterface,
        audit_sink: AuditSink | None = None,
        sdoh_source: SDOHAssessmentSource | None = None,
    ) -> None:
        self._reference_data = reference_data
        self._audit_sink = audit_sink
        self._sdoh_source = sdoh_source

    async def process_encounter(
        self,
        encounter: EncounterInput,
        documentation: DocumentationQuality | None = None,
        enhance_with_sdoh: bool = False,
    ) -> ProcessResult:
        """Process an encounter into a claim line.

        Args:
            encounter: The encounter to bill
            documentation: Documentation elements for E/M leveling; derived
                from the encounter when omitted
            enhance_with_sdoh: Append SDOH Z-codes from the SDOH collaborator

        Returns:
            ProcessResult. Never raises.
        """
        state = _RunState(encounter)
        try:
            log_phi_access(
                encounter.patient_id,
                "Claim",
                "process_encounter",
                details={"encounter_type": encounter.encounter_type.value, "payer_id": encounter.payer_id},
                sink=self._audit_sink,
            )
            result = await self._run(encounter, documentation, state)
            if enhance_with_sdoh and self._sdoh_source is not None:
                result = await self.enhance_with_sdoh(result, encounter.patient_id)
        except Exception as e:
            logger.exception(f"Failed to process billing encounter {encounter.encounter_id}")
            result = state.fail(
                PROCESSING_ERROR,
                f"Error processing encounter: {e}",
                manual_review=True,
            )

        self._emit_audit_trail(encounter, result)
        return result

    async def enhance_with_sdoh(self, result: ProcessResult, patient_id: str) -> ProcessResult:
        """Add SDOH Z-codes to a successful result; unchanged when no SDOH source is configured."""
        if self._sdoh_source is None:
            return result
        return await apply_sdoh_enhancement(result, patient_id, self._sdoh_source, self._audit_sink)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run(
        self,
        encounter: EncounterInput,
        documentation: DocumentationQuality | None,
        state: _RunState,
    ) -> ProcessResult:
        # NODE A
        eligibility = await validate_eligibility(
            self._reference_data,
            encounter.patient_id,
            encounter.payer_id,
            prior_authorization_number=encounter.prior_authorization_number,
            policy_status=encounter.policy_status,
        )
        state.decide(
            "NODE_A",
            "Eligibility and Authorization Check",
            "Is the patient eligible and service authorized?",
            "Yes - Eligible" if eligibility.eligible else "No - Ineligible",
            DecisionResult.PROCEED if eligibility.eligible else DecisionResult.DENY,
            "Patient has active coverage with payer" if eligibility.eligible
            else (eligibility.denial_reason or "Patient not eligible")
            + (" (reference data unavailable)" if eligibility.reference_data_unavailable else ""),
        )
        if not eligibility.eligible:
            return state.fail(
                INELIGIBLE,
                eligibility.denial_reason or "Patient not eligible for service",
                "Verify patient insurance status and coverage dates",
            )
        if eligibility.authorization_required and not eligibility.authorized:
            return state.fail(
                AUTHORIZATION_REQUIRED,
                "Prior authorization required but not obtained",
                "Submit prior authorization request to payer",
            )

        # NODE B
        classification = self._classify(encounter, state)

        # NODE C
        procedure = await self._lookup_procedure(encounter, classification, state)

        # NODE D
        documentation = documentation or documentation_from_encounter(encounter)
        em_result = await self._evaluate_em(encounter, documentation, classification, procedure, state)

        if em_result is not None:
            cpt_code = em_result.em_code
        elif procedure is not None and procedure.found and procedure.cpt_code:
            cpt_code = procedure.cpt_code
        else:
            cpt_code = settings.unlisted_procedure_code
        primary_is_em = em_result is not None and cpt_code == em_result.em_code

        # NODE E
        modifiers = self._determine_modifiers(encounter, cpt_code, state)

        # NODE F
        fee = await self._lookup_fee(encounter, cpt_code, state)

        # NODE G
        icd10_codes = await self.assign_icd10_codes(encounter)
        necessity = await self._check_necessity(cpt_code, icd10_codes, state)

        # NODE H
        prolonged = self._check_prolonged(encounter, documentation, cpt_code if primary_is_em else None, state)

        claim_line = ClaimLine(
            cpt_code=cpt_code,
            cpt_modifiers=modifiers.modifiers_applied,
            icd10_codes=icd10_codes,
            billed_amount=fee.applied_rate,
            allowed_amount=fee.allowed_amount,
            payer_id=encounter.payer_id,
            service_date=encounter.service_date,
            units=1,
            place_of_service=encounter.place_of_service or DEFAULT_PLACE_OF_SERVICE,
            rendering_provider_id=encounter.provider_id,
            medical_necessity_validated=necessity.is_valid,
        )

        additional: list[ClaimLine] = []
        if prolonged.applies and prolonged.add_on_code:
            add_on_fee = await lookup_fee(
                self._reference_data, prolonged.add_on_code, encounter.payer_id, encounter.provider_id
            )
            additional.append(ClaimLine(
                cpt_code=prolonged.add_on_code,
                cpt_modifiers=[],
                icd10_codes=icd10_codes,
                billed_amount=add_on_fee.applied_rate,
                allowed_amount=add_on_fee.allowed_amount,
                payer_id=encounter.payer_id,
                service_date=encounter.service_date,
                units=prolonged.units,
                place_of_service=claim_line.place_of_service,
                rendering_provider_id=encounter.provider_id,
                medical_necessity_validated=necessity.is_valid,
            ))

        suffix = f" + {len(additional)} additional lines (prolonged services)" if additional else ""
        state.decide(
            "FINAL",
            "Claim Line Generation",
            "Generate final billable claim line?",
            "Yes - manual review required" if state.review_reasons else "Yes",
            DecisionResult.MANUAL_REVIEW if state.review_reasons else DecisionResult.COMPLETE,
            f"Generated claim line: {cpt_code} with {len(icd10_codes)} diagnosis codes{suffix}",
        )

        return ProcessResult(
            success=True,
            claim_line=claim_line,
            additional_claim_lines=additional,
            decisions=state.decisions,
            validation_errors=state.errors,
            warnings=state.warnings,
            requires_manual_review=bool(state.review_reasons),
            manual_review_reason="; ".join(state.review_reasons) or None,
        )

    def _classify(self, encounter: EncounterInput, state: _RunState) -> ServiceClassification:
        classification = classify_service(
            encounter.encounter_type,
            encounter.place_of_service,
            [p.cpt_code for p in encounter.procedures_performed],
        )
        unknown = classification.classification_type == ClassificationType.UNKNOWN
        state.decide(
            "NODE_B",
            "Service Classification",
            "Is the service procedural or evaluation/management?",
            f"{classification.classification_type.value} (confidence {classification.confidence})",
            DecisionResult.MANUAL_REVIEW if unknown else DecisionResult.PROCEED,
            classification.rationale,
        )
        if unknown:
            state.warn(
                UNCLASSIFIED_SERVICE,
                classification.rationale,
                "Verify encounter type and place of service",
                review_reason="Complex encounter requires manual classification",
            )
        return classification

    async def _lookup_procedure(
        self,
        encounter: EncounterInput,
        classification: ServiceClassification,
        state: _RunState,
    ) -> ProcedureLookupResult | None:
        question = "Is the procedure found in the CPT reference table?"
        if encounter.procedures_performed:
            performed = encounter.procedures_performed[0]
            lookup = await lookup_procedure_cpt(self._reference_data, performed.description, performed.cpt_code)
        elif classification.classification_type == ClassificationType.PROCEDURAL:
            # nothing documented to resolve on a procedural encounter
            lookup = ProcedureLookupResult(found=False, is_unlisted_procedure=True)
        else:
            state.decide("NODE_C", "Procedure CPT Lookup", question, "N/A", DecisionResult.SKIPPED,
                         "No procedures performed")
            return None

        if lookup.found:
            state.decide("NODE_C", "Procedure CPT Lookup", question, f"Yes - {lookup.cpt_code}",
                         DecisionResult.PROCEED,
                         f"Matched procedure to CPT {lookup.cpt_code} by {lookup.matched_by}: {lookup.cpt_description}")
        else:
            state.decide("NODE_C", "Procedure CPT Lookup", question, "No", DecisionResult.MANUAL_REVIEW,
                         "Procedure not found in reference table" if encounter.procedures_performed
                         else "Procedural encounter with no documented procedure")
            state.warn(
                UNLISTED_PROCEDURE,
                "Procedure not found in CPT reference table",
                "Use appropriate unlisted procedure code or consult coding specialist",
                review_reason="Unlisted procedure code - requires manual review",
            )
        return lookup

    async def _evaluate_em(
        self,
        encounter: EncounterInput,
        documentation: DocumentationQuality,
        classification: ServiceClassification,
        procedure: ProcedureLookupResult | None,
        state: _RunState,
    ) -> EMEvaluationResult | None:
        question = "Does documentation meet required elements for E/M level?"
        kind = classification.classification_type
        needs_em = kind == ClassificationType.EVALUATION_MANAGEMENT or (
            kind == ClassificationType.UNKNOWN and not (procedure is not None and procedure.found)
        )
        if not needs_em:
            state.decide("NODE_D", "E/M Level Determination", question, "N/A", DecisionResult.SKIPPED,
                         "Procedural service; E/M leveling not required")
            return None

        em = await evaluate_em_level(self._reference_data, encounter, documentation)
        basis = "time" if em.time_based_coding else f"MDM ({em.mdm_complexity})"
        state.decide(
            "NODE_D",
            "E/M Level Determination",
            question,
            f"Yes - Level {em.em_level}",
            DecisionResult.PROCEED,
            f"E/M Level {em.em_level} determined ({em.em_code}) by {basis}, "
            f"{'new' if em.new_patient else 'established'} patient, {em.code_family} codes. "
            f"Documentation score: {em.documentation_score}%",
        )
        if em.missing_elements:
            state.warn(EM_DOCUMENTATION_INCOMPLETE, "; ".join(em.missing_elements),
                       "Document total time or MDM elements supporting the level")
        if em.documentation_score < settings.manual_review_threshold:
            state.warn(
                LOW_DOCUMENTATION_SCORE,
                f"Documentation completeness {em.documentation_score}% is below "
                f"{settings.manual_review_threshold}%",
                "Complete HPI, ROS, PFSH and exam documentation",
                review_reason="Documentation completeness below review threshold",
            )
        return em

    def _determine_modifiers(self, encounter: EncounterInput, cpt_code: str, state: _RunState) -> ModifierDecision:
        circumstances = set(encounter.circumstances)
        if encounter.encounter_type == EncounterType.TELEHEALTH:
            circumstances.add("telehealth")
        if is_em_code(cpt_code) and encounter.procedures_performed:
            circumstances.add("em_with_procedure")

        decision = determine_modifiers(cpt_code, circumstances)
        if decision.modifiers_applied:
            answer = f"Yes - {', '.join(decision.modifiers_applied)}"
            rationale = "Applied modifiers: " + ", ".join(
                f"{mod} ({reason})" for mod, reason in decision.modifier_rationale.items()
            )
        else:
            answer = "No"
            rationale = "No modifiers required"
        if decision.unrecognized_circumstances:
            rationale += f". Ignored circumstances: {', '.join(decision.unrecognized_circumstances)}"
        state.decide("NODE_E", "Modifier Determination", "Are there special circumstances requiring modifiers?",
                     answer, DecisionResult.PROCEED, rationale)
        return decision

    async def _lookup_fee(self, encounter: EncounterInput, cpt_code: str, state: _RunState) -> FeeScheduleResult:
        fee = await lookup_fee(self._reference_data, cpt_code, encounter.payer_id, encounter.provider_id)
        rationale = f"Applied {fee.rate_source.value} rate: ${fee.applied_rate:.2f}"
        if fee.degraded_tiers:
            rationale += f" (reference data unavailable for: {', '.join(fee.degraded_tiers)})"
        state.decide("NODE_F", "Fee Schedule Lookup", "Is service covered by payer fee schedule or contract?",
                     f"Yes - ${fee.applied_rate:.2f}", DecisionResult.PROCEED, rationale)
        return fee

    async def _check_necessity(self, cpt_code: str, icd10_codes: list[str], state: _RunState) -> MedicalNecessityCheck:
        check = await validate_medical_necessity(self._reference_data, cpt_code, icd10_codes)
        question = "Do the diagnoses support medical necessity for the procedure?"
        if check.is_valid:
            if check.rules_evaluated:
                rationale = f"{check.rules_evaluated} coverage rule(s) satisfied"
            elif check.reference_data_unavailable:
                rationale = "Coding rules unavailable (reference data unavailable); presumed valid"
            else:
                rationale = "No specific coverage rules found; presumed valid"
            reference = check.lcd_reference or check.ncd_reference
            if reference:
                rationale += f". Reference: {reference}"
            state.decide("NODE_G", "Medical Necessity Validation", question, "Yes", DecisionResult.PROCEED, rationale)
        else:
            detail = (
                f"excluded diagnoses: {', '.join(check.excluded_matches)}" if check.excluded_matches
                else "no diagnosis matches a required pattern"
            )
            state.decide("NODE_G", "Medical Necessity Validation", question, "No", DecisionResult.MANUAL_REVIEW,
                         f"CPT {cpt_code} fails coverage rules: {detail}")
            state.warn(
                MEDICAL_NECESSITY_FAILED,
                "CPT and ICD-10 combination does not meet medical necessity requirements",
                "Review diagnosis codes and ensure they support the procedure",
                review_reason="Medical necessity validation failed",
            )
        return check

    def _check_prolonged(
        self,
        encounter: EncounterInput,
        documentation: DocumentationQuality,
        em_code: str | None,
        state: _RunState,
    ) -> ProlongedServiceResult:
        minutes = encounter.time_spent or documentation.total_time
        prolonged = check_prolonged_services(em_code, minutes)
        question = "Does documented time exceed the base time for prolonged services?"
        if em_code is None or not minutes:
            state.decide("NODE_H", "Prolonged Services", question, "N/A", DecisionResult.SKIPPED,
                         "No time-documented E/M service")
        elif prolonged.applies:
            state.decide("NODE_H", "Prolonged Services", question,
                         f"Yes - {prolonged.add_on_code} x{prolonged.units}", DecisionResult.PROCEED,
                         f"{prolonged.extra_minutes} minutes beyond {prolonged.base_minutes}-minute base for "
                         f"{em_code}: {prolonged.units} unit(s) of {prolonged.add_on_code}")
        else:
            state.decide("NODE_H", "Prolonged Services", question, "No", DecisionResult.PROCEED,
                         f"{em_code} with {minutes} minutes does not qualify for prolonged services")
        return prolonged

    async def assign_icd10_codes(self, encounter: EncounterInput) -> list[str]:
        """Resolve presenting diagnoses to ICD-10 codes, in order, without duplicates."""
        codes: list[str] = []
        for diagnosis in encounter.presenting_diagnoses:
            code = diagnosis.icd10_code.strip().upper() if diagnosis.icd10_code else None
            if not code and diagnosis.term.strip():
                try:
                    matches = await self._reference_data.search_icd10_codes(diagnosis.term.strip(), limit=1)
                except Exception as e:
                    logger.warning(f"ICD-10 search failed for term '{diagnosis.term}': {e}")
                    matches = []
                code = matches[0].strip().upper() if matches else None
            if code and code not in codes:
                codes.append(code)
        return codes or [UNSPECIFIED_DIAGNOSIS]

    def _emit_audit_trail(self, encounter: EncounterInput, result: ProcessResult) -> None:
        try:
            for decision in result.decisions:
                log_billing_decision(
                    encounter.encounter_id,
                    encounter.patient_id,
                    decision.node_id,
                    decision.result.value,
                    decision.rationale,
                    sink=self._audit_sink,
                )
            for issue in result.warnings:
                log_billing_issue(encounter.encounter_id, encounter.patient_id, issue.code, issue.message,
                                  blocking=False, sink=self._audit_sink)
            for issue in result.validation_errors:
                log_billing_issue(encounter.encounter_id, encounter.patient_id, issue.code, issue.message,
                                  blocking=True, sink=self._audit_sink)
        except Exception:
            logger.exception(f"Failed to emit audit trail for encounter {encounter.encounter_id}")

