"""Pytest configuration and fixtures for backend tests."""

from collections.abc import AsyncGenerator, Callable
from datetime import date
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.billing import get_reference_data, get_sdoh_source
from app.core.audit import InMemoryAuditSink
from app.main import app
from app.schemas.base import CCMTier, EncounterType, RuleSource, SDOHDomain, SDOHSeverity
from app.schemas.billing import EncounterInput, PerformedProcedure, PresentingDiagnosis
from app.services.billing import (
    BillingDecisionTreeService,
    CodingRule,
    InMemoryReferenceData,
    InMemorySDOHSource,
    SDOHAssessment,
    SDOHFactor,
)

SERVICE_DATE = date(2026, 3, 16)

ESTABLISHED_PATIENT = "P001"
NEW_PATIENT = "P002"
INACTIVE_PATIENT = "P003"
PROVIDER = "PROV-1"
PAYER = "aetna-commercial"


def build_reference_data(**kwargs: Any) -> InMemoryReferenceData:
    """Reference data snapshot shared by the billing tests."""
    data = InMemoryReferenceData(**kwargs)

    data.add_patient(ESTABLISHED_PATIENT, payer_id=PAYER)
    data.add_patient(NEW_PATIENT, payer_id=PAYER)
    data.add_patient(INACTIVE_PATIENT, payer_id=PAYER, status="terminated")

    # Established patient: seen by the same provider last year
    data.add_encounter("ENC-PRIOR", ESTABLISHED_PATIENT, PROVIDER, date(2025, 9, 2))

    data.add_procedure("99213", "Office or other outpatient visit, established patient, low MDM")
    data.add_procedure("99205", "Office or other outpatient visit, new patient, high MDM")
    data.add_procedure("99417", "Prolonged outpatient evaluation and management service, each 15 minutes")
    data.add_procedure("20610", "Arthrocentesis, aspiration and/or injection, major joint or bursa")
    data.add_procedure("93000", "Electrocardiogram, routine ECG with at least 12 leads")
    data.add_procedure("71046", "Radiologic examination, chest; 2 views")
    data.add_procedure("99201", "Office visit, new patient (deleted)", status="deleted")

    data.add_icd10("I10", "Essential (primary) hypertension")
    data.add_icd10("E11.9", "Type 2 diabetes mellitus without complications")
    data.add_icd10("M17.11", "Unilateral primary osteoarthritis, right knee")
    data.add_icd10("Z00.00", "Encounter for general adult medical examination without abnormal findings")

    data.add_contracted_rate(PAYER, "99213", 112.50)
    data.add_rvus("99213", work=1.3, practice=1.1, malpractice=0.1)
    data.add_rvus("99205", work=3.5, practice=2.6, malpractice=0.3)
    data.add_rvus("99417", work=0.61, practice=0.33, malpractice=0.04)
    data.add_rvus("20610", work=0.79, practice=0.98, malpractice=0.1)
    data.payer_multipliers[PAYER] = 40.0

    data.add_coding_rule(CodingRule(
        cpt_code="99213",
        required_patterns=["I10", "E11.*"],
        excluded_patterns=["Z00.*"],
        source=RuleSource.LCD,
        reference_url="https://www.cms.gov/medicare-coverage-database/lcd/L00001",
    ))
    data.add_coding_rule(CodingRule(
        cpt_code="20610",
        required_patterns=["M17.*"],
        source=RuleSource.NCD,
        reference_url="https://www.cms.gov/medicare-coverage-database/ncd/150.1",
    ))
    return data


@pytest.fixture
def reference_data() -> InMemoryReferenceData:
    """In-memory reference data snapshot."""
    return build_reference_data()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    """Audit sink that records events in memory."""
    return InMemoryAuditSink()


@pytest.fixture
def sdoh_source() -> InMemorySDOHSource:
    """SDOH assessments for the established patient."""
    return InMemorySDOHSource({
        ESTABLISHED_PATIENT: SDOHAssessment(
            patient_id=ESTABLISHED_PATIENT,
            assessment_date=date(2026, 2, 1),
            factors={
                SDOHDomain.FOOD: SDOHFactor(SDOHSeverity.MEDIUM, "Z59.41"),
                SDOHDomain.HOUSING: SDOHFactor(SDOHSeverity.HIGH, "Z59.00"),
                SDOHDomain.EDUCATION: SDOHFactor(SDOHSeverity.NONE),
            },
            overall_complexity_score=7,
            ccm_eligible=True,
            ccm_tier=CCMTier.COMPLEX,
        ),
    })


@pytest.fixture
def service(
    reference_data: InMemoryReferenceData,
    audit_sink: InMemoryAuditSink,
    sdoh_source: InMemorySDOHSource,
) -> BillingDecisionTreeService:
    """Decision tree wired to the in-memory collaborators."""
    return BillingDecisionTreeService(reference_data, audit_sink=audit_sink, sdoh_source=sdoh_source)


@pytest.fixture
def make_encounter() -> Callable[..., EncounterInput]:
    """Factory for office-visit encounters; keyword arguments override fields."""

    def _make(**overrides: Any) -> EncounterInput:
        diagnoses = overrides.pop("diagnoses", ["I10"])
        procedures = overrides.pop("procedures", [])
        fields: dict[str, Any] = {
            "encounter_id": "ENC-100",
            "patient_id": ESTABLISHED_PATIENT,
            "provider_id": PROVIDER,
            "payer_id": PAYER,
            "service_date": SERVICE_DATE,
            "encounter_type": EncounterType.OFFICE_VISIT,
            "place_of_service": "11",
            "chief_complaint": "Follow-up for blood pressure",
            "presenting_diagnoses": [
                d if isinstance(d, PresentingDiagnosis) else PresentingDiagnosis(icd10_code=d)
                for d in diagnoses
            ],
            "procedures_performed": [
                p if isinstance(p, PerformedProcedure) else PerformedProcedure(description=p)
                for p in procedures
            ],
        }
        fields.update(overrides)
        return EncounterInput(**fields)

    return _make


@pytest.fixture
async def client(
    reference_data: InMemoryReferenceData,
    sdoh_source: InMemorySDOHSource,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with in-memory reference data.

    This allows testing API endpoints without a real database.
    """

    async def override_reference_data():
        return reference_data

    async def override_sdoh_source():
        return sdoh_source

    app.dependency_overrides[get_reference_data] = override_reference_data
    app.dependency_overrides[get_sdoh_source] = override_sdoh_source

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()
