"""Tests for billing API endpoints."""

import pytest
from httpx import AsyncClient


def _encounter(**overrides) -> dict:
    encounter = {
        "encounter_id": "ENC-API-1",
        "patient_id": "P001",
        "provider_id": "PROV-1",
        "payer_id": "aetna-commercial",
        "service_date": "2026-03-16",
        "encounter_type": "office_visit",
        "place_of_service": "11",
        "presenting_diagnoses": [{"icd10_code": "I10"}],
        "time_spent": 25,
    }
    encounter.update(overrides)
    return encounter


class TestProcessEncounterEndpoint:
    """Test POST /billing/encounters/process."""

    @pytest.mark.asyncio
    async def test_process_encounter(self, client: AsyncClient) -> None:
        response = await client.post("/billing/encounters/process", json={"encounter": _encounter()})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["claim_line"]["cpt_code"] == "99213"
        assert data["claim_line"]["medical_necessity_validated"] is True
        assert data["decisions"][0]["node_id"] == "NODE_A"

    @pytest.mark.asyncio
    async def test_ineligible_is_not_an_http_error(self, client: AsyncClient) -> None:
        response = await client.post(
            "/billing/encounters/process", json={"encounter": _encounter(patient_id="P003")}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["claim_line"] is None
        assert data["validation_errors"][0]["code"] == "INELIGIBLE"

    @pytest.mark.asyncio
    async def test_with_documentation_and_sdoh(self, client: AsyncClient) -> None:
        body = {
            "encounter": _encounter(time_spent=None),
            "documentation": {
                "number_of_diagnoses": 2,
                "amount_of_data": "moderate",
                "risk_level": "moderate",
            },
            "enhance_with_sdoh": True,
        }
        response = await client.post("/billing/encounters/process", json=body)
        data = response.json()
        assert data["claim_line"]["cpt_code"] == "99214"
        assert "Z59.00" in data["claim_line"]["icd10_codes"]
        assert any(w["code"] == "CCM_ELIGIBLE" for w in data["warnings"])

    @pytest.mark.asyncio
    async def test_invalid_encounter_type(self, client: AsyncClient) -> None:
        response = await client.post(
            "/billing/encounters/process", json={"encounter": _encounter(encounter_type="spa_day")}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_negative_time_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/billing/encounters/process", json={"encounter": _encounter(time_spent=-5)}
        )
        assert response.status_code == 422


class TestMedicalNecessityEndpoint:
    """Test POST /billing/medical-necessity."""

    @pytest.mark.asyncio
    async def test_valid(self, client: AsyncClient) -> None:
        response = await client.post(
            "/billing/medical-necessity", json={"cpt_code": "99213", "icd10_codes": ["E11.65"]}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["is_valid"] is True
        assert data["valid_combinations"][0]["icd10"] == "E11.65"

    @pytest.mark.asyncio
    async def test_excluded(self, client: AsyncClient) -> None:
        response = await client.post(
            "/billing/medical-necessity", json={"cpt_code": "99213", "icd10_codes": ["Z00.00"]}
        )
        data = response.json()
        assert data["is_valid"] is False
        assert data["excluded_matches"] == ["Z00.00"]


class TestModifiersEndpoint:
    """Test POST /billing/modifiers."""

    @pytest.mark.asyncio
    async def test_modifiers(self, client: AsyncClient) -> None:
        response = await client.post(
            "/billing/modifiers", json={"cpt_code": "20610", "circumstances": ["left_side", "bilateral"]}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["modifiers_applied"] == ["50", "LT"]
        assert "LT" in data["modifier_rationale"]

    @pytest.mark.asyncio
    async def test_missing_code(self, client: AsyncClient) -> None:
        response = await client.post("/billing/modifiers", json={"cpt_code": "", "circumstances": []})
        assert response.status_code == 422


class TestFeeEndpoint:
    """Test GET /billing/fees/{cpt_code}."""

    @pytest.mark.asyncio
    async def test_contracted_fee(self, client: AsyncClient) -> None:
        response = await client.get("/billing/fees/99213", params={"payer_id": "aetna-commercial"})
        assert response.status_code == 200
        data = response.json()
        assert data["rate_source"] == "contracted"
        assert data["applied_rate"] == 112.5

    @pytest.mark.asyncio
    async def test_chargemaster_fee(self, client: AsyncClient) -> None:
        response = await client.get(
            "/billing/fees/93000", params={"payer_id": "aetna-commercial", "provider_id": "PROV-1"}
        )
        data = response.json()
        assert data["rate_source"] == "chargemaster"
        assert data["fee_found"] is True

    @pytest.mark.asyncio
    async def test_payer_required(self, client: AsyncClient) -> None:
        response = await client.get("/billing/fees/99213")
        assert response.status_code == 422
