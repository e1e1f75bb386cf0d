"""Reference data collaborators for the billing decision tree.

The decision tree never owns reference data. It reads patients, payers,
procedure codes, fee schedules, coding rules and encounter history
through ReferenceDataInterface. Two implementations ship here:

- InMemoryReferenceData: dictionaries, for tests and local tooling
- DatabaseReferenceData: async SQLAlchemy reads against the tables in
  app.models.billing

Implementations raise ReferenceDataError for any lookup fault; the
decision tree stages turn that into their documented fallback.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ReferenceDataError
from app.models import (
    CodingRuleRecord,
    CPTCode,
    EncounterRecord,
    FeeScheduleItem,
    ICD10Code,
    PatientCoverage,
    Payer,
)
from app.schemas.base import RuleSource

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


def contains_pattern(text: str) -> str:
    """SQL LIKE pattern matching ``text`` as a literal substring."""
    escaped = text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    for wildcard in ("%", "_"):
        escaped = escaped.replace(wildcard, LIKE_ESCAPE + wildcard)
    return f"%{escaped}%"


@dataclass
class CoverageInfo:
    """Insurance coverage stored for a patient."""

    patient_id: str
    payer_id: str | None
    insurance_status: str
    authorization_required: bool = False

    @property
    def is_active(self) -> bool:
        return self.insurance_status.lower() == "active"


@dataclass
class ProcedureCodeEntry:
    """Procedure catalog entry."""

    code: str
    short_description: str = ""
    long_description: str = ""
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def description(self) -> str:
        return self.long_description or self.short_description


@dataclass
class RVUValues:
    """Relative value units for a procedure code."""

    work: float
    practice: float = 0.0
    malpractice: float = 0.0

    @property
    def total(self) -> float:
        return self.work + self.practice + self.malpractice


@dataclass
class CodingRule:
    """Medical necessity rule for a procedure code."""

    cpt_code: str
    required_patterns: list[str] = field(default_factory=list)
    excluded_patterns: list[str] = field(default_factory=list)
    source: RuleSource = RuleSource.INTERNAL
    reference_url: str | None = None
    primary_diagnosis_only: bool = False
    active: bool = True


@dataclass
class PriorEncounter:
    """Encounter history row."""

    encounter_id: str
    patient_id: str
    provider_id: str
    encounter_date: date


class ReferenceDataInterface(ABC):
    """Interface for billing reference data lookups.

    Every method is a potential suspension point (database or network
    round trip). Implementations raise ReferenceDataError on faults and
    return None / empty lists when a record is genuinely absent.
    """

    @abstractmethod
    async def get_patient_coverage(self, patient_id: str) -> CoverageInfo | None:
        """Look up the patient's stored insurance payer and status."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_procedure_code(self, code: str) -> ProcedureCodeEntry | None:
        """Exact lookup of a procedure code in the catalog."""
        pass  # pragma: no cover

    @abstractmethod
    async def search_procedure_codes(self, description: str, limit: int = 10) -> list[ProcedureCodeEntry]:
        """Case-insensitive substring match on long or short description, active codes only, by code."""
        pass  # pragma: no cover

    @abstractmethod
    async def search_icd10_codes(self, term: str, limit: int = 1) -> list[str]:
        """Case-insensitive partial match of a diagnosis term to billable, active ICD-10 codes."""
        pass  # pragma: no cover

    @abstractmethod
    async def list_prior_encounters(
        self,
        patient_id: str,
        since: date,
        before: date | None = None,
        provider_id: str | None = None,
        exclude_encounter_id: str | None = None,
    ) -> list[str]:
        """Ids of the patient's encounters on or after ``since`` and strictly before ``before``."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_contracted_rate(self, payer_id: str, code: str) -> float | None:
        """Contracted amount for a code in the payer's fee schedule."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_rvus(self, code: str) -> RVUValues | None:
        """Work, practice expense and malpractice RVUs for a code."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_payer_multiplier(self, payer_id: str) -> float | None:
        """Dollars-per-RVU multiplier configured for the payer."""
        pass  # pragma: no cover

    @abstractmethod
    async def get_coding_rules(self, cpt_code: str) -> list[CodingRule]:
        """Active coding rules for a procedure code."""
        pass  # pragma: no cover


class InMemoryReferenceData(ReferenceDataInterface):
    """Dictionary-backed reference data.

    ``failing`` names methods that should raise ReferenceDataError, which
    lets callers exercise the degraded paths of each stage.

    Example:
        data = InMemoryReferenceData()
        data.add_patient("P1", payer_id="aetna", status="active")
        data.add_procedure("99213", "Office visit, established, low MDM")
    """

    def __init__(self, failing: set[str] | None = None) -> None:
        self.coverage: dict[str, CoverageInfo] = {}
        self.procedures: dict[str, ProcedureCodeEntry] = {}
        self.icd10: dict[str, tuple[str, bool]] = {}  # code -> (description, billable)
        self.encounters: list[PriorEncounter] = []
        self.fee_schedule: dict[tuple[str, str], float] = {}
        self.rvus: dict[str, RVUValues] = {}
        self.payer_multipliers: dict[str, float] = {}
        self.coding_rules: list[CodingRule] = []
        self.failing: set[str] = set(failing or ())

    # -- builders ---------------------------------------------------------

    def add_patient(
        self,
        patient_id: str,
        payer_id: str | None,
        status: str = "active",
        authorization_required: bool = False,
    ) -> None:
        self.coverage[patient_id] = CoverageInfo(patient_id, payer_id, status, authorization_required)

    def add_procedure(self, code: str, long_description: str, short_description: str = "", status: str = "active") -> None:
        self.procedures[code] = ProcedureCodeEntry(code, short_description, long_description, status)

    def add_icd10(self, code: str, description: str, billable: bool = True) -> None:
        self.icd10[code] = (description, billable)

    def add_encounter(self, encounter_id: str, patient_id: str, provider_id: str, encounter_date: date) -> None:
        self.encounters.append(PriorEncounter(encounter_id, patient_id, provider_id, encounter_date))

    def add_contracted_rate(self, payer_id: str, code: str, amount: float) -> None:
        self.fee_schedule[(payer_id, code)] = amount

    def add_rvus(self, code: str, work: float, practice: float = 0.0, malpractice: float = 0.0) -> None:
        self.rvus[code] = RVUValues(work, practice, malpractice)

    def add_coding_rule(self, rule: CodingRule) -> None:
        self.coding_rules.append(rule)

    # -- interface --------------------------------------------------------

    def _check(self, method: str) -> None:
        if method in self.failing:
            raise ReferenceDataError(f"{method} unavailable")

    async def get_patient_coverage(self, patient_id: str) -> CoverageInfo | None:
        self._check("get_patient_coverage")
        return self.coverage.get(patient_id)

    async def get_procedure_code(self, code: str) -> ProcedureCodeEntry | None:
        self._check("get_procedure_code")
        return self.procedures.get(code)

    async def search_procedure_codes(self, description: str, limit: int = 10) -> list[ProcedureCodeEntry]:
        self._check("search_procedure_codes")
        needle = description.lower()
        matches = [
            entry for entry in sorted(self.procedures.values(), key=lambda e: e.code)
            if entry.is_active and (
                needle in entry.long_description.lower()
                or needle in entry.short_description.lower()
            )
        ]
        return matches[:limit]

    async def search_icd10_codes(self, term: str, limit: int = 1) -> list[str]:
        self._check("search_icd10_codes")
        needle = term.lower()
        return [
            code for code, (desc, billable) in self.icd10.items()
            if billable and needle in desc.lower()
        ][:limit]

    async def list_prior_encounters(
        self,
        patient_id: str,
        since: date,
        before: date | None = None,
        provider_id: str | None = None,
        exclude_encounter_id: str | None = None,
    ) -> list[str]:
        self._check("list_prior_encounters")
        return [
            e.encounter_id for e in self.encounters
            if e.patient_id == patient_id
            and e.encounter_date >= since
            and (before is None or e.encounter_date < before)
            and (provider_id is None or e.provider_id == provider_id)
            and e.encounter_id != exclude_encounter_id
        ]

    async def get_contracted_rate(self, payer_id: str, code: str) -> float | None:
        self._check("get_contracted_rate")
        return self.fee_schedule.get((payer_id, code))

    async def get_rvus(self, code: str) -> RVUValues | None:
        self._check("get_rvus")
        return self.rvus.get(code)

    async def get_payer_multiplier(self, payer_id: str) -> float | None:
        self._check("get_payer_multiplier")
        return self.payer_multipliers.get(payer_id)

    async def get_coding_rules(self, cpt_code: str) -> list[CodingRule]:
        self._check("get_coding_rules")
        return [r for r in self.coding_rules if r.cpt_code == cpt_code and r.active]


class DatabaseReferenceData(ReferenceDataInterface):
    """Reference data read from PostgreSQL through an async session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _scalars(self, stmt, what: str) -> list:
        try:
            result = await self._session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.warning(f"Reference data query failed ({what}): {e}")
            raise ReferenceDataError(f"{what} lookup failed") from e

    async def get_patient_coverage(self, patient_id: str) -> CoverageInfo | None:
        rows = await self._scalars(
            select(PatientCoverage).where(PatientCoverage.patient_id == patient_id).limit(1),
            "patient coverage",
        )
        if not rows:
            return None
        row = rows[0]
        return CoverageInfo(
            patient_id=row.patient_id,
            payer_id=row.insurance_payer_id,
            insurance_status=row.insurance_status,
            authorization_required=row.authorization_required,
        )

    @staticmethod
    def _to_entry(row: CPTCode) -> ProcedureCodeEntry:
        return ProcedureCodeEntry(
            code=row.code,
            short_description=row.short_desc or "",
            long_description=row.long_desc or "",
            status=row.status,
        )

    async def get_procedure_code(self, code: str) -> ProcedureCodeEntry | None:
        rows = await self._scalars(select(CPTCode).where(CPTCode.code == code).limit(1), "procedure code")
        return self._to_entry(rows[0]) if rows else None

    async def search_procedure_codes(self, description: str, limit: int = 10) -> list[ProcedureCodeEntry]:
        pattern = contains_pattern(description)
        stmt = (
            select(CPTCode)
            .where(or_(
                CPTCode.long_desc.ilike(pattern, escape=LIKE_ESCAPE),
                CPTCode.short_desc.ilike(pattern, escape=LIKE_ESCAPE),
            ))
            .where(CPTCode.status == "active")
            .order_by(CPTCode.code)
            .limit(limit)
        )
        return [self._to_entry(row) for row in await self._scalars(stmt, "procedure search")]

    async def search_icd10_codes(self, term: str, limit: int = 1) -> list[str]:
        stmt = (
            select(ICD10Code.code)
            .where(ICD10Code.description.ilike(contains_pattern(term), escape=LIKE_ESCAPE))
            .where(ICD10Code.billable.is_(True))
            .where(ICD10Code.status == "active")
            .order_by(ICD10Code.code)
            .limit(limit)
        )
        return await self._scalars(stmt, "ICD-10 search")

    async def list_prior_encounters(
        self,
        patient_id: str,
        since: date,
        before: date | None = None,
        provider_id: str | None = None,
        exclude_encounter_id: str | None = None,
    ) -> list[str]:
        stmt = (
            select(EncounterRecord.encounter_id)
            .where(EncounterRecord.patient_id == patient_id)
            .where(EncounterRecord.encounter_date >= since)
        )
        if before is not None:
            stmt = stmt.where(EncounterRecord.encounter_date < before)
        if provider_id is not None:
            stmt = stmt.where(EncounterRecord.provider_id == provider_id)
        if exclude_encounter_id is not None:
            stmt = stmt.where(EncounterRecord.encounter_id != exclude_encounter_id)
        return await self._scalars(stmt.limit(1), "encounter history")

    async def get_contracted_rate(self, payer_id: str, code: str) -> float | None:
        stmt = (
            select(FeeScheduleItem.amount)
            .where(FeeScheduleItem.payer_id == payer_id)
            .where(FeeScheduleItem.code == code)
            .where(FeeScheduleItem.code_type == "CPT")
            .limit(1)
        )
        rows = await self._scalars(stmt, "fee schedule")
        return rows[0] if rows else None

    async def get_rvus(self, code: str) -> RVUValues | None:
        rows = await self._scalars(select(CPTCode).where(CPTCode.code == code).limit(1), "RVU")
        if not rows or not rows[0].work_rvu:
            return None
        row = rows[0]
        return RVUValues(
            work=row.work_rvu,
            practice=row.practice_rvu or 0.0,
            malpractice=row.malpractice_rvu or 0.0,
        )

    async def get_payer_multiplier(self, payer_id: str) -> float | None:
        rows = await self._scalars(
            select(Payer.rvu_multiplier).where(Payer.payer_id == payer_id).limit(1),
            "payer multiplier",
        )
        return rows[0] if rows else None

    async def get_coding_rules(self, cpt_code: str) -> list[CodingRule]:
        stmt = (
            select(CodingRuleRecord)
            .where(CodingRuleRecord.cpt_code == cpt_code)
            .where(CodingRuleRecord.active.is_(True))
        )
        rules = []
        for row in await self._scalars(stmt, "coding rules"):
            try:
                source = RuleSource(row.source)
            except ValueError:
                source = RuleSource.INTERNAL
            rules.append(CodingRule(
                cpt_code=row.cpt_code,
                required_patterns=list(row.required_icd10_patterns or []),
                excluded_patterns=list(row.excluded_icd10_patterns or []),
                source=source,
                reference_url=row.reference_url,
                primary_diagnosis_only=row.primary_diagnosis_only,
                active=row.active,
            ))
        return rules
