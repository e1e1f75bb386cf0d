"""E/M level determination (decision tree node D).

Selects the evaluation and management level and code from documented
time when present, otherwise from medical decision making (MDM):

- Time bands follow the 2021+ CMS office/outpatient total-time thresholds
- MDM uses the "2 of 3" rule: the median of problem, data and risk levels
- The code family depends on place of service (office, inpatient,
  emergency, nursing facility)

All thresholds live in the tables below; control flow never hard-codes
a band.
"""

import logging
import statistics
from dataclasses import dataclass, field
from datetime import date

from app.core.config import settings
from app.schemas.base import DataAmount, EncounterType, ExamDetail, RiskLevel
from app.schemas.billing import DocumentationQuality, EncounterInput
from app.services.billing.classification import DEFAULT_PLACE_OF_SERVICE
from app.services.billing.reference_data import ReferenceDataInterface

logger = logging.getLogger(__name__)


# ============================================================================
# Time bands: (min_minutes, max_minutes or None, level)
# ============================================================================

NEW_PATIENT_TIME_BANDS: tuple[tuple[int, int | None, int], ...] = (
    (15, 29, 2),  # 99202
    (30, 44, 3),  # 99203
    (45, 59, 4),  # 99204
    (60, None, 5),  # 99205
)

ESTABLISHED_PATIENT_TIME_BANDS: tuple[tuple[int, int | None, int], ...] = (
    (1, 9, 1),  # 99211
    (10, 19, 2),  # 99212
    (20, 29, 3),  # 99213
    (30, 39, 4),  # 99214
    (40, None, 5),  # 99215
)

# 99201 was deleted in 2021
NEW_PATIENT_MIN_LEVEL = 2


# ============================================================================
# MDM tables (component level 1-4: straightforward, low, moderate, high)
# ============================================================================

# (min_diagnoses, max_diagnoses or None, level)
PROBLEM_LEVELS: tuple[tuple[int, int | None, int], ...] = (
    (0, 0, 1),
    (1, 1, 2),
    (2, 2, 3),
    (3, None, 3),
)
# Three or more problems with high risk indicates a chronic illness with severe exacerbation
HIGH_RISK_MULTI_PROBLEM_LEVEL = 4

DATA_LEVELS: dict[DataAmount, int] = {
    DataAmount.MINIMAL: 1,
    DataAmount.LIMITED: 2,
    DataAmount.MODERATE: 3,
    DataAmount.EXTENSIVE: 4,
}

RISK_LEVELS: dict[RiskLevel, int] = {
    RiskLevel.MINIMAL: 1,
    RiskLevel.LOW: 2,
    RiskLevel.MODERATE: 3,
    RiskLevel.HIGH: 4,
}

# MDM complexity -> E/M level
MDM_TO_EM_LEVEL: dict[int, tuple[str, int]] = {
    1: ("straightforward", 2),
    2: ("low", 3),
    3: ("moderate", 4),
    4: ("high", 5),
}


# ============================================================================
# Code families by place of service
# ============================================================================


@dataclass(frozen=True)
class EMCodeFamily:
    """E/M code series for one setting, keyed by level 1-5."""

    name: str
    new_patient_codes: dict[int, str]
    established_codes: dict[int, str]

    def code_for(self, level: int, new_patient: bool) -> tuple[str, int]:
        """Return (code, effective level) for a level, clamped to the family's range."""
        table = self.new_patient_codes if new_patient else self.established_codes
        effective = min(max(level, min(table)), max(table))
        return table[effective], effective


OFFICE_CODES = EMCodeFamily(
    name="office_outpatient",
    new_patient_codes={2: "99202", 3: "99203", 4: "99204", 5: "99205"},
    established_codes={1: "99211", 2: "99212", 3: "99213", 4: "99214", 5: "99215"},
)

INPATIENT_CODES = EMCodeFamily(
    name="inpatient",
    new_patient_codes={1: "99221", 2: "99222", 3: "99223"},  # Initial hospital care
    established_codes={1: "99231", 2: "99232", 3: "99233"},  # Subsequent hospital care
)

_EMERGENCY_SERIES = {1: "99281", 2: "99282", 3: "99283", 4: "99284", 5: "99285"}
EMERGENCY_CODES = EMCodeFamily(
    name="emergency",
    new_patient_codes=_EMERGENCY_SERIES,  # ED codes do not distinguish new vs established
    established_codes=_EMERGENCY_SERIES,
)

NURSING_FACILITY_CODES = EMCodeFamily(
    name="nursing_facility",
    new_patient_codes={1: "99304", 2: "99305", 3: "99306"},
    established_codes={1: "99307", 2: "99308", 3: "99309", 4: "99310"},
)

CODE_FAMILY_BY_POS: dict[str, EMCodeFamily] = {
    "02": OFFICE_CODES,
    "11": OFFICE_CODES,
    "12": OFFICE_CODES,
    "22": OFFICE_CODES,
    "21": INPATIENT_CODES,
    "23": EMERGENCY_CODES,
    "31": NURSING_FACILITY_CODES,
    "32": NURSING_FACILITY_CODES,
}

EMERGENCY_PLACE_OF_SERVICE = "23"


@dataclass
class EMEvaluationResult:
    """Result of E/M leveling."""

    level_determined: bool
    new_patient: bool
    em_level: int
    em_code: str
    mdm_based_coding: bool
    time_based_coding: bool
    code_family: str
    documentation_score: int
    mdm_complexity: str | None = None
    missing_elements: list[str] = field(default_factory=list)


def _band_level(bands: tuple[tuple[int, int | None, int], ...], value: int) -> int | None:
    for low, high, level in bands:
        if value >= low and (high is None or value <= high):
            return level
    return None


def level_from_time(minutes: int, new_patient: bool) -> tuple[int, list[str]]:
    """Select the E/M level from total time.

    Returns:
        (level, missing_elements)
    """
    bands = NEW_PATIENT_TIME_BANDS if new_patient else ESTABLISHED_PATIENT_TIME_BANDS
    level = _band_level(bands, minutes)
    if level is None:
        # Below the lowest band: only reachable for new patients under 15 minutes
        return NEW_PATIENT_MIN_LEVEL, ["Insufficient time documented for new patient visit"]
    return level, []


def mdm_complexity_level(documentation: DocumentationQuality) -> int:
    """Median of problem, data and risk component levels (1-4)."""
    problem = _band_level(PROBLEM_LEVELS, documentation.number_of_diagnoses) or 1
    if problem == 3 and documentation.number_of_diagnoses >= 3 and documentation.risk_level == RiskLevel.HIGH:
        problem = HIGH_RISK_MULTI_PROBLEM_LEVEL
    data = DATA_LEVELS.get(documentation.amount_of_data, 2)
    risk = RISK_LEVELS.get(documentation.risk_level, 2)
    return int(statistics.median([problem, data, risk]))


def level_from_mdm(documentation: DocumentationQuality) -> tuple[int, str]:
    """Select the E/M level from medical decision making.

    Returns:
        (level, complexity name)
    """
    complexity, level = MDM_TO_EM_LEVEL[mdm_complexity_level(documentation)]
    return level, complexity


def code_family_for(place_of_service: str | None) -> EMCodeFamily:
    """E/M code family for a place of service (office codes by default)."""
    return CODE_FAMILY_BY_POS.get(place_of_service or DEFAULT_PLACE_OF_SERVICE, OFFICE_CODES)


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:  # Feb 29
        return day.replace(year=day.year - years, day=28)


async def is_new_patient(
    reference_data: ReferenceDataInterface,
    encounter: EncounterInput,
) -> bool:
    """Check whether the patient has no prior encounter with the provider in the lookback window.

    The window ends the day before the service date; encounters recorded
    after the visit being billed never count. A lookup fault counts as
    "established".
    """
    since = _years_before(encounter.service_date, settings.new_patient_lookback_years)
    try:
        prior = await reference_data.list_prior_encounters(
            encounter.patient_id,
            since,
            before=encounter.service_date,
            provider_id=encounter.provider_id,
            exclude_encounter_id=encounter.encounter_id,
        )
    except Exception as e:
        logger.warning(f"Encounter history lookup failed for patient={encounter.patient_id}: {e}")
        return False
    return len(prior) == 0


def documentation_from_encounter(encounter: EncounterInput) -> DocumentationQuality:
    """Derive documentation elements when the caller supplies none."""
    diagnosis_count = len(encounter.presenting_diagnoses)
    if diagnosis_count >= 3:
        risk = RiskLevel.HIGH
    elif diagnosis_count == 2:
        risk = RiskLevel.MODERATE
    elif diagnosis_count == 1:
        risk = RiskLevel.LOW
    else:
        risk = RiskLevel.MINIMAL

    return DocumentationQuality(
        history_of_present_illness=bool(encounter.chief_complaint),
        examination_performed=encounter.encounter_type != EncounterType.TELEHEALTH,
        examination_detail=ExamDetail.PROBLEM_FOCUSED,
        number_of_diagnoses=diagnosis_count,
        amount_of_data=DataAmount.MODERATE if diagnosis_count > 2 else DataAmount.LIMITED,
        risk_level=risk,
        total_time=encounter.time_spent,
        completeness_score=75,
    )


async def evaluate_em_level(
    reference_data: ReferenceDataInterface,
    encounter: EncounterInput,
    documentation: DocumentationQuality,
) -> EMEvaluationResult:
    """Determine the E/M level and code for an encounter.

    Time-based leveling wins whenever time is documented and non-zero,
    even if MDM elements are also present.

    Args:
        reference_data: Encounter history collaborator
        encounter: The encounter being billed
        documentation: Documentation elements for this evaluation

    Returns:
        EMEvaluationResult
    """
    new_patient = await is_new_patient(reference_data, encounter)
    minutes = encounter.time_spent or documentation.total_time or 0

    missing: list[str] = []
    complexity: str | None = None
    if minutes > 0:
        level, missing = level_from_time(minutes, new_patient)
        time_based = True
    else:
        level, complexity = level_from_mdm(documentation)
        time_based = False
        if new_patient:
            level = max(level, NEW_PATIENT_MIN_LEVEL)

    family = code_family_for(encounter.place_of_service)
    em_code, em_level = family.code_for(level, new_patient)

    return EMEvaluationResult(
        level_determined=True,
        new_patient=new_patient,
        em_level=em_level,
        em_code=em_code,
        mdm_based_coding=not time_based,
        time_based_coding=time_based,
        code_family=family.name,
        documentation_score=documentation.completeness_score,
        mdm_complexity=complexity,
        missing_elements=missing,
    )


def is_em_code(code: str) -> bool:
    """Check whether a CPT code is in the E/M range 99201-99499."""
    try:
        value = int(code)
    except ValueError:
        return False
    return 99201 <= value <= 99499
