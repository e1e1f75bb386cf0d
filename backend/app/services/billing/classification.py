"""Service classification (decision tree node B).

Labels an encounter as evaluation/management, procedural or unknown from
its encounter type, place of service and documented procedure codes.
"""

from dataclasses import dataclass

from app.schemas.base import ClassificationType, EncounterType

DEFAULT_PLACE_OF_SERVICE = "11"


@dataclass(frozen=True)
class PlaceOfService:
    """CMS place-of-service code and the encounter types billable there."""

    code: str
    name: str
    valid_encounter_types: frozenset[EncounterType]


_E = EncounterType

PLACES_OF_SERVICE: dict[str, PlaceOfService] = {
    pos.code: pos
    for pos in (
        PlaceOfService("02", "Telehealth", frozenset({_E.TELEHEALTH})),
        PlaceOfService("11", "Office", frozenset({_E.OFFICE_VISIT, _E.CONSULTATION})),
        PlaceOfService("12", "Home", frozenset({_E.OFFICE_VISIT})),
        PlaceOfService("21", "Inpatient Hospital", frozenset({_E.INPATIENT})),
        PlaceOfService("22", "Outpatient Hospital", frozenset({_E.OFFICE_VISIT, _E.SURGERY, _E.PROCEDURE})),
        PlaceOfService("23", "Emergency Room", frozenset({_E.EMERGENCY})),
        PlaceOfService("24", "Ambulatory Surgical Center", frozenset({_E.SURGERY, _E.PROCEDURE})),
        PlaceOfService("31", "Skilled Nursing Facility", frozenset({_E.OFFICE_VISIT, _E.CONSULTATION})),
        PlaceOfService("32", "Nursing Facility", frozenset({_E.OFFICE_VISIT, _E.CONSULTATION})),
    )
}

PROCEDURAL_ENCOUNTER_TYPES = frozenset({_E.SURGERY, _E.PROCEDURE, _E.LAB, _E.RADIOLOGY})
EM_ENCOUNTER_TYPES = frozenset({_E.OFFICE_VISIT, _E.TELEHEALTH, _E.CONSULTATION, _E.EMERGENCY, _E.INPATIENT})


@dataclass
class ServiceClassification:
    """Classification of an encounter."""

    classification_type: ClassificationType
    confidence: int  # 0-100
    rationale: str


def validate_place_of_service(
    pos_code: str | None,
    encounter_type: EncounterType,
) -> tuple[bool, str]:
    """Check that the POS code exists and is valid for the encounter type.

    Returns:
        (valid, message)
    """
    pos = pos_code or DEFAULT_PLACE_OF_SERVICE
    info = PLACES_OF_SERVICE.get(pos)
    if info is None:
        return False, f"Invalid POS code: {pos}"
    if encounter_type not in info.valid_encounter_types:
        return False, f"POS {pos} ({info.name}) not valid for encounter type \"{encounter_type.value}\""
    return True, f"Valid POS {pos} - {info.name}"


def classify_service(
    encounter_type: EncounterType,
    place_of_service: str | None,
    procedure_codes: list[str | None] | None = None,
) -> ServiceClassification:
    """Classify an encounter.

    A POS that is unknown or invalid for the encounter type forces
    ``unknown`` with confidence 0 whatever the encounter type says.

    Args:
        encounter_type: Kind of encounter
        place_of_service: CMS POS code (defaults to 11)
        procedure_codes: Codes documented on the performed procedures

    Returns:
        ServiceClassification
    """
    valid, message = validate_place_of_service(place_of_service, encounter_type)
    if not valid:
        return ServiceClassification(ClassificationType.UNKNOWN, 0, f"Invalid POS: {message}")

    pos = place_of_service or DEFAULT_PLACE_OF_SERVICE

    if encounter_type in PROCEDURAL_ENCOUNTER_TYPES:
        return ServiceClassification(
            ClassificationType.PROCEDURAL,
            95,
            f"Encounter type \"{encounter_type.value}\" is procedural in nature at POS {pos}",
        )

    if any(procedure_codes or []):
        return ServiceClassification(
            ClassificationType.PROCEDURAL,
            90,
            f"Procedure codes documented in encounter at POS {pos}",
        )

    if encounter_type in EM_ENCOUNTER_TYPES:
        return ServiceClassification(
            ClassificationType.EVALUATION_MANAGEMENT,
            95,
            f"Encounter type \"{encounter_type.value}\" is evaluation/management at POS {pos} "
            f"({PLACES_OF_SERVICE[pos].name})",
        )

    return ServiceClassification(
        ClassificationType.UNKNOWN,
        50,
        "Unable to definitively classify encounter type",
    )
