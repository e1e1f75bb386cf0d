"""Prolonged services detection (decision tree node H).

Add-on code 99417 is billed per full 15 minutes beyond the base time of
a high-level office/outpatient E/M code, up to 16 units.
"""

from dataclasses import dataclass

from app.core.config import settings

# Base code -> minutes after which prolonged time starts counting
PROLONGED_BASE_MINUTES: dict[str, int] = {
    "99205": 60,  # New patient, level 5
    "99204": 45,  # New patient, level 4
    "99215": 55,  # Established, level 5
    "99214": 40,  # Established, level 4
}

UNIT_MINUTES = 15


@dataclass
class ProlongedServiceResult:
    """Prolonged service add-on, if any."""

    applies: bool
    units: int = 0
    add_on_code: str | None = None
    base_minutes: int | None = None
    extra_minutes: int = 0


def check_prolonged_services(em_code: str | None, time_spent: int | None) -> ProlongedServiceResult:
    """Compute prolonged-service add-on units for an E/M code.

    Never fires for codes outside PROLONGED_BASE_MINUTES or when time is
    undocumented.
    """
    if not em_code or not time_spent or em_code not in PROLONGED_BASE_MINUTES:
        return ProlongedServiceResult(applies=False)

    base = PROLONGED_BASE_MINUTES[em_code]
    extra = time_spent - base
    if extra < UNIT_MINUTES:
        return ProlongedServiceResult(applies=False, base_minutes=base, extra_minutes=max(extra, 0))

    units = min(extra // UNIT_MINUTES, settings.prolonged_max_units)
    return ProlongedServiceResult(
        applies=True,
        units=units,
        add_on_code=settings.prolonged_service_code,
        base_minutes=base,
        extra_minutes=extra,
    )
