"""Procedure code resolution (decision tree node C)."""

import logging
from dataclasses import dataclass

from app.services.billing.reference_data import ReferenceDataInterface

logger = logging.getLogger(__name__)


@dataclass
class ProcedureLookupResult:
    """Result of resolving a procedure to a catalog code.

    ``is_unlisted_procedure`` is True exactly when neither the supplied
    code nor the description matched the catalog.
    """

    found: bool
    is_unlisted_procedure: bool
    cpt_code: str | None = None
    cpt_description: str | None = None
    matched_by: str | None = None  # "code" or "description"


async def lookup_procedure_cpt(
    reference_data: ReferenceDataInterface,
    description: str,
    provided_code: str | None = None,
) -> ProcedureLookupResult:
    """Resolve a procedure description or supplied code to a CPT code.

    Resolution order: exact match of the supplied code, then the first
    active catalog entry whose description contains ``description``
    (case-insensitive). Lookup faults count as "no match".
    """
    if provided_code:
        code = provided_code.strip().upper()
        try:
            entry = await reference_data.get_procedure_code(code)
        except Exception as e:
            logger.warning(f"Procedure code lookup failed for {code}: {e}")
            entry = None
        if entry is not None and entry.is_active:
            return ProcedureLookupResult(
                found=True,
                is_unlisted_procedure=False,
                cpt_code=entry.code,
                cpt_description=entry.description,
                matched_by="code",
            )

    needle = description.strip()
    if needle:
        try:
            matches = await reference_data.search_procedure_codes(needle, limit=1)
        except Exception as e:
            logger.warning(f"Procedure description search failed for '{needle}': {e}")
            matches = []
        active = [m for m in matches if m.is_active]
        if active:
            return ProcedureLookupResult(
                found=True,
                is_unlisted_procedure=False,
                cpt_code=active[0].code,
                cpt_description=active[0].description,
                matched_by="description",
            )

    return ProcedureLookupResult(found=False, is_unlisted_procedure=True)
