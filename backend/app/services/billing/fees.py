"""Fee schedule lookup (decision tree node F).

Three tiers, each tried only when the previous one produced nothing:

1. Contracted rate from the payer's fee schedule
2. RVU-computed rate: (work + practice + malpractice RVU) x payer multiplier
3. Chargemaster default

Each tier is an independent coroutine returning a FeeScheduleResult or
None, and FEE_TIERS lists them in evaluation order.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.core.config import settings
from app.schemas.base import RateSource
from app.services.billing.reference_data import ReferenceDataInterface

logger = logging.getLogger(__name__)

# Share of Medicare that a payer typically pays, keyed by a keyword in the payer id
PAYER_MEDICARE_PERCENTAGES: dict[str, float] = {
    "medicare": 1.0,
    "medicaid": 0.7,
    "blue_cross": 1.4,
    "aetna": 1.35,
    "united": 1.38,
    "cigna": 1.32,
}
DEFAULT_COMMERCIAL_PERCENTAGE = 1.3


@dataclass
class FeeContext:
    """Inputs shared by all fee tiers."""

    cpt_code: str
    payer_id: str
    provider_id: str
    reference_data: ReferenceDataInterface


@dataclass
class FeeScheduleResult:
    """Applied fee and the tier that produced it."""

    fee_found: bool
    applied_rate: float
    rate_source: RateSource
    allowed_amount: float | None = None
    contracted_rate: float | None = None
    total_rvu: float | None = None
    multiplier: float | None = None
    degraded_tiers: tuple[str, ...] = ()


FeeTier = Callable[[FeeContext], Awaitable[FeeScheduleResult | None]]


def _money(value: float) -> float:
    return round(float(value), 2)


def default_payer_multiplier(payer_id: str) -> float:
    """Dollars per RVU when the payer has no configured multiplier."""
    payer = payer_id.lower()
    percentage = next(
        (pct for keyword, pct in PAYER_MEDICARE_PERCENTAGES.items() if keyword in payer),
        DEFAULT_COMMERCIAL_PERCENTAGE,
    )
    return settings.medicare_conversion_factor * percentage


async def contracted_rate_tier(ctx: FeeContext) -> FeeScheduleResult | None:
    amount = await ctx.reference_data.get_contracted_rate(ctx.payer_id, ctx.cpt_code)
    if not amount:
        return None
    return FeeScheduleResult(
        fee_found=True,
        applied_rate=_money(amount),
        rate_source=RateSource.CONTRACTED,
        allowed_amount=_money(amount),
        contracted_rate=_money(amount),
    )


async def rvu_rate_tier(ctx: FeeContext) -> FeeScheduleResult | None:
    rvus = await ctx.reference_data.get_rvus(ctx.cpt_code)
    if rvus is None or not rvus.work:
        return None

    multiplier = await ctx.reference_data.get_payer_multiplier(ctx.payer_id)
    if not multiplier:
        multiplier = default_payer_multiplier(ctx.payer_id)

    rate = _money(rvus.total * multiplier)
    return FeeScheduleResult(
        fee_found=True,
        applied_rate=rate,
        rate_source=RateSource.RVU,
        allowed_amount=rate,
        total_rvu=round(rvus.total, 4),
        multiplier=multiplier,
    )


async def chargemaster_tier(ctx: FeeContext) -> FeeScheduleResult | None:
    return FeeScheduleResult(
        fee_found=True,
        applied_rate=_money(settings.chargemaster_default_rate),
        rate_source=RateSource.CHARGEMASTER,
    )


FEE_TIERS: tuple[tuple[str, FeeTier], ...] = (
    ("contracted", contracted_rate_tier),
    ("rvu", rvu_rate_tier),
    ("chargemaster", chargemaster_tier),
)


async def lookup_fee(
    reference_data: ReferenceDataInterface,
    cpt_code: str,
    payer_id: str,
    provider_id: str,
) -> FeeScheduleResult:
    """Resolve the billed amount for a code.

    A reference data fault in any tier is treated as "not found for this
    tier". The chargemaster tier always answers, so fee_found is always
    True.
    """
    ctx = FeeContext(cpt_code, payer_id, provider_id, reference_data)
    degraded: list[str] = []

    for name, tier in FEE_TIERS:
        try:
            result = await tier(ctx)
        except Exception as e:
            logger.warning(f"Fee tier '{name}' unavailable for code={cpt_code} payer={payer_id}: {e}")
            degraded.append(name)
            continue
        if result is not None:
            result.degraded_tiers = tuple(degraded)
            return result

    # Unreachable while the chargemaster tier is last
    return FeeScheduleResult(
        fee_found=True,
        applied_rate=_money(settings.chargemaster_default_rate),
        rate_source=RateSource.CHARGEMASTER,
        degraded_tiers=tuple(degraded),
    )
