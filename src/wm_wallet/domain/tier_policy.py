"""Tier policy — pure mapping from accumulated recycled weight to a tier.

Bands are half-open [lo, hi): reaching a boundary puts the user in the
higher tier. Diamond has no upper bound.

    weight < 50          -> bronze
    50  <= weight < 150  -> silver
    150 <= weight < 300  -> gold
    300 <= weight < 500  -> platinum
    weight >= 500        -> diamond
"""

from dataclasses import dataclass

from src.wm_common.enums import Tier
from src.wm_wallet.domain.models import NextTier
from src.wm_wallet.domain.weights import validate_weight


@dataclass(frozen=True)
class TierBand:
    tier: Tier
    min_weight_kg: float
    max_weight_kg: float | None  # exclusive; None = unbounded


TIER_BANDS: tuple[TierBand, ...] = (
    TierBand(Tier.BRONZE, 0.0, 50.0),
    TierBand(Tier.SILVER, 50.0, 150.0),
    TierBand(Tier.GOLD, 150.0, 300.0),
    TierBand(Tier.PLATINUM, 300.0, 500.0),
    TierBand(Tier.DIAMOND, 500.0, None),
)

TIER_BENEFITS: dict[Tier, tuple[str, ...]] = {
    Tier.BRONZE: ("Basic rewards", "Standard support"),
    Tier.SILVER: ("Enhanced rewards", "Priority support", "Bonus points"),
    Tier.GOLD: ("Premium rewards", "VIP support", "Double points", "Exclusive offers"),
    Tier.PLATINUM: (
        "Ultimate rewards",
        "24/7 support",
        "Triple points",
        "Exclusive access",
        "Personal manager",
    ),
    Tier.DIAMOND: (
        "Ultimate rewards",
        "24/7 support",
        "Triple points",
        "Exclusive access",
        "Personal manager",
        "Diamond status",
    ),
}


def _band_index(weight: float) -> int:
    for i in range(len(TIER_BANDS) - 1, -1, -1):
        if weight >= TIER_BANDS[i].min_weight_kg:
            return i
    return 0


def tier_for(total_weight_kg: float) -> Tier:
    return TIER_BANDS[_band_index(validate_weight(total_weight_kg))].tier


def next_tier_requirements(total_weight_kg: float) -> NextTier:
    weight = validate_weight(total_weight_kg)
    idx = _band_index(weight)
    band = TIER_BANDS[idx]
    if band.max_weight_kg is None:
        return NextTier(name=None, weight_needed=0.0, progress_percent=100.0)

    lo, hi = band.min_weight_kg, band.max_weight_kg
    progress = 100.0 * (weight - lo) / (hi - lo)
    return NextTier(
        name=TIER_BANDS[idx + 1].tier,
        weight_needed=hi - weight,
        progress_percent=min(100.0, max(0.0, progress)),
    )


def tier_benefits(tier: Tier) -> tuple[str, ...]:
    return TIER_BENEFITS.get(tier, TIER_BENEFITS[Tier.BRONZE])
