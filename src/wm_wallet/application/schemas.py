"""Pydantic response schemas for the wallet API."""

from datetime import datetime

from pydantic import BaseModel

from src.wm_wallet.application.service import WalletView
from src.wm_wallet.domain.tier_policy import TIER_BANDS, tier_benefits


class NextTierResponse(BaseModel):
    name: str | None
    weight_needed: float
    progress_percent: float


class EnvironmentalImpactResponse(BaseModel):
    co2_saved_kg: float
    water_saved_liters: float
    landfill_saved_kg: float
    trees_equivalent: float


class PickupCountsResponse(BaseModel):
    total: int
    approved: int
    pending: int
    rejected: int


class WalletResponse(BaseModel):
    user_id: str
    balance: float
    points: int
    total_weight_kg: float
    tier: str
    next_tier: NextTierResponse
    environmental_impact: EnvironmentalImpactResponse
    pickup_counts: PickupCountsResponse
    benefits: list[str]
    freshness: str
    computed_at: datetime
    fetched_at: datetime

    @classmethod
    def from_view(cls, view: WalletView) -> "WalletResponse":
        s = view.snapshot
        return cls(
            user_id=s.user_id,
            balance=s.balance,
            points=s.points,
            total_weight_kg=round(s.total_weight_kg, 3),
            tier=s.tier.value,
            next_tier=NextTierResponse(
                name=s.next_tier.name.value if s.next_tier.name else None,
                weight_needed=round(s.next_tier.weight_needed, 3),
                progress_percent=round(s.next_tier.progress_percent, 2),
            ),
            environmental_impact=EnvironmentalImpactResponse(
                co2_saved_kg=s.environmental_impact.co2_saved_kg,
                water_saved_liters=s.environmental_impact.water_saved_liters,
                landfill_saved_kg=s.environmental_impact.landfill_saved_kg,
                trees_equivalent=s.environmental_impact.trees_equivalent,
            ),
            pickup_counts=PickupCountsResponse(
                total=s.pickup_counts.total,
                approved=s.pickup_counts.approved,
                pending=s.pickup_counts.pending,
                rejected=s.pickup_counts.rejected,
            ),
            benefits=list(view.benefits),
            freshness=view.freshness.value,
            computed_at=s.computed_at,
            fetched_at=view.fetched_at,
        )


class TierBandResponse(BaseModel):
    tier: str
    min_weight_kg: float
    max_weight_kg: float | None
    benefits: list[str]


def tier_table() -> list[TierBandResponse]:
    return [
        TierBandResponse(
            tier=band.tier.value,
            min_weight_kg=band.min_weight_kg,
            max_weight_kg=band.max_weight_kg,
            benefits=list(tier_benefits(band.tier)),
        )
        for band in TIER_BANDS
    ]
