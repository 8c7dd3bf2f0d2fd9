"""Domain models for wm_wallet — frozen dataclasses.

A WalletSnapshot is replaced whole on every refresh and never patched.
"""

from dataclasses import dataclass
from datetime import datetime

from src.wm_common.enums import Tier


@dataclass(frozen=True)
class NextTier:
    name: Tier | None          # None at the top tier
    weight_needed: float       # kg still to recycle
    progress_percent: float    # 0..100 within the current band


@dataclass(frozen=True)
class EnvironmentalImpact:
    co2_saved_kg: float
    water_saved_liters: float
    landfill_saved_kg: float
    trees_equivalent: float


@dataclass(frozen=True)
class PickupCounts:
    total: int
    approved: int   # approved + completed
    pending: int
    rejected: int


@dataclass(frozen=True)
class WalletSnapshot:
    user_id: str
    balance: float
    points: int
    total_weight_kg: float
    tier: Tier
    next_tier: NextTier
    environmental_impact: EnvironmentalImpact
    pickup_counts: PickupCounts
    computed_at: datetime
