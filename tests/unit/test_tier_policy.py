"""Unit tests for tier bands, next-tier progress and benefits."""

import math

import pytest

from src.wm_common.enums import Tier
from src.wm_common.errors import InvalidInputError
from src.wm_wallet.domain.tier_policy import (
    TIER_BANDS,
    next_tier_requirements,
    tier_benefits,
    tier_for,
)


class TestTierFor:
    @pytest.mark.parametrize(
        ("weight", "expected"),
        [
            (0, Tier.BRONZE),
            (49.99, Tier.BRONZE),
            (50, Tier.SILVER),
            (149.99, Tier.SILVER),
            (150, Tier.GOLD),
            (299.999, Tier.GOLD),
            (300, Tier.PLATINUM),
            (499.99, Tier.PLATINUM),
            (500, Tier.DIAMOND),
            (10_000, Tier.DIAMOND),
        ],
    )
    def test_band_boundaries(self, weight: float, expected: Tier) -> None:
        assert tier_for(weight) is expected

    def test_deterministic(self) -> None:
        assert tier_for(123.4) is tier_for(123.4)

    def test_monotonic(self) -> None:
        order = [band.tier for band in TIER_BANDS]
        previous = 0
        for tenth in range(0, 6000):
            idx = order.index(tier_for(tenth / 10))
            assert idx >= previous
            previous = idx

    @pytest.mark.parametrize("bad", [-0.01, math.nan, math.inf, "12", None, True])
    def test_rejects_invalid_weight(self, bad: object) -> None:
        with pytest.raises(InvalidInputError):
            tier_for(bad)  # type: ignore[arg-type]


class TestNextTierRequirements:
    def test_bronze_to_silver(self) -> None:
        nxt = next_tier_requirements(20.0)
        assert nxt.name is Tier.SILVER
        assert nxt.weight_needed == pytest.approx(30.0)
        assert nxt.progress_percent == pytest.approx(40.0)

    def test_just_below_gold(self) -> None:
        nxt = next_tier_requirements(149.99)
        assert nxt.name is Tier.GOLD
        assert nxt.weight_needed == pytest.approx(0.01)
        assert nxt.progress_percent == pytest.approx(99.99)

    def test_exactly_on_boundary_starts_new_band(self) -> None:
        nxt = next_tier_requirements(150.0)
        assert nxt.name is Tier.PLATINUM
        assert nxt.weight_needed == pytest.approx(150.0)
        assert nxt.progress_percent == pytest.approx(0.0)

    def test_top_tier(self) -> None:
        nxt = next_tier_requirements(750.0)
        assert nxt.name is None
        assert nxt.weight_needed == 0.0
        assert nxt.progress_percent == 100.0

    def test_progress_always_within_bounds(self) -> None:
        for tenth in range(0, 6000, 7):
            nxt = next_tier_requirements(tenth / 10)
            assert 0.0 <= nxt.progress_percent <= 100.0
            assert nxt.weight_needed >= 0.0


class TestTierBenefits:
    def test_every_tier_has_benefits(self) -> None:
        for tier in Tier:
            assert len(tier_benefits(tier)) > 0

    def test_higher_tiers_add_benefits(self) -> None:
        assert len(tier_benefits(Tier.GOLD)) > len(tier_benefits(Tier.BRONZE))
        assert "Diamond status" in tier_benefits(Tier.DIAMOND)
