"""Unit tests for WalletCache: TTL, single-flight, retry, stale fallback, generations."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from src.wm_collection.domain.models import CollectionRecord
from src.wm_common.enums import CollectionStatus, RecordScope, WalletFreshness
from src.wm_common.errors import AggregationError, InvalidInputError, RefreshSupersededError
from src.wm_wallet.application.cache import WalletCache
from src.wm_wallet.domain.aggregator import build_snapshot
from src.wm_wallet.domain.models import WalletSnapshot


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _snapshot(user_id: str, weight: float, computed_at: datetime) -> WalletSnapshot:
    record = CollectionRecord(
        id=f"{user_id}-1",
        customer_id=user_id,
        collector_id=None,
        weight_kg=weight,
        monetary_value=weight * 1.5,
        status=CollectionStatus.APPROVED,
        material_type="PET",
        created_at=computed_at,
    )
    return build_snapshot(user_id, [record], computed_at)


class FakeAggregator:
    def __init__(self, clock: FakeClock, weight: float = 10.0) -> None:
        self.clock = clock
        self.weight = weight
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.failures: list[Exception] = []

    async def aggregate(self, user_id: str, scope: RecordScope | None = None) -> WalletSnapshot:
        self.calls += 1
        computed_at = self.clock()
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        return _snapshot(user_id, self.weight, computed_at)


def _make_cache(
    weight: float = 10.0, max_retries: int = 1
) -> tuple[WalletCache, FakeAggregator, FakeClock]:
    clock = FakeClock()
    agg = FakeAggregator(clock, weight)
    cache = WalletCache(
        agg,  # type: ignore[arg-type]
        ttl=timedelta(seconds=180),
        max_retries=max_retries,
        retry_backoff=0,
        clock=clock,
    )
    return cache, agg, clock


class TestSyncContract:
    def test_miss_on_empty(self) -> None:
        cache, _, _ = _make_cache()
        assert cache.get("user-1") is None
        assert cache.peek("user-1") is None

    def test_put_then_get(self) -> None:
        cache, _, clock = _make_cache()
        snap = _snapshot("user-1", 5.0, clock())
        assert cache.put("user-1", snap) is True
        entry = cache.get("user-1")
        assert entry is not None
        assert entry.snapshot is snap
        assert entry.fetched_at == clock()

    def test_put_rejects_other_users_snapshot(self) -> None:
        cache, _, clock = _make_cache()
        with pytest.raises(InvalidInputError):
            cache.put("user-1", _snapshot("user-2", 5.0, clock()))

    def test_expired_entry_is_a_miss_but_still_peekable(self) -> None:
        cache, _, clock = _make_cache()
        cache.put("user-1", _snapshot("user-1", 5.0, clock()))
        clock.advance(179)
        assert cache.get("user-1") is not None
        clock.advance(1)
        assert cache.get("user-1") is None
        assert cache.peek("user-1") is not None

    def test_invalidate(self) -> None:
        cache, _, clock = _make_cache()
        cache.put("user-1", _snapshot("user-1", 5.0, clock()))
        cache.invalidate("user-1")
        assert cache.get("user-1") is None
        assert cache.peek("user-1").invalidated  # type: ignore[union-attr]

    def test_invalidate_all(self) -> None:
        cache, _, clock = _make_cache()
        cache.put("a", _snapshot("a", 1.0, clock()))
        cache.put("b", _snapshot("b", 2.0, clock()))
        cache.invalidate_all()
        assert cache.get("a") is None and cache.get("b") is None

    def test_older_snapshot_never_replaces_newer(self) -> None:
        cache, _, clock = _make_cache()
        emitted: list[WalletSnapshot] = []
        cache.add_listener("user-1", emitted.append)
        newer = _snapshot("user-1", 20.0, clock.now)
        older = _snapshot("user-1", 5.0, clock.now - timedelta(seconds=5))

        assert cache.put("user-1", newer) is True
        assert cache.put("user-1", older) is False

        assert cache.peek("user-1").snapshot is newer  # type: ignore[union-attr]
        assert emitted == [newer]

    def test_switching_user_drops_entries(self) -> None:
        cache, _, clock = _make_cache()
        cache.set_active_user("user-1")
        cache.put("user-1", _snapshot("user-1", 5.0, clock()))
        generation = cache.generation

        assert cache.set_active_user("user-2") is True
        assert cache.peek("user-1") is None
        assert cache.generation == generation + 1
        assert cache.active_user == "user-2"

    def test_same_user_is_not_a_switch(self) -> None:
        cache, _, _ = _make_cache()
        cache.set_active_user("user-1")
        generation = cache.generation
        assert cache.set_active_user("user-1") is False
        assert cache.generation == generation

    def test_clear(self) -> None:
        cache, _, clock = _make_cache()
        cache.set_active_user("user-1")
        cache.put("user-1", _snapshot("user-1", 5.0, clock()))
        cache.clear()
        assert cache.active_user is None
        assert cache.peek("user-1") is None

    def test_listener_removal_and_failure_isolation(self) -> None:
        cache, _, clock = _make_cache()
        seen: list[WalletSnapshot] = []

        def broken(_: WalletSnapshot) -> None:
            raise RuntimeError("ui crashed")

        cache.add_listener("user-1", broken)
        remove = cache.add_listener("user-1", seen.append)
        cache.put("user-1", _snapshot("user-1", 1.0, clock()))
        remove()
        clock.advance(1)
        cache.put("user-1", _snapshot("user-1", 2.0, clock()))

        assert len(seen) == 1


class TestLoad:
    async def test_miss_aggregates_then_hits(self) -> None:
        cache, agg, _ = _make_cache()

        first = await cache.load("user-1")
        second = await cache.load("user-1")

        assert first.freshness is WalletFreshness.LIVE
        assert second.freshness is WalletFreshness.CACHED
        assert second.snapshot is first.snapshot
        assert agg.calls == 1

    async def test_force_bypasses_fresh_entry(self) -> None:
        cache, agg, clock = _make_cache()
        await cache.load("user-1")
        clock.advance(1)

        result = await cache.load("user-1", force=True)

        assert result.freshness is WalletFreshness.LIVE
        assert agg.calls == 2

    async def test_concurrent_loads_share_one_aggregation(self) -> None:
        cache, agg, _ = _make_cache()
        emitted: list[WalletSnapshot] = []
        cache.add_listener("user-1", emitted.append)
        agg.gate = asyncio.Event()

        loads = [asyncio.ensure_future(cache.load("user-1", force=True)) for _ in range(3)]
        await asyncio.sleep(0)
        assert cache.is_refreshing("user-1")
        agg.gate.set()
        results = await asyncio.gather(*loads)

        assert agg.calls == 1
        assert len(emitted) == 1
        assert all(r.snapshot is results[0].snapshot for r in results)
        assert not cache.is_refreshing("user-1")

    async def test_retryable_failure_retried_once(self) -> None:
        cache, agg, _ = _make_cache()
        agg.failures = [AggregationError("user-1", "blip")]

        result = await cache.load("user-1")

        assert agg.calls == 2
        assert result.freshness is WalletFreshness.LIVE

    async def test_non_retryable_failure_not_retried(self) -> None:
        cache, agg, _ = _make_cache()
        agg.failures = [AggregationError("user-1", "bad row", retryable=False)]

        with pytest.raises(AggregationError):
            await cache.load("user-1")
        assert agg.calls == 1

    async def test_failure_without_entry_propagates(self) -> None:
        cache, agg, _ = _make_cache()
        agg.failures = [AggregationError("user-1", "down"), AggregationError("user-1", "down")]

        with pytest.raises(AggregationError):
            await cache.load("user-1")
        assert cache.peek("user-1") is None

    async def test_failure_with_entry_serves_stale(self) -> None:
        cache, agg, clock = _make_cache()
        original = await cache.load("user-1")
        clock.advance(600)
        agg.failures = [AggregationError("user-1", "down"), AggregationError("user-1", "down")]

        result = await cache.load("user-1")

        assert result.freshness is WalletFreshness.STALE
        assert result.stale
        assert result.snapshot is original.snapshot
        assert result.fetched_at == original.fetched_at

    async def test_user_switch_discards_inflight_result(self) -> None:
        cache, agg, _ = _make_cache()
        cache.set_active_user("user-1")
        emitted: list[WalletSnapshot] = []
        cache.add_listener("user-1", emitted.append)
        agg.gate = asyncio.Event()

        load = asyncio.ensure_future(cache.load("user-1"))
        await asyncio.sleep(0)
        cache.set_active_user("user-2")
        agg.gate.set()

        with pytest.raises(RefreshSupersededError):
            await load
        assert cache.peek("user-1") is None
        assert emitted == []

    async def test_new_generation_does_not_join_old_flight(self) -> None:
        cache, agg, _ = _make_cache()
        agg.gate = asyncio.Event()

        old = asyncio.ensure_future(cache.load("user-1"))
        await asyncio.sleep(0)
        cache.clear()
        new = asyncio.ensure_future(cache.load("user-1"))
        await asyncio.sleep(0)
        agg.gate.set()

        with pytest.raises(RefreshSupersededError):
            await old
        result = await new
        assert result.freshness is WalletFreshness.LIVE
        assert agg.calls == 2

    async def test_caller_cancellation_does_not_cancel_refresh(self) -> None:
        cache, agg, _ = _make_cache()
        agg.gate = asyncio.Event()

        impatient = asyncio.ensure_future(cache.load("user-1"))
        await asyncio.sleep(0)
        impatient.cancel()
        with pytest.raises(asyncio.CancelledError):
            await impatient

        agg.gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert cache.get("user-1") is not None

    async def test_listener_clearing_cache_does_not_break_load(self) -> None:
        cache, agg, _ = _make_cache()
        cache.add_listener("user-1", lambda s: cache.clear())

        result = await cache.load("user-1")

        assert result.freshness is WalletFreshness.LIVE
        assert result.snapshot.user_id == "user-1"
        assert cache.peek("user-1") is None
        assert agg.calls == 1

    async def test_listener_switching_user_does_not_break_load(self) -> None:
        cache, _, _ = _make_cache()
        cache.set_active_user("user-1")
        cache.add_listener("user-1", lambda s: cache.set_active_user("user-2"))

        result = await cache.load("user-1")

        assert result.freshness is WalletFreshness.LIVE
        assert cache.active_user == "user-2"
        assert cache.peek("user-1") is None

    async def test_current_refresh_exposes_running_aggregation(self) -> None:
        cache, agg, _ = _make_cache()
        assert cache.current_refresh("user-1") is None
        agg.gate = asyncio.Event()

        load = asyncio.ensure_future(cache.load("user-1"))
        await asyncio.sleep(0)
        running = cache.current_refresh("user-1")
        assert running is not None
        agg.gate.set()
        await load

        assert running.done()
        assert cache.current_refresh("user-1") is None
