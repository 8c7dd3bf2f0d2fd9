"""WalletCache — time-boxed, single-flight memo of wallet snapshots per user.

Owns the only shared mutable state of the wallet core: the
user_id -> CacheEntry map. Everything else reads and writes it through the
methods below.

Rules:
  - An entry is fresh for `ttl` after it was stored. Expired (or explicitly
    invalidated) entries stay readable through `peek` for stale display and
    as the fallback when a refresh fails.
  - At most one aggregation per user is in flight; concurrent loads join it.
  - `put` is last-writer-wins on `computed_at`: an older snapshot never
    replaces a newer one.
  - Switching the active user (or clearing) drops every entry and advances
    the generation. Loads issued under an older generation have their result
    discarded and their callers get RefreshSupersededError.
  - Listeners are called once per snapshot actually stored.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from functools import partial

from config.settings import settings
from src.wm_common.datetime_utils import Clock, utc_now
from src.wm_common.enums import WalletFreshness
from src.wm_common.errors import AggregationError, InvalidInputError, RefreshSupersededError
from src.wm_wallet.domain.aggregator import WalletAggregator
from src.wm_wallet.domain.models import WalletSnapshot

logger = logging.getLogger(__name__)

WalletListener = Callable[[WalletSnapshot], None]


@dataclass(frozen=True)
class CacheEntry:
    user_id: str
    snapshot: WalletSnapshot
    fetched_at: datetime
    ttl: timedelta
    invalidated: bool = False

    def is_fresh(self, now: datetime) -> bool:
        return not self.invalidated and now - self.fetched_at < self.ttl


@dataclass(frozen=True)
class CachedWallet:
    """A snapshot plus how it was obtained."""

    snapshot: WalletSnapshot
    fetched_at: datetime
    freshness: WalletFreshness

    @property
    def stale(self) -> bool:
        return self.freshness is WalletFreshness.STALE


class WalletCache:
    def __init__(
        self,
        aggregator: WalletAggregator,
        ttl: timedelta | None = None,
        max_retries: int | None = None,
        retry_backoff: float | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._aggregator = aggregator
        self._ttl = ttl if ttl is not None else timedelta(seconds=settings.WALLET_CACHE_TTL_SECONDS)
        self._max_retries = max_retries if max_retries is not None else settings.WALLET_MAX_RETRIES
        self._retry_backoff = (
            retry_backoff if retry_backoff is not None else settings.WALLET_RETRY_BACKOFF_SECONDS
        )
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, tuple[int, asyncio.Task[CachedWallet]]] = {}
        self._listeners: dict[str, list[WalletListener]] = defaultdict(list)
        self._generation = 0
        self._active_user: str | None = None

    # ------------------------------------------------------------------
    # Synchronous contract
    # ------------------------------------------------------------------

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active_user(self) -> str | None:
        return self._active_user

    def get(self, user_id: str) -> CacheEntry | None:
        """Fresh entry, or None (cache miss) when absent, expired or invalidated."""
        entry = self._entries.get(user_id)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry

    def peek(self, user_id: str) -> CacheEntry | None:
        """Entry regardless of freshness."""
        return self._entries.get(user_id)

    def put(self, user_id: str, snapshot: WalletSnapshot) -> bool:
        """Store a snapshot. Returns False when a newer one is already cached."""
        return self._store(user_id, snapshot) is not None

    def _store(self, user_id: str, snapshot: WalletSnapshot) -> CacheEntry | None:
        if snapshot.user_id != user_id:
            raise InvalidInputError(
                f"snapshot for user {snapshot.user_id} cannot be cached under {user_id}"
            )
        current = self._entries.get(user_id)
        if current is not None and current.snapshot.computed_at > snapshot.computed_at:
            logger.debug(
                "Ignoring older wallet snapshot: user=%s computed_at=%s < cached %s",
                user_id,
                snapshot.computed_at.isoformat(),
                current.snapshot.computed_at.isoformat(),
            )
            return None

        entry = CacheEntry(
            user_id=user_id,
            snapshot=snapshot,
            fetched_at=self._clock(),
            ttl=self._ttl,
        )
        self._entries[user_id] = entry
        # Listeners may clear or switch the cache; callers use the returned entry.
        self._notify(user_id, snapshot)
        return entry

    def invalidate(self, user_id: str) -> None:
        entry = self._entries.get(user_id)
        if entry is not None and not entry.invalidated:
            self._entries[user_id] = replace(entry, invalidated=True)

    def invalidate_all(self) -> None:
        for user_id in list(self._entries):
            self.invalidate(user_id)

    def set_active_user(self, user_id: str | None) -> bool:
        """Switch the signed-in user. Returns True when the user actually changed."""
        if user_id == self._active_user:
            return False
        previous = self._active_user
        self._drop_all()
        self._active_user = user_id
        logger.info(
            "Active wallet user changed: %s -> %s (generation %d)",
            previous,
            user_id,
            self._generation,
        )
        return True

    def clear(self) -> None:
        """Logout: forget the active user and every entry."""
        self._drop_all()
        self._active_user = None

    def is_refreshing(self, user_id: str) -> bool:
        return self.current_refresh(user_id) is not None

    def current_refresh(self, user_id: str) -> "asyncio.Task[CachedWallet] | None":
        """The running aggregation a `load` issued now would join, if any."""
        inflight = self._inflight.get(user_id)
        if inflight is None:
            return None
        generation, task = inflight
        if generation != self._generation or task.done():
            return None
        return task

    def add_listener(self, user_id: str, listener: WalletListener) -> Callable[[], None]:
        self._listeners[user_id].append(listener)

        def remove() -> None:
            listeners = self._listeners.get(user_id)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[user_id]

        return remove

    # ------------------------------------------------------------------
    # Async load path
    # ------------------------------------------------------------------

    async def load(self, user_id: str, force: bool = False) -> CachedWallet:
        """Return the wallet, aggregating on miss (or always when `force`).

        A failed aggregation falls back to the previous entry marked stale;
        with nothing cached the AggregationError propagates.
        """
        if not force:
            entry = self.get(user_id)
            if entry is not None:
                return CachedWallet(entry.snapshot, entry.fetched_at, WalletFreshness.CACHED)

        task = self._join_or_start(user_id)
        try:
            return await asyncio.shield(task)
        except AggregationError as exc:
            entry = self._entries.get(user_id)
            if entry is None:
                raise
            logger.warning(
                "Serving stale wallet for user=%s after failed refresh: %s",
                user_id,
                exc.message,
            )
            return CachedWallet(entry.snapshot, entry.fetched_at, WalletFreshness.STALE)

    def _join_or_start(self, user_id: str) -> "asyncio.Task[CachedWallet]":
        running = self.current_refresh(user_id)
        if running is not None:
            return running

        generation = self._generation
        task = asyncio.ensure_future(self._refresh(user_id, generation))
        self._inflight[user_id] = (generation, task)
        task.add_done_callback(partial(self._on_refresh_done, user_id))
        return task

    async def _refresh(self, user_id: str, generation: int) -> CachedWallet:
        snapshot = await self._aggregate_with_retry(user_id)
        if generation != self._generation:
            logger.info(
                "Discarding wallet refresh for user=%s: generation %d superseded by %d",
                user_id,
                generation,
                self._generation,
            )
            raise RefreshSupersededError(user_id)

        stored = self._store(user_id, snapshot)
        if stored is not None:
            return CachedWallet(stored.snapshot, stored.fetched_at, WalletFreshness.LIVE)
        current = self._entries.get(user_id)
        if current is None:
            raise RefreshSupersededError(user_id)
        return CachedWallet(current.snapshot, current.fetched_at, WalletFreshness.CACHED)

    async def _aggregate_with_retry(self, user_id: str) -> WalletSnapshot:
        attempt = 0
        while True:
            try:
                return await self._aggregator.aggregate(user_id)
            except AggregationError as exc:
                if not exc.retryable or attempt >= self._max_retries:
                    raise
                delay = self._retry_backoff * (2**attempt)
                attempt += 1
                logger.warning(
                    "Wallet aggregation failed for user=%s (attempt %d), retrying in %.2fs: %s",
                    user_id,
                    attempt,
                    delay,
                    exc.message,
                )
                await asyncio.sleep(delay)

    def _on_refresh_done(self, user_id: str, task: "asyncio.Task[CachedWallet]") -> None:
        inflight = self._inflight.get(user_id)
        if inflight is not None and inflight[1] is task:
            del self._inflight[user_id]
        if task.cancelled():
            return
        # Retrieve the exception so orphaned refreshes (every caller timed
        # out) do not trigger "exception was never retrieved".
        exc = task.exception()
        if exc is not None:
            logger.debug("Wallet refresh for user=%s ended with %r", user_id, exc)

    # ------------------------------------------------------------------

    def _drop_all(self) -> None:
        self._entries.clear()
        self._generation += 1

    def _notify(self, user_id: str, snapshot: WalletSnapshot) -> None:
        for listener in list(self._listeners.get(user_id, ())):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Wallet listener failed for user=%s", user_id)
