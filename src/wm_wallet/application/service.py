"""WalletApplicationService — what UI and HTTP callers talk to.

Composes the cache (pull path) with realtime sync (push path). Never returns
a fabricated zero wallet: with nothing cached a failed aggregation
propagates as AggregationError.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from config.settings import settings
from src.wm_common.enums import WalletFreshness
from src.wm_wallet.application.cache import CachedWallet, WalletCache
from src.wm_wallet.application.realtime import RealtimeSync, WalletChangeCallback
from src.wm_wallet.domain.aggregator import WalletAggregator
from src.wm_wallet.domain.models import WalletSnapshot
from src.wm_wallet.domain.tier_policy import tier_benefits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletView:
    snapshot: WalletSnapshot
    freshness: WalletFreshness
    fetched_at: datetime
    benefits: tuple[str, ...]

    @classmethod
    def from_cached(cls, cached: CachedWallet) -> "WalletView":
        return cls(
            snapshot=cached.snapshot,
            freshness=cached.freshness,
            fetched_at=cached.fetched_at,
            benefits=tier_benefits(cached.snapshot.tier),
        )


class WalletApplicationService:
    def __init__(
        self,
        cache: WalletCache | None = None,
        realtime: RealtimeSync | None = None,
        soft_timeout: float | None = None,
    ) -> None:
        if cache is None:
            cache = WalletCache(
                WalletAggregator(query_timeout=settings.WALLET_QUERY_TIMEOUT_SECONDS)
            )
        if realtime is None:
            from src.wm_wallet.infrastructure.redis_channel import RedisChangeChannel

            realtime = RealtimeSync(cache, RedisChangeChannel())
        self._cache = cache
        self._realtime = realtime
        self._soft_timeout = (
            soft_timeout if soft_timeout is not None else settings.WALLET_SOFT_TIMEOUT_SECONDS
        )

    @property
    def cache(self) -> WalletCache:
        return self._cache

    @property
    def realtime(self) -> RealtimeSync:
        return self._realtime

    async def get_wallet(self, user_id: str) -> WalletView:
        entry = self._cache.get(user_id)
        if entry is not None:
            return WalletView.from_cached(
                CachedWallet(entry.snapshot, entry.fetched_at, WalletFreshness.CACHED)
            )

        stale = self._cache.peek(user_id)
        if stale is None:
            return WalletView.from_cached(await self._cache.load(user_id))

        # The refresh task is shielded inside the cache, so timing out here
        # leaves it running; its snapshot still reaches listeners.
        try:
            cached = await asyncio.wait_for(
                self._cache.load(user_id), timeout=self._soft_timeout
            )
        except TimeoutError:
            logger.info(
                "Wallet refresh for user=%s exceeded %.1fs; serving stale snapshot",
                user_id,
                self._soft_timeout,
            )
            return WalletView.from_cached(
                CachedWallet(stale.snapshot, stale.fetched_at, WalletFreshness.STALE)
            )
        return WalletView.from_cached(cached)

    async def force_refresh(self, user_id: str) -> WalletView:
        return WalletView.from_cached(await self._cache.load(user_id, force=True))

    def on_wallet_change(
        self, user_id: str, callback: WalletChangeCallback
    ) -> Callable[[], None]:
        handle = self._realtime.subscribe(user_id, callback)

        def unsubscribe() -> None:
            self._realtime.unsubscribe(handle)

        return unsubscribe

    def switch_user(self, user_id: str | None) -> None:
        previous = self._cache.active_user
        if self._cache.set_active_user(user_id) and previous is not None:
            self._realtime.unsubscribe_user(previous)

    def logout(self) -> None:
        previous = self._cache.active_user
        self._cache.clear()
        if previous is not None:
            self._realtime.unsubscribe_user(previous)
        logger.info("Wallet session cleared (previous user=%s)", previous)

    async def close(self) -> None:
        await self._realtime.close()
