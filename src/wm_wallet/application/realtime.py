"""RealtimeSync — keeps cached wallets fresh from store change notifications.

Per subscription:

    INACTIVE -> SUBSCRIBING -> ACTIVE -> (drop) RECONNECTING -> ACTIVE
                \\-> (refused) RECONNECTING
                                      \\-> INACTIVE (explicit unsubscribe)

Every change event invalidates the user's cache entry and restarts a
debounce timer; when the timer fires, one forced reload runs, unless a
reload that was already running when the event arrived has since stored
a snapshot. After any failed or dropped connection the next successful
connect runs one forced reload unconditionally. Reloaded snapshots reach
`on_change` through cache listeners, so a reload that joins an in-flight
aggregation emits once.
A failing channel never affects the pull path (WalletCache.load).
"""

import asyncio
import itertools
import logging
from collections.abc import Callable

from config.settings import settings
from src.wm_common.enums import RecordScope, SubscriptionState, WalletFreshness
from src.wm_common.errors import AppError, RefreshSupersededError, SubscriptionError
from src.wm_wallet.application.cache import CachedWallet, WalletCache
from src.wm_wallet.application.debounce import Debouncer
from src.wm_wallet.domain.events import (
    ChangeChannelProtocol,
    ChangeEvent,
    ChangeTopic,
    topics_for,
)
from src.wm_wallet.domain.models import WalletSnapshot

logger = logging.getLogger(__name__)

WalletChangeCallback = Callable[[WalletSnapshot], None]


class WalletSubscription:
    """Handle returned by RealtimeSync.subscribe."""

    def __init__(self, sub_id: int, user_id: str, topics: tuple[ChangeTopic, ...]) -> None:
        self.id = sub_id
        self.user_id = user_id
        self.topics = topics
        self.state = SubscriptionState.INACTIVE
        self.connects = 0
        self.reconnect_attempts = 0
        self.events_received = 0
        self.closed = False
        self.task: asyncio.Task[None] | None = None
        self.debouncer: Debouncer | None = None
        self.remove_listener: Callable[[], None] | None = None
        self.covering_refresh: asyncio.Task[CachedWallet] | None = None

    def __repr__(self) -> str:
        return (
            f"WalletSubscription(id={self.id}, user_id={self.user_id!r}, "
            f"state={self.state.value})"
        )


class RealtimeSync:
    def __init__(
        self,
        cache: WalletCache,
        channel: ChangeChannelProtocol,
        scope: RecordScope = RecordScope.PARTICIPANT,
        debounce_seconds: float | None = None,
        reconnect_base_seconds: float | None = None,
        reconnect_max_seconds: float | None = None,
    ) -> None:
        self._cache = cache
        self._channel = channel
        self._scope = scope
        self._debounce = (
            debounce_seconds
            if debounce_seconds is not None
            else settings.REALTIME_DEBOUNCE_MS / 1000
        )
        self._reconnect_base = (
            reconnect_base_seconds
            if reconnect_base_seconds is not None
            else settings.REALTIME_RECONNECT_BASE_SECONDS
        )
        self._reconnect_max = (
            reconnect_max_seconds
            if reconnect_max_seconds is not None
            else settings.REALTIME_RECONNECT_MAX_SECONDS
        )
        self._ids = itertools.count(1)
        self._subscriptions: dict[int, WalletSubscription] = {}

    def subscribe(self, user_id: str, on_change: WalletChangeCallback) -> WalletSubscription:
        """Start listening for `user_id`. Must be called inside the running loop."""
        sub = WalletSubscription(next(self._ids), user_id, topics_for(user_id, self._scope))

        def deliver(snapshot: WalletSnapshot) -> None:
            if not sub.closed:
                on_change(snapshot)

        sub.remove_listener = self._cache.add_listener(user_id, deliver)
        sub.debouncer = Debouncer(self._debounce, lambda: self._debounced_refresh(sub))
        sub.state = SubscriptionState.SUBSCRIBING
        sub.task = asyncio.ensure_future(self._run(sub))
        sub.task.add_done_callback(lambda t: self._on_task_done(sub, t))
        self._subscriptions[sub.id] = sub
        logger.info("Realtime subscription %d opened for user=%s", sub.id, user_id)
        return sub

    def unsubscribe(self, handle: WalletSubscription) -> None:
        if handle.closed:
            return
        handle.closed = True
        handle.state = SubscriptionState.INACTIVE
        if handle.remove_listener is not None:
            handle.remove_listener()
        if handle.debouncer is not None:
            handle.debouncer.cancel()
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
        self._subscriptions.pop(handle.id, None)
        logger.info("Realtime subscription %d closed for user=%s", handle.id, handle.user_id)

    def unsubscribe_user(self, user_id: str) -> int:
        subs = [s for s in self._subscriptions.values() if s.user_id == user_id]
        for sub in subs:
            self.unsubscribe(sub)
        return len(subs)

    def subscriptions(self, user_id: str | None = None) -> list[WalletSubscription]:
        return [
            s for s in self._subscriptions.values() if user_id is None or s.user_id == user_id
        ]

    async def close(self) -> None:
        subs = list(self._subscriptions.values())
        tasks = [s.task for s in subs if s.task is not None]
        for sub in subs:
            self.unsubscribe(sub)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------

    async def _run(self, sub: WalletSubscription) -> None:
        attempt = 0
        while not sub.closed:
            try:
                async with self._channel.open(sub.topics) as stream:
                    reconnected = sub.state is SubscriptionState.RECONNECTING
                    sub.connects += 1
                    sub.state = SubscriptionState.ACTIVE
                    attempt = 0
                    logger.info(
                        "Realtime subscription %d active for user=%s (connect #%d)",
                        sub.id,
                        sub.user_id,
                        sub.connects,
                    )
                    if reconnected:
                        self._cache.invalidate(sub.user_id)
                        await self._refresh(sub)
                    async for event in stream:
                        self._on_event(sub, event)
                logger.warning("Realtime stream ended for user=%s", sub.user_id)
            except SubscriptionError as exc:
                logger.warning(
                    "Realtime subscription %d for user=%s failed: %s",
                    sub.id,
                    sub.user_id,
                    exc.message,
                )

            if sub.closed:
                break
            sub.state = SubscriptionState.RECONNECTING
            delay = min(self._reconnect_base * (2**attempt), self._reconnect_max)
            attempt += 1
            sub.reconnect_attempts += 1
            logger.info(
                "Reconnecting realtime subscription %d in %.1fs (attempt %d)",
                sub.id,
                delay,
                attempt,
            )
            await asyncio.sleep(delay)

    def _on_event(self, sub: WalletSubscription, event: ChangeEvent) -> None:
        sub.events_received += 1
        logger.debug(
            "Change event for user=%s: %s on %s", sub.user_id, event.operation.value, event.table
        )
        self._cache.invalidate(sub.user_id)
        # A still-running reload is joined by the debounced refresh; one that
        # finishes first and stores its snapshot stands in for it.
        sub.covering_refresh = self._cache.current_refresh(sub.user_id)
        if sub.debouncer is not None:
            sub.debouncer.trigger()

    async def _debounced_refresh(self, sub: WalletSubscription) -> None:
        covering, sub.covering_refresh = sub.covering_refresh, None
        if covering is not None and _applied(covering):
            logger.debug(
                "Change for user=%s already covered by the refresh running at event time",
                sub.user_id,
            )
            return
        await self._refresh(sub)

    async def _refresh(self, sub: WalletSubscription) -> None:
        if sub.closed:
            return
        try:
            await self._cache.load(sub.user_id, force=True)
        except RefreshSupersededError:
            logger.debug("Realtime refresh for user=%s superseded", sub.user_id)
        except AppError as exc:
            logger.warning("Realtime refresh failed for user=%s: %s", sub.user_id, exc.message)

    def _on_task_done(self, sub: WalletSubscription, task: "asyncio.Task[None]") -> None:
        sub.state = SubscriptionState.INACTIVE
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Realtime subscription %d for user=%s crashed", sub.id, sub.user_id, exc_info=exc
            )
            self.unsubscribe(sub)


def _applied(task: "asyncio.Task[CachedWallet]") -> bool:
    """True once `task` has finished and stored a new snapshot."""
    if not task.done() or task.cancelled() or task.exception() is not None:
        return False
    return task.result().freshness is WalletFreshness.LIVE
