"""Redis pub/sub adapter for row-change notifications.

One Redis channel per ChangeTopic, named ``{prefix}:{table}:{column}={value}``.
Writers (DB triggers relayed by a worker, or the services that mutate
collections) publish a JSON payload; see ChangeEvent.from_payload for the
accepted shapes.
"""

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config.settings import settings
from src.wm_common.errors import SubscriptionError
from src.wm_common.redis_client import get_redis
from src.wm_wallet.domain.events import ChangeEvent, ChangeTopic

logger = logging.getLogger(__name__)

RedisFactory = Callable[[], Awaitable[aioredis.Redis]]


class RedisChangeChannel:
    def __init__(self, redis_factory: RedisFactory = get_redis, prefix: str | None = None) -> None:
        self._redis_factory = redis_factory
        self._prefix = prefix or settings.REALTIME_CHANNEL_PREFIX

    def channel_name(self, topic: ChangeTopic) -> str:
        return topic.channel_name(self._prefix)

    @asynccontextmanager
    async def open(
        self, topics: Sequence[ChangeTopic]
    ) -> AsyncIterator[AsyncIterator[ChangeEvent]]:
        names = [self.channel_name(t) for t in topics]
        try:
            client = await self._redis_factory()
            pubsub = client.pubsub(ignore_subscribe_messages=True)
        except (RedisError, OSError) as exc:
            raise SubscriptionError(f"cannot connect to change channel: {exc}") from exc

        try:
            await pubsub.subscribe(*names)
        except (RedisError, OSError) as exc:
            await pubsub.aclose()
            raise SubscriptionError(f"cannot subscribe to {names}: {exc}") from exc

        logger.debug("Subscribed to change channels %s", names)
        try:
            yield self._events(pubsub)
        finally:
            try:
                await pubsub.unsubscribe()
            except (RedisError, OSError) as exc:
                logger.debug("Unsubscribe from %s failed: %s", names, exc)
            await pubsub.aclose()

    async def publish(self, topic: ChangeTopic, event: ChangeEvent) -> int:
        """Returns the number of subscribers that received the event."""
        client = await self._redis_factory()
        payload = json.dumps(event.to_payload(), default=str)
        return await client.publish(self.channel_name(topic), payload)

    async def _events(self, pubsub: Any) -> AsyncIterator[ChangeEvent]:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                event = self._decode(message)
                if event is not None:
                    yield event
        except (RedisError, OSError) as exc:
            raise SubscriptionError(f"change channel connection lost: {exc}") from exc

    @staticmethod
    def _decode(message: dict[str, Any]) -> ChangeEvent | None:
        try:
            return ChangeEvent.from_payload(json.loads(message["data"]))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning(
                "Dropping malformed change event on %s: %s", message.get("channel"), exc
            )
            return None
