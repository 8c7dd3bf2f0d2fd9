"""WalletAggregator — one store round trip in, one full WalletSnapshot out.

The record filter is chosen per call (or per aggregator) through RecordScope,
so the same logic answers "what I've recycled" for a resident and "what I've
collected" for a collector.
"""

import asyncio
import logging
import math
from collections.abc import Sequence
from datetime import datetime

from src.wm_collection.domain.models import CollectionRecord, RecordFilter
from src.wm_collection.domain.repository import CollectionRecordStoreProtocol
from src.wm_common.datetime_utils import Clock, utc_now
from src.wm_common.enums import CollectionStatus, RecordScope
from src.wm_common.errors import AggregationError, MalformedRecordError
from src.wm_wallet.domain.impact import impact_for
from src.wm_wallet.domain.models import PickupCounts, WalletSnapshot
from src.wm_wallet.domain.tier_policy import next_tier_requirements, tier_for
from src.wm_wallet.domain.weights import points_for_weight

logger = logging.getLogger(__name__)


def build_snapshot(
    user_id: str, records: Sequence[CollectionRecord], computed_at: datetime
) -> WalletSnapshot:
    """Pure derivation of a snapshot from an already-fetched record set."""
    countable = [r for r in records if r.is_countable]
    total_weight = math.fsum(r.weight_kg for r in countable)
    balance = round(math.fsum(r.monetary_value for r in countable), 2)

    counts = PickupCounts(
        total=len(records),
        approved=len(countable),
        pending=sum(1 for r in records if r.status is CollectionStatus.PENDING),
        rejected=sum(1 for r in records if r.status is CollectionStatus.REJECTED),
    )

    return WalletSnapshot(
        user_id=user_id,
        balance=balance,
        points=points_for_weight(total_weight),
        total_weight_kg=total_weight,
        tier=tier_for(total_weight),
        next_tier=next_tier_requirements(total_weight),
        environmental_impact=impact_for(total_weight),
        pickup_counts=counts,
        computed_at=computed_at,
    )


class WalletAggregator:
    def __init__(
        self,
        store: CollectionRecordStoreProtocol | None = None,
        scope: RecordScope = RecordScope.PARTICIPANT,
        query_timeout: float | None = None,
        clock: Clock = utc_now,
    ) -> None:
        if store is None:
            from src.wm_collection.infrastructure.persistence import CollectionRecordRepository

            store = CollectionRecordRepository()
        self._store: CollectionRecordStoreProtocol = store
        self._scope = scope
        self._query_timeout = query_timeout
        self._clock = clock

    @property
    def scope(self) -> RecordScope:
        return self._scope

    async def aggregate(self, user_id: str, scope: RecordScope | None = None) -> WalletSnapshot:
        record_filter = RecordFilter.for_scope(scope or self._scope, user_id)
        # Stamped before the read so a slower, earlier read never looks newer.
        issued_at = self._clock()
        try:
            records = await asyncio.wait_for(
                self._store.list_records(record_filter), timeout=self._query_timeout
            )
        except MalformedRecordError as exc:
            raise AggregationError(user_id, exc.message, retryable=False) from exc
        except TimeoutError as exc:
            raise AggregationError(
                user_id, f"store query timed out after {self._query_timeout}s"
            ) from exc
        except Exception as exc:
            raise AggregationError(user_id, f"store query failed: {exc!r}") from exc

        snapshot = build_snapshot(user_id, records, issued_at)
        logger.debug(
            "Aggregated wallet: user=%s records=%d weight=%.3f tier=%s",
            user_id,
            len(records),
            snapshot.total_weight_kg,
            snapshot.tier.value,
        )
        return snapshot
