"""Domain models for wm_collection — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.wm_common.enums import COUNTABLE_STATUSES, CollectionStatus, RecordScope


@dataclass(frozen=True)
class CollectionRecord:
    id: str
    customer_id: str
    collector_id: str | None
    weight_kg: float           # >= 0
    monetary_value: float      # >= 0, currency units (Rand)
    status: CollectionStatus
    material_type: str
    created_at: datetime       # UTC
    approved_at: datetime | None = None

    @property
    def is_countable(self) -> bool:
        return self.status in COUNTABLE_STATUSES


@dataclass(frozen=True)
class RecordFilter:
    """Store query predicate: records owned by the customer OR the collector
    given (whichever are set), created within [created_from, created_to)."""

    customer_id: str | None = None
    collector_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    @classmethod
    def for_scope(cls, scope: RecordScope, user_id: str) -> "RecordFilter":
        if scope is RecordScope.CUSTOMER:
            return cls(customer_id=user_id)
        if scope is RecordScope.COLLECTOR:
            return cls(collector_id=user_id)
        return cls(customer_id=user_id, collector_id=user_id)
