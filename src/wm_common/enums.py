"""Global enums — collection statuses must match the store's CHECK constraint."""

from enum import Enum


class CollectionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that accrue balance, points and weight.
COUNTABLE_STATUSES: frozenset[CollectionStatus] = frozenset(
    {CollectionStatus.APPROVED, CollectionStatus.COMPLETED}
)


class Tier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"


class RecordScope(str, Enum):
    """Which side of a collection record the wallet owner sits on."""
    CUSTOMER = "customer"        # resident app: what I've recycled
    COLLECTOR = "collector"      # collector app: what I've collected
    PARTICIPANT = "participant"  # either side


class ChangeOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class SubscriptionState(str, Enum):
    INACTIVE = "INACTIVE"
    SUBSCRIBING = "SUBSCRIBING"
    ACTIVE = "ACTIVE"
    RECONNECTING = "RECONNECTING"


class WalletFreshness(str, Enum):
    """How a wallet view was obtained; clients render each differently."""
    LIVE = "live"      # aggregated during this call
    CACHED = "cached"  # served from a cache entry inside its TTL
    STALE = "stale"    # expired entry, or fallback after a failed refresh
