"""Row-change events consumed from the store's change-notification channel.

Delivery is at-least-once and may drop events during reconnects; consumers
must treat an event only as "something changed for this user", never as a
delta to apply.
"""

from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.wm_common.enums import ChangeOperation, RecordScope

COLLECTIONS_TABLE = "unified_collections"
WITHDRAWALS_TABLE = "withdrawal_requests"


@dataclass(frozen=True)
class ChangeTopic:
    """Per-table, per-row-filter subscription key: rows where column == value."""

    table: str
    column: str
    value: str

    def channel_name(self, prefix: str) -> str:
        return f"{prefix}:{self.table}:{self.column}={self.value}"


@dataclass(frozen=True)
class ChangeEvent:
    operation: ChangeOperation
    table: str
    row: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ChangeEvent":
        """Accepts {operation, table, row} and the postgres_changes shape
        {eventType, table, new, old}. Raises ValueError on anything else."""
        op = payload.get("operation") or payload.get("eventType")
        table = payload.get("table")
        if not isinstance(op, str) or not isinstance(table, str) or not table:
            raise ValueError(f"change payload missing operation/table: {dict(payload)!r}")
        row = payload.get("row") or payload.get("new") or payload.get("old") or {}
        if not isinstance(row, Mapping):
            raise ValueError(f"change payload row must be an object, got {type(row).__name__}")
        return cls(operation=ChangeOperation(op.lower()), table=table, row=dict(row))

    def to_payload(self) -> dict[str, Any]:
        return {"operation": self.operation.value, "table": self.table, "row": dict(self.row)}


def topics_for(user_id: str, scope: RecordScope) -> tuple[ChangeTopic, ...]:
    """Tables whose changes can move this user's wallet."""
    topics: list[ChangeTopic] = []
    if scope in (RecordScope.CUSTOMER, RecordScope.PARTICIPANT):
        topics.append(ChangeTopic(COLLECTIONS_TABLE, "customer_id", user_id))
    if scope in (RecordScope.COLLECTOR, RecordScope.PARTICIPANT):
        topics.append(ChangeTopic(COLLECTIONS_TABLE, "collector_id", user_id))
    topics.append(ChangeTopic(WITHDRAWALS_TABLE, "user_id", user_id))
    return tuple(topics)


class ChangeChannelProtocol(Protocol):
    def open(
        self, topics: Sequence[ChangeTopic]
    ) -> AbstractAsyncContextManager[AsyncIterator[ChangeEvent]]:
        """Connect and subscribe to `topics`.

        Entering raises SubscriptionError when the handshake fails. The
        yielded iterator ends, or raises SubscriptionError, when the
        connection drops.
        """
        ...
