"""Repository Protocol — dependency inversion for testability.

Unit tests inject a fake that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from src.wm_collection.domain.models import CollectionRecord, RecordFilter


class CollectionRecordStoreProtocol(Protocol):
    async def list_records(self, record_filter: RecordFilter) -> list[CollectionRecord]:
        """Records matching the filter, newest first (created_at DESC).

        Raises MalformedRecordError for rows that fail the parsing boundary;
        any other exception means the store round trip itself failed.
        """
        ...
