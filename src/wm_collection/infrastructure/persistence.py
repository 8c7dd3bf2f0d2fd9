"""CollectionRecordRepository — concrete implementation of CollectionRecordStoreProtocol.

Read-only. One session per query, opened from the injected session factory,
so background refreshes (realtime, stale-while-revalidate) never share a
request-scoped session.
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.wm_collection.domain.models import CollectionRecord, RecordFilter
from src.wm_collection.domain.parsing import parse_collection_row
from src.wm_common.database import async_session_factory

_LIST_RECORDS_SQL = text("""
    SELECT id, customer_id, collector_id,
           weight_kg, total_value, status, material_type,
           created_at, approved_at
    FROM unified_collections
    WHERE
        (
            (CAST(:customer_id AS TEXT) IS NOT NULL
                AND customer_id = CAST(:customer_id AS TEXT))
            OR (CAST(:collector_id AS TEXT) IS NOT NULL
                AND collector_id = CAST(:collector_id AS TEXT))
        )
        AND (CAST(:created_from AS TIMESTAMPTZ) IS NULL
             OR created_at >= CAST(:created_from AS TIMESTAMPTZ))
        AND (CAST(:created_to AS TIMESTAMPTZ) IS NULL
             OR created_at < CAST(:created_to AS TIMESTAMPTZ))
    ORDER BY created_at DESC, id DESC
""")


class CollectionRecordRepository:
    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        self._session_factory = session_factory or async_session_factory

    async def list_records(self, record_filter: RecordFilter) -> list[CollectionRecord]:
        async with self._session_factory() as db:
            rows = (
                await db.execute(
                    _LIST_RECORDS_SQL,
                    {
                        "customer_id": record_filter.customer_id,
                        "collector_id": record_filter.collector_id,
                        "created_from": record_filter.created_from,
                        "created_to": record_filter.created_to,
                    },
                )
            ).fetchall()
        return [parse_collection_row(r._mapping) for r in rows]
