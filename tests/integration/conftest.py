"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the entire test session. Tests are skipped when
PostgreSQL (migrated) or Redis is not reachable.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from src.main import app
from src.wm_common.database import engine
from src.wm_common.redis_client import get_redis


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client — keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def db_ready() -> None:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1 FROM unified_collections LIMIT 1"))
    except Exception as exc:  # noqa: BLE001
        pytest.skip(f"migrated PostgreSQL not available: {exc}")


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def redis_ready() -> None:
    try:
        await (await get_redis()).ping()
    except Exception as exc:  # noqa: BLE001
        pytest.skip(f"Redis not available: {exc}")
