"""Infrastructure fixtures — in-memory SQLite engine for the database store.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - StaticPool: all sessions share the single in-memory connection
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.infrastructure.database import DatabaseSessionManager


@pytest.fixture
async def db_manager():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:", engine=engine)
    await manager.create_all()
    yield manager
    await manager.dispose()
