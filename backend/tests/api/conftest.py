"""API test fixtures — FastAPI test client over a fresh in-memory verification store.

Invariants:
    - Every test gets a fresh memory-backed store (no state leaks between tests)
    - The lifespan is not run by ASGITransport; the store is initialized here
"""

import pytest
from httpx import ASGITransport, AsyncClient

from app.infrastructure.verification_store import (
    close_verification_store,
    init_verification_store,
)
from app.main import app


@pytest.fixture
async def store():
    store = await init_verification_store("memory", ttl_minutes=30)
    yield store
    await close_verification_store()


@pytest.fixture
async def client(store):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c
