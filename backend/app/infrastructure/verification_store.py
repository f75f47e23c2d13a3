"""Verification Store — async boundary over the verification registry, two backends.

Invariants:
    - Both backends honor the registry contract: normalized key, overwrite on
      record(), sweep-on-write only, lookup() never evicts and returns None
      for unknown phones
    - memory: wraps the process-local VerificationRegistry (single worker)
    - database: one row per normalized phone; correct across workers
      (single-statement upsert, so concurrent first writes never collide)

Design Decisions:
    - The webhook POST and the polling GET are independent handlers; both
      resolve the same store through get_verification_store()
"""

import logging
from collections.abc import Callable

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite

from app.core.verification_registry import (
    VerificationRecord,
    VerificationRegistry,
    normalize_phone,
    now_ms,
)
from app.infrastructure.database import DatabaseSessionManager
from app.models.verification_record import VerificationRecordRow

logger = logging.getLogger(__name__)


class InMemoryVerificationStore:
    """Process-local store backed by VerificationRegistry."""

    def __init__(self, registry: VerificationRegistry):
        self.registry = registry

    async def record(
        self,
        phone: str,
        verified: bool,
        timestamp: int | None = None,
        whatsapp_username: str | None = None,
        whatsapp_number: str | None = None,
    ) -> VerificationRecord:
        return self.registry.record(
            phone, verified, timestamp,
            whatsapp_username=whatsapp_username,
            whatsapp_number=whatsapp_number,
        )

    async def lookup(self, phone: str) -> VerificationRecord | None:
        return self.registry.lookup(phone)


class SqlVerificationStore:
    """Shared store on the verification_records table."""

    def __init__(
        self,
        db: DatabaseSessionManager,
        ttl_minutes: int = 30,
        clock: Callable[[], int] = now_ms,
    ):
        self.db = db
        self.ttl_ms = ttl_minutes * 60 * 1000
        self._clock = clock

    async def record(
        self,
        phone: str,
        verified: bool,
        timestamp: int | None = None,
        whatsapp_username: str | None = None,
        whatsapp_number: str | None = None,
    ) -> VerificationRecord:
        key = normalize_phone(phone)
        now = self._clock()
        entry = VerificationRecord(
            phone=key,
            verified=verified,
            timestamp=timestamp if timestamp else now,
            whatsapp_username=whatsapp_username or None,
            whatsapp_number=whatsapp_number or None,
        )
        async with self.db.session() as session:
            await session.execute(self._upsert(entry))
            result = await session.execute(
                delete(VerificationRecordRow).where(
                    VerificationRecordRow.timestamp < now - self.ttl_ms,
                ),
            )
            await session.commit()
        if result.rowcount:
            logger.info(f"Swept {result.rowcount} expired verification record(s)")
        return entry

    def _upsert(self, entry: VerificationRecord):
        """INSERT .. ON CONFLICT (phone) DO UPDATE for the engine's dialect."""
        dialect = self.db.engine.dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise ValueError(f"Unsupported database dialect for upsert: {dialect}")
        values = {
            "verified": entry.verified,
            "timestamp": entry.timestamp,
            "whatsapp_username": entry.whatsapp_username,
            "whatsapp_number": entry.whatsapp_number,
        }
        stmt = insert(VerificationRecordRow).values(phone=entry.phone, **values)
        return stmt.on_conflict_do_update(index_elements=["phone"], set_=values)

    async def lookup(self, phone: str) -> VerificationRecord | None:
        async with self.db.session() as session:
            row = (await session.execute(
                select(VerificationRecordRow).where(
                    VerificationRecordRow.phone == normalize_phone(phone),
                ),
            )).scalar_one_or_none()
        if row is None:
            return None
        return VerificationRecord(
            phone=row.phone,
            verified=row.verified,
            timestamp=row.timestamp,
            whatsapp_username=row.whatsapp_username,
            whatsapp_number=row.whatsapp_number,
        )


VerificationStore = InMemoryVerificationStore | SqlVerificationStore

# Singleton (initialized on startup)
verification_store: VerificationStore | None = None
db_manager: DatabaseSessionManager | None = None


async def init_verification_store(
    backend: str,
    ttl_minutes: int = 30,
    database_url: str = "",
    **db_kwargs,
) -> VerificationStore:
    """Build the process-wide store. "database" also creates missing tables."""
    global verification_store, db_manager
    if backend == "database":
        db_manager = DatabaseSessionManager(database_url, **db_kwargs)
        await db_manager.create_all()
        verification_store = SqlVerificationStore(db_manager, ttl_minutes)
    else:
        verification_store = InMemoryVerificationStore(
            VerificationRegistry(ttl_minutes=ttl_minutes),
        )
    logger.info(f"Verification store initialized ({backend})")
    return verification_store


async def close_verification_store() -> None:
    global verification_store, db_manager
    if db_manager is not None:
        await db_manager.dispose()
    db_manager = None
    verification_store = None


def get_verification_store() -> VerificationStore:
    """FastAPI dependency for the verification store."""
    if verification_store is None:
        raise RuntimeError("Verification store not initialized")
    return verification_store
