"""Verification Registry — TTL-bounded map from phone number to verification outcome.

Invariants:
    - Map key is always normalize_phone(phone): all whitespace stripped
    - At most one record per phone; record() overwrites
    - record() sweeps every entry with now - timestamp > TTL (eviction-on-write)
    - lookup() never evicts: a stale record stays visible until the next write
      anywhere in the registry (accepted staleness window)
    - lookup() returns None for "never recorded", distinct from verified=False

Design Decisions:
    - Timestamps are epoch milliseconds, as sent by the WhatsApp agent webhook
    - Clock injected as a callable so eviction is testable without sleeping
    - Single-process map: multi-worker deployments use the database store
      (infrastructure/verification_store.py)
"""

import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.core.domain_types import VERIFICATION_TTL_MINUTES

_WHITESPACE = re.compile(r"\s+")


def normalize_phone(phone: str) -> str:
    """Strip all whitespace: '+591 777 77777' -> '+59177777777'."""
    return _WHITESPACE.sub("", phone).strip()


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class VerificationRecord:
    """One inbound verification event for a normalized phone."""
    phone: str
    verified: bool
    timestamp: int
    whatsapp_username: str | None = None
    whatsapp_number: str | None = None

    def is_expired(self, now: int, ttl_ms: int) -> bool:
        return now - self.timestamp > ttl_ms


class VerificationRegistry:
    """In-memory verification cache — pure, no IO."""

    def __init__(
        self,
        ttl_minutes: int = VERIFICATION_TTL_MINUTES,
        clock: Callable[[], int] = now_ms,
    ):
        self.ttl_ms = ttl_minutes * 60 * 1000
        self._clock = clock
        self._records: dict[str, VerificationRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def record(
        self,
        phone: str,
        verified: bool,
        timestamp: int | None = None,
        whatsapp_username: str | None = None,
        whatsapp_number: str | None = None,
    ) -> VerificationRecord:
        """Store (or overwrite) the outcome for phone, then sweep expired entries."""
        key = normalize_phone(phone)
        entry = VerificationRecord(
            phone=key,
            verified=verified,
            timestamp=timestamp if timestamp else self._clock(),
            whatsapp_username=whatsapp_username or None,
            whatsapp_number=whatsapp_number or None,
        )
        self._records[key] = entry
        self.sweep()
        return entry

    def lookup(self, phone: str) -> VerificationRecord | None:
        return self._records.get(normalize_phone(phone))

    def sweep(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        now = self._clock()
        expired = [
            key for key, entry in self._records.items()
            if entry.is_expired(now, self.ttl_ms)
        ]
        for key in expired:
            del self._records[key]
        return len(expired)
