"""
Snapshot cache - TTL store of assembled snapshots.

Keys follow ``"{account_id}:{org_scope|default}:{window_days}"`` so that an
account's entries can be dropped together by prefix. Each key has its own
asyncio lock; there is no global lock and no request coalescing, so two
concurrent misses may both build and the last write wins.

Invalidation bumps a per-account generation. A build that captured an
older generation before its reads is not stored, so a snapshot read
before a mutation can never outlive the invalidation that followed it.
Expired entries and idle locks are swept on every write.
"""

import asyncio
import hashlib
import json
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.features.business_coach.domain.snapshot import Snapshot
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class CacheEntry:
    key: str
    snapshot: Snapshot
    written_at: float
    etag: str


def build_cache_key(account_id: str, org_scope: str | None, window_days: int) -> str:
    return f"{account_id}:{org_scope or 'default'}:{window_days}"


def compute_etag(snapshot: Snapshot) -> str:
    payload = json.dumps(
        {
            "leads": snapshot.leads.stats.total,
            "campaigns": snapshot.campaigns.stats.total,
            "properties": snapshot.properties.stats.total,
            "tasks": snapshot.tasks.stats.total,
            "generated_at": snapshot.meta.generated_at.isoformat(),
        },
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


class SnapshotCache:
    def __init__(self, ttl_seconds: float = 600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._generations: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _lock_for(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.written_at < self.ttl_seconds

    def generation(self, account_id: str) -> int:
        """Bumped by every invalidation of the account; builds capture it up front."""
        return self._generations.get(account_id, 0)

    def _sweep(self) -> int:
        """Drop expired entries and any idle lock whose key has no entry."""
        expired = [key for key, entry in self._entries.items() if not self._is_fresh(entry)]
        for key in expired:
            if not self._lock_for(key).locked():
                del self._entries[key]
        for key in [k for k, lock in self._locks.items() if k not in self._entries and not lock.locked()]:
            del self._locks[key]
        return len(expired)

    async def get(self, key: str) -> CacheEntry | None:
        """Return a fresh entry, dropping it if the TTL has passed."""
        async with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is not None and not self._is_fresh(entry):
                del self._entries[key]
                logger.debug("Snapshot cache entry expired", cache_key=key)
                entry = None
        if entry is None:
            self._sweep()
        return entry

    async def set(self, key: str, snapshot: Snapshot, generation: int | None = None) -> CacheEntry:
        """
        Store `snapshot` under `key`.

        When `generation` is given and the account has been invalidated since
        it was captured, the entry is returned but not stored.
        """
        account_id = key.split(":", 1)[0]
        entry = CacheEntry(
            key=key,
            snapshot=snapshot,
            written_at=self._clock(),
            etag=compute_etag(snapshot),
        )
        async with self._lock_for(key):
            if generation is not None and generation < self.generation(account_id):
                logger.info("Discarding snapshot built before invalidation", cache_key=key)
                return entry
            self._entries[key] = entry
        self._sweep()
        return entry

    async def invalidate(self, account_id: str) -> int:
        """Drop every window and scope variant cached for the account."""
        self._generations[account_id] = self.generation(account_id) + 1
        prefix = f"{account_id}:"
        removed = 0
        for key in [k for k in self._entries if k.startswith(prefix)]:
            async with self._lock_for(key):
                if self._entries.pop(key, None) is not None:
                    removed += 1
        self._sweep()

        logger.debug("Snapshot cache invalidated", account_id=account_id, removed=removed)
        return removed
