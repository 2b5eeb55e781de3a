"""
Snapshot aggregation service.

Fetches every record domain for an account concurrently, classifies and
ranks the result, and writes the assembled Snapshot through the cache.
A failure of any single fetch fails the whole aggregation and nothing is
cached. Retries belong to the record gateway, not here.
"""

import asyncio
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.features.business_coach.domain.errors import UpstreamFetchFailedError
from app.features.business_coach.domain.records import AccountProfile, RawRecords
from app.features.business_coach.domain.snapshot import Snapshot, SnapshotMeta
from app.features.business_coach.pipeline.classification import (
    ClassificationService,
    classification_service,
)
from app.features.business_coach.pipeline.ranking import RankingService, ranking_service
from app.features.business_coach.repository.record_gateway import RecordGateway
from app.features.business_coach.services.snapshot_cache import SnapshotCache, build_cache_key
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class SnapshotResult:
    snapshot: Snapshot
    etag: str
    cached: bool


class SnapshotService:
    def __init__(
        self,
        gateway: RecordGateway,
        cache: SnapshotCache,
        *,
        classifier: ClassificationService = classification_service,
        ranker: RankingService = ranking_service,
        default_window_days: int = 30,
        default_deadline_seconds: float | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.gateway = gateway
        self.cache = cache
        self.classifier = classifier
        self.ranker = ranker
        self.default_window_days = default_window_days
        self.default_deadline_seconds = default_deadline_seconds
        self._clock = clock

    async def get_snapshot(
        self,
        account_id: str,
        org_scope: str | None = None,
        window_days: int | None = None,
        force_refresh: bool = False,
        deadline_seconds: float | None = None,
    ) -> Snapshot:
        result = await self.get_snapshot_entry(
            account_id,
            org_scope=org_scope,
            window_days=window_days,
            force_refresh=force_refresh,
            deadline_seconds=deadline_seconds,
        )
        return result.snapshot

    async def get_snapshot_entry(
        self,
        account_id: str,
        org_scope: str | None = None,
        window_days: int | None = None,
        force_refresh: bool = False,
        deadline_seconds: float | None = None,
    ) -> SnapshotResult:
        """
        Return the account's snapshot along with its ETag.

        Raises:
            UpstreamFetchFailedError: a domain read failed or the deadline passed
        """
        window_days = window_days or self.default_window_days
        cache_key = build_cache_key(account_id, org_scope, window_days)

        if not force_refresh:
            entry = await self.cache.get(cache_key)
            if entry is not None:
                logger.debug("Snapshot cache hit", account_id=account_id, cache_key=cache_key)
                return SnapshotResult(snapshot=entry.snapshot, etag=entry.etag, cached=True)

        generation = self.cache.generation(account_id)
        start_time = time.time()
        profile, raw = await self._fetch_all(
            account_id,
            org_scope,
            window_days,
            deadline_seconds if deadline_seconds is not None else self.default_deadline_seconds,
        )

        now = self._clock()
        classified = self.classifier.classify(raw, now)
        recommendations = self.ranker.rank(classified, now)

        snapshot = Snapshot(
            meta=SnapshotMeta(
                account_id=account_id,
                org_scope=org_scope,
                window_days=window_days,
                generated_at=now,
                language=profile.language,
                timezone=profile.timezone,
            ),
            leads=classified.leads,
            campaigns=classified.campaigns,
            properties=classified.properties,
            connections=classified.connections,
            tasks=classified.tasks,
            recommendations=recommendations,
        )

        entry = await self.cache.set(cache_key, snapshot, generation=generation)
        logger.info(
            "Snapshot generated",
            account_id=account_id,
            cache_key=cache_key,
            recommendations=len(recommendations),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return SnapshotResult(snapshot=snapshot, etag=entry.etag, cached=False)

    async def _fetch_all(
        self,
        account_id: str,
        org_scope: str | None,
        window_days: int,
        deadline_seconds: float | None,
    ) -> tuple[AccountProfile, RawRecords]:
        gateway = self.gateway
        fetches: dict[str, Coroutine[Any, Any, Any]] = {
            "profile": gateway.get_account_profile(account_id),
            "ecommerce_leads": gateway.list_ecommerce_leads(account_id, window_days, org_scope=org_scope),
            "real_estate_leads": gateway.list_real_estate_leads(
                account_id, window_days, org_scope=org_scope
            ),
            "campaigns": gateway.list_campaigns(account_id, org_scope=org_scope),
            "insights": gateway.list_insights(account_id, window_days, org_scope=org_scope),
            "properties": gateway.list_properties(account_id, org_scope=org_scope),
            "connections": gateway.list_connections(account_id, org_scope=org_scope),
            "tasks": gateway.list_tasks(account_id, org_scope=org_scope),
        }
        tasks = {
            domain: asyncio.create_task(coro, name=f"snapshot-fetch-{domain}")
            for domain, coro in fetches.items()
        }

        try:
            done, pending = await asyncio.wait(
                tasks.values(), timeout=deadline_seconds, return_when=asyncio.FIRST_EXCEPTION
            )
        finally:
            outstanding = [task for task in tasks.values() if not task.done()]
            for task in outstanding:
                task.cancel()
            if outstanding:
                await asyncio.gather(*outstanding, return_exceptions=True)

        failures = [
            (domain, task.exception())
            for domain, task in tasks.items()
            if task in done and task.exception() is not None
        ]
        if failures:
            domain, error = failures[0]
            logger.error(
                "Snapshot fetch failed",
                account_id=account_id,
                domain=domain,
                error=str(error),
                error_type=type(error).__name__,
            )
            raise UpstreamFetchFailedError(domain, f"Failed to fetch {domain}: {error}") from error

        if pending:
            slow = [domain for domain, task in tasks.items() if task in pending]
            logger.error(
                "Snapshot fetch deadline exceeded",
                account_id=account_id,
                deadline_seconds=deadline_seconds,
                pending=slow,
            )
            raise UpstreamFetchFailedError(
                slow[0], f"Deadline of {deadline_seconds}s exceeded waiting for {', '.join(slow)}"
            )

        results = {domain: task.result() for domain, task in tasks.items()}
        raw = RawRecords(
            ecommerce_leads=results["ecommerce_leads"],
            real_estate_leads=results["real_estate_leads"],
            campaigns=results["campaigns"],
            insights=results["insights"],
            properties=results["properties"],
            connections=results["connections"],
            tasks=results["tasks"],
        )
        return results["profile"], raw

    async def invalidate(self, account_id: str) -> int:
        return await self.cache.invalidate(account_id)

    async def get_stale_summary(self, account_id: str, org_scope: str | None = None) -> dict[str, int]:
        """Counts of items needing attention, for badges and the status panel."""
        snapshot = await self.get_snapshot(account_id, org_scope=org_scope)
        return {
            "stale_leads": snapshot.leads.stats.stale,
            "issues_count": len(snapshot.campaigns.issues) + len(snapshot.connections.issues),
            "stale_properties": snapshot.properties.stats.stale,
            "overdue_tasks": snapshot.tasks.stats.overdue,
        }
