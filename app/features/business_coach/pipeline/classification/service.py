"""
Classification service - turns raw gateway rows into per-domain statistics,
staleness lists and health issues.

Pure with respect to its inputs: every decision depends only on the rows and
the ``now`` instant handed in, so repeated runs with a fixed clock agree.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from app.features.business_coach.domain.records import (
    CampaignRow,
    ConnectionRow,
    InsightRow,
    LeadRecord,
    PropertyRow,
    RawRecords,
    TaskRow,
)
from app.features.business_coach.domain.snapshot import (
    PRIORITY_ORDER,
    CampaignIssue,
    CampaignsSection,
    CampaignStats,
    ConnectionIssue,
    ConnectionsSection,
    ConnectionStats,
    LeadActivity,
    LeadsSection,
    LeadStats,
    OverdueTask,
    PropertiesSection,
    PropertyActivity,
    PropertyStats,
    StaleLead,
    StaleProperty,
    TasksSection,
    TaskStats,
    TopPerformer,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def as_utc(value: datetime | date) -> datetime:
    """Treat naive timestamps as UTC and plain dates as UTC midnight."""
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def days_between(now: datetime, then: datetime | date) -> int:
    """Whole-day floor of ``now - then``."""
    return (as_utc(now) - as_utc(then)).days


@dataclass(slots=True)
class ClassifiedData:
    leads: LeadsSection
    campaigns: CampaignsSection
    properties: PropertiesSection
    connections: ConnectionsSection
    tasks: TasksSection


@dataclass(slots=True)
class _CampaignRollup:
    spend: float = 0.0
    clicks: int = 0
    impressions: int = 0
    conversions: int = 0

    def add(self, insight: InsightRow) -> None:
        self.spend += insight.spend or 0.0
        self.clicks += insight.clicks or 0
        self.impressions += insight.impressions or 0
        self.conversions += insight.conversions or 0

    @property
    def ctr(self) -> float:
        return (self.clicks / self.impressions) * 100 if self.impressions > 0 else 0.0

    @property
    def cpc(self) -> float:
        return self.spend / self.clicks if self.clicks > 0 else 0.0


class ClassificationService:
    LEAD_STALE_DAYS = 3
    RECENT_DAYS = 7
    STALE_LEAD_CAP = 10
    RECENT_ACTIVITY_CAP = 5

    LOW_CTR_MIN_IMPRESSIONS = 1000
    LOW_CTR_THRESHOLD = 1.0  # percent
    HIGH_CPC_MIN_CLICKS = 50
    HIGH_CPC_THRESHOLD = 2.0  # dollars
    NO_TRAFFIC_IMPRESSIONS = 100
    OVERSPEND_THRESHOLD = 50.0
    CAMPAIGN_STALE_SYNC_DAYS = 7
    UNKNOWN_SYNC_DAYS = 999
    TOP_PERFORMER_MIN_CTR = 2.0
    CAMPAIGN_ISSUE_CAP = 5
    TOP_PERFORMER_CAP = 3

    PROPERTY_STALE_DAYS = 14
    PROPERTY_MIN_DESCRIPTION = 50
    STALE_PROPERTY_CAP = 10

    OVERDUE_TASK_CAP = 10

    CONTACTED_STATUSES = frozenset({"CONTACTED", "QUALIFIED", "MEETING"})

    def classify(self, raw: RawRecords, now: datetime) -> ClassifiedData:
        now = as_utc(now)
        classified = ClassifiedData(
            leads=self._classify_leads(raw.leads(), now),
            campaigns=self._classify_campaigns(raw.campaigns, raw.insights, now),
            properties=self._classify_properties(raw.properties, now),
            connections=self._classify_connections(raw.connections, now),
            tasks=self._classify_tasks(raw.tasks, now),
        )
        logger.debug(
            "Records classified",
            stale_leads=classified.leads.stats.stale,
            campaign_issues=len(classified.campaigns.issues),
            stale_properties=classified.properties.stats.stale,
            connection_issues=len(classified.connections.issues),
            overdue_tasks=classified.tasks.stats.overdue,
        )
        return classified

    # ------------------------------------------------------------------ leads

    def is_stale_lead(self, lead: LeadRecord, now: datetime) -> bool:
        if lead.last_contact_at is not None:
            return days_between(now, lead.last_contact_at) > self.LEAD_STALE_DAYS
        return days_between(now, lead.created_at) > self.LEAD_STALE_DAYS

    def _classify_leads(self, leads: list[LeadRecord], now: datetime) -> LeadsSection:
        stale: list[StaleLead] = []
        recent: list[LeadActivity] = []

        for lead in leads:
            days_created = days_between(now, lead.created_at)
            days_contact = (
                days_between(now, lead.last_contact_at) if lead.last_contact_at is not None else None
            )

            if self.is_stale_lead(lead, now):
                stale.append(
                    StaleLead(
                        id=lead.id,
                        kind=lead.kind,
                        name=lead.name,
                        status=lead.status,
                        score=lead.score,
                        days_since_created=days_created,
                        days_since_contact=days_contact,
                        source=lead.source,
                        email=lead.email,
                        phone=lead.phone,
                    )
                )

            if days_created <= self.RECENT_DAYS or (
                days_contact is not None and days_contact <= self.RECENT_DAYS
            ):
                recent.append(
                    LeadActivity(
                        id=lead.id,
                        kind=lead.kind,
                        name=lead.name,
                        status=lead.status,
                        score=lead.score,
                        created_at=lead.created_at,
                        last_contact_at=lead.last_contact_at,
                    )
                )

        stale.sort(key=self._stale_lead_key)

        stats = LeadStats(
            total=len(leads),
            new=sum(1 for lead in leads if lead.status == "NEW"),
            contacted=sum(1 for lead in leads if lead.status in self.CONTACTED_STATUSES),
            qualified=sum(1 for lead in leads if lead.status == "QUALIFIED"),
            stale=len(stale),
            hot=sum(1 for lead in leads if lead.score == "HOT"),
            warm=sum(1 for lead in leads if lead.score == "WARM"),
            cold=sum(1 for lead in leads if lead.score == "COLD"),
        )
        return LeadsSection(
            stats=stats,
            stale_list=tuple(stale[: self.STALE_LEAD_CAP]),
            recent_activity=tuple(recent[: self.RECENT_ACTIVITY_CAP]),
        )

    @staticmethod
    def _stale_lead_key(lead: StaleLead) -> tuple[int, int]:
        waiting = (
            lead.days_since_contact if lead.days_since_contact is not None else lead.days_since_created
        )
        return (0 if lead.score == "HOT" else 1, -waiting)

    # -------------------------------------------------------------- campaigns

    def _rollup(self, insights: Iterable[InsightRow], since: datetime) -> dict[str, _CampaignRollup]:
        rollups: dict[str, _CampaignRollup] = {}
        for insight in insights:
            if as_utc(insight.date) < since:
                continue
            rollups.setdefault(insight.campaign_external_id, _CampaignRollup()).add(insight)
        return rollups

    def _classify_campaigns(
        self, campaigns: list[CampaignRow], insights: list[InsightRow], now: datetime
    ) -> CampaignsSection:
        rollups_7d = self._rollup(insights, now - timedelta(days=7))
        rollups_30d = self._rollup(insights, now - timedelta(days=30))

        totals_7d = _CampaignRollup()
        for rollup in rollups_7d.values():
            totals_7d.spend += rollup.spend
            totals_7d.clicks += rollup.clicks
            totals_7d.impressions += rollup.impressions
            totals_7d.conversions += rollup.conversions

        stats = CampaignStats(
            total=len(campaigns),
            active=sum(1 for c in campaigns if c.status == "ACTIVE"),
            paused=sum(1 for c in campaigns if c.status == "PAUSED"),
            total_spend_7d=round(totals_7d.spend, 2),
            total_spend_30d=round(sum(r.spend for r in rollups_30d.values()), 2),
            avg_ctr_7d=round(totals_7d.ctr, 2),
            avg_cpc_7d=round(totals_7d.cpc, 2),
        )

        issues: list[CampaignIssue] = []
        top_performers: list[TopPerformer] = []

        for campaign in campaigns:
            rollup = rollups_7d.get(campaign.external_id, _CampaignRollup())
            issues.extend(self._campaign_issues(campaign, rollup, now))

            if rollup.conversions > 0 and rollup.ctr > self.TOP_PERFORMER_MIN_CTR:
                top_performers.append(
                    TopPerformer(
                        campaign_id=campaign.id,
                        name=campaign.name,
                        provider=campaign.provider,
                        conversions=rollup.conversions,
                        ctr=round(rollup.ctr, 2),
                        spend=round(rollup.spend, 2),
                    )
                )

        issues.sort(key=lambda issue: PRIORITY_ORDER[issue.severity])
        top_performers.sort(key=lambda performer: -performer.conversions)

        return CampaignsSection(
            stats=stats,
            issues=tuple(issues[: self.CAMPAIGN_ISSUE_CAP]),
            top_performers=tuple(top_performers[: self.TOP_PERFORMER_CAP]),
        )

    def _campaign_issues(
        self, campaign: CampaignRow, rollup: _CampaignRollup, now: datetime
    ) -> list[CampaignIssue]:
        found: list[CampaignIssue] = []

        def issue(kind, severity, metric, suggestion, threshold=None) -> CampaignIssue:
            return CampaignIssue(
                campaign_id=campaign.id,
                name=campaign.name,
                provider=campaign.provider,
                status=campaign.status,
                issue_kind=kind,
                severity=severity,
                metric=round(float(metric), 2),
                threshold=threshold,
                suggestion=suggestion,
            )

        if campaign.status == "ACTIVE":
            if rollup.impressions > self.LOW_CTR_MIN_IMPRESSIONS and rollup.ctr < self.LOW_CTR_THRESHOLD:
                found.append(
                    issue(
                        "low_ctr",
                        "medium",
                        rollup.ctr,
                        "Consider updating ad creative or targeting to improve click-through rate",
                        self.LOW_CTR_THRESHOLD,
                    )
                )
            if rollup.clicks > self.HIGH_CPC_MIN_CLICKS and rollup.cpc > self.HIGH_CPC_THRESHOLD:
                found.append(
                    issue(
                        "high_cpc",
                        "medium",
                        rollup.cpc,
                        "Review targeting and bidding strategy to reduce cost per click",
                        self.HIGH_CPC_THRESHOLD,
                    )
                )
            if rollup.impressions < self.NO_TRAFFIC_IMPRESSIONS:
                found.append(
                    issue(
                        "no_traffic",
                        "high",
                        rollup.impressions,
                        "Check campaign setup, targeting, and budget to increase visibility",
                        float(self.NO_TRAFFIC_IMPRESSIONS),
                    )
                )
            if rollup.spend > self.OVERSPEND_THRESHOLD and rollup.conversions == 0:
                found.append(
                    issue(
                        "overspend",
                        "high",
                        rollup.spend,
                        "Consider pausing campaign or optimizing for conversions",
                        self.OVERSPEND_THRESHOLD,
                    )
                )

        days_since_sync = (
            days_between(now, campaign.last_sync_at)
            if campaign.last_sync_at is not None
            else self.UNKNOWN_SYNC_DAYS
        )
        if days_since_sync > self.CAMPAIGN_STALE_SYNC_DAYS:
            found.append(
                issue(
                    "stale",
                    "low",
                    days_since_sync,
                    "Sync campaign data to get latest performance metrics",
                    float(self.CAMPAIGN_STALE_SYNC_DAYS),
                )
            )

        return found

    # ------------------------------------------------------------- properties

    def missing_fields(self, prop: PropertyRow) -> tuple[str, ...]:
        missing: list[str] = []
        if not prop.description or len(prop.description) < self.PROPERTY_MIN_DESCRIPTION:
            missing.append("description")
        if not prop.bedrooms:
            missing.append("bedrooms")
        if not prop.bathrooms:
            missing.append("bathrooms")
        if not prop.area:
            missing.append("area")
        return tuple(missing)

    def _classify_properties(self, properties: list[PropertyRow], now: datetime) -> PropertiesSection:
        stale: list[StaleProperty] = []
        recent: list[PropertyActivity] = []
        missing_info = 0

        for prop in properties:
            days_updated = days_between(now, prop.updated_at)
            days_created = days_between(now, prop.created_at)
            missing = self.missing_fields(prop)

            if missing:
                missing_info += 1

            if prop.status == "ACTIVE" and days_updated > self.PROPERTY_STALE_DAYS:
                stale.append(
                    StaleProperty(
                        id=prop.id,
                        title=prop.title,
                        address=prop.address,
                        status=prop.status,
                        days_since_update=days_updated,
                        missing_fields=missing,
                        slug=prop.slug,
                    )
                )

            if days_updated <= self.RECENT_DAYS or days_created <= self.RECENT_DAYS:
                recent.append(
                    PropertyActivity(
                        id=prop.id, title=prop.title, status=prop.status, updated_at=prop.updated_at
                    )
                )

        stale.sort(key=lambda item: -item.days_since_update)

        stats = PropertyStats(
            total=len(properties),
            active=sum(1 for p in properties if p.status == "ACTIVE"),
            sold=sum(1 for p in properties if p.status == "SOLD"),
            pending=sum(1 for p in properties if p.status == "PENDING"),
            stale=len(stale),
            missing_info=missing_info,
        )
        return PropertiesSection(
            stats=stats,
            stale_list=tuple(stale[: self.STALE_PROPERTY_CAP]),
            recent_activity=tuple(recent[: self.RECENT_ACTIVITY_CAP]),
        )

    # ------------------------------------------------------------ connections

    def _classify_connections(
        self, connections: list[ConnectionRow], now: datetime
    ) -> ConnectionsSection:
        issues: list[ConnectionIssue] = []

        for connection in connections:
            if connection.status not in ("ERROR", "EXPIRED"):
                continue
            issues.append(
                ConnectionIssue(
                    id=connection.id,
                    provider=connection.provider,
                    status=connection.status,
                    error=connection.last_error or f"Connection {connection.status.lower()}",
                    days_since_update=(
                        days_between(now, connection.updated_at) if connection.updated_at else 0
                    ),
                    display_name=connection.display_name,
                )
            )

        stats = ConnectionStats(
            total=len(connections),
            connected=sum(1 for c in connections if c.status == "CONNECTED"),
            error=sum(1 for c in connections if c.status == "ERROR"),
            expired=sum(1 for c in connections if c.status == "EXPIRED"),
        )
        return ConnectionsSection(stats=stats, issues=tuple(issues))

    # ------------------------------------------------------------------ tasks

    def _classify_tasks(self, tasks: list[TaskRow], now: datetime) -> TasksSection:
        overdue: list[OverdueTask] = []
        week_ago = now - timedelta(days=7)

        for task in tasks:
            if task.due_date is None or task.status == "COMPLETED":
                continue
            days_overdue = days_between(now, task.due_date)
            if days_overdue > 0:
                overdue.append(
                    OverdueTask(
                        id=task.id,
                        title=task.title,
                        due_date=task.due_date,
                        days_overdue=days_overdue,
                        priority=task.priority,
                    )
                )

        overdue.sort(key=lambda item: -item.days_overdue)

        stats = TaskStats(
            total=len(tasks),
            pending=sum(1 for t in tasks if t.status != "COMPLETED"),
            overdue=len(overdue),
            completed_7d=sum(
                1 for t in tasks if t.completed_at is not None and as_utc(t.completed_at) >= week_ago
            ),
        )
        return TasksSection(stats=stats, overdue_list=tuple(overdue[: self.OVERDUE_TASK_CAP]))


# Singleton instance for application use
classification_service = ClassificationService()
