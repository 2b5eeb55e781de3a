"""
Snapshot domain models.

A Snapshot is built once per (account, org scope, window) and never edited
afterwards; every model here is frozen and list fields are tuples.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Priority = Literal["high", "medium", "low"]
IssueKind = Literal["low_ctr", "high_cpc", "no_traffic", "overspend", "stale"]
RecommendationType = Literal[
    "follow_up_lead", "pause_campaign", "update_property", "fix_connection", "create_task"
]

PRIORITY_ORDER: dict[str, int] = {"high": 0, "medium": 1, "low": 2}


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class SnapshotMeta(FrozenModel):
    account_id: str
    org_scope: str | None = None
    window_days: int
    generated_at: datetime
    language: Literal["en", "he"] = "en"
    timezone: str | None = None


# --- leads ---------------------------------------------------------------


class LeadStats(FrozenModel):
    total: int = 0
    new: int = 0
    contacted: int = 0
    qualified: int = 0
    stale: int = 0
    hot: int = 0
    warm: int = 0
    cold: int = 0


class StaleLead(FrozenModel):
    id: str
    kind: Literal["ecommerce", "real_estate"]
    name: str | None
    status: str
    score: Literal["HOT", "WARM", "COLD"]
    days_since_created: int
    days_since_contact: int | None
    source: str
    email: str | None = None
    phone: str | None = None


class LeadActivity(FrozenModel):
    id: str
    kind: Literal["ecommerce", "real_estate"]
    name: str | None
    status: str
    score: Literal["HOT", "WARM", "COLD"]
    created_at: datetime
    last_contact_at: datetime | None


class LeadsSection(FrozenModel):
    stats: LeadStats = Field(default_factory=LeadStats)
    stale_list: tuple[StaleLead, ...] = ()
    recent_activity: tuple[LeadActivity, ...] = ()


# --- campaigns -----------------------------------------------------------


class CampaignStats(FrozenModel):
    total: int = 0
    active: int = 0
    paused: int = 0
    total_spend_7d: float = 0.0
    total_spend_30d: float = 0.0
    avg_ctr_7d: float = 0.0
    avg_cpc_7d: float = 0.0


class CampaignIssue(FrozenModel):
    campaign_id: str
    name: str
    provider: str
    status: str
    issue_kind: IssueKind
    severity: Priority
    metric: float
    threshold: float | None = None
    suggestion: str


class TopPerformer(FrozenModel):
    campaign_id: str
    name: str
    provider: str
    conversions: int
    ctr: float
    spend: float


class CampaignsSection(FrozenModel):
    stats: CampaignStats = Field(default_factory=CampaignStats)
    issues: tuple[CampaignIssue, ...] = ()
    top_performers: tuple[TopPerformer, ...] = ()


# --- properties ----------------------------------------------------------


class PropertyStats(FrozenModel):
    total: int = 0
    active: int = 0
    sold: int = 0
    pending: int = 0
    stale: int = 0
    missing_info: int = 0


class StaleProperty(FrozenModel):
    id: str
    title: str | None
    address: str | None
    status: str
    days_since_update: int
    missing_fields: tuple[str, ...] = ()
    slug: str | None = None


class PropertyActivity(FrozenModel):
    id: str
    title: str | None
    status: str
    updated_at: datetime


class PropertiesSection(FrozenModel):
    stats: PropertyStats = Field(default_factory=PropertyStats)
    stale_list: tuple[StaleProperty, ...] = ()
    recent_activity: tuple[PropertyActivity, ...] = ()


# --- connections ---------------------------------------------------------


class ConnectionStats(FrozenModel):
    total: int = 0
    connected: int = 0
    error: int = 0
    expired: int = 0


class ConnectionIssue(FrozenModel):
    id: str
    provider: str
    status: Literal["ERROR", "EXPIRED"]
    error: str
    days_since_update: int
    display_name: str | None = None


class ConnectionsSection(FrozenModel):
    stats: ConnectionStats = Field(default_factory=ConnectionStats)
    issues: tuple[ConnectionIssue, ...] = ()


# --- tasks ---------------------------------------------------------------


class TaskStats(FrozenModel):
    total: int = 0
    pending: int = 0
    overdue: int = 0
    completed_7d: int = 0


class OverdueTask(FrozenModel):
    id: str
    title: str
    due_date: datetime
    days_overdue: int
    priority: str | None = None


class TasksSection(FrozenModel):
    stats: TaskStats = Field(default_factory=TaskStats)
    overdue_list: tuple[OverdueTask, ...] = ()


# --- recommendations -----------------------------------------------------


class RecommendationAction(FrozenModel):
    tool_name: str
    params: dict[str, Any] = Field(default_factory=dict)


class EntityRef(FrozenModel):
    entity_type: Literal["lead", "campaign", "property", "connection", "task"]
    entity_id: str


class Recommendation(FrozenModel):
    id: str
    type: RecommendationType
    priority: Priority
    title: str
    description: str
    action: RecommendationAction
    entity_ref: EntityRef | None = None


class Snapshot(FrozenModel):
    meta: SnapshotMeta
    leads: LeadsSection = Field(default_factory=LeadsSection)
    campaigns: CampaignsSection = Field(default_factory=CampaignsSection)
    properties: PropertiesSection = Field(default_factory=PropertiesSection)
    connections: ConnectionsSection = Field(default_factory=ConnectionsSection)
    tasks: TasksSection = Field(default_factory=TasksSection)
    recommendations: tuple[Recommendation, ...] = ()

    def urgent_issue_count(self) -> int:
        high_campaign_issues = sum(1 for issue in self.campaigns.issues if issue.severity == "high")
        return high_campaign_issues + len(self.connections.issues)
