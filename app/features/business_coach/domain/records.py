"""
Raw record shapes returned by the record gateway.

These lightweight dataclasses mirror the rows the gateway reads. Leads come
from two divergent sources and are folded into one canonical ``LeadRecord``
through ``normalize_lead``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

LeadKind = Literal["ecommerce", "real_estate"]
LeadScore = Literal["HOT", "WARM", "COLD"]

ECOMMERCE_LEAD_STATUSES = frozenset({"NEW", "CONTACTED", "QUALIFIED", "CONVERTED", "CLOSED"})
REAL_ESTATE_LEAD_STATUSES = frozenset(
    {"NEW", "CONTACTED", "IN_PROGRESS", "MEETING", "OFFER", "DEAL", "CONVERTED", "DISQUALIFIED"}
)

NOTES_PREVIEW_LENGTH = 100


@dataclass(slots=True)
class EcommerceLeadRow:
    id: str
    source: str
    status: str
    created_at: datetime
    updated_at: datetime
    full_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    score: str | None = None
    budget: float | None = None
    notes: str | None = None
    last_contact_at: datetime | None = None


@dataclass(slots=True)
class RealEstateLeadRow:
    id: str
    source: str
    status: str
    created_at: datetime
    updated_at: datetime
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    score: str | None = None
    budget: float | None = None
    notes: str | None = None
    last_contact_at: datetime | None = None


LeadSource = EcommerceLeadRow | RealEstateLeadRow


@dataclass(slots=True)
class CampaignRow:
    id: str
    external_id: str
    name: str
    provider: str
    status: str
    created_at: datetime
    updated_at: datetime
    last_sync_at: datetime | None = None


@dataclass(slots=True)
class InsightRow:
    """Daily performance figures for one campaign, keyed by its external id."""

    id: str
    date: date | datetime
    campaign_external_id: str
    provider: str
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0


@dataclass(slots=True)
class PropertyRow:
    id: str
    status: str
    created_at: datetime
    updated_at: datetime
    title: str | None = None
    address: str | None = None
    price: float | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    area: float | None = None
    description: str | None = None
    slug: str | None = None


@dataclass(slots=True)
class ConnectionRow:
    id: str
    provider: str
    status: str
    created_at: datetime
    display_name: str | None = None
    last_error: str | None = None
    last_sync_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class TaskRow:
    id: str
    title: str
    status: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    priority: str | None = None
    due_date: datetime | None = None
    completed_at: datetime | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AccountProfile:
    account_id: str
    preferred_language: str = "en"
    timezone: str | None = None

    @property
    def language(self) -> str:
        return "he" if self.preferred_language == "he" else "en"


@dataclass(slots=True)
class RawRecords:
    """Everything one aggregation pass reads from the gateway."""

    ecommerce_leads: list[EcommerceLeadRow] = field(default_factory=list)
    real_estate_leads: list[RealEstateLeadRow] = field(default_factory=list)
    campaigns: list[CampaignRow] = field(default_factory=list)
    insights: list[InsightRow] = field(default_factory=list)
    properties: list[PropertyRow] = field(default_factory=list)
    connections: list[ConnectionRow] = field(default_factory=list)
    tasks: list[TaskRow] = field(default_factory=list)

    def leads(self) -> list["LeadRecord"]:
        return [normalize_lead(row) for row in [*self.ecommerce_leads, *self.real_estate_leads]]


@dataclass(frozen=True, slots=True)
class LeadRecord:
    """Canonical lead shape shared by both lead sources."""

    id: str
    kind: LeadKind
    name: str | None
    email: str | None
    phone: str | None
    source: str
    status: str
    score: LeadScore
    created_at: datetime
    last_contact_at: datetime | None
    budget: float | None = None
    notes: str | None = None


def _compose_name(row: LeadSource) -> str | None:
    if row.full_name and row.full_name.strip():
        return row.full_name.strip()
    if isinstance(row, EcommerceLeadRow):
        composed = f"{row.first_name or ''} {row.last_name or ''}".strip()
        if composed:
            return composed
    return None


def _normalize_score(score: str | None) -> LeadScore:
    value = (score or "").strip().upper()
    if value in ("HOT", "WARM"):
        return value
    return "COLD"


def _preview_notes(notes: str | None) -> str | None:
    if not notes:
        return None
    if len(notes) > NOTES_PREVIEW_LENGTH:
        return notes[:NOTES_PREVIEW_LENGTH] + "..."
    return notes


def normalize_lead(row: LeadSource) -> LeadRecord:
    """Map either lead source onto the canonical LeadRecord."""
    kind: LeadKind = "ecommerce" if isinstance(row, EcommerceLeadRow) else "real_estate"
    return LeadRecord(
        id=row.id,
        kind=kind,
        name=_compose_name(row),
        email=row.email,
        phone=row.phone,
        source=row.source,
        status=(row.status or "NEW").upper(),
        score=_normalize_score(row.score),
        created_at=row.created_at,
        last_contact_at=row.last_contact_at,
        budget=row.budget,
        notes=_preview_notes(row.notes),
    )


def allowed_lead_statuses(kind: LeadKind) -> frozenset[str]:
    return ECOMMERCE_LEAD_STATUSES if kind == "ecommerce" else REAL_ESTATE_LEAD_STATUSES
