"""
Record gateway - account-scoped access to the business records.

``RecordGateway`` is the data-access contract the snapshot aggregator and
the tool dispatcher depend on. ``PostgresRecordGateway`` implements it over
the shared psycopg pool. Reads retry transient failures; writes check
ownership before mutating and raise ``NotFoundOrNotOwnedError`` otherwise.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal, Protocol

from app.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from app.db.pool import get_db_transaction
from app.features.business_coach.domain.errors import NotFoundOrNotOwnedError
from app.features.business_coach.domain.records import (
    AccountProfile,
    CampaignRow,
    ConnectionRow,
    EcommerceLeadRow,
    InsightRow,
    LeadKind,
    PropertyRow,
    RealEstateLeadRow,
    TaskRow,
    allowed_lead_statuses,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

EntityType = Literal["lead", "campaign", "property", "task", "connection"]


@dataclass(slots=True)
class TaskCreated:
    task_id: str
    title: str
    priority: str
    status: str
    due_date: datetime | None


@dataclass(slots=True)
class LeadUpdated:
    lead_id: str
    kind: LeadKind
    status: str
    status_applied: bool
    last_contact_at: datetime


@dataclass(slots=True)
class CampaignStatusChanged:
    campaign_id: str
    name: str
    status: str
    previous_status: str


@dataclass(slots=True)
class MessageQueued:
    message_id: str
    recipient_name: str | None
    recipient_email: str | None
    channel: str


@dataclass(slots=True)
class EntityLocation:
    entity_type: EntityType
    entity_id: str
    name: str | None = None
    lead_kind: LeadKind | None = None
    slug: str | None = None


class RecordGateway(Protocol):
    """Data-access contract. Every call is scoped to one account."""

    async def get_account_profile(self, account_id: str) -> AccountProfile: ...

    async def list_ecommerce_leads(
        self, account_id: str, window_days: int, *, org_scope: str | None = None
    ) -> list[EcommerceLeadRow]: ...

    async def list_real_estate_leads(
        self, account_id: str, window_days: int, *, org_scope: str | None = None
    ) -> list[RealEstateLeadRow]: ...

    async def list_campaigns(
        self, account_id: str, *, org_scope: str | None = None
    ) -> list[CampaignRow]: ...

    async def list_insights(
        self, account_id: str, window_days: int, *, org_scope: str | None = None
    ) -> list[InsightRow]: ...

    async def list_properties(
        self, account_id: str, *, org_scope: str | None = None
    ) -> list[PropertyRow]: ...

    async def list_connections(
        self, account_id: str, *, org_scope: str | None = None
    ) -> list[ConnectionRow]: ...

    async def list_tasks(self, account_id: str, *, org_scope: str | None = None) -> list[TaskRow]: ...

    async def create_task(
        self,
        account_id: str,
        *,
        title: str,
        description: str | None,
        priority: str,
        due_date: datetime | None,
        tags: list[str],
        org_scope: str | None = None,
    ) -> TaskCreated: ...

    async def update_lead_status(
        self,
        account_id: str,
        lead_id: str,
        *,
        status: str | None,
        note: str | None,
        next_followup_date: datetime | None,
        org_scope: str | None = None,
    ) -> LeadUpdated: ...

    async def set_campaign_status(
        self,
        account_id: str,
        campaign_id: str,
        status: Literal["ACTIVE", "PAUSED"],
        *,
        reason: str | None = None,
        org_scope: str | None = None,
    ) -> CampaignStatusChanged: ...

    async def queue_message(
        self,
        account_id: str,
        recipient_id: str,
        *,
        message: str,
        channel: str,
        org_scope: str | None = None,
    ) -> MessageQueued: ...

    async def find_entity_for_deep_link(
        self,
        account_id: str,
        entity_type: EntityType,
        entity_id: str,
        *,
        org_scope: str | None = None,
    ) -> EntityLocation: ...


# Rows are filtered by owner and, when given, by organization.
_ORG_FILTER = "(%s::text IS NULL OR organization_id = %s)"


def _scope(account_id: str, org_scope: str | None) -> tuple[Any, ...]:
    return (account_id, org_scope, org_scope)


def _since(window_days: int) -> datetime:
    return datetime.now(UTC) - timedelta(days=window_days)


class PostgresRecordGateway:
    """RecordGateway backed by the application's Postgres database."""

    # ------------------------------------------------------------------ reads

    @with_db_retry()
    async def get_account_profile(self, account_id: str) -> AccountProfile:
        row = await fetch_one(
            "SELECT preferred_language, timezone FROM users WHERE id = %s", (account_id,)
        )
        if not row:
            return AccountProfile(account_id=account_id)
        return AccountProfile(
            account_id=account_id,
            preferred_language=row.get("preferred_language") or "en",
            timezone=row.get("timezone"),
        )

    @with_db_retry()
    async def list_ecommerce_leads(
        self, account_id: str, window_days: int, *, org_scope: str | None = None
    ) -> list[EcommerceLeadRow]:
        rows = await fetch_all(
            f"""
            SELECT id::text, full_name, first_name, last_name, email, phone, source, status,
                   score, budget, notes, last_contact_at, created_at, updated_at
            FROM ecommerce_leads
            WHERE owner_id = %s AND {_ORG_FILTER}
            ORDER BY created_at DESC
            """,
            _scope(account_id, org_scope),
        )
        return [EcommerceLeadRow(**row) for row in rows]

    @with_db_retry()
    async def list_real_estate_leads(
        self, account_id: str, window_days: int, *, org_scope: str | None = None
    ) -> list[RealEstateLeadRow]:
        rows = await fetch_all(
            f"""
            SELECT id::text, full_name, email, phone, source, status, score, budget, notes,
                   last_contact_at, created_at, updated_at
            FROM real_estate_leads
            WHERE owner_id = %s AND {_ORG_FILTER}
            ORDER BY created_at DESC
            """,
            _scope(account_id, org_scope),
        )
        return [RealEstateLeadRow(**row) for row in rows]

    @with_db_retry()
    async def list_campaigns(
        self, account_id: str, *, org_scope: str | None = None
    ) -> list[CampaignRow]:
        rows = await fetch_all(
            """
            SELECT c.id::text, c.external_id, c.name, conn.provider, c.status,
                   c.last_sync_at, c.created_at, c.updated_at
            FROM external_campaigns c
            JOIN connections conn ON conn.id = c.connection_id
            WHERE c.owner_id = %s AND (%s::text IS NULL OR c.organization_id = %s)
            """,
            _scope(account_id, org_scope),
        )
        return [CampaignRow(**row) for row in rows]

    @with_db_retry()
    async def list_insights(
        self, account_id: str, window_days: int, *, org_scope: str | None = None
    ) -> list[InsightRow]:
        rows = await fetch_all(
            f"""
            SELECT id::text, date, campaign_external_id, provider,
                   COALESCE(spend, 0)::float AS spend, COALESCE(impressions, 0) AS impressions,
                   COALESCE(clicks, 0) AS clicks, COALESCE(conversions, 0) AS conversions
            FROM campaign_insights
            WHERE owner_id = %s AND {_ORG_FILTER} AND date >= %s
            ORDER BY date DESC
            """,
            (*_scope(account_id, org_scope), _since(window_days)),
        )
        return [InsightRow(**row) for row in rows]

    @with_db_retry()
    async def list_properties(
        self, account_id: str, *, org_scope: str | None = None
    ) -> list[PropertyRow]:
        rows = await fetch_all(
            f"""
            SELECT id::text, title, address, price, status, bedrooms, bathrooms, area,
                   description, slug, created_at, updated_at
            FROM properties
            WHERE owner_id = %s AND {_ORG_FILTER}
            """,
            _scope(account_id, org_scope),
        )
        return [PropertyRow(**row) for row in rows]

    @with_db_retry()
    async def list_connections(
        self, account_id: str, *, org_scope: str | None = None
    ) -> list[ConnectionRow]:
        # Connections belong to the account, not to an organization.
        rows = await fetch_all(
            """
            SELECT id::text, provider, status, display_name, last_error, last_sync_at,
                   created_at, updated_at
            FROM connections
            WHERE owner_id = %s
            """,
            (account_id,),
        )
        return [ConnectionRow(**row) for row in rows]

    @with_db_retry()
    async def list_tasks(self, account_id: str, *, org_scope: str | None = None) -> list[TaskRow]:
        rows = await fetch_all(
            f"""
            SELECT id::text, title, description, status, priority, due_date, completed_at,
                   created_at, updated_at, COALESCE(tags, ARRAY[]::text[]) AS tags
            FROM tasks
            WHERE owner_id = %s AND {_ORG_FILTER}
            """,
            _scope(account_id, org_scope),
        )
        return [TaskRow(**row) for row in rows]

    # ----------------------------------------------------------------- writes

    @with_db_retry(max_retries=0)  # inserts rows, not idempotent
    async def create_task(
        self,
        account_id: str,
        *,
        title: str,
        description: str | None,
        priority: str,
        due_date: datetime | None,
        tags: list[str],
        org_scope: str | None = None,
    ) -> TaskCreated:
        row = await fetch_one(
            """
            INSERT INTO tasks (owner_id, organization_id, title, description, priority,
                               due_date, tags, status, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, 'PENDING', NOW(), NOW())
            RETURNING id::text, title, priority, status, due_date
            """,
            (account_id, org_scope, title, description, priority, due_date, tags),
        )
        logger.info("Task created", account_id=account_id, task_id=row["id"])
        return TaskCreated(
            task_id=row["id"],
            title=row["title"],
            priority=row["priority"],
            status=row["status"],
            due_date=row["due_date"],
        )

    @with_db_retry()
    async def _find_lead(
        self, account_id: str, lead_id: str, org_scope: str | None
    ) -> tuple[LeadKind, dict[str, Any]] | None:
        # Real-estate leads take precedence when an id exists in both tables.
        for kind, table in (("real_estate", "real_estate_leads"), ("ecommerce", "ecommerce_leads")):
            row = await fetch_one(
                f"""
                SELECT id::text, status, full_name, email FROM {table}
                WHERE id::text = %s AND owner_id = %s AND {_ORG_FILTER}
                """,
                (lead_id, *_scope(account_id, org_scope)),
            )
            if row:
                return kind, row
        return None

    async def update_lead_status(
        self,
        account_id: str,
        lead_id: str,
        *,
        status: str | None,
        note: str | None,
        next_followup_date: datetime | None,
        org_scope: str | None = None,
    ) -> LeadUpdated:
        found = await self._find_lead(account_id, lead_id, org_scope)
        if found is None:
            raise NotFoundOrNotOwnedError("lead", lead_id)

        kind, _ = found
        applied_status = status if status in allowed_lead_statuses(kind) else None
        row = await self._update_lead(kind, account_id, lead_id, applied_status, note, next_followup_date)
        return LeadUpdated(
            lead_id=row["id"],
            kind=kind,
            status=row["status"],
            status_applied=applied_status is not None,
            last_contact_at=row["last_contact_at"],
        )

    @with_db_retry()
    async def _update_lead(
        self,
        kind: LeadKind,
        account_id: str,
        lead_id: str,
        status: str | None,
        note: str | None,
        next_followup_date: datetime | None,
    ) -> dict[str, Any]:
        table = "real_estate_leads" if kind == "real_estate" else "ecommerce_leads"
        return await fetch_one(
            f"""
            UPDATE {table}
            SET status = COALESCE(%s, status),
                notes = COALESCE(%s, notes),
                next_followup_at = COALESCE(%s, next_followup_at),
                last_contact_at = NOW(),
                updated_at = NOW()
            WHERE id::text = %s AND owner_id = %s
            RETURNING id::text, status, last_contact_at
            """,
            (status, note, next_followup_date, lead_id, account_id),
        )

    async def set_campaign_status(
        self,
        account_id: str,
        campaign_id: str,
        status: Literal["ACTIVE", "PAUSED"],
        *,
        reason: str | None = None,
        org_scope: str | None = None,
    ) -> CampaignStatusChanged:
        changed = await self._set_campaign_status(account_id, campaign_id, status, reason, org_scope)
        if changed is None:
            raise NotFoundOrNotOwnedError("campaign", campaign_id)
        logger.info(
            "Campaign status changed",
            account_id=account_id,
            campaign_id=campaign_id,
            status=status,
            previous_status=changed.previous_status,
        )
        return changed

    @with_db_retry(max_retries=0)  # inserts rows, not idempotent
    async def _set_campaign_status(
        self,
        account_id: str,
        campaign_id: str,
        status: str,
        reason: str | None,
        org_scope: str | None,
    ) -> CampaignStatusChanged | None:
        async with await get_db_transaction() as conn:
            current = await fetch_one(
                f"""
                SELECT id::text, name, status FROM external_campaigns
                WHERE id::text = %s AND owner_id = %s AND {_ORG_FILTER}
                FOR UPDATE
                """,
                (campaign_id, *_scope(account_id, org_scope)),
                connection=conn,
            )
            if not current:
                return None

            await execute_query(
                "UPDATE external_campaigns SET status = %s, updated_at = NOW() WHERE id::text = %s",
                (status, campaign_id),
                connection=conn,
            )
            if reason:
                await execute_query(
                    """
                    INSERT INTO campaign_events (campaign_id, owner_id, organization_id,
                                                 event_type, previous_status, new_status,
                                                 reason, created_at)
                    VALUES (%s, %s, %s, 'STATUS_CHANGE', %s, %s, %s, NOW())
                    """,
                    (campaign_id, account_id, org_scope, current["status"], status, reason),
                    connection=conn,
                )

        return CampaignStatusChanged(
            campaign_id=current["id"],
            name=current["name"],
            status=status,
            previous_status=current["status"],
        )

    async def queue_message(
        self,
        account_id: str,
        recipient_id: str,
        *,
        message: str,
        channel: str,
        org_scope: str | None = None,
    ) -> MessageQueued:
        found = await self._find_lead(account_id, recipient_id, org_scope)
        if found is None:
            raise NotFoundOrNotOwnedError("lead", recipient_id)

        kind, lead = found
        message_id = await self._insert_message(kind, account_id, recipient_id, message, channel, org_scope)
        logger.info("Message queued", account_id=account_id, message_id=message_id, channel=channel)
        return MessageQueued(
            message_id=message_id,
            recipient_name=lead.get("full_name"),
            recipient_email=lead.get("email"),
            channel=channel,
        )

    @with_db_retry(max_retries=0)  # inserts rows, not idempotent
    async def _insert_message(
        self,
        kind: LeadKind,
        account_id: str,
        recipient_id: str,
        message: str,
        channel: str,
        org_scope: str | None,
    ) -> str:
        table = "real_estate_leads" if kind == "real_estate" else "ecommerce_leads"
        async with await get_db_transaction() as conn:
            row = await fetch_one(
                """
                INSERT INTO messages (owner_id, organization_id, recipient_type, recipient_id,
                                      message, channel, status, created_at)
                VALUES (%s, %s, 'LEAD', %s, %s, %s, 'QUEUED', NOW())
                RETURNING id::text
                """,
                (account_id, org_scope, recipient_id, message, channel),
                connection=conn,
            )
            await execute_query(
                f"UPDATE {table} SET last_contact_at = NOW(), updated_at = NOW() WHERE id::text = %s",
                (recipient_id,),
                connection=conn,
            )
        return row["id"]

    async def find_entity_for_deep_link(
        self,
        account_id: str,
        entity_type: EntityType,
        entity_id: str,
        *,
        org_scope: str | None = None,
    ) -> EntityLocation:
        if entity_type == "lead":
            found = await self._find_lead(account_id, entity_id, org_scope)
            if found is None:
                raise NotFoundOrNotOwnedError("lead", entity_id)
            kind, lead = found
            return EntityLocation(
                entity_type="lead", entity_id=entity_id, name=lead.get("full_name"), lead_kind=kind
            )

        row = await self._find_entity(account_id, entity_type, entity_id, org_scope)
        if not row:
            raise NotFoundOrNotOwnedError(entity_type, entity_id)
        return EntityLocation(
            entity_type=entity_type,
            entity_id=entity_id,
            name=row.get("name"),
            slug=row.get("slug"),
        )

    _ENTITY_QUERIES = {
        "campaign": f"SELECT name, NULL AS slug FROM external_campaigns WHERE id::text = %s AND owner_id = %s AND {_ORG_FILTER}",
        "property": f"SELECT title AS name, slug FROM properties WHERE id::text = %s AND owner_id = %s AND {_ORG_FILTER}",
        "task": f"SELECT title AS name, NULL AS slug FROM tasks WHERE id::text = %s AND owner_id = %s AND {_ORG_FILTER}",
    }

    @with_db_retry()
    async def _find_entity(
        self, account_id: str, entity_type: str, entity_id: str, org_scope: str | None
    ) -> dict[str, Any] | None:
        if entity_type == "connection":
            return await fetch_one(
                "SELECT COALESCE(display_name, provider) AS name, NULL AS slug FROM connections "
                "WHERE id::text = %s AND owner_id = %s",
                (entity_id, account_id),
            )
        return await fetch_one(
            self._ENTITY_QUERIES[entity_type], (entity_id, *_scope(account_id, org_scope))
        )
