"""
Tool dispatcher - validates and executes tool calls for one account.

Every outcome is a ToolResult. Unknown tools, invalid parameters, missing
or foreign entities and gateway failures all come back as
``success=False`` so one bad call never aborts the rest of a batch.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from app.features.business_coach.domain.chat import ToolCall, ToolCallResult, ToolResult
from app.features.business_coach.domain.errors import NotFoundOrNotOwnedError, UnknownToolError
from app.features.business_coach.repository.record_gateway import EntityLocation, RecordGateway
from app.features.business_coach.services.snapshot_service import SnapshotService
from app.features.business_coach.services.tools import (
    TOOL_SPECS,
    CampaignActionParams,
    CreateTaskParams,
    ListUserDataParams,
    OpenEntityParams,
    SendMessageParams,
    ToolName,
    ToolParams,
    UpdateLeadStatusParams,
    parse_tool_name,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[[str, Any, str | None], Awaitable[ToolResult]]


def deep_link_url(location: EntityLocation) -> str:
    """UI route for an entity."""
    entity_id = location.entity_id
    match location.entity_type:
        case "lead" if location.lead_kind == "real_estate":
            return f"/real-estate/leads/{entity_id}"
        case "lead":
            return f"/e-commerce/leads/{entity_id}"
        case "campaign":
            return f"/e-commerce/campaigns?id={entity_id}"
        case "property":
            return f"/real-estate/properties/{location.slug or entity_id}"
        case "task":
            return f"/dashboard/tasks?id={entity_id}"
        case "connection":
            return f"/connections?id={entity_id}"
    raise ValueError(f"No deep link for entity type {location.entity_type}")


class ToolDispatcher:
    def __init__(self, gateway: RecordGateway, snapshot_service: SnapshotService):
        self.gateway = gateway
        self.snapshot_service = snapshot_service
        self._handlers: dict[ToolName, ToolHandler] = {
            ToolName.LIST_USER_DATA: self._list_user_data,
            ToolName.CREATE_TASK: self._create_task,
            ToolName.UPDATE_LEAD_STATUS: self._update_lead_status,
            ToolName.PAUSE_CAMPAIGN: self._pause_campaign,
            ToolName.RESUME_CAMPAIGN: self._resume_campaign,
            ToolName.SEND_MESSAGE: self._send_message,
            ToolName.OPEN_ENTITY: self._open_entity,
        }

    @property
    def handled_tools(self) -> frozenset[ToolName]:
        return frozenset(self._handlers)

    async def execute(
        self,
        account_id: str,
        tool_name: str,
        params: dict[str, Any] | None = None,
        org_scope: str | None = None,
    ) -> ToolResult:
        try:
            name = parse_tool_name(tool_name)
        except UnknownToolError as e:
            logger.warning("Unknown tool requested", account_id=account_id, tool=tool_name)
            return ToolResult(success=False, message=str(e), error="unknown_tool")

        spec = TOOL_SPECS[name]
        try:
            validated: ToolParams = spec.params_model.model_validate(params or {})
        except ValidationError as e:
            logger.warning(
                "Tool parameters rejected",
                account_id=account_id,
                tool=name.value,
                error_count=e.error_count(),
            )
            return ToolResult(
                success=False,
                message=f"Invalid parameters for {name.value}",
                error="invalid_parameters",
                data={"errors": e.errors(include_url=False, include_context=False)},
            )

        logger.info("Executing tool", account_id=account_id, tool=name.value)
        try:
            result = await self._handlers[name](account_id, validated, org_scope)
        except NotFoundOrNotOwnedError as e:
            logger.info(
                "Tool target not found or not owned",
                account_id=account_id,
                tool=name.value,
                entity_type=e.entity_type,
            )
            return ToolResult(success=False, message=str(e), error="not_found_or_not_owned")
        except Exception as e:
            logger.error(
                "Tool execution failed",
                account_id=account_id,
                tool=name.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ToolResult(success=False, message=f"Failed to execute {name.value}", error=str(e))

        if result.success and spec.mutating:
            await self.snapshot_service.invalidate(account_id)
        return result

    async def execute_batch(
        self, account_id: str, calls: list[ToolCall], org_scope: str | None = None
    ) -> list[ToolCallResult]:
        """Run calls one after another, in request order, one result per call."""
        results: list[ToolCallResult] = []
        for call in calls:
            result = await self.execute(account_id, call.name, call.parameters, org_scope)
            results.append(ToolCallResult(**result.model_dump(), tool_call=call))
        return results

    # --------------------------------------------------------------- handlers

    async def _list_user_data(
        self, account_id: str, params: ListUserDataParams, org_scope: str | None
    ) -> ToolResult:
        snapshot = await self.snapshot_service.get_snapshot(
            account_id, org_scope=org_scope, window_days=params.window_days
        )
        return ToolResult(
            success=True,
            message="User data retrieved successfully",
            data=snapshot.model_dump(mode="json"),
        )

    async def _create_task(
        self, account_id: str, params: CreateTaskParams, org_scope: str | None
    ) -> ToolResult:
        created = await self.gateway.create_task(
            account_id,
            title=params.title,
            description=params.description,
            priority=params.priority,
            due_date=params.due_date,
            tags=params.tags,
            org_scope=org_scope,
        )
        return ToolResult(
            success=True,
            message=f'Task "{created.title}" created successfully',
            data={
                "task_id": created.task_id,
                "title": created.title,
                "priority": created.priority,
                "status": created.status,
                "due_date": created.due_date.isoformat() if created.due_date else None,
            },
        )

    async def _update_lead_status(
        self, account_id: str, params: UpdateLeadStatusParams, org_scope: str | None
    ) -> ToolResult:
        updated = await self.gateway.update_lead_status(
            account_id,
            params.lead_id,
            status=params.status,
            note=params.note,
            next_followup_date=params.next_followup_date,
            org_scope=org_scope,
        )
        kind_label = "Real estate" if updated.kind == "real_estate" else "E-commerce"
        message = f"{kind_label} lead updated successfully"
        if not updated.status_applied:
            message += f" (status {params.status} does not apply to {kind_label.lower()} leads)"
        return ToolResult(
            success=True,
            message=message,
            data={
                "lead_id": updated.lead_id,
                "status": updated.status,
                "last_contact_at": updated.last_contact_at.isoformat(),
            },
        )

    async def _set_campaign_status(
        self, account_id: str, params: CampaignActionParams, org_scope: str | None, status: str
    ) -> ToolResult:
        changed = await self.gateway.set_campaign_status(
            account_id, params.campaign_id, status, reason=params.reason, org_scope=org_scope
        )
        verb = "paused" if status == "PAUSED" else "resumed"
        return ToolResult(
            success=True,
            message=f'Campaign "{changed.name}" has been {verb}',
            data={
                "campaign_id": changed.campaign_id,
                "status": changed.status,
                "previous_status": changed.previous_status,
            },
        )

    async def _pause_campaign(
        self, account_id: str, params: CampaignActionParams, org_scope: str | None
    ) -> ToolResult:
        return await self._set_campaign_status(account_id, params, org_scope, "PAUSED")

    async def _resume_campaign(
        self, account_id: str, params: CampaignActionParams, org_scope: str | None
    ) -> ToolResult:
        return await self._set_campaign_status(account_id, params, org_scope, "ACTIVE")

    async def _send_message(
        self, account_id: str, params: SendMessageParams, org_scope: str | None
    ) -> ToolResult:
        queued = await self.gateway.queue_message(
            account_id,
            params.recipient_id,
            message=params.message,
            channel=params.channel,
            org_scope=org_scope,
        )
        return ToolResult(
            success=True,
            message=f"Message queued for {queued.recipient_name or queued.recipient_email or 'lead'}",
            data={
                "message_id": queued.message_id,
                "recipient_name": queued.recipient_name,
                "recipient_email": queued.recipient_email,
                "channel": queued.channel,
            },
        )

    async def _open_entity(
        self, account_id: str, params: OpenEntityParams, org_scope: str | None
    ) -> ToolResult:
        location = await self.gateway.find_entity_for_deep_link(
            account_id, params.entity_type, params.entity_id, org_scope=org_scope
        )
        url = deep_link_url(location)
        return ToolResult(
            success=True,
            message=f"Opening {params.entity_type}",
            data={
                "entity_type": params.entity_type,
                "entity_id": params.entity_id,
                "name": location.name,
                "url": url,
            },
        )
