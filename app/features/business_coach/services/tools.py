"""
The closed set of tools the coach model may call.

Each tool has one pydantic parameter model. The JSON schema sent to the
model is generated from those same models, so what the model is told and
what the dispatcher validates cannot drift apart.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.features.business_coach.domain.errors import UnknownToolError

TOOL_SCHEMA_VERSION = "2024-06-01"


class ToolName(StrEnum):
    LIST_USER_DATA = "list_user_data"
    CREATE_TASK = "create_task"
    UPDATE_LEAD_STATUS = "update_lead_status"
    PAUSE_CAMPAIGN = "pause_campaign"
    RESUME_CAMPAIGN = "resume_campaign"
    SEND_MESSAGE = "send_message"
    OPEN_ENTITY = "open_entity"


def parse_tool_name(name: str) -> ToolName:
    try:
        return ToolName(name)
    except ValueError:
        raise UnknownToolError(name) from None


class ToolParams(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ListUserDataParams(ToolParams):
    window_days: int = Field(30, ge=1, le=365, description="Number of days to look back for data")


class CreateTaskParams(ToolParams):
    title: str = Field(..., min_length=1, max_length=200, description="Task title")
    description: str | None = Field(None, description="Task description")
    priority: Literal["LOW", "MEDIUM", "HIGH", "URGENT"] = Field("MEDIUM", description="Task priority")
    due_date: datetime | None = Field(None, description="Due date in ISO format")
    tags: list[str] = Field(default_factory=list, description="Task tags")


class UpdateLeadStatusParams(ToolParams):
    lead_id: str = Field(..., min_length=1, description="Lead ID to update")
    status: Literal[
        "NEW",
        "CONTACTED",
        "QUALIFIED",
        "IN_PROGRESS",
        "MEETING",
        "OFFER",
        "DEAL",
        "CONVERTED",
        "DISQUALIFIED",
        "CLOSED",
    ] = Field(..., description="New lead status")
    note: str | None = Field(None, description="Note to add to the lead")
    next_followup_date: datetime | None = Field(None, description="Next follow-up date in ISO format")


class CampaignActionParams(ToolParams):
    campaign_id: str = Field(..., min_length=1, description="Campaign ID")
    reason: str | None = Field(None, description="Reason for the status change")


class SendMessageParams(ToolParams):
    recipient_id: str = Field(..., min_length=1, description="Lead ID of the recipient")
    message: str = Field(..., min_length=1, max_length=2000, description="Message content")
    channel: Literal["email", "sms", "whatsapp"] = Field("email", description="Message channel")
    recipient_type: Literal["lead"] = Field("lead", description="Recipient kind")


class OpenEntityParams(ToolParams):
    entity_type: Literal["lead", "campaign", "property", "task", "connection"] = Field(
        ..., description="Entity type to open"
    )
    entity_id: str = Field(..., min_length=1, description="Entity ID")


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: ToolName
    description: str
    params_model: type[ToolParams]
    mutating: bool


TOOL_SPECS: dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            ToolName.LIST_USER_DATA,
            "Get detailed information about the user's business data",
            ListUserDataParams,
            mutating=False,
        ),
        ToolSpec(ToolName.CREATE_TASK, "Create a new task for the user", CreateTaskParams, mutating=True),
        ToolSpec(
            ToolName.UPDATE_LEAD_STATUS,
            "Update a lead's status and add notes",
            UpdateLeadStatusParams,
            mutating=True,
        ),
        ToolSpec(
            ToolName.PAUSE_CAMPAIGN,
            "Pause an advertising campaign",
            CampaignActionParams,
            mutating=True,
        ),
        ToolSpec(
            ToolName.RESUME_CAMPAIGN,
            "Resume a paused advertising campaign",
            CampaignActionParams,
            mutating=True,
        ),
        ToolSpec(
            ToolName.SEND_MESSAGE,
            "Queue a message to one of the user's leads",
            SendMessageParams,
            mutating=True,
        ),
        ToolSpec(
            ToolName.OPEN_ENTITY,
            "Provide a deep link to open a specific entity in the UI",
            OpenEntityParams,
            mutating=False,
        ),
    )
}


def build_tool_schemas() -> list[dict[str, Any]]:
    """OpenAI ``tools`` payload for the chat completions API."""
    return [
        {
            "type": "function",
            "function": {
                "name": spec.name.value,
                "description": spec.description,
                "parameters": spec.params_model.model_json_schema(),
            },
        }
        for spec in TOOL_SPECS.values()
    ]
