import asyncio
from datetime import UTC, datetime

import pytest

from app.features.business_coach.domain.chat import ToolCall
from app.features.business_coach.repository.record_gateway import EntityLocation
from app.features.business_coach.services.snapshot_cache import SnapshotCache
from app.features.business_coach.services.snapshot_service import SnapshotService
from app.features.business_coach.services.tool_dispatcher import ToolDispatcher, deep_link_url
from app.features.business_coach.services.tools import ToolName, build_tool_schemas
from tests.fakes import ACCOUNT_ID, FakeRecordGateway, scenario_records


@pytest.fixture
def gateway():
    return FakeRecordGateway(**scenario_records(datetime.now(UTC)))


@pytest.fixture
def dispatcher(gateway):
    return ToolDispatcher(gateway, SnapshotService(gateway, SnapshotCache()))


def test_every_tool_has_a_handler_and_schema(dispatcher):
    assert dispatcher.handled_tools == frozenset(ToolName)
    assert {schema["function"]["name"] for schema in build_tool_schemas()} == {
        name.value for name in ToolName
    }


def test_tool_schema_marks_required_parameters():
    schemas = {schema["function"]["name"]: schema["function"] for schema in build_tool_schemas()}

    assert schemas["create_task"]["parameters"]["required"] == ["title"]
    assert set(schemas["update_lead_status"]["parameters"]["required"]) == {"lead_id", "status"}


@pytest.mark.asyncio
async def test_unknown_tool_is_a_failed_result(dispatcher):
    result = await dispatcher.execute(ACCOUNT_ID, "delete_everything", {})

    assert result.success is False
    assert result.error == "unknown_tool"
    assert result.message == "Unknown tool: delete_everything"


@pytest.mark.asyncio
async def test_invalid_parameters_reported_without_touching_gateway(dispatcher, gateway):
    result = await dispatcher.execute(ACCOUNT_ID, "create_task", {"priority": "SOMEDAY"})

    assert result.success is False
    assert result.error == "invalid_parameters"
    assert result.message == "Invalid parameters for create_task"
    fields = {tuple(error["loc"]) for error in result.data["errors"]}
    assert ("title",) in fields
    assert ("priority",) in fields
    assert gateway.created_tasks == []


@pytest.mark.asyncio
async def test_create_task_invalidates_snapshot(dispatcher, gateway):
    await dispatcher.snapshot_service.get_snapshot(ACCOUNT_ID)
    assert len(dispatcher.snapshot_service.cache) == 1

    result = await dispatcher.execute(
        ACCOUNT_ID,
        "create_task",
        {"title": "Call Dana", "due_date": "2024-07-01T09:00:00Z", "tags": ["coach"]},
    )

    assert result.success is True
    assert result.message == 'Task "Call Dana" created successfully'
    assert result.data["priority"] == "MEDIUM"
    assert result.data["due_date"].startswith("2024-07-01T09:00:00")
    assert len(dispatcher.snapshot_service.cache) == 0


@pytest.mark.asyncio
async def test_read_only_tool_keeps_snapshot_cached(dispatcher):
    result = await dispatcher.execute(ACCOUNT_ID, "list_user_data", {"window_days": 30})

    assert result.success is True
    assert result.message == "User data retrieved successfully"
    assert result.data["meta"]["account_id"] == ACCOUNT_ID
    assert len(dispatcher.snapshot_service.cache) == 1


@pytest.mark.asyncio
async def test_update_lead_status_applies_status(dispatcher, gateway):
    result = await dispatcher.execute(
        ACCOUNT_ID,
        "update_lead_status",
        {"lead_id": "lead-re-1", "status": "MEETING", "note": "Booked viewing"},
    )

    assert result.success is True
    assert result.message == "Real estate lead updated successfully"
    assert result.data["status"] == "MEETING"


@pytest.mark.asyncio
async def test_status_outside_lead_kind_keeps_current_status(dispatcher):
    result = await dispatcher.execute(
        ACCOUNT_ID, "update_lead_status", {"lead_id": "lead-hot", "status": "MEETING"}
    )

    assert result.success is True
    assert result.message.startswith("E-commerce lead updated successfully")
    assert "does not apply" in result.message
    assert result.data["status"] == "NEW"


@pytest.mark.asyncio
async def test_foreign_account_gets_not_found(dispatcher, gateway):
    result = await dispatcher.execute(
        "someone-else", "pause_campaign", {"campaign_id": "camp-1", "reason": "overspend"}
    )

    assert result.success is False
    assert result.error == "not_found_or_not_owned"
    assert result.message == "Campaign not found or access denied"
    assert gateway.campaigns[0].status == "ACTIVE"


@pytest.mark.asyncio
async def test_pause_then_resume_campaign(dispatcher, gateway):
    paused = await dispatcher.execute(ACCOUNT_ID, "pause_campaign", {"campaign_id": "camp-1"})
    resumed = await dispatcher.execute(ACCOUNT_ID, "resume_campaign", {"campaign_id": "camp-1"})

    assert paused.message == 'Campaign "Summer Sale" has been paused'
    assert paused.data["previous_status"] == "ACTIVE"
    assert resumed.message == 'Campaign "Summer Sale" has been resumed'
    assert gateway.campaigns[0].status == "ACTIVE"


@pytest.mark.asyncio
async def test_send_message_queues_for_lead(dispatcher, gateway):
    result = await dispatcher.execute(
        ACCOUNT_ID,
        "send_message",
        {"recipient_id": "lead-hot", "message": "Hi Dana, following up.", "channel": "whatsapp"},
    )

    assert result.success is True
    assert result.message == "Message queued for Dana Levi"
    assert gateway.queued_messages[0].channel == "whatsapp"


@pytest.mark.asyncio
async def test_gateway_error_is_contained(dispatcher, gateway):
    async def broken(*args, **kwargs):
        raise RuntimeError("insert failed")

    gateway.create_task = broken

    result = await dispatcher.execute(ACCOUNT_ID, "create_task", {"title": "Anything"})

    assert result.success is False
    assert result.message == "Failed to execute create_task"
    assert result.error == "insert failed"


@pytest.mark.asyncio
async def test_open_entity_returns_deep_link(dispatcher):
    result = await dispatcher.execute(
        ACCOUNT_ID, "open_entity", {"entity_type": "property", "entity_id": "prop-1"}
    )

    assert result.success is True
    assert result.message == "Opening property"
    assert result.data["url"] == "/real-estate/properties/garden-apartment"
    assert result.data["name"] == "Garden apartment"


@pytest.mark.parametrize(
    ("location", "url"),
    [
        (EntityLocation("lead", "l1", lead_kind="real_estate"), "/real-estate/leads/l1"),
        (EntityLocation("lead", "l2", lead_kind="ecommerce"), "/e-commerce/leads/l2"),
        (EntityLocation("campaign", "c1"), "/e-commerce/campaigns?id=c1"),
        (EntityLocation("property", "p1"), "/real-estate/properties/p1"),
        (EntityLocation("task", "t1"), "/dashboard/tasks?id=t1"),
        (EntityLocation("connection", "k1"), "/connections?id=k1"),
    ],
)
def test_deep_link_routes(location, url):
    assert deep_link_url(location) == url


@pytest.mark.asyncio
async def test_batch_keeps_order_and_isolates_failures(dispatcher):
    calls = [
        ToolCall(id="call_0", name="open_entity", parameters={"entity_type": "task", "entity_id": "task-0"}),
        ToolCall(id="call_1", name="no_such_tool", parameters={}),
        ToolCall(id="call_2", name="create_task", parameters={"title": "Follow up"}),
    ]

    results = await dispatcher.execute_batch(ACCOUNT_ID, calls)

    assert [result.tool_call.id for result in results] == ["call_0", "call_1", "call_2"]
    assert [result.success for result in results] == [True, False, True]
    assert results[0].data["url"] == "/dashboard/tasks?id=task-0"


@pytest.mark.asyncio
async def test_snapshot_built_across_a_pause_is_not_cached(dispatcher, gateway):
    service = dispatcher.snapshot_service
    gateway.delays["tasks"] = 0.2

    building = asyncio.create_task(service.get_snapshot(ACCOUNT_ID))
    await asyncio.sleep(0.05)
    paused = await dispatcher.execute(ACCOUNT_ID, "pause_campaign", {"campaign_id": "camp-1"})
    in_flight = await building

    assert paused.success is True
    assert in_flight.campaigns.stats.active == 1
    assert len(service.cache) == 0

    gateway.delays.clear()
    fresh = await service.get_snapshot(ACCOUNT_ID)

    assert fresh.campaigns.stats.active == 0
    assert fresh.campaigns.stats.paused == 1
    assert "pause_campaign_camp-1" not in [rec.id for rec in fresh.recommendations]
