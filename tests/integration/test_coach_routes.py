from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.features.business_coach.api.router import router as coach_router
from app.middleware.rate_limit_headers import RateLimitHeadersMiddleware
from tests.fakes import FakeChatModel, FakeRecordGateway, text_response, tool_response


def _client(apply_auth_override, container) -> TestClient:
    app = FastAPI()
    app.add_middleware(RateLimitHeadersMiddleware)
    apply_auth_override(app)
    app.include_router(coach_router)
    app.state.coach = container
    return TestClient(app)


def test_snapshot_route_sets_cache_headers(apply_auth_override, scenario_gateway, coach_container_factory):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    first = client.get("/coach/snapshot")
    second = client.get("/coach/snapshot")

    assert first.status_code == 200
    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert first.headers["ETag"] == second.headers["ETag"]
    assert first.headers["X-RateLimit-Limit"] == "10"
    assert second.headers["X-RateLimit-Remaining"] == "8"

    body = first.json()
    assert body["meta"]["account_id"] == "user-123"
    assert body["leads"]["stats"]["stale"] == 4
    assert len(body["recommendations"]) == 5


def test_snapshot_not_modified_when_etag_matches(
    apply_auth_override, scenario_gateway, coach_container_factory
):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    etag = client.get("/coach/snapshot").headers["ETag"]
    response = client.get("/coach/snapshot", headers={"If-None-Match": etag})

    assert response.status_code == 304
    assert response.headers["ETag"] == etag


def test_snapshot_window_validated(apply_auth_override, scenario_gateway, coach_container_factory):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    response = client.get("/coach/snapshot", params={"window_days": 0})

    assert response.status_code == 422


def test_snapshot_upstream_failure_is_502(apply_auth_override, scenario_gateway, coach_container_factory):
    scenario_gateway.fail_on["properties"] = ConnectionError("db down")
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    response = client.get("/coach/snapshot")

    assert response.status_code == 502
    assert response.json()["detail"]["error"] == "upstream_fetch_failed"
    assert response.json()["detail"]["domain"] == "properties"


def test_invalidate_then_refetch(apply_auth_override, scenario_gateway, coach_container_factory):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    client.get("/coach/snapshot")
    invalidated = client.post("/coach/snapshot/invalidate")
    refetched = client.get("/coach/snapshot")

    assert invalidated.json() == {"invalidated": 1}
    assert refetched.headers["X-Cache"] == "MISS"


def test_stale_items(apply_auth_override, scenario_gateway, coach_container_factory):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    response = client.get("/coach/stale-items")

    assert response.status_code == 200
    assert response.json() == {
        "stale_leads": 4,
        "issues_count": 2,
        "stale_properties": 0,
        "overdue_tasks": 5,
    }


def test_chat_round_trip_and_history(apply_auth_override, scenario_gateway, coach_container_factory):
    model = FakeChatModel([text_response("Dana Levi is your hottest lead.")])
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway, model))

    chat = client.post("/coach/chat", json={"message": "Who should I call?"})
    assert chat.status_code == 200
    reply = chat.json()
    assert reply["message"] == "Dana Levi is your hottest lead."
    assert reply["metadata"]["model"] == "gpt-test"

    history = client.get(f"/coach/sessions/{reply['session_id']}/history")
    assert history.status_code == 200
    assert history.json()["total_count"] == 2

    cleared = client.delete(f"/coach/sessions/{reply['session_id']}")
    assert cleared.json() == {"session_id": reply["session_id"], "cleared": True}
    assert client.get(f"/coach/sessions/{reply['session_id']}/history").status_code == 404


def test_chat_rejects_empty_message(apply_auth_override, scenario_gateway, coach_container_factory):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    response = client.post("/coach/chat", json={"message": ""})

    assert response.status_code == 422


def test_chat_fallback_still_returns_200(apply_auth_override, scenario_gateway, coach_container_factory):
    model = FakeChatModel([RuntimeError("model exploded")])
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway, model))

    response = client.post("/coach/chat", json={"message": "hi", "language": "he"})

    assert response.status_code == 200
    assert response.json()["metadata"]["model"] == "fallback"
    assert response.json()["language"] == "he"


def test_rate_limited_chat_sets_retry_after(apply_auth_override, scenario_gateway, coach_container_factory):
    container = coach_container_factory(scenario_gateway, RATE_LIMIT_MAX_REQUESTS=1)
    client = _client(apply_auth_override, container)

    client.post("/coach/welcome", json={})
    response = client.post("/coach/chat", json={"message": "hi"})

    assert response.status_code == 200
    body = response.json()
    assert body["metadata"]["error"] == "rate_limited"
    assert response.headers["Retry-After"] == str(body["metadata"]["retry_after_seconds"])


def test_execute_tool_route(apply_auth_override, scenario_gateway, coach_container_factory):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    opened = client.post(
        "/coach/tools/execute",
        json={"tool_name": "open_entity", "parameters": {"entity_type": "lead", "entity_id": "lead-re-1"}},
    )
    unknown = client.post("/coach/tools/execute", json={"tool_name": "format_disk"})

    assert opened.status_code == 200
    assert opened.json()["data"]["url"] == "/real-estate/leads/lead-re-1"
    assert unknown.status_code == 200
    assert unknown.json()["error"] == "unknown_tool"


def test_welcome_executes_model_tool_calls(apply_auth_override, coach_container_factory):
    gateway = FakeRecordGateway()
    model = FakeChatModel([tool_response(("list_user_data", '{"window_days": 7}'), content="Hi there!")])
    client = _client(apply_auth_override, coach_container_factory(gateway, model))

    response = client.post("/coach/welcome", json={"language": "en"})

    body = response.json()
    assert body["message"] == "Hi there!"
    assert body["tool_results"][0]["tool_call"]["name"] == "list_user_data"
    assert body["tool_results"][0]["success"] is True


def test_status_route(apply_auth_override, scenario_gateway, coach_container_factory):
    client = _client(apply_auth_override, coach_container_factory(scenario_gateway))

    response = client.get("/coach/status")

    assert response.status_code == 200
    assert response.json()["available"] is True
    assert response.json()["active_sessions"] == 0


def test_missing_container_is_503(apply_auth_override):
    app = FastAPI()
    apply_auth_override(app)
    app.include_router(coach_router)
    client = TestClient(app)

    assert client.get("/coach/status").status_code == 503
