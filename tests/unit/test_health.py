"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from app.main import app
from app.features.business_coach.services.llm_client import OpenAIChatModel
from tests.fakes import FakeChatModel, FakeRecordGateway

client = TestClient(app)


def _install_container(coach_container_factory, model=None):
    app.state.coach = coach_container_factory(FakeRecordGateway(), model)


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "business-coach"


def test_readyz_endpoint_all_services_healthy(coach_container_factory):
    """Test readiness endpoint when all services are healthy."""
    _install_container(coach_container_factory)
    with (
        patch(
            "app.routes.health.db_health_check",
            AsyncMock(return_value={"healthy": True, "pool_stats": {"pool_size": 3}}),
        ),
        patch("app.routes.health.settings.DB_POOL_ENABLED", True),
        patch("app.routes.health.settings.OPENAI_API_KEY", "sk-test"),
        patch("app.routes.health.settings.RATE_LIMIT_BACKEND", "memory"),
    ):
        response = client.get("/readyz")

        assert response.status_code == 200
        data = response.json()
        assert data["overall_ok"] is True

        checks = data["checks"]
        assert "redis" not in checks
        assert checks["database"]["ok"] is True
        assert checks["database"]["pool_size"] == 3
        assert isinstance(checks["database"]["latency_ms"], (int, float))
        assert checks["coach"] == {"ok": True, "model_available": True}
        assert checks["configuration"]["ok"] is True


def test_readyz_endpoint_database_unhealthy(coach_container_factory):
    """Test readiness endpoint when the database pool reports unhealthy."""
    _install_container(coach_container_factory)
    with (
        patch(
            "app.routes.health.db_health_check",
            AsyncMock(return_value={"healthy": False, "error": "Connection failed"}),
        ),
        patch("app.routes.health.settings.DB_POOL_ENABLED", True),
        patch("app.routes.health.settings.OPENAI_API_KEY", "sk-test"),
    ):
        response = client.get("/readyz")

        assert response.status_code == 200
        data = response.json()
        assert data["overall_ok"] is False
        assert data["checks"]["database"]["ok"] is False
        assert data["checks"]["database"]["error"] == "Connection failed"


def test_readyz_endpoint_redis_unhealthy(coach_container_factory):
    """Test readiness endpoint when Redis backs the limiter and is down."""
    _install_container(coach_container_factory)
    with (
        patch("app.routes.health.fast_redis.ping", AsyncMock(return_value=False)),
        patch("app.routes.health.settings.RATE_LIMIT_ENABLED", True),
        patch("app.routes.health.settings.RATE_LIMIT_BACKEND", "redis"),
        patch("app.routes.health.settings.REDIS_URL", "redis://localhost:6379/0"),
        patch("app.routes.health.settings.DB_POOL_ENABLED", False),
        patch("app.routes.health.settings.OPENAI_API_KEY", "sk-test"),
    ):
        response = client.get("/readyz")

        data = response.json()
        assert data["overall_ok"] is False
        assert data["checks"]["redis"]["ok"] is False


def test_readyz_endpoint_missing_openai_key(coach_container_factory):
    """Test readiness endpoint when the OpenAI key is missing."""
    _install_container(coach_container_factory, FakeChatModel(available=False))
    with (
        patch("app.routes.health.settings.DB_POOL_ENABLED", False),
        patch("app.routes.health.settings.OPENAI_API_KEY", None),
        patch("app.routes.health.settings.RATE_LIMIT_BACKEND", "memory"),
    ):
        response = client.get("/readyz")

        data = response.json()
        assert data["overall_ok"] is False
        assert data["checks"]["coach"]["model_available"] is False
        assert "OPENAI_API_KEY not set" in data["checks"]["configuration"]["issues"]


def test_model_health_without_api_key(coach_container_factory):
    """Test model health reports an unconfigured OpenAI client."""
    _install_container(coach_container_factory, OpenAIChatModel(api_key=None, model="gpt-4o-mini"))

    response = client.get("/health/model")

    assert response.status_code == 200
    data = response.json()
    assert data["healthy"] is False
    assert data["api_connectivity"] == "client_not_initialized"
    assert data["configuration"]["model"] == "gpt-4o-mini"


def test_model_health_uses_container_model(coach_container_factory):
    """Test model health delegates to the container's chat model."""
    _install_container(coach_container_factory, FakeChatModel())

    data = client.get("/health/model").json()

    assert data == {"healthy": True, "service": "fake_chat_model", "api_connectivity": "ok"}
