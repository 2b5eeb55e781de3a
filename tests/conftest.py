from datetime import UTC, datetime

import pytest

from app.auth.verify import auth_dependency
from app.config import Settings
from app.features.business_coach.container import build_coach_container
from tests.fakes import ACCOUNT_ID, FakeChatModel, FakeRecordGateway, FakeRedis, scenario_records


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": ACCOUNT_ID}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def scenario_gateway():
    return FakeRecordGateway(**scenario_records(datetime.now(UTC)))


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        OPENAI_API_KEY=None,
        RATE_LIMIT_BACKEND="memory",
        RATE_LIMIT_MAX_REQUESTS=10,
        RATE_LIMIT_WINDOW_SECONDS=60,
        DB_POOL_ENABLED=False,
    )


@pytest.fixture
def coach_container_factory(test_settings):
    def _build(gateway, model=None, **overrides):
        config = test_settings.model_copy(update=overrides) if overrides else test_settings
        return build_coach_container(config, gateway=gateway, model=model or FakeChatModel())

    return _build
