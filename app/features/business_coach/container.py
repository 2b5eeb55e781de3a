"""
Process-wide wiring for the business coach feature.

The snapshot cache, session store and rate-limit windows are plain objects
built once in the application lifespan and stored on ``app.state.coach``.
Routes reach them through ``get_coach_container``; tests build their own
container with fakes.
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from app.config import Settings, settings
from app.features.business_coach.repository.record_gateway import (
    PostgresRecordGateway,
    RecordGateway,
)
from app.features.business_coach.services.coach_service import CoachService
from app.features.business_coach.services.llm_client import ChatModel, OpenAIChatModel
from app.features.business_coach.services.rate_limiter import (
    AccountRateLimiter,
    FixedWindowRateLimiter,
    RedisFixedWindowRateLimiter,
)
from app.features.business_coach.services.session_store import SessionStore
from app.features.business_coach.services.snapshot_cache import SnapshotCache
from app.features.business_coach.services.snapshot_service import SnapshotService
from app.features.business_coach.services.tool_dispatcher import ToolDispatcher
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class CoachContainer:
    gateway: RecordGateway
    snapshot_cache: SnapshotCache
    snapshot_service: SnapshotService
    rate_limiter: AccountRateLimiter
    session_store: SessionStore
    dispatcher: ToolDispatcher
    model: ChatModel
    coach: CoachService


def build_coach_container(
    config: Settings = settings,
    *,
    redis_client=None,
    model: ChatModel | None = None,
    gateway: RecordGateway | None = None,
) -> CoachContainer:
    gateway = gateway or PostgresRecordGateway()

    cache = SnapshotCache(ttl_seconds=config.SNAPSHOT_CACHE_TTL_SECONDS)
    snapshot_service = SnapshotService(
        gateway,
        cache,
        default_window_days=config.SNAPSHOT_DEFAULT_WINDOW_DAYS,
        default_deadline_seconds=config.SNAPSHOT_FETCH_DEADLINE_SECONDS,
    )

    if config.uses_redis() and redis_client is not None:
        rate_limiter: AccountRateLimiter = RedisFixedWindowRateLimiter(
            redis_client,
            limit=config.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
            fail_open=config.RATE_LIMIT_FAIL_OPEN,
        )
    else:
        rate_limiter = FixedWindowRateLimiter(
            limit=config.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        )

    session_store = SessionStore(max_messages=config.SESSION_MAX_MESSAGES)
    dispatcher = ToolDispatcher(gateway, snapshot_service)
    model = model or OpenAIChatModel(
        config.OPENAI_API_KEY,
        config.OPENAI_MODEL,
        request_timeout=config.OPENAI_TIMEOUT_SECONDS,
    )

    coach = CoachService(
        rate_limiter=rate_limiter,
        snapshot_service=snapshot_service,
        session_store=session_store,
        dispatcher=dispatcher,
        model=model,
        rate_limit_enabled=config.RATE_LIMIT_ENABLED,
        timeout_seconds=config.OPENAI_TIMEOUT_SECONDS,
        temperature=config.OPENAI_TEMPERATURE,
        welcome_max_tokens=config.OPENAI_WELCOME_MAX_TOKENS,
        chat_max_tokens=config.OPENAI_CHAT_MAX_TOKENS,
        history_window=config.CHAT_HISTORY_WINDOW,
    )

    logger.info(
        "Business coach container built",
        rate_limit_backend=rate_limiter.stats()["backend"],
        model=model.model_name,
        cache_ttl_seconds=config.SNAPSHOT_CACHE_TTL_SECONDS,
    )
    return CoachContainer(
        gateway=gateway,
        snapshot_cache=cache,
        snapshot_service=snapshot_service,
        rate_limiter=rate_limiter,
        session_store=session_store,
        dispatcher=dispatcher,
        model=model,
        coach=coach,
    )


def get_coach_container(request: Request) -> CoachContainer:
    container = getattr(request.app.state, "coach", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Business coach is not initialized",
        )
    return container
