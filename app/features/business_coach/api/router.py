"""
Business coach routes.

Snapshot reads, welcome and chat turns, session management and direct tool
execution for quick actions. The account is always the token's ``sub``
claim; no route accepts an account id from the client.
"""

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status

from app.auth.verify import auth_dependency
from app.features.business_coach.container import CoachContainer, get_coach_container
from app.features.business_coach.domain.chat import Reply, ToolResult
from app.features.business_coach.domain.errors import UpstreamFetchFailedError
from app.features.business_coach.domain.snapshot import Snapshot
from app.infrastructure.observability.logging import get_logger
from app.middleware.rate_limit_dependencies import rate_limit_account
from app.models.api.coach_request import ChatRequest, ToolExecuteRequest, WelcomeRequest
from app.models.api.coach_response import (
    ChatHistoryResponse,
    ClearSessionResponse,
    CoachStatusResponse,
    InvalidateResponse,
    StaleItemsResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/coach", tags=["business-coach"])


def _account_id(claims: dict) -> str:
    account_id = claims.get("sub")
    if not account_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    structlog.contextvars.bind_contextvars(account_id=account_id)
    return account_id


def _upstream_error(e: UpstreamFetchFailedError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={
            "error": "upstream_fetch_failed",
            "domain": e.domain,
            "message": "Failed to load business data. Please try again.",
        },
    )


def _set_retry_after(response: Response, reply: Reply) -> None:
    if reply.metadata.retry_after_seconds is not None:
        response.headers["Retry-After"] = str(reply.metadata.retry_after_seconds)


@router.get("/snapshot", response_model=Snapshot)
async def get_snapshot(
    response: Response,
    claims: dict = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_account),
    container: CoachContainer = Depends(get_coach_container),
    window_days: int | None = Query(None, ge=1, le=365, description="Lookback window in days"),
    org_scope: str | None = Query(None, description="Organization scope"),
    force_refresh: bool = Query(False, description="Bypass the snapshot cache"),
    if_none_match: str | None = Header(None),
):
    """Get the account's aggregated business snapshot."""
    account_id = _account_id(claims)

    try:
        result = await container.snapshot_service.get_snapshot_entry(
            account_id,
            org_scope=org_scope,
            window_days=window_days,
            force_refresh=force_refresh,
        )
    except UpstreamFetchFailedError as e:
        logger.error("Snapshot aggregation failed", account_id=account_id, domain=e.domain)
        raise _upstream_error(e)

    etag = f'"{result.etag}"'
    if if_none_match == etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers={"ETag": etag})

    response.headers["ETag"] = etag
    response.headers["X-Cache"] = "HIT" if result.cached else "MISS"
    return result.snapshot


@router.post("/snapshot/invalidate", response_model=InvalidateResponse)
async def invalidate_snapshot(
    claims: dict = Depends(auth_dependency),
    container: CoachContainer = Depends(get_coach_container),
):
    """Drop every cached snapshot variant for the account."""
    account_id = _account_id(claims)
    invalidated = await container.snapshot_service.invalidate(account_id)
    logger.info("Snapshot cache invalidated", account_id=account_id, invalidated=invalidated)
    return InvalidateResponse(invalidated=invalidated)


@router.get("/stale-items", response_model=StaleItemsResponse)
async def get_stale_items(
    claims: dict = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_account),
    container: CoachContainer = Depends(get_coach_container),
    org_scope: str | None = Query(None, description="Organization scope"),
):
    """Counts of leads, issues, listings and tasks needing attention."""
    account_id = _account_id(claims)
    try:
        summary = await container.snapshot_service.get_stale_summary(account_id, org_scope=org_scope)
    except UpstreamFetchFailedError as e:
        raise _upstream_error(e)
    return StaleItemsResponse(**summary)


@router.post("/welcome", response_model=Reply)
async def welcome(
    body: WelcomeRequest,
    response: Response,
    claims: dict = Depends(auth_dependency),
    container: CoachContainer = Depends(get_coach_container),
):
    """Generate a personalized welcome message. Always answers, falling back to static text."""
    account_id = _account_id(claims)
    reply = await container.coach.generate_welcome_message(
        account_id, org_scope=body.org_scope, language=body.language
    )
    _set_retry_after(response, reply)
    return reply


@router.post("/chat", response_model=Reply)
async def chat(
    body: ChatRequest,
    response: Response,
    claims: dict = Depends(auth_dependency),
    container: CoachContainer = Depends(get_coach_container),
):
    """Process one chat turn. Always answers, falling back to static text."""
    account_id = _account_id(claims)
    reply = await container.coach.process_chat_message(
        account_id,
        body.message,
        session_id=body.session_id,
        language=body.language,
        org_scope=body.org_scope,
    )
    _set_retry_after(response, reply)
    return reply


@router.get("/sessions/{session_id}/history", response_model=ChatHistoryResponse)
async def get_session_history(
    session_id: str,
    claims: dict = Depends(auth_dependency),
    container: CoachContainer = Depends(get_coach_container),
):
    account_id = _account_id(claims)
    messages = container.coach.get_chat_history(account_id, session_id)
    if messages is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return ChatHistoryResponse(session_id=session_id, messages=messages, total_count=len(messages))


@router.delete("/sessions/{session_id}", response_model=ClearSessionResponse)
async def clear_session(
    session_id: str,
    claims: dict = Depends(auth_dependency),
    container: CoachContainer = Depends(get_coach_container),
):
    account_id = _account_id(claims)
    cleared = await container.coach.clear_session(account_id, session_id)
    if not cleared:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return ClearSessionResponse(session_id=session_id, cleared=True)


@router.post("/tools/execute", response_model=ToolResult)
async def execute_tool(
    body: ToolExecuteRequest,
    claims: dict = Depends(auth_dependency),
    _rate: None = Depends(rate_limit_account),
    container: CoachContainer = Depends(get_coach_container),
):
    """Execute one tool directly. Failures are reported in the body, not as HTTP errors."""
    account_id = _account_id(claims)
    result = await container.dispatcher.execute(
        account_id, body.tool_name, body.parameters, org_scope=body.org_scope
    )
    logger.info(
        "Quick action executed",
        account_id=account_id,
        tool=body.tool_name,
        success=result.success,
    )
    return result


@router.get("/status", response_model=CoachStatusResponse)
async def coach_status(
    claims: dict = Depends(auth_dependency),
    container: CoachContainer = Depends(get_coach_container),
):
    _account_id(claims)
    return CoachStatusResponse(**container.coach.get_stats())
