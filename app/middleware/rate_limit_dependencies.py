"""
Rate Limit Dependencies - per-account rate limiting for coach endpoints.

Usage:
    from app.middleware.rate_limit_dependencies import rate_limit_account

    @router.get("/my-endpoint")
    async def my_endpoint(
        request: Request,
        claims: dict = Depends(auth_dependency),
        _rate: None = Depends(rate_limit_account),
    ):
        pass

The limiter itself lives on the coach container (``app.state.coach``), so
the HTTP layer and the conversation orchestrator share one window per
account.
"""

from fastapi import Depends, HTTPException, Request, status

from app.auth.verify import auth_dependency
from app.config import settings
from app.features.business_coach.container import get_coach_container
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def rate_limit_account(
    request: Request,
    claims: dict = Depends(auth_dependency),
) -> None:
    """
    Rate limit dependency for authenticated endpoints (per account).

    Raises:
        HTTPException: 429 if the account's window is exhausted
    """
    if not settings.RATE_LIMIT_ENABLED:
        return

    account_id = claims.get("sub")
    if not account_id:
        logger.warning("Rate limit check skipped - no account id in claims")
        return

    container = get_coach_container(request)
    decision = await container.rate_limiter.admit(account_id)
    info = decision.as_info()

    # Read by RateLimitHeadersMiddleware
    request.state.rate_limit_info = info

    if not decision.allowed:
        logger.warning(
            "Account rate limit exceeded",
            account_id=account_id,
            limit=info["limit"],
            retry_after=info["retry_after"],
            path=request.url.path,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Too many requests. Try again in {info['retry_after']} seconds.",
                "limit": info["limit"],
                "retry_after": info["retry_after"],
            },
            headers={"Retry-After": str(info["retry_after"])},
        )
