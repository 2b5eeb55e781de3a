# app/routes/health.py
"""
Health check endpoints: liveness, readiness, database pool and chat model detail.
"""

import time

from fastapi import APIRouter, Request

from app.config import settings
from app.db.pool import db_health_check
from app.services.redis_client import fast_redis

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "business-coach"}


@router.get("/readyz")
async def readyz(request: Request):
    """
    Readiness check covering the database pool, Redis (only when it backs
    the rate limiter), the coach container and configuration.
    """
    checks = {}
    overall_ok = True

    # 1) Redis, only for the redis rate limit backend
    if settings.uses_redis():
        t0 = time.time()
        try:
            redis_ok = await fast_redis.ping()
            checks["redis"] = {
                "ok": redis_ok,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            overall_ok = overall_ok and redis_ok
        except Exception as e:
            checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
            overall_ok = False

    # 2) Database pool
    if settings.DB_POOL_ENABLED:
        t0 = time.time()
        try:
            db_health = await db_health_check()
            is_healthy = db_health.get("healthy", False)
            checks["database"] = {
                "ok": is_healthy,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            if "pool_stats" in db_health:
                checks["database"].update(db_health["pool_stats"])
            if not is_healthy:
                checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            overall_ok = overall_ok and is_healthy

        except Exception as e:
            checks["database"] = {
                "ok": False,
                "error": f"{type(e).__name__}: {e}",
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
            overall_ok = False

    # 3) Coach container
    container = getattr(request.app.state, "coach", None)
    checks["coach"] = {
        "ok": container is not None,
        "model_available": container.coach.is_available() if container else False,
    }
    overall_ok = overall_ok and container is not None

    # 4) Configuration checks
    config_issues = []
    if not settings.SUPABASE_DB_URL:
        config_issues.append("SUPABASE_DB_URL not set")
    if not settings.OPENAI_API_KEY:
        config_issues.append("OPENAI_API_KEY not set")
    if settings.uses_redis() and not settings.REDIS_URL:
        config_issues.append("REDIS_URL not set")

    config_ok = not config_issues
    checks["configuration"] = {
        "ok": config_ok,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()


@router.get("/health/model")
async def model_health(request: Request):
    """Chat model client state plus a one-token round trip to the API."""
    container = getattr(request.app.state, "coach", None)
    if container is None:
        return {"healthy": False, "service": "chat_model", "error": "Coach not initialized"}
    return await container.model.health_check()
