"""
Service layer for the business coach feature.
"""

from .coach_service import CoachService, TurnState
from .rate_limiter import FixedWindowRateLimiter, RedisFixedWindowRateLimiter
from .session_store import SessionStore
from .snapshot_cache import SnapshotCache
from .snapshot_service import SnapshotService
from .tool_dispatcher import ToolDispatcher

__all__ = [
    "CoachService",
    "TurnState",
    "FixedWindowRateLimiter",
    "RedisFixedWindowRateLimiter",
    "SessionStore",
    "SnapshotCache",
    "SnapshotService",
    "ToolDispatcher",
]
