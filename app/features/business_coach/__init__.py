"""
Business coach feature package.

This vertical slice keeps every layer of the coach co-located: domain
models, the classification and ranking pipeline, the record gateway, the
snapshot/chat services and the HTTP router.
"""

# Re-export the primary building blocks. The router is imported from
# ``.api.router`` directly to keep middleware imports acyclic.
from .container import CoachContainer, build_coach_container, get_coach_container  # noqa: F401
from .domain.chat import Reply  # noqa: F401
from .domain.snapshot import Snapshot  # noqa: F401
from .services.coach_service import CoachService  # noqa: F401
from .services.snapshot_service import SnapshotService  # noqa: F401
