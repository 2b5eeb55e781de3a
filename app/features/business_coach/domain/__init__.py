"""
Domain models for the business coach feature.

Raw gateway rows, the immutable Snapshot, conversation types and the error
taxonomy. No I/O happens in this package.
"""

from .chat import ChatMessage, ChatSession, Reply, Suggestion, ToolCall, ToolResult
from .errors import (
    CoachError,
    ModelTimeoutError,
    ModelUnavailableError,
    NotFoundOrNotOwnedError,
    RateLimitedError,
    ToolExecutionFailedError,
    UnknownToolError,
    UpstreamFetchFailedError,
)
from .records import LeadRecord, LeadSource, RawRecords, normalize_lead
from .snapshot import CampaignIssue, Recommendation, Snapshot

__all__ = [
    "CampaignIssue",
    "ChatMessage",
    "ChatSession",
    "CoachError",
    "LeadRecord",
    "LeadSource",
    "ModelTimeoutError",
    "ModelUnavailableError",
    "NotFoundOrNotOwnedError",
    "RateLimitedError",
    "RawRecords",
    "Recommendation",
    "Reply",
    "Snapshot",
    "Suggestion",
    "ToolCall",
    "ToolExecutionFailedError",
    "ToolResult",
    "UnknownToolError",
    "UpstreamFetchFailedError",
    "normalize_lead",
]
