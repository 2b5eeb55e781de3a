# app/models/api/coach_response.py
"""
Business coach API response models.
Used by routes for output formatting. Snapshot, Reply and ToolResult are
returned as their domain models directly.
"""

from typing import Any

from pydantic import BaseModel, Field

from app.features.business_coach.domain.chat import ChatMessage


class InvalidateResponse(BaseModel):
    """Response after dropping cached snapshots."""

    invalidated: int = Field(..., description="Number of cached snapshot variants dropped")


class StaleItemsResponse(BaseModel):
    """Counts of items needing attention."""

    stale_leads: int = Field(..., description="Leads waiting for follow-up")
    issues_count: int = Field(..., description="Campaign and connection issues")
    stale_properties: int = Field(..., description="Active listings not updated recently")
    overdue_tasks: int = Field(..., description="Tasks past their due date")


class ChatHistoryResponse(BaseModel):
    """Messages of one chat session."""

    session_id: str = Field(..., description="Session ID")
    messages: list[ChatMessage] = Field(default_factory=list, description="Messages, oldest first")
    total_count: int = Field(..., description="Number of messages returned")


class ClearSessionResponse(BaseModel):
    """Response after clearing a chat session."""

    session_id: str = Field(..., description="Session ID")
    cleared: bool = Field(..., description="Whether the session was removed")


class CoachStatusResponse(BaseModel):
    """Coach availability and runtime statistics."""

    available: bool = Field(..., description="Whether the language model is configured")
    active_sessions: int = Field(..., description="Chat sessions held in memory")
    rate_limited_accounts: int | None = Field(
        None, description="Accounts currently over their limit (memory backend only)"
    )
    cache_size: int = Field(..., description="Cached snapshot entries")
    rate_limiter: dict[str, Any] = Field(default_factory=dict, description="Rate limiter settings")
