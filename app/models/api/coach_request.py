# app/models/api/coach_request.py
"""
Business coach API request models.
Used by routes for input validation.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class WelcomeRequest(BaseModel):
    """Request for a personalized welcome message."""

    org_scope: str | None = Field(None, description="Organization scope to restrict data to")
    language: Literal["en", "he"] | None = Field(
        None, description="Reply language (defaults to the account's preferred language)"
    )


class ChatRequest(BaseModel):
    """Request for one chat turn."""

    message: str = Field(..., min_length=1, max_length=4000, description="User message")
    session_id: str | None = Field(None, description="Existing session to continue")
    language: Literal["en", "he"] = Field("en", description="Reply language")
    org_scope: str | None = Field(None, description="Organization scope to restrict data to")


class ToolExecuteRequest(BaseModel):
    """Request for executing a tool directly, e.g. from a quick action."""

    tool_name: str = Field(..., min_length=1, description="Tool to execute")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Tool parameters")
    org_scope: str | None = Field(None, description="Organization scope to restrict data to")
