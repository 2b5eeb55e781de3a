"""
Conversation domain models: sessions, messages, tool calls and replies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

Language = Literal["en", "he"]


class MessageMetadata(BaseModel):
    tokens: int = 0
    model: str
    duration_ms: int = 0


class ToolCall(BaseModel):
    id: str
    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None
    error: str | None = None


class ToolCallResult(ToolResult):
    tool_call: ToolCall


class ChatMessage(BaseModel):
    id: str
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime
    tool_calls: list[ToolCall] | None = None
    metadata: MessageMetadata | None = None


class Suggestion(BaseModel):
    text: str
    action: str
    params: dict[str, Any] | None = None


class ReplyMetadata(BaseModel):
    tokens: int = 0
    model: str
    duration_ms: int = 0
    error: str | None = None
    retry_after_seconds: int | None = None


class Reply(BaseModel):
    message: str
    session_id: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolCallResult] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    language: Language = "en"
    metadata: ReplyMetadata

    @property
    def is_fallback(self) -> bool:
        return self.metadata.model == "fallback"


@dataclass(slots=True)
class ChatSession:
    """A short conversation owned by the session store."""

    id: str
    account_id: str
    language: Language
    created_at: datetime
    updated_at: datetime
    messages: list[ChatMessage] = field(default_factory=list)
