"""
Business coach conversation orchestrator.

One turn walks the states in ``TurnState`` order:

    IDLE -> RATE_CHECKED -> SNAPSHOT_READY -> PROMPT_BUILT -> MODEL_CALLED
         -> TOOLS_PARSED -> TOOLS_EXECUTED -> RESPONDED

Any failure along the way ends the turn in FALLBACK: a localized static
reply with ``model="fallback"`` and zero tokens. Public turn methods never
raise.
"""

import asyncio
import json
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from app.features.business_coach.domain.chat import (
    ChatMessage,
    Language,
    MessageMetadata,
    Reply,
    ReplyMetadata,
    ToolCall,
    ToolCallResult,
)
from app.features.business_coach.domain.errors import (
    ModelTimeoutError,
    ModelUnavailableError,
    RateLimitedError,
    UpstreamFetchFailedError,
)
from app.features.business_coach.domain.snapshot import Snapshot
from app.features.business_coach.services.llm_client import ChatModel, ModelResponse, ModelToolCall
from app.features.business_coach.services.prompts import (
    FallbackKind,
    build_chat_messages,
    build_quick_actions,
    build_system_prompt,
    build_welcome_prompt,
    fallback_message,
    rate_limited_message,
)
from app.features.business_coach.services.rate_limiter import AccountRateLimiter
from app.features.business_coach.services.session_store import SessionStore
from app.features.business_coach.services.snapshot_service import SnapshotService
from app.features.business_coach.services.tool_dispatcher import ToolDispatcher
from app.features.business_coach.services.tools import build_tool_schemas
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class TurnState(StrEnum):
    IDLE = "idle"
    RATE_CHECKED = "rate_checked"
    SNAPSHOT_READY = "snapshot_ready"
    PROMPT_BUILT = "prompt_built"
    MODEL_CALLED = "model_called"
    TOOLS_PARSED = "tools_parsed"
    TOOLS_EXECUTED = "tools_executed"
    RESPONDED = "responded"
    FALLBACK = "fallback"


@dataclass(slots=True)
class _Turn:
    account_id: str
    kind: str
    language: Language
    session_id: str | None = None
    state: TurnState = TurnState.IDLE
    started_at: float = field(default_factory=time.time)

    def advance(self, state: TurnState) -> None:
        self.state = state
        logger.debug("Coach turn advanced", account_id=self.account_id, turn=self.kind, state=state.value)

    def elapsed_ms(self) -> int:
        return int((time.time() - self.started_at) * 1000)


def parse_tool_calls(raw_calls: list[ModelToolCall]) -> list[ToolCall]:
    """Decode tool-call arguments; calls with malformed arguments are dropped."""
    parsed: list[ToolCall] = []
    for call in raw_calls:
        try:
            params = json.loads(call.arguments or "{}")
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse tool call arguments", tool=call.name, error=str(e))
            continue
        if not isinstance(params, dict):
            logger.warning("Tool call arguments are not an object", tool=call.name)
            continue
        parsed.append(ToolCall(id=call.id, name=call.name, parameters=params))
    return parsed


def _error_code(error: Exception) -> str:
    if isinstance(error, ModelTimeoutError):
        return "model_timeout"
    if isinstance(error, ModelUnavailableError):
        return "model_unavailable"
    if isinstance(error, UpstreamFetchFailedError):
        return "upstream_fetch_failed"
    return "internal_error"


class CoachService:
    """Welcome messages and chat turns over an account's snapshot."""

    def __init__(
        self,
        *,
        rate_limiter: AccountRateLimiter,
        snapshot_service: SnapshotService,
        session_store: SessionStore,
        dispatcher: ToolDispatcher,
        model: ChatModel,
        rate_limit_enabled: bool = True,
        timeout_seconds: float = 30.0,
        temperature: float = 0.7,
        welcome_max_tokens: int = 500,
        chat_max_tokens: int = 800,
        history_window: int = 8,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.rate_limiter = rate_limiter
        self.snapshot_service = snapshot_service
        self.session_store = session_store
        self.dispatcher = dispatcher
        self.model = model
        self.rate_limit_enabled = rate_limit_enabled
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.welcome_max_tokens = welcome_max_tokens
        self.chat_max_tokens = chat_max_tokens
        self.history_window = history_window
        self._clock = clock
        self._tool_schemas = build_tool_schemas()

    # ------------------------------------------------------------------ turns

    async def generate_welcome_message(
        self,
        account_id: str,
        org_scope: str | None = None,
        language: Language | None = None,
    ) -> Reply:
        turn = _Turn(account_id=account_id, kind="welcome", language=language or "en")
        try:
            await self._check_rate(turn)

            snapshot = await self.snapshot_service.get_snapshot(account_id, org_scope=org_scope)
            if language is None:
                turn.language = snapshot.meta.language
            turn.advance(TurnState.SNAPSHOT_READY)

            messages = [
                {"role": "system", "content": build_system_prompt(turn.language, snapshot)},
                {"role": "user", "content": build_welcome_prompt(turn.language, snapshot)},
            ]
            turn.advance(TurnState.PROMPT_BUILT)

            response = await self._call_model(turn, messages, self.welcome_max_tokens)
            tool_calls, tool_results = await self._run_tools(turn, response, org_scope)
            reply = self._respond(turn, snapshot, response, tool_calls, tool_results)

        except RateLimitedError as e:
            return self._rate_limited(turn, e)
        except Exception as e:
            return self._fallback(turn, "welcome", e)

        logger.info(
            "Generated welcome message",
            account_id=account_id,
            language=turn.language,
            tokens=reply.metadata.tokens,
            duration_ms=reply.metadata.duration_ms,
            has_recommendations=bool(snapshot.recommendations),
            tool_calls_executed=len(tool_results),
        )
        return reply

    async def process_chat_message(
        self,
        account_id: str,
        message: str,
        session_id: str | None = None,
        language: Language = "en",
        org_scope: str | None = None,
    ) -> Reply:
        turn = _Turn(account_id=account_id, kind="chat", language=language, session_id=session_id)
        try:
            await self._check_rate(turn)

            session = await self.session_store.get_or_create(account_id, session_id, language)
            turn.session_id = session.id

            snapshot = await self.snapshot_service.get_snapshot(account_id, org_scope=org_scope)
            turn.advance(TurnState.SNAPSHOT_READY)

            messages = build_chat_messages(
                build_system_prompt(language, snapshot),
                self.session_store.history(session.id),
                message,
                self.history_window,
            )
            turn.advance(TurnState.PROMPT_BUILT)

            response = await self._call_model(turn, messages, self.chat_max_tokens)
            tool_calls, tool_results = await self._run_tools(turn, response, org_scope)
            reply = self._respond(turn, snapshot, response, tool_calls, tool_results)

            now = self._clock()
            await self.session_store.append(
                session.id,
                ChatMessage(id=self._message_id(), role="user", content=message, timestamp=now),
            )
            await self.session_store.append(
                session.id,
                ChatMessage(
                    id=self._message_id(),
                    role="assistant",
                    content=reply.message,
                    timestamp=self._clock(),
                    tool_calls=tool_calls or None,
                    metadata=MessageMetadata(
                        tokens=reply.metadata.tokens,
                        model=reply.metadata.model,
                        duration_ms=reply.metadata.duration_ms,
                    ),
                ),
            )

        except RateLimitedError as e:
            return self._rate_limited(turn, e)
        except Exception as e:
            return self._fallback(turn, "chat_error", e)

        logger.info(
            "Processed chat message",
            account_id=account_id,
            session_id=session.id,
            language=language,
            tokens=reply.metadata.tokens,
            duration_ms=reply.metadata.duration_ms,
            tool_calls_count=len(tool_calls),
            tool_calls_executed=len(tool_results),
        )
        return reply

    # ------------------------------------------------------------ turn steps

    async def _check_rate(self, turn: _Turn) -> None:
        """
        Raises:
            RateLimitedError: the account exhausted its window
        """
        if self.rate_limit_enabled:
            decision = await self.rate_limiter.admit(turn.account_id)
            if not decision.allowed:
                raise RateLimitedError(decision.retry_after or 1)
        turn.advance(TurnState.RATE_CHECKED)

    def _rate_limited(self, turn: _Turn, e: RateLimitedError) -> Reply:
        retry_after = e.retry_after_seconds
        turn.advance(TurnState.FALLBACK)
        logger.info("Coach turn rate limited", account_id=turn.account_id, retry_after=retry_after)
        return Reply(
            message=rate_limited_message(turn.language, retry_after),
            session_id=turn.session_id,
            language=turn.language,
            metadata=ReplyMetadata(
                tokens=0,
                model="fallback",
                duration_ms=turn.elapsed_ms(),
                error="rate_limited",
                retry_after_seconds=retry_after,
            ),
        )

    async def _call_model(
        self, turn: _Turn, messages: list[dict[str, Any]], max_tokens: int
    ) -> ModelResponse:
        try:
            response = await asyncio.wait_for(
                self.model.complete(
                    messages,
                    tools=self._tool_schemas,
                    max_tokens=max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            raise ModelTimeoutError(self.timeout_seconds) from None

        if not response.content and not response.tool_calls:
            raise ModelUnavailableError("No response from model")

        turn.advance(TurnState.MODEL_CALLED)
        return response

    async def _run_tools(
        self, turn: _Turn, response: ModelResponse, org_scope: str | None
    ) -> tuple[list[ToolCall], list[ToolCallResult]]:
        tool_calls = parse_tool_calls(response.tool_calls)
        turn.advance(TurnState.TOOLS_PARSED)

        tool_results: list[ToolCallResult] = []
        if tool_calls:
            tool_results = await self.dispatcher.execute_batch(turn.account_id, tool_calls, org_scope)
            for result in tool_results:
                logger.info(
                    "Tool executed",
                    account_id=turn.account_id,
                    tool=result.tool_call.name,
                    success=result.success,
                )
        turn.advance(TurnState.TOOLS_EXECUTED)
        return tool_calls, tool_results

    def _respond(
        self,
        turn: _Turn,
        snapshot: Snapshot,
        response: ModelResponse,
        tool_calls: list[ToolCall],
        tool_results: list[ToolCallResult],
    ) -> Reply:
        text = response.content or ""
        if not text.strip():
            text = " ".join(result.message for result in tool_results)
        if not text.strip():
            raise ModelUnavailableError("Model returned no usable message")

        turn.advance(TurnState.RESPONDED)
        return Reply(
            message=text,
            session_id=turn.session_id,
            tool_calls=tool_calls,
            tool_results=tool_results,
            suggestions=build_quick_actions(snapshot, turn.language),
            language=turn.language,
            metadata=ReplyMetadata(
                tokens=response.total_tokens,
                model=response.model,
                duration_ms=turn.elapsed_ms(),
            ),
        )

    def _fallback(self, turn: _Turn, kind: FallbackKind, error: Exception) -> Reply:
        failed_at = turn.state
        turn.advance(TurnState.FALLBACK)
        logger.error(
            "Coach turn failed, using fallback reply",
            account_id=turn.account_id,
            turn=turn.kind,
            failed_after=failed_at.value,
            error=str(error),
            error_type=type(error).__name__,
        )
        return Reply(
            message=fallback_message(turn.language, kind),
            session_id=turn.session_id,
            language=turn.language,
            metadata=ReplyMetadata(
                tokens=0,
                model="fallback",
                duration_ms=turn.elapsed_ms(),
                error=_error_code(error),
            ),
        )

    @staticmethod
    def _message_id() -> str:
        return f"msg_{uuid.uuid4().hex[:12]}"

    # -------------------------------------------------------------- sessions

    def get_chat_history(self, account_id: str, session_id: str) -> list[ChatMessage] | None:
        """Messages of a session, or None when it does not exist or is not the account's."""
        session = self.session_store.get(session_id)
        if session is None or session.account_id != account_id:
            return None
        return self.session_store.history(session_id)

    async def clear_session(self, account_id: str, session_id: str) -> bool:
        session = self.session_store.get(session_id)
        if session is None or session.account_id != account_id:
            return False
        return await self.session_store.clear(session_id)

    # ---------------------------------------------------------------- status

    def is_available(self) -> bool:
        return self.model.available

    def get_stats(self) -> dict[str, Any]:
        limiter_stats = self.rate_limiter.stats()
        return {
            "available": self.is_available(),
            "active_sessions": self.session_store.active_sessions,
            "rate_limited_accounts": limiter_stats.get("rate_limited_accounts"),
            "cache_size": len(self.snapshot_service.cache),
            "rate_limiter": limiter_stats,
        }
