"""
In-process store of short chat sessions.

Lookups are strictly by session id. A session belongs to exactly one
account; asking for another account's session id mints a new session
instead of exposing it.
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from app.features.business_coach.domain.chat import ChatMessage, ChatSession, Language
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SessionStore:
    def __init__(
        self,
        max_messages: int = 20,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.max_messages = max_messages
        self._clock = clock
        self._sessions: dict[str, ChatSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    def _new_session_id(self, account_id: str) -> str:
        millis = int(self._clock().timestamp() * 1000)
        # The random suffix keeps ids unique when two sessions share a millisecond.
        return f"session_{account_id}_{millis}_{uuid.uuid4().hex[:8]}"

    async def get_or_create(
        self, account_id: str, session_id: str | None = None, language: Language = "en"
    ) -> ChatSession:
        if session_id:
            session = self._sessions.get(session_id)
            if session is not None and session.account_id == account_id:
                return session
            if session is not None:
                logger.warning(
                    "Session requested by a different account, starting a new one",
                    account_id=account_id,
                )

        now = self._clock()
        session = ChatSession(
            id=self._new_session_id(account_id),
            account_id=account_id,
            language=language,
            created_at=now,
            updated_at=now,
        )
        self._sessions[session.id] = session
        logger.debug("Chat session created", account_id=account_id, session_id=session.id)
        return session

    def get(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    async def append(self, session_id: str, message: ChatMessage) -> ChatSession:
        """Append a message, keeping only the most recent ``max_messages``."""
        async with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(session_id)

            session.messages.append(message)
            overflow = len(session.messages) - self.max_messages
            if overflow > 0:
                del session.messages[:overflow]
            session.updated_at = self._clock()
            return session

    def history(self, session_id: str) -> list[ChatMessage]:
        session = self._sessions.get(session_id)
        return list(session.messages) if session else []

    async def clear(self, session_id: str) -> bool:
        async with self._lock_for(session_id):
            removed = self._sessions.pop(session_id, None) is not None
        self._locks.pop(session_id, None)
        if removed:
            logger.debug("Chat session cleared", session_id=session_id)
        return removed
