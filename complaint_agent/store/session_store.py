"""
Session store façade: durable get/create/update of conversation state.

The repository is the external relational store. The façade owns the
rules the core depends on: idempotent creation, monotonic field
updates, and the message counter / timestamp side effects of a patch.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Protocol

from complaint_agent.config import settings
from complaint_agent.errors import SessionNotFound
from complaint_agent.schemas.session_schema import (
    COLLECTED_FIELDS,
    SYSTEM_FIELDS,
    ConversationSession,
    ConversationState,
    utcnow,
)
from complaint_agent.store.base import guarded

logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence contract for conversation sessions."""

    async def get(self, session_id: str) -> Optional[ConversationSession]: ...

    async def insert_if_absent(self, session: ConversationSession) -> ConversationSession: ...

    async def save(self, session: ConversationSession) -> None: ...

    async def list_all(self) -> list[ConversationSession]: ...

    async def delete(self, session_id: str) -> None: ...


class InMemorySessionRepository:
    """Dict-backed repository. Returns copies so callers never share stored state."""

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}

    async def get(self, session_id: str) -> Optional[ConversationSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def insert_if_absent(self, session: ConversationSession) -> ConversationSession:
        existing = self._sessions.setdefault(session.session_id, session.model_copy(deep=True))
        return existing.model_copy(deep=True)

    async def save(self, session: ConversationSession) -> None:
        self._sessions[session.session_id] = session.model_copy(deep=True)

    async def list_all(self) -> list[ConversationSession]:
        return [s.model_copy(deep=True) for s in self._sessions.values()]

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def reset(self) -> None:
        """Clear all sessions. Used by test fixtures for isolation."""
        self._sessions.clear()


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class SessionStore:
    """Façade the dispatcher and tools use for every session read and write."""

    def __init__(
        self,
        repository: SessionRepository,
        timeout_sec: float = settings.store.timeout_sec,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repository
        self._timeout = timeout_sec
        self._clock = clock

    async def get(self, session_id: str) -> Optional[ConversationSession]:
        return await guarded(self._repo.get(session_id), self._timeout, "get_session")

    async def get_or_create(
        self, session_id: str, user_id: Optional[str] = None
    ) -> ConversationSession:
        """Return the session for ``session_id``, creating it on first contact.

        Safe to call repeatedly: creation is an insert-if-absent, so two
        calls with the same id always yield the same session.
        """
        session = await self.get(session_id)
        if session is None:
            now = self._clock()
            fresh = ConversationSession(
                session_id=session_id,
                user_id=user_id,
                created_at=now,
                last_message_at=now,
            )
            session = await guarded(
                self._repo.insert_if_absent(fresh), self._timeout, "create_session"
            )
            if session.created_at == now:
                logger.info("Session created: %s", session_id)

        if user_id and not session.user_id:
            session.user_id = user_id
            await guarded(self._repo.save(session), self._timeout, "save_session")
        return session

    async def patch(
        self,
        session_id: str,
        fields: Optional[dict[str, Any]] = None,
        next_state: Optional[ConversationState] = None,
        corrections: Iterable[str] = (),
    ) -> ConversationSession:
        """
        Apply a handler's session patch.

        Collected fields are monotonic: an empty value never clears a
        field, and a filled field is only overwritten when it is named in
        ``corrections``. Every call bumps ``message_count`` and stamps
        ``last_message_at``.

        Raises:
            ValueError: If ``fields`` names something that is not a session field.
            SessionNotFound: If the session does not exist.
            StoreUnavailable: On any persistence failure.
        """
        fields = fields or {}
        corrections = set(corrections)
        unknown = set(fields) - COLLECTED_FIELDS - SYSTEM_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields in patch: {sorted(unknown)}")

        session = await self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        updates: dict[str, Any] = {}
        for name, value in fields.items():
            if name in SYSTEM_FIELDS:
                updates[name] = value
                continue
            if _is_empty(value):
                continue
            current = getattr(session, name)
            if _is_empty(current) or name in corrections:
                updates[name] = value
            elif current != value:
                logger.debug("Ignoring overwrite of '%s' without explicit correction", name)

        data = session.model_dump()
        data.update(updates)
        if next_state is not None:
            data["current_state"] = next_state
        data["message_count"] = session.message_count + 1
        data["last_message_at"] = self._clock()

        updated = ConversationSession.model_validate(data)
        await guarded(self._repo.save(updated), self._timeout, "save_session")
        return updated

    async def expire(self, max_age_hours: int = settings.store.session_max_age_hours) -> int:
        """Delete terminal sessions idle for longer than ``max_age_hours``. Returns the count."""
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        sessions = await guarded(self._repo.list_all(), self._timeout, "list_sessions")
        expired = [s for s in sessions if s.is_terminal and s.last_message_at < cutoff]
        for session in expired:
            await guarded(self._repo.delete(session.session_id), self._timeout, "delete_session")
        if expired:
            logger.info("Expired %d terminal sessions", len(expired))
        return len(expired)
