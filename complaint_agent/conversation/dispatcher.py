"""
Turn dispatcher: the single entry point for a citizen message.

Loads the session, runs the handler for its current state, validates
the proposed edge against the transition table, and persists the
result before the reply leaves this module. Turns for the same session
are serialised with a per-session lock; different sessions run
concurrently.

Usage:
    dispatcher = Dispatcher.build()
    outcome = await dispatcher.handle_turn("session-1", "Hello")
    print(outcome.reply, outcome.state)
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from complaint_agent.config import settings
from complaint_agent.conversation.handlers import (
    RETRY_LATER_MESSAGE,
    HandlerDeps,
    StateHandler,
    build_handlers,
)
from complaint_agent.conversation.intent import GenderCorrectionGuardrail, ScopeGuardrail
from complaint_agent.conversation.state_machine import (
    TERMINAL_STATES,
    ConversationStateMachine,
    InvalidTransitionError,
)
from complaint_agent.errors import ComplaintAgentError
from complaint_agent.llm.classifier import ClassificationEngine, Classifier
from complaint_agent.llm.completion import (
    CompletionService,
    OpenAICompletionService,
    RetryingCompletionService,
)
from complaint_agent.llm.extraction import KeywordCompletionService
from complaint_agent.logging_context import get_session_logger, set_session_id
from complaint_agent.schemas.session_schema import ConversationSession, ConversationState
from complaint_agent.schemas.transport_schema import InboundMedia
from complaint_agent.services.complaints import ComplaintService
from complaint_agent.services.tracking import TrackingService
from complaint_agent.store.blob_store import BlobStore, InMemoryBlobStore
from complaint_agent.store.complaint_repository import (
    ComplaintRepository,
    InMemoryComplaintRepository,
)
from complaint_agent.store.session_store import InMemorySessionRepository, SessionStore
from complaint_agent.tools import ToolContext, ToolInvoker, build_default_registry

logger = get_session_logger(__name__)

TERMINAL_REPLY = (
    "This conversation has ended. Please start a new session to file another "
    "complaint or to check on an existing one."
)

# Handlers that finish by handing over to the next state run in the same turn.
MAX_CHAIN_STEPS = 3

# Longer messages that mention gender are treated as content, not a correction.
MAX_CORRECTION_WORDS = 8


@dataclass
class TurnOutcome:
    """What the transport layer needs to answer one turn."""
    session_id: str
    reply: str
    state: ConversationState
    tracking_number: Optional[str] = None
    # Set when the turn ended in the error state because something broke.
    failed: bool = False

    @property
    def is_complete(self) -> bool:
        return self.state in TERMINAL_STATES


class SessionLocks:
    """Per-session mutual exclusion. Idle locks are dropped from the table."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                del self._locks[session_id]

    def __len__(self) -> int:
        return len(self._locks)


def default_completion_service() -> CompletionService:
    """The hosted model when an API key is configured, keyword matching otherwise."""
    if settings.model.api_key:
        return RetryingCompletionService(OpenAICompletionService())
    logger.warning("OPENAI_API_KEY not set, using offline keyword completion service")
    return KeywordCompletionService()


class Dispatcher:
    def __init__(
        self,
        sessions: SessionStore,
        handlers: dict[ConversationState, StateHandler],
        tool_context: ToolContext,
        scope: Optional[ScopeGuardrail] = None,
        gender: Optional[GenderCorrectionGuardrail] = None,
    ) -> None:
        self.sessions = sessions
        self.handlers = handlers
        self.tool_context = tool_context
        self.scope = scope or ScopeGuardrail()
        self.gender = gender or GenderCorrectionGuardrail()
        self.locks = SessionLocks()

    @classmethod
    def build(
        cls,
        completion: Optional[CompletionService] = None,
        classifier: Optional[Classifier] = None,
        sessions: Optional[SessionStore] = None,
        complaints: Optional[ComplaintRepository] = None,
        blobs: Optional[BlobStore] = None,
    ) -> "Dispatcher":
        """Wire a dispatcher with in-memory storage unless collaborators are given."""
        sessions = sessions or SessionStore(InMemorySessionRepository())
        complaint_service = ComplaintService(complaints or InMemoryComplaintRepository())
        tool_context = ToolContext(
            sessions=sessions,
            complaints=complaint_service,
            tracking=TrackingService(complaint_service),
            blobs=blobs or InMemoryBlobStore(),
        )
        completion = completion or default_completion_service()
        deps = HandlerDeps(
            invoker=ToolInvoker(build_default_registry()),
            tools=tool_context,
            completion=completion,
            classifier=classifier or ClassificationEngine(completion),
        )
        return cls(sessions, build_handlers(deps), tool_context)

    async def handle_turn(
        self,
        session_id: str,
        message: str,
        user_id: Optional[str] = None,
        media: Sequence[InboundMedia] = (),
    ) -> TurnOutcome:
        """Process one citizen message. Never raises for infrastructure failures."""
        async with self.locks.hold(session_id):
            set_session_id(session_id)
            try:
                return await self._run_turn(session_id, message, user_id, media)
            except InvalidTransitionError as exc:
                logger.error("Rejected state change: %s", exc)
                return await self._fail(session_id, "invalid_transition")
            except ComplaintAgentError as exc:
                logger.error("Turn failed: %s: %s", type(exc).__name__, exc)
                return await self._fail(session_id, type(exc).__name__)
            except Exception:
                logger.exception("Unexpected error while handling turn")
                return await self._fail(session_id, "internal_error")

    async def _run_turn(
        self,
        session_id: str,
        message: str,
        user_id: Optional[str],
        media: Sequence[InboundMedia],
    ) -> TurnOutcome:
        session = await self.sessions.get_or_create(session_id, user_id)
        if session.is_terminal:
            return TurnOutcome(session_id, TERMINAL_REPLY, session.current_state)

        if session.current_state == ConversationState.GREETING:
            scope = self.scope.check_topic_scope(message)
            if not scope.passed:
                return TurnOutcome(session_id, scope.message or "", session.current_state)

        gender = self.gender.detect(message)
        if gender is not None:
            session = await self.sessions.patch(
                session_id, {"gender": gender}, corrections=["gender"]
            )
            if len(message.split()) <= MAX_CORRECTION_WORDS:
                return TurnOutcome(session_id, self.gender.apology(gender), session.current_state)

        return await self._run_handlers(session, message, media)

    async def _run_handlers(
        self, session: ConversationSession, message: str, media: Sequence[InboundMedia]
    ) -> TurnOutcome:
        machine = ConversationStateMachine(session.current_state)
        replies: list[str] = []
        tracking_number = None

        for _ in range(MAX_CHAIN_STEPS):
            handler = self.handlers.get(machine.current_state)
            if handler is None:
                raise ComplaintAgentError(f"No handler for state {machine.current_state.value}")

            result = await handler.handle(session, message, media)
            machine.transition(result.next_state)
            # Persist before anything is sent back to the client.
            session = await self.sessions.patch(
                session.session_id,
                result.patch,
                next_state=result.next_state,
                corrections=result.corrections,
            )
            if result.reply:
                replies.append(result.reply)
            tracking_number = result.tracking_number or tracking_number
            if not result.chain:
                break
        else:
            logger.warning("Chain limit reached in state %s", machine.current_state.value)

        logger.info("Turn complete: %s", " -> ".join(machine.get_state_trace()))
        return TurnOutcome(
            session_id=session.session_id,
            reply="\n\n".join(replies),
            state=session.current_state,
            tracking_number=tracking_number,
            failed=session.current_state == ConversationState.ERROR,
        )

    async def _fail(self, session_id: str, reason: str) -> TurnOutcome:
        """Move the session to ``error`` if the store allows it and tell the citizen to retry."""
        try:
            await self.sessions.patch(
                session_id, {"error_reason": reason}, next_state=ConversationState.ERROR
            )
        except ComplaintAgentError as exc:
            logger.error("Could not record error state: %s", exc)
        return TurnOutcome(session_id, RETRY_LATER_MESSAGE, ConversationState.ERROR, failed=True)
