from complaint_agent.conversation.handlers.base import (
    RETRY_LATER_MESSAGE,
    HandlerDeps,
    HandlerResult,
    StateHandler,
)
from complaint_agent.conversation.handlers.classification import ClassificationHandler
from complaint_agent.conversation.handlers.complaint import ComplaintHandler
from complaint_agent.conversation.handlers.evidence import EvidenceHandler
from complaint_agent.conversation.handlers.greeting import GreetingHandler
from complaint_agent.conversation.handlers.identity import IdentityHandler
from complaint_agent.conversation.handlers.submission import SubmissionHandler
from complaint_agent.conversation.handlers.tracking import TrackingHandler
from complaint_agent.schemas.session_schema import ConversationState

HANDLER_CLASSES: list[type[StateHandler]] = [
    GreetingHandler,
    IdentityHandler,
    ComplaintHandler,
    EvidenceHandler,
    ClassificationHandler,
    SubmissionHandler,
    TrackingHandler,
]


def build_handlers(deps: HandlerDeps) -> dict[ConversationState, StateHandler]:
    """One handler per non-terminal state."""
    return {cls.state: cls(deps) for cls in HANDLER_CLASSES}


__all__ = [
    "RETRY_LATER_MESSAGE",
    "HandlerDeps",
    "HandlerResult",
    "StateHandler",
    "build_handlers",
]
