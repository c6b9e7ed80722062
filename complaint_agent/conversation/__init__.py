from complaint_agent.conversation.intent import (
    GenderCorrectionGuardrail,
    IntentDetector,
    ScopeGuardrail,
)
from complaint_agent.conversation.state_machine import (
    ConversationStateMachine,
    InvalidTransitionError,
)

__all__ = [
    "ConversationStateMachine",
    "InvalidTransitionError",
    "ScopeGuardrail",
    "IntentDetector",
    "GenderCorrectionGuardrail",
]
