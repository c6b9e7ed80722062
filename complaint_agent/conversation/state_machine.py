"""
Finite state machine for intake conversation flow control.

Defines the conversation states and every legal edge between them.
Handlers propose a next state from probabilistic LLM output; the
machine rejects anything not in the table, so the persisted session
can only move along the declared intake and tracking paths.

Usage:
    sm = ConversationStateMachine(ConversationState.GREETING)
    sm.transition(ConversationState.IDENTITY_CAPTURE)
    assert sm.current_state == ConversationState.IDENTITY_CAPTURE
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from complaint_agent.errors import ComplaintAgentError
from complaint_agent.schemas.session_schema import ConversationState

logger = logging.getLogger(__name__)

TERMINAL_STATES: frozenset[ConversationState] = frozenset({
    ConversationState.COMPLETED,
    ConversationState.ERROR,
})


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: ConversationState
    to_state: ConversationState
    label: str


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: ConversationState
    entered_at: datetime


class InvalidTransitionError(ComplaintAgentError):
    """Raised when a transition is not valid from the current state."""


class ConversationStateMachine:
    """
    Validates state changes against the explicit transition table.

    Self-loops are listed explicitly: "stay in this state and ask again"
    is a real edge, not an implicit default.
    """

    TRANSITIONS: list[Transition] = [
        # --- Greeting ---
        Transition(ConversationState.GREETING, ConversationState.IDENTITY_CAPTURE,
                   "introduced"),
        Transition(ConversationState.GREETING, ConversationState.TRACKING,
                   "tracking_intent"),
        Transition(ConversationState.GREETING, ConversationState.ERROR,
                   "failure"),

        # --- Identity ---
        Transition(ConversationState.IDENTITY_CAPTURE, ConversationState.IDENTITY_CAPTURE,
                   "need_contact"),
        Transition(ConversationState.IDENTITY_CAPTURE, ConversationState.COMPLAINT_CAPTURE,
                   "identity_recorded"),
        Transition(ConversationState.IDENTITY_CAPTURE, ConversationState.ERROR,
                   "failure"),

        # --- Complaint details ---
        Transition(ConversationState.COMPLAINT_CAPTURE, ConversationState.COMPLAINT_CAPTURE,
                   "need_details"),
        Transition(ConversationState.COMPLAINT_CAPTURE, ConversationState.EVIDENCE_CAPTURE,
                   "description_sufficient"),
        Transition(ConversationState.COMPLAINT_CAPTURE, ConversationState.CLASSIFICATION,
                   "skip_evidence"),
        Transition(ConversationState.COMPLAINT_CAPTURE, ConversationState.ERROR,
                   "failure"),

        # --- Evidence ---
        Transition(ConversationState.EVIDENCE_CAPTURE, ConversationState.EVIDENCE_CAPTURE,
                   "evidence_added"),
        Transition(ConversationState.EVIDENCE_CAPTURE, ConversationState.CLASSIFICATION,
                   "evidence_done"),
        Transition(ConversationState.EVIDENCE_CAPTURE, ConversationState.ERROR,
                   "failure"),

        # --- Classification ---
        Transition(ConversationState.CLASSIFICATION, ConversationState.CLASSIFICATION,
                   "classification_pending"),
        Transition(ConversationState.CLASSIFICATION, ConversationState.SUBMISSION,
                   "classification_accepted"),
        Transition(ConversationState.CLASSIFICATION, ConversationState.COMPLAINT_CAPTURE,
                   "details_changed"),
        Transition(ConversationState.CLASSIFICATION, ConversationState.ERROR,
                   "classification_rejected"),

        # --- Submission ---
        Transition(ConversationState.SUBMISSION, ConversationState.SUBMISSION,
                   "awaiting_confirmation"),
        Transition(ConversationState.SUBMISSION, ConversationState.COMPLETED,
                   "complaint_submitted"),
        Transition(ConversationState.SUBMISSION, ConversationState.COMPLAINT_CAPTURE,
                   "details_changed"),
        Transition(ConversationState.SUBMISSION, ConversationState.ERROR,
                   "failure"),

        # --- Tracking side-branch ---
        Transition(ConversationState.TRACKING, ConversationState.TRACKING,
                   "need_tracking_number"),
        Transition(ConversationState.TRACKING, ConversationState.COMPLETED,
                   "status_resolved"),
        Transition(ConversationState.TRACKING, ConversationState.ERROR,
                   "system_error"),
    ]

    def __init__(self, state: ConversationState = ConversationState.GREETING) -> None:
        self._current_state = state
        self._history: list[StateEntry] = [
            StateEntry(state=state, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> ConversationState:
        return self._current_state

    @classmethod
    def can_transition(cls, from_state: ConversationState, to_state: ConversationState) -> bool:
        return any(
            t.from_state == from_state and t.to_state == to_state for t in cls.TRANSITIONS
        )

    @classmethod
    def allowed_targets(cls, state: ConversationState) -> list[ConversationState]:
        """Return all states reachable in one step from ``state``."""
        return [t.to_state for t in cls.TRANSITIONS if t.from_state == state]

    def transition(self, to_state: ConversationState) -> ConversationState:
        """
        Move to ``to_state``.

        Raises:
            InvalidTransitionError: If the edge is not in the table.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.to_state == to_state:
                old_state = self._current_state
                self._current_state = to_state
                self._history.append(
                    StateEntry(state=to_state, entered_at=datetime.now(timezone.utc))
                )
                logger.debug(
                    "State transition: %s -> %s (%s)",
                    old_state.value, to_state.value, t.label,
                )
                return self._current_state

        valid = [s.value for s in self.allowed_targets(self._current_state)]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"to '{to_state.value}'. Valid targets: {valid}"
        )

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES
