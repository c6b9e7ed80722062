"""Conversation session models and per-session state."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationState(str, Enum):
    """All possible states in an intake conversation."""
    GREETING = "greeting"
    IDENTITY_CAPTURE = "identity_capture"
    COMPLAINT_CAPTURE = "complaint_capture"
    EVIDENCE_CAPTURE = "evidence_capture"
    CLASSIFICATION = "classification"
    SUBMISSION = "submission"
    TRACKING = "tracking"
    COMPLETED = "completed"
    ERROR = "error"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    PREFER_NOT_TO_SAY = "prefer_not_to_say"


class TrackingSnapshot(BaseModel):
    """Status snapshot captured when a tracking lookup completes a session."""
    tracking_number: str
    status: str
    ministry: Optional[str] = None
    last_updated: Optional[str] = None


# Fields a citizen supplies during the dialogue. Patches to these are monotonic.
COLLECTED_FIELDS: frozenset[str] = frozenset({
    "full_name", "email", "phone", "address", "gender",
    "ministry", "category", "subject", "description", "incident_date",
})

# Fields the agent itself maintains; patches overwrite them.
SYSTEM_FIELDS: frozenset[str] = frozenset({
    "user_id", "is_anonymous", "prefer_no_contact", "summary_confirmed", "has_evidence",
    "classified_ministry", "classified_category", "classification_confidence",
    "complaint_id", "placeholder_id", "completed_at", "tracking_result", "error_reason",
})


class ConversationSession(BaseModel):
    """
    Durable per-conversation state.

    The single source of truth for where a dialogue is. Handlers never
    mutate it directly; they return a patch that the session store applies.
    """
    session_id: str
    user_id: Optional[str] = None

    current_state: ConversationState = ConversationState.GREETING
    message_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    last_message_at: datetime = Field(default_factory=utcnow)

    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gender: Optional[Gender] = None
    ministry: Optional[str] = None
    category: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    incident_date: Optional[date] = None

    is_anonymous: bool = False
    prefer_no_contact: bool = False
    summary_confirmed: bool = False
    has_evidence: bool = False

    classified_ministry: Optional[str] = None
    classified_category: Optional[str] = None
    classification_confidence: Optional[float] = None

    complaint_id: Optional[str] = None
    placeholder_id: Optional[str] = None

    completed_at: Optional[datetime] = None
    tracking_result: Optional[TrackingSnapshot] = None
    error_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.current_state in (ConversationState.COMPLETED, ConversationState.ERROR)

    def has_contact(self) -> bool:
        return bool(self.email or self.phone)

    def collected(self) -> dict[str, object]:
        """Return the collected fields that have been filled."""
        return {
            name: getattr(self, name)
            for name in sorted(COLLECTED_FIELDS)
            if getattr(self, name) not in (None, "")
        }
