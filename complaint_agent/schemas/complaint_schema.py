"""Complaint, status history, and evidence data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from complaint_agent.schemas.session_schema import Gender, utcnow


class ComplaintStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REJECTED = "rejected"


class ComplaintPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MediaKind(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"


class StatusHistoryEntry(BaseModel):
    """One append-only entry in a complaint's status history."""
    status: ComplaintStatus
    note: str
    actor: str = "system"
    timestamp: datetime = Field(default_factory=utcnow)


class EvidenceItem(BaseModel):
    """Uploaded file metadata. parent_id is a placeholder id until a complaint exists."""
    id: str
    file_name: str
    file_size: int
    mime_type: str
    media_kind: MediaKind
    url: str
    parent_id: str
    uploaded_at: datetime = Field(default_factory=utcnow)


class ComplaintSubmission(BaseModel):
    """Validated data needed to create a complaint."""
    full_name: Optional[str] = None
    gender: Optional[Gender] = None
    email: str = ""
    phone: str = ""
    address: Optional[str] = None
    subject: Optional[str] = None
    description: str
    ministry: str
    category: str
    incident_date: Optional[date] = None
    is_anonymous: bool = False
    priority: Optional[ComplaintPriority] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None


class Complaint(BaseModel):
    """A submitted complaint. Immutable apart from status, details edits, and the append-only lists."""
    id: str
    public_id: str
    tracking_number: str
    complainant_name: str = "Anonymous"
    gender: Optional[Gender] = None
    email: str = ""
    phone: str = ""
    address: Optional[str] = None
    is_anonymous: bool = False
    ministry: str
    category: str
    subject: str = "Complaint Submission"
    description: str
    incident_date: Optional[date] = None
    status: ComplaintStatus = ComplaintStatus.SUBMITTED
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    submitted_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    evidence: list[EvidenceItem] = Field(default_factory=list)
    session_id: Optional[str] = None
    user_id: Optional[str] = None
