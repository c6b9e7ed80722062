"""
Complaint lifecycle: creation, identifiers, priority, status history, evidence.

Every repository call is wrapped with the store timeout so that a hung
backend surfaces as StoreUnavailable instead of blocking a turn.
"""

import logging
import secrets
import time
import uuid
from typing import Any, Optional

from complaint_agent.config import settings
from complaint_agent.schemas.complaint_schema import (
    Complaint,
    ComplaintPriority,
    ComplaintStatus,
    ComplaintSubmission,
    EvidenceItem,
    StatusHistoryEntry,
)
from complaint_agent.schemas.session_schema import utcnow
from complaint_agent.store.base import guarded
from complaint_agent.store.complaint_repository import ComplaintRepository
from complaint_agent.utils import is_valid_email, is_valid_phone

logger = logging.getLogger(__name__)

HIGH_PRIORITY_CATEGORIES = [
    "corruption", "fraud", "harassment", "discrimination",
    "violence", "misconduct", "ethical_breach",
]
LOW_PRIORITY_CATEGORIES = ["inquiry", "information", "general", "service_delivery"]

INITIAL_STATUS_NOTE = "Complaint submitted via citizen portal"
MIN_SUBMISSION_DESCRIPTION = 10

EDITABLE_DETAILS = frozenset({"ministry", "category", "subject", "description", "priority"})

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_tracking_number() -> str:
    """Return a new ``OMB-<base36 ms timestamp>-<8 hex>`` tracking number."""
    timestamp = _to_base36(int(time.time() * 1000))
    return f"OMB-{timestamp}-{secrets.token_hex(4).upper()}"


def determine_priority(category: Optional[str]) -> ComplaintPriority:
    """Derive a default priority from the complaint category."""
    if not category:
        return ComplaintPriority.MEDIUM
    lower = category.lower()
    if any(cat in lower for cat in HIGH_PRIORITY_CATEGORIES):
        return ComplaintPriority.HIGH
    if any(cat in lower for cat in LOW_PRIORITY_CATEGORIES):
        return ComplaintPriority.LOW
    return ComplaintPriority.MEDIUM


def validate_submission(submission: ComplaintSubmission) -> list[str]:
    """Return human-readable problems with a submission. Empty means valid."""
    errors = []
    if len(submission.description.strip()) < MIN_SUBMISSION_DESCRIPTION:
        errors.append(
            f"Description must be at least {MIN_SUBMISSION_DESCRIPTION} characters long"
        )
    if len(submission.ministry.strip()) < 2:
        errors.append("Ministry is required")
    if len(submission.category.strip()) < 2:
        errors.append("Category is required")
    if submission.email and not is_valid_email(submission.email):
        errors.append("Email address is not valid")
    if submission.phone and not is_valid_phone(submission.phone):
        errors.append("Phone number is not valid")
    return errors


class ComplaintService:
    """Creates and maintains complaints on top of a ComplaintRepository."""

    def __init__(
        self,
        repository: ComplaintRepository,
        timeout_sec: float = settings.store.timeout_sec,
    ) -> None:
        self._repo = repository
        self._timeout = timeout_sec

    async def create(self, submission: ComplaintSubmission) -> Complaint:
        """
        Persist a new complaint with status ``submitted`` and one history entry.

        Raises:
            ValueError: If the submission fails validation.
            StoreUnavailable: On persistence failure.
        """
        errors = validate_submission(submission)
        if errors:
            raise ValueError("; ".join(errors))

        now = utcnow()
        sequence = await guarded(
            self._repo.next_sequence(now.year), self._timeout, "next_sequence"
        )
        is_anonymous = submission.is_anonymous or not submission.full_name
        complaint = Complaint(
            id=str(uuid.uuid4()),
            public_id=f"CMP-{now.year}-{sequence:03d}",
            tracking_number=generate_tracking_number(),
            complainant_name="Anonymous" if is_anonymous else submission.full_name,
            gender=submission.gender,
            email=submission.email,
            phone=submission.phone,
            address=submission.address,
            is_anonymous=is_anonymous,
            ministry=submission.ministry,
            category=submission.category,
            subject=submission.subject or "Complaint Submission",
            description=submission.description,
            incident_date=submission.incident_date,
            priority=submission.priority or determine_priority(submission.category),
            submitted_at=now,
            updated_at=now,
            status_history=[
                StatusHistoryEntry(
                    status=ComplaintStatus.SUBMITTED,
                    note=INITIAL_STATUS_NOTE,
                    timestamp=now,
                )
            ],
            session_id=submission.session_id,
            user_id=submission.user_id,
        )
        await guarded(self._repo.insert(complaint), self._timeout, "insert_complaint")
        logger.info(
            "Complaint created: %s (%s, %s, priority=%s)",
            complaint.public_id, complaint.ministry, complaint.category,
            complaint.priority.value,
        )
        return complaint

    async def get(self, complaint_id: str) -> Optional[Complaint]:
        return await guarded(self._repo.get(complaint_id), self._timeout, "get_complaint")

    async def get_by_tracking_number(self, tracking_number: str) -> Optional[Complaint]:
        return await guarded(
            self._repo.get_by_tracking_number(tracking_number.strip().upper()),
            self._timeout,
            "get_complaint_by_tracking_number",
        )

    async def list_by_contact(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[ComplaintStatus] = None,
    ) -> list[Complaint]:
        return await guarded(
            self._repo.list_by_contact(email=email, phone=phone, user_id=user_id, status=status),
            self._timeout,
            "list_complaints",
        )

    async def update_status(
        self,
        tracking_number: str,
        status: ComplaintStatus,
        note: str,
        actor: str = "system",
    ) -> Optional[Complaint]:
        """Change the status and append a history entry. Returns None if not found."""
        complaint = await self.get_by_tracking_number(tracking_number)
        if complaint is None:
            return None
        now = utcnow()
        complaint.status = status
        complaint.updated_at = now
        complaint.status_history.append(
            StatusHistoryEntry(status=status, note=note, actor=actor, timestamp=now)
        )
        await guarded(self._repo.update(complaint), self._timeout, "update_complaint")
        logger.info("Complaint %s moved to %s", complaint.public_id, status.value)
        return complaint

    async def update_details(
        self, tracking_number: str, updates: dict[str, Any]
    ) -> Optional[Complaint]:
        """
        Edit the descriptive fields of a complaint.

        Only ministry, category, subject, description and priority may change.
        Returns None if the complaint does not exist.
        """
        unknown = set(updates) - EDITABLE_DETAILS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {sorted(unknown)}")
        complaint = await self.get_by_tracking_number(tracking_number)
        if complaint is None:
            return None

        data = complaint.model_dump()
        data.update({k: v for k, v in updates.items() if v not in (None, "")})
        data["updated_at"] = utcnow()
        updated = Complaint.model_validate(data)
        await guarded(self._repo.update(updated), self._timeout, "update_complaint")
        logger.info("Complaint %s details updated: %s", updated.public_id, sorted(updates))
        return updated

    async def add_evidence(self, item: EvidenceItem) -> EvidenceItem:
        await guarded(self._repo.add_evidence(item), self._timeout, "add_evidence")
        return item

    async def list_evidence(self, parent_id: str) -> list[EvidenceItem]:
        return await guarded(self._repo.list_evidence(parent_id), self._timeout, "list_evidence")

    async def attach_evidence(self, placeholder_id: str, complaint_id: str) -> list[EvidenceItem]:
        """Move every evidence item from a placeholder onto a complaint."""
        return await guarded(
            self._repo.reparent_evidence(placeholder_id, complaint_id),
            self._timeout,
            "attach_evidence",
        )
