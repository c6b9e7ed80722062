"""
Citizen-facing complaint tracking.

Lookups never raise for user-caused problems. Malformed input, unknown
numbers and backend failures all come back in-band with an error type
so the conversation layer can decide whether to stay or fail.
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from complaint_agent.errors import StoreUnavailable
from complaint_agent.schemas.complaint_schema import Complaint, ComplaintStatus
from complaint_agent.services.complaints import ComplaintService
from complaint_agent.utils import is_valid_email

logger = logging.getLogger(__name__)

TRACKING_FORMAT_RE = re.compile(r"^OMB-[A-Z0-9]+-[A-Z0-9]+$", re.IGNORECASE)
MAX_HISTORY_ENTRIES = 3

NOT_FOUND_MESSAGE = (
    "I cannot find a complaint with that tracking number. "
    "Please verify the tracking number and try again."
)
SYSTEM_ERROR_MESSAGE = (
    "I'm experiencing technical difficulties while tracking your complaint. "
    "Please try again later or contact our support team."
)
INVALID_FORMAT_MESSAGE = (
    "Invalid tracking number format. Expected format: OMB-XXXXXXXX-XXXXXXXX"
)

STATUS_DISPLAY: dict[ComplaintStatus, str] = {
    ComplaintStatus.SUBMITTED: "Submitted - Under Initial Review",
    ComplaintStatus.UNDER_REVIEW: "Under Review - Being Investigated",
    ComplaintStatus.INVESTIGATING: "Investigating - Active Investigation",
    ComplaintStatus.RESOLVED: "Resolved - Case Closed",
    ComplaintStatus.CLOSED: "Closed - No Further Action",
    ComplaintStatus.REJECTED: "Rejected - Case Not Proceeding",
}

NEXT_STEPS: dict[ComplaintStatus, str] = {
    ComplaintStatus.SUBMITTED: (
        "Your complaint is being reviewed. You should receive an update within "
        "2-3 business days."
    ),
    ComplaintStatus.UNDER_REVIEW: (
        "An investigator is reviewing your case. You may be contacted for "
        "additional information."
    ),
    ComplaintStatus.INVESTIGATING: (
        "Active investigation is underway. Significant updates will be "
        "communicated to you."
    ),
    ComplaintStatus.RESOLVED: (
        "Your case has been resolved. You should receive a detailed resolution "
        "summary via email."
    ),
    ComplaintStatus.CLOSED: (
        "This case is closed. If you have new information, you may need to file "
        "a new complaint."
    ),
    ComplaintStatus.REJECTED: (
        "This complaint was not accepted for investigation. You should receive an "
        "explanation via email."
    ),
}


class TrackingErrorType(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    NOT_FOUND = "NOT_FOUND"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class FormatCheck(BaseModel):
    is_valid: bool
    error: Optional[str] = None


class TrackingQuery(BaseModel):
    tracking_number: str
    include_history: bool = False
    include_evidence: bool = False


class TrackingResponse(BaseModel):
    """Outcome of a tracking lookup. Never carries internal identifiers."""
    success: bool
    tracking_number: str
    message: str
    status: Optional[str] = None
    ministry: Optional[str] = None
    subject: Optional[str] = None
    submitted_date: Optional[str] = None
    last_updated: Optional[str] = None
    error_type: Optional[TrackingErrorType] = None


class ComplaintSummary(BaseModel):
    tracking_number: str
    status: str
    ministry: str
    subject: str
    submitted_date: str
    last_updated: str


class EmailLookup(BaseModel):
    success: bool
    complaints: list[ComplaintSummary] = Field(default_factory=list)
    message: str


def format_status(status: ComplaintStatus) -> str:
    return STATUS_DISPLAY.get(status, status.value)


def format_date(value: datetime) -> str:
    """Format as e.g. ``Mar 4, 2025``."""
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def next_steps(status: ComplaintStatus) -> str:
    return NEXT_STEPS.get(
        status,
        "We are processing your complaint and will provide updates as they become available.",
    )


class TrackingService:
    """Looks up complaints for citizens and formats their status."""

    def __init__(self, complaints: ComplaintService) -> None:
        self._complaints = complaints

    def validate_format(self, tracking_number: Optional[str]) -> FormatCheck:
        if not tracking_number or not tracking_number.strip():
            return FormatCheck(is_valid=False, error="Tracking number is required")
        if not TRACKING_FORMAT_RE.match(tracking_number.strip()):
            return FormatCheck(is_valid=False, error=INVALID_FORMAT_MESSAGE)
        return FormatCheck(is_valid=True)

    async def track_complaint(self, query: TrackingQuery) -> TrackingResponse:
        tracking_number = query.tracking_number.strip().upper()
        check = self.validate_format(tracking_number)
        if not check.is_valid:
            return TrackingResponse(
                success=False,
                tracking_number=tracking_number,
                message=check.error or INVALID_FORMAT_MESSAGE,
                error_type=TrackingErrorType.INVALID_FORMAT,
            )

        try:
            complaint = await self._complaints.get_by_tracking_number(tracking_number)
        except StoreUnavailable:
            logger.exception("Tracking lookup failed for %s", tracking_number)
            return TrackingResponse(
                success=False,
                tracking_number=tracking_number,
                message=SYSTEM_ERROR_MESSAGE,
                error_type=TrackingErrorType.SYSTEM_ERROR,
            )

        if complaint is None:
            logger.info("Tracking number not found: %s", tracking_number)
            return TrackingResponse(
                success=False,
                tracking_number=tracking_number,
                message=NOT_FOUND_MESSAGE,
                error_type=TrackingErrorType.NOT_FOUND,
            )
        return self._success(complaint, query.include_history, query.include_evidence)

    async def track_by_email(self, email: str) -> EmailLookup:
        if not email or not is_valid_email(email):
            return EmailLookup(success=False, message="Please provide a valid email address.")
        try:
            complaints = await self._complaints.list_by_contact(email=email.strip())
        except StoreUnavailable:
            logger.exception("Email lookup failed")
            return EmailLookup(
                success=False,
                message="I'm experiencing technical difficulties. Please try again later.",
            )
        if not complaints:
            return EmailLookup(success=True, message="No complaints found for this email address.")
        return EmailLookup(
            success=True,
            complaints=[self.summarize(c) for c in complaints],
            message=f"Found {len(complaints)} complaint(s) for this email address.",
        )

    def status_update_message(
        self, old: ComplaintStatus, new: ComplaintStatus, tracking_number: str
    ) -> str:
        return (
            f"Status Update for Complaint {tracking_number}:\n\n"
            f'Your complaint status has changed from "{format_status(old)}" '
            f'to "{format_status(new)}".\n\n'
            f"Next Steps: {next_steps(new)}\n\n"
            "Thank you for your patience as we process your complaint."
        )

    @staticmethod
    def summarize(complaint: Complaint) -> ComplaintSummary:
        return ComplaintSummary(
            tracking_number=complaint.tracking_number,
            status=format_status(complaint.status),
            ministry=complaint.ministry,
            subject=complaint.subject,
            submitted_date=format_date(complaint.submitted_at),
            last_updated=format_date(complaint.updated_at),
        )

    def _success(
        self, complaint: Complaint, include_history: bool, include_evidence: bool
    ) -> TrackingResponse:
        summary = self.summarize(complaint)
        lines = [
            "I found your complaint! Here are the details:",
            "",
            f"Tracking Number: {summary.tracking_number}",
            f"Status: {summary.status}",
            f"Ministry: {summary.ministry}",
            f"Subject: {summary.subject}",
            f"Submitted: {summary.submitted_date}",
            f"Last Updated: {summary.last_updated}",
        ]
        if include_history and complaint.status_history:
            lines += ["", "Status History:"]
            for index, entry in enumerate(complaint.status_history[:MAX_HISTORY_ENTRIES], 1):
                lines.append(f"{index}. {format_status(entry.status)} - {format_date(entry.timestamp)}")
        if include_evidence and complaint.evidence:
            lines += ["", f"Evidence Files: {len(complaint.evidence)} file(s) uploaded"]
        lines += ["", f"Next Steps: {next_steps(complaint.status)}"]

        return TrackingResponse(
            success=True,
            tracking_number=summary.tracking_number,
            message="\n".join(lines),
            status=complaint.status.value,
            ministry=summary.ministry,
            subject=summary.subject,
            submitted_date=summary.submitted_date,
            last_updated=summary.last_updated,
        )
