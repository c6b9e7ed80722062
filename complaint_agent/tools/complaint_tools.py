"""Complaint tools: contact capture, complaint creation and detail edits."""

import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from complaint_agent.conversation.fields import get_definition, validate_field
from complaint_agent.errors import SessionNotFound
from complaint_agent.schemas.complaint_schema import ComplaintPriority, ComplaintSubmission
from complaint_agent.services.complaints import validate_submission
from complaint_agent.tools.base import Tool, ToolContext, ToolResult
from complaint_agent.utils import normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other"


class ExtractContactInfoArgs(BaseModel):
    session_id: str = Field(min_length=1)
    full_name: Optional[str] = Field(default=None, description="The citizen's full name")
    phone_number: Optional[str] = Field(default=None, description="Phone number")
    email: Optional[str] = Field(default=None, description="Email address")
    address: Optional[str] = Field(default=None, description="Postal or street address")
    prefer_no_contact: bool = Field(
        default=False, description="The citizen does not want to be contacted"
    )
    is_anonymous: bool = Field(default=False, description="The citizen wants to stay anonymous")
    corrections: list[str] = Field(
        default_factory=list,
        description="Fields the citizen explicitly corrected: full_name, phone, email, address",
    )

    @field_validator("full_name", "phone_number", "email", "address")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class CreateComplaintArgs(BaseModel):
    session_id: str = Field(min_length=1)
    priority: Optional[ComplaintPriority] = None
    is_anonymous: Optional[bool] = None


class ComplaintDetailUpdates(BaseModel):
    ministry: Optional[str] = None
    category: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[ComplaintPriority] = None


class UpdateComplaintDetailsArgs(BaseModel):
    tracking_number: str = Field(min_length=1)
    updates: ComplaintDetailUpdates


async def extract_contact_info(args: ExtractContactInfoArgs, ctx: ToolContext) -> ToolResult:
    fields: dict[str, object] = {}
    rejected = []

    if args.full_name and len(args.full_name) >= 2:
        fields["full_name"] = args.full_name.title() if args.full_name.islower() else args.full_name
    for name, value in [("phone", args.phone_number), ("email", args.email), ("address", args.address)]:
        if not value:
            continue
        valid, _ = validate_field(name, value)
        if not valid:
            rejected.append(get_definition(name).display_name)
        elif name == "phone":
            fields[name] = normalize_phone(value)
        elif name == "email":
            fields[name] = value.lower()
        else:
            fields[name] = value
    if args.is_anonymous:
        fields["is_anonymous"] = True
    if args.prefer_no_contact:
        fields["prefer_no_contact"] = True

    try:
        session = await ctx.sessions.patch(
            args.session_id, fields, corrections=[c for c in args.corrections if c in fields]
        )
    except SessionNotFound:
        return ToolResult.fail("not_found", "Cannot save contact information without a session.")

    data = {
        "full_name": session.full_name,
        "phone": session.phone,
        "email": session.email,
        "is_anonymous": session.is_anonymous,
        "prefer_no_contact": session.prefer_no_contact,
        "rejected": rejected,
    }
    if rejected:
        return ToolResult.ok(
            f"That {' and '.join(rejected)} doesn't look right. Could you check it?", **data
        )
    if session.prefer_no_contact:
        message = (
            "Understood, we won't contact you. You can check on your complaint "
            "with the tracking number."
        )
    else:
        message = "Contact information saved."
    return ToolResult.ok(message, **data)


async def create_complaint(args: CreateComplaintArgs, ctx: ToolContext) -> ToolResult:
    session = await ctx.sessions.get(args.session_id)
    if session is None:
        return ToolResult.fail("not_found", "Cannot create a complaint without a session.")

    if session.complaint_id:
        existing = await ctx.complaints.get(session.complaint_id)
        if existing is not None:
            logger.info("Session %s already has complaint %s", session.session_id, existing.public_id)
            return ToolResult.ok(
                "Complaint already submitted.",
                complaint_id=existing.id,
                public_id=existing.public_id,
                tracking_number=existing.tracking_number,
                status=existing.status.value,
                priority=existing.priority.value,
            )

    ministry = session.ministry or session.classified_ministry
    if not session.description or not ministry:
        return ToolResult.fail(
            "missing_information",
            "Please describe your complaint and the ministry involved before submitting.",
        )

    is_anonymous = session.is_anonymous if args.is_anonymous is None else args.is_anonymous
    submission = ComplaintSubmission(
        full_name=None if is_anonymous else session.full_name,
        gender=session.gender,
        email="" if session.prefer_no_contact else (session.email or ""),
        phone="" if session.prefer_no_contact else (session.phone or ""),
        address=session.address,
        subject=session.subject,
        description=session.description,
        ministry=ministry,
        category=session.category or session.classified_category or DEFAULT_CATEGORY,
        incident_date=session.incident_date,
        is_anonymous=is_anonymous or session.prefer_no_contact,
        priority=args.priority,
        session_id=session.session_id,
        user_id=session.user_id,
    )
    errors = validate_submission(submission)
    if errors:
        return ToolResult.fail("invalid_submission", "; ".join(errors))

    complaint = await ctx.complaints.create(submission)
    await ctx.sessions.patch(session.session_id, {"complaint_id": complaint.id})
    return ToolResult.ok(
        f"Complaint created with tracking number {complaint.tracking_number}.",
        complaint_id=complaint.id,
        public_id=complaint.public_id,
        tracking_number=complaint.tracking_number,
        status=complaint.status.value,
        priority=complaint.priority.value,
    )


async def update_complaint_details(
    args: UpdateComplaintDetailsArgs, ctx: ToolContext
) -> ToolResult:
    updates = args.updates.model_dump(exclude_none=True)
    if not updates:
        return ToolResult.fail("validation_error", "No updates were provided.")
    complaint = await ctx.complaints.update_details(args.tracking_number, updates)
    if complaint is None:
        return ToolResult.fail("not_found", "No complaint found with this tracking number.")
    return ToolResult.ok(
        "Complaint details updated.",
        tracking_number=complaint.tracking_number,
        updated_fields=sorted(updates),
        updated_at=complaint.updated_at.isoformat(),
    )


COMPLAINT_TOOLS = [
    Tool(
        name="extract_contact_info",
        description="Save the citizen's name and contact details from their message",
        args_model=ExtractContactInfoArgs,
        handler=extract_contact_info,
    ),
    Tool(
        name="create_complaint",
        description="Create a complaint from the data collected in the session",
        args_model=CreateComplaintArgs,
        handler=create_complaint,
    ),
    Tool(
        name="update_complaint_details",
        description="Update details of an existing complaint",
        args_model=UpdateComplaintDetailsArgs,
        handler=update_complaint_details,
        hidden_args=frozenset(),
    ),
]
