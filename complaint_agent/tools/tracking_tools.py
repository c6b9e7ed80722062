"""Tracking tools: status lookup by tracking number and listing a citizen's complaints."""

from typing import Optional

from pydantic import BaseModel, Field

from complaint_agent.schemas.complaint_schema import ComplaintStatus
from complaint_agent.services.tracking import TrackingQuery
from complaint_agent.tools.base import Tool, ToolContext, ToolResult
from complaint_agent.utils import is_valid_email, is_valid_phone, normalize_phone


class GetComplaintStatusArgs(BaseModel):
    tracking_number: str = Field(
        min_length=1, description="The complaint tracking number, e.g. OMB-LX4K2P-9F3A21BC"
    )
    include_history: bool = False
    include_evidence: bool = False


class ListUserComplaintsArgs(BaseModel):
    user_id: str = Field(min_length=1, description="Phone number or email address")
    status: Optional[ComplaintStatus] = Field(default=None, description="Filter by status")


async def get_complaint_status(args: GetComplaintStatusArgs, ctx: ToolContext) -> ToolResult:
    response = await ctx.tracking.track_complaint(
        TrackingQuery(
            tracking_number=args.tracking_number,
            include_history=args.include_history,
            include_evidence=args.include_evidence,
        )
    )
    data = response.model_dump(exclude={"success", "message", "error_type"})
    if not response.success:
        return ToolResult.fail(response.error_type.value, response.message, **data)
    return ToolResult.ok(response.message, **data)


async def list_user_complaints(args: ListUserComplaintsArgs, ctx: ToolContext) -> ToolResult:
    identifier = args.user_id.strip()
    if is_valid_email(identifier):
        complaints = await ctx.complaints.list_by_contact(
            email=identifier.lower(), user_id=identifier, status=args.status
        )
    elif is_valid_phone(identifier):
        complaints = await ctx.complaints.list_by_contact(
            phone=normalize_phone(identifier), user_id=identifier, status=args.status
        )
    else:
        complaints = await ctx.complaints.list_by_contact(user_id=identifier, status=args.status)

    summaries = [ctx.tracking.summarize(c).model_dump() for c in complaints]
    if not summaries:
        return ToolResult.ok("No complaints found.", complaints=[], count=0)
    return ToolResult.ok(
        f"Found {len(summaries)} complaint(s).", complaints=summaries, count=len(summaries)
    )


TRACKING_TOOLS = [
    Tool(
        name="get_complaint_status",
        description="Get the current status of a specific complaint",
        args_model=GetComplaintStatusArgs,
        handler=get_complaint_status,
        hidden_args=frozenset(),
    ),
    Tool(
        name="list_user_complaints",
        description="List all complaints filed by a citizen, identified by phone or email",
        args_model=ListUserComplaintsArgs,
        handler=list_user_complaints,
        hidden_args=frozenset(),
    ),
]
