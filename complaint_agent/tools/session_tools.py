"""Session tools: create, update and inspect conversation sessions."""

import logging
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from complaint_agent.errors import SessionNotFound
from complaint_agent.schemas.session_schema import ConversationState, Gender
from complaint_agent.tools.base import Tool, ToolContext, ToolResult

logger = logging.getLogger(__name__)


class GetOrCreateSessionArgs(BaseModel):
    session_id: str = Field(min_length=1, description="The session identifier")
    user_id: Optional[str] = Field(default=None, description="Authenticated user id, if any")


class SessionDataUpdate(BaseModel):
    """Collected fields a citizen can supply during the conversation."""
    full_name: Optional[str] = Field(default=None, description="Complainant's full name")
    email: Optional[str] = Field(default=None, description="Email address")
    phone: Optional[str] = Field(default=None, description="Phone number")
    address: Optional[str] = Field(default=None, description="Postal or street address")
    gender: Optional[Gender] = None
    ministry: Optional[str] = Field(default=None, description="Ministry or department involved")
    category: Optional[str] = Field(default=None, description="Kind of problem")
    subject: Optional[str] = Field(default=None, description="Short subject line")
    description: Optional[str] = Field(default=None, description="What happened")
    incident_date: Optional[date] = Field(default=None, description="Date of the incident")


class UpdateSessionDataArgs(BaseModel):
    session_id: str = Field(min_length=1)
    data: SessionDataUpdate
    next_state: Optional[ConversationState] = None
    corrections: list[str] = Field(
        default_factory=list,
        description="Names of fields the citizen explicitly corrected",
    )


class GetSessionStatusArgs(BaseModel):
    session_id: str = Field(min_length=1)


async def get_or_create_session(args: GetOrCreateSessionArgs, ctx: ToolContext) -> ToolResult:
    session = await ctx.sessions.get_or_create(args.session_id, args.user_id)
    return ToolResult.ok(
        "Session ready.",
        session_id=session.session_id,
        current_state=session.current_state.value,
        message_count=session.message_count,
    )


async def update_session_data(args: UpdateSessionDataArgs, ctx: ToolContext) -> ToolResult:
    fields = args.data.model_dump(exclude_none=True)
    if not fields and args.next_state is None:
        return ToolResult.ok("Nothing to update.", updated_fields=[])

    corrections = [c for c in args.corrections if c in fields]
    try:
        session = await ctx.sessions.patch(
            args.session_id, fields, next_state=args.next_state, corrections=corrections
        )
    except SessionNotFound:
        return ToolResult.fail("not_found", "Session not found.")

    applied = [name for name in fields if getattr(session, name) == fields[name]]
    logger.debug("Session %s updated fields: %s", args.session_id, applied)
    return ToolResult.ok(
        "Session updated.",
        updated_fields=applied,
        current_state=session.current_state.value,
    )


async def get_session_status(args: GetSessionStatusArgs, ctx: ToolContext) -> ToolResult:
    session = await ctx.sessions.get(args.session_id)
    if session is None:
        return ToolResult.fail("not_found", "Session not found.")

    missing = [
        name for name, present in [
            ("full_name", bool(session.full_name) or session.is_anonymous),
            ("contact", session.has_contact() or session.prefer_no_contact or session.is_anonymous),
            ("description", bool(session.description)),
            ("ministry", bool(session.ministry or session.classified_ministry)),
        ]
        if not present
    ]
    return ToolResult.ok(
        f"Session is in state '{session.current_state.value}'.",
        session_id=session.session_id,
        current_state=session.current_state.value,
        message_count=session.message_count,
        collected=sorted(session.collected()),
        missing=missing,
        is_complete=session.current_state == ConversationState.COMPLETED,
        complaint_id=session.complaint_id,
    )


SESSION_TOOLS = [
    Tool(
        name="get_or_create_session",
        description="Get an existing conversation session or create a new one",
        args_model=GetOrCreateSessionArgs,
        handler=get_or_create_session,
        hidden_args=frozenset({"session_id", "user_id"}),
    ),
    Tool(
        name="update_session_data",
        description="Save complaint details the citizen provided to the session",
        args_model=UpdateSessionDataArgs,
        handler=update_session_data,
        hidden_args=frozenset({"session_id", "next_state"}),
    ),
    Tool(
        name="get_session_status",
        description="Report the session's current state and which details are still missing",
        args_model=GetSessionStatusArgs,
        handler=get_session_status,
    ),
]
