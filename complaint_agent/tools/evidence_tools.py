"""
Evidence tools: upload files during the dialogue and attach them to a complaint.

Files uploaded before a complaint exists are parented to a per-session
placeholder id. Submission re-parents them onto the real complaint.
"""

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from complaint_agent.errors import SessionNotFound
from complaint_agent.schemas.complaint_schema import EvidenceItem, MediaKind
from complaint_agent.tools.base import Tool, ToolContext, ToolResult

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass(frozen=True)
class MediaRule:
    kind: MediaKind
    max_bytes: int
    mime_types: frozenset[str]


MEDIA_RULES: list[MediaRule] = [
    MediaRule(
        MediaKind.IMAGE, 8 * MB,
        frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"}),
    ),
    MediaRule(
        MediaKind.DOCUMENT, 16 * MB,
        frozenset({
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "text/plain",
        }),
    ),
    MediaRule(
        MediaKind.VIDEO, 32 * MB,
        frozenset({"video/mp4", "video/avi", "video/x-msvideo", "video/quicktime", "video/mov"}),
    ),
    MediaRule(
        MediaKind.AUDIO, 32 * MB,
        frozenset({"audio/mpeg", "audio/wav", "audio/x-wav", "audio/mp3"}),
    ),
]


def rule_for(mime_type: str) -> Optional[MediaRule]:
    mime_type = mime_type.strip().lower()
    for rule in MEDIA_RULES:
        if mime_type in rule.mime_types:
            return rule
    return None


def placeholder_id_for(session_id: str) -> str:
    return f"pending-{session_id}"


class UploadEvidenceArgs(BaseModel):
    session_id: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    mime_type: str = Field(min_length=1)
    size: int = Field(ge=0, description="File size in bytes")
    data_base64: Optional[str] = Field(default=None, description="File content, base64 encoded")


class AttachEvidenceArgs(BaseModel):
    session_id: str = Field(min_length=1)
    complaint_id: str = Field(min_length=1)


async def upload_evidence(args: UploadEvidenceArgs, ctx: ToolContext) -> ToolResult:
    rule = rule_for(args.mime_type)
    if rule is None:
        return ToolResult.fail(
            "unsupported_type",
            f"Sorry, {args.file_name} is a file type I can't accept. Please send an image, "
            "PDF or Word document, video, or audio recording.",
        )

    content = b""
    if args.data_base64:
        try:
            content = base64.b64decode(args.data_base64, validate=True)
        except (binascii.Error, ValueError):
            return ToolResult.fail("invalid_data", f"I couldn't read {args.file_name}. Please try again.")

    size = max(args.size, len(content))
    if size > rule.max_bytes:
        return ToolResult.fail(
            "file_too_large",
            f"{args.file_name} is too large. {rule.kind.value.capitalize()} files can be at most "
            f"{rule.max_bytes // MB} MB.",
            max_bytes=rule.max_bytes,
        )

    session = await ctx.sessions.get(args.session_id)
    if session is None:
        return ToolResult.fail("not_found", "Cannot upload evidence without a session.")
    parent_id = session.complaint_id or session.placeholder_id or placeholder_id_for(session.session_id)

    item_id = str(uuid.uuid4())
    url = await ctx.blobs.put(f"{parent_id}/{item_id}", content, args.mime_type)
    item = EvidenceItem(
        id=item_id,
        file_name=args.file_name,
        file_size=size,
        mime_type=args.mime_type.lower(),
        media_kind=rule.kind,
        url=url,
        parent_id=parent_id,
    )
    await ctx.complaints.add_evidence(item)

    fields: dict[str, object] = {"has_evidence": True}
    if not session.complaint_id and not session.placeholder_id:
        fields["placeholder_id"] = parent_id
    try:
        await ctx.sessions.patch(session.session_id, fields)
    except SessionNotFound:
        return ToolResult.fail("not_found", "Cannot upload evidence without a session.")

    logger.info("Evidence uploaded: %s (%s, %d bytes)", args.file_name, rule.kind.value, size)
    return ToolResult.ok(
        f"Received {args.file_name}.",
        evidence_id=item.id,
        file_name=item.file_name,
        media_kind=item.media_kind.value,
        parent_id=parent_id,
    )


async def attach_evidence(args: AttachEvidenceArgs, ctx: ToolContext) -> ToolResult:
    session = await ctx.sessions.get(args.session_id)
    if session is None:
        return ToolResult.fail("not_found", "Session not found.")
    complaint = await ctx.complaints.get(args.complaint_id)
    if complaint is None:
        return ToolResult.fail("not_found", "Complaint not found.")
    if not session.placeholder_id:
        return ToolResult.ok("No evidence to attach.", attached=0)

    moved = await ctx.complaints.attach_evidence(session.placeholder_id, complaint.id)
    return ToolResult.ok(
        f"Attached {len(moved)} file(s) to the complaint.",
        attached=len(moved),
        evidence_ids=[item.id for item in moved],
    )


EVIDENCE_TOOLS = [
    Tool(
        name="upload_evidence",
        description="Store an evidence file the citizen attached",
        args_model=UploadEvidenceArgs,
        handler=upload_evidence,
    ),
    Tool(
        name="attach_evidence",
        description="Attach evidence uploaded during the conversation to the submitted complaint",
        args_model=AttachEvidenceArgs,
        handler=attach_evidence,
    ),
]
