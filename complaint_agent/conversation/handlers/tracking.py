"""Tracking branch: look up a complaint by its tracking number."""

import re

from complaint_agent.conversation.handlers.base import HandlerResult, StateHandler
from complaint_agent.logging_context import get_session_logger
from complaint_agent.schemas.session_schema import ConversationState, TrackingSnapshot, utcnow
from complaint_agent.services.tracking import TrackingErrorType
from complaint_agent.utils import extract_tracking_number

logger = get_session_logger(__name__)

STATUS_TOOL = "get_complaint_status"
# Something that looks like an attempt at a tracking number, well formed or not.
LOOSE_NUMBER_RE = re.compile(r"\bOMB-[^\s,.;!?]*", re.IGNORECASE)

ASK_FOR_NUMBER = (
    "I can check on your complaint. Please share your tracking number; it "
    "looks like OMB-XXXXXXXX-XXXXXXXX."
)


class TrackingHandler(StateHandler):
    state = ConversationState.TRACKING

    async def handle(self, session, message, media=()):
        tracking_number = extract_tracking_number(message)
        if tracking_number is None:
            loose = LOOSE_NUMBER_RE.search(message)
            tracking_number = loose.group(0) if loose else None
        if tracking_number is None:
            return self.stay(ASK_FOR_NUMBER)

        result = await self.call_tool(
            session,
            STATUS_TOOL,
            {"tracking_number": tracking_number, "include_history": True},
        )
        if result.success:
            snapshot = TrackingSnapshot(
                tracking_number=result.data["tracking_number"],
                status=result.data["status"],
                ministry=result.data.get("ministry"),
                last_updated=result.data.get("last_updated"),
            )
            return HandlerResult(
                reply=result.message,
                next_state=ConversationState.COMPLETED,
                patch={"tracking_result": snapshot, "completed_at": utcnow()},
                tracking_number=snapshot.tracking_number,
            )

        if result.error == TrackingErrorType.SYSTEM_ERROR.value:
            return HandlerResult(
                reply=result.message,
                next_state=ConversationState.ERROR,
                patch={"error_reason": "tracking_system_error"},
            )
        # Unknown or malformed numbers: let the citizen try again.
        return self.stay(result.message)
