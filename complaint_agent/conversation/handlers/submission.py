"""Submission: wait for the citizen to confirm the summary, then file the complaint."""

from complaint_agent.conversation.handlers.base import HandlerResult, StateHandler
from complaint_agent.logging_context import get_session_logger
from complaint_agent.prompts.prompt_templates import build_submission_success
from complaint_agent.schemas.session_schema import ConversationState, utcnow

logger = get_session_logger(__name__)

CREATE_TOOL = "create_complaint"
ATTACH_TOOL = "attach_evidence"

CHANGE_REPLY = (
    "No problem. Tell me what should be different and I'll update your complaint."
)
REPROMPT_REPLY = (
    "Shall I submit your complaint? Please answer 'yes' to submit, or tell me "
    "what needs to change."
)


class SubmissionHandler(StateHandler):
    state = ConversationState.SUBMISSION

    async def handle(self, session, message, media=()):
        if self.intents.is_change_request(message):
            return HandlerResult(
                reply=CHANGE_REPLY,
                next_state=ConversationState.COMPLAINT_CAPTURE,
                patch={"summary_confirmed": False},
            )
        if not self.intents.is_confirmation(message):
            return self.stay(REPROMPT_REPLY)

        created = await self.call_tool(session, CREATE_TOOL, {})
        if not created.success:
            logger.info("Complaint creation refused: %s", created.error)
            return HandlerResult(
                reply=created.message,
                next_state=ConversationState.COMPLAINT_CAPTURE,
                patch={"summary_confirmed": False},
            )

        tracking_number = created.data["tracking_number"]
        if session.placeholder_id:
            attached = await self.call_tool(
                session, ATTACH_TOOL, {"complaint_id": created.data["complaint_id"]}
            )
            logger.info("Evidence attach: %s", attached.message)

        logger.info("Complaint %s submitted", created.data["public_id"])
        return HandlerResult(
            reply=build_submission_success(tracking_number, created.data["public_id"]),
            next_state=ConversationState.COMPLETED,
            patch={"completed_at": utcnow()},
            tracking_number=tracking_number,
        )
