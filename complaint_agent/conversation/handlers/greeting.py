"""Greeting: introduce the agent, or branch straight to tracking."""

from complaint_agent.conversation.handlers.base import HandlerResult, StateHandler
from complaint_agent.logging_context import get_session_logger
from complaint_agent.prompts.prompt_templates import build_introduction
from complaint_agent.schemas.session_schema import ConversationState

logger = get_session_logger(__name__)


class GreetingHandler(StateHandler):
    state = ConversationState.GREETING

    async def handle(self, session, message, media=()):
        if self.intents.is_tracking_request(message):
            logger.info("Tracking intent at greeting")
            return HandlerResult(reply="", next_state=ConversationState.TRACKING, chain=True)
        return HandlerResult(
            reply=build_introduction(session.full_name),
            next_state=ConversationState.IDENTITY_CAPTURE,
        )
