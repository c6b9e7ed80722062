"""
Identity capture: name plus one contact channel, or an explicit opt-out.

Contact details come from the completion service filling in the
``extract_contact_info`` tool arguments. When the service is down the
same arguments are produced with regexes.
"""

from complaint_agent.conversation.fields import (
    correction_names,
    detect_corrections,
    missing_identity,
)
from complaint_agent.conversation.handlers.base import HandlerResult, StateHandler
from complaint_agent.llm.extraction import regex_contact_fields
from complaint_agent.logging_context import get_session_logger
from complaint_agent.prompts.prompt_templates import (
    build_complaint_prompt,
    build_missing_contact_prompt,
)
from complaint_agent.prompts.system_prompts import CONTACT_EXTRACTION_PROMPT
from complaint_agent.schemas.session_schema import ConversationState

logger = get_session_logger(__name__)

CONTACT_TOOL = "extract_contact_info"


class IdentityHandler(StateHandler):
    state = ConversationState.IDENTITY_CAPTURE

    async def handle(self, session, message, media=()):
        args = await self.extract_tool_args(session, CONTACT_TOOL, CONTACT_EXTRACTION_PROMPT, message)
        if args is None:
            args = regex_contact_fields(message)
        if self.intents.wants_anonymity(message):
            args["is_anonymous"] = True

        corrections = set(correction_names(args.get("corrections"))) | set(detect_corrections(message))
        args["corrections"] = sorted(corrections)

        result = await self.call_tool(session, CONTACT_TOOL, args)
        if not result.success:
            # The model produced unusable arguments; retry with the deterministic extractor.
            logger.info("Contact extraction rejected (%s), using regex fields", result.error)
            fallback = regex_contact_fields(message)
            fallback["corrections"] = sorted(corrections)
            result = await self.call_tool(session, CONTACT_TOOL, fallback)

        if result.success and result.data.get("rejected"):
            return self.stay(result.message)

        session = await self.reload(session)
        missing = missing_identity(session)
        if missing:
            logger.debug("Identity still missing: %s", missing)
            return self.stay(
                build_missing_contact_prompt(
                    has_name=bool(session.full_name),
                    has_contact=session.has_contact() or session.prefer_no_contact,
                )
            )

        reply = build_complaint_prompt(session.full_name, session.is_anonymous)
        if session.is_anonymous:
            reply = "Understood, your complaint will be filed anonymously. " + reply
        elif session.prefer_no_contact:
            reply = result.message + " " + reply
        return HandlerResult(reply=reply, next_state=ConversationState.COMPLAINT_CAPTURE)
