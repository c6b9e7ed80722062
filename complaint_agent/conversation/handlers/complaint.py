"""
Complaint capture: accumulate a description long enough to classify.

Each message is appended to the description unless it is a correction
of some other field. Structured details the citizen mentions along the
way (ministry, date, subject) are saved in the same patch.
"""

from typing import Any

from complaint_agent.config import settings
from complaint_agent.conversation.fields import (
    correction_names,
    description_length,
    detect_corrections,
    has_sufficient_description,
)
from complaint_agent.conversation.handlers.base import HandlerResult, StateHandler
from complaint_agent.conversation.intent import contains_any
from complaint_agent.llm.classifier import CATEGORIES, MINISTRIES, canonical_name
from complaint_agent.llm.extraction import regex_complaint_fields
from complaint_agent.logging_context import get_session_logger
from complaint_agent.prompts.prompt_templates import build_evidence_prompt, build_more_detail_prompt
from complaint_agent.prompts.system_prompts import COMPLAINT_EXTRACTION_PROMPT
from complaint_agent.schemas.session_schema import ConversationState

logger = get_session_logger(__name__)

DETAILS_TOOL = "update_session_data"

NO_EVIDENCE_PHRASES = [
    "no evidence", "without evidence", "don't have evidence", "dont have evidence",
    "don't have any evidence", "no proof", "no documents",
]


class ComplaintHandler(StateHandler):
    state = ConversationState.COMPLAINT_CAPTURE

    async def handle(self, session, message, media=()):
        raw = await self.extract_tool_args(session, DETAILS_TOOL, COMPLAINT_EXTRACTION_PROMPT, message)
        if raw is None:
            raw = {"data": regex_complaint_fields(message)}

        data = raw.get("data")
        if not isinstance(data, dict):
            logger.info("Extracted details are not an object, using regex fields")
            data = regex_complaint_fields(message)

        corrections = set(detect_corrections(message)) | set(correction_names(raw.get("corrections")))
        args = self._build_args(data, session, message, corrections)

        result = await self.call_tool(session, DETAILS_TOOL, args)
        if not result.success:
            logger.info("Detail extraction rejected (%s), using regex fields", result.error)
            args = self._build_args(regex_complaint_fields(message), session, message, corrections)
            await self.call_tool(session, DETAILS_TOOL, args)

        session = await self.reload(session)
        if not has_sufficient_description(session):
            return self.stay(
                build_more_detail_prompt(
                    description_length(session), settings.agent.min_description_length
                )
            )

        if media:
            # Files sent alongside the description are handled by the evidence step.
            return HandlerResult(
                reply="", next_state=ConversationState.EVIDENCE_CAPTURE, chain=True
            )
        if contains_any(message, NO_EVIDENCE_PHRASES):
            return HandlerResult(
                reply="", next_state=ConversationState.CLASSIFICATION, chain=True
            )
        return HandlerResult(
            reply=build_evidence_prompt(), next_state=ConversationState.EVIDENCE_CAPTURE
        )

    @staticmethod
    def _build_args(
        data: dict[str, Any], session, message: str, corrections: set[str]
    ) -> dict[str, Any]:
        """Canonicalise extracted details and build the running description."""
        data = {k: v for k, v in data.items() if v not in (None, "")}
        if "ministry" in data:
            ministry = canonical_name(data["ministry"], MINISTRIES)
            if ministry:
                data["ministry"] = ministry
            else:
                data.pop("ministry")
        if "category" in data:
            category = canonical_name(data["category"], CATEGORIES)
            if category:
                data["category"] = category
            else:
                data.pop("category")

        piece = str(data.pop("description", "") or message).strip()
        if "description" in corrections or not session.description:
            data["description"] = piece
        elif not corrections:
            data["description"] = f"{session.description.rstrip()} {piece}"
        # The description is always written as a correction: appending replaces the old text.
        return {"data": data, "corrections": sorted(corrections | {"description"})}
