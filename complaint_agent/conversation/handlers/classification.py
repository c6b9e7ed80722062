"""Classification: route the description to a ministry, then read it back."""

from complaint_agent.conversation.handlers.base import HandlerResult, StateHandler
from complaint_agent.errors import CompletionUnavailable
from complaint_agent.llm.classifier import REJECTION_MESSAGE
from complaint_agent.logging_context import get_session_logger
from complaint_agent.prompts.prompt_templates import (
    build_complaint_summary,
    build_confirmation_request,
)
from complaint_agent.schemas.session_schema import ConversationState

logger = get_session_logger(__name__)

DEFAULT_CATEGORY = "other"


class ClassificationHandler(StateHandler):
    state = ConversationState.CLASSIFICATION

    async def handle(self, session, message, media=()):
        result = await self.deps.classifier.classify(session.description or "")
        if result.unavailable:
            # Surfaces as a retry-later error rather than a rejection.
            raise CompletionUnavailable(result.reasoning)

        if not self.deps.classifier.is_acceptable(result):
            logger.info(
                "Classification rejected: ministry=%s confidence=%.2f",
                result.ministry, result.confidence,
            )
            return HandlerResult(
                reply=REJECTION_MESSAGE,
                next_state=ConversationState.ERROR,
                patch={
                    "error_reason": "classification_rejected",
                    "classification_confidence": result.confidence,
                },
            )

        category = result.category or DEFAULT_CATEGORY
        patch = {
            "classified_ministry": result.ministry,
            "classified_category": category,
            "classification_confidence": result.confidence,
            "ministry": result.ministry,
            "category": category,
            "summary_confirmed": True,
        }
        evidence = []
        if session.placeholder_id:
            evidence = await self.deps.tools.complaints.list_evidence(session.placeholder_id)

        summary = build_complaint_summary(
            subject=session.subject,
            ministry=session.ministry or result.ministry,
            category=session.category or category,
            description=session.description or "",
            incident_date=session.incident_date,
            evidence_count=len(evidence),
        )
        return HandlerResult(
            reply=build_confirmation_request(summary),
            next_state=ConversationState.SUBMISSION,
            patch=patch,
        )
