"""Evidence capture: accept uploads until the citizen says they are done."""

from complaint_agent.conversation.handlers.base import HandlerResult, StateHandler
from complaint_agent.conversation.intent import contains_any
from complaint_agent.logging_context import get_session_logger
from complaint_agent.schemas.session_schema import ConversationState

logger = get_session_logger(__name__)

UPLOAD_TOOL = "upload_evidence"
WRAP_UP_PHRASES = ["done", "that's all", "finished", "continue"]


class EvidenceHandler(StateHandler):
    state = ConversationState.EVIDENCE_CAPTURE

    async def handle(self, session, message, media=()):
        received, problems = [], []
        for item in media:
            result = await self.call_tool(
                session,
                UPLOAD_TOOL,
                {
                    "file_name": item.name,
                    "mime_type": item.type,
                    "size": item.size,
                    "data_base64": item.data or None,
                },
            )
            if result.success:
                received.append(item.name)
            else:
                problems.append(result.message)

        notes = []
        if received:
            notes.append(f"Received {', '.join(received)}.")
        notes.extend(problems)

        if problems:
            return self.stay(" ".join(notes))
        done = self.intents.is_skip(message)
        if received and done:
            # With an upload in the same message, only an explicit wrap-up counts.
            done = contains_any(message, WRAP_UP_PHRASES) is not None
        if done:
            return HandlerResult(
                reply=" ".join(notes),
                next_state=ConversationState.CLASSIFICATION,
                chain=True,
            )
        if received:
            notes.append("You can attach more files, or say 'done' to continue.")
            return self.stay(" ".join(notes))
        return self.stay(
            "You can attach photos, documents, videos or audio recordings now, "
            "or say 'skip' to continue without evidence."
        )
