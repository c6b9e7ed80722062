"""
Shared handler plumbing.

A handler reads the session, may call tools and the completion
service, and returns a HandlerResult. It never writes the conversation
state itself; the dispatcher validates ``next_state`` and persists the
patch after the handler returns.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

from complaint_agent.conversation.intent import IntentDetector
from complaint_agent.errors import ComplaintAgentError, CompletionUnavailable, StoreUnavailable
from complaint_agent.llm.classifier import Classifier
from complaint_agent.llm.completion import CompletionService
from complaint_agent.logging_context import get_session_logger
from complaint_agent.prompts.prompt_templates import build_extraction_prompt
from complaint_agent.schemas.session_schema import ConversationSession, ConversationState
from complaint_agent.schemas.transport_schema import InboundMedia
from complaint_agent.tools.base import ToolContext, ToolInvoker, ToolResult

logger = get_session_logger(__name__)

RETRY_LATER_MESSAGE = (
    "I'm having trouble processing your request right now. "
    "Please try again in a few minutes."
)


@dataclass
class HandlerResult:
    reply: str
    next_state: ConversationState
    patch: dict[str, Any] = field(default_factory=dict)
    corrections: Sequence[str] = ()
    tracking_number: Optional[str] = None
    # Run the handler for next_state on the same message before replying.
    chain: bool = False


@dataclass
class HandlerDeps:
    """Collaborators injected into every handler."""
    invoker: ToolInvoker
    tools: ToolContext
    completion: CompletionService
    classifier: Classifier
    intents: IntentDetector = field(default_factory=IntentDetector)


class StateHandler:
    """Base class for the per-state handlers."""

    state: ConversationState

    def __init__(self, deps: HandlerDeps) -> None:
        self.deps = deps
        self.intents = deps.intents

    async def handle(
        self,
        session: ConversationSession,
        message: str,
        media: Sequence[InboundMedia] = (),
    ) -> HandlerResult:
        raise NotImplementedError

    def stay(self, reply: str, **kwargs: Any) -> HandlerResult:
        return HandlerResult(reply=reply, next_state=self.state, **kwargs)

    async def reload(self, session: ConversationSession) -> ConversationSession:
        """Re-read the session after a tool wrote to it."""
        fresh = await self.deps.tools.sessions.get(session.session_id)
        return fresh or session

    async def call_tool(
        self, session: ConversationSession, name: str, args: dict[str, Any]
    ) -> ToolResult:
        """
        Invoke a tool on behalf of this session.

        Infrastructure failures are re-raised so the dispatcher can move the
        conversation to ``error``. Everything else comes back in-band.
        """
        tool = self.deps.invoker.registry.get(name)
        if tool is not None and "session_id" in tool.args_model.model_fields:
            args = {**args, "session_id": session.session_id}
        context = replace(self.deps.tools, session_id=session.session_id)
        result = await self.deps.invoker.invoke(name, args, context)
        if result.error == "store_unavailable":
            raise StoreUnavailable(f"{name}: {result.message}")
        if result.error in ("internal_error", "unknown_tool"):
            raise ComplaintAgentError(f"{name} failed: {result.error}")
        return result

    async def extract_tool_args(
        self, session: ConversationSession, tool_name: str, system_prompt: str, message: str
    ) -> Optional[dict[str, Any]]:
        """
        Ask the completion service to fill in a tool's arguments from ``message``.

        Returns None when the service is unavailable or does not answer with
        an object, so the caller can fall back to deterministic extraction.
        """
        tool = self.deps.invoker.registry.get(tool_name)
        if tool is None:
            return None
        try:
            raw = await self.deps.completion.complete_json(
                system=system_prompt,
                user=build_extraction_prompt(message, session.collected()),
                schema=tool.json_schema,
                name=tool.name,
            )
        except CompletionUnavailable as exc:
            logger.warning("Extraction for %s unavailable, using fallback: %s", tool_name, exc)
            return None
        if not isinstance(raw, dict):
            logger.warning("Extraction for %s returned %s, using fallback", tool_name, type(raw).__name__)
            return None
        return raw
