"""Shared test fixtures and helpers."""

import asyncio
import base64
import copy
from typing import Any, Optional

import pytest

from complaint_agent.conversation.dispatcher import Dispatcher
from complaint_agent.conversation.intent import GenderCorrectionGuardrail, IntentDetector, ScopeGuardrail
from complaint_agent.conversation.state_machine import ConversationStateMachine
from complaint_agent.errors import CompletionUnavailable
from complaint_agent.llm.extraction import KeywordCompletionService
from complaint_agent.schemas.complaint_schema import ComplaintSubmission
from complaint_agent.schemas.transport_schema import InboundMedia
from complaint_agent.services.complaints import ComplaintService
from complaint_agent.services.tracking import TrackingService
from complaint_agent.store.blob_store import InMemoryBlobStore
from complaint_agent.store.complaint_repository import InMemoryComplaintRepository
from complaint_agent.store.session_store import InMemorySessionRepository, SessionStore
from complaint_agent.tools import ToolContext, ToolInvoker, build_default_registry

MB = 1024 * 1024

VALID_DESCRIPTION = (
    "The clerk at the district hospital demanded a bribe before treating my "
    "mother on 3 March 2025 and refused to give a receipt."
)


class FakeCompletionService:
    """Returns canned JSON per schema name and records every request.

    A response may be a dict, an exception instance to raise, or a list of
    either consumed in order. Names without a response raise a
    non-retryable CompletionUnavailable so callers take their fallback path.
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None, delay: float = 0.0) -> None:
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self.active = 0
        self.max_active = 0

    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        schema: dict[str, Any],
        name: str,
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        self.calls.append({"name": name, "system": system, "user": user, "schema": schema})
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(name)
            if isinstance(response, list):
                response = response.pop(0) if response else None
            if response is None:
                raise CompletionUnavailable(f"No canned response for {name}", retryable=False)
            if isinstance(response, Exception):
                raise response
            return copy.deepcopy(response)
        finally:
            self.active -= 1

    def names(self) -> list[str]:
        return [call["name"] for call in self.calls]


def make_submission(**overrides: Any) -> ComplaintSubmission:
    data: dict[str, Any] = {
        "full_name": "Amina Yusuf",
        "email": "amina@example.com",
        "phone": "",
        "description": VALID_DESCRIPTION,
        "ministry": "Health",
        "category": "service_delivery",
        "session_id": "sess-1",
    }
    data.update(overrides)
    return ComplaintSubmission(**data)


def make_media(name: str = "photo.jpg", mime: str = "image/jpeg", size: Optional[int] = None,
               content: bytes = b"fake image bytes") -> InboundMedia:
    return InboundMedia(
        name=name,
        type=mime,
        size=len(content) if size is None else size,
        data=base64.b64encode(content).decode(),
    )


@pytest.fixture
def state_machine():
    return ConversationStateMachine()


@pytest.fixture
def intents():
    return IntentDetector()


@pytest.fixture
def scope_guardrail():
    return ScopeGuardrail()


@pytest.fixture
def gender_guardrail():
    return GenderCorrectionGuardrail()


@pytest.fixture
def session_repository():
    repo = InMemorySessionRepository()
    yield repo
    repo.reset()


@pytest.fixture
def session_store(session_repository):
    return SessionStore(session_repository, timeout_sec=1.0)


@pytest.fixture
def complaint_repository():
    repo = InMemoryComplaintRepository()
    yield repo
    repo.reset()


@pytest.fixture
def complaint_service(complaint_repository):
    return ComplaintService(complaint_repository, timeout_sec=1.0)


@pytest.fixture
def tracking_service(complaint_service):
    return TrackingService(complaint_service)


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def tool_context(session_store, complaint_service, tracking_service, blob_store):
    return ToolContext(
        sessions=session_store,
        complaints=complaint_service,
        tracking=tracking_service,
        blobs=blob_store,
    )


@pytest.fixture
def invoker():
    return ToolInvoker(build_default_registry())


@pytest.fixture
def dispatcher(session_store, complaint_repository, blob_store):
    """Dispatcher running fully offline on the keyword completion service."""
    return Dispatcher.build(
        completion=KeywordCompletionService(),
        sessions=session_store,
        complaints=complaint_repository,
        blobs=blob_store,
    )
