"""End-to-end turn tests through the dispatcher."""

import asyncio

import pytest

from complaint_agent.conversation.dispatcher import TERMINAL_REPLY, Dispatcher
from complaint_agent.conversation.handlers import RETRY_LATER_MESSAGE, HandlerResult
from complaint_agent.conversation.handlers.submission import CHANGE_REPLY
from complaint_agent.conversation.handlers.tracking import ASK_FOR_NUMBER
from complaint_agent.conversation.intent import OUT_OF_SCOPE_MESSAGE
from complaint_agent.llm.classifier import CLASSIFICATION_SCHEMA_NAME, REJECTION_MESSAGE
from complaint_agent.schemas.session_schema import ConversationState, Gender
from complaint_agent.services.tracking import NOT_FOUND_MESSAGE
from complaint_agent.tools.evidence_tools import placeholder_id_for
from conftest import VALID_DESCRIPTION, FakeCompletionService, make_media

S = ConversationState

INTRO = "Hello, I want to file a complaint"
IDENTITY = "My name is Amina Yusuf and my email is amina@example.com"


async def reach(dispatcher, session_id, *messages):
    outcome = None
    for message in messages:
        outcome = await dispatcher.handle_turn(session_id, message)
    return outcome


async def file_complaint(dispatcher, session_id="s1"):
    return await reach(dispatcher, session_id, INTRO, IDENTITY, VALID_DESCRIPTION, "skip", "yes")


def offline_dispatcher(completion, session_store, complaint_repository, blob_store):
    return Dispatcher.build(
        completion=completion,
        sessions=session_store,
        complaints=complaint_repository,
        blobs=blob_store,
    )


class TestComplaintFlow:
    @pytest.mark.asyncio
    async def test_each_step(self, dispatcher, session_store):
        outcome = await dispatcher.handle_turn("s1", INTRO)
        assert outcome.state == S.IDENTITY_CAPTURE
        assert "full name" in outcome.reply

        outcome = await dispatcher.handle_turn("s1", IDENTITY)
        assert outcome.state == S.COMPLAINT_CAPTURE
        assert "Amina Yusuf" in outcome.reply

        outcome = await dispatcher.handle_turn("s1", VALID_DESCRIPTION)
        assert outcome.state == S.EVIDENCE_CAPTURE

        outcome = await dispatcher.handle_turn("s1", "skip")
        assert outcome.state == S.SUBMISSION
        assert "Ministry: Health" in outcome.reply
        assert "Date of incident: 03 March 2025" in outcome.reply

        outcome = await dispatcher.handle_turn("s1", "yes")
        assert outcome.state == S.COMPLETED
        assert outcome.is_complete
        assert outcome.tracking_number.startswith("OMB-")
        assert outcome.tracking_number in outcome.reply

        session = await session_store.get("s1")
        assert session.full_name == "Amina Yusuf"
        assert session.email == "amina@example.com"
        assert session.summary_confirmed
        assert session.complaint_id is not None
        assert session.completed_at is not None

    @pytest.mark.asyncio
    async def test_complaint_is_stored(self, dispatcher):
        outcome = await file_complaint(dispatcher)
        complaint = await dispatcher.tool_context.complaints.get_by_tracking_number(
            outcome.tracking_number
        )
        assert complaint.ministry == "Health"
        assert complaint.category == "corruption"
        assert complaint.complainant_name == "Amina Yusuf"
        assert complaint.description == VALID_DESCRIPTION

    @pytest.mark.asyncio
    async def test_short_description_asks_for_more(self, dispatcher, session_store):
        await reach(dispatcher, "s1", INTRO, IDENTITY)
        outcome = await dispatcher.handle_turn("s1", "Bad clinic")
        assert outcome.state == S.COMPLAINT_CAPTURE

        outcome = await dispatcher.handle_turn("s1", "The nurse shouted at patients all day")
        assert outcome.state == S.EVIDENCE_CAPTURE
        session = await session_store.get("s1")
        assert session.description == "Bad clinic The nurse shouted at patients all day"

    @pytest.mark.asyncio
    async def test_anonymous(self, dispatcher):
        await dispatcher.handle_turn("s1", INTRO)
        outcome = await dispatcher.handle_turn("s1", "I want to stay anonymous")
        assert outcome.state == S.COMPLAINT_CAPTURE
        assert "anonymously" in outcome.reply

        outcome = await reach(dispatcher, "s1", VALID_DESCRIPTION, "skip", "yes")
        complaint = await dispatcher.tool_context.complaints.get_by_tracking_number(
            outcome.tracking_number
        )
        assert complaint.is_anonymous
        assert complaint.complainant_name == "Anonymous"

    @pytest.mark.asyncio
    async def test_change_request_returns_to_capture(self, dispatcher, session_store):
        await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION, "skip")
        outcome = await dispatcher.handle_turn("s1", "no, the date is different")
        assert outcome.state == S.COMPLAINT_CAPTURE
        assert outcome.reply == CHANGE_REPLY
        assert not (await session_store.get("s1")).summary_confirmed

    @pytest.mark.asyncio
    async def test_confirmation_mentioning_no_changes_submits(self, dispatcher):
        await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION, "skip")
        outcome = await dispatcher.handle_turn("s1", "Yes, no changes needed, please submit")
        assert outcome.state == S.COMPLETED
        assert outcome.tracking_number is not None

    @pytest.mark.asyncio
    async def test_unclear_answer_at_submission(self, dispatcher):
        await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION, "skip")
        outcome = await dispatcher.handle_turn("s1", "hmm")
        assert outcome.state == S.SUBMISSION


class TestEvidence:
    @pytest.mark.asyncio
    async def test_upload_then_done(self, dispatcher, session_store, blob_store):
        await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION)

        outcome = await dispatcher.handle_turn(
            "s1", "Here is a photo of the receipt", media=[make_media()]
        )
        assert outcome.state == S.EVIDENCE_CAPTURE
        assert "Received photo.jpg" in outcome.reply
        assert len(blob_store) == 1

        outcome = await dispatcher.handle_turn("s1", "done")
        assert outcome.state == S.SUBMISSION
        assert "Evidence: 1 file(s) attached" in outcome.reply

        outcome = await dispatcher.handle_turn("s1", "yes")
        assert outcome.state == S.COMPLETED
        session = await session_store.get("s1")
        complaint = await dispatcher.tool_context.complaints.get(session.complaint_id)
        assert [e.file_name for e in complaint.evidence] == ["photo.jpg"]
        assert await dispatcher.tool_context.complaints.list_evidence(placeholder_id_for("s1")) == []

    @pytest.mark.asyncio
    async def test_rejected_upload_stays(self, dispatcher):
        await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION)
        outcome = await dispatcher.handle_turn(
            "s1", "done", media=[make_media("tool.exe", "application/x-msdownload")]
        )
        assert outcome.state == S.EVIDENCE_CAPTURE
        assert "tool.exe" in outcome.reply

    @pytest.mark.asyncio
    async def test_media_with_description(self, dispatcher):
        await reach(dispatcher, "s1", INTRO, IDENTITY)
        outcome = await dispatcher.handle_turn(
            "s1", VALID_DESCRIPTION, media=[make_media("letter.pdf", "application/pdf")]
        )
        assert outcome.state == S.EVIDENCE_CAPTURE
        assert "Received letter.pdf" in outcome.reply

    @pytest.mark.asyncio
    async def test_no_evidence_goes_straight_to_summary(self, dispatcher):
        await reach(dispatcher, "s1", INTRO, IDENTITY)
        outcome = await dispatcher.handle_turn("s1", VALID_DESCRIPTION + " I have no evidence.")
        assert outcome.state == S.SUBMISSION
        assert "Evidence:" not in outcome.reply


class TestTracking:
    @pytest.mark.asyncio
    async def test_lookup_from_greeting(self, dispatcher, session_store):
        filed = await file_complaint(dispatcher)

        outcome = await dispatcher.handle_turn(
            "s2", f"What is the status of {filed.tracking_number.lower()}?"
        )
        assert outcome.state == S.COMPLETED
        assert outcome.tracking_number == filed.tracking_number
        assert "Submitted - Under Initial Review" in outcome.reply

        session = await session_store.get("s2")
        assert session.tracking_result.tracking_number == filed.tracking_number
        assert session.tracking_result.status == "submitted"

    @pytest.mark.asyncio
    async def test_asks_for_number(self, dispatcher):
        outcome = await dispatcher.handle_turn("s1", "I want to track my complaint")
        assert outcome.state == S.TRACKING
        assert outcome.reply == ASK_FOR_NUMBER

    @pytest.mark.asyncio
    async def test_unknown_number_stays(self, dispatcher):
        await dispatcher.handle_turn("s1", "I want to track my complaint")
        outcome = await dispatcher.handle_turn("s1", "OMB-AAAA-BBBB")
        assert outcome.state == S.TRACKING
        assert outcome.reply == NOT_FOUND_MESSAGE

    @pytest.mark.asyncio
    async def test_malformed_number_stays(self, dispatcher):
        await dispatcher.handle_turn("s1", "I want to track my complaint")
        outcome = await dispatcher.handle_turn("s1", "it is OMB-12")
        assert outcome.state == S.TRACKING
        assert "Invalid tracking number format" in outcome.reply


class TestGuardrails:
    @pytest.mark.asyncio
    async def test_out_of_scope_at_greeting(self, dispatcher, session_store):
        outcome = await dispatcher.handle_turn("s1", "Tell me a joke")
        assert outcome.reply == OUT_OF_SCOPE_MESSAGE
        assert outcome.state == S.GREETING
        assert (await session_store.get("s1")).message_count == 0

    @pytest.mark.asyncio
    async def test_scope_only_checked_at_greeting(self, dispatcher):
        await reach(dispatcher, "s1", INTRO, IDENTITY)
        outcome = await dispatcher.handle_turn(
            "s1", "The football coach at the district school kept the exam fees"
        )
        assert outcome.reply != OUT_OF_SCOPE_MESSAGE

    @pytest.mark.asyncio
    async def test_gender_correction(self, dispatcher, session_store):
        await dispatcher.handle_turn("s1", INTRO)
        outcome = await dispatcher.handle_turn("s1", "I am a woman")
        assert "apologise" in outcome.reply
        assert outcome.state == S.IDENTITY_CAPTURE
        assert (await session_store.get("s1")).gender == Gender.FEMALE

    @pytest.mark.asyncio
    async def test_pronoun_in_description_keeps_gender(self, dispatcher, session_store):
        await reach(dispatcher, "s1", INTRO, "I'm a woman", IDENTITY)
        message = "I'm a nurse, they never paid me."
        outcome = await dispatcher.handle_turn("s1", message)
        assert "sorry" not in outcome.reply
        session = await session_store.get("s1")
        assert session.gender == Gender.FEMALE
        assert session.description == message

    @pytest.mark.asyncio
    async def test_terminal_session(self, dispatcher, session_store):
        await file_complaint(dispatcher)
        before = (await session_store.get("s1")).message_count

        outcome = await dispatcher.handle_turn("s1", "hello again")
        assert outcome.reply == TERMINAL_REPLY
        assert outcome.state == S.COMPLETED
        assert (await session_store.get("s1")).message_count == before


class TestFailures:
    @pytest.mark.asyncio
    async def test_low_confidence_rejected(self, session_store, complaint_repository, blob_store):
        fake = FakeCompletionService({
            CLASSIFICATION_SCHEMA_NAME: {
                "ministry": "Health", "category": None, "confidence": 0.1, "reasoning": "unsure",
            }
        })
        dispatcher = offline_dispatcher(fake, session_store, complaint_repository, blob_store)

        outcome = await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION, "skip")
        assert outcome.state == S.ERROR
        assert outcome.reply == REJECTION_MESSAGE
        session = await session_store.get("s1")
        assert session.error_reason == "classification_rejected"
        assert session.classification_confidence == 0.1

    @pytest.mark.asyncio
    async def test_classification_unavailable(self, session_store, complaint_repository, blob_store):
        fake = FakeCompletionService()
        dispatcher = offline_dispatcher(fake, session_store, complaint_repository, blob_store)

        outcome = await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION, "skip")
        assert outcome.state == S.ERROR
        assert outcome.reply == RETRY_LATER_MESSAGE
        assert CLASSIFICATION_SCHEMA_NAME in fake.names()
        session = await session_store.get("s1")
        assert session.current_state == S.ERROR
        assert outcome.failed
        assert session.error_reason == "CompletionUnavailable"

    @pytest.mark.asyncio
    async def test_extraction_falls_back_to_regex(
        self, session_store, complaint_repository, blob_store
    ):
        fake = FakeCompletionService()
        dispatcher = offline_dispatcher(fake, session_store, complaint_repository, blob_store)

        outcome = await reach(dispatcher, "s1", INTRO, IDENTITY)
        assert outcome.state == S.COMPLAINT_CAPTURE
        assert "extract_contact_info" in fake.names()
        assert (await session_store.get("s1")).email == "amina@example.com"

    @pytest.mark.asyncio
    async def test_store_failure(self, dispatcher, session_repository, monkeypatch):
        await dispatcher.handle_turn("s1", INTRO)

        async def broken_save(session):
            raise RuntimeError("disk full")

        monkeypatch.setattr(session_repository, "save", broken_save)
        outcome = await dispatcher.handle_turn("s1", IDENTITY)
        assert outcome.state == S.ERROR
        assert outcome.reply == RETRY_LATER_MESSAGE

    @pytest.mark.asyncio
    async def test_invalid_transition(self, session_store, tool_context):
        class SkippingHandler:
            async def handle(self, session, message, media=()):
                return HandlerResult(reply="jumping ahead", next_state=S.SUBMISSION)

        dispatcher = Dispatcher(session_store, {S.GREETING: SkippingHandler()}, tool_context)
        outcome = await dispatcher.handle_turn("s1", INTRO)
        assert outcome.state == S.ERROR
        assert outcome.reply == RETRY_LATER_MESSAGE
        session = await session_store.get("s1")
        assert session.current_state == S.ERROR
        assert session.error_reason == "invalid_transition"

    @pytest.mark.asyncio
    async def test_details_payload_that_is_not_an_object(
        self, session_store, complaint_repository, blob_store
    ):
        fake = FakeCompletionService({
            "update_session_data": {"data": "the clinic refused to treat my mother"},
        })
        dispatcher = offline_dispatcher(fake, session_store, complaint_repository, blob_store)

        outcome = await reach(dispatcher, "s1", INTRO, IDENTITY, VALID_DESCRIPTION)
        assert outcome.state == S.EVIDENCE_CAPTURE
        assert not outcome.failed
        assert (await session_store.get("s1")).description == VALID_DESCRIPTION

    @pytest.mark.asyncio
    async def test_corrections_that_are_not_a_list(
        self, session_store, complaint_repository, blob_store
    ):
        fake = FakeCompletionService({
            "extract_contact_info": {"full_name": "Amina", "corrections": 5},
        })
        dispatcher = offline_dispatcher(fake, session_store, complaint_repository, blob_store)

        outcome = await reach(dispatcher, "s1", INTRO, "I am Amina")
        assert outcome.state == S.IDENTITY_CAPTURE
        assert not outcome.failed
        assert (await session_store.get("s1")).full_name == "Amina"

    @pytest.mark.asyncio
    async def test_completion_returning_plain_text(
        self, session_store, complaint_repository, blob_store
    ):
        fake = FakeCompletionService({"extract_contact_info": ["Amina Yusuf"]})
        dispatcher = offline_dispatcher(fake, session_store, complaint_repository, blob_store)

        outcome = await reach(dispatcher, "s1", INTRO, IDENTITY)
        assert outcome.state == S.COMPLAINT_CAPTURE
        assert (await session_store.get("s1")).email == "amina@example.com"

    @pytest.mark.asyncio
    async def test_unexpected_handler_error(self, session_store, tool_context):
        class BrokenHandler:
            async def handle(self, session, message, media=()):
                raise KeyError("ministry")

        dispatcher = Dispatcher(session_store, {S.GREETING: BrokenHandler()}, tool_context)
        outcome = await dispatcher.handle_turn("s1", INTRO)
        assert outcome.state == S.ERROR
        assert outcome.reply == RETRY_LATER_MESSAGE
        assert outcome.failed
        session = await session_store.get("s1")
        assert session.current_state == S.ERROR
        assert session.error_reason == "internal_error"


class SlowHandler:
    """Greeting moves on to identity capture, identity capture stays put."""

    def __init__(self, delay=0.05):
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def handle(self, session, message, media=()):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return HandlerResult(reply=message, next_state=S.IDENTITY_CAPTURE)


class TestConcurrency:
    def make(self, session_store, tool_context):
        handler = SlowHandler()
        handlers = {S.GREETING: handler, S.IDENTITY_CAPTURE: handler}
        return Dispatcher(session_store, handlers, tool_context), handler

    @pytest.mark.asyncio
    async def test_same_session_is_serialised(self, session_store, tool_context):
        dispatcher, handler = self.make(session_store, tool_context)
        outcomes = await asyncio.gather(
            dispatcher.handle_turn("s1", "first complaint"),
            dispatcher.handle_turn("s1", "second complaint"),
        )
        assert handler.max_active == 1
        assert [o.reply for o in outcomes] == ["first complaint", "second complaint"]
        assert (await session_store.get("s1")).message_count == 2
        assert len(dispatcher.locks) == 0

    @pytest.mark.asyncio
    async def test_different_sessions_run_concurrently(self, session_store, tool_context):
        dispatcher, handler = self.make(session_store, tool_context)
        await asyncio.gather(
            dispatcher.handle_turn("s1", "first complaint"),
            dispatcher.handle_turn("s2", "second complaint"),
        )
        assert handler.max_active == 2
        assert len(dispatcher.locks) == 0
