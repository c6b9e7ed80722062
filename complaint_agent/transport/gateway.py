"""
FastAPI gateway: a streaming WebSocket channel plus plain HTTP endpoints.

Every inbound message goes through the dispatcher, which has already
persisted the session by the time a reply comes back. The socket then
streams the reply as word-group deltas, so a client that disconnects
mid-stream loses only the rendering, never the state change.
"""

import uuid
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from complaint_agent import __version__
from complaint_agent.config import settings
from complaint_agent.conversation.dispatcher import Dispatcher, TurnOutcome
from complaint_agent.conversation.fields import missing_identity
from complaint_agent.conversation.handlers import RETRY_LATER_MESSAGE
from complaint_agent.logging_context import get_session_logger
from complaint_agent.schemas.session_schema import ConversationState
from complaint_agent.schemas.transport_schema import (
    EnvelopeData,
    InboundMessage,
    StreamChunk,
    TerminalEnvelope,
    TurnResponse,
)
from complaint_agent.services.tracking import TrackingErrorType, TrackingQuery

logger = get_session_logger(__name__)

CONNECTED_MESSAGE = "Connected to the complaint assistant."
INVALID_MESSAGE = "Invalid message format. Expected JSON with sessionId and message."

TRACKING_ERROR_STATUS: dict[TrackingErrorType, int] = {
    TrackingErrorType.INVALID_FORMAT: 400,
    TrackingErrorType.NOT_FOUND: 404,
    TrackingErrorType.SYSTEM_ERROR: 503,
}


class NewSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")


def chunk_words(text: str, words_per_chunk: int) -> list[str]:
    """Split ``text`` into deltas of ``words_per_chunk`` words, keeping the spacing."""
    words = text.split(" ")
    return [
        " ".join(words[i:i + words_per_chunk]) + (" " if i + words_per_chunk < len(words) else "")
        for i in range(0, len(words), words_per_chunk)
    ]


def envelope_for(outcome: TurnOutcome) -> Optional[TerminalEnvelope]:
    """The closing envelope for submitted complaints and tracking lookups."""
    if outcome.state != ConversationState.COMPLETED and not outcome.tracking_number:
        return None
    return TerminalEnvelope(
        data=EnvelopeData(
            message=outcome.reply,
            tracking_number=outcome.tracking_number,
            state=outcome.state.value,
        )
    )


async def stream_outcome(websocket: WebSocket, outcome: TurnOutcome) -> None:
    if outcome.failed:
        await send_error(websocket, outcome.reply)
        return
    for delta in chunk_words(outcome.reply, settings.server.stream_chunk_words):
        await websocket.send_json(StreamChunk(delta=delta).model_dump(exclude_none=True))
    await websocket.send_json(StreamChunk(done=True).model_dump(exclude_none=True))

    envelope = envelope_for(outcome)
    if envelope is not None:
        await websocket.send_json(envelope.model_dump(by_alias=True, exclude_none=True))


async def send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json(StreamChunk(error=message, done=True).model_dump(exclude_none=True))


def create_app(dispatcher: Optional[Dispatcher] = None) -> FastAPI:
    dispatcher = dispatcher or Dispatcher.build()
    app = FastAPI(
        title="Complaint Intake Agent",
        description="Conversational complaint filing and tracking",
        version=__version__,
    )
    app.state.dispatcher = dispatcher

    @app.websocket("/ws")
    async def conversation_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        client_id = str(uuid.uuid4())
        await websocket.send_json(
            {"type": "connected", "clientId": client_id, "message": CONNECTED_MESSAGE}
        )
        logger.info("Client connected: %s", client_id)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    inbound = InboundMessage.model_validate_json(raw)
                except ValidationError as exc:
                    logger.info("Rejected inbound message from %s: %d error(s)", client_id, exc.error_count())
                    await websocket.send_json({"type": "error", "message": INVALID_MESSAGE})
                    continue

                try:
                    outcome = await dispatcher.handle_turn(
                        inbound.session_id, inbound.message, inbound.user_id, inbound.media
                    )
                except Exception:
                    logger.exception("Turn failed for client %s", client_id)
                    await send_error(websocket, RETRY_LATER_MESSAGE)
                    continue
                await stream_outcome(websocket, outcome)
        except WebSocketDisconnect:
            logger.info("Client disconnected: %s", client_id)

    @app.post("/api/agent/session")
    async def create_session(request: Optional[NewSessionRequest] = None) -> dict[str, Any]:
        session_id = str(uuid.uuid4())
        user_id = request.user_id if request else None
        session = await dispatcher.sessions.get_or_create(session_id, user_id)
        return {"sessionId": session.session_id, "state": session.current_state.value}

    @app.post("/api/agent/message", response_model=TurnResponse, response_model_by_alias=True)
    async def post_message(inbound: InboundMessage) -> TurnResponse:
        outcome = await dispatcher.handle_turn(
            inbound.session_id, inbound.message, inbound.user_id, inbound.media
        )
        return TurnResponse(
            message=outcome.reply,
            session_id=outcome.session_id,
            state=outcome.state.value,
            is_complete=outcome.is_complete,
            tracking_number=outcome.tracking_number,
        )

    @app.get("/api/agent/session/{session_id}/status")
    async def session_status(session_id: str) -> dict[str, Any]:
        session = await dispatcher.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return {
            "sessionId": session.session_id,
            "state": session.current_state.value,
            "messageCount": session.message_count,
            "isComplete": session.is_terminal,
            "missing": missing_identity(session),
            "hasEvidence": session.has_evidence,
        }

    @app.get("/api/track/{tracking_number}")
    async def track(tracking_number: str) -> JSONResponse:
        response = await dispatcher.tool_context.tracking.track_complaint(
            TrackingQuery(tracking_number=tracking_number, include_history=True, include_evidence=True)
        )
        status_code = 200
        if response.error_type is not None:
            status_code = TRACKING_ERROR_STATUS[response.error_type]
        return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "agent": settings.agent.name}

    return app
