"""Wire formats for the streaming transport and HTTP endpoints."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundMedia(BaseModel):
    """A file attached to an inbound message, base64 encoded."""
    name: str
    type: str
    size: int = Field(ge=0)
    data: str = ""


class InboundMessage(BaseModel):
    """A single citizen turn as received from the client."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    message: str = Field(min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")
    media: list[InboundMedia] = Field(default_factory=list)


class StreamChunk(BaseModel):
    """Outbound streaming delta."""
    delta: Optional[str] = None
    done: Optional[bool] = None
    error: Optional[str] = None


class EnvelopeData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber")
    state: Optional[str] = None


class TerminalEnvelope(BaseModel):
    """Final envelope sent for completed and tracking outcomes."""
    type: Literal["message"] = "message"
    data: EnvelopeData


class TurnResponse(BaseModel):
    """Non-streaming HTTP response for one turn."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: str = Field(alias="sessionId")
    state: str
    is_complete: bool = Field(alias="isComplete")
    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber")
