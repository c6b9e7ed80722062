"""
Field definitions for the details collected during intake.

Each collected session field has a definition with its display name,
the state that collects it, and an optional validator. Handlers use
these to decide what is still missing and to recognise when a citizen
explicitly corrects something they said earlier.

Usage:
    ok, msg = validate_field("email", "jane@example")
    missing = missing_identity(session)          # ["contact details"]
    detect_corrections("my email is actually x@y.org")  # ["email"]
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from complaint_agent.config import settings
from complaint_agent.schemas.session_schema import ConversationSession, ConversationState
from complaint_agent.utils import is_valid_email, is_valid_phone

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MIN_ADDRESS_LENGTH = 5


def _validate_name(value: str) -> bool:
    return len(value.strip()) >= MIN_NAME_LENGTH


def _validate_address(value: str) -> bool:
    return len(value.strip()) >= MIN_ADDRESS_LENGTH


def _validate_description(value: str) -> bool:
    return len(value.strip()) >= settings.agent.min_description_length


@dataclass(frozen=True)
class FieldDefinition:
    """Schema for a single collected field."""

    name: str
    display_name: str
    stage: ConversationState
    required: bool = True
    validator: Optional[Callable[[str], bool]] = None
    # Words a citizen uses when referring to this field in a correction.
    aliases: tuple[str, ...] = ()


FIELD_DEFINITIONS: list[FieldDefinition] = [
    FieldDefinition(
        name="full_name",
        display_name="full name",
        stage=ConversationState.IDENTITY_CAPTURE,
        validator=_validate_name,
        aliases=("name",),
    ),
    FieldDefinition(
        name="phone",
        display_name="phone number",
        stage=ConversationState.IDENTITY_CAPTURE,
        required=False,
        validator=is_valid_phone,
        aliases=("phone", "number", "mobile"),
    ),
    FieldDefinition(
        name="email",
        display_name="email address",
        stage=ConversationState.IDENTITY_CAPTURE,
        required=False,
        validator=is_valid_email,
        aliases=("email", "e-mail"),
    ),
    FieldDefinition(
        name="address",
        display_name="address",
        stage=ConversationState.IDENTITY_CAPTURE,
        required=False,
        validator=_validate_address,
        aliases=("address",),
    ),
    FieldDefinition(
        name="description",
        display_name="description",
        stage=ConversationState.COMPLAINT_CAPTURE,
        validator=_validate_description,
        aliases=("description",),
    ),
    FieldDefinition(
        name="subject",
        display_name="subject",
        stage=ConversationState.COMPLAINT_CAPTURE,
        required=False,
        aliases=("subject", "title"),
    ),
    FieldDefinition(
        name="ministry",
        display_name="ministry",
        stage=ConversationState.COMPLAINT_CAPTURE,
        required=False,
        aliases=("ministry", "department"),
    ),
    FieldDefinition(
        name="incident_date",
        display_name="incident date",
        stage=ConversationState.COMPLAINT_CAPTURE,
        required=False,
        aliases=("date",),
    ),
]

_CORRECTION_RE = re.compile(
    r"\b(?:actually|correction|change|update|correct|wrong|instead|should be)\b", re.IGNORECASE
)


def get_definition(name: str) -> FieldDefinition:
    for defn in FIELD_DEFINITIONS:
        if defn.name == name:
            return defn
    raise ValueError(f"Unknown field: {name}")


def validate_field(name: str, value: str) -> tuple[bool, str]:
    """
    Check a raw value against its field's validator.

    Returns:
        (success, message)
    """
    defn = get_definition(name)
    if defn.validator and not defn.validator(value):
        logger.debug("Field '%s' validation failed", name)
        return False, f"The {defn.display_name} '{value}' doesn't look right."
    return True, f"Got {defn.display_name}: {value}"


def missing_identity(session: ConversationSession) -> list[str]:
    """Display names of identity details still needed before moving on."""
    if session.is_anonymous:
        return []
    missing = []
    if not session.full_name:
        missing.append(get_definition("full_name").display_name)
    if not session.has_contact() and not session.prefer_no_contact:
        missing.append("contact details")
    return missing


def description_length(session: ConversationSession) -> int:
    return len((session.description or "").strip())


def has_sufficient_description(session: ConversationSession) -> bool:
    return _validate_description(session.description or "")


def detect_corrections(message: str) -> list[str]:
    """Field names the message explicitly corrects, e.g. "my name is actually ..."."""
    if not _CORRECTION_RE.search(message):
        return []
    lower = message.lower()
    corrected = []
    for defn in FIELD_DEFINITIONS:
        if any(re.search(rf"\b{re.escape(alias)}\b", lower) for alias in defn.aliases):
            corrected.append(defn.name)
    if corrected:
        logger.info("Explicit correction detected for %s", corrected)
    return corrected


def correction_names(value: Any) -> list[str]:
    """The string entries of a model-supplied ``corrections`` list. Anything else yields []."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]
