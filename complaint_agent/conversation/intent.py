"""
Keyword intent and guardrail checks applied before any handler runs.

Three independent detectors, each checking a different concern:
1. ScopeGuardrail: rejects off-topic requests at the start of a dialogue
2. IntentDetector: tracking requests, confirmations, skips, anonymity
3. GenderCorrectionGuardrail: a citizen correcting how they are referred to

These checks are deliberately cheap and deterministic. Anything that
needs understanding of free text goes through the completion service.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from complaint_agent.schemas.session_schema import Gender
from complaint_agent.utils import TRACKING_NUMBER_RE

logger = logging.getLogger(__name__)

OUT_OF_SCOPE_MESSAGE = "I can only help with submitting or tracking complaints."


def contains_any(text: str, phrases: list[str]) -> Optional[str]:
    """Return the first phrase found in ``text`` on word boundaries."""
    lower = text.lower()
    for phrase in phrases:
        if re.search(rf"(?<![\w-]){re.escape(phrase)}(?![\w-])", lower):
            return phrase
    return None


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None


class ScopeGuardrail:
    """Keeps the agent to complaint filing and tracking."""

    OUT_OF_SCOPE_TOPICS = [
        "weather", "sports", "football", "entertainment", "joke",
        "story", "recipe", "horoscope", "dating", "lottery",
        "movie", "music", "celebrity",
    ]

    IN_SCOPE_KEYWORDS = [
        "complaint", "complain", "report", "file", "submit", "issue", "problem",
        "concern", "grievance", "corruption", "bribe", "misconduct", "harassment",
        "discrimination", "fraud", "track", "status", "evidence", "ministry",
        "department", "officer", "official", "help",
    ]

    def check_topic_scope(self, text: str) -> GuardrailResult:
        if contains_any(text, self.IN_SCOPE_KEYWORDS):
            return GuardrailResult(passed=True)
        topic = contains_any(text, self.OUT_OF_SCOPE_TOPICS)
        if topic:
            logger.info("Out-of-scope topic detected: '%s'", topic)
            return GuardrailResult(
                passed=False,
                violation_type="out_of_scope_topic",
                message=OUT_OF_SCOPE_MESSAGE,
            )
        return GuardrailResult(passed=True)


class IntentDetector:
    """Detects routing and yes/no style intents from a single message."""

    TRACKING_KEYWORDS = [
        "track", "tracking", "status", "tracking number", "follow up",
        "followup", "progress", "check my complaint",
    ]
    CONFIRM_KEYWORDS = [
        "yes", "yeah", "yep", "correct", "looks good", "submit", "confirm",
        "go ahead", "proceed", "ok", "okay", "right",
    ]
    CHANGE_KEYWORDS = [
        "no", "nope", "change", "wrong", "incorrect", "edit", "modify", "not right",
    ]
    # Negated change words that mean the summary is fine.
    NO_CHANGE_PHRASES = [
        "no changes needed", "no changes", "no change", "nothing to change",
        "nothing wrong", "no problem",
    ]
    SKIP_KEYWORDS = [
        "no", "skip", "none", "done", "continue", "no evidence", "don't have",
        "dont have", "nothing", "without", "finished", "that's all", "next",
    ]
    ANONYMOUS_KEYWORDS = [
        "anonymous", "anonymously", "prefer not", "rather not", "no name",
        "skip", "don't want to", "dont want to",
    ]

    def is_tracking_request(self, text: str) -> bool:
        if TRACKING_NUMBER_RE.search(text):
            return True
        return contains_any(text, self.TRACKING_KEYWORDS) is not None

    def is_confirmation(self, text: str) -> bool:
        if self.is_change_request(text):
            return False
        return contains_any(text, self.CONFIRM_KEYWORDS) is not None

    def is_change_request(self, text: str) -> bool:
        lower = text.lower()
        for phrase in self.NO_CHANGE_PHRASES:
            lower = re.sub(rf"(?<![\w-]){re.escape(phrase)}(?![\w-])", " ", lower)
        return contains_any(lower, self.CHANGE_KEYWORDS) is not None

    def is_skip(self, text: str) -> bool:
        return contains_any(text, self.SKIP_KEYWORDS) is not None

    def wants_anonymity(self, text: str) -> bool:
        return contains_any(text, self.ANONYMOUS_KEYWORDS) is not None


class GenderCorrectionGuardrail:
    """Recognises a citizen correcting the gender the agent assumed."""

    # Self-descriptions only count when a gender word follows immediately.
    SELF_DESCRIPTION_PATTERNS = [
        "i am", "i'm", "i am actually", "i'm actually", "my gender is", "i identify as",
    ]
    # Pronouns are only read after phrases that ask to be addressed a certain way.
    ADDRESS_PATTERNS = ["refer to me as", "my pronouns are", "call me"]

    # Order matters: longer and more specific expressions first.
    GENDER_NOUNS: list[tuple[str, Gender]] = [
        ("prefer not", Gender.PREFER_NOT_TO_SAY),
        ("non-binary", Gender.OTHER),
        ("nonbinary", Gender.OTHER),
        ("female", Gender.FEMALE),
        ("woman", Gender.FEMALE),
        ("male", Gender.MALE),
        ("man", Gender.MALE),
    ]
    PRONOUNS: list[tuple[str, Gender]] = [
        ("they/them", Gender.OTHER),
        ("she/her", Gender.FEMALE),
        ("he/him", Gender.MALE),
        ("they", Gender.OTHER),
        ("she", Gender.FEMALE),
        ("her", Gender.FEMALE),
        ("he", Gender.MALE),
        ("him", Gender.MALE),
    ]

    APOLOGIES: dict[Gender, str] = {
        Gender.MALE: "Thank you for letting me know, and I apologise for the mistake. I've updated your details.",
        Gender.FEMALE: "Thank you for letting me know, and I apologise for the mistake. I've updated your details.",
        Gender.OTHER: "Thank you for telling me, and I'm sorry for assuming. I've updated your details.",
        Gender.PREFER_NOT_TO_SAY: "Of course. I won't record a gender for you.",
    }

    def detect(self, text: str) -> Optional[Gender]:
        """Return the corrected gender, or None when the message is not a correction."""
        lower = text.lower()
        for patterns, vocabulary in [
            (self.SELF_DESCRIPTION_PATTERNS, self.GENDER_NOUNS),
            (self.ADDRESS_PATTERNS, self.PRONOUNS + self.GENDER_NOUNS),
        ]:
            for pattern in patterns:
                for phrase, gender in vocabulary:
                    # "a"/"an" may sit between the phrase and the gender word, nothing else.
                    if re.search(
                        rf"\b{re.escape(pattern)}\s+(?:an?\s+)?{re.escape(phrase)}(?![\w-])", lower
                    ):
                        logger.info("Gender correction detected")
                        return gender
        return None

    def apology(self, gender: Gender) -> str:
        return self.APOLOGIES[gender]
