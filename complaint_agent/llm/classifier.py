"""
Ministry and category classification for complaint descriptions.

One structured completion request per call. Whatever comes back is
treated as untrusted: names are checked against the allow-lists and
confidence is clamped, so the conversation layer only ever sees a
canonical ministry, a canonical category, or None.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from complaint_agent.config import settings
from complaint_agent.errors import CompletionUnavailable
from complaint_agent.llm.completion import CompletionService
from complaint_agent.prompts.prompt_templates import build_classification_prompt
from complaint_agent.prompts.system_prompts import CLASSIFICATION_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

MINISTRIES: list[str] = [
    "Health", "Education", "Finance", "Interior", "Justice",
    "Transport", "Agriculture", "Environment", "Labor",
    "Foreign Affairs", "Defense", "Social Welfare", "Housing",
    "Energy", "Communications", "Tourism", "Trade", "Local Government",
]

CATEGORIES: list[str] = [
    "corruption", "service_delivery", "misconduct", "negligence",
    "discrimination", "harassment", "fraud", "bureaucratic_delay",
    "policy_violation", "ethical_breach", "misappropriation", "other",
]

REJECTION_MESSAGE = (
    "I'm sorry, but I couldn't classify your complaint with sufficient confidence. "
    "Please start a new conversation and include which government ministry is "
    "involved and what type of issue you're experiencing."
)

CLASSIFICATION_SCHEMA_NAME = "classify_complaint"

CLASSIFICATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "ministry": {"type": ["string", "null"]},
        "category": {"type": ["string", "null"]},
        "confidence": {"type": "number"},
        "reasoning": {"type": "string"},
    },
    "required": ["ministry", "category", "confidence", "reasoning"],
    "additionalProperties": False,
}


@dataclass(frozen=True)
class ClassificationResult:
    ministry: Optional[str]
    category: Optional[str]
    confidence: float
    reasoning: str = ""
    # True when the completion service could not be reached at all.
    unavailable: bool = False


class Classifier(Protocol):
    async def classify(self, text: str) -> ClassificationResult: ...

    def is_acceptable(self, result: ClassificationResult) -> bool: ...


def canonical_name(value: Any, allowed: list[str], fold_case: bool = True) -> Optional[str]:
    """
    Map a model-supplied name onto the allow-list, or None.

    With ``fold_case`` off only an exact match (after stripping) is accepted.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    if value in allowed:
        return value
    if not fold_case:
        return None
    lowered = value.lower()
    for candidate in allowed:
        if candidate.lower() == lowered:
            return candidate
    return None


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number or number < 0:  # NaN or negative
        return 0.0
    return min(number, 1.0)


class ClassificationEngine:
    """Classifies a description against fixed ministry and category lists. Fails closed."""

    def __init__(
        self,
        completion: CompletionService,
        ministries: Optional[list[str]] = None,
        categories: Optional[list[str]] = None,
        threshold: float = settings.classification.threshold,
    ) -> None:
        self._completion = completion
        self.ministries = list(ministries or MINISTRIES)
        self.categories = list(categories or CATEGORIES)
        self.threshold = threshold

    async def classify(self, text: str) -> ClassificationResult:
        if not text or not text.strip():
            return ClassificationResult(None, None, 0.0, "Empty complaint text")
        try:
            raw = await self._completion.complete_json(
                system=CLASSIFICATION_SYSTEM_PROMPT,
                user=build_classification_prompt(text, self.ministries, self.categories),
                schema=CLASSIFICATION_SCHEMA,
                name=CLASSIFICATION_SCHEMA_NAME,
                temperature=settings.model.classification_temperature,
            )
        except CompletionUnavailable as exc:
            logger.error("Classification unavailable: %s", exc)
            return ClassificationResult(
                None, None, 0.0, "Classification failed due to error", unavailable=True
            )
        except Exception:
            logger.exception("Classification request failed")
            return ClassificationResult(
                None, None, 0.0, "Classification failed due to error", unavailable=True
            )

        if not isinstance(raw, dict):
            raw = {}

        result = ClassificationResult(
            ministry=canonical_name(raw.get("ministry"), self.ministries, fold_case=False),
            category=canonical_name(raw.get("category"), self.categories, fold_case=False),
            confidence=_clamp_confidence(raw.get("confidence")),
            reasoning=str(raw.get("reasoning") or "No reasoning provided"),
        )
        logger.info(
            "Classified as ministry=%s category=%s confidence=%.2f",
            result.ministry, result.category, result.confidence,
        )
        return result

    def is_acceptable(self, result: ClassificationResult) -> bool:
        return result.ministry is not None and result.confidence >= self.threshold
