"""
Deterministic extraction and an offline keyword completion service.

The regex extractors are the fallback whenever the completion service
cannot be reached. KeywordCompletionService wraps the same extractors,
plus keyword scoring for classification, behind the CompletionService
interface so the whole agent can run without network access.
"""

import logging
import re
from typing import Any, Optional

from complaint_agent.config import settings
from complaint_agent.conversation.intent import IntentDetector
from complaint_agent.errors import CompletionUnavailable
from complaint_agent.llm.classifier import CATEGORIES, CLASSIFICATION_SCHEMA_NAME, MINISTRIES
from complaint_agent.prompts.prompt_templates import unfence
from complaint_agent.utils import EMAIL_RE, PHONE_RE, extract_date, extract_email, extract_phone

logger = logging.getLogger(__name__)

CONTACT_SCHEMA_NAME = "extract_contact_info"
DETAILS_SCHEMA_NAME = "update_session_data"

_NAME_INTRO_RE = re.compile(
    r"\b(?:my (?:full )?name is|name is|name:|this is|i am|i'm)\s+"
    r"([A-Za-z][A-Za-z'.-]*(?:\s+[A-Za-z][A-Za-z'.-]*){0,3})",
    re.IGNORECASE,
)
_NAME_STOPWORDS = {
    "and", "my", "email", "phone", "number", "from", "with", "at", "or", "but",
    "i", "you", "here", "calling", "writing", "not", "a", "an", "the", "very",
    "so", "really", "trying", "looking", "complaining", "unhappy", "angry",
}
_NO_CONTACT_PHRASES = [
    "don't contact", "dont contact", "do not contact", "no contact",
    "don't call", "do not call", "rather not be contacted",
]

MINISTRY_KEYWORDS: dict[str, list[str]] = {
    "Health": ["health", "hospital", "doctor", "nurse", "medical", "clinic", "sanitation",
               "disease", "medicine", "treatment", "patient", "pharmacy"],
    "Education": ["school", "teacher", "student", "education", "classroom", "university",
                  "college", "exam", "curriculum", "tuition", "headmaster", "principal"],
    "Finance": ["budget", "finance", "tax", "revenue", "treasury", "pension", "salary",
                "customs", "levy"],
    "Interior": ["police", "passport", "immigration", "identity card", "national id",
                 "prison", "fire service", "citizenship"],
    "Justice": ["court", "judge", "magistrate", "lawyer", "justice", "prosecutor",
                "legal aid", "bail"],
    "Transport": ["road", "bus", "driver", "license", "licence", "traffic", "vehicle",
                  "transport", "airport", "port", "taxi"],
    "Agriculture": ["farm", "farmer", "crop", "seed", "fertilizer", "livestock",
                    "agriculture", "harvest", "fishing"],
    "Environment": ["pollution", "waste", "garbage", "deforestation", "mining",
                    "environment", "dumping", "flooding"],
    "Labor": ["employer", "wage", "workplace", "labour", "labor", "unpaid",
              "working conditions", "dismissal", "employment"],
    "Foreign Affairs": ["embassy", "consulate", "visa", "diplomat", "foreign affairs"],
    "Defense": ["soldier", "army", "military", "defence", "defense", "barracks"],
    "Social Welfare": ["welfare", "social", "orphan", "disability", "elderly",
                       "benefit", "child protection", "gender"],
    "Housing": ["housing", "land", "rent", "eviction", "landlord", "building permit",
                "demolition", "plot"],
    "Energy": ["electricity", "power", "blackout", "meter", "energy", "fuel",
               "generator", "outage"],
    "Communications": ["internet", "telephone", "network", "radio", "broadcast",
                       "telecom", "postal", "mobile network"],
    "Tourism": ["tourism", "tourist", "hotel", "museum", "heritage", "culture"],
    "Trade": ["trade", "market", "trader", "price", "import", "export", "business license",
              "consumer"],
    "Local Government": ["council", "mayor", "chief", "district", "municipal", "ward",
                         "local government", "market dues", "street light"],
}

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "corruption": ["bribe", "bribery", "corrupt", "corruption", "kickback", "extort",
                   "pay extra", "paid money", "demanded money"],
    "service_delivery": ["service", "poor service", "slow service", "no service",
                         "bad service", "inefficient", "not working", "refused"],
    "misconduct": ["misconduct", "rude", "insult", "abuse", "unprofessional", "drunk"],
    "negligence": ["negligent", "negligence", "careless", "ignored", "neglected",
                   "abandoned", "left waiting"],
    "discrimination": ["discriminat", "because of my tribe", "because of my religion",
                       "because i am a woman", "racist", "bias"],
    "harassment": ["harass", "threaten", "intimidat", "sexual"],
    "fraud": ["fraud", "fake", "forged", "scam", "cheat", "stole", "stolen"],
    "bureaucratic_delay": ["delay", "waiting for months", "red tape", "paperwork",
                           "still waiting", "backlog", "weeks", "months"],
    "policy_violation": ["policy", "regulation", "rule", "against the law", "illegal"],
    "ethical_breach": ["conflict of interest", "nepotism", "favoritism", "favouritism",
                       "unethical"],
    "misappropriation": ["misappropriat", "embezzle", "diverted funds", "missing funds",
                         "public funds"],
}


def _hits(text: str, keywords: list[str]) -> int:
    # Keywords match at the start of a word, so stems like "discriminat" still count.
    return sum(1 for kw in keywords if re.search(rf"\b{re.escape(kw)}", text))


def extract_name(message: str) -> Optional[str]:
    """Find a self-introduced name, e.g. "my name is Aminata Conteh"."""
    match = _NAME_INTRO_RE.search(message)
    if match:
        words = []
        for word in match.group(1).split():
            if word.lower() in _NAME_STOPWORDS:
                break
            words.append(word)
        # "i am"/"i'm" is only a name introduction when followed by a capitalised word
        intro = match.group(0).lower()
        if words and (not intro.startswith(("i am", "i'm")) or words[0][0].isupper()):
            return " ".join(w.capitalize() if w.islower() else w for w in words)

    # A bare "Firstname Lastname" reply once contact details are stripped out.
    remainder = PHONE_RE.sub(" ", EMAIL_RE.sub(" ", message))
    remainder = re.sub(r"[,;]|\band\b", " ", remainder).strip(" .")
    words = remainder.split()
    if 2 <= len(words) <= 4 and all(w.isalpha() and w[0].isupper() for w in words):
        return " ".join(words)
    return None


def regex_contact_fields(message: str) -> dict[str, Any]:
    """Contact arguments for ``extract_contact_info`` pulled out with regexes."""
    lower = message.lower()
    fields: dict[str, Any] = {
        "full_name": extract_name(message),
        "email": extract_email(message),
        "phone_number": extract_phone(message),
    }
    if IntentDetector().wants_anonymity(message):
        fields["is_anonymous"] = True
    if any(phrase in lower for phrase in _NO_CONTACT_PHRASES):
        fields["prefer_no_contact"] = True
    return {k: v for k, v in fields.items() if v is not None}


def regex_complaint_fields(message: str) -> dict[str, Any]:
    """Complaint details for ``update_session_data`` pulled out with regexes."""
    fields: dict[str, Any] = {"description": message.strip()}
    incident = extract_date(message)
    if incident:
        fields["incident_date"] = incident.isoformat()
    return fields


def keyword_classification(
    text: str,
    ministries: Optional[list[str]] = None,
    categories: Optional[list[str]] = None,
) -> dict[str, Any]:
    """Score ministries and categories by keyword hits. Returns a classification payload."""
    lower = text.lower()
    ministries = ministries or MINISTRIES
    categories = categories or CATEGORIES

    ministry_scores = {
        m: _hits(lower, MINISTRY_KEYWORDS.get(m, [m.lower()])) for m in ministries
    }
    category_scores = {c: _hits(lower, CATEGORY_KEYWORDS.get(c, [])) for c in categories}
    best_ministry = max(ministry_scores, key=ministry_scores.get) if ministry_scores else None
    best_category = max(category_scores, key=category_scores.get) if category_scores else None

    ministry_hits = ministry_scores.get(best_ministry, 0) if best_ministry else 0
    category_hits = category_scores.get(best_category, 0) if best_category else 0
    if ministry_hits == 0:
        return {
            "ministry": None,
            "category": best_category if category_hits else None,
            "confidence": 0.2 if category_hits else 0.0,
            "reasoning": "No ministry keywords found",
        }

    confidence = 0.5 + 0.1 * (ministry_hits - 1) + (0.1 if category_hits else 0.0)
    return {
        "ministry": best_ministry,
        "category": best_category if category_hits else "other",
        "confidence": round(min(confidence, 0.95), 2),
        "reasoning": f"Matched {ministry_hits} {best_ministry} keyword(s)",
    }


class KeywordCompletionService:
    """Offline CompletionService built on keyword matching and regexes."""

    async def complete_json(
        self,
        *,
        system: str,
        user: str,
        schema: dict[str, Any],
        name: str,
        temperature: float = settings.model.llm_temperature,
    ) -> dict[str, Any]:
        text = unfence(user)
        if name == CLASSIFICATION_SCHEMA_NAME:
            return keyword_classification(text)
        if name == CONTACT_SCHEMA_NAME:
            return regex_contact_fields(text)
        if name == DETAILS_SCHEMA_NAME:
            return {"data": regex_complaint_fields(text)}
        raise CompletionUnavailable(f"No offline handler for '{name}'", retryable=False)
