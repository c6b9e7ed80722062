"""Dynamic prompt and reply construction for context-aware turns."""

from datetime import date
from typing import Optional

from complaint_agent.config import settings

# Free text the citizen wrote is fenced with this marker inside user prompts.
TEXT_FENCE = '"""'


def fence(text: str) -> str:
    return f"{TEXT_FENCE}\n{text.strip()}\n{TEXT_FENCE}"


def unfence(prompt: str) -> str:
    """Return the fenced citizen text from a user prompt, or the whole prompt."""
    parts = prompt.split(TEXT_FENCE)
    return parts[1].strip() if len(parts) >= 3 else prompt


def build_classification_prompt(
    complaint_text: str, ministries: list[str], categories: list[str]
) -> str:
    return "\n".join([
        "COMPLAINT TEXT:",
        fence(complaint_text),
        "",
        "AVAILABLE MINISTRIES:",
        ", ".join(ministries),
        "",
        "AVAILABLE CATEGORIES:",
        ", ".join(categories),
    ])


def build_extraction_prompt(message: str, collected: dict[str, object]) -> str:
    """Give the extractor the new message plus what is already on file."""
    parts = []
    if collected:
        parts.append("Already collected:")
        for key, value in collected.items():
            parts.append(f"  {key}: {value}")
        parts.append("")
    parts.append("New message:")
    parts.append(fence(message))
    return "\n".join(parts)


def build_introduction(full_name: Optional[str] = None) -> str:
    agent = settings.agent
    greeting = f"Hello {full_name}!" if full_name else "Hello!"
    return (
        f"{greeting} I'm {agent.name}, the complaint assistant for {agent.office_name}. "
        "I can help you file a complaint about a government service or official, "
        "or check the status of one you've already submitted. "
        "To get started, please tell me your full name and a phone number or email "
        "address where we can reach you. If you'd prefer to stay anonymous, just say so."
    )


def build_missing_contact_prompt(has_name: bool, has_contact: bool) -> str:
    if not has_name and not has_contact:
        return (
            "Could you share your full name and a phone number or email address? "
            "You can also choose to file anonymously."
        )
    if not has_name:
        return "Thanks. And what is your full name? You can also choose to stay anonymous."
    return (
        "Thanks. What's the best phone number or email address to reach you on? "
        "If you'd rather not be contacted, just let me know."
    )


def build_complaint_prompt(full_name: Optional[str], is_anonymous: bool) -> str:
    opener = "Thank you." if is_anonymous or not full_name else f"Thank you, {full_name}."
    return (
        f"{opener} Now please describe what happened: who was involved, which "
        "office or ministry, where and when it happened."
    )


def build_more_detail_prompt(current_length: int, minimum: int) -> str:
    if current_length == 0:
        return "Please describe your complaint in a few sentences so we can route it correctly."
    return (
        "Thanks, could you tell me a bit more? A few more details about what "
        "happened will help us route your complaint to the right ministry."
    )


def build_evidence_prompt() -> str:
    return (
        "Thank you for the details. Do you have any supporting evidence, such as "
        "photos, documents, videos or audio recordings? You can attach files now, "
        "or say 'skip' to continue without evidence."
    )


def build_complaint_summary(
    subject: Optional[str],
    ministry: str,
    category: str,
    description: str,
    incident_date: Optional[date] = None,
    evidence_count: int = 0,
) -> str:
    """Build the read-back summary shown before submission."""
    lines = [
        f"Subject: {subject or 'Complaint Submission'}",
        f"Ministry: {ministry}",
        f"Category: {category.replace('_', ' ')}",
    ]
    if incident_date:
        lines.append(f"Date of incident: {incident_date.strftime('%d %B %Y')}")
    if evidence_count:
        lines.append(f"Evidence: {evidence_count} file(s) attached")
    lines.append(f"Description: {description}")
    return "\n".join(lines)


def build_confirmation_request(summary: str) -> str:
    return (
        "I've reviewed and classified your complaint. Here's a summary:\n\n"
        f"{summary}\n\n"
        "Does this look correct? If yes, I'll submit your complaint and give you a "
        "tracking number. If anything needs to change, tell me what to correct."
    )


def build_submission_success(tracking_number: str, public_id: str) -> str:
    return (
        f"Your complaint has been submitted successfully. Reference: {public_id}.\n\n"
        f"Your tracking number is {tracking_number}. Please keep it safe; you'll "
        "need it to check on your complaint.\n\n"
        f"Your complaint will be reviewed within {settings.agent.review_days}. "
        "Thank you for bringing this to our attention."
    )
