"""Shared text utilities used across handlers, tools, and services."""

import re
from datetime import date, datetime, timedelta
from typing import Optional

# Tracking numbers look like OMB-<base36 timestamp>-<hex>, matched case-insensitively.
TRACKING_NUMBER_RE = re.compile(r"OMB-[A-Z0-9]+-[A-Z0-9]+", re.IGNORECASE)

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"\+?\d[\d\s\-().]{6,}\d")

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15

_MONTHS = "jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec"
_DATE_FORMATS: list[tuple[re.Pattern[str], tuple[str, ...]]] = [
    (re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b"), ("%Y-%m-%d",)),
    (re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"), ("%d/%m/%Y", "%m/%d/%Y")),
    (re.compile(rf"\b\d{{1,2}}\s+(?:{_MONTHS})[a-z]*\s+\d{{4}}\b", re.IGNORECASE),
     ("%d %B %Y", "%d %b %Y")),
    (re.compile(rf"\b(?:{_MONTHS})[a-z]*\s+\d{{1,2}},?\s+\d{{4}}\b", re.IGNORECASE),
     ("%B %d %Y", "%b %d %Y")),
]


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("076 123 456")
        '076123456'
        >>> normalize_phone("+232 (76) 123-456")
        '+23276123456'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def is_valid_phone(value: str) -> bool:
    digits = re.sub(r"[^\d]", "", value)
    return MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


def is_valid_email(value: str) -> bool:
    return bool(re.fullmatch(r"[^\s@]+@[^\s@]+\.[^\s@]+", value.strip()))


def extract_email(message: str) -> Optional[str]:
    match = EMAIL_RE.search(message)
    return match.group(0).lower() if match else None


def extract_phone(message: str) -> Optional[str]:
    """Return the first phone-like run of digits, normalized, or None."""
    for match in PHONE_RE.finditer(message):
        candidate = match.group(0)
        if TRACKING_NUMBER_RE.search(message[max(0, match.start() - 12):match.end()]):
            continue
        if is_valid_phone(candidate):
            return normalize_phone(candidate)
    return None


def extract_tracking_number(message: str) -> Optional[str]:
    """Find a tracking number in free text and return it upper-cased.

    Examples:
        >>> extract_tracking_number("my number is omb-1a2b3c-4d5e6f")
        'OMB-1A2B3C-4D5E6F'
    """
    match = TRACKING_NUMBER_RE.search(message)
    return match.group(0).upper() if match else None


def extract_date(message: str, today: Optional[date] = None) -> Optional[date]:
    """Pull an incident date out of free text. Future dates are ignored."""
    today = today or date.today()
    lower = message.lower()

    for pattern, formats in _DATE_FORMATS:
        match = pattern.search(message)
        if not match:
            continue
        text = match.group(0).replace(",", "")
        for fmt in formats:
            try:
                parsed = datetime.strptime(text, fmt).date()
            except ValueError:
                continue
            if parsed <= today:
                return parsed

    if "yesterday" in lower:
        return today - timedelta(days=1)
    if "last week" in lower:
        return today - timedelta(days=7)
    if "today" in lower:
        return today
    return None
