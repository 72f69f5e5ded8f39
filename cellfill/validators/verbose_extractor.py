"""
Pull a typed value out of a chatty model reply.

Used when a provider ignores the JSON instruction and answers in prose
("The CEO of Acme is Jane Doe, who took over in 2019..."). Each extractor
returns the single best candidate or None; nothing here raises.
"""

import re
from typing import Callable, Dict, List, Optional, Union

from ..models.enrichment import DataType
from ..utils.url_helpers import URL_PATTERN, TRAILING_PUNCTUATION

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_CANDIDATE_PATTERN = re.compile(r"\+?\(?\d[\d\s().-]{6,}\d")
CURRENCY_SUFFIXES = r"billion|million|thousand|bn|mm|k|m|b"
DOLLAR_AMOUNT_PATTERN = re.compile(
    rf"\$\s*(\d[\d,]*(?:\.\d+)?)(?:\s*({CURRENCY_SUFFIXES})\b)?",
    re.IGNORECASE,
)
BARE_AMOUNT_PATTERN = re.compile(
    rf"(?<![\w.])(\d[\d,]*(?:\.\d+)?)(?:\s*({CURRENCY_SUFFIXES})\b)?",
    re.IGNORECASE,
)
NUMBER_PATTERN = re.compile(r"-?\d+(?:,\d{3})*(?:\.\d+)?")

MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
DATE_PATTERNS: List[re.Pattern] = [
    re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b"),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
    re.compile(r"\b\d{1,2}-\d{1,2}-\d{4}\b"),
    re.compile(rf"\b{MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?\s+{MONTHS},?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(rf"\b{MONTHS}\s+\d{{4}}\b", re.IGNORECASE),
]
YEAR_PATTERN = re.compile(r"\b(1[6-9]\d{2}|20\d{2})\b")

PERSON_NAME = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)+"
ROLE_WORDS = r"ceo|chief executive officer|founder|co-founder|cofounder|president|chairman|chairwoman|owner"
ROLE_NAME_PATTERNS: List[re.Pattern] = [
    re.compile(rf"(?i:{ROLE_WORDS})\s+(?i:of)\s+[^.\n]*?\s+(?i:is|was)\s+({PERSON_NAME})"),
    re.compile(rf"(?i:{ROLE_WORDS})(?:\s+(?i:is|was))?\s*[:,\-]?\s*({PERSON_NAME})"),
    re.compile(rf"({PERSON_NAME})(?:\s+(?i:is|was))?(?:\s+(?i:the))?\s*,?\s+(?i:{ROLE_WORDS})"),
    re.compile(rf"({PERSON_NAME})\s*\((?i:{ROLE_WORDS})\)"),
]
CAPITALIZED_SEQUENCE = re.compile(PERSON_NAME)
NAME_STOPWORDS = {"The", "A", "An", "This", "That", "Our", "Their", "In", "According", "Based", "As", "On", "At"}


def find_phone_candidate(text: str) -> Optional[str]:
    """First digit run with separators that has 10 to 15 digits."""
    for match in PHONE_CANDIDATE_PATTERN.finditer(text):
        candidate = match.group(0).strip()
        digit_count = sum(ch.isdigit() for ch in candidate)
        if 10 <= digit_count <= 15:
            return candidate
    return None


def find_currency_match(text: str) -> Optional[re.Match]:
    """Prefer an explicit dollar amount, else the first bare number."""
    return DOLLAR_AMOUNT_PATTERN.search(text) or BARE_AMOUNT_PATTERN.search(text)


def find_date_token(text: str) -> Optional[str]:
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def find_role_name(text: str) -> Optional[str]:
    """Name attached to a role word ("CEO is Jane Doe", "Jane Doe (Founder)")."""
    for pattern in ROLE_NAME_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def find_person_name(text: str) -> Optional[str]:
    """Name near a role word, else the first capitalized multi-word sequence."""
    role_name = find_role_name(text)
    if role_name:
        return role_name
    for match in CAPITALIZED_SEQUENCE.finditer(text):
        words = match.group(0).split()
        while words and words[0] in NAME_STOPWORDS:
            words = words[1:]
        if len(words) >= 2:
            return " ".join(words)
    return None


def _extract_email(text: str) -> Optional[str]:
    match = EMAIL_PATTERN.search(text)
    return match.group(0) if match else None


def _extract_url(text: str) -> Optional[str]:
    match = URL_PATTERN.search(text)
    return match.group(0).rstrip(TRAILING_PUNCTUATION) if match else None


def _extract_currency(text: str) -> Optional[str]:
    match = find_currency_match(text)
    return match.group(0).strip() if match else None


def _extract_date(text: str) -> Optional[str]:
    token = find_date_token(text)
    if token:
        return token
    year = YEAR_PATTERN.search(text)
    return year.group(0) if year else None


def _extract_number(text: str) -> Optional[str]:
    match = NUMBER_PATTERN.search(text)
    return match.group(0) if match else None


EXTRACTORS: Dict[DataType, Callable[[str], Optional[str]]] = {
    DataType.EMAIL: _extract_email,
    DataType.URL: _extract_url,
    DataType.PHONE: find_phone_candidate,
    DataType.CURRENCY: _extract_currency,
    DataType.DATE: _extract_date,
    DataType.NAME: find_person_name,
    DataType.CEO: find_person_name,
    DataType.FOUNDER: find_person_name,
    DataType.NUMBER: _extract_number,
}


def extract_from_verbose_response(text: str, expected_type: Union[DataType, str, None]) -> Optional[str]:
    """
    Extract a value of the expected type from free-form text.

    Args:
        text: Raw model output
        expected_type: DataType (or its string value) the column expects

    Returns:
        Best single candidate, or None when nothing of that type is present
        (always None for plain text columns)
    """
    if not text or not text.strip():
        return None
    try:
        data_type = DataType(expected_type) if expected_type else DataType.TEXT
    except ValueError:
        return None

    extractor = EXTRACTORS.get(data_type)
    if extractor is None:
        return None
    return extractor(text)
