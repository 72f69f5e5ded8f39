"""
Per-type validation and normalization of enriched values.

Every provider funnels its answer through validate_response() so a column
of phone numbers or revenue figures comes out in one consistent format no
matter which backend produced it.

Normalization is idempotent: feeding a normalized value back in returns the
same value with no corrections.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..models.enrichment import DataType
from ..utils.url_helpers import URL_PATTERN, TRAILING_PUNCTUATION
from .verbose_extractor import (
    EMAIL_PATTERN,
    YEAR_PATTERN,
    find_currency_match,
    find_date_token,
    find_person_name,
    find_phone_candidate,
    find_role_name,
)

# Confidence levels
CLEAN_CONFIDENCE = 1.0
CORRECTED_CONFIDENCE = 0.9
TEXT_CONFIDENCE = 0.8
YEAR_ONLY_CONFIDENCE = 0.6

INVALID_CONFIDENCE: Dict[DataType, float] = {
    DataType.EMAIL: 0.3,
    DataType.URL: 0.3,
    DataType.PHONE: 0.3,
    DataType.CURRENCY: 0.5,
    DataType.DATE: 0.4,
    DataType.NAME: 0.5,
    DataType.NUMBER: 0.3,
}

EMAIL_VALID = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
URL_VALID = re.compile(r"^https?://.+\..+")
PHONE_CHARS = re.compile(r"^[\d+\-() ]+$")
CURRENCY_VALID = re.compile(r"^\$[\d,]+(\.\d{2})?$")
DATE_VALID = re.compile(r"^\d{4}-\d{2}-\d{2}$")
NAME_VALID = re.compile(r"^[A-Z][a-z]+(\s+[A-Z][a-z]+)+$")
# Real names NAME_VALID rejects: McDonald, O'Brien, Smith-Jones, initials
NAME_UNUSUAL = re.compile(r"^[A-Z][A-Za-z'\-]*\.?(\s+[A-Z][A-Za-z'\-]*\.?)+$")
LOOSE_NAME = re.compile(r"^[A-Za-z][A-Za-z'\-]*(?:\s+[A-Za-z][A-Za-z'\-]*){0,3}$")
NUMBER_VALID = re.compile(r"^[\d\-.]+$")

BARE_DOMAIN = re.compile(r"(?<![@\w.])(?:www\.)?[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}(?:/[^\s]*)?")
NUMBER_RANGE = re.compile(r"(-?\d[\d,]*(?:\.\d+)?)\s*(?:-|–|to)\s*(\d[\d,]*(?:\.\d+)?)")
SINGLE_NUMBER = re.compile(r"-?\d[\d,]*(?:\.\d+)?")

EMAIL_LABEL = re.compile(r"^(?:e-?mail|contact|mail|mailto)\s*:\s*", re.IGNORECASE)
URL_LABEL = re.compile(r"^(?:website|url|site|homepage|web)\s*:\s*", re.IGNORECASE)
PHONE_LABEL = re.compile(r"^(?:phone|tel|telephone|mobile|cell|call)\s*:\s*", re.IGNORECASE)
NAME_LABEL = re.compile(
    r"^(?:ceo|chief executive officer|founder|co-founder|president|chairman|name|contact)\s*[:\-]\s*",
    re.IGNORECASE,
)
HONORIFIC = re.compile(r"^(?:mr|mrs|ms|miss|dr|prof|sir)\.?\s+", re.IGNORECASE)
NAME_SUFFIX = re.compile(r",?\s+(?:jr\.?|sr\.?|iii|ii|iv|phd|md)$", re.IGNORECASE)

CURRENCY_MULTIPLIERS: Dict[str, int] = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "mm": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "bn": 1_000_000_000,
    "billion": 1_000_000_000,
}

DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %Y",
    "%b %Y",
]

# Tried only after the month-first formats fail, e.g. 13/01/2024
DAY_FIRST_FORMATS = ["%d/%m/%Y", "%d-%m-%Y"]


@dataclass
class ValidationResult:
    """Outcome of normalizing one value against its expected type."""

    is_valid: bool
    value: str
    original_value: str
    corrections: List[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_verification(self) -> Dict:
        """Shape folded into EnrichmentMetadata.verification."""
        return {
            "format_valid": self.is_valid,
            "corrections": list(self.corrections),
            "validation_confidence": self.confidence,
        }


def _score(data_type: DataType, is_valid: bool, corrections: List[str]) -> float:
    if not is_valid:
        return INVALID_CONFIDENCE.get(data_type, 0.3)
    return CORRECTED_CONFIDENCE if corrections else CLEAN_CONFIDENCE


def _strip_label(value: str, pattern: re.Pattern, corrections: List[str]) -> str:
    stripped = pattern.sub("", value, count=1)
    if stripped != value:
        corrections.append("Removed label prefix")
    return stripped.strip()


def _validate_email(value: str) -> Tuple[bool, str, List[str]]:
    corrections: List[str] = []
    clean = _strip_label(value, EMAIL_LABEL, corrections)

    match = EMAIL_PATTERN.search(clean)
    if match and match.group(0) != clean:
        clean = match.group(0)
        corrections.append("Extracted email from text")

    if clean != clean.lower():
        clean = clean.lower()
        corrections.append("Lowercased email")

    return bool(EMAIL_VALID.match(clean)), clean, corrections


def _validate_url(value: str) -> Tuple[bool, str, List[str]]:
    corrections: List[str] = []
    clean = _strip_label(value, URL_LABEL, corrections)

    match = URL_PATTERN.search(clean)
    if match:
        found = match.group(0).rstrip(TRAILING_PUNCTUATION)
        if found != clean:
            clean = found
            corrections.append("Extracted URL from text")
    else:
        domain = BARE_DOMAIN.search(clean)
        if domain:
            clean = "https://" + domain.group(0).rstrip(TRAILING_PUNCTUATION)
            corrections.append("Added https:// prefix")

    trimmed = re.sub(r"/+$", "", clean)
    if trimmed != clean and re.match(r"^https?://.+", trimmed):
        clean = trimmed
        corrections.append("Removed trailing slash")

    return bool(URL_VALID.match(clean)), clean, corrections


def _format_us_phone(digits: str) -> str:
    return f"+1-{digits[0:3]}-{digits[3:6]}-{digits[6:10]}"


def _validate_phone(value: str) -> Tuple[bool, str, List[str]]:
    corrections: List[str] = []
    clean = _strip_label(value, PHONE_LABEL, corrections)

    candidate = find_phone_candidate(clean)
    if candidate and candidate != clean:
        clean = candidate
        corrections.append("Extracted phone from text")

    digits = re.sub(r"\D", "", clean)
    if "+" not in clean:
        if len(digits) == 10:
            clean = _format_us_phone(digits)
            corrections.append("Formatted as US phone number")
        elif len(digits) == 11 and digits.startswith("1"):
            clean = _format_us_phone(digits[1:])
            corrections.append("Formatted as US phone number")

    is_valid = len(digits) >= 10 and bool(PHONE_CHARS.match(clean))
    return is_valid, clean, corrections


def _format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return f"${int(amount):,}"
    return f"${amount.quantize(Decimal('0.01')):,.2f}"


def _validate_currency(value: str) -> Tuple[bool, str, List[str]]:
    corrections: List[str] = []
    clean = value.strip()

    match = find_currency_match(clean)
    if not match:
        return False, clean, corrections

    number, suffix = match.group(1), match.group(2)
    if suffix or match.group(0).strip() != clean:
        corrections.append("Extracted currency from text")

    try:
        amount = Decimal(number.replace(",", ""))
    except InvalidOperation:
        return False, clean, corrections

    if suffix:
        amount *= CURRENCY_MULTIPLIERS[suffix.lower()]
        corrections.append(f"Expanded '{suffix}' shorthand")

    formatted = _format_amount(amount)
    if formatted != clean:
        corrections.append("Formatted currency")
    clean = formatted

    return bool(CURRENCY_VALID.match(clean)), clean, corrections


def _parse_date(token: str, formats: List[str] = DATE_FORMATS) -> Optional[date]:
    normalized = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", token, flags=re.IGNORECASE)
    normalized = normalized.replace(",", " ").replace(".", " ")
    normalized = re.sub(r"\bsept\b", "sep", normalized, flags=re.IGNORECASE)
    normalized = " ".join(normalized.split())
    for fmt in formats:
        try:
            return datetime.strptime(normalized, fmt).date()
        except ValueError:
            continue
    return None


def _validate_date(value: str) -> Tuple[bool, str, List[str], float]:
    corrections: List[str] = []
    clean = value.strip()

    token = find_date_token(clean)
    if token:
        if token != clean:
            corrections.append("Extracted date from text")
        parsed = _parse_date(token)
        if parsed is None:
            parsed = _parse_date(token, DAY_FIRST_FORMATS)
            if parsed is not None:
                corrections.append("Read as day/month/year")
        if parsed is None:
            corrections.append(f"Could not parse '{token}'")
            return False, clean, corrections, INVALID_CONFIDENCE[DataType.DATE]
        iso = parsed.isoformat()
        if iso != token:
            corrections.append("Standardized to YYYY-MM-DD format")
        return True, iso, corrections, _score(DataType.DATE, True, corrections)

    year = YEAR_PATTERN.search(clean)
    if year:
        corrections.append("Only a year was given; assumed January 1")
        return True, f"{year.group(1)}-01-01", corrections, YEAR_ONLY_CONFIDENCE

    return False, clean, corrections, INVALID_CONFIDENCE[DataType.DATE]


def _title_case(name: str) -> str:
    """Capitalize words that are all lower or all upper case; leave mixed case alone."""
    words = []
    for word in name.split():
        if word.islower() or word.isupper():
            word = word[:1].upper() + word[1:].lower()
        words.append(word)
    return " ".join(words)


def _validate_name(value: str) -> Tuple[bool, str, List[str]]:
    corrections: List[str] = []
    clean = value.strip()

    stripped = clean
    while True:
        previous = stripped
        stripped = NAME_LABEL.sub("", stripped, count=1)
        stripped = HONORIFIC.sub("", stripped, count=1).strip()
        if stripped == previous:
            break
    if stripped != clean:
        corrections.append("Removed title/prefix")
        clean = stripped

    without_suffix = NAME_SUFFIX.sub("", clean)
    if without_suffix != clean:
        corrections.append("Removed name suffix")
        clean = without_suffix.strip()

    if not NAME_VALID.match(clean):
        found = find_role_name(clean)
        if found is None and not LOOSE_NAME.match(clean):
            found = find_person_name(clean)
        if found and found != clean:
            clean = found
            corrections.append("Extracted name from text")

    cased = _title_case(clean)
    if cased != clean:
        corrections.append("Normalized capitalization")
        clean = cased

    if NAME_VALID.match(clean):
        return True, clean, corrections
    if NAME_UNUSUAL.match(clean):
        corrections.append("Name has initials, apostrophes, hyphens or inner capitals; check it by hand")
    return False, clean, corrections


def _validate_number(value: str) -> Tuple[bool, str, List[str]]:
    corrections: List[str] = []
    clean = value.strip()

    range_match = NUMBER_RANGE.search(clean)
    if range_match:
        low = range_match.group(1).replace(",", "")
        high = range_match.group(2).replace(",", "")
        extracted = f"{low}-{high}"
    else:
        single = SINGLE_NUMBER.search(clean)
        if not single:
            return False, clean, corrections
        extracted = single.group(0).replace(",", "")

    if extracted != clean:
        if "," in clean and extracted == clean.replace(",", ""):
            corrections.append("Removed thousands separators")
        else:
            corrections.append("Extracted number from text")
        clean = extracted

    return bool(NUMBER_VALID.match(clean)), clean, corrections


SIMPLE_VALIDATORS: Dict[DataType, Callable[[str], Tuple[bool, str, List[str]]]] = {
    DataType.EMAIL: _validate_email,
    DataType.URL: _validate_url,
    DataType.PHONE: _validate_phone,
    DataType.CURRENCY: _validate_currency,
    DataType.NAME: _validate_name,
    DataType.CEO: _validate_name,
    DataType.FOUNDER: _validate_name,
    DataType.NUMBER: _validate_number,
}


def coerce_data_type(expected_type: Union[DataType, str, None]) -> DataType:
    """Map a DataType or loose string onto DataType, defaulting to TEXT."""
    if isinstance(expected_type, DataType):
        return expected_type
    if not expected_type:
        return DataType.TEXT
    try:
        return DataType(str(expected_type).strip().lower())
    except ValueError:
        return DataType.TEXT


def validate_response(value: Optional[str], expected_type: Union[DataType, str, None]) -> ValidationResult:
    """
    Validate and normalize a raw value for its expected semantic type.

    Args:
        value: Raw value from the provider (or from the verbose extractor)
        expected_type: DataType or its string value; unknown types are text

    Returns:
        ValidationResult with the normalized value, every correction applied,
        and a confidence score (0 for empty input)
    """
    original = value if value is not None else ""
    if not original.strip():
        return ValidationResult(
            is_valid=False,
            value="",
            original_value=original,
            corrections=["Empty value"],
            confidence=0.0,
        )

    data_type = coerce_data_type(expected_type)

    if data_type == DataType.DATE:
        is_valid, clean, corrections, confidence = _validate_date(original)
        return ValidationResult(is_valid, clean, original, corrections, confidence)

    validator = SIMPLE_VALIDATORS.get(data_type)
    if validator is None:
        return ValidationResult(
            is_valid=True,
            value=original.strip(),
            original_value=original,
            corrections=[],
            confidence=TEXT_CONFIDENCE,
        )

    is_valid, clean, corrections = validator(original)
    score_type = DataType.NAME if data_type.is_person else data_type
    return ValidationResult(
        is_valid=is_valid,
        value=clean,
        original_value=original,
        corrections=corrections,
        confidence=_score(score_type, is_valid, corrections),
    )
