"""
User-defined output formats for columns that no built-in type covers.

A custom format is a regex plus an example and an instruction. The
instruction goes into the prompt; the regex is applied to whatever comes
back, first as a full match and then as a search inside the text.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional

from ..models.enrichment import CustomFormat

logger = logging.getLogger(__name__)

COMMON_PATTERNS: Dict[str, CustomFormat] = {
    "ssn": CustomFormat(
        name="Social Security Number",
        pattern=r"^\d{3}-\d{2}-\d{4}$",
        example="123-45-6789",
        instruction="Format as SSN: XXX-XX-XXXX",
    ),
    "zip_code": CustomFormat(
        name="ZIP Code",
        pattern=r"^\d{5}(-\d{4})?$",
        example="12345 or 12345-6789",
        instruction="Format as US ZIP code",
    ),
    "sku": CustomFormat(
        name="SKU/Product Code",
        pattern=r"^[A-Z]{3}-\d{4}$",
        example="ABC-1234",
        instruction="Format as SKU: 3 letters, dash, 4 numbers",
    ),
    "order_id": CustomFormat(
        name="Order ID",
        pattern=r"^ORD-\d{8}$",
        example="ORD-12345678",
        instruction="Format as Order ID: ORD-XXXXXXXX",
    ),
    "customer_id": CustomFormat(
        name="Customer ID",
        pattern=r"^CUST-[A-Z]{2}\d{6}$",
        example="CUST-AB123456",
        instruction="Format as Customer ID: CUST-XXNNNNNN",
    ),
    "isbn": CustomFormat(
        name="ISBN",
        pattern=r"^\d{3}-\d{10}$",
        example="978-1234567890",
        instruction="Format as ISBN-13",
    ),
    "ip_address": CustomFormat(
        name="IP Address",
        pattern=r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$",
        example="192.168.1.1",
        instruction="Format as IPv4 address",
    ),
    "mac_address": CustomFormat(
        name="MAC Address",
        pattern=r"^([0-9A-F]{2}:){5}[0-9A-F]{2}$",
        example="00:1B:44:11:3A:B7",
        instruction="Format as MAC address with colons",
    ),
    "twitter_handle": CustomFormat(
        name="Twitter/X Handle",
        pattern=r"^@[a-zA-Z0-9_]{1,15}$",
        example="@username",
        instruction="Format as Twitter handle with @",
    ),
    "hashtag": CustomFormat(
        name="Hashtag",
        pattern=r"^#[a-zA-Z0-9_]+$",
        example="#trending",
        instruction="Format as hashtag with #",
    ),
}


@dataclass
class CustomFormatResult:
    """Outcome of applying a custom format to a value."""

    valid: bool
    value: str
    extracted: Optional[str] = None
    error: Optional[str] = None


def _unanchored(pattern: str) -> str:
    if pattern.startswith("^"):
        pattern = pattern[1:]
    if pattern.endswith("$") and not pattern.endswith("\\$"):
        pattern = pattern[:-1]
    return pattern


def check_pattern(pattern: str, test_value: Optional[str] = None) -> CustomFormatResult:
    """
    Check that a user regex compiles and, optionally, matches a sample.

    Args:
        pattern: Regex entered by the user
        test_value: Optional sample value to test against

    Returns:
        CustomFormatResult; error is set when the regex does not compile
    """
    try:
        regex = re.compile(pattern)
    except re.error as e:
        return CustomFormatResult(valid=False, value=test_value or "", error=f"Invalid regex pattern: {e}")
    if test_value is None:
        return CustomFormatResult(valid=True, value="")
    return CustomFormatResult(valid=bool(regex.search(test_value)), value=test_value)


def apply_custom_format(value: str, custom_format: CustomFormat) -> CustomFormatResult:
    """
    Validate a value against a custom format, extracting a match from text if needed.

    An invalid regex is reported on the result rather than raised.

    Args:
        value: Normalized value from the provider
        custom_format: Column's custom format

    Returns:
        CustomFormatResult with the matching value, or the trimmed input when
        nothing matches
    """
    trimmed = (value or "").strip()
    if not custom_format.pattern:
        return CustomFormatResult(valid=True, value=trimmed)

    try:
        regex = re.compile(custom_format.pattern)
        search_regex = re.compile(_unanchored(custom_format.pattern))
    except re.error as e:
        logger.warning(f"Custom format pattern does not compile: {custom_format.pattern!r} ({e})")
        return CustomFormatResult(valid=False, value=trimmed, error=f"Invalid regex pattern: {e}")

    if regex.search(trimmed):
        return CustomFormatResult(valid=True, value=trimmed)

    match = search_regex.search(trimmed)
    if match and match.group(0):
        return CustomFormatResult(valid=True, value=match.group(0), extracted=match.group(0))

    return CustomFormatResult(valid=False, value=trimmed)


def format_instruction(custom_format: CustomFormat) -> str:
    """Prompt line describing the custom format to the model."""
    parts = []
    if custom_format.instruction:
        parts.append(custom_format.instruction)
    if custom_format.pattern:
        parts.append(f"The value must match the regex {custom_format.pattern}")
    if custom_format.example:
        parts.append(f"Example: {custom_format.example}")
    return ". ".join(parts)
