"""
Validators for enriched cell values.

This module provides:
- Per-type normalization (email, url, phone, currency, date, name, number)
- Extraction of typed values from verbose prose replies
- User-defined regex formats
"""

from .custom_format import COMMON_PATTERNS, CustomFormatResult, apply_custom_format, check_pattern
from .response_validator import ValidationResult, coerce_data_type, validate_response
from .verbose_extractor import extract_from_verbose_response

__all__ = [
    "COMMON_PATTERNS",
    "CustomFormatResult",
    "ValidationResult",
    "apply_custom_format",
    "check_pattern",
    "coerce_data_type",
    "extract_from_verbose_response",
    "validate_response",
]
