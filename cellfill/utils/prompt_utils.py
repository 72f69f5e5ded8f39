"""
Helpers for turning row data into prompt text.

Cell values come from user spreadsheets, so anything that looks like a
chat-template marker or a new prompt section is blanked before it is
placed inside a provider prompt.
"""

import re
from typing import Any, Dict, Optional

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")

# Section breaks (---, ## heading), chat-template tokens, Llama markers, transcript roles
INJECTION_MARKERS = re.compile(
    r"\n-{3,}\n|\n#{1,6}\s|<\|.*?\|>|\[/?INST\]|<</?SYS>>|\b(?:Human|Assistant):",
    re.IGNORECASE,
)
TRUNCATION_SUFFIX = "... [truncated]"


def sanitize_for_prompt(text: Any, max_length: int = 5000) -> str:
    """Blank injection markers in a cell value and cap it at max_length characters."""
    if text is None:
        return ""
    cleaned = INJECTION_MARKERS.sub(" ", str(text))
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + TRUNCATION_SUFFIX
    return cleaned.strip()


def substitute_placeholders(prompt: str, row_data: Dict[str, str], value: Optional[str] = None) -> str:
    """
    Replace {ColumnName} and {value} placeholders in a column prompt.

    Column names match case-insensitively. Unknown placeholders are left
    as-is so the model still sees what the user meant.

    Args:
        prompt: Column prompt, e.g. "Who is the CEO of {Company}?"
        row_data: Column name -> cell value for the current row
        value: Current value of the target cell

    Returns:
        Prompt with known placeholders filled in

    Examples:
        >>> substitute_placeholders("CEO of {Company}", {"Company": "Acme"})
        'CEO of Acme'
    """
    lookup = {name.strip().lower(): cell for name, cell in row_data.items()}
    if value is not None:
        lookup.setdefault("value", value)

    def _replace(match: "re.Match") -> str:
        key = match.group(1).strip().lower()
        if key in lookup:
            return str(lookup[key] or "")
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, prompt)
