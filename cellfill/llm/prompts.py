"""
Prompt templates for cell enrichment, JSON repair and unique-item search.

Every template demands a single JSON object so replies can be parsed
uniformly across providers.
"""

import json
from typing import Dict, List, Optional, Sequence, Union

from ..constants import MAX_ROW_FIELD_CHARS, MAX_VALUE_CHARS
from ..models.enrichment import CustomFormat, DataType
from ..utils.prompt_utils import sanitize_for_prompt
from ..validators.custom_format import format_instruction
from .task_classifier import TaskClassification

ENRICHMENT_SYSTEM_PROMPT = """You fill in a single spreadsheet cell for one specific entity.

{task_instruction}

IMPORTANT REQUIREMENTS:
1. The answer must be about the SPECIFIC entity described in the row data
2. Similarly named companies or people are DIFFERENT entities
3. If you cannot find the value, say so with status "not_found"; never guess
4. If several entities match and you cannot tell which one is meant, use status "multiple_matches"

{format_instruction}

IMPORTANT: You MUST respond with a single valid JSON object only. No prose, no markdown, no arrays.

{{
    "value": "the cell value, formatted as instructed",
    "confidence": 0.0,
    "status": "success | needs_review | insufficient_data | multiple_matches | not_found",
    "reason": "one sentence on how you found it",
    "sources": [{{"url": "https://...", "title": "..."}}],
    "verification": {{"entity_matched": true, "format_valid": true}}
}}"""

REPAIR_SYSTEM_PROMPT = """You fix malformed model output. Return ONLY a single valid JSON object matching this schema:

{
    "value": "string",
    "confidence": 0.0,
    "status": "success | needs_review | insufficient_data | multiple_matches | not_found",
    "reason": "string",
    "sources": [],
    "verification": {"entity_matched": true, "format_valid": true}
}

Do not add information that is not in the original output."""

SEARCH_SYSTEM_PROMPT = """You find real, verifiable items one at a time.

IMPORTANT REQUIREMENTS:
1. Return exactly ONE item that is NOT in the exclusion list
2. Variants of an excluded name (different suffix, casing, abbreviation) count as excluded
3. The item must be real and verifiable through a public source

IMPORTANT: You MUST respond with a single valid JSON object only. No prose, no markdown, no arrays.

{
    "name": "official name of the item",
    "source": "URL where it can be verified",
    "verification": "one sentence explaining why it matches"
}"""

FORMAT_INSTRUCTIONS: Dict[DataType, str] = {
    DataType.EMAIL: "FORMAT: Return ONLY the email address, e.g. jane.doe@company.com",
    DataType.URL: "FORMAT: Return ONLY the full URL starting with https://, e.g. https://www.company.com",
    DataType.PHONE: "FORMAT: Return ONLY the phone number with country code, e.g. +1-415-555-1234",
    DataType.CURRENCY: "FORMAT: Return ONLY the amount in US dollars with no abbreviations, e.g. $5,000,000",
    DataType.DATE: "FORMAT: Return ONLY the date as YYYY-MM-DD, e.g. 2024-03-15",
    DataType.NAME: "FORMAT: Return ONLY the person's full name, no titles, e.g. Jane Doe",
    DataType.CEO: "FORMAT: Return ONLY the current CEO's full name, no titles, e.g. Jane Doe",
    DataType.FOUNDER: "FORMAT: Return ONLY the founder's full name, no titles (comma-separate several)",
    DataType.NUMBER: "FORMAT: Return ONLY the number or a simple range, e.g. 500 or 100-500",
    DataType.TEXT: "FORMAT: Return a concise answer, no longer than needed",
}

# Row fields that identify the entity, in priority order
IDENTITY_FIELDS = ["company name", "company", "organization", "business", "name", "full name", "lead name", "contact"]
LOCATION_FIELDS = ["location", "city", "state", "country", "headquarters", "address"]
INDUSTRY_FIELDS = ["industry", "sector", "category", "vertical"]
WEB_FIELDS = ["website", "domain", "url"]


def _find_field(row_data: Dict[str, str], candidates: List[str]) -> Optional[str]:
    lowered = {k.strip().lower(): v for k, v in row_data.items() if v and str(v).strip()}
    for candidate in candidates:
        if candidate in lowered:
            return str(lowered[candidate]).strip()
    for candidate in candidates:
        for key, value in lowered.items():
            if candidate in key:
                return str(value).strip()
    return None


def identify_entity(row_data: Dict[str, str], fallback: str = "") -> str:
    """Best human-readable name for the row's entity."""
    return _find_field(row_data, IDENTITY_FIELDS) or fallback or ""


def disambiguation_hints(row_data: Dict[str, str]) -> List[str]:
    """Location, industry and web hints that tell same-named entities apart."""
    hints = []
    location = _find_field(row_data, LOCATION_FIELDS)
    if location:
        hints.append(f"Location: {sanitize_for_prompt(location, MAX_ROW_FIELD_CHARS)}")
    industry = _find_field(row_data, INDUSTRY_FIELDS)
    if industry:
        hints.append(f"Industry: {sanitize_for_prompt(industry, MAX_ROW_FIELD_CHARS)}")
    website = _find_field(row_data, WEB_FIELDS)
    if website:
        hints.append(f"Website: {sanitize_for_prompt(website, MAX_ROW_FIELD_CHARS)}")
    return hints


def build_system_prompt(
    classification: TaskClassification,
    data_type: DataType,
    custom_format: Optional[CustomFormat] = None,
) -> str:
    """System instruction for one enrichment call."""
    if custom_format and (custom_format.pattern or custom_format.instruction):
        instruction = f"FORMAT: {format_instruction(custom_format)}"
    else:
        instruction = FORMAT_INSTRUCTIONS.get(data_type, FORMAT_INSTRUCTIONS[DataType.TEXT])
    return ENRICHMENT_SYSTEM_PROMPT.format(
        task_instruction=classification.instruction,
        format_instruction=instruction,
    )


def build_user_prompt(
    value: str,
    prompt: str,
    row_data: Dict[str, str],
    attachment_context: Optional[str] = None,
) -> str:
    """
    User message for one enrichment call.

    Args:
        value: Current cell value (may be empty)
        prompt: Column prompt with placeholders already substituted
        row_data: Header -> value for the rest of the row
        attachment_context: Budgeted attachment text, if any

    Returns:
        Prompt text with the request, target entity, row context,
        disambiguation hints and attachment documents
    """
    sections = [f"REQUEST: {sanitize_for_prompt(prompt, MAX_VALUE_CHARS)}"]

    entity = identify_entity(row_data)
    if entity:
        sections.append(f"TARGET ENTITY: {sanitize_for_prompt(entity, MAX_ROW_FIELD_CHARS)}")

    if value and value.strip():
        sections.append(f"CURRENT CELL VALUE: {sanitize_for_prompt(value, MAX_VALUE_CHARS)}")

    if row_data:
        lines = [
            f"- {sanitize_for_prompt(k, 100)}: {sanitize_for_prompt(v, MAX_ROW_FIELD_CHARS)}"
            for k, v in row_data.items()
            if v and str(v).strip()
        ]
        if lines:
            sections.append("ENTITY CONTEXT:\n" + "\n".join(lines))

    hints = disambiguation_hints(row_data)
    if hints:
        sections.append(
            "DISAMBIGUATION HELP (use these to make sure you have the right entity):\n"
            + "\n".join(f"- {h}" for h in hints)
        )

    if attachment_context:
        sections.append(f"CONTEXT DOCUMENTS:\n{attachment_context}")

    sections.append('Set verification.entity_matched to false if you are not sure the answer is about this entity.')
    return "\n\n".join(sections)


def build_repair_prompt(raw_output: str, data_type: Union[DataType, str]) -> str:
    """User message asking a model to rewrite its own malformed output as JSON."""
    type_name = data_type.value if isinstance(data_type, DataType) else str(data_type)
    return (
        f"The expected value type is: {type_name}\n\n"
        f"Original output:\n{sanitize_for_prompt(raw_output, 4000)}\n\n"
        "Rewrite it as the JSON object described in the instructions."
    )


def build_search_prompt(search_type: str, exclusions: Sequence[str], index: int) -> str:
    """User message for one step of a find-N-unique-items search."""
    lines = [f"Find {search_type}. This is item #{index + 1}."]
    if exclusions:
        excluded = json.dumps([sanitize_for_prompt(name, 200) for name in exclusions])
        lines.append(f"EXCLUSION LIST (do NOT return any of these or their variants): {excluded}")
    lines.append("Return one new item as the JSON object described in the instructions.")
    return "\n\n".join(lines)
