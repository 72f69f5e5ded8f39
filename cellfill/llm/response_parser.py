"""
Parsing of structured provider replies.

Providers are told to answer with one JSON object, but replies still come
back wrapped in markdown fences, as a one-element array, with trailing
commas, or cut off mid-object. parse_structured_response() tries each
shape in turn; resolve_value() turns whatever survived into a value,
falling back to prose extraction and finally to the raw text.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from ..constants import (
    DEFAULT_MODEL_CONFIDENCE,
    RAW_FALLBACK_CONFIDENCE,
    VERBOSE_EXTRACTION_CONFIDENCE,
)
from ..models.enrichment import DataType, ResultStatus
from ..validators.verbose_extractor import extract_from_verbose_response

logger = logging.getLogger(__name__)

FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
VALUE_KEYS = ["value", "enriched_value", "enrichedValue", "answer", "result", "name"]
WORD_CONFIDENCE = {"high": 0.9, "medium": 0.7, "low": 0.4}


TRAILING_COMMA = re.compile(r",\s*([}\]])")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
CLOSERS = {"{": "}", "[": "]"}


def _scan(text: str) -> Tuple[List[Tuple[int, str]], bool]:
    """Characters outside string literals with their positions, and whether text ends inside a string."""
    outside = []
    in_string = escaped = False
    for i, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        else:
            outside.append((i, char))
    return outside, in_string


def _still_open(chars) -> List[str]:
    stack: List[str] = []
    for char in chars:
        if char in CLOSERS:
            stack.append(char)
        elif char in "}]" and stack:
            stack.pop()
    return stack


def repair_json(text: str) -> str:
    """
    Fix the usual LLM JSON mistakes: trailing commas, stray control
    characters, and a reply that stops before its brackets are closed.

    Valid JSON comes back unchanged.
    """
    text = CONTROL_CHARS.sub("", TRAILING_COMMA.sub(r"\1", text.strip()))
    outside, in_string = _scan(text)
    stack = _still_open(char for _, char in outside)
    if not stack:
        return text

    if in_string:
        text += '"'
    text = text.rstrip().rstrip(",")
    if text.endswith(":"):
        text += " null"
    return text + "".join(CLOSERS[opener] for opener in reversed(stack))


def _close_at_last_field(text: str) -> Optional[str]:
    """Drop a cut-off trailing field and close what is left, or None if nothing complete remains."""
    outside, _ = _scan(text)
    stack: List[str] = []
    cut = None
    for i, char in outside:
        if char in CLOSERS:
            stack.append(char)
        elif char in "}]":
            if stack:
                stack.pop()
            cut = (i + 1, list(stack))
        elif char == "," and stack == ["{"]:
            cut = (i, list(stack))

    if cut is None:
        return None
    end, open_at_cut = cut
    candidate = text[:end].rstrip().rstrip(",") + "".join(CLOSERS[o] for o in reversed(open_at_cut))
    try:
        json.loads(candidate)
    except json.JSONDecodeError:
        logger.debug(f"Cut-off object still invalid after closing: {candidate[:100]}...")
        return None
    return candidate


def extract_json_object(text: str, repair_truncated: bool = True) -> Optional[str]:
    """
    Find the first balanced {...} object in text.

    Braces inside string values do not count. If the object never closes
    and repair_truncated is set, the complete fields are kept and closed.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    outside, _ = _scan(text[start:])
    for i, char in outside:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : start + i + 1]

    return _close_at_last_field(text[start:]) if repair_truncated else None


def _as_object(parsed: Any) -> Optional[Dict[str, Any]]:
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list):
        for item in parsed:
            if isinstance(item, dict):
                return item
    return None


def _try_load(candidate: Optional[str]) -> Optional[Dict[str, Any]]:
    if not candidate:
        return None
    try:
        return _as_object(json.loads(candidate))
    except (json.JSONDecodeError, ValueError):
        return None


@dataclass
class ParsedReply:
    """Structured payload recovered from a reply, and how it was recovered."""

    payload: Optional[Dict[str, Any]]
    method: str = "none"  # direct, fenced, braces, repaired, none

    @property
    def ok(self) -> bool:
        return self.payload is not None

    @property
    def repaired(self) -> bool:
        return self.method == "repaired"


def parse_reply(text: Optional[str]) -> ParsedReply:
    """
    Recover a JSON object from a provider reply.

    Tries, in order: the whole text, the first fenced code block, the first
    balanced object in the text, and finally repair_json() on everything
    from the first brace. Arrays yield their first object.
    """
    if not text or not text.strip():
        return ParsedReply(None)
    stripped = text.strip()

    payload = _try_load(stripped)
    if payload is not None:
        return ParsedReply(payload, "direct")

    fenced = FENCED_BLOCK.search(stripped)
    if fenced:
        payload = _try_load(fenced.group(1).strip())
        if payload is not None:
            return ParsedReply(payload, "fenced")
        body = fenced.group(1)
    else:
        body = stripped

    if body.lstrip().startswith("["):
        payload = _try_load(repair_json(body))
        if payload is not None:
            return ParsedReply(payload, "repaired")

    balanced = extract_json_object(body, repair_truncated=False)
    payload = _try_load(balanced)
    if payload is not None:
        return ParsedReply(payload, "braces")

    start = body.find("{")
    if start != -1:
        tail = body[start:]
        candidates = [repair_json(balanced)] if balanced else []
        candidates += [repair_json(tail), _close_at_last_field(tail)]
        for candidate in candidates:
            payload = _try_load(candidate)
            if payload is not None:
                return ParsedReply(payload, "repaired")

    return ParsedReply(None)


def parse_structured_response(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the JSON object in a reply, or None if none can be recovered."""
    return parse_reply(text).payload


def coerce_confidence(raw: Any, default: float = DEFAULT_MODEL_CONFIDENCE) -> float:
    """Clamp a model-reported confidence into [0, 1]; accepts 0-100 and high/medium/low."""
    if raw is None:
        return default
    if isinstance(raw, str):
        word = raw.strip().lower()
        if word in WORD_CONFIDENCE:
            return WORD_CONFIDENCE[word]
        try:
            raw = float(word.rstrip("%"))
        except ValueError:
            return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if value > 1.0:
        value = value / 100.0
    return min(max(value, 0.0), 1.0)


def coerce_status(raw: Any) -> ResultStatus:
    """Map a model-reported status onto ResultStatus, defaulting to success."""
    if isinstance(raw, ResultStatus):
        return raw
    if isinstance(raw, str):
        normalized = raw.strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return ResultStatus(normalized)
        except ValueError:
            return ResultStatus.SUCCESS
    return ResultStatus.SUCCESS


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_stringify(v) for v in value if v is not None)
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


@dataclass
class ResolvedValue:
    """A value pulled from a reply, before type validation."""

    value: str
    confidence: float
    status: ResultStatus
    method: str
    reason: Optional[str] = None
    verification: Dict[str, Any] = field(default_factory=dict)
    sources: List[Any] = field(default_factory=list)


def value_from_payload(payload: Dict[str, Any]) -> ResolvedValue:
    """Read {value, confidence, status, reason, verification, sources} from a parsed object."""
    raw_value = None
    for key in VALUE_KEYS:
        if key in payload:
            raw_value = payload[key]
            break

    verification = payload.get("verification")
    if not isinstance(verification, dict):
        verification = {}

    sources = payload.get("sources") or payload.get("citations") or []
    if not isinstance(sources, list):
        sources = [sources]

    status = coerce_status(payload.get("status"))
    value = _stringify(raw_value)
    if not value and status == ResultStatus.SUCCESS:
        status = ResultStatus.NOT_FOUND

    return ResolvedValue(
        value=value,
        confidence=coerce_confidence(payload.get("confidence")),
        status=status,
        method="json",
        reason=payload.get("reason") or payload.get("explanation"),
        verification=verification,
        sources=sources,
    )


def value_from_text(text: str, data_type: Union[DataType, str, None]) -> ResolvedValue:
    """
    Fallback for replies with no recoverable JSON.

    Pulls a typed value out of prose when possible; otherwise keeps the
    trimmed reply so a human can review it.
    """
    extracted = extract_from_verbose_response(text, data_type)
    if extracted:
        return ResolvedValue(
            value=extracted,
            confidence=VERBOSE_EXTRACTION_CONFIDENCE,
            status=ResultStatus.SUCCESS,
            method="verbose",
            reason="Extracted from an unstructured reply",
        )

    logger.debug("No structured value in reply; keeping raw text for review")
    return ResolvedValue(
        value=(text or "").strip(),
        confidence=RAW_FALLBACK_CONFIDENCE,
        status=ResultStatus.NEEDS_REVIEW,
        method="raw",
        reason="Reply could not be parsed; raw text kept for review",
    )


def resolve_value(text: str, data_type: Union[DataType, str, None] = None) -> ResolvedValue:
    """
    Parse a reply and resolve its value in one step.

    Args:
        text: Raw provider reply
        data_type: Expected semantic type, used by the prose fallback

    Returns:
        ResolvedValue; never raises on malformed input
    """
    parsed = parse_reply(text)
    if parsed.ok:
        resolved = value_from_payload(parsed.payload)
        resolved.method = parsed.method
        return resolved
    return value_from_text(text, data_type)
