"""
Attachment context budgeting.

Fits the parsed text of a cell's attachments into a fixed character budget
before it is sent to a provider. The result never exceeds MAX_CONTEXT_CHARS,
headers and separators included, and every document that had to be cut
carries the truncation marker.
"""

import logging
import math
from typing import List, Optional, Sequence

from ..constants import (
    ATTACHMENT_SEPARATOR,
    BOUNDARY_SEARCH_RATIO,
    CHARS_PER_TOKEN,
    MAX_CONTEXT_CHARS,
    MIN_SECOND_PASS_CHARS,
    PRIORITY_CHARS_PER_ATTACHMENT,
    TRUNCATION_MARKER,
)
from ..models.enrichment import Attachment

logger = logging.getLogger(__name__)


def _header(attachment: Attachment) -> str:
    return f"[{attachment.filename}]:\n"


def cut_at_boundary(content: str, limit: int) -> str:
    """
    Cut content to at most limit characters.

    Prefers ending on a sentence or line break when one falls within the
    last 20% of the allowed span.
    """
    if len(content) <= limit:
        return content
    if limit <= 0:
        return ""

    truncated = content[:limit]
    cut_point = max(truncated.rfind("."), truncated.rfind("\n"))
    if cut_point > limit * BOUNDARY_SEARCH_RATIO:
        return truncated[: cut_point + 1]
    return truncated


def truncate_content(content: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> str:
    """
    Truncate content so that content plus marker fits in max_chars.

    Args:
        content: Text to truncate
        max_chars: Total allowed length, marker included
        marker: Appended when anything was cut

    Returns:
        Content unchanged if it fits, otherwise a boundary-aligned prefix
        followed by the marker
    """
    if len(content) <= max_chars:
        return content
    return cut_at_boundary(content, max(max_chars - len(marker), 0)) + marker


def _fit_documents(documents: List[Attachment], max_chars: int, marker: str) -> List[Attachment]:
    """Drop trailing documents whose headers alone would overflow the budget."""
    kept = list(documents)
    while kept:
        overhead = sum(len(_header(a)) + len(marker) for a in kept) + len(ATTACHMENT_SEPARATOR) * (len(kept) - 1)
        if overhead < max_chars:
            return kept
        dropped = kept.pop()
        logger.warning(f"Attachment '{dropped.filename}' dropped: no room left in context budget")
    return kept


def _allocate(lengths: List[int], budget: int, priority_chars: int) -> List[int]:
    """
    Split budget across documents of the given lengths.

    First pass: each document gets up to priority_chars (or an even share,
    whichever is smaller). Second pass: any remainder above
    MIN_SECOND_PASS_CHARS is spread evenly over documents that still have
    content left, repeating until the remainder or the demand runs out.
    """
    count = len(lengths)
    even_share = budget // count
    allocations = [min(length, priority_chars, even_share) for length in lengths]

    remaining = budget - sum(allocations)
    if remaining <= MIN_SECOND_PASS_CHARS:
        return allocations

    while remaining > 0:
        needy = [i for i in range(count) if allocations[i] < lengths[i]]
        if not needy:
            break
        share = remaining // len(needy)
        if share == 0:
            break
        for i in needy:
            extra = min(share, lengths[i] - allocations[i])
            allocations[i] += extra
            remaining -= extra

    return allocations


def prepare_attachment_context(
    attachments: Optional[Sequence[Attachment]],
    max_chars: int = MAX_CONTEXT_CHARS,
    priority_chars: int = PRIORITY_CHARS_PER_ATTACHMENT,
    marker: str = TRUNCATION_MARKER,
) -> str:
    """
    Build the attachment context block for one cell.

    Each document is rendered as "[filename]:\\n<content>" and documents are
    joined with a horizontal-rule separator. Attachments with no parsed
    content are skipped.

    Args:
        attachments: Attachments resolved for the cell
        max_chars: Hard cap on the returned string's length
        priority_chars: First-pass slice guaranteed to each document
        marker: Appended to every document that was cut

    Returns:
        Context string of at most max_chars characters ("" when there is
        nothing to include)
    """
    documents = [a for a in (attachments or []) if a.parsed_content]
    if not documents:
        return ""

    if len(documents) == 1:
        header = _header(documents[0])
        content = documents[0].parsed_content
        if len(header) + len(content) <= max_chars:
            return header + content
        if not _fit_documents(documents, max_chars, marker):
            return ""
        return header + truncate_content(content, max_chars - len(header), marker)

    documents = _fit_documents(documents, max_chars, marker)
    if not documents:
        return ""

    overhead = sum(len(_header(a)) for a in documents) + len(ATTACHMENT_SEPARATOR) * (len(documents) - 1)
    # Marker space is reserved for every document so the cap holds whichever ones get cut
    content_budget = max_chars - overhead - len(marker) * len(documents)

    lengths = [len(a.parsed_content) for a in documents]
    allocations = _allocate(lengths, content_budget, priority_chars)

    parts = []
    for attachment, allocation in zip(documents, allocations):
        content = attachment.parsed_content
        if allocation >= len(content):
            body = content
        else:
            body = cut_at_boundary(content, allocation) + marker
        parts.append(_header(attachment) + body)

    context = ATTACHMENT_SEPARATOR.join(parts)
    logger.debug(
        f"Attachment context: {len(documents)} documents, {len(context)}/{max_chars} chars, "
        f"~{estimate_token_count(context)} tokens"
    )
    return context


def estimate_token_count(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)
