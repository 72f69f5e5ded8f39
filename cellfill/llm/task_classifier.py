"""
Keyword-based task classification for column prompts.

Decides whether a prompt asks for a classification (pick from a closed set,
no web lookup), an extraction (pull a value from supplied context) or a
search (look it up). The class changes the instruction block sent to the
provider and whether citations are expected.

Also maps prompts and column names to the semantic DataType used for
normalization.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..models.enrichment import DataType, TaskType

CLASSIFICATION_KEYWORDS = [
    "classify",
    "classification",
    "categorize",
    "categorise",
    "category",
    "industry",
    "sector",
    "type",
    "b2b",
    "b2c",
    "segment",
    "tier",
    "label",
]

EXTRACTION_KEYWORDS = [
    "extract",
    "according to",
    "from the document",
    "from the attached",
    "attached",
    "attachment",
    "from the file",
    "in the document",
    "mentioned in",
    "from the text",
]

# Instruction block injected into the provider prompt per task
TASK_INSTRUCTIONS: Dict[TaskType, str] = {
    TaskType.CLASSIFICATION: (
        "TASK TYPE: CLASSIFICATION. Choose the single best category using the row data and "
        "general knowledge. Do not search the web and do not cite sources; return \"sources\": []."
    ),
    TaskType.EXTRACTION: (
        "TASK TYPE: EXTRACTION. Extract the value from the provided context documents first. "
        "Only fall back to web knowledge if the documents do not contain it, and cite where it came from."
    ),
    TaskType.SEARCH: (
        "TASK TYPE: SEARCH. Look up the current, factual value for this specific entity. "
        "Cite every source you used with its URL."
    ),
}

# (keywords, data type) checked in order; first hit wins
DATA_TYPE_KEYWORDS: List[Tuple[Tuple[str, ...], DataType]] = [
    (("email", "e-mail"), DataType.EMAIL),
    (("website", "url", "link", "homepage", "domain"), DataType.URL),
    (("phone", "telephone", "mobile", "tel"), DataType.PHONE),
    (("revenue", "price", "cost", "salary", "funding", "valuation", "market cap", "arr"), DataType.CURRENCY),
    (("founder", "founded by"), DataType.FOUNDER),
    (("ceo", "chief executive"), DataType.CEO),
    (("contact name", "person", "full name", "president"), DataType.NAME),
    (("date", "founded", "established", "year", "when"), DataType.DATE),
    (("employees", "headcount", "count", "number of", "how many", "quantity"), DataType.NUMBER),
]


@dataclass
class TaskClassification:
    """Result of classifying a column prompt."""

    task_type: TaskType
    matched_keywords: List[str] = field(default_factory=list)

    @property
    def expects_citations(self) -> bool:
        return self.task_type != TaskType.CLASSIFICATION

    @property
    def instruction(self) -> str:
        return TASK_INSTRUCTIONS[self.task_type]


def _keyword_hits(text: str, keywords: List[str]) -> List[str]:
    hits = []
    for keyword in keywords:
        if re.search(rf"\b{re.escape(keyword)}\b", text):
            hits.append(keyword)
    return hits


def classify_task(
    prompt: str,
    row_context: Optional[Dict[str, str]] = None,
    attachment_context: Optional[str] = None,
) -> TaskClassification:
    """
    Classify a column prompt by keyword.

    Args:
        prompt: Column prompt (placeholders may or may not be substituted)
        row_context: Row data; currently unused by the rules but accepted so
            callers can pass the full request
        attachment_context: Attachment text for the cell, if any

    Returns:
        TaskClassification with the task type and the keywords that decided it
    """
    text = (prompt or "").lower()

    classification_hits = _keyword_hits(text, CLASSIFICATION_KEYWORDS)
    if classification_hits:
        return TaskClassification(TaskType.CLASSIFICATION, classification_hits)

    extraction_hits = _keyword_hits(text, EXTRACTION_KEYWORDS)
    if extraction_hits or (attachment_context and attachment_context.strip()):
        return TaskClassification(TaskType.EXTRACTION, extraction_hits)

    return TaskClassification(TaskType.SEARCH, [])


def detect_data_type(prompt: str, column_name: Optional[str] = None) -> DataType:
    """
    Guess the semantic type a column expects.

    The column name is checked before the prompt, since "Website" as a
    header is a stronger signal than a prompt that mentions a website.

    Examples:
        >>> detect_data_type("Find the main contact email for {Company}")
        <DataType.EMAIL: 'email'>
        >>> detect_data_type("Who runs it?", column_name="CEO")
        <DataType.CEO: 'ceo'>
    """
    for text in (column_name, prompt):
        if not text:
            continue
        lowered = text.lower()
        for keywords, data_type in DATA_TYPE_KEYWORDS:
            if any(re.search(rf"\b{re.escape(keyword)}\b", lowered) for keyword in keywords):
                return data_type
    return DataType.TEXT
