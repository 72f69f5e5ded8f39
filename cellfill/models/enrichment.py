"""
Pydantic models for cell enrichment.

These models define the request sent to a provider for one cell, the
typed result written back to the metadata store, and the per-column
configuration and status tracked by the orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class DataType(str, Enum):
    """Semantic type a cell value is expected to have."""

    EMAIL = "email"
    URL = "url"
    PHONE = "phone"
    CURRENCY = "currency"
    DATE = "date"
    NAME = "name"
    CEO = "ceo"
    FOUNDER = "founder"
    NUMBER = "number"
    TEXT = "text"

    @property
    def is_person(self) -> bool:
        return self in (DataType.NAME, DataType.CEO, DataType.FOUNDER)


class TaskType(str, Enum):
    """What kind of work a prompt asks the model to do."""

    CLASSIFICATION = "classification"  # Pick from a closed set, no web needed
    EXTRACTION = "extraction"  # Pull a value out of supplied context
    SEARCH = "search"  # Look something up on the open web


class ResultStatus(str, Enum):
    """Outcome reported by the provider or assigned during normalization."""

    SUCCESS = "success"
    NEEDS_REVIEW = "needs_review"
    INSUFFICIENT_DATA = "insufficient_data"
    MULTIPLE_MATCHES = "multiple_matches"
    NOT_FOUND = "not_found"


class FormatMode(str, Enum):
    """How strictly a column's values are formatted."""

    STRICT = "strict"  # Type-driven normalization only
    FLEXIBLE = "flexible"  # Keep the model's wording
    CUSTOM = "custom"  # User-supplied regex format


class ScopeType(str, Enum):
    """Which rows of a configured column to re-run."""

    CELL = "cell"
    SELECTED = "selected"
    ALL = "all"


class CustomFormat(BaseModel):
    """User-defined output format (SSN, ZIP, SKU, ...)."""

    pattern: Optional[str] = Field(None, description="Regex the value must match")
    example: Optional[str] = Field(None, description="Example of a well-formed value")
    instruction: Optional[str] = Field(None, description="Free-text formatting instruction for the model")
    name: Optional[str] = Field(None, description="Preset name, e.g. 'ssn'")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "pattern": r"^\d{3}-\d{2}-\d{4}$",
                "example": "123-45-6789",
                "name": "ssn",
            }
        },
    )


class Citation(BaseModel):
    """A source backing an enriched value."""

    uri: str = Field(..., description="Full URL of the source")
    title: str = Field("", description="Title of the page or document")
    snippet: Optional[str] = Field(None, description="Relevant excerpt")
    domain: Optional[str] = Field(None, description="Domain of the source")
    credibility: Optional[Literal["high", "medium", "low"]] = Field(
        None, description="Rough trust level of the domain"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "uri": "https://www.sec.gov/cgi-bin/browse-edgar?company=acme",
                "title": "ACME Corp filings",
                "domain": "sec.gov",
                "credibility": "high",
            }
        }
    )


class EnrichmentMetadata(BaseModel):
    """Provenance and quality signals recorded alongside a value."""

    provider: str
    model: str
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    status: ResultStatus = ResultStatus.SUCCESS
    reason: Optional[str] = None
    verification: Optional[Dict[str, Any]] = None
    entity: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    estimated_cost: Optional[float] = None
    search_queries: List[str] = Field(default_factory=list)
    repaired: bool = False
    task_type: Optional[TaskType] = None


class EnrichmentResult(BaseModel):
    """
    Typed outcome of enriching one cell.

    Written into the metadata store keyed by (row, column). Never mutated;
    re-enrichment replaces it.
    """

    value: str
    sources: List[Citation] = Field(default_factory=list)
    full_response: str = ""
    metadata: EnrichmentMetadata

    model_config = ConfigDict(frozen=True)

    @property
    def needs_review(self) -> bool:
        return self.metadata.status == ResultStatus.NEEDS_REVIEW

    def to_response(self, query: str) -> Dict[str, Any]:
        """
        Render the provider call contract returned to the UI layer.

        Args:
            query: The fully substituted prompt that produced this result

        Returns:
            Dict shaped as {enrichedValue, process: {...}}
        """
        return {
            "enrichedValue": self.value,
            "process": {
                "query": query,
                "response": self.full_response,
                "citations": [c.model_dump(exclude_none=True) for c in self.sources],
                "timestamp": self.metadata.timestamp,
                "provider": self.metadata.provider,
                "model": self.metadata.model,
                "confidence": self.metadata.confidence,
                "status": self.metadata.status.value,
                "verification": self.metadata.verification or {},
                "entity": self.metadata.entity,
            },
        }


class SearchResult(BaseModel):
    """One item returned by a "find N unique items" step."""

    name: str
    source: str = ""
    verification: str = ""
    citations: List[Citation] = Field(default_factory=list)
    search_query: Optional[str] = None


class Attachment(BaseModel):
    """A parsed document attached to a column or a single cell."""

    id: str
    filename: str
    parsed_content: Optional[str] = None


class EnrichmentRequest(BaseModel):
    """Everything a provider needs to enrich one cell. Built fresh per cell."""

    value: str = ""
    prompt: str
    row_context: Dict[str, str] = Field(default_factory=dict)
    attachment_context: Optional[str] = None
    custom_format: Optional[CustomFormat] = None
    data_type: Optional[DataType] = None

    model_config = ConfigDict(frozen=True)

    def to_context(self) -> Dict[str, Any]:
        """Context mapping passed to AIProvider.enrich_value."""
        context: Dict[str, Any] = {"row_data": dict(self.row_context)}
        if self.attachment_context:
            context["attachments"] = self.attachment_context
        if self.custom_format:
            context["custom_format"] = self.custom_format
        if self.data_type:
            context["data_type"] = self.data_type
        return context


class ColumnEnrichmentConfig(BaseModel):
    """Per-column enrichment settings. Survives renames; index shifts with inserts/deletes."""

    column_index: int
    column_name: str
    prompt: str
    format_mode: FormatMode = FormatMode.STRICT
    data_type: Optional[DataType] = None
    custom_format: Optional[CustomFormat] = None
    is_configured: bool = True
    attachments: List[Attachment] = Field(default_factory=list)
    use_attachments_as_context: bool = True
    context_columns: Optional[Set[int]] = None


class EnrichmentStatus(BaseModel):
    """Live status of one column's run."""

    enriching: bool = False
    current_row: Optional[int] = None
    prompt: Optional[str] = None


@dataclass
class RowEnrichmentFailed:
    """Event emitted when one row of a column run fails."""

    row: int
    column: int
    cause: Exception
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = f"{type(self.cause).__name__}: {self.cause}"


@dataclass
class EnrichmentRunSummary:
    """Aggregate outcome of one orchestrator run over a column."""

    column: int
    started: bool = True
    rows_attempted: int = 0
    rows_succeeded: int = 0
    rows_skipped: int = 0
    failures: List[RowEnrichmentFailed] = field(default_factory=list)
    total_cost: float = 0.0

    @property
    def rows_failed(self) -> int:
        return len(self.failures)
