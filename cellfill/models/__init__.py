"""Data models for cell enrichment."""

from .enrichment import (
    Attachment,
    Citation,
    ColumnEnrichmentConfig,
    CustomFormat,
    DataType,
    EnrichmentMetadata,
    EnrichmentRequest,
    EnrichmentResult,
    EnrichmentRunSummary,
    EnrichmentStatus,
    FormatMode,
    ResultStatus,
    RowEnrichmentFailed,
    ScopeType,
    SearchResult,
    TaskType,
)

__all__ = [
    "Attachment",
    "Citation",
    "ColumnEnrichmentConfig",
    "CustomFormat",
    "DataType",
    "EnrichmentMetadata",
    "EnrichmentRequest",
    "EnrichmentResult",
    "EnrichmentRunSummary",
    "EnrichmentStatus",
    "FormatMode",
    "ResultStatus",
    "RowEnrichmentFailed",
    "ScopeType",
    "SearchResult",
    "TaskType",
]
