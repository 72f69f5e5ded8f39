"""Orchestration services: column runs, unique-item search, context budget and stores."""

from .context_budget import prepare_attachment_context
from .item_search import FoundItems, SearchOutcome, find_unique_items, normalize_for_comparison
from .orchestrator import EnrichmentOrchestrator
from .stores import AttachmentStore, ConfigStore, MetadataStore, SheetStore

__all__ = [
    "AttachmentStore",
    "ConfigStore",
    "EnrichmentOrchestrator",
    "FoundItems",
    "MetadataStore",
    "SearchOutcome",
    "SheetStore",
    "find_unique_items",
    "normalize_for_comparison",
    "prepare_attachment_context",
]
