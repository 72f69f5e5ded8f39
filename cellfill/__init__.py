"""
cellfill: AI enrichment for spreadsheet cells.

Routes cell-fill requests to search-grounded or plain LLM backends,
repairs and normalizes their output, and tracks per-cell provenance.
"""

__version__ = "0.1.0"
