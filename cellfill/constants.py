"""
Global constants for enrichment configuration.

Centralizes budgets, delays and confidence levels used throughout
the enrichment core for easier tuning.
"""

# Attachment Context Budget
MAX_CONTEXT_CHARS = 8000  # Hard cap on attachment context sent per cell
PRIORITY_CHARS_PER_ATTACHMENT = 2000  # First-pass slice each document is guaranteed
MIN_SECOND_PASS_CHARS = 500  # Skip the redistribution pass below this remainder
TRUNCATION_MARKER = "\n\n[... truncated ...]"
ATTACHMENT_SEPARATOR = "\n\n---\n\n"
BOUNDARY_SEARCH_RATIO = 0.8  # Cut at sentence/line break only past 80% of the limit
CHARS_PER_TOKEN = 4  # Rough token estimate for budget reporting

# Throttling
ROW_DELAY_SECONDS = 0.5  # Fixed pause between rows of one column run
RATE_LIMIT_BACKOFF_SECONDS = 2.0  # Search-mode wait after a 429 before giving up
PROVIDER_MIN_INTERVAL_SECONDS = 0.2  # Minimum spacing between calls to one provider
PROVIDER_MAX_CONCURRENCY = 4  # In-flight calls per provider across all columns

# Search Mode
EXCLUSION_WINDOW = 10  # Most recent found names passed back to the provider
MAX_SEARCH_ATTEMPTS_FACTOR = 3  # Attempts allowed per requested unique item

# Network and Timeouts
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60  # Provider HTTP timeout
LLM_TIMEOUT_SECONDS = 120  # LiteLLM completion timeout
DEFAULT_MAX_OUTPUT_TOKENS = 1024  # Cell values are short; JSON envelope fits easily

# Confidence Levels
RAW_FALLBACK_CONFIDENCE = 0.4  # Unparseable reply kept verbatim for review
VERBOSE_EXTRACTION_CONFIDENCE = 0.6  # Value pulled out of prose
DEFAULT_MODEL_CONFIDENCE = 0.8  # Reply omitted a confidence field
NEEDS_REVIEW_THRESHOLD = 0.5  # Below this a "success" is downgraded to needs_review

# Prompt Hygiene
MAX_ROW_FIELD_CHARS = 500  # Per-field cap for row context in prompts
MAX_VALUE_CHARS = 1000  # Cap for the current cell value in prompts
