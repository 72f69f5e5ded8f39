"""
"Find N unique items" search.

Each step asks the provider for one more item, excluding the most recent
names already found. New names are normalized before the uniqueness check
so "Acme Inc." and "ACME Corporation" collapse to one entry.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..constants import EXCLUSION_WINDOW, MAX_SEARCH_ATTEMPTS_FACTOR
from ..models.enrichment import SearchResult
from ..providers.base import AIProvider

logger = logging.getLogger(__name__)

CORPORATE_SUFFIXES = [
    "inc",
    "incorporated",
    "corp",
    "corporation",
    "llc",
    "ltd",
    "limited",
    "co",
    "company",
    "companies",
    "plc",
    "group",
    "holdings",
    "international",
    "global",
]

# One or more trailing suffix words: "acme, inc." and "acme holdings ltd" lose them all
SUFFIX_PATTERN = re.compile(r"(?:[\s,]*\b(?:" + "|".join(CORPORATE_SUFFIXES) + r")\b\.?)+\s*$")
NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")


def normalize_for_comparison(name: str) -> str:
    """
    Comparison key for an item name.

    Lowercases, drops trailing corporate suffixes, then drops everything that is not
    a letter or digit. Falls back to the suffix-bearing form when stripping
    suffixes would leave nothing ("The Group" stays distinguishable).
    """
    lowered = (name or "").lower().strip()
    stripped = NON_ALPHANUMERIC.sub("", SUFFIX_PATTERN.sub("", lowered))
    if stripped:
        return stripped
    return NON_ALPHANUMERIC.sub("", lowered)


@dataclass
class FoundItems:
    """Ordered accumulator of found names plus their normalized keys."""

    names: List[str] = field(default_factory=list)
    keys: Dict[str, str] = field(default_factory=dict)

    def contains(self, name: str) -> bool:
        return normalize_for_comparison(name) in self.keys

    def add(self, name: str) -> bool:
        """Add a name. Returns False if it (or a variant of it) is already present."""
        key = normalize_for_comparison(name)
        if not key or key in self.keys:
            return False
        self.keys[key] = name
        self.names.append(name)
        return True

    def recent(self, n: int = EXCLUSION_WINDOW) -> List[str]:
        return self.names[-n:] if n > 0 else []

    def __len__(self) -> int:
        return len(self.names)


@dataclass
class SearchOutcome:
    """Result of a find-N-unique-items run."""

    search_type: str
    requested: int
    items: List[SearchResult] = field(default_factory=list)
    attempts: int = 0
    duplicates: int = 0
    failures: int = 0

    @property
    def complete(self) -> bool:
        return len(self.items) >= self.requested


async def find_unique_items(
    provider: AIProvider,
    search_type: str,
    count: int,
    found: Optional[FoundItems] = None,
    window: int = EXCLUSION_WINDOW,
) -> SearchOutcome:
    """
    Ask the provider for count distinct items of search_type.

    Args:
        provider: Backend to query
        search_type: What to find, e.g. "fintech companies in London"
        count: Number of unique items wanted
        found: Existing accumulator (names in it are never returned again)
        window: How many recent names to send as exclusions

    Returns:
        SearchOutcome; may hold fewer than count items when the provider
        keeps returning duplicates or nothing. Attempts are capped at
        count * MAX_SEARCH_ATTEMPTS_FACTOR.
    """
    found = found if found is not None else FoundItems()
    outcome = SearchOutcome(search_type=search_type, requested=count)
    max_attempts = max(count, 0) * MAX_SEARCH_ATTEMPTS_FACTOR

    while len(outcome.items) < count and outcome.attempts < max_attempts:
        outcome.attempts += 1
        result = await provider.find_unique_item(search_type, found.recent(window), len(outcome.items))

        if result is None:
            outcome.failures += 1
            continue

        if not found.add(result.name):
            outcome.duplicates += 1
            logger.info(f"Search '{search_type}': duplicate item skipped: {result.name}")
            continue

        outcome.items.append(result)
        logger.debug(f"Search '{search_type}': found {len(outcome.items)}/{count}: {result.name}")

    if not outcome.complete:
        logger.warning(
            f"Search '{search_type}': found {len(outcome.items)}/{count} items after {outcome.attempts} attempts "
            f"({outcome.duplicates} duplicates, {outcome.failures} failures)"
        )
    return outcome
