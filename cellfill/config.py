"""
Central configuration for the enrichment core.

Settings come from environment variables (load a .env first with
python-dotenv when running from the command line):
  - GEMINI_API_KEY / GOOGLE_API_KEY
  - PERPLEXITY_API_KEY
  - OPENAI_API_KEY
  - ANTHROPIC_API_KEY
  - CELLFILL_ROUTER_MODE (economy, balanced, quality; default: balanced)
  - CELLFILL_ROW_DELAY (seconds between rows; default: 0.5)
  - CELLFILL_PROVIDER_CONCURRENCY (in-flight calls per provider; default: 4)
  - CELLFILL_PROVIDER_MIN_INTERVAL (seconds between calls per provider; default: 0.2)
  - CELLFILL_LOG_LEVEL (default: INFO)
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from .constants import PROVIDER_MAX_CONCURRENCY, PROVIDER_MIN_INTERVAL_SECONDS, ROW_DELAY_SECONDS


def get_api_key(*env_vars: str) -> Optional[str]:
    """
    Return the first configured API key among env_vars.

    Placeholder values starting with "your_" are treated as unset.
    """
    for env_var in env_vars:
        key = os.environ.get(env_var)
        if key and not key.startswith("your_"):
            return key
    return None


def _get_float(env_var: str, default: float) -> float:
    raw = os.environ.get(env_var)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{env_var} must be a number, got {raw!r}") from None


def _get_int(env_var: str, default: int) -> int:
    raw = os.environ.get(env_var)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{env_var} must be an integer, got {raw!r}") from None


@dataclass
class EnrichmentSettings:
    """Runtime settings resolved from the environment."""

    gemini_api_key: Optional[str] = None
    perplexity_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    router_mode: str = "balanced"
    row_delay: float = ROW_DELAY_SECONDS
    provider_concurrency: int = PROVIDER_MAX_CONCURRENCY
    provider_min_interval: float = PROVIDER_MIN_INTERVAL_SECONDS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "EnrichmentSettings":
        """Build settings from the current environment."""
        return cls(
            gemini_api_key=get_api_key("GOOGLE_API_KEY", "GEMINI_API_KEY"),
            perplexity_api_key=get_api_key("PERPLEXITY_API_KEY"),
            openai_api_key=get_api_key("OPENAI_API_KEY"),
            anthropic_api_key=get_api_key("ANTHROPIC_API_KEY"),
            router_mode=os.environ.get("CELLFILL_ROUTER_MODE", "balanced").lower(),
            row_delay=_get_float("CELLFILL_ROW_DELAY", ROW_DELAY_SECONDS),
            provider_concurrency=_get_int("CELLFILL_PROVIDER_CONCURRENCY", PROVIDER_MAX_CONCURRENCY),
            provider_min_interval=_get_float("CELLFILL_PROVIDER_MIN_INTERVAL", PROVIDER_MIN_INTERVAL_SECONDS),
            log_level=os.environ.get("CELLFILL_LOG_LEVEL", "INFO").upper(),
        )

    def api_keys(self) -> Dict[str, str]:
        """Provider -> API key mapping for LLMClient."""
        keys = {
            "google": self.gemini_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }
        return {provider: key for provider, key in keys.items() if key}

    def available_providers(self) -> list:
        """Names of providers that have credentials configured."""
        available = []
        if self.gemini_api_key:
            available.append("gemini")
        if self.perplexity_api_key:
            available.append("perplexity")
        if self.openai_api_key:
            available.append("openai")
        if self.anthropic_api_key:
            available.append("claude")
        return available
