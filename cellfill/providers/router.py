"""
Provider router: picks which adapter to build for a column's prompt.

Rule based and cost aware. Web lookups go to a search-native backend,
closed-set classification and formatting to a cheap chat model, and long
generation to a stronger model unless running in economy mode.

Usage:
    router = ProviderRouter(mode=RouterMode.BALANCED, settings=EnrichmentSettings.from_env())
    decision = router.route("Find the CEO of {Company}", row_data)
    provider = create_provider(decision.provider, settings, model=decision.model)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..config import EnrichmentSettings
from ..errors import ProviderUnavailableError
from ..llm.llm_client import MODEL_CLAUDE_HAIKU_45, MODEL_CLAUDE_SONNET_45, MODEL_GPT4O_MINI
from .base import AIProvider
from .gemini_provider import GeminiProvider
from .openai_provider import ClaudeProvider, OpenAIProvider
from .perplexity_provider import PerplexityProvider

logger = logging.getLogger(__name__)


class ProviderName(str, Enum):
    """Closed set of backends the router can choose."""

    GEMINI = "gemini"
    PERPLEXITY = "perplexity"
    OPENAI = "openai"
    CLAUDE = "claude"


class RouterMode(str, Enum):
    ECONOMY = "economy"
    BALANCED = "balanced"
    QUALITY = "quality"


class RouteTask(str, Enum):
    SEARCH = "search"
    CLASSIFY = "classify"
    FORMAT = "format"
    GENERATE = "generate"
    UNKNOWN = "unknown"


ROUTE_KEYWORDS: Dict[RouteTask, List[str]] = {
    RouteTask.SEARCH: [
        "find", "search", "lookup", "look up", "website", "url", "email",
        "phone", "address", "contact", "locate", "discover", "current",
        "latest", "real", "actual", "ceo", "founder", "revenue", "funding",
        "location", "headquarters", "get the", "what is the",
    ],
    RouteTask.CLASSIFY: [
        "classify", "categorize", "category", "type", "kind", "segment",
        "group", "bucket", "label", "tag", "identify", "determine",
        "is this", "what type", "which category",
    ],
    RouteTask.FORMAT: [
        "format", "clean", "normalize", "extract", "parse", "convert",
        "transform", "reformat", "standardize", "fix", "correct",
    ],
    RouteTask.GENERATE: [
        "analyze", "summarize", "explain", "create", "generate", "write",
        "compose", "report", "insights", "complex", "detailed",
    ],
}

# Estimated cost per request (USD)
SEARCH_COST = 0.001
MINI_COST = 0.00015
HAIKU_COST = 0.00025
SONNET_COST = 0.003

MIN_ROUTE_CONFIDENCE = 0.5

# Preference order when the chosen backend has no credentials
AVAILABILITY_ORDER = [ProviderName.GEMINI, ProviderName.PERPLEXITY, ProviderName.OPENAI, ProviderName.CLAUDE]

DEFAULT_MODELS = {
    ProviderName.GEMINI: GeminiProvider.default_model,
    ProviderName.PERPLEXITY: PerplexityProvider.default_model,
    ProviderName.OPENAI: MODEL_GPT4O_MINI,
    ProviderName.CLAUDE: MODEL_CLAUDE_HAIKU_45,
}

DEFAULT_COSTS = {
    ProviderName.GEMINI: SEARCH_COST,
    ProviderName.PERPLEXITY: SEARCH_COST,
    ProviderName.OPENAI: MINI_COST,
    ProviderName.CLAUDE: HAIKU_COST,
}


@dataclass
class RouteDetection:
    task: RouteTask
    confidence: float
    keywords: List[str] = field(default_factory=list)


@dataclass
class RouteDecision:
    """Which backend and model to use, with the estimated per-request cost."""

    provider: ProviderName
    model: str
    estimated_cost: float
    reason: str


def detect_route_task(prompt: str) -> RouteDetection:
    """
    Score the prompt against each keyword list.

    Confidence is the winning score over max(3, total matches), capped at 1.
    Ties keep the earlier task in ROUTE_KEYWORDS order.
    """
    lowered = (prompt or "").lower()
    scores: Dict[RouteTask, int] = {}
    found: List[str] = []
    for task, keywords in ROUTE_KEYWORDS.items():
        matches = [k for k in keywords if k in lowered]
        scores[task] = len(matches)
        found.extend(matches)

    best_task = RouteTask.UNKNOWN
    best_score = 0
    for task, score in scores.items():
        if score > best_score:
            best_task, best_score = task, score

    confidence = min(best_score / max(3, len(found)), 1.0) if found else 0.0
    return RouteDetection(task=best_task, confidence=confidence, keywords=found)


def _has_field(row_data: Optional[Dict[str, str]], *names: str) -> bool:
    if not row_data:
        return False
    wanted = {n.lower() for n in names}
    return any(k.strip().lower() in wanted and v and str(v).strip() for k, v in row_data.items())


class ProviderRouter:
    """
    Chooses a backend per prompt.

    Args:
        mode: economy, balanced or quality
        fallback: Backend used when the task cannot be detected confidently
        settings: When given, decisions are steered away from backends
            without credentials
    """

    def __init__(
        self,
        mode: RouterMode = RouterMode.BALANCED,
        fallback: ProviderName = ProviderName.OPENAI,
        settings: Optional[EnrichmentSettings] = None,
    ):
        self.mode = RouterMode(mode)
        self.fallback = ProviderName(fallback)
        self.settings = settings

    def route(
        self,
        prompt: str,
        row_data: Optional[Dict[str, str]] = None,
        attachment_context: Optional[str] = None,
    ) -> RouteDecision:
        """Pick a backend for one prompt (and optionally one representative row)."""
        decision = self.check_existing_data(prompt, row_data)
        if decision is None and attachment_context:
            decision = RouteDecision(
                ProviderName.OPENAI,
                MODEL_GPT4O_MINI,
                MINI_COST,
                "Answer should come from attached documents; no web search needed",
            )
        if decision is None:
            decision = self._route_by_task(prompt)
        return self._ensure_available(decision)

    def _route_by_task(self, prompt: str) -> RouteDecision:
        detection = detect_route_task(prompt)
        if detection.confidence < MIN_ROUTE_CONFIDENCE:
            return self._fallback_decision("Low confidence in task detection")

        if detection.task == RouteTask.SEARCH:
            return RouteDecision(
                ProviderName.PERPLEXITY,
                PerplexityProvider.default_model,
                SEARCH_COST,
                "Web search task - using Perplexity for real-time information",
            )
        if detection.task in (RouteTask.CLASSIFY, RouteTask.FORMAT):
            if self.mode == RouterMode.QUALITY:
                return RouteDecision(
                    ProviderName.CLAUDE,
                    MODEL_CLAUDE_HAIKU_45,
                    HAIKU_COST,
                    "Classification task in quality mode - using Claude",
                )
            return RouteDecision(
                ProviderName.OPENAI,
                MODEL_GPT4O_MINI,
                MINI_COST,
                "Classification/formatting task - using OpenAI Mini for cost efficiency",
            )
        if detection.task == RouteTask.GENERATE:
            if self.mode == RouterMode.ECONOMY:
                return RouteDecision(
                    ProviderName.OPENAI,
                    MODEL_GPT4O_MINI,
                    MINI_COST,
                    "Generation task in economy mode - using OpenAI Mini",
                )
            return RouteDecision(
                ProviderName.CLAUDE,
                MODEL_CLAUDE_SONNET_45,
                SONNET_COST,
                "Complex generation task - using Claude Sonnet for quality",
            )
        return self._fallback_decision("Unknown task type")

    def check_existing_data(self, prompt: str, row_data: Optional[Dict[str, str]] = None) -> Optional[RouteDecision]:
        """
        Short-circuit routing when the row already holds what the prompt asks for.

        Returns:
            RouteDecision, or None when normal task routing should apply
        """
        if not row_data:
            return None
        lowered = (prompt or "").lower()

        if ("website" in lowered or "url" in lowered) and _has_field(row_data, "website", "url", "domain"):
            return RouteDecision(
                ProviderName.OPENAI,
                MODEL_GPT4O_MINI,
                MINI_COST,
                "Website already exists in data - using OpenAI to format/clean",
            )

        if "email" in lowered and _has_field(row_data, "email", "email address"):
            return RouteDecision(
                ProviderName.OPENAI,
                MODEL_GPT4O_MINI,
                MINI_COST,
                "Email already exists in data - using OpenAI to validate/format",
            )

        if ("classify" in lowered or "category" in lowered) and not _has_field(row_data, "company", "name"):
            return RouteDecision(
                ProviderName.PERPLEXITY,
                PerplexityProvider.default_model,
                SEARCH_COST,
                "No entity name provided - need to search first",
            )

        return None

    def _fallback_decision(self, reason: str) -> RouteDecision:
        return RouteDecision(
            self.fallback,
            DEFAULT_MODELS[self.fallback],
            DEFAULT_COSTS[self.fallback],
            f"Fallback to {self.fallback.value}: {reason}",
        )

    def _ensure_available(self, decision: RouteDecision) -> RouteDecision:
        if self.settings is None or has_credentials(decision.provider, self.settings):
            return decision
        for name in AVAILABILITY_ORDER:
            if has_credentials(name, self.settings):
                logger.info(f"Router: {decision.provider.value} has no API key, using {name.value} instead")
                return RouteDecision(
                    name,
                    DEFAULT_MODELS[name],
                    DEFAULT_COSTS[name],
                    f"{decision.reason} ({decision.provider.value} unavailable, using {name.value})",
                )
        return decision

    def estimate_batch_cost(self, prompts: Sequence[str]) -> Dict[str, object]:
        """
        Estimated cost of routing each prompt once.

        Returns:
            {"total": float, "breakdown": {provider name: float}}
        """
        breakdown = {name.value: 0.0 for name in ProviderName}
        total = 0.0
        for prompt in prompts:
            decision = self.route(prompt)
            breakdown[decision.provider.value] += decision.estimated_cost
            total += decision.estimated_cost
        return {"total": total, "breakdown": breakdown}


def has_credentials(name: ProviderName, settings: EnrichmentSettings) -> bool:
    keys = {
        ProviderName.GEMINI: settings.gemini_api_key,
        ProviderName.PERPLEXITY: settings.perplexity_api_key,
        ProviderName.OPENAI: settings.openai_api_key,
        ProviderName.CLAUDE: settings.anthropic_api_key,
    }
    return bool(keys[ProviderName(name)])


def create_provider(
    name,
    settings: Optional[EnrichmentSettings] = None,
    model: Optional[str] = None,
    **kwargs,
) -> AIProvider:
    """
    Construct the adapter for a backend name.

    Args:
        name: ProviderName or its string value
        settings: Credentials source (environment when None)
        model: Model override
        **kwargs: Passed through to the adapter (rate_limiter, clients, ...)

    Raises:
        ProviderUnavailableError: Unknown name or missing credentials
    """
    try:
        name = ProviderName(name)
    except ValueError:
        raise ProviderUnavailableError(
            f"Unknown provider: {name}. Available: {[n.value for n in ProviderName]}"
        ) from None

    settings = settings or EnrichmentSettings.from_env()
    if name == ProviderName.GEMINI:
        return GeminiProvider(api_key=settings.gemini_api_key, model=model, **kwargs)
    if name == ProviderName.PERPLEXITY:
        return PerplexityProvider(api_key=settings.perplexity_api_key, model=model, **kwargs)
    if name == ProviderName.CLAUDE:
        return ClaudeProvider(api_key=settings.anthropic_api_key, model=model, **kwargs)
    return OpenAIProvider(api_key=settings.openai_api_key, model=model, **kwargs)
