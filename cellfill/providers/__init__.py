"""AI provider adapters and the router that picks between them."""

from .base import AIProvider, ProviderReply, assess_credibility, make_citation
from .gemini_provider import GeminiProvider
from .openai_provider import ClaudeProvider, OpenAIProvider
from .perplexity_provider import PerplexityProvider
from .router import ProviderName, ProviderRouter, RouteDecision, RouterMode, create_provider

__all__ = [
    "AIProvider",
    "ProviderReply",
    "assess_credibility",
    "make_citation",
    "GeminiProvider",
    "PerplexityProvider",
    "OpenAIProvider",
    "ClaudeProvider",
    "ProviderName",
    "ProviderRouter",
    "RouteDecision",
    "RouterMode",
    "create_provider",
]
