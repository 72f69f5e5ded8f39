"""Shared fixtures for cellfill tests.

Providers are scripted fakes; nothing here touches the network. Tests that
need a real backend are marked `integration` and skipped by default.
"""

import json
import os
from typing import Any, Callable, Dict, List, Optional

import pytest

# Use litellm's bundled model cost map instead of fetching it over the network at import time.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from cellfill.models.enrichment import EnrichmentMetadata, EnrichmentResult, ResultStatus
from cellfill.providers.base import AIProvider, ProviderReply
from cellfill.services.stores import SheetStore
from cellfill.utils.rate_limiter import ProviderRateLimiter, provider_rate_limiter


def json_reply(**fields) -> str:
    """Provider reply text for a JSON object with the given fields."""
    return json.dumps(fields)


class FakeProvider(AIProvider):
    """Provider whose backend round trips return scripted replies in order.

    Each scripted entry is a reply string, a ProviderReply, or an exception
    to raise from the backend call.
    """

    name = "fake"
    default_model = "fake-model"

    def __init__(self, replies: Optional[List[Any]] = None, **kwargs):
        kwargs.setdefault("rate_limiter", ProviderRateLimiter(min_interval=0.0))
        super().__init__(**kwargs)
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    async def _complete(self, system_prompt, user_prompt, use_search=True, json_only=False):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "use_search": use_search,
                "json_only": json_only,
            }
        )
        if not self.replies:
            raise AssertionError("FakeProvider ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return ProviderReply(text=reply, model=self.model)
        return reply


def make_result(value: str, status: ResultStatus = ResultStatus.SUCCESS, cost: float = 0.001) -> EnrichmentResult:
    return EnrichmentResult(
        value=value,
        full_response=json_reply(value=value),
        metadata=EnrichmentMetadata(
            provider="recording",
            model="recording-model",
            confidence=0.9,
            status=status,
            estimated_cost=cost,
        ),
    )


class RecordingProvider(AIProvider):
    """Provider that skips the backend and answers enrich_value() through a callback.

    The callback receives (value, prompt, context) and returns an
    EnrichmentResult, or raises to simulate a failed row.
    """

    name = "recording"
    default_model = "recording-model"

    def __init__(self, respond: Optional[Callable] = None, **kwargs):
        kwargs.setdefault("rate_limiter", ProviderRateLimiter(min_interval=0.0))
        super().__init__(**kwargs)
        self.respond = respond or (lambda value, prompt, context: make_result(f"answer for {prompt}"))
        self.calls: List[Dict[str, Any]] = []
        self.search_replies: List[Any] = []

    async def _complete(self, system_prompt, user_prompt, use_search=True, json_only=False):
        raise AssertionError("RecordingProvider does not make backend calls")

    async def enrich_value(self, value, prompt, context=None):
        self.calls.append({"value": value, "prompt": prompt, "context": context or {}})
        result = self.respond(value, prompt, context or {})
        if hasattr(result, "__await__"):
            result = await result
        return result

    async def find_unique_item(self, search_type, found_items, index):
        self.calls.append({"search_type": search_type, "found_items": list(found_items), "index": index})
        if not self.search_replies:
            return None
        return self.search_replies.pop(0)


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Keep the shared limiter from carrying asyncio primitives across tests."""
    provider_rate_limiter.reset()
    yield
    provider_rate_limiter.reset()


@pytest.fixture(autouse=True)
def clear_api_keys(monkeypatch):
    """Tests never see real credentials from the developer's environment."""
    for env_var in (
        "GOOGLE_API_KEY",
        "GEMINI_API_KEY",
        "PERPLEXITY_API_KEY",
        "OPENAI_API_KEY",
        "ANTHROPIC_API_KEY",
    ):
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider with scripted replies."""

    def _make(*replies, **kwargs) -> FakeProvider:
        return FakeProvider(list(replies), **kwargs)

    return _make


@pytest.fixture
def sample_sheet() -> SheetStore:
    """Ten companies with an empty CEO column."""
    companies = [
        ("Acme Corp", "San Francisco, CA", "Manufacturing"),
        ("Globex", "Springfield, IL", "Energy"),
        ("Initech", "Austin, TX", "Software"),
        ("Umbrella", "Raccoon City", "Pharmaceuticals"),
        ("Hooli", "Palo Alto, CA", "Internet"),
        ("Stark Industries", "New York, NY", "Defense"),
        ("Wayne Enterprises", "Gotham", "Conglomerate"),
        ("Wonka Industries", "London, UK", "Confectionery"),
        ("Cyberdyne", "Sunnyvale, CA", "Robotics"),
        ("Soylent", "Chicago, IL", "Food"),
    ]
    return SheetStore(
        ["Company", "Location", "Industry", "CEO"],
        [[name, location, industry, ""] for name, location, industry in companies],
    )
