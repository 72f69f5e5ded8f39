"""
Shared per-provider rate limiter for concurrent column runs.

Problem: rows within one column are sequential, but several columns can be
enriching at once. Each run pacing itself does not stop N columns from
hitting the same backend N times at once.

Solution: one limiter keyed by provider name, shared by every run in the
process. It bounds in-flight calls and enforces a minimum spacing.

Usage:
    from cellfill.utils.rate_limiter import provider_rate_limiter

    async with provider_rate_limiter.slot("perplexity"):
        response = await client.post(url, json=payload)
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from ..constants import PROVIDER_MAX_CONCURRENCY, PROVIDER_MIN_INTERVAL_SECONDS


class ProviderRateLimiter:
    """
    Async rate limiter shared across all columns.

    Maintains per-provider spacing and a per-provider concurrency bound.
    """

    def __init__(
        self,
        min_interval: float = PROVIDER_MIN_INTERVAL_SECONDS,
        max_concurrency: int = PROVIDER_MAX_CONCURRENCY,
    ):
        self.min_interval = min_interval
        self.max_concurrency = max_concurrency
        self._locks: Dict[str, asyncio.Lock] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._last_request: Dict[str, float] = {}

    def configure(self, min_interval: Optional[float] = None, max_concurrency: Optional[int] = None):
        """Update limits. Only affects providers not seen yet."""
        if min_interval is not None:
            self.min_interval = min_interval
        if max_concurrency is not None:
            self.max_concurrency = max_concurrency

    def _get_state(self, provider: str):
        if provider not in self._locks:
            self._locks[provider] = asyncio.Lock()
            self._semaphores[provider] = asyncio.Semaphore(self.max_concurrency)
            self._last_request[provider] = 0.0
        return self._locks[provider], self._semaphores[provider]

    async def wait(self, provider: str, delay: Optional[float] = None) -> float:
        """
        Wait until it's safe to send another request to the given provider.

        Args:
            provider: Provider identifier (e.g., "gemini", "perplexity")
            delay: Minimum seconds between requests (defaults to min_interval)

        Returns:
            Actual time waited (0 if no wait needed)
        """
        lock, _ = self._get_state(provider)
        delay = self.min_interval if delay is None else delay

        async with lock:
            elapsed = time.monotonic() - self._last_request[provider]
            if elapsed < delay:
                wait_time = delay - elapsed
                await asyncio.sleep(wait_time)
            else:
                wait_time = 0.0
            self._last_request[provider] = time.monotonic()
            return wait_time

    @asynccontextmanager
    async def slot(self, provider: str):
        """Hold one concurrency slot for the provider for the duration of a call."""
        _, semaphore = self._get_state(provider)
        async with semaphore:
            await self.wait(provider)
            yield

    def reset(self, provider: Optional[str] = None):
        """
        Reset limiter state.

        Args:
            provider: Specific provider to reset, or None to forget all providers
        """
        if provider:
            self._last_request[provider] = 0.0
        else:
            self._locks.clear()
            self._semaphores.clear()
            self._last_request.clear()


# Singleton instance - shared across all providers and columns
provider_rate_limiter = ProviderRateLimiter()
