"""
Perplexity provider (web-search native chat completions over httpx).
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import get_api_key
from ..constants import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_REQUEST_TIMEOUT_SECONDS
from ..errors import ProviderUnavailableError
from ..models.enrichment import Citation
from .base import AIProvider, ProviderReply, citations_from_items, dedupe_citations

logger = logging.getLogger(__name__)

PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"

# Fields different API versions have used for provenance
CITATION_FIELDS = ["search_results", "citations", "sources", "web_results", "references"]


class PerplexityProvider(AIProvider):
    """
    Enrichment via Perplexity Sonar.

    Pass an httpx.AsyncClient to share a connection pool across calls;
    otherwise a short-lived client is opened per request.
    """

    name = "perplexity"
    default_model = "sonar"

    # (cost per 1M input tokens, cost per 1M output tokens, cost per request)
    COSTS = {
        "sonar": (1.00, 1.00, 0.005),
        "sonar-pro": (3.00, 15.00, 0.006),
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        base_url: str = PERPLEXITY_API_URL,
        **kwargs,
    ):
        super().__init__(model=model, **kwargs)
        self.api_key = api_key or get_api_key("PERPLEXITY_API_KEY")
        if not self.api_key:
            raise ProviderUnavailableError(
                "API key not found. Set PERPLEXITY_API_KEY in environment, or pass api_key parameter."
            )
        self.http_client = http_client
        self.timeout = timeout
        self.base_url = base_url

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.http_client is not None:
            response = await self.http_client.post(self.base_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)
        response.raise_for_status()
        return response.json()

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        use_search: bool = True,
        json_only: bool = False,
    ) -> ProviderReply:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0.1,
            "max_tokens": DEFAULT_MAX_OUTPUT_TOKENS,
            "return_citations": True,
            "return_related_questions": False,
        }

        data = await self._post(payload)

        choices = data.get("choices") or []
        if not choices:
            logger.warning(f"Perplexity returned no choices (model={data.get('model') or self.model})")
            text = ""
        else:
            text = (choices[0].get("message") or {}).get("content") or ""

        citations = self._extract_citations(data) if use_search else []
        cost = self._calculate_cost(data.get("usage") or {})
        logger.debug(f"Perplexity call: {len(citations)} citations, ${cost:.6f}")
        return ProviderReply(text=text, citations=citations, cost=cost, model=data.get("model") or self.model)

    def _extract_citations(self, data: Dict[str, Any]) -> List[Citation]:
        """Collect citations from every provenance field present in the response."""
        citations: List[Citation] = []
        for field_name in CITATION_FIELDS:
            items = data.get(field_name)
            if isinstance(items, list):
                citations.extend(citations_from_items(items))
        return dedupe_citations(citations)

    def _calculate_cost(self, usage: Dict[str, Any]) -> float:
        input_cost, output_cost, request_cost = self.COSTS.get(self.model, self.COSTS[self.default_model])
        input_tokens = usage.get("prompt_tokens", 0) or 0
        output_tokens = usage.get("completion_tokens", 0) or 0
        return (input_tokens / 1_000_000) * input_cost + (output_tokens / 1_000_000) * output_cost + request_cost
