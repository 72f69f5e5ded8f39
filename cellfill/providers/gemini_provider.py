"""
Gemini provider with Google Search grounding.

Uses the Google GenAI SDK directly (not LiteLLM) to get at grounding
metadata, which is where its citations come from.
"""

import logging
from typing import Any, List, Optional, Tuple

from google import genai
from google.genai import types

from ..config import get_api_key
from ..constants import DEFAULT_MAX_OUTPUT_TOKENS
from ..errors import ProviderUnavailableError
from ..models.enrichment import Citation
from .base import AIProvider, ProviderReply, assess_credibility, dedupe_citations, make_citation

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """
    Enrichment via Gemini with search grounding.

    Usage:
        provider = GeminiProvider()
        result = await provider.enrich_value("", "Who is the CEO of Acme Corp?")
        print(result.value, [c.uri for c in result.sources])
    """

    name = "gemini"
    default_model = "gemini-2.5-flash"

    # Cost per million tokens
    COSTS = {
        "gemini-2.5-flash": {"input": 0.30, "output": 2.50},
        "gemini-2.5-flash-lite": {"input": 0.10, "output": 0.40},
        "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
        "gemini-2.5-pro": {"input": 1.25, "output": 10.00},
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Any = None,
        temperature: float = 0.1,
        **kwargs,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Google API key (defaults to GOOGLE_API_KEY or GEMINI_API_KEY env var)
            model: Gemini model to use
            client: Pre-built genai.Client (tests pass a stub)
            temperature: Sampling temperature
        """
        super().__init__(model=model, **kwargs)
        self.temperature = temperature
        self.api_key = api_key or get_api_key("GOOGLE_API_KEY", "GEMINI_API_KEY")

        if client is not None:
            self.client = client
        else:
            if not self.api_key:
                raise ProviderUnavailableError(
                    "API key not found. Set GEMINI_API_KEY or GOOGLE_API_KEY in environment, "
                    "or pass api_key parameter."
                )
            self.client = genai.Client(api_key=self.api_key)
        logger.debug(f"GeminiProvider initialized with model: {self.model}")

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        use_search: bool = True,
        json_only: bool = False,
    ) -> ProviderReply:
        config_kwargs = {
            "temperature": self.temperature,
            "top_k": 40,
            "max_output_tokens": DEFAULT_MAX_OUTPUT_TOKENS,
            "system_instruction": system_prompt,
        }
        # Grounding and JSON mime type cannot be combined
        if use_search:
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        elif json_only:
            config_kwargs["response_mime_type"] = "application/json"

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=user_prompt,
            config=types.GenerateContentConfig(**config_kwargs),
        )

        text = response.text or ""
        citations, queries = self._parse_grounding_metadata(response)

        input_tokens = 0
        output_tokens = 0
        usage = getattr(response, "usage_metadata", None)
        if usage:
            input_tokens = getattr(usage, "prompt_token_count", 0) or 0
            output_tokens = getattr(usage, "candidates_token_count", 0) or 0
        cost = self._calculate_cost(input_tokens, output_tokens)

        logger.debug(f"Gemini call: {len(citations)} sources, {input_tokens}→{output_tokens} tokens, ${cost:.6f}")

        return ProviderReply(text=text, citations=citations, search_queries=queries, cost=cost, model=self.model)

    def _parse_grounding_metadata(self, response: Any) -> Tuple[List[Citation], List[str]]:
        """Citations from grounding chunks, plus the search queries Gemini ran."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return [], []

        raw_metadata = getattr(candidates[0], "grounding_metadata", None)
        if not raw_metadata:
            return [], []

        queries = [q for q in (getattr(raw_metadata, "web_search_queries", None) or []) if q]

        citations = []
        for chunk in getattr(raw_metadata, "grounding_chunks", None) or []:
            web = getattr(chunk, "web", None)
            if not web:
                continue
            uri = getattr(web, "uri", None)
            if not uri:
                continue
            title = getattr(web, "title", None)
            citation = make_citation(uri, title)
            # Grounding URIs are redirect links; the title is usually the source domain
            domain = getattr(web, "domain", None) or title
            if domain and "." in domain and " " not in domain:
                domain = domain.lower()
                citation = citation.model_copy(update={"domain": domain, "credibility": assess_credibility(domain)})
            citations.append(citation)

        return dedupe_citations(citations), queries

    def _calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Calculate cost based on token usage."""
        costs = self.COSTS.get(self.model, self.COSTS[self.default_model])
        return (input_tokens / 1_000_000) * costs["input"] + (output_tokens / 1_000_000) * costs["output"]
