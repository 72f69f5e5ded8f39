"""
Provider abstraction shared by every AI backend.

AIProvider owns the whole enrichment pipeline for one cell: classify the
prompt, build the prompts, call the backend, parse (with one repair pass),
validate, apply any custom format, and collect citations. Concrete
providers only implement _complete(), the single round trip to their API.

Error policy:
- Missing credentials raise ProviderUnavailableError at construction.
- Transport failures raise ProviderTransportError / RateLimitedError from
  enrich_value(); find_unique_item() swallows them and returns None.
- Malformed output never raises; it becomes a needs_review result.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..constants import EXCLUSION_WINDOW, NEEDS_REVIEW_THRESHOLD, RATE_LIMIT_BACKOFF_SECONDS
from ..errors import EnrichmentError, ProviderTransportError, RateLimitedError, classify_transport_error
from ..llm.prompts import (
    REPAIR_SYSTEM_PROMPT,
    SEARCH_SYSTEM_PROMPT,
    build_repair_prompt,
    build_search_prompt,
    build_system_prompt,
    build_user_prompt,
    identify_entity,
)
from ..llm.response_parser import parse_reply, value_from_payload, value_from_text
from ..llm.task_classifier import classify_task, detect_data_type
from ..models.enrichment import (
    Citation,
    CustomFormat,
    DataType,
    EnrichmentMetadata,
    EnrichmentResult,
    ResultStatus,
    SearchResult,
    TaskType,
)
from ..utils.rate_limiter import ProviderRateLimiter, provider_rate_limiter
from ..utils.url_helpers import extract_domain, extract_urls_from_text, normalize_url
from ..validators.custom_format import apply_custom_format
from ..validators.response_validator import coerce_data_type, validate_response

logger = logging.getLogger(__name__)

HIGH_CREDIBILITY_DOMAINS = ["wikipedia.org", "reuters.com", "bloomberg.com", "forbes.com", "sec.gov", "wsj.com"]
MEDIUM_CREDIBILITY_DOMAINS = ["linkedin.com", "crunchbase.com", "techcrunch.com", "nytimes.com", "cnbc.com"]


def assess_credibility(domain: Optional[str]) -> str:
    """Rough trust level for a source domain."""
    if not domain:
        return "low"
    domain = domain.lower()
    if domain.endswith(".gov") or domain.endswith(".edu") or ".gov." in domain:
        return "high"
    if any(domain == d or domain.endswith("." + d) for d in HIGH_CREDIBILITY_DOMAINS):
        return "high"
    if any(domain == d or domain.endswith("." + d) for d in MEDIUM_CREDIBILITY_DOMAINS):
        return "medium"
    return "medium" if domain.endswith(".org") else "low"


def make_citation(uri: str, title: Optional[str] = None, snippet: Optional[str] = None) -> Citation:
    """Citation with domain and credibility filled in."""
    uri = normalize_url(uri)
    domain = extract_domain(uri)
    return Citation(
        uri=uri,
        title=(title or domain or uri).strip(),
        snippet=snippet,
        domain=domain,
        credibility=assess_credibility(domain),
    )


def citations_from_items(items: Iterable[Any]) -> List[Citation]:
    """
    Build citations from loosely shaped source entries.

    Accepts plain URL strings and dicts with url/uri/link plus optional
    title/name and snippet/text.
    """
    citations: List[Citation] = []
    for item in items or []:
        if isinstance(item, str):
            uri, title, snippet = item, None, None
        elif isinstance(item, dict):
            uri = item.get("url") or item.get("uri") or item.get("link")
            title = item.get("title") or item.get("name")
            snippet = item.get("snippet") or item.get("text")
        else:
            continue
        if uri and str(uri).strip().lower().startswith(("http://", "https://", "www.")):
            citations.append(make_citation(str(uri), title, snippet))
    return dedupe_citations(citations)


def citations_from_text(text: str) -> List[Citation]:
    """Fallback citations from raw http(s) URLs in a reply."""
    return dedupe_citations([make_citation(url) for url in extract_urls_from_text(text)])


def dedupe_citations(citations: Iterable[Citation]) -> List[Citation]:
    seen = set()
    unique = []
    for citation in citations:
        key = citation.uri.rstrip("/")
        if key in seen:
            continue
        seen.add(key)
        unique.append(citation)
    return unique


@dataclass
class ProviderReply:
    """One raw round trip to a backend."""

    text: str
    citations: List[Citation] = field(default_factory=list)
    search_queries: List[str] = field(default_factory=list)
    cost: Optional[float] = None
    model: Optional[str] = None


class AIProvider(ABC):
    """
    Base class for AI enrichment backends.

    Subclasses set name/default_model and implement _complete().
    """

    name: str = "base"
    default_model: str = ""

    def __init__(
        self,
        model: Optional[str] = None,
        rate_limiter: Optional[ProviderRateLimiter] = None,
        rate_limit_backoff: float = RATE_LIMIT_BACKOFF_SECONDS,
    ):
        self.model = model or self.default_model
        self.rate_limiter = rate_limiter or provider_rate_limiter
        self.rate_limit_backoff = rate_limit_backoff

    @abstractmethod
    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        use_search: bool = True,
        json_only: bool = False,
    ) -> ProviderReply:
        """
        Send one request to the backend.

        Args:
            system_prompt: System instruction
            user_prompt: User message
            use_search: Allow web search/grounding (off for classification and repair)
            json_only: Ask the backend to constrain output to JSON where supported

        Returns:
            ProviderReply with the raw text and any provenance the backend exposes
        """

    async def _call(self, system_prompt: str, user_prompt: str, use_search: bool, json_only: bool = False) -> ProviderReply:
        async with self.rate_limiter.slot(self.name):
            try:
                return await self._complete(system_prompt, user_prompt, use_search=use_search, json_only=json_only)
            except EnrichmentError:
                raise
            except Exception as e:
                raise classify_transport_error(e, self.name) from e

    async def _repair(self, raw_text: str, data_type: DataType) -> Optional[ProviderReply]:
        """Ask the backend to rewrite its malformed output as JSON. Returns None on failure."""
        try:
            return await self._call(
                REPAIR_SYSTEM_PROMPT,
                build_repair_prompt(raw_text, data_type),
                use_search=False,
                json_only=True,
            )
        except ProviderTransportError as e:
            logger.warning(f"{self.name}: repair pass failed, falling back to text extraction: {e}")
            return None

    async def enrich_value(
        self,
        value: str,
        prompt: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> EnrichmentResult:
        """
        Enrich one cell.

        Args:
            value: Current cell value (may be empty)
            prompt: Column prompt with placeholders substituted
            context: Optional mapping with row_data (dict), attachments (str),
                custom_format (CustomFormat or dict), data_type and column_name

        Returns:
            EnrichmentResult; malformed output yields a needs_review result

        Raises:
            ProviderTransportError: network/HTTP failure (RateLimitedError on 429)
        """
        context = context or {}
        row_data: Dict[str, str] = dict(context.get("row_data") or {})
        attachment_context: Optional[str] = context.get("attachments") or None
        custom_format = context.get("custom_format")
        if isinstance(custom_format, dict):
            custom_format = CustomFormat(**custom_format)

        if context.get("data_type"):
            data_type = coerce_data_type(context["data_type"])
        else:
            data_type = detect_data_type(prompt, context.get("column_name"))

        classification = classify_task(prompt, row_data, attachment_context)
        use_search = classification.task_type != TaskType.CLASSIFICATION

        system_prompt = build_system_prompt(classification, data_type, custom_format)
        user_prompt = build_user_prompt(value, prompt, row_data, attachment_context)

        reply = await self._call(system_prompt, user_prompt, use_search=use_search)
        cost = reply.cost or 0.0

        parsed = parse_reply(reply.text)
        repaired = False
        if not parsed.ok:
            logger.info(f"{self.name}: reply was not valid JSON, attempting repair")
            repair_reply = await self._repair(reply.text, data_type)
            if repair_reply is not None:
                cost += repair_reply.cost or 0.0
                parsed = parse_reply(repair_reply.text)
                repaired = parsed.ok

        if parsed.ok:
            resolved = value_from_payload(parsed.payload)
            resolved.method = "repair" if repaired else parsed.method
        else:
            resolved = value_from_text(reply.text, data_type)

        confidence = resolved.confidence
        status = resolved.status
        reason = resolved.reason
        final_value = resolved.value

        validation = validate_response(final_value, data_type)
        if not final_value:
            confidence = 0.0
        elif validation.is_valid:
            final_value = validation.value
            if validation.corrections:
                confidence = min(confidence, validation.confidence)
        else:
            confidence = min(confidence, validation.confidence)
            if status == ResultStatus.SUCCESS:
                status = ResultStatus.NEEDS_REVIEW
                reason = reason or f"Value does not look like a valid {data_type.value}"

        if final_value and custom_format and custom_format.pattern:
            formatted = apply_custom_format(final_value, custom_format)
            final_value = formatted.value
            if not formatted.valid and status == ResultStatus.SUCCESS:
                status = ResultStatus.NEEDS_REVIEW
                reason = formatted.error or "Value does not match the column's custom format"

        if status == ResultStatus.SUCCESS and confidence < NEEDS_REVIEW_THRESHOLD:
            status = ResultStatus.NEEDS_REVIEW

        if classification.task_type == TaskType.CLASSIFICATION:
            sources: List[Citation] = []
        else:
            sources = (
                dedupe_citations(reply.citations)
                or citations_from_items(resolved.sources)
                or citations_from_text(reply.text)
            )

        verification = dict(resolved.verification)
        verification.update(validation.to_verification())
        verification["task_type"] = classification.task_type.value
        verification["parse_method"] = resolved.method

        return EnrichmentResult(
            value=final_value,
            sources=sources,
            full_response=reply.text,
            metadata=EnrichmentMetadata(
                provider=self.name,
                model=reply.model or self.model,
                confidence=round(confidence, 4),
                status=status,
                reason=reason,
                verification=verification,
                entity=identify_entity(row_data, fallback=value),
                estimated_cost=cost,
                search_queries=list(reply.search_queries),
                repaired=repaired,
                task_type=classification.task_type,
            ),
        )

    async def find_unique_item(
        self,
        search_type: str,
        found_items: Sequence[str],
        index: int,
    ) -> Optional[SearchResult]:
        """
        Find one more item of search_type that is not already found.

        Only the most recent EXCLUSION_WINDOW names are sent as exclusions.
        Transport failures are logged and yield None; after a rate limit the
        call first waits rate_limit_backoff seconds.

        Args:
            search_type: What to find, e.g. "AI startups in Berlin"
            found_items: Names found so far, oldest first
            index: Zero-based position of this item in the search

        Returns:
            SearchResult, or None when nothing usable came back
        """
        exclusions = list(found_items)[-EXCLUSION_WINDOW:]
        user_prompt = build_search_prompt(search_type, exclusions, index)

        try:
            reply = await self._call(SEARCH_SYSTEM_PROMPT, user_prompt, use_search=True)
        except RateLimitedError as e:
            logger.warning(f"{self.name}: rate limited during search, backing off {self.rate_limit_backoff}s: {e}")
            await asyncio.sleep(self.rate_limit_backoff)
            return None
        except ProviderTransportError as e:
            logger.error(f"{self.name}: search request failed: {e}")
            return None

        payload = parse_reply(reply.text).payload
        if payload is not None:
            name = str(payload.get("name") or payload.get("value") or "").strip()
            source = str(payload.get("source") or payload.get("url") or "").strip()
            verification = payload.get("verification") or ""
            if not isinstance(verification, str):
                verification = str(verification)
        else:
            name = _first_line(reply.text)
            source = ""
            verification = ""

        if not name:
            logger.info(f"{self.name}: search reply had no item name")
            return None

        citations = dedupe_citations(reply.citations)
        if not citations and source:
            citations = citations_from_items([source])
        if not citations:
            citations = citations_from_text(reply.text)

        return SearchResult(
            name=name,
            source=source or (citations[0].uri if citations else ""),
            verification=verification,
            citations=citations,
            search_query=reply.search_queries[0] if reply.search_queries else None,
        )


def _first_line(text: str) -> str:
    for line in (text or "").splitlines():
        cleaned = line.strip().lstrip("-*•0123456789.) ").strip().strip('"')
        if cleaned:
            return cleaned
    return ""
