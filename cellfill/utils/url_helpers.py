"""
URL helper utilities for citations.

Normalization, domain extraction and the raw-text URL scan used when a
provider returns no structured provenance.
"""

import re
from typing import List
from urllib.parse import urlparse

URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+")
TRAILING_PUNCTUATION = ".,;:!?)]}'\""


def normalize_url(url: str) -> str:
    """
    Normalize URL by adding a scheme if missing.

    Args:
        url: URL to normalize

    Returns:
        Absolute URL with scheme

    Examples:
        >>> normalize_url("acme.com")
        'https://acme.com'
        >>> normalize_url("http://acme.com")
        'http://acme.com'
    """
    url = url.strip()

    if url.startswith("//"):
        return f"https:{url}"

    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    return url


def extract_domain(url: str) -> str:
    """
    Get the bare domain of a URL, without "www.".

    Examples:
        >>> extract_domain("https://www.reuters.com/markets/")
        'reuters.com'
    """
    netloc = urlparse(normalize_url(url)).netloc.lower()
    if netloc.startswith("www."):
        netloc = netloc[4:]
    return netloc


def extract_urls_from_text(text: str) -> List[str]:
    """
    Find http(s) URLs in free text, in order of appearance, without duplicates.

    Trailing sentence punctuation is stripped from each match.
    """
    if not text:
        return []
    urls: List[str] = []
    for match in URL_PATTERN.findall(text):
        url = match.rstrip(TRAILING_PUNCTUATION)
        if url and url not in urls:
            urls.append(url)
    return urls
