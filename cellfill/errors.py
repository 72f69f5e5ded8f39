"""Exception classes for the enrichment core.

Malformed model output and failed validation are never raised: they come
back as result statuses. Only configuration and transport problems surface
as exceptions.
"""

from typing import Optional


class EnrichmentError(Exception):
    """Base exception for all enrichment errors."""

    pass


class ProviderUnavailableError(EnrichmentError, ValueError):
    """Raised when a provider cannot be constructed (missing key or config)."""

    pass


class ProviderTransportError(EnrichmentError):
    """Raised when a provider call fails on the network or HTTP layer."""

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class RateLimitedError(ProviderTransportError):
    """Raised when a provider answers 429 or reports an exhausted quota."""

    pass


RATE_LIMIT_INDICATORS = [
    "rate limit",
    "ratelimit",
    "quota exceeded",
    "resource_exhausted",
    "resource exhausted",
    "too many requests",
    "429",
]

TRANSIENT_INDICATORS = RATE_LIMIT_INDICATORS + [
    "503",
    "502",
    "timeout",
    "timed out",
    "connection",
    "temporary",
    "overloaded",
]

PERMANENT_INDICATORS = [
    "authentication",
    "invalid api key",
    "api key",
    "unauthorized",
    "401",
    "403",
    "permission denied",
    "invalid request",
    "validation error",
    "schema",
    "authenticationerror",
    "invalidrequesterror",
]


def _mentions(error: Exception, indicators, check_type: bool = False) -> bool:
    text = str(error).lower()
    if check_type:
        text += " " + type(error).__name__.lower()
    return any(indicator in text for indicator in indicators)


def is_rate_limit_error(error: Exception) -> bool:
    """True for 429s and exhausted quotas."""
    return isinstance(error, RateLimitedError) or _mentions(error, RATE_LIMIT_INDICATORS)


def is_transient_error(error: Exception) -> bool:
    """True when the next fallback model is likely to succeed."""
    return _mentions(error, TRANSIENT_INDICATORS)


def is_permanent_error(error: Exception) -> bool:
    """
    True for failures a fallback cannot fix, such as bad credentials or
    rejected requests. The exception class name is checked too.
    """
    return _mentions(error, PERMANENT_INDICATORS, check_type=True)


def classify_transport_error(error: Exception, provider: str) -> ProviderTransportError:
    """
    Map a raw SDK or HTTP exception onto the transport error hierarchy.

    Args:
        error: Exception raised by the backend client
        provider: Provider name for attribution

    Returns:
        RateLimitedError for 429/quota failures, ProviderTransportError otherwise
    """
    if isinstance(error, ProviderTransportError):
        return error

    status_code = getattr(error, "status_code", None) or getattr(error, "code", None)
    if not isinstance(status_code, int):
        response = getattr(error, "response", None)
        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int):
            status_code = None

    message = f"{provider} request failed: {type(error).__name__}: {error}"
    if status_code == 429 or is_rate_limit_error(error):
        return RateLimitedError(message, provider=provider, status_code=status_code or 429)
    return ProviderTransportError(message, provider=provider, status_code=status_code)
