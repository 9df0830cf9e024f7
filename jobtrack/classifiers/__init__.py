"""
Email classifiers module.

The gateway talks to Gemini through a rate-limited transport.
"""

from jobtrack.config import settings
from jobtrack.classifiers.base import BaseTransport
from jobtrack.classifiers.gateway import ClassifierGateway, fallback_company
from jobtrack.classifiers.limiter import NoopLimiter, RateLimiter


def get_gateway(generic_names: list[str] | None = None) -> ClassifierGateway:
    """
    Get the classifier gateway backed by Gemini.

    Args:
        generic_names: Sender display names that never name a company
    """
    from jobtrack.classifiers.gemini import GeminiTransport

    if settings.ai_requests_per_minute > 0:
        limiter = RateLimiter(settings.ai_requests_per_minute)
    else:
        limiter = NoopLimiter()

    kwargs = {"generic_names": generic_names} if generic_names else {}
    return ClassifierGateway(GeminiTransport(), limiter=limiter, **kwargs)


__all__ = [
    "BaseTransport",
    "ClassifierGateway",
    "NoopLimiter",
    "RateLimiter",
    "fallback_company",
    "get_gateway",
]
