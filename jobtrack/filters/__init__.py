"""Deterministic sender/subject pre-filter."""

from jobtrack.config import settings
from .prefilter import PreFilter, extract_address, extract_domain
from .rules import FilterRules, load_rules


def get_prefilter() -> PreFilter:
    """Build the pre-filter from the configured rule file (or the packaged default)."""
    return PreFilter(load_rules(settings.prefilter_rules_path))


__all__ = [
    "FilterRules",
    "PreFilter",
    "extract_address",
    "extract_domain",
    "get_prefilter",
    "load_rules",
]
