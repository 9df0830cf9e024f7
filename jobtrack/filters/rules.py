"""
Pre-filter rule data.

Rule lists are plain JSON so operators can tune them without a release.
The packaged default lives next to this module.
"""

import json
import re
from functools import cached_property
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, field_validator

from jobtrack.core.logging import get_logger

log = get_logger(__name__)

DEFAULT_RULES_FILE = "default_rules.json"


class FilterRules(BaseModel):
    """Sender/subject rule set for the pre-filter."""

    model_config = {"extra": "ignore", "frozen": True}

    version: str = "unversioned"

    # Consumer platforms that never send hiring mail (subdomains included)
    noise_domains: list[str] = []
    # Marketing, billing and account-security vocabulary (lower-case substrings)
    noise_subject_keywords: list[str] = []

    # Social network handled sender by sender; unknown senders there are noise
    social_domain: str = ""
    social_noise_senders: list[str] = []
    social_job_alert_senders: list[str] = []
    social_application_senders: list[str] = []

    # Job boards whose mail is always about an application
    trusted_domains: list[str] = []
    # Subjects of alerts and suggestions sent by trusted platforms
    job_alert_patterns: list[str] = []

    # Display names too generic to name a company
    generic_sender_names: list[str] = []

    @field_validator(
        "noise_domains",
        "noise_subject_keywords",
        "social_noise_senders",
        "social_job_alert_senders",
        "social_application_senders",
        "trusted_domains",
        "generic_sender_names",
    )
    @classmethod
    def _lowercase(cls, values: list[str]) -> list[str]:
        return [value.strip().lower() for value in values if value.strip()]

    @field_validator("social_domain")
    @classmethod
    def _lowercase_domain(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("job_alert_patterns")
    @classmethod
    def _check_patterns(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid job alert pattern {pattern!r}: {e}") from e
        return patterns

    @cached_property
    def compiled_alert_patterns(self) -> list[re.Pattern]:
        """Job alert patterns compiled case-insensitively."""
        return [re.compile(pattern, re.IGNORECASE) for pattern in self.job_alert_patterns]


def load_rules(path: str | Path | None = None) -> FilterRules:
    """
    Load a rule set from a JSON file.

    Args:
        path: JSON file to read. Uses the packaged default if not provided.

    Returns:
        Validated FilterRules
    """
    if path:
        raw = Path(path).read_text(encoding="utf-8")
        source = str(path)
    else:
        raw = resources.files("jobtrack.filters").joinpath(DEFAULT_RULES_FILE).read_text(encoding="utf-8")
        source = DEFAULT_RULES_FILE

    rules = FilterRules.model_validate(json.loads(raw))
    log.info("prefilter_rules_loaded", source=source, version=rules.version)
    return rules
