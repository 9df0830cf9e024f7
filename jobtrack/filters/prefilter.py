"""
Deterministic pre-filter.

Sorts messages into trusted / noise / unknown from the sender and subject
alone, so only messages whose relevance cannot be decided by rules cost an
AI call. Classification is a pure function of its inputs.
"""

import re
from typing import Iterable

from jobtrack.core.logging import get_logger
from jobtrack.core.models import PreFilterVerdict, RawMessage, Verdict
from jobtrack.filters.rules import FilterRules

log = get_logger(__name__)

ANGLE_ADDRESS = re.compile(r"<([^>]+)>")


def extract_address(sender: str) -> str:
    """
    Extract the bare email address from a From header.

    "LinkedIn <jobs-noreply@linkedin.com>" -> "jobs-noreply@linkedin.com"
    """
    match = ANGLE_ADDRESS.search(sender or "")
    address = match.group(1) if match else (sender or "")
    return address.strip().lower()


def extract_domain(address: str) -> str:
    """
    Domain part of an address.

    "r-c-abc123@reply.hellowork.com" -> "reply.hellowork.com"
    """
    return address.rsplit("@", 1)[-1]


def _domain_matches(domain: str, candidates: Iterable[str]) -> str | None:
    """Return the first candidate that ``domain`` equals or is a subdomain of."""
    for candidate in candidates:
        if domain == candidate or domain.endswith("." + candidate):
            return candidate
    return None


class PreFilter:
    """Rule-based message triage."""

    def __init__(self, rules: FilterRules):
        self.rules = rules

    def classify(self, sender: str, subject: str) -> PreFilterVerdict:
        """
        Classify a message from its From header and subject.

        Rules are applied in order and the first match wins: noise domains,
        noise subject keywords, the social network's per-sender lists,
        trusted job platforms. Anything else is unknown.
        """
        subject = subject or ""
        address = extract_address(sender)
        domain = extract_domain(address)
        lower_subject = subject.lower()

        noise_domain = _domain_matches(domain, self.rules.noise_domains)
        if noise_domain:
            return PreFilterVerdict(Verdict.NOISE, f"Known noise domain: {noise_domain}")

        for keyword in self.rules.noise_subject_keywords:
            if keyword in lower_subject:
                return PreFilterVerdict(Verdict.NOISE, f"Noise subject keyword: {keyword!r}")

        if self.rules.social_domain and _domain_matches(domain, [self.rules.social_domain]):
            return self._classify_social(address, subject)

        trusted_domain = _domain_matches(domain, self.rules.trusted_domains)
        if trusted_domain:
            if self._is_job_alert(subject):
                return PreFilterVerdict(Verdict.NOISE, f"Job alert from trusted platform: {subject!r}")
            return PreFilterVerdict(Verdict.TRUSTED, f"Trusted job platform: {trusted_domain}")

        return PreFilterVerdict(Verdict.UNKNOWN, f"Unknown domain: {domain}")

    def _classify_social(self, address: str, subject: str) -> PreFilterVerdict:
        """Social network senders: default-deny except application confirmations."""
        if address in self.rules.social_noise_senders:
            return PreFilterVerdict(Verdict.NOISE, f"Social notification: {address}")

        # Alerts and suggestions are not applications the user sent
        if address in self.rules.social_job_alert_senders:
            return PreFilterVerdict(Verdict.NOISE, f"Job alert sender: {address}")

        if address in self.rules.social_application_senders:
            if self._is_job_alert(subject):
                return PreFilterVerdict(Verdict.NOISE, f"Job alert subject: {subject!r}")
            return PreFilterVerdict(Verdict.TRUSTED, f"Application confirmation: {address}")

        return PreFilterVerdict(Verdict.NOISE, f"Unlisted social sender: {address}")

    def _is_job_alert(self, subject: str) -> bool:
        return any(pattern.search(subject) for pattern in self.rules.compiled_alert_patterns)

    def partition(
        self,
        messages: Iterable[RawMessage],
    ) -> tuple[list[RawMessage], list[RawMessage], list[RawMessage]]:
        """
        Split messages into (trusted, unknown, noise), keeping each list in input order.
        """
        trusted: list[RawMessage] = []
        unknown: list[RawMessage] = []
        noise: list[RawMessage] = []

        buckets = {
            Verdict.TRUSTED: trusted,
            Verdict.UNKNOWN: unknown,
            Verdict.NOISE: noise,
        }
        for message in messages:
            verdict = self.classify(message.sender, message.subject)
            log.info(
                "prefilter_verdict",
                message_id=message.message_id,
                verdict=verdict.verdict.value,
                reason=verdict.reason,
            )
            buckets[verdict.verdict].append(message)

        return trusted, unknown, noise
