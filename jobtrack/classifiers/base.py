"""
Abstract base class for language-model transports.
"""

from abc import ABC, abstractmethod


class BaseTransport(ABC):
    """Prompt in, JSON-shaped text out."""

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """
        Send a prompt to the model and return its raw text response.

        Args:
            prompt: Fully rendered prompt

        Returns:
            Response text, expected to hold a JSON object

        Raises:
            RateLimitError: The backend throttled the call or the quota is exhausted
            TransportError: Any other backend or network failure
        """
        pass
