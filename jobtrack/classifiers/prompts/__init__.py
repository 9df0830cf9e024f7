"""Prompt templates for the classifier gateway."""

from .job import CLASSIFY_AND_EXTRACT_PROMPT, EXTRACT_PROMPT

__all__ = ["CLASSIFY_AND_EXTRACT_PROMPT", "EXTRACT_PROMPT"]
