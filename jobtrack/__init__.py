"""
Job application tracker for a single inbox.

A batch email triage pipeline that:
- Pulls recent messages from Gmail
- Pre-filters them with deterministic sender/subject rules
- Classifies the remaining ones with Gemini
- Upserts deduplicated application records with their email history
"""

__version__ = "0.1.0"
