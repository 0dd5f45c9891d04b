"""Durable review queue for deals that could not be resolved automatically.

Components:
- ReviewQueue: Flag deals, list pending entries, and triage them
"""

from .queue import ReviewEntryNotFoundError, ReviewQueue, ReviewTransitionError

__all__ = ["ReviewEntryNotFoundError", "ReviewQueue", "ReviewTransitionError"]
