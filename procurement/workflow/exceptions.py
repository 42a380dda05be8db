"""Exceptions raised by workflow collaborators.

The order store raises these; TransitionService converts them into
TransitionResult errors so callers never see them as control flow.
"""

from __future__ import annotations


class ConcurrentModification(Exception):
    """The order's status no longer matches the status a transition was validated against."""


class PersistenceTimeout(Exception):
    """The store did not complete a write in time; nothing was persisted."""
