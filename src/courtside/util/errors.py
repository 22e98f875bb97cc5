"""
Failure classes shared by the tier sync job and the reminder scheduler.

Each class names a failure *category*, not a call site, so callers can decide
whether a failure aborts a whole pass (:class:`FetchError`), is recorded and
skipped (:class:`IdentityNotFound`, :class:`MutationError`) or is only logged
(:class:`DeliveryError`, :class:`PersistenceError`).
"""

from __future__ import annotations


class CourtsideError(Exception):
    """Base class for every error raised by Courtside itself."""


class FetchError(CourtsideError):
    """The ranking spreadsheet could not be read or returned unusable data."""


class IdentityNotFound(CourtsideError):
    """The member no longer exists in the guild (left, banned or deleted)."""

    def __init__(self, identity: str, detail: str = "") -> None:
        self.identity = identity
        message = f"Identity {identity} could not be resolved"
        super().__init__(f"{message}: {detail}" if detail else message)


class MutationError(CourtsideError):
    """Discord rejected a role add or remove."""


class DeliveryError(CourtsideError):
    """Discord rejected a message (DMs closed, channel gone, timeout)."""


class PersistenceError(CourtsideError):
    """A notification ticket could not be stored or claimed."""
