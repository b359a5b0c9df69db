"""
Error types raised by the conditions system.

All of these propagate to the caller; nothing in the core retries or swallows them.
"""

from __future__ import annotations

from typing import Optional


class ConditionsError(Exception):
    """Base class for every error raised by hps_conditions."""


class ConfigurationError(ConditionsError):
    """Malformed or incomplete configuration, or an unresolvable class name."""


class ConditionsNotFoundError(ConditionsError):
    """Requested conditions cannot be provided (no connection, no active record)."""


class ResourceError(ConditionsError):
    """A configuration file, embedded resource or detector resource is missing."""


class QueryError(ConditionsError):
    """
    A relational query failed.

    The offending SQL is kept on ``query`` and the driver error is chained as
    ``__cause__`` (and exposed as ``orig``).
    """

    def __init__(self, query: str, orig: Optional[BaseException] = None):
        self.query = query
        self.orig = orig
        message = f"Error in query: {query}"
        if orig is not None:
            message = f"{message} ({orig})"
        super().__init__(message)
