"""
Application-level exceptions.

SourceUnavailable and NotFound come out of the explorer client; MalformedRecord
out of transaction classification. Request validation errors are pydantic's own
ValidationError and are mapped to HTTP 400 by the API server; anything else is
an internal error (HTTP 500).
"""

from __future__ import annotations


class DappStatsError(Exception):
    """Base class for all dApp Stats domain errors."""


class SourceUnavailable(DappStatsError):
    """The explorer could not be reached or kept failing (5xx / 429 / timeout) after retries."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFound(DappStatsError):
    """The explorer (or the store) has no addresses for a dApp slug."""


class MalformedRecord(DappStatsError):
    """A transaction is missing its timestamp or sender and cannot be bucketed."""
