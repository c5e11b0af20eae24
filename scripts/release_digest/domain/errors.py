"""
Domain Layer — Error Taxonomy
-----------------------------
Every failure the core can surface derives from ReleaseDigestError, so the
composition root can report any of them the same way.

  TimeframeValidationError  — the requested window is unusable; never retried
  UpstreamError             — GitHub said no; carries the HTTP status if any
  BulkSourceUnavailable     — the warehouse path cannot be used; triggers fallback
  ConfigurationError        — environment / CLI settings are missing or invalid
"""

from __future__ import annotations


class ReleaseDigestError(Exception):
    """Base class for every error raised by release_digest."""


# Timeframe validation

class TimeframeValidationError(ReleaseDigestError):
    """Raised when a timeframe cannot be turned into a valid window."""


class InvalidWindowError(TimeframeValidationError):
    """Start is after end, or the descriptor carries a non-positive size."""


class FutureWindowError(TimeframeValidationError):
    """The window starts after 'now'."""


class WindowTooLargeError(TimeframeValidationError):
    """The inclusive calendar-day span exceeds the maximum."""

    def __init__(self, days: int, maximum: int) -> None:
        self.days = days
        self.maximum = maximum
        super().__init__(
            f"Date range too large: {days} days. Maximum allowed is {maximum} days."
        )


# Upstream (GitHub) errors

class UpstreamError(ReleaseDigestError):
    """Raised when the GitHub API request fails or returns an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(UpstreamError):
    """GitHub rejected the token."""


class OrganizationNotFoundError(UpstreamError):
    """The organization does not exist or the token cannot see it."""


class GraphQLQueryError(UpstreamError):
    """GitHub answered with GraphQL-level errors and no transport failure."""

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class MalformedResponseError(UpstreamError):
    """The payload did not have the shape the query asked for."""


# Bulk source

class BulkSourceUnavailable(ReleaseDigestError):
    """The warehouse path is not configured or failed; callers fall back."""


# Configuration

class ConfigurationError(ReleaseDigestError):
    """Raised when runtime configuration values are missing or invalid."""
