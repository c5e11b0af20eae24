from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Union


def format_timestamp(value: datetime) -> str:
    """Render a datetime as UTC ISO-8601 with a trailing Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ReleaseRecord:
    """
    A release as GitHub reports it, before normalization.

    name and description are optional upstream; the assembler
    substitutes tag_name and "" respectively.
    """
    tag_name:      str
    published_at:  datetime
    url:           str
    author_login:  str
    is_prerelease: bool = False
    name:          str | None = None
    description:   str | None = None


@dataclass(frozen=True)
class RepositorySummary:
    """
    One repository from a page query, with its most recent releases.

    Read-only once built by the client. The fetcher produces a copy with
    a filtered release list rather than mutating this one.
    """
    name:       str
    updated_at: datetime
    releases:   list[ReleaseRecord] = field(default_factory=list)


@dataclass(frozen=True)
class RepositoryPage:
    """One page of the organization repository feed, newest update first."""
    items:         list[RepositorySummary]
    has_next_page: bool
    end_cursor:    str | None = None


@dataclass(frozen=True)
class NormalizedRelease:
    """
    Flattened, caller-facing release record.

    Field names are OURS (snake_case); as_dict() produces the camelCase
    shape consumed by formatting and dispatch code.
    """
    repository:    str
    tag_name:      str
    name:          str
    published_at:  str
    description:   str
    url:           str
    author:        str
    is_prerelease: bool

    def as_dict(self) -> dict:
        return {
            "repository":   self.repository,
            "tagName":      self.tag_name,
            "name":         self.name,
            "publishedAt":  self.published_at,
            "description":  self.description,
            "url":          self.url,
            "author":       self.author,
            "isPrerelease": self.is_prerelease,
        }


@dataclass(frozen=True)
class DateWindow:
    """
    Inclusive [start_date, end_date] window in UTC.

    Built only by the timeframe resolver, which enforces
    start_date <= end_date and the 7-day inclusive span cap.
    """
    start_date: datetime
    end_date:   datetime

    def contains(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date

    @property
    def inclusive_days(self) -> int:
        return inclusive_day_span(self.start_date, self.end_date)


def inclusive_day_span(start: datetime, end: datetime) -> int:
    """Number of UTC calendar days touched by [start, end]."""
    start_day = start.astimezone(timezone.utc).date()
    end_day = end.astimezone(timezone.utc).date()
    return (end_day - start_day).days + 1


# Timeframe descriptors: a tagged union consumed once by the resolver.

@dataclass(frozen=True)
class HoursBack:
    hours: int


@dataclass(frozen=True)
class DaysBack:
    days:       int
    end_anchor: datetime | date | None = None


@dataclass(frozen=True)
class OnDate:
    day: date


@dataclass(frozen=True)
class DateRange:
    start: date
    end:   date


Timeframe = Union[HoursBack, DaysBack, OnDate, DateRange]


@dataclass
class PaginationState:
    """Mutable cursor bookkeeping for one fetch_all run."""
    cursor:               str | None = None
    has_next_page:        bool = True
    pages_fetched:        int = 0
    repositories_scanned: int = 0
    early_stopped:        bool = False


@dataclass(frozen=True)
class EarlyStopConfig:
    cutoff_days: int = 7
    enabled:     bool = True


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings; all delays in seconds."""
    max_attempts:       int = 5
    base_delay:         float = 2.0
    max_delay:          float = 30.0
    gateway_base_delay: float = 5.0


@dataclass
class CircuitBreakerState:
    """
    Failure accumulator shared by every call made through one executor.

    Must live as long as the fetch session; a fresh instance per call
    would never reach the threshold.
    """
    threshold:            int = 3
    cooldown:             float = 60.0
    consecutive_failures: int = 0
    last_failure_at:      float = 0.0
    open:                 bool = False
