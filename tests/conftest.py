"""Shared fakes for release_digest tests. No network, no database."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from release_digest.domain.entities import ReleaseRecord, RepositoryPage, RepositorySummary
from release_digest.domain.interfaces import IRepoFetcher, IWarehouseClient

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock whose sleep() records the delay and advances time."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRepoFetcher(IRepoFetcher):
    """Serves canned pages in order and canned single-repository answers."""

    def __init__(self, pages=None, repositories=None) -> None:
        self.pages = list(pages or [])
        self.repositories = dict(repositories or {})
        self.page_calls: list[tuple] = []
        self.repository_calls: list[tuple] = []

    async def fetch_page(self, org, page_size, after=None):
        self.page_calls.append((org, page_size, after))
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    async def fetch_repository(self, org, name):
        self.repository_calls.append((org, name))
        answer = self.repositories.get(name)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeWarehouse(IWarehouseClient):
    def __init__(self, rows=None, fail_on=None) -> None:
        self.rows = rows or []
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.queries: list[tuple] = []

    def _step(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"warehouse {name} failed")

    def connect(self) -> None:
        self._step("connect")

    def execute(self, query, params=None):
        self._step("execute")
        self.queries.append((query, params))
        return self.rows

    def disconnect(self) -> None:
        self._step("disconnect")


def make_release(tag: str, published_at: datetime, **kwargs) -> ReleaseRecord:
    return ReleaseRecord(
        tag_name      = tag,
        published_at  = published_at,
        url           = kwargs.pop("url", f"https://github.com/acme/repo/releases/tag/{tag}"),
        author_login  = kwargs.pop("author_login", "octocat"),
        **kwargs,
    )


def make_repo(name: str, updated_at: datetime, releases=()) -> RepositorySummary:
    return RepositorySummary(name=name, updated_at=updated_at, releases=list(releases))


def make_page(repos, has_next_page=False, end_cursor=None) -> RepositoryPage:
    return RepositoryPage(items=list(repos), has_next_page=has_next_page, end_cursor=end_cursor)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def days_ago(now):
    def _ago(days: float = 0, hours: float = 0) -> datetime:
        return now - timedelta(days=days, hours=hours)
    return _ago
