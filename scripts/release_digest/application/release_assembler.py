from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from release_digest.config import WarehouseConfig
from release_digest.domain.entities import (
    DateWindow,
    NormalizedRelease,
    ReleaseRecord,
    RepositorySummary,
    Timeframe,
    format_timestamp,
)
from release_digest.domain.errors import BulkSourceUnavailable
from release_digest.domain.interfaces import IWarehouseClient
from .repository_fetcher import PaginatedRepositoryFetcher
from .timeframe import describe, resolve
from .warehouse_releases import fetch_releases_from_warehouse

log = logging.getLogger(__name__)

WarehouseFactory = Callable[[WarehouseConfig], IWarehouseClient]


def normalize_release(repository: str, release: ReleaseRecord) -> NormalizedRelease:
    return NormalizedRelease(
        repository    = repository,
        tag_name      = release.tag_name,
        name          = release.name or release.tag_name,
        published_at  = format_timestamp(release.published_at),
        description   = release.description or "",
        url           = release.url,
        author        = release.author_login,
        is_prerelease = release.is_prerelease,
    )


def flatten_releases(repositories: list[RepositorySummary], window: DateWindow) -> list[NormalizedRelease]:
    """
    Keep releases published inside the window (both bounds inclusive),
    in repository order and then upstream release order.
    """
    releases: list[NormalizedRelease] = []
    for repo in repositories:
        for release in repo.releases:
            if window.contains(release.published_at):
                releases.append(normalize_release(repo.name, release))

    log.info("Processed %d repositories | %d releases in window", len(repositories), len(releases))
    return releases


class ReleaseAssembler:
    """
    The top-level use case: turn (organization, timeframe) into release records.

    Prefers the warehouse when one is configured and degrades to the GitHub
    API when it is missing or fails. If the API path also fails, the error
    propagates, so callers never get a silently truncated list.
    """

    def __init__(
        self,
        fetcher: PaginatedRepositoryFetcher,
        warehouse_factory: WarehouseFactory | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._warehouse_factory = warehouse_factory

    def _from_warehouse(
        self,
        warehouse: WarehouseConfig | None,
        window: DateWindow,
        repositories: list[str],
    ) -> list[NormalizedRelease]:
        if warehouse is None or self._warehouse_factory is None:
            raise BulkSourceUnavailable("No warehouse configuration found")

        log.info("Using warehouse to fetch releases …")
        try:
            client = self._warehouse_factory(warehouse)
            return fetch_releases_from_warehouse(client, window, repositories, warehouse)
        except Exception as exc:
            raise BulkSourceUnavailable(f"Warehouse fetch failed: {exc}") from exc

    async def _from_github(self, org: str, window: DateWindow, repositories: list[str]) -> list[NormalizedRelease]:
        try:
            if repositories:
                log.info("Using single repository fetching for: %s", ", ".join(repositories))
                fetched = await self._fetcher.fetch_named(org, repositories)
            else:
                log.info("Fetching all repositories with pagination …")
                fetched = await self._fetcher.fetch_all(org, window.start_date)
        except Exception as exc:
            log.error("Release fetching failed: %s", exc)
            log.error(
                "Release fetching context | org=%s | range=%s to %s",
                org,
                window.start_date.isoformat(),
                window.end_date.isoformat(),
            )
            raise

        return flatten_releases(fetched, window)

    async def get_releases(
        self,
        org: str,
        timeframe: Timeframe,
        repository_filter: list[str] | tuple[str, ...] | None = None,
        warehouse: WarehouseConfig | None = None,
        now: datetime | None = None,
    ) -> list[NormalizedRelease]:
        """
        Resolve the timeframe and collect every release published inside it.

        Raises:
            TimeframeValidationError: the timeframe does not give a usable window.
            UpstreamError / transport errors: the GitHub path failed.
        """
        window = resolve(timeframe, now or datetime.now(tz=timezone.utc))
        repositories = list(repository_filter or [])

        log.info("Fetching releases for organization: %s", org)
        log.info("Timeframe: %s", describe(timeframe))
        log.info("Time range: %s to %s", window.start_date.isoformat(), window.end_date.isoformat())
        if repositories:
            log.info("Repository filter: %s", ", ".join(repositories))

        try:
            return self._from_warehouse(warehouse, window, repositories)
        except BulkSourceUnavailable as exc:
            if exc.__cause__ is None:
                log.info("%s — using the GitHub API", exc)
            else:
                log.error("%s — falling back to the GitHub API", exc, exc_info=exc.__cause__)

        return await self._from_github(org, window, repositories)
