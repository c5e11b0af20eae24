from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable

from release_digest.domain.entities import (
    EarlyStopConfig,
    PaginationState,
    RepositorySummary,
)
from release_digest.domain.interfaces import IRepoFetcher
from .retry_executor import RetryExecutor, Sleep

log = logging.getLogger(__name__)

PAGE_SIZE = 100
PAGE_DELAY = 0.2   # courtesy pause between pages, seconds


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class PaginatedRepositoryFetcher:
    """
    Walks an organization's repositories newest-update-first and stops as
    soon as it reaches one older than the cutoff.

    Because the feed is ordered by updated_at DESC, every repository after
    the first stale one is at least as stale, so the cost of a fetch is
    proportional to the repositories touched inside the window rather than
    the size of the organization.

    Dependencies are injected:
      - IRepoFetcher   → how to talk to GitHub
      - RetryExecutor  → retries + circuit breaker, shared by every call
    """

    def __init__(
        self,
        client: IRepoFetcher,
        executor: RetryExecutor,
        early_stop: EarlyStopConfig | None = None,
        page_size: int = PAGE_SIZE,
        page_delay: float = PAGE_DELAY,
        sleep: Sleep = asyncio.sleep,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client     = client
        self._executor   = executor
        self._early_stop = early_stop or EarlyStopConfig()
        self._page_size  = page_size
        self._page_delay = page_delay
        self._sleep      = sleep
        self._now        = now
        self.last_state: PaginationState | None = None

    def _process_page(
        self,
        repos: list[RepositorySummary],
        cutoff: datetime,
    ) -> tuple[bool, list[RepositorySummary]]:
        """
        Apply the early-stop rule to one page and trim each kept repository's
        releases to those published at or after the cutoff.

        Returns (should_stop, kept_repositories).
        """
        kept: list[RepositorySummary] = []

        for repo in repos:
            if self._early_stop.enabled and repo.updated_at < cutoff:
                log.debug("Early stop at %s (updated %s < cutoff %s)", repo.name, repo.updated_at, cutoff)
                return True, kept

            releases = [r for r in repo.releases if r.published_at >= cutoff]
            kept.append(replace(repo, releases=releases))

        return False, kept

    async def fetch_all(self, org: str, start_date: datetime | None = None) -> list[RepositorySummary]:
        """
        Fetch every repository updated at or after `start_date`.

        When start_date is None the cutoff falls back to `cutoff_days` before now.
        Any failure aborts the whole fetch; nothing partial is returned.
        """
        if start_date is not None:
            cutoff = start_date
        else:
            cutoff = self._now() - timedelta(days=self._early_stop.cutoff_days)

        state = PaginationState()
        self.last_state = state
        repositories: list[RepositorySummary] = []

        try:
            while state.has_next_page:
                state.pages_fetched += 1
                page_no = state.pages_fetched
                log.info("Fetching page %d of repositories for %s …", page_no, org)

                cursor = state.cursor
                page = await self._executor.execute(
                    lambda: self._client.fetch_page(org, self._page_size, cursor),
                    f"fetch repositories page {page_no}",
                )

                should_stop, kept = self._process_page(page.items, cutoff)
                repositories.extend(kept)
                state.repositories_scanned += len(kept)

                if should_stop:
                    state.early_stopped = True
                    state.has_next_page = False
                    log.info("Early stopping activated | scanned %d repositories", state.repositories_scanned)
                else:
                    state.has_next_page = page.has_next_page
                    state.cursor = page.end_cursor

                if state.has_next_page:
                    await self._sleep(self._page_delay)

        except Exception as exc:
            log.error("Repository fetching failed: %s", exc)
            log.error("Repository fetching context | org=%s | cutoff=%s", org, cutoff.isoformat())
            raise

        log.info(
            "Repository fetching complete | pages=%d | repositories=%d | early_stop=%s",
            state.pages_fetched,
            state.repositories_scanned,
            state.early_stopped,
        )
        return repositories

    async def fetch_named(self, org: str, names: list[str]) -> list[RepositorySummary]:
        """
        Fetch specific repositories one at a time.

        A missing or failing repository is logged and skipped; the batch carries on.
        """
        repositories: list[RepositorySummary] = []
        log.info("Fetching %d specific repositories …", len(names))

        for name in names:
            try:
                repo = await self._executor.execute(
                    lambda name=name: self._client.fetch_repository(org, name),
                    f"fetch repository {name}",
                )
            except Exception as exc:
                log.error("Failed to fetch repository %s: %s", name, exc)
                continue

            if repo is None:
                log.warning("Repository not found: %s", name)
                continue

            repositories.append(repo)
            log.debug("Fetched repository %s", name)

        log.info("Specific repository fetching complete | found %d of %d", len(repositories), len(names))
        return repositories
