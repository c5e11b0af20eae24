"""
main.py — Dependency Wiring (Composition Root)
------------------------------------------------
This file has ONE job: wire all the pieces together and run the app.

It does NOT contain any business logic. It just:
  1. Reads configuration from environment variables and CLI flags
  2. Creates concrete implementations of each interface
  3. Injects them into the classes that need them
  4. Calls the top-level use case (ReleaseAssembler.get_releases)
  5. Writes the result and exits

Dependency graph (what depends on what):
                         main.py  (wires everything)
                            │
              ┌─────────────┴──────────────┐
              ▼                            ▼
       ReleaseAssembler  ───────▶  PostgresWarehouseClient
              │                      (bulk path, optional)
              ▼
   PaginatedRepositoryFetcher
              │
       ┌──────┴───────┐
       ▼              ▼
  GitHubClient    RetryExecutor
  (IRepoFetcher)  (circuit breaker)
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from datetime import date, timedelta, timezone, datetime

import httpx

# Application layer
from release_digest.application.release_assembler import ReleaseAssembler
from release_digest.application.repository_fetcher import PaginatedRepositoryFetcher
from release_digest.application.retry_executor import RetryExecutor
from release_digest.config import Settings, load_settings
from release_digest.domain.entities import DaysBack, HoursBack, NormalizedRelease, OnDate
from release_digest.domain.errors import ConfigurationError, ReleaseDigestError

# Infrastructure layer
from release_digest.infrastructure.github_client import GitHubClient
from release_digest.infrastructure.postgres_warehouse import PostgresWarehouseClient
from release_digest.infrastructure.release_export import write_csv, write_json

log = logging.getLogger(__name__)

MAX_HOURS = 7 * 24
MAX_DAYS = 7
MAX_DATE_AGE_DAYS = 7


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _bounded_int(value: str, unit: str, maximum: int) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{unit} must be a positive number, got: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"{unit} must be a positive number, got: {value}")
    if number > maximum:
        raise argparse.ArgumentTypeError(f"{unit} cannot exceed {maximum}, got: {number}")
    return number


def parse_hours(value: str) -> int:
    return _bounded_int(value, "Hours", MAX_HOURS)


def parse_days(value: str) -> int:
    return _bounded_int(value, "Days", MAX_DAYS)


def parse_date_argument(value: str, today: date | None = None) -> date:
    """Accept 'today', 'yesterday' or YYYY-MM-DD within the last 7 days."""
    today = today or datetime.now(tz=timezone.utc).date()

    if value == "today":
        return today
    if value == "yesterday":
        return today - timedelta(days=1)

    try:
        target = date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date argument: {value}. Use 'today', 'yesterday', or YYYY-MM-DD format."
        )

    oldest = today - timedelta(days=MAX_DATE_AGE_DAYS)
    if target < oldest:
        raise argparse.ArgumentTypeError(
            f"Date cannot be more than {MAX_DATE_AGE_DAYS} days ago: {value}. "
            f"Maximum allowed date: {oldest.isoformat()}"
        )
    if target > today:
        raise argparse.ArgumentTypeError(f"Date cannot be in the future: {value}")
    return target


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Collect recently published GitHub releases across an organization"
    )
    timeframe = parser.add_mutually_exclusive_group()
    timeframe.add_argument("--hours", type=parse_hours, help=f"Last N hours of releases (max {MAX_HOURS})")
    timeframe.add_argument("--days", type=parse_days, help=f"Last N days of releases (max {MAX_DAYS})")
    timeframe.add_argument("--date", type=parse_date_argument, help="'today', 'yesterday' or YYYY-MM-DD")

    parser.add_argument("--repo", action="append", default=[], help="Restrict to one repository (repeatable)")
    parser.add_argument("--repos", default=None, help="Comma-separated repositories to restrict to")
    parser.add_argument("--format", choices=("json", "csv"), default="json", help="Output format (default: json)")
    parser.add_argument("--csv", dest="csv_path", default=None, help="Write releases to this CSV file (implies --format csv)")
    return parser


def output_format(args: argparse.Namespace) -> str:
    if args.csv_path:
        return "csv"
    return args.format


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """CLI flags win over environment values."""
    changes: dict = {}

    if args.hours is not None:
        changes["timeframe"] = HoursBack(args.hours)
    elif args.days is not None:
        # keep an END_DATE anchor from the environment
        anchor = settings.timeframe.end_anchor if isinstance(settings.timeframe, DaysBack) else None
        changes["timeframe"] = DaysBack(args.days, end_anchor=anchor)
    elif args.date is not None:
        changes["timeframe"] = OnDate(args.date)

    repositories = [r.strip() for r in args.repo if r.strip()]
    if args.repos:
        repositories += [r.strip() for r in args.repos.split(",") if r.strip()]
    if repositories:
        changes["repositories"] = tuple(repositories)

    for key, value in changes.items():
        log.info("CLI override: %s set to %s", key, value)
    return dataclasses.replace(settings, **changes)


# ---------------------------------------------------------------------------
# Dependency wiring
# ---------------------------------------------------------------------------

async def build_and_run(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[NormalizedRelease]:
    """
    Wires all dependencies together and executes the release use case.

    This is the Composition Root — the only place that knows which
    concrete class implements each interface.
    """
    client = httpx.AsyncClient(transport=transport)

    try:
        github_client = GitHubClient(
            token  = settings.github_token,
            client = client,       # injected — GitHubClient doesn't create this
        )

        # one executor per session so the circuit breaker accumulates failures
        executor = RetryExecutor()
        fetcher = PaginatedRepositoryFetcher(
            client   = github_client,
            executor = executor,
        )
        assembler = ReleaseAssembler(
            fetcher           = fetcher,
            warehouse_factory = PostgresWarehouseClient,
        )

        return await assembler.get_releases(
            settings.org_name,
            settings.timeframe,
            repository_filter = settings.repositories,
            warehouse         = settings.warehouse,
        )
    finally:
        await client.aclose()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    fmt = output_format(args)
    if fmt == "csv" and not args.csv_path:
        parser.error("--format csv requires --csv PATH")

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        setup_logging("INFO")
        log.error("Configuration error: %s", exc)
        return 1

    setup_logging(settings.log_level)
    settings = apply_cli_overrides(settings, args)

    try:
        releases = asyncio.run(build_and_run(settings))
    except ReleaseDigestError as exc:
        log.error("Release digest failed: %s", exc)
        return 1
    except httpx.HTTPError as exc:
        log.error("Release digest failed: %s", exc, exc_info=True)
        return 1

    log.info("Collected %d releases", len(releases))
    try:
        if fmt == "csv":
            write_csv(releases, args.csv_path)
        else:
            write_json(releases, sys.stdout)
    except OSError as exc:
        log.error("Could not write releases: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
