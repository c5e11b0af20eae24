"""Configuration parsing and validation from environment variables."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import date
from typing import Mapping

from release_digest.domain.entities import (
    DateRange,
    DaysBack,
    HoursBack,
    OnDate,
    Timeframe,
)
from release_digest.domain.errors import ConfigurationError

log = logging.getLogger(__name__)

DEFAULT_HOURS_BACK = 24
DEFAULT_TABLE = "release"

_ORG_NAME_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?$")
_MAX_ORG_NAME = 39


@dataclass(frozen=True)
class WarehouseConfig:
    """Connection settings for the bulk release warehouse."""
    dsn:    str
    table:  str = DEFAULT_TABLE
    schema: str | None = None


@dataclass(frozen=True)
class Settings:
    """Validated runtime settings."""
    github_token: str
    org_name:     str
    timeframe:    Timeframe
    repositories: tuple[str, ...] = ()
    warehouse:    WarehouseConfig | None = None
    log_level:    str = "INFO"


def _get(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_org_name(org_name: str) -> str:
    if not _ORG_NAME_RE.match(org_name):
        raise ConfigurationError(
            "Organization name must contain only alphanumeric characters and hyphens, "
            "and cannot start or end with hyphens"
        )
    if len(org_name) > _MAX_ORG_NAME:
        raise ConfigurationError(f"Organization name cannot exceed {_MAX_ORG_NAME} characters")
    return org_name


def parse_iso_date(value: str, key: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {key}: {value}. Must be in YYYY-MM-DD format") from exc


def parse_positive_int(value: str, key: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {key}: {value}. Must be a positive number") from exc
    if number <= 0:
        raise ConfigurationError(f"Invalid {key}: {value}. Must be a positive number")
    return number


def parse_repositories(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(repo.strip() for repo in value.split(",") if repo.strip())


def timeframe_from_env(environ: Mapping[str, str]) -> Timeframe:
    """
    Pick the timeframe, first match wins:
      START_DATE + END_DATE → DateRange
      HOURS_BACK            → HoursBack
      DAYS_BACK             → DaysBack (END_DATE, if set, anchors the last day)
      TARGET_DATE           → OnDate
      otherwise             → HoursBack(24)
    """
    start = _get(environ, "START_DATE")
    end = _get(environ, "END_DATE")

    if start and end:
        return DateRange(parse_iso_date(start, "START_DATE"), parse_iso_date(end, "END_DATE"))

    hours = _get(environ, "HOURS_BACK")
    if hours:
        return HoursBack(parse_positive_int(hours, "HOURS_BACK"))

    days = _get(environ, "DAYS_BACK")
    if days:
        anchor = parse_iso_date(end, "END_DATE") if end else None
        return DaysBack(parse_positive_int(days, "DAYS_BACK"), end_anchor=anchor)

    target = _get(environ, "TARGET_DATE")
    if target:
        return OnDate(parse_iso_date(target, "TARGET_DATE"))

    return HoursBack(DEFAULT_HOURS_BACK)


def warehouse_from_env(environ: Mapping[str, str]) -> WarehouseConfig | None:
    """The bulk path is enabled only when DATABASE_URL is set."""
    dsn = _get(environ, "DATABASE_URL")
    if not dsn:
        return None
    return WarehouseConfig(
        dsn    = dsn,
        table  = _get(environ, "WAREHOUSE_TABLE") or DEFAULT_TABLE,
        schema = _get(environ, "WAREHOUSE_SCHEMA"),
    )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Build and validate settings from the environment.

    Raises:
        ConfigurationError: a required variable is missing or a value is invalid.
    """
    if environ is None:
        environ = os.environ

    missing = [key for key in ("GITHUB_TOKEN", "ORG_NAME") if not _get(environ, key)]
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

    settings = Settings(
        github_token = _get(environ, "GITHUB_TOKEN"),
        org_name     = validate_org_name(_get(environ, "ORG_NAME")),
        timeframe    = timeframe_from_env(environ),
        repositories = parse_repositories(_get(environ, "REPOSITORIES")),
        warehouse    = warehouse_from_env(environ),
        log_level    = (_get(environ, "LOG_LEVEL") or "INFO").upper(),
    )

    log.debug("Configuration loaded for organization %s", settings.org_name)
    return settings
