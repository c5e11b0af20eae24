"""
Bulk path: read releases straight from the analytics warehouse.

Warehouse column names are not stable: aliases come back upper-cased from
some engines and folded to lower case by PostgreSQL, and older tables use
the raw webhook column names. Each logical field therefore has an ordered
tuple of candidate columns; the first present, non-empty value wins.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from psycopg2 import sql

from release_digest.config import WarehouseConfig
from release_digest.domain.entities import DateWindow, NormalizedRelease, format_timestamp
from release_digest.domain.interfaces import IWarehouseClient

log = logging.getLogger(__name__)

REPOSITORY_FIELDS   = ("REPOSITORY", "repository_name", "repository", "repo")
TAG_NAME_FIELDS     = ("TAG_NAME", "tag_name", "release_tag_name", "tagName", "tag", "version")
NAME_FIELDS         = ("RELEASE_NAME", "release_name", "name")
PUBLISHED_AT_FIELDS = ("RELEASE_PUBLISHED_AT", "release_published_at", "publishedAt", "published_at", "released_at")
DESCRIPTION_FIELDS  = ("RELEASE_DESCRIPTION", "release_description", "release_body", "description")
URL_FIELDS          = ("RELEASE_URL", "release_url", "release_html_url", "url", "link")
AUTHOR_FIELDS       = ("RELEASE_AUTHOR", "release_author", "release_author_login", "author", "author_login")
PRERELEASE_FIELDS   = ("RELEASE_IS_PRERELEASE", "release_is_prerelease", "release_prerelease", "isPrerelease", "is_prerelease")

_TRUE_STRINGS = {"true", "1", "yes", "y"}

RELEASES_SQL = """
SELECT
    repository_name                             AS repository,
    release_tag_name                            AS tag_name,
    COALESCE(release_name, release_tag_name)    AS release_name,
    release_published_at                        AS release_published_at,
    release_body                                AS release_description,
    release_html_url                            AS release_url,
    release_author_login                        AS release_author,
    release_prerelease                          AS release_is_prerelease
FROM {table}
WHERE action = 'released'
  AND release_published_at >= %s
  AND release_published_at <= %s
"""


def first_present(row: Mapping[str, Any], candidates: tuple[str, ...]) -> Any:
    """Return the first candidate column whose value is not None or empty."""
    for column in candidates:
        value = row.get(column)
        if value is not None and str(value) != "":
            return value
    return None


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def to_timestamp(value: Any) -> datetime | None:
    """Parse a warehouse timestamp; None when it is missing or unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif value:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def map_row(row: Mapping[str, Any]) -> NormalizedRelease | None:
    """
    Map one warehouse row to a NormalizedRelease.

    Rows without a repository, a name, or a parseable publish time are dropped.
    """
    repository = first_present(row, REPOSITORY_FIELDS)
    tag_name = first_present(row, TAG_NAME_FIELDS)
    name = first_present(row, NAME_FIELDS) or tag_name
    published_at = to_timestamp(first_present(row, PUBLISHED_AT_FIELDS))

    if not repository or not name or published_at is None:
        log.debug("Skipping incomplete warehouse row: %s", dict(row))
        return None

    return NormalizedRelease(
        repository    = str(repository),
        tag_name      = str(tag_name or ""),
        name          = str(name),
        published_at  = format_timestamp(published_at),
        description   = str(first_present(row, DESCRIPTION_FIELDS) or ""),
        url           = str(first_present(row, URL_FIELDS) or ""),
        author        = str(first_present(row, AUTHOR_FIELDS) or ""),
        is_prerelease = to_bool(first_present(row, PRERELEASE_FIELDS)),
    )


def build_releases_query(
    window: DateWindow,
    repositories: list[str] | None,
    config: WarehouseConfig,
) -> tuple[sql.Composed, tuple]:
    """
    Compose the release query for `window`, optionally restricted to `repositories`.

    Values are bound as parameters; the table is composed as an identifier.
    """
    if config.schema:
        table = sql.Identifier(config.schema, config.table)
    else:
        table = sql.Identifier(config.table)

    template = RELEASES_SQL
    params: list[Any] = [window.start_date, window.end_date]

    if repositories:
        template += "  AND repository_name = ANY(%s)\n"
        params.append(list(repositories))

    template += "ORDER BY release_published_at DESC"
    return sql.SQL(template).format(table=table), tuple(params)


def fetch_releases_from_warehouse(
    client: IWarehouseClient,
    window: DateWindow,
    repositories: list[str] | None,
    config: WarehouseConfig,
) -> list[NormalizedRelease]:
    """
    Run the bulk query and map its rows. Owns the client lifecycle:
    the connection is always closed, a failing close only logs a warning.
    """
    client.connect()
    try:
        log.info("Connected to warehouse. Executing release query …")
        query, params = build_releases_query(window, repositories, config)
        rows = client.execute(query, params)
        log.info("Warehouse returned %d rows", len(rows or []))

        releases = [release for row in rows or [] if (release := map_row(row)) is not None]
        return releases
    finally:
        try:
            client.disconnect()
        except Exception as exc:
            log.warning("Warehouse disconnect warning: %s", exc)
