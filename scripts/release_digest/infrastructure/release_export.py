import csv
import json
import logging
from typing import TextIO

from release_digest.domain.entities import NormalizedRelease

log = logging.getLogger(__name__)

CSV_COLUMNS = [
    "repository",
    "tagName",
    "name",
    "publishedAt",
    "description",
    "url",
    "author",
    "isPrerelease",
]


def write_json(releases: list[NormalizedRelease], out: TextIO) -> None:
    json.dump([r.as_dict() for r in releases], out, indent=2)
    out.write("\n")


def write_csv(releases: list[NormalizedRelease], path: str) -> None:
    log.info("Writing %d releases to %s …", len(releases), path)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(r.as_dict() for r in releases)

    log.info("Export complete: %s (%d rows)", path, len(releases))
