from __future__ import annotations

import logging
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from release_digest.config import WarehouseConfig
from release_digest.domain.interfaces import IWarehouseClient

log = logging.getLogger(__name__)

SESSION_OPTIONS = "-c TimeZone=UTC"


class PostgresWarehouseClient(IWarehouseClient):
    """
    Concrete implementation of IWarehouseClient for PostgreSQL-compatible
    warehouses (PostgreSQL, Redshift, …).

    Opens its own connection in connect() and hands rows back as plain
    dicts so the bulk mapper can look columns up by name.
    """

    def __init__(self, config: WarehouseConfig, connect=psycopg2.connect) -> None:
        self._config = config
        self._connect = connect
        self._conn = None

    def connect(self) -> None:
        log.debug("Connecting to warehouse …")
        # bound window datetimes are UTC; timestamp columns are read as UTC too
        self._conn = self._connect(self._config.dsn, options=SESSION_OPTIONS)

    def execute(self, query: Any, params: Any = None) -> list[dict]:
        if self._conn is None:
            raise RuntimeError("Warehouse client is not connected")

        with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        # read-only session; end the implicit transaction
        self._conn.rollback()
        return [dict(row) for row in rows]

    def disconnect(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        log.debug("Disconnected from warehouse")
