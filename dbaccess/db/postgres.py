"""PostgreSQL backend using an `asyncpg` connection pool.

Statements use ``$1, $2, ...`` placeholders. Each statement is prepared on the
leased connection so that column metadata and the command status tag are
available alongside the returned records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import asyncpg

from ..config import DBConfig
from ..errors import DBConnectionError
from .connection import NOT_CONNECTED_MESSAGE, ConnectionProvider, Lease
from .engine import DB
from .models import DBResult, FieldDescription, Vendor

logger = logging.getLogger(__name__)


@dataclass
class PostgresResult:
    """Raw outcome of one prepared statement."""

    records: Sequence[asyncpg.Record]
    attributes: Sequence[Any]
    status: Optional[str]


def row_count_from_status(status: Optional[str], fallback: int) -> int:
    """Extract the affected row count from a command tag such as ``INSERT 0 3``."""
    if status:
        last = status.rsplit(" ", 1)[-1]
        if last.isdigit():
            return int(last)
    return fallback


class PostgresLease(Lease):
    def __init__(self, pool: asyncpg.Pool, conn: asyncpg.Connection):
        self._pool = pool
        self.connection = conn
        self.released = False

    async def run_statement(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> PostgresResult:
        prepared = await self.connection.prepare(statement)
        if parameters is None:
            records = await prepared.fetch()
        else:
            records = await prepared.fetch(*parameters)
        return PostgresResult(
            records=records,
            attributes=prepared.get_attributes(),
            status=prepared.get_statusmsg(),
        )

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        await self._pool.release(self.connection)


class PostgresPool(ConnectionProvider):
    """asyncpg pool built from a ``DBConfig``."""

    def __init__(self, config: DBConfig):
        self.config = config
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    def pool_options(self) -> Dict[str, Any]:
        config = self.config
        options: Dict[str, Any] = {
            "host": config.hostname,
            "port": config.port,
            "database": config.database,
            "user": config.username,
            "password": config.password,
            # Connections are opened on demand, up to max_clients.
            "min_size": 0,
            "max_size": config.max_clients,
            # 0 disables idle eviction, as in asyncpg.
            "max_inactive_connection_lifetime": config.idle_timeout_millis / 1000,
        }
        if config.connection_timeout is not None:
            options["timeout"] = config.connection_timeout
        return options

    async def connect(self) -> None:
        """
        Create the pool and verify it by leasing one connection.

        Raises ``DBConnectionError`` if the database is unavailable; the pool
        is torn down again in that case.
        """
        if self._pool is not None:
            return

        try:
            pool = await asyncpg.create_pool(**self.pool_options())
        except Exception as e:
            logger.error("Failed to create PostgreSQL connection pool: %s", e)
            raise DBConnectionError("Database unavailable", e) from e

        try:
            conn = await pool.acquire(timeout=self.config.connection_timeout)
            await pool.release(conn)
        except Exception as e:
            logger.error("PostgreSQL database unavailable: %s", e)
            pool.terminate()
            raise DBConnectionError("Database unavailable", e) from e

        self._pool = pool
        logger.info(
            "PostgreSQL connection pool initialized for %s:%s/%s (max %d)",
            self.config.hostname,
            self.config.port,
            self.config.database,
            self.config.max_clients,
        )

    async def lease(self) -> PostgresLease:
        if self._pool is None:
            raise DBConnectionError(NOT_CONNECTED_MESSAGE)
        try:
            conn = await self._pool.acquire(timeout=self.config.connection_timeout)
        except Exception as e:
            raise DBConnectionError("Database unavailable", e) from e
        return PostgresLease(self._pool, conn)

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        pool = self._pool
        self._pool = None
        await pool.close()
        logger.info("PostgreSQL connection pool closed")


class PostgresDB(DB):
    """PostgreSQL database."""

    vendor = Vendor.POSTGRES

    def create_provider(self, config: DBConfig) -> PostgresPool:
        return PostgresPool(config)

    def unmarshall_result(self, native: PostgresResult) -> DBResult:
        rows = [dict(record) for record in native.records]
        return DBResult(
            rows=rows,
            row_count=row_count_from_status(native.status, len(rows)),
            fields=[
                FieldDescription(name=attr.name, type_name=getattr(attr.type, "name", None))
                for attr in native.attributes
            ],
        )
