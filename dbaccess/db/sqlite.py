"""Async SQLite backend with a fixed-size connection pool.

Wraps `aiosqlite` connections in an ``asyncio.Queue`` based pool. Connections
run in autocommit mode (``isolation_level=None``) so transaction framing is
entirely driven by the BEGIN/COMMIT/ROLLBACK statements the engine issues.
Statements use ``?`` placeholders.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import aiosqlite

from ..config import DBConfig
from ..errors import DBConnectionError
from .connection import NOT_CONNECTED_MESSAGE, ConnectionProvider, Lease
from .engine import DB
from .models import DBResult, FieldDescription, Vendor

MEMORY_DATABASE = ":memory:"
BUSY_TIMEOUT = 30.0  # seconds sqlite waits on a locked database file
CACHED_STATEMENTS = 128

logger = logging.getLogger(__name__)


@dataclass
class SQLiteResult:
    """Raw outcome of one statement on an aiosqlite cursor."""

    rows: List[aiosqlite.Row]
    description: Optional[Sequence[Sequence[Any]]]
    rowcount: int


class SQLiteLease(Lease):
    def __init__(self, pool: "SQLitePool", conn: aiosqlite.Connection):
        self._pool = pool
        self.connection = conn
        self.released = False

    async def run_statement(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> SQLiteResult:
        if parameters is None:
            cursor = await self.connection.execute(statement)
        else:
            cursor = await self.connection.execute(statement, tuple(parameters))
        try:
            rows = await cursor.fetchall()
            return SQLiteResult(rows=list(rows), description=cursor.description, rowcount=cursor.rowcount)
        finally:
            await cursor.close()

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        await self._pool.put_back(self.connection)


class SQLitePool(ConnectionProvider):
    """Pool of aiosqlite connections to one database file."""

    def __init__(self, config: DBConfig):
        self.path = config.database
        # `":memory:"` opens a new isolated database per connection, so opening
        # several connections would give each one its own empty database. The
        # pool holds a single shared connection instead; leases stay exclusive.
        self.size = 1 if self.path == MEMORY_DATABASE else config.max_clients
        self.acquire_timeout = config.connection_timeout
        self._pool: Optional[asyncio.Queue[aiosqlite.Connection]] = None
        self._connections: List[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def _open(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self.path,
            timeout=BUSY_TIMEOUT,
            cached_statements=CACHED_STATEMENTS,
            isolation_level=None,
        )
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    async def connect(self) -> None:
        """Create and populate the connection pool."""
        async with self._pool_lock:
            if self._pool is not None:
                return

            q: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=self.size)
            opened: List[aiosqlite.Connection] = []
            try:
                for i in range(self.size):
                    conn = await self._open()
                    opened.append(conn)
                    q.put_nowait(conn)
                    logger.debug("Opened connection %d/%d", i + 1, self.size)
            except Exception as e:
                logger.error("Error opening database connection [%d]: %s", len(opened) + 1, e)
                await self._close_all(opened)
                raise DBConnectionError("Database unavailable", e) from e

            self._pool = q
            self._connections = opened
            logger.info("SQLite connection pool initialized for %s with size %d", self.path, self.size)

    async def lease(self) -> SQLiteLease:
        if self._pool is None:
            raise DBConnectionError(NOT_CONNECTED_MESSAGE)
        try:
            conn = await asyncio.wait_for(self._pool.get(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError as e:
            logger.error("Timed out waiting for database connection")
            raise DBConnectionError("Database connection timeout", e) from e

        conn = await self._validate(conn)
        return SQLiteLease(self, conn)

    async def _validate(self, conn: aiosqlite.Connection) -> aiosqlite.Connection:
        """Return *conn*, or a freshly opened replacement if it no longer works."""
        try:
            await conn.execute("SELECT 1;")
            return conn
        except Exception as e:
            logger.warning("Database connection is invalid, recreating new connection: %s", e)

        try:
            new_conn = await self._open()
        except Exception as ex:
            logger.error("Failed to recreate database connection: %s", ex)
            await self.put_back(conn)
            raise DBConnectionError("Database unavailable", ex) from ex

        if conn in self._connections:
            self._connections[self._connections.index(conn)] = new_conn
        return new_conn

    async def put_back(self, conn: aiosqlite.Connection) -> None:
        """Return a leased connection to the pool, rolling back any open transaction."""
        if self._pool is None:
            # Pool was closed while the connection was out; disconnect() closed it.
            return
        if conn.in_transaction:
            logger.warning("Connection returned with an open transaction, rolling back")
            try:
                await conn.execute("ROLLBACK")
            except Exception as e:
                logger.error("Failed to roll back returned connection: %s", e)
        self._pool.put_nowait(conn)
        logger.debug("Returned database connection to pool")

    async def disconnect(self) -> None:
        """Close all connections in the pool and reset its state."""
        if self._pool is None:
            return

        connections = self._connections
        self._pool = None
        self._connections = []
        await self._close_all(connections)
        logger.info("SQLite connection pool closed")

    @staticmethod
    async def _close_all(connections: List[aiosqlite.Connection]) -> None:
        for conn in connections:
            try:
                await conn.close()
            except Exception as exc:  # pragma: no cover - cleanup best effort
                logger.warning("Error closing DB connection: %s", exc)


class SQLiteDB(DB):
    """SQLite database."""

    vendor = Vendor.SQLITE

    def create_provider(self, config: DBConfig) -> SQLitePool:
        return SQLitePool(config)

    def unmarshall_result(self, native: SQLiteResult) -> DBResult:
        # Statements that return no result set (DML, DDL) have no description.
        if native.description is None:
            return DBResult(
                rows=[],
                row_count=native.rowcount if native.rowcount >= 0 else None,
                fields=[],
            )

        rows = [dict(row) for row in native.rows]
        return DBResult(
            rows=rows,
            row_count=len(rows),
            fields=[FieldDescription(name=col[0]) for col in native.description],
        )
