"""
This file contains shared fixtures for the test suite.
"""

import os
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
import pytest_asyncio

from dbaccess.config import PostgresDBConfig, SQLiteDBConfig, get_settings
from dbaccess.db.connection import ConnectionProvider, Lease
from dbaccess.db.engine import DB
from dbaccess.db.models import DBResult, FieldDescription, Vendor
from dbaccess.db.sqlite import SQLiteDB

os.environ.setdefault("PYTHONIOENCODING", "utf-8")

DB_ENV_VARS = (
    "DB_VENDOR",
    "DB_HOSTNAME",
    "DB_PORT",
    "DB_DATABASE",
    "DB_USERNAME",
    "DB_PASSWORD",
    "DB_MAX_CLIENTS",
    "DB_IDLE_TIMEOUT_MILLIS",
    "DB_CONNECTION_TIMEOUT_MILLIS",
    "TEST_MODE",
)


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch):
    """
    Keep database settings from the developer's environment out of the tests
    and reset the cached application settings.
    """
    for name in DB_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class RecordingLease(Lease):
    """Lease that records statements and counts releases."""

    def __init__(self, provider: "RecordingProvider"):
        self.provider = provider
        self.release_count = 0

    async def run_statement(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> Any:
        self.provider.statements.append((statement, parameters))
        if statement in self.provider.failures:
            raise self.provider.failures[statement]
        return self.provider.rows.get(statement, [])

    async def release(self) -> None:
        self.release_count += 1


class RecordingProvider(ConnectionProvider):
    """
    In-memory provider. ``rows`` maps statements to the rows they return,
    ``failures`` maps statements to the exception they raise.
    """

    def __init__(self):
        self._connected = False
        self.statements: List[Tuple[str, Optional[Sequence[Any]]]] = []
        self.rows: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[str, Exception] = {}
        self.lease_error: Optional[Exception] = None
        self.leases: List[RecordingLease] = []

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def lease(self) -> RecordingLease:
        if self.lease_error is not None:
            raise self.lease_error
        lease = RecordingLease(self)
        self.leases.append(lease)
        return lease

    @property
    def executed(self) -> List[str]:
        return [statement for statement, _ in self.statements]


class RecordingDB(DB):
    vendor = Vendor.POSTGRES

    def create_provider(self, config):
        return RecordingProvider()

    def unmarshall_result(self, native: List[Dict[str, Any]]) -> DBResult:
        rows = [dict(r) for r in native]
        names = list(rows[0]) if rows else []
        return DBResult(rows=rows, row_count=len(rows), fields=[FieldDescription(name=n) for n in names])


@pytest.fixture
def disconnected_db() -> RecordingDB:
    """A recording DB whose connect() has not been called."""
    return RecordingDB(PostgresDBConfig(database="testdb"))


@pytest_asyncio.fixture
async def recording_db(disconnected_db):
    await disconnected_db.connect()
    yield disconnected_db
    await disconnected_db.disconnect()


@pytest.fixture
def provider(recording_db) -> RecordingProvider:
    return recording_db.provider


@pytest_asyncio.fixture
async def sqlite_db():
    """In-memory SQLite database with a ``users`` table."""
    db = SQLiteDB(SQLiteDBConfig(database=":memory:"))
    await db.connect()
    await db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
    yield db
    await db.disconnect()
