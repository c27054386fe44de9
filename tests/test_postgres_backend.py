"""Tests for the PostgreSQL backend with asyncpg patched out."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dbaccess.config import PostgresDBConfig
from dbaccess.db.models import DBOperation
from dbaccess.db.postgres import PostgresDB, PostgresResult, row_count_from_status
from dbaccess.db.transaction import BEGIN, COMMIT
from dbaccess.errors import DBConnectionError, QueryExecutionError


def _attr(name, type_name="int4"):
    return SimpleNamespace(name=name, type=SimpleNamespace(name=type_name))


def _prepared(records, attributes=(), status="SELECT 0", error=None):
    prepared = MagicMock()
    prepared.fetch = AsyncMock(return_value=records, side_effect=error)
    prepared.get_attributes = MagicMock(return_value=tuple(attributes))
    prepared.get_statusmsg = MagicMock(return_value=status)
    return prepared


@pytest.fixture
def pg_conn():
    conn = MagicMock()
    conn.prepare = AsyncMock(return_value=_prepared([], status="BEGIN"))
    return conn


@pytest.fixture
def pg_pool(pg_conn):
    pool = MagicMock()
    pool.acquire = AsyncMock(return_value=pg_conn)
    pool.release = AsyncMock()
    pool.close = AsyncMock()
    pool.terminate = MagicMock()
    return pool


@pytest.fixture
def pg_config():
    return PostgresDBConfig(hostname="db.local", database="app", username="app", password="secret")


@pytest.mark.parametrize(
    "status,fallback,expected",
    [
        ("SELECT 2", 0, 2),
        ("INSERT 0 3", 0, 3),
        ("UPDATE 5", 0, 5),
        ("BEGIN", 0, 0),
        (None, 4, 4),
        ("", 1, 1),
    ],
)
def test_row_count_from_status(status, fallback, expected):
    assert row_count_from_status(status, fallback) == expected


def test_unmarshall_result(pg_config):
    db = PostgresDB(pg_config)
    native = PostgresResult(
        records=[{"id": 1, "name": "alice"}, {"id": 2, "name": "bob"}],
        attributes=[_attr("id"), _attr("name", "text")],
        status="SELECT 2",
    )

    result = db.unmarshall_result(native)

    assert result.rows == [{"id": 1, "name": "alice"}, {"id": 2, "name": "bob"}]
    assert result.row_count == 2
    assert [(f.name, f.type_name) for f in result.fields] == [("id", "int4"), ("name", "text")]


def test_pool_options(pg_config):
    options = PostgresDB(pg_config).provider.pool_options()

    assert options["host"] == "db.local"
    assert options["port"] == 5432
    assert options["database"] == "app"
    assert options["user"] == "app"
    assert options["password"] == "secret"
    assert options["min_size"] == 0
    assert options["max_size"] == 10
    assert options["max_inactive_connection_lifetime"] == 10.0
    assert "timeout" not in options


def test_pool_options_with_timeouts():
    config = PostgresDBConfig(database="app", idle_timeout_millis=0, connection_timeout_millis=2500, max_clients=3)
    options = PostgresDB(config).provider.pool_options()

    assert options["max_inactive_connection_lifetime"] == 0
    assert options["timeout"] == 2.5
    assert options["max_size"] == 3


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_verifies_pool(self, pg_config, pg_pool, pg_conn):
        db = PostgresDB(pg_config)
        with patch("dbaccess.db.postgres.asyncpg.create_pool", new=AsyncMock(return_value=pg_pool)) as create_pool:
            await db.connect()

        create_pool.assert_awaited_once()
        pg_pool.acquire.assert_awaited_once_with(timeout=None)
        pg_pool.release.assert_awaited_once_with(pg_conn)
        assert db.connected

    @pytest.mark.asyncio
    async def test_unavailable_database_tears_pool_down(self, pg_config, pg_pool):
        pg_pool.acquire.side_effect = OSError("connection refused")
        db = PostgresDB(pg_config)

        with patch("dbaccess.db.postgres.asyncpg.create_pool", new=AsyncMock(return_value=pg_pool)):
            with pytest.raises(DBConnectionError) as exc_info:
                await db.connect()

        assert isinstance(exc_info.value.cause, OSError)
        pg_pool.terminate.assert_called_once()
        assert not db.connected

    @pytest.mark.asyncio
    async def test_create_pool_failure(self, pg_config):
        db = PostgresDB(pg_config)
        failing = AsyncMock(side_effect=OSError("no route to host"))

        with patch("dbaccess.db.postgres.asyncpg.create_pool", new=failing):
            with pytest.raises(DBConnectionError):
                await db.connect()
        assert not db.connected

    @pytest.mark.asyncio
    async def test_disconnect_closes_pool(self, pg_config, pg_pool):
        db = PostgresDB(pg_config)
        with patch("dbaccess.db.postgres.asyncpg.create_pool", new=AsyncMock(return_value=pg_pool)):
            await db.connect()

        await db.disconnect()
        await db.disconnect()

        pg_pool.close.assert_awaited_once()
        assert not db.connected


class TestStatements:
    @pytest.fixture
    def connect(self, pg_config, pg_pool):
        async def _connect():
            db = PostgresDB(pg_config)
            with patch("dbaccess.db.postgres.asyncpg.create_pool", new=AsyncMock(return_value=pg_pool)):
                await db.connect()
            pg_pool.acquire.reset_mock()
            pg_pool.release.reset_mock()
            return db

        return _connect

    @pytest.mark.asyncio
    async def test_execute_with_parameters(self, connect, pg_pool, pg_conn):
        prepared = _prepared([{"id": 1}], attributes=[_attr("id")], status="SELECT 1")
        pg_conn.prepare = AsyncMock(return_value=prepared)
        db = await connect()

        result = await db.execute("SELECT id FROM users WHERE id = $1", [1])

        pg_conn.prepare.assert_awaited_once_with("SELECT id FROM users WHERE id = $1")
        prepared.fetch.assert_awaited_once_with(1)
        assert result.rows == [{"id": 1}]
        assert result.row_count == 1
        pg_pool.release.assert_awaited_once_with(pg_conn)

    @pytest.mark.asyncio
    async def test_execute_without_parameters(self, connect, pg_conn):
        prepared = _prepared([], status="DELETE 4")
        pg_conn.prepare = AsyncMock(return_value=prepared)
        db = await connect()

        result = await db.execute("DELETE FROM users", [])

        prepared.fetch.assert_awaited_once_with()
        assert result.row_count == 4

    @pytest.mark.asyncio
    async def test_driver_error(self, connect, pg_pool, pg_conn):
        cause = RuntimeError('relation "users" does not exist')
        pg_conn.prepare = AsyncMock(side_effect=cause)
        db = await connect()

        with pytest.raises(QueryExecutionError) as exc_info:
            await db.execute("SELECT * FROM users")

        assert exc_info.value.cause is cause
        pg_pool.release.assert_awaited_once_with(pg_conn)

    @pytest.mark.asyncio
    async def test_acquire_failure(self, connect, pg_pool):
        db = await connect()
        pg_pool.acquire.side_effect = TimeoutError()

        with pytest.raises(DBConnectionError):
            await db.execute("SELECT 1")
        pg_pool.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transaction_runs_on_one_connection(self, connect, pg_pool, pg_conn):
        db = await connect()
        insert = DBOperation("INSERT INTO users (name) VALUES ($1)", parameters=["alice"])

        await db.transact([insert])

        statements = [c.args[0] for c in pg_conn.prepare.await_args_list]
        assert statements == [BEGIN, insert.statement, COMMIT]
        pg_pool.acquire.assert_awaited_once()
        pg_pool.release.assert_awaited_once_with(pg_conn)
