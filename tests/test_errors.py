from dbaccess.errors import (
    DBConnectionError,
    DBError,
    FactoryError,
    QueryExecutionError,
    ResultMarshallingError,
    RollbackError,
)


def test_message_includes_cause():
    err = QueryExecutionError("An error occurred executing query", ValueError("bad input"))
    assert str(err) == "An error occurred executing query: bad input"
    assert err.message == "An error occurred executing query"


def test_message_without_cause():
    assert str(DBConnectionError("Database unavailable")) == "Database unavailable"
    assert str(DBConnectionError("Database connection timeout", TimeoutError())) == "Database connection timeout"


def test_rollback_error_keeps_both_failures():
    original = QueryExecutionError("insert failed")
    rollback = RuntimeError("connection lost")

    err = RollbackError("rollback failed", rollback, original_error=original)

    assert isinstance(err, QueryExecutionError)
    assert err.cause is rollback
    assert err.original_error is original


def test_taxonomy():
    for cls in (DBConnectionError, QueryExecutionError, ResultMarshallingError, FactoryError):
        assert issubclass(cls, DBError)
    assert not issubclass(ResultMarshallingError, QueryExecutionError)
