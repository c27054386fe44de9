"""Vendor-agnostic async data access: statements, operations and transactions.

Re-exports the public surface of the package.
"""

from .config import AppSettings, DBConfig, PostgresDBConfig, SQLiteDBConfig, get_settings
from .db.engine import DB
from .db.factory import create_db
from .db.models import DBOperation, DBResult, FieldDescription, OperationInvocation, Vendor
from .db.postgres import PostgresDB
from .db.sqlite import SQLiteDB
from .db.transaction import TransactionState
from .errors import (
    DBConnectionError,
    DBError,
    FactoryError,
    QueryExecutionError,
    ResultMarshallingError,
    RollbackError,
)

__version__ = "0.1.0"

__all__ = [
    # Configurations
    "AppSettings",
    "DBConfig",
    "PostgresDBConfig",
    "SQLiteDBConfig",
    "get_settings",
    # Data access
    "DB",
    "PostgresDB",
    "SQLiteDB",
    "Vendor",
    "create_db",
    "TransactionState",
    # Argument/return types
    "DBOperation",
    "DBResult",
    "FieldDescription",
    "OperationInvocation",
    # Errors
    "DBError",
    "DBConnectionError",
    "QueryExecutionError",
    "RollbackError",
    "ResultMarshallingError",
    "FactoryError",
]
