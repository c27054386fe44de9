"""Vendor-agnostic execution engine.

``DB`` owns a connection provider and implements statement execution,
operation execution and transactions on top of it. Vendor backends subclass
it to supply their provider and to map driver-native results onto
``DBResult``.
"""

from __future__ import annotations

import abc
import logging
import time
from typing import Any, ClassVar, Iterable, List, Optional, Sequence, Union

from ..config import DBConfig
from ..errors import QueryExecutionError, ResultMarshallingError
from ..utils.logging_context import (
    OperationIdFilter,
    fmt_ctx,
    new_operation_id,
    operation_id_ctx,
    short_statement,
)
from .connection import ConnectionProvider, Lease, leased
from .models import DBOperation, DBResult, OperationInvocation, Vendor
from .transaction import Transaction

logger = logging.getLogger(__name__)
logger.addFilter(OperationIdFilter())


def has_parameters(parameters: Optional[Sequence[Any]]) -> bool:
    """Absent and empty parameter lists are treated identically."""
    return parameters is not None and len(parameters) > 0


class DB(abc.ABC):
    """Abstract database: connection lifecycle, statements, operations, transactions."""

    vendor: ClassVar[Vendor]

    def __init__(self, config: DBConfig, provider: Optional[ConnectionProvider] = None):
        self.config = config
        self.provider = provider if provider is not None else self.create_provider(config)

    @abc.abstractmethod
    def create_provider(self, config: DBConfig) -> ConnectionProvider:
        """Build the connection pool for this vendor."""

    @abc.abstractmethod
    def unmarshall_result(self, native: Any) -> DBResult:
        """Convert a driver-native result into a ``DBResult``."""

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self.provider.connected

    async def connect(self) -> None:
        """Initiate the database connection pool.

        Raises ``DBConnectionError`` if the database is unavailable.
        """
        await self.provider.connect()
        logger.info(
            "Connected to %s database %s on %s", self.vendor.value, self.config.database, self.config.hostname
        )

    async def disconnect(self) -> None:
        await self.provider.disconnect()
        logger.info("Disconnected from %s database %s", self.vendor.value, self.config.database)

    async def __aenter__(self) -> "DB":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Statement execution
    # ------------------------------------------------------------------

    async def execute(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> DBResult:
        """
        Execute a single statement and return its normalized result.

        Raises ``DBConnectionError`` when not connected or no connection can be
        leased, and ``QueryExecutionError`` when the statement fails.
        """
        new_operation_id()
        async with leased(self.provider) as lease:
            return await self.run_on_lease(lease, statement, parameters)

    async def execute_operation(
        self, operation: DBOperation, parameters: Optional[Sequence[Any]] = None
    ) -> Union[DBResult, Sequence[Any]]:
        """
        Execute a database operation.

        *parameters*, when given, replace the operation's own parameters. If
        the operation defines a marshaller, its return value is returned
        instead of the ``DBResult``; a failing marshaller raises
        ``ResultMarshallingError``.
        """
        new_operation_id()
        async with leased(self.provider) as lease:
            result = await self.run_on_lease(lease, operation.statement, operation.resolve_parameters(parameters))
        return self.apply_marshaller(operation, result)

    async def transact(self, invocations: Iterable[Union[OperationInvocation, DBOperation]]) -> List[Any]:
        """
        Execute operations in a single transaction.

        Results are index-aligned with *invocations*. If any statement fails the
        transaction is rolled back and ``QueryExecutionError`` is raised; no
        partial results are returned.
        """
        new_operation_id()
        return await Transaction(self, invocations).run()

    # ------------------------------------------------------------------
    # Building blocks shared with the transaction coordinator
    # ------------------------------------------------------------------

    async def run_on_lease(
        self, lease: Lease, statement: str, parameters: Optional[Sequence[Any]] = None
    ) -> DBResult:
        """Run one statement on an already leased connection."""
        ctx = {
            "operation_id": operation_id_ctx.get() or None,
            "vendor": self.vendor.value,
            "statement": repr(short_statement(statement)),
        }
        start_time = time.monotonic()
        try:
            if has_parameters(parameters):
                native = await lease.run_statement(statement, parameters)
            else:
                native = await lease.run_statement(statement)
        except Exception as e:
            err_ctx = {**ctx, "error": repr(e)}
            logger.error(f"Statement failed {fmt_ctx(err_ctx)}", extra=err_ctx)
            raise QueryExecutionError("An error occurred executing query", e) from e

        result = self.unmarshall_result(native)
        done_ctx = {
            **ctx,
            "row_count": result.row_count,
            "execution_time_ms": int((time.monotonic() - start_time) * 1000),
        }
        logger.debug(f"Statement executed {fmt_ctx(done_ctx)}", extra=done_ctx)
        return result

    def apply_marshaller(self, operation: DBOperation, result: DBResult) -> Union[DBResult, Sequence[Any]]:
        if operation.marshaller is None:
            return result
        try:
            return operation.marshaller(result)
        except Exception as e:
            logger.error("Marshaller failed for %r: %s", short_statement(operation.statement), e)
            raise ResultMarshallingError("Failed to marshall query results", e) from e
