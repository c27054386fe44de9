"""Connection provider contract and scoped lease acquisition.

Each vendor backend ships a ``ConnectionProvider`` (its pool) handing out
``Lease`` objects: exclusively owned connections that must be returned
exactly once. The engine never touches a lease outside of ``leased()``.

Usage:
    async with leased(provider) as lease:
        native = await lease.run_statement("SELECT 1")
"""

from __future__ import annotations

import abc
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from ..errors import DBConnectionError
from ..utils.logging_context import OperationIdFilter, fmt_ctx, operation_id_ctx

NOT_CONNECTED_MESSAGE = (
    "Not connected to the database. Please check that the connection pool "
    "is connected by calling the connect() method."
)

logger = logging.getLogger(__name__)
logger.addFilter(OperationIdFilter())


class Lease(abc.ABC):
    """A pooled connection borrowed for one statement or one transaction."""

    @abc.abstractmethod
    async def run_statement(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> Any:
        """Run *statement* and return the driver-native result.

        ``parameters`` is ``None`` when the statement should be run without
        bind parameters. Driver exceptions propagate unchanged.
        """

    @abc.abstractmethod
    async def release(self) -> None:
        """Return the connection to its pool. Calling it twice is a no-op."""


class ConnectionProvider(abc.ABC):
    """A connection pool for one vendor backend."""

    @property
    @abc.abstractmethod
    def connected(self) -> bool:
        """Whether ``connect()`` has succeeded and ``disconnect()`` has not run since."""

    @abc.abstractmethod
    async def connect(self) -> None:
        """Create the pool. Raises ``DBConnectionError`` if the database is unavailable."""

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Close the pool. No-op when not connected."""

    @abc.abstractmethod
    async def lease(self) -> Lease:
        """Borrow a connection from the pool."""


@asynccontextmanager
async def leased(provider: ConnectionProvider) -> AsyncIterator[Lease]:
    """
    Lease a connection from *provider* for the duration of the block.

    Raises ``DBConnectionError`` without touching the pool when the provider
    is not connected, and wraps any lease failure in ``DBConnectionError``.
    The lease is released when the block exits, however it exits.
    """
    if not provider.connected:
        raise DBConnectionError(NOT_CONNECTED_MESSAGE)

    try:
        lease = await provider.lease()
    except DBConnectionError:
        raise
    except Exception as e:
        logger.error("Failed to lease database connection: %s", e)
        raise DBConnectionError("Database unavailable", e) from e

    logger.debug("Acquired database connection from pool")
    start_time = time.monotonic()
    try:
        yield lease
    finally:
        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        ctx = {"operation_id": operation_id_ctx.get() or None, "held_ms": elapsed_ms}
        try:
            await lease.release()
            logger.debug(f"Returned database connection to pool {fmt_ctx(ctx)}", extra=ctx)
        except Exception as e:
            logger.error("Failed to return database connection to pool: %s", e)
