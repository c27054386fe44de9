"""Transaction coordinator.

Runs an ordered list of operations on one leased connection framed by
BEGIN/COMMIT. The first failure stops the run, issues a single ROLLBACK and
surfaces one typed error; callers never see partial results.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, List, Union

from ..errors import DBError, QueryExecutionError, ResultMarshallingError, RollbackError
from ..utils.logging_context import OperationIdFilter, fmt_ctx, operation_id_ctx
from .connection import Lease, leased
from .models import DBOperation, OperationInvocation

if TYPE_CHECKING:
    from .engine import DB

BEGIN = "BEGIN"
COMMIT = "COMMIT"
ROLLBACK = "ROLLBACK"

logger = logging.getLogger(__name__)
logger.addFilter(OperationIdFilter())


class TransactionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    BEGUN = "begun"
    RUNNING = "running"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


def as_invocation(item: Union[OperationInvocation, DBOperation]) -> OperationInvocation:
    if isinstance(item, OperationInvocation):
        return item
    if isinstance(item, DBOperation):
        return OperationInvocation(operation=item)
    raise TypeError(f"Expected OperationInvocation or DBOperation, got {type(item).__name__}")


class Transaction:
    """A single-use transaction over a list of operation invocations."""

    def __init__(self, db: "DB", invocations: Iterable[Union[OperationInvocation, DBOperation]]):
        self.db = db
        self.invocations: List[OperationInvocation] = [as_invocation(i) for i in invocations]
        self.state = TransactionState.IDLE

    def _transition(self, state: TransactionState) -> None:
        ctx = {"operation_id": operation_id_ctx.get() or None}
        logger.debug(f"Transaction {self.state.value} -> {state.value} {fmt_ctx(ctx)}", extra=ctx)
        self.state = state

    async def run(self) -> List[Any]:
        """
        Execute all invocations and commit.

        Returns one result per invocation, in input order: the operation's
        marshalled value when it has a marshaller, the ``DBResult`` otherwise.
        """
        if self.state is not TransactionState.IDLE:
            raise RuntimeError(f"Transaction already run (state: {self.state.value})")

        self._transition(TransactionState.CONNECTING)
        try:
            async with leased(self.db.provider) as lease:
                return await self._run_on(lease)
        except DBError:
            if self.state is TransactionState.CONNECTING:
                self._transition(TransactionState.FAILED)
            raise

    async def _run_on(self, lease: Lease) -> List[Any]:
        results: List[Any] = []
        try:
            self._transition(TransactionState.BEGUN)
            await self.db.run_on_lease(lease, BEGIN)

            for invocation in self.invocations:
                self._transition(TransactionState.RUNNING)
                operation = invocation.operation
                result = await self.db.run_on_lease(lease, operation.statement, invocation.effective_parameters)
                results.append(self.db.apply_marshaller(operation, result))

            self._transition(TransactionState.COMMITTING)
            await self.db.run_on_lease(lease, COMMIT)
        except ResultMarshallingError as e:
            await self._rollback(lease, e)
            raise
        except QueryExecutionError as e:
            await self._rollback(lease, e)
            raise QueryExecutionError("An error occurred executing a database transaction", e.cause) from e.cause
        except Exception as e:
            await self._rollback(lease, e)
            raise QueryExecutionError("An error occurred executing a database transaction", e) from e

        self._transition(TransactionState.COMMITTED)
        return results

    async def _rollback(self, lease: Lease, original: BaseException) -> None:
        self._transition(TransactionState.ROLLING_BACK)
        try:
            await lease.run_statement(ROLLBACK)
        except Exception as e:
            self._transition(TransactionState.FAILED)
            logger.error("Rollback failed after %r: %s", original, e)
            raise RollbackError(
                "Error occurred while rolling back DB transaction", e, original_error=original
            ) from e
        self._transition(TransactionState.FAILED)
        logger.warning("Transaction rolled back after failure: %s", original)
