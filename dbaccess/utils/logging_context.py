import contextvars
import logging
import uuid
from typing import Any, Dict

operation_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("operation_id", default="")


class OperationIdFilter(logging.Filter):
    """
    Logging filter to inject the current operation_id into log records.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = operation_id_ctx.get()
        return True


def new_operation_id() -> str:
    """Start a new logical operation and return its id."""
    oid = uuid.uuid4().hex[:12]
    operation_id_ctx.set(oid)
    return oid


# Helper used by the engine to create human-readable key=value strings that
# are also easy to assert against in unit-tests.


def fmt_ctx(ctx: Dict[str, Any]) -> str:
    """Return a deterministic key=value string used in log messages."""
    return " ".join(f"{k}={v}" for k, v in ctx.items() if v is not None)


def short_statement(statement: str, limit: int = 60) -> str:
    """Collapse whitespace and truncate a statement for log output."""
    text = " ".join(statement.split())
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def configure_logging(level: int, *, stream: Any = None) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=stream,
    )
