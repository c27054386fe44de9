from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Vendor(str, Enum):
    """Supported database vendors."""

    POSTGRES = "postgres"
    SQLITE = "sqlite"


class FieldDescription(BaseModel):
    """Describes one column of a query result."""

    model_config = ConfigDict(frozen=True)

    name: str
    type_name: Optional[str] = None


class DBResult(BaseModel):
    """Normalized result of a single statement, independent of the driver."""

    model_config = ConfigDict(frozen=True)

    rows: Optional[List[Dict[str, Any]]] = None
    row_count: Optional[int] = Field(None, ge=0)
    fields: Optional[List[FieldDescription]] = None

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields or []]


# Converts a normalized query result into application-level records.
Marshaller = Callable[[DBResult], Sequence[Any]]


class DBOperation(BaseModel):
    """A reusable statement with optional bind parameters and result marshaller.

    ``DBOperation("SELECT * FROM users WHERE id = $1", parameters=[42])``
    """

    model_config = ConfigDict(frozen=True)

    statement: str
    parameters: Optional[Tuple[Any, ...]] = None
    marshaller: Optional[Marshaller] = None

    def __init__(self, statement: str, **data: Any) -> None:
        super().__init__(statement=statement, **data)

    @field_validator("statement")
    def statement_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Statement must not be blank")
        return v

    def resolve_parameters(self, override: Optional[Sequence[Any]] = None) -> Optional[Tuple[Any, ...]]:
        """Return *override* when given, otherwise the operation's own parameters.

        The override replaces the stored parameters entirely, even when empty.
        """
        if override is not None:
            return tuple(override)
        return self.parameters


class OperationInvocation(BaseModel):
    """An operation paired with an optional runtime parameter override."""

    model_config = ConfigDict(frozen=True)

    operation: DBOperation
    parameters: Optional[Tuple[Any, ...]] = None

    @property
    def effective_parameters(self) -> Optional[Tuple[Any, ...]]:
        return self.operation.resolve_parameters(self.parameters)
