"""Typed results returned by the domain store.

Expected domain conditions (unknown ids, duplicates, rejected transitions)
are values, not exceptions. The API layer turns them into HTTP errors.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    PROBE_FAILURE = "probe_failure"


HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_TRANSITION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.PROBE_FAILURE: 500,
}


@dataclass(frozen=True)
class StoreError:
    kind: ErrorKind
    code: str  # machine-readable, e.g. 'duplicate_in_use'
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, code: str, message: str, **detail: Any) -> "Result[T]":
        return cls(error=StoreError(kind=kind, code=code, message=message, detail=detail))


def not_found(entity: str, entity_id: str) -> Result:
    return Result.failure(
        ErrorKind.NOT_FOUND,
        f"{entity}_not_found",
        f"{entity.replace('_', ' ').capitalize()} not found",
        id=entity_id,
    )
