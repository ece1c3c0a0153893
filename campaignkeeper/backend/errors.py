"""Error taxonomy and typed service results for the encounter runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"


HTTP_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
}


class EncounterError(Exception):
    """Expected domain failure raised inside a runtime operation.

    The runtime facade converts it into a failed ``ServiceResult``; it never
    reaches callers of the facade.
    """

    def __init__(self, code: ErrorCode, message: str, fields: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.fields = fields or {}


class ConcurrencyConflict(Exception):
    """Raised by a repository when the stored version moved past the loaded one."""

    def __init__(self, encounter_id: str, expected_version: int) -> None:
        super().__init__(f"Encounter {encounter_id} was modified concurrently (expected version {expected_version})")
        self.encounter_id = encounter_id
        self.expected_version = expected_version


def validation(message: str, **fields: str) -> EncounterError:
    return EncounterError(ErrorCode.VALIDATION, message, fields)


def not_found(message: str) -> EncounterError:
    return EncounterError(ErrorCode.NOT_FOUND, message)


def conflict(message: str) -> EncounterError:
    return EncounterError(ErrorCode.CONFLICT, message)


@dataclass(frozen=True)
class ServiceError:
    code: ErrorCode
    message: str
    fields: dict[str, str] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.fields:
            payload["fields"] = dict(self.fields)
        return payload


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Outcome of a runtime operation; check ``ok`` before reading ``data``."""

    ok: bool
    data: T | None = None
    error: ServiceError | None = None

    @classmethod
    def success(cls, data: T) -> "ServiceResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, code: ErrorCode, message: str, fields: dict[str, str] | None = None) -> "ServiceResult[T]":
        return cls(ok=False, error=ServiceError(code=code, message=message, fields=dict(fields or {})))

    @classmethod
    def from_error(cls, error: EncounterError) -> "ServiceResult[T]":
        return cls.failure(error.code, error.message, error.fields)
