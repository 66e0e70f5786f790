from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from attendance_ledger.core.errors import AttendanceError, ErrorKind


T = TypeVar('T')


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str
    fields: tuple[str, ...] = ()

    def as_dict(self) -> dict:
        payload: dict[str, Any] = {'kind': self.kind.value, 'message': self.message}
        if self.fields:
            payload['fields'] = list(self.fields)
        return payload


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    success: bool
    data: T | None = None
    error: ServiceError | None = None

    @classmethod
    def ok(cls, data: T) -> 'ServiceResult[T]':
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, *, fields: list[str] | None = None) -> 'ServiceResult[T]':
        return cls(success=False, error=ServiceError(kind=kind, message=message, fields=tuple(fields or ())))

    @classmethod
    def from_error(cls, exc: AttendanceError) -> 'ServiceResult[T]':
        return cls.fail(exc.kind, exc.message, fields=getattr(exc, 'fields', None))

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None
