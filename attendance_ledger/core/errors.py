from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHENTICATED = 'unauthenticated'
    VALIDATION = 'validation'
    FINALIZATION_CONFLICT = 'finalization_conflict'
    STORAGE_FAULT = 'storage_fault'


class AttendanceError(Exception):
    kind: ErrorKind = ErrorKind.STORAGE_FAULT

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message or self.kind.value


class UnauthenticatedError(AttendanceError):
    kind = ErrorKind.UNAUTHENTICATED


class AttendanceValidationError(AttendanceError):
    """Raised when required fields are missing or malformed."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str = '', *, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = list(fields or [])


class FinalizationConflictError(AttendanceError):
    """Raised when a teacher targets a record an admin has finalized."""

    kind = ErrorKind.FINALIZATION_CONFLICT


class StorageFaultError(AttendanceError):
    kind = ErrorKind.STORAGE_FAULT
