from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from attendance_ledger.core.actor import Actor
from attendance_ledger.models import AttendanceStatus


REQUIRED_FIELDS = ('student_id', 'class_id', 'date', 'status')
_ID_FIELDS = ('student_id', 'class_id', 'subject_id', 'teacher_id')
_STATUS_VALUES = tuple(item.value for item in AttendanceStatus)


@dataclass(frozen=True)
class ValidationOutcome:
    ok: bool
    message: str = ''
    missing: tuple[str, ...] = ()
    invalid: tuple[str, ...] = ()

    @property
    def fields(self) -> list[str]:
        return [*self.missing, *self.invalid]


def subject_required_for(actor: Actor) -> bool:
    return actor.is_teacher


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_valid_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_record(record: dict[str, Any], *, require_subject: bool) -> ValidationOutcome:
    required = REQUIRED_FIELDS + (('subject_id',) if require_subject else ())
    missing = [name for name in required if _is_missing(record.get(name))]

    invalid: list[str] = []
    for name in _ID_FIELDS:
        value = record.get(name)
        if name not in missing and not _is_missing(value) and not _is_valid_id(value):
            invalid.append(name)
    if 'date' not in missing and not isinstance(record.get('date'), date):
        invalid.append('date')
    if 'status' not in missing and record.get('status') not in _STATUS_VALUES:
        invalid.append('status')

    if not missing and not invalid:
        return ValidationOutcome(ok=True)

    parts = []
    if missing:
        parts.append(f"Missing required fields: {', '.join(missing)}")
    if invalid:
        details = ', '.join(
            f"status (expected one of {', '.join(_STATUS_VALUES)})" if name == 'status' else name
            for name in invalid
        )
        parts.append(f'Invalid fields: {details}')
    return ValidationOutcome(ok=False, message='; '.join(parts), missing=tuple(missing), invalid=tuple(invalid))
