from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any


class KeyScope(str, Enum):
    """Uniqueness scopes of an attendance row.

    ``CLASS_DAY`` keys on (student, class, date) and only covers rows without a
    subject. ``SUBJECT_DAY`` keys on (student, class, subject, date). Every
    partition/dispatch site iterates this enum, so a new scope has to be wired
    into each conflict-target table before it can be used.
    """

    CLASS_DAY = 'class_day'
    SUBJECT_DAY = 'subject_day'


def scope_for(subject_id: Any) -> KeyScope:
    return KeyScope.CLASS_DAY if subject_id is None else KeyScope.SUBJECT_DAY


@dataclass(frozen=True)
class NaturalKey:
    student_id: int
    class_id: int
    subject_id: int | None
    attendance_date: date

    @property
    def scope(self) -> KeyScope:
        return scope_for(self.subject_id)

    @classmethod
    def from_record(cls, record: dict) -> 'NaturalKey':
        return cls(
            student_id=record['student_id'],
            class_id=record['class_id'],
            subject_id=record.get('subject_id'),
            attendance_date=record['date'],
        )
