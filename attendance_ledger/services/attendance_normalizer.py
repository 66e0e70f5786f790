from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping


# Canonical name first; the first alias carrying a value wins.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    'student_id': ('student_id', 'studentId'),
    'class_id': ('class_id', 'classId'),
    'subject_id': ('subject_id', 'subjectId'),
    'teacher_id': ('teacher_id', 'teacherId'),
    'date': ('date', 'attendance_date', 'attendanceDate'),
    'status': ('status',),
    'remarks': ('remarks', 'remark', 'notes', 'note', 'comment'),
    'finalize': ('finalize', 'finalized', 'finalized_by_admin', 'finalizedByAdmin'),
}

_ID_FIELDS = ('student_id', 'class_id', 'subject_id', 'teacher_id')
_TRUTHY = {'1', 'true', 'yes', 'on'}

_RANGE_FILTER_ALIASES: dict[str, tuple[str, ...]] = {
    'from_date': ('from_date', 'from', 'fromDate', 'start_date', 'startDate'),
    'to_date': ('to_date', 'to', 'toDate', 'end_date', 'endDate'),
    'class_id': ('class_id', 'classId'),
    'subject_id': ('subject_id', 'subjectId'),
    'student_id': ('student_id', 'studentId'),
}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _pick(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for key in aliases:
        if key in raw and not _is_blank(raw[key]):
            return raw[key]
    return None


def _coerce_id(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if not text.isdecimal():
            return text
        try:
            return int(text)
        except ValueError:
            return text
    return value


def coerce_date(value: Any) -> Any:
    """Parse ISO strings and datetimes into ``date``; anything else passes through."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        # Only a trailing time part may be dropped.
        if len(text) > 10 and text[10] in 'T ':
            text_date = text[:10]
        else:
            text_date = text
        try:
            return date.fromisoformat(text_date)
        except ValueError:
            return text
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def normalize_record(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    raw = raw or {}
    record = {field: _pick(raw, aliases) for field, aliases in _FIELD_ALIASES.items()}
    for field in _ID_FIELDS:
        record[field] = _coerce_id(record[field])
    record['date'] = coerce_date(record['date'])
    if isinstance(record['status'], str):
        record['status'] = record['status'].strip().lower()
    if isinstance(record['remarks'], str):
        record['remarks'] = record['remarks'].strip() or None
    record['finalize'] = _as_bool(record['finalize'])
    return record


def normalize_range_filters(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    raw = raw or {}
    filters = {field: _pick(raw, aliases) for field, aliases in _RANGE_FILTER_ALIASES.items()}
    for field in ('class_id', 'subject_id', 'student_id'):
        filters[field] = _coerce_id(filters[field])
    for field in ('from_date', 'to_date'):
        filters[field] = coerce_date(filters[field])
    return filters
