from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
import logging
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from attendance_ledger.config import settings
from attendance_ledger.core.actor import Actor
from attendance_ledger.core.errors import (
    AttendanceError,
    AttendanceValidationError,
    ErrorKind,
    FinalizationConflictError,
    StorageFaultError,
)
from attendance_ledger.core.natural_key import NaturalKey
from attendance_ledger.core.result import ServiceResult
from attendance_ledger.core.time_provider import TimeProvider, default_time_provider
from attendance_ledger.services import attendance_query_service as queries
from attendance_ledger.services.attendance_normalizer import coerce_date, normalize_range_filters, normalize_record
from attendance_ledger.services.attendance_upsert import partition_by_scope, stamp_record, upsert_group, upsert_record
from attendance_ledger.services.attendance_validator import subject_required_for, validate_record
from attendance_ledger.services.finalization_lock import is_finalized
from attendance_ledger.services.observability_counters import (
    FINALIZATION_CONFLICT,
    STORAGE_FAULT,
    record_observability_event,
)


logger = logging.getLogger(__name__)

T = TypeVar('T')

SKIP_FINALIZED = 'finalized'
SKIP_LOCK_UNVERIFIED = 'lock_unverified'


def _unauthenticated() -> ServiceResult:
    return ServiceResult.fail(ErrorKind.UNAUTHENTICATED, 'No authenticated teacher or admin')


def _execute(operation: str, db: Session, fn: Callable[[], T]) -> ServiceResult[T]:
    try:
        return ServiceResult.ok(fn())
    except AttendanceError as exc:
        db.rollback()
        if exc.kind == ErrorKind.STORAGE_FAULT:
            record_observability_event(STORAGE_FAULT)
        return ServiceResult.from_error(exc)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('attendance_storage_fault', extra={'operation': operation})
        record_observability_event(STORAGE_FAULT)
        return ServiceResult.fail(ErrorKind.STORAGE_FAULT, f'Attendance store rejected {operation}: {exc.__class__.__name__}')
    except Exception:
        db.rollback()
        logger.exception('attendance_unexpected_failure', extra={'operation': operation})
        record_observability_event(STORAGE_FAULT)
        return ServiceResult.fail(ErrorKind.STORAGE_FAULT, f'Unexpected failure during {operation}')


def _require_date(value: Any, field: str) -> date:
    parsed = coerce_date(value)
    if not isinstance(parsed, date):
        raise AttendanceValidationError(f'Invalid fields: {field}', fields=[field])
    return parsed


def _optional_date(value: Any, field: str) -> date | None:
    if value is None or value == '':
        return None
    return _require_date(value, field)


def _public_record(record: dict) -> dict:
    return {key: value for key, value in record.items() if key != 'finalize'}


def mark_attendance(
    db: Session,
    record: Mapping[str, Any],
    *,
    actor: Actor | None,
    finalize: bool = False,
    time_provider: TimeProvider = default_time_provider,
) -> ServiceResult[dict]:
    if actor is None:
        return _unauthenticated()

    def _run() -> dict:
        normalized = normalize_record(record if isinstance(record, Mapping) else None)
        outcome = validate_record(normalized, require_subject=subject_required_for(actor))
        if not outcome.ok:
            raise AttendanceValidationError(outcome.message, fields=outcome.fields)

        key = NaturalKey.from_record(normalized)
        if actor.is_teacher and is_finalized(db, key):
            logger.warning(
                'attendance_finalization_conflict',
                extra={'actor_id': actor.id, 'student_id': key.student_id, 'date': key.attendance_date.isoformat()},
            )
            record_observability_event(FINALIZATION_CONFLICT)
            raise FinalizationConflictError('Attendance for this student and date was finalized by an admin')

        row = stamp_record(normalized, actor, finalize=finalize, now=time_provider.utc_now_naive())
        written = queries.serialize_record(upsert_record(db, row))
        db.commit()
        logger.info(
            'attendance_marked',
            extra={'actor_id': actor.id, 'role': actor.role.value, 'record_id': written['id']},
        )
        return written

    return _execute('mark_attendance', db, _run)


def bulk_mark_attendance(
    db: Session,
    records: Sequence[Mapping[str, Any]],
    *,
    actor: Actor | None,
    finalize: bool = False,
    time_provider: TimeProvider = default_time_provider,
) -> ServiceResult[dict]:
    """Write a batch, isolating per-record failures.

    Validation failures land in ``invalid`` and teacher writes against sealed
    rows land in ``skipped``; neither aborts the batch. Each uniqueness scope
    is committed on its own, so a storage fault in the second group leaves the
    first group's rows committed.
    """
    if actor is None:
        return _unauthenticated()
    if isinstance(records, (str, bytes)) or not isinstance(records, Sequence):
        return ServiceResult.fail(ErrorKind.VALIDATION, 'records must be a list')
    if len(records) > settings.attendance_bulk_max_records:
        return ServiceResult.fail(
            ErrorKind.VALIDATION,
            f'Too many records: {len(records)} (limit {settings.attendance_bulk_max_records})',
        )

    def _run() -> dict:
        require_subject = subject_required_for(actor)
        invalid: list[dict] = []
        candidates: list[dict] = []
        for index, raw in enumerate(records):
            if not isinstance(raw, Mapping):
                invalid.append({'index': index, 'error': 'Record must be an object', 'fields': [], 'record': raw})
                continue
            normalized = normalize_record(raw)
            outcome = validate_record(normalized, require_subject=require_subject)
            if not outcome.ok:
                invalid.append({'index': index, 'error': outcome.message, 'fields': outcome.fields, 'record': dict(raw)})
                continue
            candidates.append(normalized)

        skipped: list[dict] = []
        if actor.is_teacher:
            proceeding = []
            for candidate in candidates:
                try:
                    locked = is_finalized(db, NaturalKey.from_record(candidate))
                except StorageFaultError:
                    skipped.append({'record': _public_record(candidate), 'reason': SKIP_LOCK_UNVERIFIED})
                    continue
                if locked:
                    record_observability_event(FINALIZATION_CONFLICT)
                    skipped.append({'record': _public_record(candidate), 'reason': SKIP_FINALIZED})
                    continue
                proceeding.append(candidate)
        else:
            proceeding = candidates

        now = time_provider.utc_now_naive()
        rows = [stamp_record(candidate, actor, finalize=finalize, now=now) for candidate in proceeding]
        applied: list[dict] = []
        for scope, group in partition_by_scope(rows).items():
            if not group:
                continue
            applied.extend(queries.serialize_record(row) for row in upsert_group(db, scope, group))
            db.commit()

        logger.info(
            'attendance_bulk_applied',
            extra={
                'actor_id': actor.id,
                'role': actor.role.value,
                'applied': len(applied),
                'skipped': len(skipped),
                'invalid': len(invalid),
            },
        )
        return {'applied': applied, 'skipped': skipped, 'invalid': invalid}

    return _execute('bulk_mark_attendance', db, _run)


def get_attendance_by_date(
    db: Session,
    attendance_date: date | str,
    class_id: int,
    subject_id: int | None = None,
    *,
    actor: Actor | None,
) -> ServiceResult[list[dict]]:
    if actor is None:
        return _unauthenticated()
    return _execute(
        'get_attendance_by_date',
        db,
        lambda: queries.get_attendance_by_date(db, _require_date(attendance_date, 'date'), class_id, subject_id),
    )


def get_student_attendance(
    db: Session,
    student_id: int,
    start_date: date | str | None = None,
    end_date: date | str | None = None,
    *,
    actor: Actor | None,
) -> ServiceResult[list[dict]]:
    if actor is None:
        return _unauthenticated()
    return _execute(
        'get_student_attendance',
        db,
        lambda: queries.get_student_attendance(
            db,
            student_id,
            _optional_date(start_date, 'start_date'),
            _optional_date(end_date, 'end_date'),
        ),
    )


def get_student_attendance_stats(
    db: Session,
    student_id: int,
    start_date: date | str | None = None,
    end_date: date | str | None = None,
    *,
    actor: Actor | None,
) -> ServiceResult[dict]:
    if actor is None:
        return _unauthenticated()
    return _execute(
        'get_student_attendance_stats',
        db,
        lambda: queries.get_student_attendance_stats(
            db,
            student_id,
            _optional_date(start_date, 'start_date'),
            _optional_date(end_date, 'end_date'),
        ),
    )


def get_class_attendance_summary(
    db: Session,
    class_id: int,
    attendance_date: date | str,
    *,
    actor: Actor | None,
) -> ServiceResult[dict]:
    if actor is None:
        return _unauthenticated()
    return _execute(
        'get_class_attendance_summary',
        db,
        lambda: queries.get_class_attendance_summary(db, class_id, _require_date(attendance_date, 'date')),
    )


def _range_filters(filters: Mapping[str, Any] | None) -> dict:
    normalized = normalize_range_filters(filters)
    for field in ('from_date', 'to_date'):
        normalized[field] = _optional_date(normalized[field], field)
    bad_ids = [
        field
        for field in ('class_id', 'subject_id', 'student_id')
        if normalized[field] is not None and not isinstance(normalized[field], int)
    ]
    if bad_ids:
        raise AttendanceValidationError(f"Invalid fields: {', '.join(bad_ids)}", fields=bad_ids)
    return normalized


def list_attendance_range(
    db: Session,
    filters: Mapping[str, Any] | None = None,
    *,
    actor: Actor | None,
) -> ServiceResult[list[dict]]:
    if actor is None:
        return _unauthenticated()
    return _execute('list_attendance_range', db, lambda: queries.list_attendance_range(db, _range_filters(filters)))


def summary_by_class(
    db: Session,
    filters: Mapping[str, Any] | None = None,
    *,
    actor: Actor | None,
) -> ServiceResult[list[dict]]:
    if actor is None:
        return _unauthenticated()
    return _execute('summary_by_class', db, lambda: queries.summary_by_class(db, _range_filters(filters)))


def summary_by_date_range(
    db: Session,
    filters: Mapping[str, Any] | None = None,
    *,
    actor: Actor | None,
) -> ServiceResult[list[dict]]:
    if actor is None:
        return _unauthenticated()
    return _execute('summary_by_date_range', db, lambda: queries.summary_by_date_range(db, _range_filters(filters)))
