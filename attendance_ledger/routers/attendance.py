from __future__ import annotations

from datetime import date
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from attendance_ledger.core.errors import ErrorKind
from attendance_ledger.core.result import ServiceResult
from attendance_ledger.core.router_guard import resolve_request_actor
from attendance_ledger.db import get_db
from attendance_ledger.domain.services import attendance_service as ledger
from attendance_ledger.route_logging import EndpointNameRoute
from attendance_ledger.schemas import (
    AttendanceBulkRequest,
    AttendanceMarkRequest,
    AttendanceRecordOut,
    AttendanceSummaryOut,
    BulkSubmissionOut,
    ClassSummaryOut,
    DateSummaryOut,
)
from attendance_ledger.services.observability_counters import observability_snapshot


router = APIRouter(prefix='/api/attendance', tags=['Attendance'], route_class=EndpointNameRoute)
logger = logging.getLogger(__name__)

_HTTP_STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.VALIDATION: 422,
    ErrorKind.FINALIZATION_CONFLICT: 409,
    ErrorKind.STORAGE_FAULT: 500,
}


def _unwrap(result: ServiceResult):
    if result.success:
        return result.data
    raise HTTPException(status_code=_HTTP_STATUS_BY_KIND[result.error.kind], detail=result.error.as_dict())


def _range_filters(
    from_date: date | None,
    to_date: date | None,
    class_id: int | None,
    subject_id: int | None,
    student_id: int | None,
) -> dict:
    return {
        'from_date': from_date,
        'to_date': to_date,
        'class_id': class_id,
        'subject_id': subject_id,
        'student_id': student_id,
    }


@router.post('/mark', response_model=AttendanceRecordOut)
def mark(payload: AttendanceMarkRequest, request: Request, db: Session = Depends(get_db)):
    actor = resolve_request_actor(request)
    return _unwrap(ledger.mark_attendance(db, payload.record, actor=actor, finalize=payload.finalize))


@router.post('/bulk', response_model=BulkSubmissionOut)
def bulk(payload: AttendanceBulkRequest, request: Request, db: Session = Depends(get_db)):
    actor = resolve_request_actor(request)
    return _unwrap(ledger.bulk_mark_attendance(db, payload.records, actor=actor, finalize=payload.finalize))


@router.get('/by-date')
def by_date(
    request: Request,
    attendance_date: date = Query(alias='date'),
    class_id: int = Query(),
    subject_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    actor = resolve_request_actor(request)
    return _unwrap(ledger.get_attendance_by_date(db, attendance_date, class_id, subject_id, actor=actor))


@router.get('/students/{student_id}')
def student_history(
    student_id: int,
    request: Request,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    actor = resolve_request_actor(request)
    return _unwrap(ledger.get_student_attendance(db, student_id, start_date, end_date, actor=actor))


@router.get('/students/{student_id}/stats', response_model=AttendanceSummaryOut)
def student_stats(
    student_id: int,
    request: Request,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    actor = resolve_request_actor(request)
    return _unwrap(ledger.get_student_attendance_stats(db, student_id, start_date, end_date, actor=actor))


@router.get('/classes/{class_id}/summary', response_model=AttendanceSummaryOut)
def class_summary(
    class_id: int,
    request: Request,
    attendance_date: date = Query(alias='date'),
    db: Session = Depends(get_db),
):
    actor = resolve_request_actor(request)
    return _unwrap(ledger.get_class_attendance_summary(db, class_id, attendance_date, actor=actor))


@router.get('/range')
def attendance_range(
    request: Request,
    from_date: date | None = Query(default=None, alias='from'),
    to_date: date | None = Query(default=None, alias='to'),
    class_id: int | None = Query(default=None),
    subject_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    actor = resolve_request_actor(request)
    filters = _range_filters(from_date, to_date, class_id, subject_id, student_id)
    return _unwrap(ledger.list_attendance_range(db, filters, actor=actor))


@router.get('/range/by-class', response_model=list[ClassSummaryOut])
def attendance_range_by_class(
    request: Request,
    from_date: date | None = Query(default=None, alias='from'),
    to_date: date | None = Query(default=None, alias='to'),
    class_id: int | None = Query(default=None),
    subject_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    actor = resolve_request_actor(request)
    filters = _range_filters(from_date, to_date, class_id, subject_id, student_id)
    return _unwrap(ledger.summary_by_class(db, filters, actor=actor))


@router.get('/range/by-date', response_model=list[DateSummaryOut])
def attendance_range_by_date(
    request: Request,
    from_date: date | None = Query(default=None, alias='from'),
    to_date: date | None = Query(default=None, alias='to'),
    class_id: int | None = Query(default=None),
    subject_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    actor = resolve_request_actor(request)
    filters = _range_filters(from_date, to_date, class_id, subject_id, student_id)
    return _unwrap(ledger.summary_by_date_range(db, filters, actor=actor))


@router.get('/health')
def ledger_health(window_hours: int = Query(default=24, ge=1, le=25)):
    return {'status': 'ok', 'events': observability_snapshot(window_hours=window_hours)}
