from __future__ import annotations

from collections import defaultdict
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from attendance_ledger.models import AttendanceRecord, AttendanceStatus, SchoolClass, Student, Subject


def attendance_rate(present: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up rounding, not banker's.
    return int(present * 100 / total + 0.5)


def summarize_counts(counts: dict[str, int]) -> dict:
    summary = {
        'total': sum(counts.values()),
        'present': int(counts.get(AttendanceStatus.PRESENT.value, 0)),
        'absent': int(counts.get(AttendanceStatus.ABSENT.value, 0)),
        'excused': int(counts.get(AttendanceStatus.EXCUSED.value, 0)),
    }
    summary['attendance_rate'] = attendance_rate(summary['present'], summary['total'])
    return summary


def serialize_record(row: AttendanceRecord) -> dict:
    return {
        'id': row.id,
        'student_id': row.student_id,
        'class_id': row.class_id,
        'subject_id': row.subject_id,
        'date': row.attendance_date,
        'status': row.status,
        'remarks': row.remarks,
        'teacher_id': row.teacher_id,
        'recorded_by_id': row.recorded_by_id,
        'recorded_by_role': row.recorded_by_role,
        'last_updated_at': row.last_updated_at,
        'finalized_by_admin': bool(row.finalized_by_admin),
    }


def _student_fields(student: Student | None) -> dict | None:
    if student is None:
        return None
    return {
        'full_name': student.full_name,
        'admission_number': student.admission_number,
        'email': student.email,
    }


def _subject_fields(subject: Subject | None) -> dict | None:
    if subject is None:
        return None
    return {'name': subject.name, 'code': subject.code}


def _date_window(stmt, start_date: date | None, end_date: date | None):
    if start_date is not None:
        stmt = stmt.where(AttendanceRecord.attendance_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(AttendanceRecord.attendance_date <= end_date)
    return stmt


def _status_counts(db: Session, *criteria) -> dict[str, int]:
    rows = db.execute(
        select(AttendanceRecord.status, func.count(AttendanceRecord.id))
        .where(*criteria)
        .group_by(AttendanceRecord.status)
    ).all()
    return {str(status): int(count) for status, count in rows}


def get_attendance_by_date(db: Session, attendance_date: date, class_id: int, subject_id: int | None = None) -> list[dict]:
    stmt = (
        select(AttendanceRecord, Student, Subject)
        .outerjoin(Student, Student.id == AttendanceRecord.student_id)
        .outerjoin(Subject, Subject.id == AttendanceRecord.subject_id)
        .where(AttendanceRecord.attendance_date == attendance_date, AttendanceRecord.class_id == class_id)
    )
    if subject_id is not None:
        stmt = stmt.where(AttendanceRecord.subject_id == subject_id)
    stmt = stmt.order_by(Student.full_name.asc().nulls_last(), AttendanceRecord.id.asc())
    return [
        {**serialize_record(record), 'student': _student_fields(student), 'subject': _subject_fields(subject)}
        for record, student, subject in db.execute(stmt).all()
    ]


def get_student_attendance(
    db: Session,
    student_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    stmt = (
        select(AttendanceRecord, SchoolClass, Subject)
        .outerjoin(SchoolClass, SchoolClass.id == AttendanceRecord.class_id)
        .outerjoin(Subject, Subject.id == AttendanceRecord.subject_id)
        .where(AttendanceRecord.student_id == student_id)
    )
    stmt = _date_window(stmt, start_date, end_date)
    stmt = stmt.order_by(AttendanceRecord.attendance_date.desc(), AttendanceRecord.id.desc())
    return [
        {
            **serialize_record(record),
            'class': {'name': school_class.name} if school_class else None,
            'subject': _subject_fields(subject),
        }
        for record, school_class, subject in db.execute(stmt).all()
    ]


def get_student_attendance_stats(
    db: Session,
    student_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    criteria = [AttendanceRecord.student_id == student_id]
    if start_date is not None:
        criteria.append(AttendanceRecord.attendance_date >= start_date)
    if end_date is not None:
        criteria.append(AttendanceRecord.attendance_date <= end_date)
    return summarize_counts(_status_counts(db, *criteria))


def get_class_attendance_summary(db: Session, class_id: int, attendance_date: date) -> dict:
    return summarize_counts(
        _status_counts(
            db,
            AttendanceRecord.class_id == class_id,
            AttendanceRecord.attendance_date == attendance_date,
        )
    )


def _range_criteria(filters: dict) -> list:
    criteria = []
    if filters.get('from_date') is not None:
        criteria.append(AttendanceRecord.attendance_date >= filters['from_date'])
    if filters.get('to_date') is not None:
        criteria.append(AttendanceRecord.attendance_date <= filters['to_date'])
    for field, column in (
        ('class_id', AttendanceRecord.class_id),
        ('subject_id', AttendanceRecord.subject_id),
        ('student_id', AttendanceRecord.student_id),
    ):
        if filters.get(field) is not None:
            criteria.append(column == filters[field])
    return criteria


def list_attendance_range(db: Session, filters: dict) -> list[dict]:
    stmt = (
        select(AttendanceRecord, Student, SchoolClass, Subject)
        .outerjoin(Student, Student.id == AttendanceRecord.student_id)
        .outerjoin(SchoolClass, SchoolClass.id == AttendanceRecord.class_id)
        .outerjoin(Subject, Subject.id == AttendanceRecord.subject_id)
        .where(*_range_criteria(filters))
        .order_by(AttendanceRecord.attendance_date.desc(), Student.full_name.asc().nulls_last(), AttendanceRecord.id.asc())
    )
    return [
        {
            **serialize_record(record),
            'student': _student_fields(student),
            'class': {'name': school_class.name} if school_class else None,
            'subject': _subject_fields(subject),
        }
        for record, student, school_class, subject in db.execute(stmt).all()
    ]


def summary_by_class(db: Session, filters: dict) -> list[dict]:
    rows = db.execute(
        select(AttendanceRecord.class_id, SchoolClass.name, AttendanceRecord.status, func.count(AttendanceRecord.id))
        .outerjoin(SchoolClass, SchoolClass.id == AttendanceRecord.class_id)
        .where(*_range_criteria(filters))
        .group_by(AttendanceRecord.class_id, SchoolClass.name, AttendanceRecord.status)
    ).all()
    counts: dict[int, dict[str, int]] = defaultdict(dict)
    names: dict[int, str] = {}
    for class_id, class_name, status, count in rows:
        counts[class_id][str(status)] = int(count)
        names[class_id] = class_name or 'Unknown'
    return [
        {'class_id': class_id, 'class_name': names[class_id], **summarize_counts(counts[class_id])}
        for class_id in sorted(counts)
    ]


def summary_by_date_range(db: Session, filters: dict) -> list[dict]:
    rows = db.execute(
        select(AttendanceRecord.attendance_date, AttendanceRecord.status, func.count(AttendanceRecord.id))
        .where(*_range_criteria(filters))
        .group_by(AttendanceRecord.attendance_date, AttendanceRecord.status)
    ).all()
    counts: dict[date, dict[str, int]] = defaultdict(dict)
    for attendance_date, status, count in rows:
        counts[attendance_date][str(status)] = int(count)
    return [{'date': attendance_date, **summarize_counts(counts[attendance_date])} for attendance_date in sorted(counts)]
