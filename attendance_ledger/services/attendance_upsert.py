from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from attendance_ledger.core.actor import Actor
from attendance_ledger.core.errors import StorageFaultError
from attendance_ledger.core.natural_key import KeyScope, NaturalKey, scope_for
from attendance_ledger.models import AttendanceRecord


logger = logging.getLogger(__name__)

_TABLE = AttendanceRecord.__table__


@dataclass(frozen=True)
class ConflictTarget:
    index_elements: tuple[str, ...]
    index_where: Any


CONFLICT_TARGETS: dict[KeyScope, ConflictTarget] = {
    KeyScope.CLASS_DAY: ConflictTarget(
        index_elements=('student_id', 'class_id', 'date'),
        index_where=_TABLE.c.subject_id.is_(None),
    ),
    KeyScope.SUBJECT_DAY: ConflictTarget(
        index_elements=('student_id', 'class_id', 'subject_id', 'date'),
        index_where=_TABLE.c.subject_id.isnot(None),
    ),
}

_DIALECT_INSERTS = {
    'sqlite': sqlite.insert,
    'postgresql': postgresql.insert,
}


def stamp_record(record: dict, actor: Actor, *, finalize: bool, now: datetime) -> dict:
    """Build the storage row for ``record`` as written by ``actor``.

    Only admins can seal a row; a finalize request from anyone else is ignored.
    """
    teacher_id = record.get('teacher_id')
    if actor.is_teacher and teacher_id is None:
        teacher_id = actor.id
    return {
        'student_id': record['student_id'],
        'class_id': record['class_id'],
        'subject_id': record.get('subject_id'),
        'date': record['date'],
        'status': record['status'],
        'remarks': record.get('remarks'),
        'teacher_id': teacher_id,
        'recorded_by_id': actor.id,
        'recorded_by_role': actor.role.value,
        'last_updated_at': now,
        'finalized_by_admin': bool(actor.is_admin and (finalize or record.get('finalize'))),
    }


def row_key(row: dict) -> NaturalKey:
    return NaturalKey(
        student_id=row['student_id'],
        class_id=row['class_id'],
        subject_id=row.get('subject_id'),
        attendance_date=row['date'],
    )


def partition_by_scope(rows: list[dict]) -> dict[KeyScope, list[dict]]:
    groups: dict[KeyScope, list[dict]] = {scope: [] for scope in KeyScope}
    for row in rows:
        groups[scope_for(row.get('subject_id'))].append(row)
    return groups


def _collapse_duplicate_keys(rows: list[dict]) -> list[dict]:
    # A single ON CONFLICT statement may not touch the same row twice; last write wins.
    by_key: dict[NaturalKey, dict] = {}
    for row in rows:
        key = row_key(row)
        by_key.pop(key, None)
        by_key[key] = row
    return list(by_key.values())


def _dialect_insert(db: Session):
    dialect_name = db.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect_name)
    if insert is None:
        raise StorageFaultError(f'Attendance upsert is not supported on {dialect_name}')
    return insert


def upsert_group(db: Session, scope: KeyScope, rows: list[dict]) -> list[AttendanceRecord]:
    """Insert-or-update ``rows`` against the natural key of ``scope``.

    Existing rows keep their teacher attribution when the new write carries
    none, and ``finalized_by_admin`` is OR-ed so no write can clear it.
    Nothing is committed here.
    """
    if not rows:
        return []
    if any(scope_for(row.get('subject_id')) != scope for row in rows):
        raise ValueError(f'rows outside scope {scope.value}')
    rows = _collapse_duplicate_keys(rows)
    target = CONFLICT_TARGETS[scope]

    insert = _dialect_insert(db)
    stmt = insert(_TABLE).values(rows)
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=list(target.index_elements),
        index_where=target.index_where,
        set_={
            'status': excluded.status,
            'remarks': excluded.remarks,
            'teacher_id': func.coalesce(excluded.teacher_id, _TABLE.c.teacher_id),
            'recorded_by_id': excluded.recorded_by_id,
            'recorded_by_role': excluded.recorded_by_role,
            'last_updated_at': excluded.last_updated_at,
            'finalized_by_admin': or_(_TABLE.c.finalized_by_admin, excluded.finalized_by_admin),
        },
    ).returning(_TABLE.c.id)
    written_ids = list(db.execute(stmt).scalars())
    logger.info('attendance_upsert_dispatched', extra={'scope': scope.value, 'rows': len(rows)})
    if not written_ids:
        return []
    return list(
        db.scalars(
            select(AttendanceRecord)
            .where(AttendanceRecord.id.in_(written_ids))
            .order_by(AttendanceRecord.id.asc())
            .execution_options(populate_existing=True)
        )
    )


def upsert_record(db: Session, row: dict) -> AttendanceRecord:
    written = upsert_group(db, scope_for(row.get('subject_id')), [row])
    if not written:
        raise StorageFaultError('Attendance upsert returned no row')
    return written[0]
