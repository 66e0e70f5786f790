from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session

from attendance_ledger.config import settings
from attendance_ledger.core.errors import StorageFaultError
from attendance_ledger.core.natural_key import NaturalKey
from attendance_ledger.models import AttendanceRecord
from attendance_ledger.services.observability_counters import LOCK_FAIL_OPEN, record_observability_event


logger = logging.getLogger(__name__)


def natural_key_criteria(key: NaturalKey) -> list:
    criteria = [
        AttendanceRecord.student_id == key.student_id,
        AttendanceRecord.class_id == key.class_id,
        AttendanceRecord.attendance_date == key.attendance_date,
    ]
    if key.subject_id is None:
        criteria.append(AttendanceRecord.subject_id.is_(None))
    else:
        criteria.append(AttendanceRecord.subject_id == key.subject_id)
    return criteria


def is_finalized(db: Session, key: NaturalKey, *, fail_open: bool | None = None) -> bool:
    """Return whether the row behind ``key`` has been sealed by an admin.

    A missing row is never finalized. Any other lookup failure fails open
    (reported as not finalized) unless ``attendance_lock_fail_open`` is off,
    in which case it surfaces as a storage fault. The check is advisory: a
    concurrent admin write can still land between this read and the upsert.
    """
    stmt = select(AttendanceRecord.finalized_by_admin).where(*natural_key_criteria(key))
    try:
        return bool(db.execute(stmt).scalar_one())
    except NoResultFound:
        return False
    except SQLAlchemyError as exc:
        # Lookups run before any pending writes, so nothing is lost here.
        db.rollback()
        if fail_open is None:
            fail_open = settings.attendance_lock_fail_open
        if not fail_open:
            logger.error(
                'attendance_lock_check_failed',
                extra={'student_id': key.student_id, 'class_id': key.class_id, 'error': str(exc)},
            )
            raise StorageFaultError('Finalization state could not be read') from exc
        logger.warning(
            'attendance_lock_fail_open',
            extra={
                'student_id': key.student_id,
                'class_id': key.class_id,
                'subject_id': key.subject_id,
                'date': key.attendance_date.isoformat(),
                'error': str(exc),
            },
        )
        record_observability_event(LOCK_FAIL_OPEN)
        return False
