import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from attendance_ledger.core.errors import StorageFaultError
from attendance_ledger.core.natural_key import KeyScope, NaturalKey
from attendance_ledger.db import Base
from attendance_ledger.models import AttendanceRecord, SchoolClass, Student, Subject
from attendance_ledger.services.finalization_lock import is_finalized
from attendance_ledger.services.observability_counters import (
    LOCK_FAIL_OPEN,
    clear_observability_events,
    count_observability_events,
)


DAY = date(2026, 10, 19)


class FinalizationLockTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_finalization_lock.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        clear_observability_events()
        db = self._session_factory()
        try:
            db.query(AttendanceRecord).delete()
            db.query(Student).delete()
            db.query(Subject).delete()
            db.query(SchoolClass).delete()
            db.add_all(
                [
                    SchoolClass(id=1, name='JSS 1A'),
                    Subject(id=11, name='Mathematics', code='MTH'),
                    Student(id=101, full_name='Adaeze Okafor', class_id=1),
                    AttendanceRecord(
                        student_id=101,
                        class_id=1,
                        subject_id=11,
                        attendance_date=DAY,
                        status='present',
                        recorded_by_id=1,
                        recorded_by_role='admin',
                        last_updated_at=datetime(2026, 10, 19, 8, 0),
                        finalized_by_admin=True,
                    ),
                    AttendanceRecord(
                        student_id=101,
                        class_id=1,
                        subject_id=None,
                        attendance_date=DAY,
                        status='absent',
                        recorded_by_id=10,
                        recorded_by_role='teacher',
                        last_updated_at=datetime(2026, 10, 19, 8, 0),
                        finalized_by_admin=False,
                    ),
                ]
            )
            db.commit()
        finally:
            db.close()

    def test_missing_row_is_not_finalized(self):
        db = self._session_factory()
        try:
            self.assertFalse(is_finalized(db, NaturalKey(101, 1, 11, date(2026, 10, 20))))
        finally:
            db.close()

    def test_reports_flag_per_scope(self):
        db = self._session_factory()
        try:
            subject_key = NaturalKey(101, 1, 11, DAY)
            class_key = NaturalKey(101, 1, None, DAY)
            self.assertEqual(subject_key.scope, KeyScope.SUBJECT_DAY)
            self.assertEqual(class_key.scope, KeyScope.CLASS_DAY)
            self.assertTrue(is_finalized(db, subject_key))
            self.assertFalse(is_finalized(db, class_key))
        finally:
            db.close()

    def test_lookup_failure_fails_open(self):
        db = MagicMock()
        db.execute.side_effect = OperationalError('SELECT', {}, Exception('database is locked'))

        self.assertFalse(is_finalized(db, NaturalKey(101, 1, 11, DAY), fail_open=True))
        db.rollback.assert_called_once()
        self.assertEqual(count_observability_events(LOCK_FAIL_OPEN), 1)

    def test_lookup_failure_raises_when_fail_open_disabled(self):
        db = MagicMock()
        db.execute.side_effect = OperationalError('SELECT', {}, Exception('database is locked'))

        with self.assertRaises(StorageFaultError):
            is_finalized(db, NaturalKey(101, 1, 11, DAY), fail_open=False)
        self.assertEqual(count_observability_events(LOCK_FAIL_OPEN), 0)


if __name__ == '__main__':
    unittest.main()
