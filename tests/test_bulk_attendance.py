import tempfile
import unittest
from datetime import date
from pathlib import Path
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from attendance_ledger.core.actor import Actor
from attendance_ledger.core.errors import ErrorKind, StorageFaultError
from attendance_ledger.core.natural_key import KeyScope
from attendance_ledger.db import Base
from attendance_ledger.domain.services import attendance_service as ledger
from attendance_ledger.models import AttendanceRecord, Role, SchoolClass, Student, Subject
from attendance_ledger.services.attendance_upsert import CONFLICT_TARGETS, upsert_group


DAY = date(2026, 10, 19)
TEACHER = Actor(id=10, role=Role.TEACHER)
ADMIN = Actor(id=1, role=Role.ADMIN)


class BulkMarkAttendanceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_bulk_attendance.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            db.query(AttendanceRecord).delete()
            db.query(Student).delete()
            db.query(Subject).delete()
            db.query(SchoolClass).delete()
            db.add_all([SchoolClass(id=1, name='JSS 1A'), Subject(id=11, name='Mathematics', code='MTH')])
            db.add_all([Student(id=100 + n, full_name=f'Student {n:02d}', class_id=1) for n in range(1, 7)])
            db.commit()
        finally:
            db.close()
        self.db = self._session_factory()

    def tearDown(self):
        self.db.close()

    def _row(self, student_id, **overrides):
        row = {'studentId': student_id, 'classId': 1, 'subjectId': 11, 'date': DAY.isoformat(), 'status': 'present'}
        row.update(overrides)
        return row

    def _count(self, **criteria):
        check = self._session_factory()
        try:
            return check.query(AttendanceRecord).filter_by(**criteria).count()
        finally:
            check.close()

    def test_partial_failure_is_isolated_per_record(self):
        sealed = ledger.mark_attendance(
            self.db,
            {'student_id': 105, 'class_id': 1, 'subject_id': 11, 'date': DAY, 'status': 'absent'},
            actor=ADMIN,
            finalize=True,
        )
        self.assertTrue(sealed.success, sealed.error)

        batch = [
            self._row(101),
            self._row(102, status='absent'),
            self._row(103),
            self._row(104, status=''),
            self._row(105),
        ]
        result = ledger.bulk_mark_attendance(self.db, batch, actor=TEACHER)

        self.assertTrue(result.success, result.error)
        applied, skipped, invalid = result.data['applied'], result.data['skipped'], result.data['invalid']
        self.assertEqual(sorted(row['student_id'] for row in applied), [101, 102, 103])
        self.assertTrue(all(row['recorded_by_role'] == 'teacher' for row in applied))
        self.assertEqual(len(invalid), 1)
        self.assertEqual(invalid[0]['index'], 3)
        self.assertIn('status', invalid[0]['error'])
        self.assertEqual(len(skipped), 1)
        self.assertEqual(skipped[0]['reason'], 'finalized')
        self.assertEqual(skipped[0]['record']['student_id'], 105)

        check = self._session_factory()
        try:
            sealed_row = check.query(AttendanceRecord).filter_by(student_id=105).one()
            self.assertEqual(sealed_row.status, 'absent')
        finally:
            check.close()

    def test_invalid_entries_keep_input_order(self):
        batch = [self._row(101, classId=None), 'not-a-record', self._row(102), self._row(103, date='soon')]
        result = ledger.bulk_mark_attendance(self.db, batch, actor=TEACHER)

        self.assertEqual([item['index'] for item in result.data['invalid']], [0, 1, 3])
        self.assertEqual(len(result.data['applied']), 1)

    def test_digit_like_id_is_invalid_without_aborting_batch(self):
        batch = [self._row(101), self._row('\u00b2'), self._row(102)]
        result = ledger.bulk_mark_attendance(self.db, batch, actor=TEACHER)

        self.assertTrue(result.success, result.error)
        self.assertEqual(sorted(row['student_id'] for row in result.data['applied']), [101, 102])
        self.assertEqual(len(result.data['invalid']), 1)
        self.assertEqual(result.data['invalid'][0]['index'], 1)
        self.assertEqual(result.data['invalid'][0]['fields'], ['student_id'])

        single = ledger.mark_attendance(self.db, self._row('\u00b2'), actor=TEACHER)
        self.assertEqual(single.error_kind, ErrorKind.VALIDATION)

    def test_mixed_scopes_dispatch_one_upsert_per_scope(self):
        batch = [
            self._row(101, subjectId=None),
            self._row(102, subjectId=None),
            self._row(103),
            self._row(104),
        ]
        with patch(
            'attendance_ledger.domain.services.attendance_service.upsert_group',
            wraps=upsert_group,
        ) as dispatched:
            result = ledger.bulk_mark_attendance(self.db, batch, actor=ADMIN)

        self.assertTrue(result.success, result.error)
        self.assertEqual(dispatched.call_count, 2)
        self.assertEqual({call.args[1] for call in dispatched.call_args_list}, set(KeyScope))
        self.assertEqual(len(result.data['applied']), 4)

        by_subject = ledger.get_attendance_by_date(self.db, DAY, 1, 11, actor=ADMIN)
        self.assertEqual(sorted(row['student_id'] for row in by_subject.data), [103, 104])

    def test_single_scope_batch_skips_empty_group(self):
        with patch(
            'attendance_ledger.domain.services.attendance_service.upsert_group',
            wraps=upsert_group,
        ) as dispatched:
            ledger.bulk_mark_attendance(self.db, [self._row(101), self._row(102)], actor=TEACHER)

        self.assertEqual(dispatched.call_count, 1)
        self.assertEqual(dispatched.call_args.args[1], KeyScope.SUBJECT_DAY)

    def test_every_scope_has_a_conflict_target(self):
        self.assertEqual(set(CONFLICT_TARGETS), set(KeyScope))

    def test_admin_bulk_ignores_locks_and_honours_per_record_finalize(self):
        ledger.mark_attendance(
            self.db,
            {'student_id': 101, 'class_id': 1, 'date': DAY, 'status': 'absent'},
            actor=ADMIN,
            finalize=True,
        )
        batch = [
            self._row(101, subjectId=None, status='excused'),
            self._row(102, subjectId=None, finalize=True),
            self._row(103, subjectId=None),
        ]
        result = ledger.bulk_mark_attendance(self.db, batch, actor=ADMIN)

        flags = {row['student_id']: row['finalized_by_admin'] for row in result.data['applied']}
        self.assertEqual(flags, {101: True, 102: True, 103: False})
        self.assertEqual(result.data['skipped'], [])

    def test_batch_level_finalize_applies_to_admin_only(self):
        teacher_result = ledger.bulk_mark_attendance(self.db, [self._row(101)], actor=TEACHER, finalize=True)
        self.assertFalse(teacher_result.data['applied'][0]['finalized_by_admin'])

        admin_result = ledger.bulk_mark_attendance(self.db, [self._row(102)], actor=ADMIN, finalize=True)
        self.assertTrue(admin_result.data['applied'][0]['finalized_by_admin'])

    def test_duplicate_keys_in_one_batch_collapse_to_last(self):
        batch = [self._row(101, status='absent'), self._row(101, status='excused')]
        result = ledger.bulk_mark_attendance(self.db, batch, actor=TEACHER)

        self.assertEqual(len(result.data['applied']), 1)
        self.assertEqual(result.data['applied'][0]['status'], 'excused')
        self.assertEqual(self._count(student_id=101), 1)

    def test_unverifiable_lock_is_skipped_when_fail_open_disabled(self):
        with patch(
            'attendance_ledger.domain.services.attendance_service.is_finalized',
            side_effect=StorageFaultError('Finalization state could not be read'),
        ):
            result = ledger.bulk_mark_attendance(self.db, [self._row(101)], actor=TEACHER)

        self.assertTrue(result.success)
        self.assertEqual(result.data['skipped'][0]['reason'], 'lock_unverified')
        self.assertEqual(result.data['applied'], [])

    def test_storage_fault_in_second_group_aborts_after_first_commit(self):
        calls = {'count': 0}

        def flaky_upsert(db, scope, rows):
            calls['count'] += 1
            if calls['count'] == 2:
                raise OperationalError('INSERT', {}, Exception('connection reset'))
            return upsert_group(db, scope, rows)

        batch = [self._row(101, subjectId=None), self._row(102)]
        with patch('attendance_ledger.domain.services.attendance_service.upsert_group', side_effect=flaky_upsert):
            result = ledger.bulk_mark_attendance(self.db, batch, actor=ADMIN)

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.STORAGE_FAULT)
        self.assertEqual(self._count(student_id=101), 1)
        self.assertEqual(self._count(student_id=102), 0)

    def test_unauthenticated_and_malformed_batches(self):
        self.assertEqual(ledger.bulk_mark_attendance(self.db, [self._row(101)], actor=None).error_kind, ErrorKind.UNAUTHENTICATED)
        self.assertEqual(ledger.bulk_mark_attendance(self.db, 'rows', actor=ADMIN).error_kind, ErrorKind.VALIDATION)
        empty = ledger.bulk_mark_attendance(self.db, [], actor=ADMIN)
        self.assertEqual(empty.data, {'applied': [], 'skipped': [], 'invalid': []})
        self.assertEqual(self._count(), 0)


if __name__ == '__main__':
    unittest.main()
