import unittest
from datetime import datetime, timedelta

from freezegun import freeze_time

from attendance_ledger.services.observability_counters import (
    FINALIZATION_CONFLICT,
    LOCK_FAIL_OPEN,
    STORAGE_FAULT,
    clear_observability_events,
    count_observability_events,
    observability_snapshot,
    record_observability_event,
)


class ObservabilityCounterTests(unittest.TestCase):
    def setUp(self):
        clear_observability_events()

    def tearDown(self):
        clear_observability_events()

    def test_snapshot_lists_every_ledger_event(self):
        record_observability_event(LOCK_FAIL_OPEN)
        record_observability_event(LOCK_FAIL_OPEN)
        record_observability_event(' Attendance_Storage_Fault ')

        self.assertEqual(
            observability_snapshot(),
            {LOCK_FAIL_OPEN: 2, FINALIZATION_CONFLICT: 0, STORAGE_FAULT: 1},
        )

    def test_events_age_out_of_window(self):
        with freeze_time('2026-10-19 12:00:00'):
            now = datetime(2026, 10, 19, 12, 0)
            record_observability_event(FINALIZATION_CONFLICT, at=now - timedelta(hours=3))
            record_observability_event(FINALIZATION_CONFLICT, at=now - timedelta(minutes=10))

            self.assertEqual(count_observability_events(FINALIZATION_CONFLICT, window_hours=1), 1)
            self.assertEqual(count_observability_events(FINALIZATION_CONFLICT, window_hours=24), 2)

    def test_blank_event_names_are_ignored(self):
        record_observability_event('')
        self.assertEqual(count_observability_events(''), 0)


if __name__ == '__main__':
    unittest.main()
