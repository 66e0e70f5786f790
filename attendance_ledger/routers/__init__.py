from attendance_ledger.routers import attendance
