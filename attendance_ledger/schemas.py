from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class AttendanceMarkRequest(BaseModel):
    # Loosely shaped on purpose: aliases are resolved by the record normalizer.
    record: dict[str, Any]
    finalize: bool = False


class AttendanceBulkRequest(BaseModel):
    records: list[Any] = Field(default_factory=list)
    finalize: bool = False


class AttendanceRecordOut(BaseModel):
    id: int
    student_id: int
    class_id: int
    subject_id: int | None = None
    attendance_date: date = Field(alias='date')
    status: str
    remarks: str | None = None
    teacher_id: int | None = None
    recorded_by_id: int
    recorded_by_role: str
    last_updated_at: datetime
    finalized_by_admin: bool = False


class SkippedRecordOut(BaseModel):
    record: dict[str, Any]
    reason: str


class InvalidRecordOut(BaseModel):
    index: int
    error: str
    fields: list[str] = Field(default_factory=list)
    record: Any = None


class BulkSubmissionOut(BaseModel):
    applied: list[AttendanceRecordOut]
    skipped: list[SkippedRecordOut]
    invalid: list[InvalidRecordOut]


class AttendanceSummaryOut(BaseModel):
    total: int
    present: int
    absent: int
    excused: int
    attendance_rate: int = Field(serialization_alias='attendanceRate')


class ClassSummaryOut(AttendanceSummaryOut):
    class_id: int
    class_name: str


class DateSummaryOut(AttendanceSummaryOut):
    attendance_date: date = Field(alias='date')
