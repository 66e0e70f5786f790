from datetime import date, datetime
from enum import Enum
from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, false, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendance_ledger.db import Base


class Role(str, Enum):
    ADMIN = 'admin'
    TEACHER = 'teacher'


class AttendanceStatus(str, Enum):
    PRESENT = 'present'
    ABSENT = 'absent'
    EXCUSED = 'excused'


class SchoolClass(Base):
    __tablename__ = 'classes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120))


class Subject(Base):
    __tablename__ = 'subjects'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    code: Mapped[str] = mapped_column(String(30), default='')


class Student(Base):
    __tablename__ = 'students'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    full_name: Mapped[str] = mapped_column(String(180))
    admission_number: Mapped[str] = mapped_column(String(60), default='')
    email: Mapped[str] = mapped_column(String(180), default='')
    class_id: Mapped[int | None] = mapped_column(ForeignKey('classes.id'), nullable=True, index=True)

    attendances: Mapped[list['AttendanceRecord']] = relationship('AttendanceRecord', back_populates='student')


class AttendanceRecord(Base):
    __tablename__ = 'attendance_records'
    __table_args__ = (
        # One natural key per scope; the two indexes never overlap.
        Index(
            'uq_attendance_records_class_day',
            'student_id',
            'class_id',
            'date',
            unique=True,
            sqlite_where=text('subject_id IS NULL'),
            postgresql_where=text('subject_id IS NULL'),
        ),
        Index(
            'uq_attendance_records_subject_day',
            'student_id',
            'class_id',
            'subject_id',
            'date',
            unique=True,
            sqlite_where=text('subject_id IS NOT NULL'),
            postgresql_where=text('subject_id IS NOT NULL'),
        ),
        Index('ix_attendance_records_class_date', 'class_id', 'date'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'))
    class_id: Mapped[int] = mapped_column(ForeignKey('classes.id'))
    subject_id: Mapped[int | None] = mapped_column(ForeignKey('subjects.id'), nullable=True)
    attendance_date: Mapped[date] = mapped_column('date', Date)
    status: Mapped[str] = mapped_column(String(20))
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    teacher_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recorded_by_id: Mapped[int] = mapped_column(Integer)
    recorded_by_role: Mapped[str] = mapped_column(String(20))
    last_updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    finalized_by_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())

    student: Mapped['Student'] = relationship('Student', back_populates='attendances')
    school_class: Mapped['SchoolClass'] = relationship('SchoolClass')
    subject: Mapped['Subject | None'] = relationship('Subject')
