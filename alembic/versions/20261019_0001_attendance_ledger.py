"""attendance ledger tables with scoped natural keys

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'classes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
    )
    op.create_index('ix_classes_id', 'classes', ['id'])

    op.create_table(
        'subjects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=30), nullable=False, server_default=''),
    )
    op.create_index('ix_subjects_id', 'subjects', ['id'])

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(length=180), nullable=False),
        sa.Column('admission_number', sa.String(length=60), nullable=False, server_default=''),
        sa.Column('email', sa.String(length=180), nullable=False, server_default=''),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id'), nullable=True),
    )
    op.create_index('ix_students_id', 'students', ['id'])
    op.create_index('ix_students_class_id', 'students', ['class_id'])

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id'), nullable=False),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subjects.id'), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('teacher_id', sa.Integer(), nullable=True),
        sa.Column('recorded_by_id', sa.Integer(), nullable=False),
        sa.Column('recorded_by_role', sa.String(length=20), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(), nullable=False),
        sa.Column('finalized_by_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_attendance_records_id', 'attendance_records', ['id'])
    op.create_index('ix_attendance_records_class_date', 'attendance_records', ['class_id', 'date'])
    op.create_index(
        'uq_attendance_records_class_day',
        'attendance_records',
        ['student_id', 'class_id', 'date'],
        unique=True,
        sqlite_where=sa.text('subject_id IS NULL'),
        postgresql_where=sa.text('subject_id IS NULL'),
    )
    op.create_index(
        'uq_attendance_records_subject_day',
        'attendance_records',
        ['student_id', 'class_id', 'subject_id', 'date'],
        unique=True,
        sqlite_where=sa.text('subject_id IS NOT NULL'),
        postgresql_where=sa.text('subject_id IS NOT NULL'),
    )


def downgrade() -> None:
    op.drop_index('uq_attendance_records_subject_day', table_name='attendance_records')
    op.drop_index('uq_attendance_records_class_day', table_name='attendance_records')
    op.drop_index('ix_attendance_records_class_date', table_name='attendance_records')
    op.drop_index('ix_attendance_records_id', table_name='attendance_records')
    op.drop_table('attendance_records')
    op.drop_index('ix_students_class_id', table_name='students')
    op.drop_index('ix_students_id', table_name='students')
    op.drop_table('students')
    op.drop_index('ix_subjects_id', table_name='subjects')
    op.drop_table('subjects')
    op.drop_index('ix_classes_id', table_name='classes')
    op.drop_table('classes')
