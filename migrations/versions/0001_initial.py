"""initial tables

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_LESSON = sa.text("status IN ('pending', 'confirmed')")


def upgrade():
    op.create_table('teacher',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('short_name', sa.String(100), nullable=True),
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('teacher_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('min_advance_hours', sa.Integer(), nullable=True),
        sa.Column('max_booking_days', sa.Integer(), nullable=True),
        sa.Column('default_lesson_duration', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table('student',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('credits >= 0', name='ck_student_credits_nonnegative'),
        sa.UniqueConstraint('teacher_id', 'user_id', name='uq_student_teacher_user'),
    )
    op.create_index('ix_student_teacher_id', 'student', ['teacher_id'])
    op.create_index('ix_student_user_id', 'student', ['user_id'])

    op.create_table('availability_rule',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.String(16), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('specific_date', sa.Date(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('end_time > start_time', name='ck_rule_time_range'),
    )
    op.create_index('ix_availability_rule_teacher_id', 'availability_rule', ['teacher_id'])
    op.create_index('ix_rule_teacher_weekday', 'availability_rule', ['teacher_id', 'day_of_week'])

    op.create_table('lesson',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('student.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('credits_used >= 1', name='ck_lesson_credits_used'),
        sa.CheckConstraint('end_time > start_time', name='ck_lesson_time_range'),
    )
    op.create_index('ix_lesson_teacher_id', 'lesson', ['teacher_id'])
    op.create_index('ix_lesson_student_id', 'lesson', ['student_id'])
    op.create_index('ix_lesson_teacher_window', 'lesson', ['teacher_id', 'start_time', 'end_time'])
    # at most one active lesson per teacher and start instant
    op.create_index(
        'uq_lesson_teacher_start_active', 'lesson', ['teacher_id', 'start_time'],
        unique=True, sqlite_where=ACTIVE_LESSON, postgresql_where=ACTIVE_LESSON,
    )

    op.create_table('lesson_student',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('lesson_id', sa.Integer(), sa.ForeignKey('lesson.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('student.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('lesson_id', 'student_id', name='uq_lesson_student_pair'),
    )
    op.create_index('ix_lesson_student_lesson_id', 'lesson_student', ['lesson_id'])
    op.create_index('ix_lesson_student_student_id', 'lesson_student', ['student_id'])

    op.create_table('credit_ledger',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('student.id', ondelete='CASCADE'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teacher.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('lesson_id', sa.Integer(), sa.ForeignKey('lesson.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_credit_ledger_student_id', 'credit_ledger', ['student_id'])

    op.create_table('notification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recipient_kind', sa.String(16), nullable=False),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_notification_recipient', 'notification', ['recipient_kind', 'recipient_id'])


def downgrade():
    op.drop_table('notification')
    op.drop_table('credit_ledger')
    op.drop_table('lesson_student')
    op.drop_index('uq_lesson_teacher_start_active', table_name='lesson')
    op.drop_table('lesson')
    op.drop_table('availability_rule')
    op.drop_table('student')
    op.drop_table('teacher_settings')
    op.drop_table('users')
    op.drop_table('teacher')
