from datetime import datetime, time, date, UTC
from enum import Enum as PyEnum

from sqlalchemy import (
    Enum, ForeignKey, UniqueConstraint, CheckConstraint, Index, Boolean, Date, DateTime, Time,
    Integer, String, Text, JSON, text
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from flask_login import UserMixin

from extensions import db


def utcnow() -> datetime:
    # all instants are stored as naive UTC
    return datetime.now(UTC).replace(tzinfo=None)


# ---------- Enums ----------
class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"

class RuleKind(str, PyEnum):
    WEEKLY = "weekly"
    ONE_TIME = "one_time"

class LessonStatus(str, PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

ACTIVE_LESSON_STATUSES = (LessonStatus.PENDING, LessonStatus.CONFIRMED)


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


# ---------- Accounts ----------
class User(UserMixin, db.Model):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), index=True, nullable=False, default=UserRole.STUDENT.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # set for TEACHER accounts
    teacher_id: Mapped[int | None] = mapped_column(ForeignKey("teacher.id", ondelete="SET NULL"), nullable=True)

    teacher = relationship("Teacher")
    student_links = relationship("Student", back_populates="user")

    def __repr__(self):
        return f"<User {self.email}>"


class Teacher(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    short_name: Mapped[str | None] = mapped_column(String(100))

    availability_rules = relationship("AvailabilityRule", back_populates="teacher", cascade="all, delete-orphan")
    settings = relationship("TeacherSettings", back_populates="teacher", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Teacher {self.full_name}>"


class TeacherSettings(db.Model):
    __tablename__ = "teacher_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id", ondelete="CASCADE"), unique=True, nullable=False)
    min_advance_hours: Mapped[int | None] = mapped_column(Integer)
    max_booking_days: Mapped[int | None] = mapped_column(Integer)
    default_lesson_duration: Mapped[int | None] = mapped_column(Integer)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    teacher = relationship("Teacher", back_populates="settings")


class Student(db.Model):
    """One linkage row per (teacher, account); rows sharing user_id are siblings."""
    id: Mapped[int] = mapped_column(primary_key=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    teacher = relationship("Teacher")
    user = relationship("User", back_populates="student_links")

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_student_credits_nonnegative"),
        UniqueConstraint("teacher_id", "user_id", name="uq_student_teacher_user"),
    )

    def __repr__(self):
        return f"<Student {self.full_name}>"


# ---------- Availability ----------
class AvailabilityRule(db.Model):
    __tablename__ = "availability_rule"

    id: Mapped[int] = mapped_column(primary_key=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id", ondelete="CASCADE"), nullable=False, index=True)
    kind: Mapped[RuleKind] = mapped_column(
        Enum(RuleKind, values_callable=_enum_values, native_enum=False, length=16, name="rule_kind"),
        nullable=False,
    )
    day_of_week: Mapped[int | None] = mapped_column(Integer)  # 0=Mon .. 6=Sun
    specific_date: Mapped[date | None] = mapped_column(Date)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    teacher = relationship("Teacher", back_populates="availability_rules")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_rule_time_range"),
        Index("ix_rule_teacher_weekday", "teacher_id", "day_of_week"),
    )

    @property
    def is_one_time(self) -> bool:
        return self.kind == RuleKind.ONE_TIME


# ---------- Lessons ----------
class Lesson(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id", ondelete="RESTRICT"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("student.id", ondelete="RESTRICT"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[LessonStatus] = mapped_column(
        Enum(LessonStatus, values_callable=_enum_values, native_enum=False, length=16, name="lesson_status"),
        nullable=False, default=LessonStatus.PENDING,
    )
    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    teacher = relationship("Teacher")
    student = relationship("Student")
    participants = relationship("LessonStudent", back_populates="lesson", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("credits_used >= 1", name="ck_lesson_credits_used"),
        CheckConstraint("end_time > start_time", name="ck_lesson_time_range"),
        Index("ix_lesson_teacher_window", "teacher_id", "start_time", "end_time"),
        # one active lesson per teacher per start instant
        Index(
            "uq_lesson_teacher_start_active", "teacher_id", "start_time",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    def __repr__(self):
        return f"<Lesson {self.id} {self.status.value}>"


class LessonStudent(db.Model):
    """Additional participants of a group lesson."""
    __tablename__ = "lesson_student"

    id: Mapped[int] = mapped_column(primary_key=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lesson.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("student.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    lesson = relationship("Lesson", back_populates="participants")
    student = relationship("Student")

    __table_args__ = (
        UniqueConstraint("lesson_id", "student_id", name="uq_lesson_student_pair"),
    )


# ---------- Credits & notifications ----------
class CreditLedger(db.Model):
    __tablename__ = "credit_ledger"

    id: Mapped[int] = mapped_column(primary_key=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("student.id", ondelete="CASCADE"), nullable=False, index=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    lesson_id: Mapped[int | None] = mapped_column(ForeignKey("lesson.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Notification(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    recipient_kind: Mapped[str] = mapped_column(String(16), nullable=False)  # teacher | student
    recipient_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    source_id: Mapped[int | None] = mapped_column(Integer)
    payload: Mapped[dict | None] = mapped_column(JSON)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notification_recipient", "recipient_kind", "recipient_id"),
    )
