"""
Idempotent seed script.
Usage:
  python seed.py --reset         # drop and recreate the DB, demo data, admin/pass
  python seed.py --ensure-admin  # only the admin@example.com account
  python seed.py                 # fill in whatever demo data is missing
"""
from datetime import date, datetime, time, timedelta, UTC
import argparse
from sqlalchemy import and_
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import (
    AvailabilityRule, Lesson, LessonStatus, RuleKind, Student, Teacher, TeacherSettings, User, UserRole,
)

# ---- helpers ----
def first_by(model, **criteria):
    conds = [getattr(model, k) == v for k, v in criteria.items()]
    return db.session.query(model).filter(and_(*conds)).first()

def get_or_create(model, defaults=None, **by):
    """Idempotent create by natural key."""
    inst = first_by(model, **by)
    if inst:
        return inst, False
    data = dict(defaults or {})
    data.update(by)
    inst = model(**data)
    db.session.add(inst)
    db.session.flush()
    return inst, True

def get_or_create_user(email, role, password="pass", **extra):
    user, created = get_or_create(
        User, email=email,
        defaults=dict(role=role, password_hash=generate_password_hash(password), is_active=True, **extra),
    )
    return user

# ---- demo data ----
def seed_demo():
    ids = {}

    teacher, _ = get_or_create(Teacher, full_name="Anna Weber", defaults=dict(short_name="A. Weber"))
    get_or_create(TeacherSettings, teacher_id=teacher.id,
                  defaults=dict(min_advance_hours=12, max_booking_days=30, default_lesson_duration=60))
    get_or_create_user("t1@example.com", UserRole.TEACHER.value, teacher_id=teacher.id)
    ids["teacher_id"] = teacher.id

    # weekly Mon-Fri 09:00-17:00 plus a Saturday morning next week
    for dow in range(5):
        get_or_create(AvailabilityRule, teacher_id=teacher.id, kind=RuleKind.WEEKLY, day_of_week=dow,
                      defaults=dict(start_time=time(9, 0), end_time=time(17, 0)))
    today = date.today()
    next_saturday = today + timedelta(days=(5 - today.weekday()) % 7 or 7)
    get_or_create(AvailabilityRule, teacher_id=teacher.id, kind=RuleKind.ONE_TIME, specific_date=next_saturday,
                  defaults=dict(start_time=time(10, 0), end_time=time(13, 0)))

    s_user = get_or_create_user("s1@example.com", UserRole.STUDENT.value)
    student, _ = get_or_create(Student, teacher_id=teacher.id, user_id=s_user.id,
                               defaults=dict(full_name="Max Bauer", email=s_user.email, credits=5))
    ids["student_id"] = student.id

    # one confirmed lesson two days out at 10:00 UTC
    start = datetime.combine(today + timedelta(days=2), time(10, 0))
    if not first_by(Lesson, teacher_id=teacher.id, start_time=start):
        db.session.add(Lesson(
            teacher_id=teacher.id, student_id=student.id, title=f"Lesson with {student.full_name}",
            start_time=start, end_time=start + timedelta(hours=1),
            status=LessonStatus.CONFIRMED, credits_used=1,
        ))

    db.session.commit()
    return ids

# ---- admin ----
def ensure_admin():
    if User.query.filter_by(email="admin@example.com").first():
        return False
    get_or_create_user("admin@example.com", UserRole.ADMIN.value)
    db.session.commit()
    return True

# ---- main ----
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="drop + create + full seed (demo)")
    parser.add_argument("--ensure-admin", action="store_true", help="create only admin@example.com")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
            ids = seed_demo()
            ensure_admin()
            print(f"[seed] reset+seed complete {ids}")
            return

        if args.ensure_admin:
            created = ensure_admin()
            print("Admin created." if created else "Admin already exists.")
            return

        db.create_all()
        ids = seed_demo()
        print(f"[seed] soft seed complete {ids}")

if __name__ == "__main__":
    main()
