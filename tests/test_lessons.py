from __future__ import annotations
from datetime import datetime, timedelta, UTC

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import Lesson, LessonStatus, LessonStudent, Notification, Student, Teacher, User
from blueprints.core.errors import ConflictError, NotFoundError, ValidationError
from blueprints.lessons import services as svc

NOW = datetime(2030, 1, 1, 8, 0, tzinfo=UTC)
START = datetime(2030, 1, 7, 9, 0, tzinfo=UTC)


@pytest.fixture()
def app_ctx():
    app = create_app("test")
    app.config.update(SCHEDULE_TIMEZONE="UTC", AUTH_RL_MAX=1000)
    with app.app_context():
        db.create_all()
        t = Teacher(full_name="Anna Weber")
        db.session.add(t)
        db.session.flush()
        su = User(email="s1@example.com", password_hash=generate_password_hash("pass"), role="STUDENT")
        tu = User(email="t1@example.com", password_hash=generate_password_hash("pass"), role="TEACHER",
                  teacher_id=t.id)
        db.session.add_all([su, tu])
        db.session.flush()
        db.session.add_all([
            Student(teacher_id=t.id, user_id=su.id, full_name="Max Bauer", credits=3),
            Student(teacher_id=t.id, full_name="Lea Vogel", credits=3),
            Student(teacher_id=t.id, full_name="Tom Lang", credits=3),
        ])
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


def _ids():
    t = Teacher.query.first()
    st = {s.full_name: s.id for s in Student.query.all()}
    return t.id, st


def _lesson(status=LessonStatus.PENDING, start=START, minutes=60, student="Max Bauer"):
    tid, st = _ids()
    l = Lesson(teacher_id=tid, student_id=st[student], title="Lesson",
               start_time=start.replace(tzinfo=None),
               end_time=(start + timedelta(minutes=minutes)).replace(tzinfo=None),
               status=status)
    db.session.add(l)
    db.session.commit()
    return l.id


# ---------- student transitions ----------
def test_accept_pending(app_ctx):
    lid = _lesson()
    _, st = _ids()
    out = svc.transition_lesson(lid, "accept", actor_student_ids=[st["Max Bauer"]], now=NOW)
    assert out.status == LessonStatus.CONFIRMED
    n = Notification.query.filter_by(type="lesson_confirmed").one()
    assert n.recipient_kind == "teacher" and n.source_id == lid


def test_decline_pending(app_ctx):
    lid = _lesson()
    _, st = _ids()
    out = svc.transition_lesson(lid, "decline", actor_student_ids=[st["Max Bauer"]], now=NOW)
    assert out.status == LessonStatus.CANCELLED
    assert Notification.query.filter_by(type="lesson_declined").count() == 1


def test_cancel_confirmed(app_ctx):
    lid = _lesson(status=LessonStatus.CONFIRMED)
    _, st = _ids()
    out = svc.transition_lesson(lid, "cancel", actor_student_ids=[st["Max Bauer"]], now=NOW)
    assert out.status == LessonStatus.CANCELLED


def test_student_cannot_cancel_pending(app_ctx):
    lid = _lesson()
    _, st = _ids()
    with pytest.raises(ConflictError) as ei:
        svc.transition_lesson(lid, "cancel", actor_student_ids=[st["Max Bauer"]], now=NOW)
    assert ei.value.reason == ConflictError.INVALID_STATE


def test_accept_after_start_is_rejected(app_ctx):
    lid = _lesson()
    _, st = _ids()
    with pytest.raises(ConflictError) as ei:
        svc.transition_lesson(lid, "accept", actor_student_ids=[st["Max Bauer"]],
                              now=START + timedelta(minutes=1))
    assert ei.value.reason == ConflictError.LESSON_STARTED
    assert db.session.get(Lesson, lid).status == LessonStatus.PENDING


def test_accept_rejected_when_overlap_appeared(app_ctx):
    _lesson(status=LessonStatus.CONFIRMED, start=START + timedelta(minutes=30), student="Lea Vogel")
    lid = _lesson()
    _, st = _ids()
    with pytest.raises(ConflictError) as ei:
        svc.transition_lesson(lid, "accept", actor_student_ids=[st["Max Bauer"]], now=NOW)
    assert ei.value.reason == ConflictError.OVERLAP
    assert db.session.get(Lesson, lid).status == LessonStatus.PENDING


def test_unknown_action(app_ctx):
    lid = _lesson()
    _, st = _ids()
    with pytest.raises(ValidationError):
        svc.transition_lesson(lid, "reschedule", actor_student_ids=[st["Max Bauer"]], now=NOW)


def test_lesson_of_someone_else_is_not_found(app_ctx):
    lid = _lesson()
    _, st = _ids()
    with pytest.raises(NotFoundError):
        svc.transition_lesson(lid, "accept", actor_student_ids=[st["Lea Vogel"]], now=NOW)


def test_group_participant_may_answer(app_ctx):
    lid = _lesson(student="Lea Vogel")
    _, st = _ids()
    db.session.add(LessonStudent(lesson_id=lid, student_id=st["Max Bauer"]))
    db.session.commit()
    out = svc.transition_lesson(lid, "decline", actor_student_ids=[st["Max Bauer"]], now=NOW)
    assert out.status == LessonStatus.CANCELLED


# ---------- teacher cancel ----------
def test_teacher_cancels_pending(app_ctx):
    lid = _lesson()
    tid, _ = _ids()
    out = svc.transition_lesson(lid, "cancel", actor_teacher_id=tid, now=NOW)
    assert out.status == LessonStatus.CANCELLED
    n = Notification.query.filter_by(type="lesson_cancelled").one()
    assert n.recipient_kind == "student"


def test_teacher_cannot_cancel_foreign_lesson(app_ctx):
    lid = _lesson()
    other = Teacher(full_name="Other")
    db.session.add(other)
    db.session.commit()
    with pytest.raises(NotFoundError):
        svc.transition_lesson(lid, "cancel", actor_teacher_id=other.id, now=NOW)


def test_teacher_cannot_accept(app_ctx):
    lid = _lesson()
    tid, _ = _ids()
    with pytest.raises(ValidationError):
        svc.transition_lesson(lid, "accept", actor_teacher_id=tid, now=NOW)


def test_cancelled_lesson_is_terminal(app_ctx):
    lid = _lesson(status=LessonStatus.CANCELLED)
    tid, _ = _ids()
    with pytest.raises(ConflictError):
        svc.transition_lesson(lid, "cancel", actor_teacher_id=tid, now=NOW)


# ---------- teacher scheduling ----------
def test_schedule_group_lesson(app_ctx):
    tid, st = _ids()
    lesson = svc.schedule_lesson(tid, st["Max Bauer"], START, START + timedelta(hours=1), "Group session",
                                 additional_student_ids=[st["Lea Vogel"], st["Max Bauer"]], now=NOW)
    assert lesson.status == LessonStatus.PENDING
    assert [p.student_id for p in lesson.participants] == [st["Lea Vogel"]]
    assert db.session.get(Student, st["Max Bauer"]).credits == 3
    assert Notification.query.filter_by(type="lesson_scheduled").count() == 1


def test_schedule_confirmed_on_request(app_ctx):
    tid, st = _ids()
    lesson = svc.schedule_lesson(tid, st["Tom Lang"], START, START + timedelta(minutes=30), "Review",
                                 status=LessonStatus.CONFIRMED, now=NOW)
    assert lesson.status == LessonStatus.CONFIRMED


def test_overlap_is_scoped_to_participants(app_ctx):
    tid, st = _ids()
    svc.schedule_lesson(tid, st["Max Bauer"], START, START + timedelta(hours=1), "Group",
                        additional_student_ids=[st["Lea Vogel"]], now=NOW)
    other = Teacher(full_name="Other")
    db.session.add(other)
    db.session.flush()
    lea_other = Student(teacher_id=other.id, full_name="Lea Vogel", credits=0)
    db.session.add(lea_other)
    db.session.commit()
    # different teacher, but Lea's row there is not a sibling (no account) -> free
    svc.schedule_lesson(other.id, lea_other.id, START, START + timedelta(hours=1), "Solo", now=NOW)

    # same teacher, any overlapping time -> conflict via the teacher
    with pytest.raises(ConflictError):
        svc.schedule_lesson(tid, st["Tom Lang"], START + timedelta(minutes=30),
                            START + timedelta(minutes=90), "Late", now=NOW)


@pytest.mark.parametrize("kwargs,exc", [
    (dict(end_delta=timedelta(0)), ValidationError),
    (dict(credits_used=0), ValidationError),
    (dict(start=NOW - timedelta(hours=1)), ConflictError),
    (dict(extra=[424242]), NotFoundError),
])
def test_schedule_validation(app_ctx, kwargs, exc):
    tid, st = _ids()
    start = kwargs.get("start", START)
    end = start + kwargs.get("end_delta", timedelta(hours=1))
    with pytest.raises(exc):
        svc.schedule_lesson(tid, st["Max Bauer"], start, end, "x",
                            additional_student_ids=kwargs.get("extra", []),
                            credits_used=kwargs.get("credits_used", 1), now=NOW)


# ---------- HTTP ----------
def _login(client, email, password="pass"):
    token = client.get("/api/v1/csrf").get_json()["csrf"]
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password},
                    headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    return {"X-CSRF-Token": token}


def test_api_teacher_schedules_and_student_accepts(app_ctx):
    tid, st = _ids()
    start = datetime.now(UTC).replace(microsecond=0) + timedelta(days=3)

    teacher = app_ctx.test_client()
    h = _login(teacher, "t1@example.com")
    r = teacher.post("/api/v1/teacher/lessons", headers=h, json={
        "student_id": st["Max Bauer"],
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=1)).isoformat(),
        "title": "Algebra",
    })
    assert r.status_code == 201, r.get_json()
    lesson = r.get_json()["lesson"]
    assert lesson["status"] == "pending"

    student = app_ctx.test_client()
    hs = _login(student, "s1@example.com")
    r = student.post(f"/api/v1/student/lessons/{lesson['id']}/status", headers=hs, json={"action": "ACCEPT"})
    assert r.status_code == 200
    assert r.get_json()["lesson"]["status"] == "confirmed"

    inbox = teacher.get("/api/v1/notifications").get_json()["items"]
    assert [n["type"] for n in inbox] == ["lesson_confirmed"]

    r = teacher.post(f"/api/v1/teacher/lessons/{lesson['id']}/cancel", headers=h)
    assert r.status_code == 200
    assert r.get_json()["lesson"]["status"] == "cancelled"

    types = [n["type"] for n in student.get("/api/v1/notifications").get_json()["items"]]
    assert types == ["lesson_cancelled", "lesson_scheduled"]


def test_api_student_cannot_schedule(app_ctx):
    _, st = _ids()
    client = app_ctx.test_client()
    h = _login(client, "s1@example.com")
    r = client.post("/api/v1/teacher/lessons", headers=h, json={
        "student_id": st["Max Bauer"],
        "start_time": "2030-01-07T09:00:00+00:00",
        "end_time": "2030-01-07T10:00:00+00:00",
        "title": "x",
    })
    assert r.status_code == 403


def test_api_status_of_unknown_lesson(app_ctx):
    client = app_ctx.test_client()
    h = _login(client, "s1@example.com")
    r = client.post("/api/v1/student/lessons/999/status", headers=h, json={"action": "accept"})
    assert r.status_code == 404
    assert r.get_json()["errors"][0]["code"] == "NOT_FOUND"
