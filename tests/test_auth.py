from __future__ import annotations
import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import Student, Teacher, User
from blueprints.auth import routes as auth_routes

@pytest.fixture()
def client_app():
    auth_routes._login_attempts.clear()
    app = create_app("test")
    app.config.update(AUTH_RL_MAX=3, AUTH_RL_WINDOW=60)  # tight limit for the test
    with app.app_context():
        db.create_all()
        t = Teacher(full_name="Anna Weber")
        db.session.add(t)
        db.session.flush()
        student_user = User(email="student@example.com", password_hash=generate_password_hash("studpass"),
                            role="STUDENT", is_active=True)
        db.session.add_all([
            User(email="admin@example.com", password_hash=generate_password_hash("adminpass"), role="ADMIN", is_active=True),
            User(email="teacher@example.com", password_hash=generate_password_hash("teachpass"), role="TEACHER",
                 is_active=True, teacher_id=t.id),
            User(email="gone@example.com", password_hash=generate_password_hash("gonepass"), role="TEACHER",
                 is_active=False),
            student_user,
        ])
        db.session.flush()
        db.session.add(Student(teacher_id=t.id, user_id=student_user.id, full_name="Max Bauer", credits=4))
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()
    auth_routes._login_attempts.clear()

@pytest.fixture()
def client(client_app):
    return client_app.test_client()

def _get_csrf(client):
    r = client.get("/api/v1/csrf")
    assert r.status_code == 200
    return r.get_json()["csrf"]

def _login(client, email, password):
    csrf = _get_csrf(client)
    return client.post("/api/v1/auth/login", json={"email": email, "password": password},
                       headers={"X-CSRF-Token": csrf}), csrf

def test_unauthorized_401(client):
    r = client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.get_json()["errors"][0]["code"] == "NOT_AUTHENTICATED"

def test_forbidden_403(client):
    r, _ = _login(client, "teacher@example.com", "teachpass")
    assert r.status_code == 200
    # student-only endpoint
    r2 = client.get("/api/v1/student/credits")
    assert r2.status_code == 403

def test_login_success_and_me(client):
    r, _ = _login(client, "student@example.com", "studpass")
    assert r.status_code == 200
    js = r.get_json()
    assert js["ok"] is True and js["user"]["role"] == "STUDENT"

    me = client.get("/api/v1/auth/me").get_json()
    assert me["students"][0]["credits"] == 4

def test_teacher_me_has_teacher_id(client):
    _login(client, "teacher@example.com", "teachpass")
    me = client.get("/api/v1/auth/me").get_json()
    assert me["role"] == "TEACHER" and me["teacher_id"] is not None

def test_wrong_password(client):
    r, _ = _login(client, "teacher@example.com", "nope")
    assert r.status_code == 401
    assert r.get_json()["error"] == "invalid_credentials"

def test_missing_credentials(client):
    r, _ = _login(client, "", "")
    assert r.status_code == 400

def test_inactive_user(client):
    r, _ = _login(client, "gone@example.com", "gonepass")
    assert r.status_code == 403

def test_login_requires_csrf(client):
    r = client.post("/api/v1/auth/login", json={"email": "teacher@example.com", "password": "teachpass"})
    assert r.status_code == 400
    assert r.get_json()["errors"][0]["code"] == "VALIDATION_ERROR"

def test_rate_limit_login(client):
    csrf = _get_csrf(client)
    for _ in range(3):  # AUTH_RL_MAX
        client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": "wrong"},
                    headers={"X-CSRF-Token": csrf})
    r2 = client.post("/api/v1/auth/login", json={"email": "x@example.com", "password": "wrong"},
                     headers={"X-CSRF-Token": csrf})
    assert r2.status_code == 429

def test_logout(client):
    r, csrf = _login(client, "teacher@example.com", "teachpass")
    assert r.status_code == 200
    r2 = client.post("/api/v1/auth/logout", headers={"X-CSRF-Token": csrf})
    assert r2.status_code == 200
    # protected resource is 401 again
    r3 = client.get("/api/v1/teacher/settings")
    assert r3.status_code == 401
