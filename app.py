from __future__ import annotations
import os
from importlib import import_module
from flask import Flask
from config import config_map
from extensions import db, migrate, login_manager, csrf
from werkzeug.security import generate_password_hash
from sqlalchemy import inspect

def _seed_from_config(app):
    if not app.config.get("SEED_TEST_DATA"):
        return
    with app.app_context():
        # users may not exist yet (before `flask db upgrade`)
        if not inspect(db.engine).has_table("users"):
            return

        from models import User, Teacher, Student, UserRole
        created = 0
        for u in app.config.get("DEFAULT_USERS", []):
            if User.query.filter_by(email=u["email"]).first():
                continue
            user = User(
                email=u["email"],
                password_hash=generate_password_hash(u["password"]),
                role=u["role"],
                is_active=True,
            )
            tf = u.get("teacher_full_name")
            if tf:
                t = Teacher.query.filter_by(full_name=tf).first()
                if t:
                    user.teacher_id = t.id
            db.session.add(user)
            db.session.flush()
            if u["role"] == UserRole.STUDENT.value:
                # attach every student row registered under this email
                for s in Student.query.filter_by(email=u["email"], user_id=None).all():
                    s.user_id = user.id
            created += 1
        if created:
            db.session.commit()

def register_blueprints(app: Flask) -> None:
    # core routes must be imported before the bp is taken
    import_module("blueprints.core.routes")
    from blueprints.core import bp as core_bp, api_bp as core_api_bp
    from blueprints.auth.routes import api_bp as auth_api_bp
    from blueprints.availability.routes import api_bp as availability_api_bp
    from blueprints.bookings.routes import api_bp as bookings_api_bp
    from blueprints.lessons.routes import api_bp as lessons_api_bp
    from blueprints.constraints.routes import api_bp as constraints_api_bp
    from blueprints.notifications.routes import api_bp as notifications_api_bp

    # core without prefix: '/health' at the root
    app.register_blueprint(core_bp)
    app.register_blueprint(core_api_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_api_bp, url_prefix="/api/v1")
    app.register_blueprint(availability_api_bp, url_prefix="/api/v1")
    app.register_blueprint(bookings_api_bp, url_prefix="/api/v1")
    app.register_blueprint(lessons_api_bp, url_prefix="/api/v1")
    app.register_blueprint(constraints_api_bp, url_prefix="/api/v1")
    app.register_blueprint(notifications_api_bp, url_prefix="/api/v1")

def create_app(config_name: str | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.setdefault("SECRET_KEY", "change-me-in-prod")
    cfg_name = config_name or os.getenv("FLASK_CONFIG", "default")
    app.config.from_object(config_map[cfg_name])
    # pytest always sets PYTEST_CURRENT_TEST: keep every test on its own in-memory DB
    if os.environ.get("PYTEST_CURRENT_TEST"):
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"connect_args": {"check_same_thread": False}})
    app.config.setdefault("WTF_CSRF_TIME_LIMIT", None)
    app.config.setdefault("WTF_CSRF_CHECK_DEFAULT", True)
    app.config.setdefault("WTF_CSRF_HEADERS", ["X-CSRF-Token", "X-CSRFToken"])

    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError:
        pass
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    register_blueprints(app)
    _seed_from_config(app)
    return app
