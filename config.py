from __future__ import annotations
import os
from pathlib import Path

class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    BASE_DIR = Path(__file__).resolve().parent
    # SQLite file in project directory
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'app.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # rule times-of-day are interpreted in this zone
    SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "Europe/Berlin")

    # booking policy (teacher settings override the first two)
    BOOKING_MIN_ADVANCE_HOURS = 12
    BOOKING_MAX_DAYS = 30
    CANONICAL_SLOT_MINUTES = 60
    SUPPORTED_LESSON_DURATIONS = (60, 30)
    SLOT_BUFFER_MINUTES = 0
    BOOKING_CREDIT_COST = 1

    # login rate limit
    AUTH_RL_MAX = 5
    AUTH_RL_WINDOW = 300

    SEED_TEST_DATA = False
    DEFAULT_USERS: list[dict] = []

class DevConfig(BaseConfig):
    DEBUG = True
    SEED_TEST_DATA = True
    DEFAULT_USERS = [
        {"email": "admin@example.com", "password": "pass", "role": "ADMIN"},
        {"email": "t1@example.com",    "password": "pass", "role": "TEACHER",
         # linked to an existing Teacher by full name
         "teacher_full_name": "Anna Weber"},
        {"email": "s1@example.com",    "password": "pass", "role": "STUDENT"},
    ]

class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SEED_TEST_DATA = False
    DEFAULT_USERS = []

class ProdConfig(BaseConfig):
    DEBUG = False
    JSON_SORT_KEYS = False
    SEED_TEST_DATA = False
    DEFAULT_USERS = []

config_map = {
    "dev": DevConfig,
    "test": TestConfig,
    "prod": ProdConfig,
    "default": DevConfig,
}
