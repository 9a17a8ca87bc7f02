# blueprints/core/errors.py
from __future__ import annotations
import logging
from typing import Any

import pydantic
from flask import jsonify
from flask_wtf.csrf import CSRFError
from sqlalchemy.exc import SQLAlchemyError

log = logging.getLogger(__name__)


class EngineError(Exception):
    """Base of every business error surfaced by the booking engine."""
    status = 500
    code = "ENGINE_ERROR"

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict:
        out = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(EngineError):
    status = 400
    code = "VALIDATION_ERROR"

    @classmethod
    def from_pydantic(cls, ve: pydantic.ValidationError) -> "ValidationError":
        errs = []
        for e in ve.errors():
            errs.append({
                "field": ".".join(str(p) for p in e.get("loc", ())),
                "msg": e.get("msg"),
            })
        return cls("Invalid request payload", errors=errs)


class NotAuthenticatedError(EngineError):
    status = 401
    code = "NOT_AUTHENTICATED"


class NotFoundError(EngineError):
    status = 404
    code = "NOT_FOUND"


class ConflictError(EngineError):
    status = 409
    code = "CONFLICT"

    # details["reason"]
    OUTSIDE_BOOKING_WINDOW = "OUTSIDE_BOOKING_WINDOW"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    OVERLAP = "OVERLAP"
    LESSON_STARTED = "LESSON_STARTED"
    INVALID_STATE = "INVALID_STATE"

    @property
    def reason(self) -> str | None:
        return self.details.get("reason")


class InsufficientCreditsError(EngineError):
    status = 402
    code = "INSUFFICIENT_CREDITS"


class InternalError(EngineError):
    status = 500
    code = "INTERNAL_ERROR"


def _error_response(err: EngineError):
    return jsonify({"ok": False, "errors": [err.to_dict()]}), err.status


def register_error_handlers(app) -> None:
    @app.errorhandler(EngineError)
    def _engine_error(err: EngineError):
        if isinstance(err, InternalError):
            log.error("internal error: %s", err.message, extra={"event": "internal_error"})
        return _error_response(err)

    @app.errorhandler(pydantic.ValidationError)
    def _schema_error(ve: pydantic.ValidationError):
        return _error_response(ValidationError.from_pydantic(ve))

    @app.errorhandler(CSRFError)
    def _csrf_error(e: CSRFError):
        return _error_response(ValidationError(e.description or "CSRF token missing or invalid"))

    @app.errorhandler(SQLAlchemyError)
    def _storage_error(e: SQLAlchemyError):
        log.exception("unhandled storage error")
        return _error_response(InternalError("Storage failure, please retry"))

    @app.errorhandler(403)
    def _forbidden(e):
        return jsonify({"ok": False, "errors": [{"code": "FORBIDDEN", "message": "forbidden"}]}), 403

    @app.errorhandler(404)
    def _not_found(e):
        return _error_response(NotFoundError("Resource not found"))
