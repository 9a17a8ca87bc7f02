from __future__ import annotations
import json, logging
from datetime import datetime, UTC

from flask import g, jsonify, request
from flask_wtf.csrf import generate_csrf
from werkzeug.wrappers.response import Response

from extensions import csrf
from . import bp, api_bp
from .errors import register_error_handlers

LOG_FIELDS = ("event", "path", "method", "status", "duration_ms",
              "lesson_id", "teacher_id", "student_id", "action", "reason")

class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in LOG_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

def _setup_structured_logging(app):
    logger = app.logger
    has_json = any(
        isinstance(h, logging.StreamHandler)
        and isinstance(getattr(h, "formatter", None), JSONFormatter)
        for h in logger.handlers
    )
    if not has_json:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        # service modules log under their own names
        for name in ("blueprints",):
            svc_logger = logging.getLogger(name)
            svc_logger.addHandler(handler)
            svc_logger.setLevel(logging.INFO)

@api_bp.get("/csrf")
@csrf.exempt
def get_csrf():
    token = generate_csrf()
    resp = jsonify({"csrf": token})
    resp.set_cookie("csrf_token", token, samesite="Lax")
    return resp

@bp.before_app_request
def _start_timer():
    g._req_start = datetime.now(UTC)

@bp.after_app_request
def _log_request(response: Response):
    try:
        duration_ms = int((datetime.now(UTC) - g._req_start).total_seconds() * 1000)
    except AttributeError:
        duration_ms = None
    extra = {
        "event": "http_request",
        "path": request.path,
        "method": request.method,
        "status": response.status_code,
        "duration_ms": duration_ms,
    }
    logging.getLogger("blueprints.core").info("request handled", extra=extra)
    return response

@bp.record_once
def _on_register(state):
    app = state.app
    _setup_structured_logging(app)
    register_error_handlers(app)

@bp.get("/health")
def health():
    return jsonify({
        "status": "ok",
        "ts": datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z"),
    })
