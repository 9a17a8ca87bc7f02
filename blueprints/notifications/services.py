# blueprints/notifications/services.py
from __future__ import annotations
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Notification

log = logging.getLogger(__name__)

TEACHER = "teacher"
STUDENT = "student"


def emit(event_type: str, recipient_kind: str, recipient_id: int,
         source_id: Optional[int] = None, payload: Optional[dict[str, Any]] = None) -> Optional[Notification]:
    """
    Fire-and-forget: persists the event for the recipient.
    Must be called after the business write is committed; a failure here is logged and dropped.
    """
    try:
        n = Notification(
            recipient_kind=recipient_kind,
            recipient_id=recipient_id,
            type=event_type,
            source_id=source_id,
            payload=payload or {},
        )
        db.session.add(n)
        db.session.commit()
        return n
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("notification insert failed",
                      extra={"event": "notification_failed", "action": event_type})
        return None


def inbox(recipient_kind: str, recipient_ids: list[int], limit: int = 50) -> list[dict]:
    if not recipient_ids:
        return []
    rows = (Notification.query
            .filter(Notification.recipient_kind == recipient_kind,
                    Notification.recipient_id.in_(recipient_ids))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all())
    return [{
        "id": n.id,
        "type": n.type,
        "source_id": n.source_id,
        "payload": n.payload,
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat(),
    } for n in rows]
