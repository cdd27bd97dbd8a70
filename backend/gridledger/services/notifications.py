from __future__ import annotations

from datetime import datetime, timezone
import logging

from anyio import from_thread
from sqlalchemy import select
from sqlalchemy.orm import Session

from gridledger.core.config import get_settings
from gridledger.models.notification import Notification, NotificationType
from gridledger.models.timetable import Timetable
from gridledger.models.user import User, UserRole
from gridledger.services.realtime import realtime_hub

logger = logging.getLogger(__name__)


def _safe_iso(value: datetime | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def notification_event(notification: Notification, *, event: str = "notification.created") -> dict:
    return {
        "event": event,
        "notification": {
            "id": notification.id,
            "user_id": notification.user_id,
            "title": notification.title,
            "message": notification.message,
            "notification_type": notification.notification_type.value,
            "related_timetable_id": notification.related_timetable_id,
            "is_read": notification.is_read,
            "created_at": _safe_iso(notification.created_at),
        },
    }


def push_realtime(notification: Notification, *, event: str = "notification.created") -> None:
    payload = notification_event(notification, event=event)
    try:
        from_thread.run(realtime_hub.push, notification.user_id, payload)
    except Exception:  # pragma: no cover - only works inside an anyio worker thread
        logger.debug("Unable to push realtime notification for user %s", notification.user_id, exc_info=True)


def publish_recipients(db: Session, publish_counter: int) -> list[User]:
    """First publish reaches the reviewing roles only; later publishes reach everyone."""
    query = select(User).where(User.is_active.is_(True))
    if publish_counter <= 1:
        roles = [UserRole(role) for role in get_settings().first_publish_recipient_roles]
        query = query.where(User.role.in_(roles))
    return list(db.execute(query.order_by(User.created_at, User.id)).scalars())


def publish_message(publish_counter: int, level: int) -> tuple[str, str]:
    title = f"Schedule Version {publish_counter} Published"
    if publish_counter <= 1:
        return title, f"Initial schedule for Level {level} has been published."
    return title, f"Updated schedule (v{publish_counter}) for Level {level} is now available."


def notify_publish(
    db: Session,
    *,
    recipients: list[User],
    publish_counter: int,
    level: int,
    timetable_id: str | None = None,
    deliver_realtime: bool = True,
) -> list[Notification]:
    title, message = publish_message(publish_counter, level)
    records: list[Notification] = []
    for recipient in recipients:
        record = Notification(
            user_id=recipient.id,
            title=title,
            message=message,
            notification_type=NotificationType.timetable,
            related_timetable_id=timetable_id,
        )
        db.add(record)
        records.append(record)
    db.flush()

    if deliver_realtime:
        for record in records:
            push_realtime(record)
    return records


def publish_notification_sink(db: Session, timetable: Timetable) -> list[Notification]:
    recipients = publish_recipients(db, timetable.publish_counter)
    return notify_publish(
        db,
        recipients=recipients,
        publish_counter=timetable.publish_counter,
        level=timetable.level,
        timetable_id=timetable.id,
    )
