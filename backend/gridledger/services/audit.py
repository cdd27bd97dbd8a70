from __future__ import annotations

from sqlalchemy.orm import Session

from gridledger.models.activity_log import ActivityLog


def log_activity(
    db: Session,
    *,
    actor_id: str | None,
    action: str,
    timetable_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    record = ActivityLog(
        actor_id=actor_id,
        action=action,
        timetable_id=timetable_id,
        details=details or {},
    )
    db.add(record)
    return record
