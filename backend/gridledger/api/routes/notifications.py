from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from gridledger.api.deps import get_db
from gridledger.models.notification import Notification, NotificationType
from gridledger.schemas.notification import NotificationOut
from gridledger.services.audit import log_activity
from gridledger.services.notifications import push_realtime
from gridledger.services.realtime import realtime_hub

router = APIRouter()


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    user_id: str = Query(..., min_length=1),
    notification_type: NotificationType | None = Query(default=None),
    is_read: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    query = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id)
    )
    if notification_type:
        query = query.where(Notification.notification_type == notification_type)
    if is_read is not None:
        query = query.where(Notification.is_read == is_read)
    query = query.offset(offset).limit(limit)
    return list(db.execute(query).scalars())


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: str,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.is_read = True
    log_activity(
        db,
        actor_id=user_id,
        action="notification.read",
        timetable_id=notification.related_timetable_id,
        details={"notification_id": notification_id},
    )
    db.commit()
    db.refresh(notification)
    push_realtime(notification, event="notification.read")
    return notification


@router.websocket("/notifications/ws/{user_id}")
async def notifications_websocket(websocket: WebSocket, user_id: str) -> None:
    await realtime_hub.subscribe(user_id, websocket)
    try:
        await websocket.send_json({"event": "connected", "user_id": user_id})
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await realtime_hub.unsubscribe(user_id, websocket)
