import anyio

from gridledger.models.notification import Notification, NotificationType
from gridledger.models.user import User, UserRole
from gridledger.services.notifications import publish_message
from gridledger.services.realtime import RealtimeHub


def seed_committee(session_factory):
    with session_factory() as session:
        session.add(User(id="u-committee", name="Committee", email="committee@example.com", role=UserRole.committee))
        session.commit()


def test_publish_message_texts():
    assert publish_message(1, 4) == (
        "Schedule Version 1 Published",
        "Initial schedule for Level 4 has been published.",
    )
    assert publish_message(3, 4) == (
        "Schedule Version 3 Published",
        "Updated schedule (v3) for Level 4 is now available.",
    )


def test_mark_notification_read(client, session_factory):
    with session_factory() as session:
        session.add(
            Notification(
                id="n-1",
                user_id="u-committee",
                title="Schedule Version 1 Published",
                message="Initial schedule for Level 4 has been published.",
                notification_type=NotificationType.timetable,
            )
        )
        session.commit()

    wrong_user = client.post("/api/notifications/n-1/read", params={"user_id": "u-other"})
    assert wrong_user.status_code == 404

    response = client.post("/api/notifications/n-1/read", params={"user_id": "u-committee"})
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    unread = client.get("/api/notifications", params={"user_id": "u-committee", "is_read": False}).json()
    assert unread == []


def test_publish_pushes_realtime_notification(client, session_factory, grid_payload):
    seed_committee(session_factory)
    created = client.post(
        "/api/timetables",
        json={"level": 4, "section": "A", "grid": grid_payload({("Sunday", "8:00-8:50"): "CSC111"})},
    ).json()

    with client.websocket_connect("/api/notifications/ws/u-committee") as websocket:
        connected = websocket.receive_json()
        assert connected == {"event": "connected", "user_id": "u-committee"}

        websocket.send_text("ping")
        assert websocket.receive_json() == {"event": "pong"}

        response = client.post(f"/api/timetables/{created['id']}/publish")
        assert response.status_code == 200

        event = websocket.receive_json()
        assert event["event"] == "notification.created"
        assert event["notification"]["title"] == "Schedule Version 1 Published"
        assert event["notification"]["related_timetable_id"] == created["id"]


def test_hub_push_without_subscribers_delivers_nothing():
    hub = RealtimeHub()

    async def push():
        return await hub.push("nobody", {"event": "notification.created"})

    assert anyio.run(push) == 0
    assert hub.subscriber_count("nobody") == 0
