"""
In-app notifications: listing, read state and cleanup
"""
from sqlmodel import Session

from supportdesk.config import engine
from supportdesk.services import NotificationService


def notify(user, count=1, **fields):
    fields.setdefault("type", "case_status_updated")
    fields.setdefault("title", "Case Status Updated")
    with Session(engine, expire_on_commit=False) as session:
        service = NotificationService(session)
        return [
            service.create(recipient_id=user.id, message=f"update {i}", **fields)
            for i in range(count)
        ]


def test_list_notifications(client, make_user, headers):
    user = make_user()
    notify(user, 3, extra={"status": "active"})
    notify(make_user(), 2)

    body = client.get("/api/notifications", params={"limit": 2}, headers=headers(user)).json()
    assert body["total"] == 3
    assert body["unreadCount"] == 3
    assert len(body["notifications"]) == 2
    assert body["notifications"][0]["message"] == "update 2"
    assert body["notifications"][0]["metadata"] == {"status": "active"}


def test_unread_only_and_count(client, make_user, headers):
    user = make_user()
    first, _ = notify(user, 2)

    response = client.patch(f"/api/notifications/{first.id}/read", headers=headers(user))
    assert response.status_code == 200
    assert response.json()["read"] is True

    assert client.get("/api/notifications/unread-count", headers=headers(user)).json() == {"count": 1}
    body = client.get("/api/notifications", params={"unread_only": True}, headers=headers(user)).json()
    assert body["total"] == 1


def test_cannot_touch_someone_elses_notification(client, make_user, headers):
    owner = make_user()
    (notification,) = notify(owner)
    intruder = make_user()

    assert client.patch(f"/api/notifications/{notification.id}/read", headers=headers(intruder)).status_code == 404
    assert client.delete(f"/api/notifications/{notification.id}", headers=headers(intruder)).status_code == 404


def test_mark_all_read(client, make_user, headers):
    user = make_user()
    notify(user, 3)

    response = client.patch("/api/notifications/mark-all-read", headers=headers(user))
    assert response.json()["modifiedCount"] == 3
    assert client.get("/api/notifications/unread-count", headers=headers(user)).json()["count"] == 0


def test_delete_and_clear_read(client, make_user, headers):
    user = make_user()
    first, second, third = notify(user, 3)

    assert client.delete(f"/api/notifications/{first.id}", headers=headers(user)).status_code == 200
    client.patch(f"/api/notifications/{second.id}/read", headers=headers(user))

    response = client.delete("/api/notifications/clear-read", headers=headers(user))
    assert response.status_code == 200
    assert response.json()["deletedCount"] == 1

    body = client.get("/api/notifications", headers=headers(user)).json()
    assert [n["id"] for n in body["notifications"]] == [third.id]
