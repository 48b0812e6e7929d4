from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select
from starlette.websockets import WebSocketDisconnect

from georeport.models.enums import NotificationType
from georeport.models.notification import Notification, NotificationSettings


@pytest.fixture
def make_notification(session):
    def factory(user, title="Aviso", read=False, **fields):
        notification = Notification(
            user_id=user.id,
            type=NotificationType.reporte_asignado,
            title=title,
            message=f"{title} message",
            read=read,
            **fields,
        )
        session.add(notification)
        session.commit()
        session.refresh(notification)
        return notification

    return factory


def set_settings(session, user, **fields):
    session.add(NotificationSettings(user_id=user.id, **fields))
    session.commit()


class TestNotificationList:
    def test_list_and_count(self, client, member, member_headers, make_notification):
        make_notification(member, title="uno")
        make_notification(member, title="dos", read=True)

        body = client.get("/notifications/", headers=member_headers).json()
        assert len(body["notifications"]) == 2

        unread = client.get("/notifications/", params={"unread_only": True}, headers=member_headers).json()
        assert [n["title"] for n in unread["notifications"]] == ["uno"]

        assert client.get("/notifications/count", headers=member_headers).json() == {"count": 1}

    def test_only_own_notifications(self, client, admin, member_headers, make_notification):
        make_notification(admin)

        assert client.get("/notifications/", headers=member_headers).json()["notifications"] == []

    def test_disabled_notifications_are_hidden(self, client, session, member, member_headers, make_notification):
        make_notification(member)
        set_settings(session, member, enabled=False)

        assert client.get("/notifications/", headers=member_headers).json()["notifications"] == []


class TestMarkRead:
    def test_mark_read(self, client, session, member, member_headers, manager, make_notification):
        notification = make_notification(member)
        received = []
        manager.acquire(member.id, received.append)

        response = client.post(f"/notifications/{notification.id}/mark-read", headers=member_headers)

        assert response.json() == {"ok": True, "deleted": False}
        session.expire_all()
        assert session.get(Notification, notification.id).read is True
        assert received[0]["eventType"] == "UPDATE"
        assert received[0]["invalidate"] == ["notifications"]

    def test_auto_delete_read(self, client, session, member, member_headers, make_notification):
        notification = make_notification(member)
        set_settings(session, member, auto_delete_read=True)

        response = client.post(f"/notifications/{notification.id}/mark-read", headers=member_headers)

        assert response.json()["deleted"] is True
        session.expunge_all()
        assert session.exec(select(Notification).where(Notification.id == notification.id)).first() is None

    def test_disabled_rejects_mark_read(self, client, session, member, member_headers, make_notification):
        notification = make_notification(member)
        set_settings(session, member, enabled=False)

        response = client.post(f"/notifications/{notification.id}/mark-read", headers=member_headers)

        assert response.status_code == 400

    def test_cannot_touch_other_users_notification(self, client, admin, member_headers, make_notification):
        notification = make_notification(admin)

        response = client.post(f"/notifications/{notification.id}/mark-read", headers=member_headers)

        assert response.status_code == 404

    def test_mark_all_read(self, client, member, member_headers, make_notification):
        for i in range(3):
            make_notification(member, title=f"n{i}")

        assert client.post("/notifications/mark-all-read", headers=member_headers).json()["count"] == 3
        assert client.get("/notifications/count", headers=member_headers).json() == {"count": 0}


class TestNotificationBulk:
    def test_bulk_mark_read_only_touches_unread(self, client, session, member, member_headers, make_notification):
        unread = make_notification(member, title="unread")
        already = make_notification(member, title="read", read=True)

        response = client.post(
            "/notifications/bulk",
            json={"ids": [str(unread.id), str(already.id)], "action": "mark_read"},
            headers=member_headers,
        )

        body = response.json()
        assert body["succeeded"] == 1
        assert [r["id"] for r in body["results"]] == [str(unread.id)]

    def test_bulk_delete(self, client, session, member, member_headers, admin, make_notification):
        mine = [make_notification(member, title=f"n{i}") for i in range(2)]
        foreign = make_notification(admin)

        response = client.post(
            "/notifications/bulk",
            json={"ids": [str(n.id) for n in mine] + [str(foreign.id)], "action": "delete"},
            headers=member_headers,
        )

        body = response.json()
        assert body["succeeded"] == 2
        assert body["failed"] == 1

        session.expire_all()
        remaining = session.exec(select(Notification)).all()
        assert [n.id for n in remaining] == [foreign.id]

    def test_bulk_rejects_other_actions(self, client, member, member_headers, make_notification):
        notification = make_notification(member)

        response = client.post(
            "/notifications/bulk",
            json={"ids": [str(notification.id)], "action": "toggle_status"},
            headers=member_headers,
        )

        assert response.status_code == 400


class TestSettings:
    def test_defaults_are_created(self, client, member_headers):
        body = client.get("/notifications/settings", headers=member_headers).json()

        assert body["enabled"] is True
        assert body["auto_delete_read"] is False
        assert body["retention_days"] == 30

    def test_update(self, client, member_headers):
        response = client.put(
            "/notifications/settings",
            json={"retention_days": 7, "theme": "dark"},
            headers=member_headers,
        )

        assert response.json()["retention_days"] == 7
        assert response.json()["theme"] == "dark"

    def test_cleanup_removes_old_read_notifications(self, client, session, member, member_headers, make_notification):
        old = datetime.now(timezone.utc) - timedelta(days=45)
        make_notification(member, title="old read", read=True, created_at=old)
        make_notification(member, title="old unread", created_at=old)
        make_notification(member, title="recent read", read=True)

        assert client.post("/notifications/cleanup", headers=member_headers).json()["deleted"] == 1

        session.expire_all()
        titles = sorted(n.title for n in session.exec(select(Notification)).all())
        assert titles == ["old unread", "recent read"]


class TestNotificationSocket:
    def test_receives_insert_from_profile_update(self, client, manager, member, admin_headers, token_for):
        with client.websocket_connect(f"/notifications/ws?token={token_for(member)}") as ws:
            assert manager.subscriber_count(member.id) == 1

            response = client.patch(f"/users/{member.id}", json={"first_name": "Maxi"}, headers=admin_headers)
            assert response.status_code == 200

            message = ws.receive_json()

        assert message["eventType"] == "INSERT"
        assert message["new"]["type"] == "perfil_actualizado"
        assert message["toast"]["title"] == "Profile updated"

    def test_bulk_assignment_carries_toast(self, client, manager, admin, member, admin_headers, make_reporte):
        reporte = make_reporte(admin, nombre="Bache")
        received = []
        manager.acquire(member.id, received.append)

        response = client.post(
            "/reportes/bulk",
            json={"ids": [str(reporte.id)], "action": "change_assignment", "user_id": str(member.id)},
            headers=admin_headers,
        )
        assert response.json()["succeeded"] == 1

        [message] = received
        assert message["eventType"] == "INSERT"
        assert message["new"]["user_id"] == str(member.id)
        assert message["new"]["type"] == "reporte_asignado"
        assert message["toast"] == {"title": message["new"]["title"], "message": message["new"]["message"]}

    def test_disconnect_releases_subscription(self, client, manager, member, token_for):
        with client.websocket_connect(f"/notifications/ws?token={token_for(member)}"):
            assert manager.subscriber_count(member.id) == 1

        assert manager.subscriber_count(member.id) == 0

    def test_invalid_token_is_refused(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/notifications/ws?token=garbage") as ws:
                ws.receive_json()
