"""
Integration tests for the notification inbox.
"""

import pytest

from qmuter.app.models.notification import NotificationType
from qmuter.app.services.notification_service import NotificationService


@pytest.fixture
async def inbox(db_session):
    """Two notifications for riderB, one for driverA."""
    for user_id, eta in (("riderB", 9), ("riderB", 4), ("driverA", 3)):
        await NotificationService.create_notification(
            db_session, user_id, NotificationType.DRIVER_ETA,
            "Driver is close", f"About {eta} minutes away", {"trip_id": "trip1", "eta": eta},
        )
    await db_session.commit()


@pytest.mark.asyncio
async def test_list_only_own_notifications(client, auth_headers, inbox):
    response = await client.get("/v1/notifications", headers=auth_headers("riderB"))

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 2
    assert {n["user_id"] for n in body} == {"riderB"}
    assert all(n["is_read"] is False and n["read_at"] is None for n in body)


@pytest.mark.asyncio
async def test_mark_one_read(client, auth_headers, inbox):
    headers = auth_headers("riderB")
    notification_id = (await client.get("/v1/notifications", headers=headers)).json()[0]["id"]

    response = await client.patch(f"/v1/notifications/{notification_id}/read", headers=headers)
    assert response.status_code == 200

    unread = await client.get("/v1/notifications", params={"unread_only": True}, headers=headers)
    assert [n["id"] for n in unread.json()] != [notification_id]
    assert len(unread.json()) == 1


@pytest.mark.asyncio
async def test_cannot_mark_someone_elses(client, auth_headers, inbox):
    notification_id = (await client.get("/v1/notifications", headers=auth_headers("riderB"))).json()[0]["id"]

    response = await client.patch(f"/v1/notifications/{notification_id}/read", headers=auth_headers("driverA"))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_mark_all_read(client, auth_headers, inbox):
    response = await client.patch("/v1/notifications/read-all", headers=auth_headers("riderB"))

    assert response.status_code == 200
    assert response.json()["count"] == 2

    unread = await client.get("/v1/notifications", params={"unread_only": True}, headers=auth_headers("riderB"))
    assert unread.json() == []

    # Other users untouched
    other = await client.get("/v1/notifications", params={"unread_only": True}, headers=auth_headers("driverA"))
    assert len(other.json()) == 1
