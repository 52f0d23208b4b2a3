"""
Tests for in-app notification storage: creation, paging and read state.
"""

import pytest

from localdink.database.models import NotificationType
from localdink.services import notification_service
from localdink.services.errors import NotFoundError, PermissionDeniedError


async def _create(session, recipient_id="p2", title="Game invite", **kwargs):
    return await notification_service.create_notification(
        session,
        recipient_id=recipient_id,
        type=kwargs.pop("type", NotificationType.GAME_INVITE.value),
        title=title,
        body=kwargs.pop("body", "Doubles on Thu, Jun 4"),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_create_notification_defaults(db_session):
    notification = await _create(db_session, data={"game_session_id": "gs1"}, link_url="/dashboard")

    assert notification["id"]
    assert notification["read"] is False
    assert notification["read_at"] is None
    assert notification["channels"] == ["in_app"]
    assert notification["data"] == {"game_session_id": "gs1"}
    assert notification["link_url"] == "/dashboard"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"recipient_id": ""}, "recipient_id is required"),
        ({"type": "NEWSLETTER"}, "Unknown notification type"),
        ({"title": ""}, "title is required"),
        ({"body": ""}, "body is required"),
    ],
)
async def test_create_notification_validation(db_session, overrides, message):
    with pytest.raises(ValueError, match=message):
        await _create(db_session, **overrides)


@pytest.mark.asyncio
async def test_bulk_create_validates_everything_first(db_session):
    with pytest.raises(ValueError):
        await notification_service.create_notifications_bulk(
            db_session,
            [
                {"recipient_id": "p2", "type": "GAME_INVITE", "title": "a", "body": "b"},
                {"recipient_id": "p3", "type": "GAME_INVITE", "title": "", "body": "b"},
            ],
        )
    assert (await notification_service.get_notifications(db_session, "p2"))["total_count"] == 0


@pytest.mark.asyncio
async def test_bulk_create(db_session):
    created = await notification_service.create_notifications_bulk(
        db_session,
        [
            {"recipient_id": "p2", "type": "GAME_REMINDER", "title": "Soon", "body": "Game in 2h"},
            {"recipient_id": "p3", "type": "GAME_REMINDER", "title": "Soon", "body": "Game in 2h"},
        ],
    )
    assert [n["recipient_id"] for n in created] == ["p2", "p3"]
    assert await notification_service.create_notifications_bulk(db_session, []) == []


@pytest.mark.asyncio
async def test_paging_caps_page_size(db_session):
    for i in range(55):
        await _create(db_session, title=f"n{i}")

    page = await notification_service.get_notifications(db_session, "p2", limit=500)
    assert len(page["notifications"]) == notification_service.MAX_PAGE_SIZE
    assert page["total_count"] == 55
    assert page["has_more"] is True

    last = await notification_service.get_notifications(db_session, "p2", limit=10, offset=50)
    assert len(last["notifications"]) == 5
    assert last["has_more"] is False


@pytest.mark.asyncio
async def test_notifications_are_scoped_to_recipient(db_session):
    await _create(db_session, recipient_id="p2")
    await _create(db_session, recipient_id="p3")

    page = await notification_service.get_notifications(db_session, "p3")
    assert page["total_count"] == 1
    assert page["notifications"][0]["recipient_id"] == "p3"


@pytest.mark.asyncio
async def test_mark_as_read_and_unread_count(db_session):
    first = await _create(db_session)
    await _create(db_session)
    assert await notification_service.get_unread_count(db_session, "p2") == 2

    updated = await notification_service.mark_as_read(db_session, first["id"], "p2")
    assert updated["read"] is True
    assert updated["read_at"] is not None
    assert await notification_service.get_unread_count(db_session, "p2") == 1

    unread = await notification_service.get_notifications(db_session, "p2", unread_only=True)
    assert unread["total_count"] == 1


@pytest.mark.asyncio
async def test_mark_as_read_rejects_other_players(db_session):
    notification = await _create(db_session, recipient_id="p2")

    with pytest.raises(PermissionDeniedError) as exc_info:
        await notification_service.mark_as_read(db_session, notification["id"], "p3")
    assert exc_info.value.collection == "notifications"
    assert exc_info.value.is_critical is False


@pytest.mark.asyncio
async def test_mark_as_read_missing(db_session):
    with pytest.raises(NotFoundError):
        await notification_service.mark_as_read(db_session, "missing", "p2")


@pytest.mark.asyncio
async def test_mark_all_as_read(db_session):
    for _ in range(3):
        await _create(db_session, recipient_id="p2")
    await _create(db_session, recipient_id="p3")

    assert await notification_service.mark_all_as_read(db_session, "p2") == 3
    assert await notification_service.get_unread_count(db_session, "p2") == 0
    assert await notification_service.get_unread_count(db_session, "p3") == 1
    assert await notification_service.mark_all_as_read(db_session, "p2") == 0


@pytest.mark.asyncio
async def test_add_channel_is_idempotent(db_session):
    notification = await _create(db_session)

    await notification_service.add_channel(db_session, notification["id"], "sms")
    await notification_service.add_channel(db_session, notification["id"], "sms")

    stored = await notification_service.get_notifications(db_session, "p2")
    assert stored["notifications"][0]["channels"] == ["in_app", "sms"]
