"""
Notification service for managing in-app notifications.

Handles creation, retrieval, and status updates for notification documents.
Delivery decisions (preferences, SMS) live in notification_router.
"""

import os
import logging
from typing import List, Dict, Optional
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from localdink.database.models import Notification, NotificationType, NotificationChannel
from localdink.services.errors import NotFoundError, PermissionDeniedError
from localdink.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50
NOTIFICATION_TTL_DAYS = os.getenv("NOTIFICATION_TTL_DAYS")

_VALID_TYPES = {t.value for t in NotificationType}


def notification_to_dict(notification: Notification) -> Dict:
    """Serialize a Notification row for API responses and WebSocket pushes."""
    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "type": notification.type,
        "title": notification.title,
        "body": notification.body,
        "data": notification.data,
        "link_url": notification.link_url,
        "read": notification.read,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
        "channels": list(notification.channels or []),
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "expires_at": notification.expires_at.isoformat() if notification.expires_at else None,
    }


def _expiry():
    if not NOTIFICATION_TTL_DAYS:
        return None
    try:
        return utcnow() + timedelta(days=float(NOTIFICATION_TTL_DAYS))
    except ValueError:
        logger.warning(f"Invalid NOTIFICATION_TTL_DAYS value: {NOTIFICATION_TTL_DAYS}")
        return None


def _validate(recipient_id, type, title, body):
    if not recipient_id:
        raise ValueError("recipient_id is required")
    if not type:
        raise ValueError("type is required")
    if type not in _VALID_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    if not title:
        raise ValueError("title is required")
    if not body:
        raise ValueError("body is required")


async def _broadcast(notification_dict: Dict) -> None:
    try:
        from localdink.services.websocket_manager import get_websocket_manager
        manager = get_websocket_manager()
        await manager.send_to_user(
            notification_dict["recipient_id"],
            {"type": "notification", "notification": notification_dict},
        )
    except Exception as e:
        logger.warning(
            f"Failed to broadcast notification via WebSocket for player "
            f"{notification_dict['recipient_id']}: {e}"
        )


async def create_notification(
    session: AsyncSession,
    recipient_id: str,
    type: str,
    title: str,
    body: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None,
    channels: Optional[List[str]] = None,
) -> Dict:
    """
    Create a single notification for a player.

    Args:
        session: Database session
        recipient_id: ID of the player to notify
        type: NotificationType value
        title: Notification title
        body: Notification body text
        data: Optional structured payload
        link_url: Optional URL for navigation when the notification is opened
        channels: Channels used so far (defaults to in-app only)

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing or invalid
    """
    _validate(recipient_id, type, title, body)

    notification = Notification(
        recipient_id=recipient_id,
        type=type,
        title=title,
        body=body,
        data=data,
        link_url=link_url,
        read=False,
        channels=list(channels) if channels is not None else [NotificationChannel.IN_APP.value],
        expires_at=_expiry(),
    )
    session.add(notification)
    await session.flush()
    await session.refresh(notification)

    notification_dict = notification_to_dict(notification)
    await _broadcast(notification_dict)
    return notification_dict


async def create_notifications_bulk(
    session: AsyncSession,
    notifications_list: List[Dict],
) -> List[Dict]:
    """
    Create several notifications in one flush.

    Each entry needs recipient_id, type, title and body; data and link_url
    are optional. All entries are validated before anything is written.
    """
    if not notifications_list:
        return []

    for notif_data in notifications_list:
        _validate(
            notif_data.get("recipient_id"),
            notif_data.get("type"),
            notif_data.get("title"),
            notif_data.get("body"),
        )

    expires_at = _expiry()
    notification_objects = [
        Notification(
            recipient_id=notif_data["recipient_id"],
            type=notif_data["type"],
            title=notif_data["title"],
            body=notif_data["body"],
            data=notif_data.get("data"),
            link_url=notif_data.get("link_url"),
            read=False,
            channels=[NotificationChannel.IN_APP.value],
            expires_at=expires_at,
        )
        for notif_data in notifications_list
    ]
    session.add_all(notification_objects)
    await session.flush()
    for notif in notification_objects:
        await session.refresh(notif)

    notification_dicts = [notification_to_dict(n) for n in notification_objects]
    for notif_dict in notification_dicts:
        await _broadcast(notif_dict)
    return notification_dicts


async def add_channel(session: AsyncSession, notification_id: str, channel: str) -> None:
    """Record that a notification was also delivered on another channel."""
    notification = await session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification", notification_id)
    channels = list(notification.channels or [])
    if channel not in channels:
        # Reassign so the JSON column is marked dirty
        notification.channels = channels + [channel]
        await session.flush()


async def get_notifications(
    session: AsyncSession,
    recipient_id: str,
    limit: int = MAX_PAGE_SIZE,
    offset: int = 0,
    unread_only: bool = False,
) -> Dict:
    """
    Fetch a player's notifications, newest first.

    Returns:
        Dict containing:
            - notifications: List of notification dicts
            - total_count: Number of notifications matching the filter
            - has_more: Whether further pages exist
    """
    limit = max(0, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    query = select(Notification).where(Notification.recipient_id == recipient_id)
    if unread_only:
        query = query.where(Notification.read == False)  # noqa: E712

    total_result = await session.execute(select(func.count()).select_from(query.subquery()))
    total_count = total_result.scalar_one() or 0

    result = await session.execute(
        query.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
    )
    notification_dicts = [notification_to_dict(n) for n in result.scalars().all()]

    return {
        "notifications": notification_dicts,
        "total_count": total_count,
        "has_more": (offset + len(notification_dicts)) < total_count,
    }


async def get_unread_count(session: AsyncSession, recipient_id: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(and_(Notification.recipient_id == recipient_id, Notification.read == False))  # noqa: E712
    )
    return result.scalar_one() or 0


async def mark_as_read(session: AsyncSession, notification_id: str, recipient_id: str) -> Dict:
    """
    Mark a single notification as read.

    Raises:
        NotFoundError: If the notification does not exist
        PermissionDeniedError: If it belongs to another player
    """
    notification = await session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification", notification_id)
    if notification.recipient_id != recipient_id:
        raise PermissionDeniedError(
            "notifications", f"Notification {notification_id} belongs to another player"
        )

    if not notification.read:
        notification.read = True
        notification.read_at = utcnow()
        await session.flush()
        await session.refresh(notification)

    return notification_to_dict(notification)


async def mark_all_as_read(session: AsyncSession, recipient_id: str) -> int:
    """Mark every unread notification of a player as read; returns the count."""
    result = await session.execute(
        update(Notification)
        .where(and_(Notification.recipient_id == recipient_id, Notification.read == False))  # noqa: E712
        .values(read=True, read_at=utcnow())
        .returning(Notification.id)
    )
    count = len(result.scalars().all())
    await session.flush()
    return count
