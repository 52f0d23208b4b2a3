"""Notification and WebSocket route handlers."""

import asyncio
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.auth_dependencies import require_user
from localdink.database.db import get_db_session, get_session_factory
from localdink.models.schemas import (
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from localdink.services import auth_service, notification_service
from localdink.services.errors import PermissionDeniedError, report_permission_error
from localdink.services.websocket_manager import get_websocket_manager
from localdink.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()

WEBSOCKET_TIMEOUT_SECONDS = 30


@router.get("/api/notifications", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the current player's notifications, newest first (at most 50 per page)."""
    try:
        return await notification_service.get_notifications(
            session, user["id"], limit=limit, offset=offset, unread_only=unread_only
        )
    except PermissionDeniedError as e:
        if report_permission_error(e):
            raise
        return {"notifications": [], "total_count": 0, "has_more": False}
    except Exception as e:
        logger.error(f"Error fetching notifications: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching notifications: {str(e)}")


@router.get("/api/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Get unread notification count for the current player."""
    try:
        count = await notification_service.get_unread_count(session, user["id"])
        return {"count": count}
    except PermissionDeniedError as e:
        if report_permission_error(e):
            raise
        return {"count": 0}
    except Exception as e:
        logger.error(f"Error fetching unread count: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching unread count: {str(e)}")


@router.put("/api/notifications/mark-all-read")
async def mark_all_notifications_as_read(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Mark all of the current player's notifications as read."""
    try:
        count = await notification_service.mark_all_as_read(session, user["id"])
        return {"success": True, "count": count}
    except Exception as e:
        logger.error(f"Error marking all notifications as read: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Error marking all notifications as read: {str(e)}"
        )


@router.put("/api/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_as_read(
    notification_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a single notification as read."""
    try:
        return await notification_service.mark_as_read(session, notification_id, user["id"])
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error marking notification as read: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Error marking notification as read: {str(e)}"
        )


@router.websocket("/api/ws/notifications")
async def websocket_notifications(websocket: WebSocket):
    """
    WebSocket endpoint for real-time notification delivery.

    Requires the auth token in a query parameter: ?token=<token>
    """
    await websocket.accept()

    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=1008, reason="Missing authentication token")
        return

    session_factory = get_session_factory()
    async with session_factory() as session:
        user = await auth_service.resolve_token(session, token)
    if user is None:
        await websocket.close(code=1008, reason="Invalid authentication token")
        return

    player_id = user["id"]
    manager = get_websocket_manager()
    await manager.connect(player_id, websocket)

    try:
        last_activity = utcnow()

        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(), timeout=WEBSOCKET_TIMEOUT_SECONDS
                )
                last_activity = utcnow()
                await manager.update_activity(websocket)

                # Client sends "ping", server responds "pong"
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                if utcnow() - last_activity > timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS):
                    logger.info(f"WebSocket timeout for player {player_id}, closing connection")
                    await websocket.close(code=1000, reason="Connection timeout")
                    break
                try:
                    await websocket.send_text("ping")
                except Exception:
                    break
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for player {player_id}")
    except Exception as e:
        logger.error(f"WebSocket error for player {player_id}: {e}")
    finally:
        await manager.disconnect(player_id, websocket)
