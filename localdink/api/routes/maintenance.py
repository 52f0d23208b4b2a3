"""
Invitation maintenance and health check route handlers.

The maintenance endpoints are called by an external scheduler (cron); they
are protected by a shared secret in the X-Maintenance-Key header when
MAINTENANCE_API_KEY is set.
"""

import hmac
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.db import get_db_session
from localdink.models.schemas import (
    ExpireInvitationsResponse,
    SendRemindersRequest,
    SendRemindersResponse,
)
from localdink.services import rsvp_service
from localdink.services.notification_router import NotificationRouter, get_notification_router

logger = logging.getLogger(__name__)
router = APIRouter()


def require_maintenance_key(x_maintenance_key: Optional[str] = Header(default=None)) -> None:
    expected = os.getenv("MAINTENANCE_API_KEY")
    if not expected:
        return
    if not x_maintenance_key or not hmac.compare_digest(x_maintenance_key, expected):
        raise HTTPException(status_code=403, detail="Invalid maintenance key")


@router.post(
    "/api/maintenance/expire-invitations",
    response_model=ExpireInvitationsResponse,
    dependencies=[Depends(require_maintenance_key)],
)
async def expire_invitations(
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    """Expire every pending invitation whose response deadline has passed."""
    try:
        expired = await rsvp_service.expire_overdue_invitations(session, notifier)
        return {"expired": expired, "count": len(expired)}
    except Exception as e:
        logger.error(f"Error expiring invitations: {str(e)}")
        raise HTTPException(status_code=500, detail="Error expiring invitations")


@router.post(
    "/api/maintenance/send-reminders",
    response_model=SendRemindersResponse,
    dependencies=[Depends(require_maintenance_key)],
)
async def send_reminders(
    payload: Optional[SendRemindersRequest] = None,
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    """Remind players who have not answered about games starting soon."""
    window_hours = payload.window_hours if payload else rsvp_service.DEFAULT_REMINDER_WINDOW_HOURS
    try:
        sent = await rsvp_service.send_reminders(session, notifier, window_hours=window_hours)
        return {"sent": sent}
    except Exception as e:
        logger.error(f"Error sending reminders: {str(e)}")
        raise HTTPException(status_code=500, detail="Error sending reminders")


@router.get("/api/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {"status": "healthy", "message": "API is running"}
