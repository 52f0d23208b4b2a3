"""Inbound SMS webhook route handlers."""

import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.routes import SMS_RATE_LIMIT, limiter
from localdink.database.db import get_db_session
from localdink.services import sms_inbound_service
from localdink.services.sms_inbound_service import SmsIntentDetector, get_intent_detector
from localdink.services.notification_router import NotificationRouter, get_notification_router
from localdink.services.sms_service import (
    SmsClient,
    SmsError,
    get_sms_client,
    validate_twilio_signature,
)

logger = logging.getLogger(__name__)
router = APIRouter()

SIGNATURE_HEADER = "X-Twilio-Signature"


def _signature_required() -> bool:
    return os.getenv("ENV", "").lower() == "production"


def _webhook_url(request: Request) -> str:
    # Behind a proxy the public URL differs from the one uvicorn sees
    return os.getenv("SMS_WEBHOOK_URL") or str(request.url)


def _check_signature(request: Request, params: dict, sms_client: SmsClient) -> None:
    """
    Validate the provider signature.

    Raises:
        HTTPException: 403 in production when the signature is missing or wrong
    """
    signature = request.headers.get(SIGNATURE_HEADER)
    try:
        auth_token = sms_client.config.auth_token
    except SmsError as e:
        if _signature_required():
            logger.error(f"Cannot validate inbound SMS signature: {e}")
            raise HTTPException(status_code=403, detail="Invalid signature")
        logger.debug("SMS not configured, skipping inbound signature check")
        return

    valid = bool(signature) and validate_twilio_signature(
        auth_token, signature, _webhook_url(request), params
    )
    if valid:
        return
    if _signature_required():
        logger.warning("Rejected inbound SMS with invalid signature")
        raise HTTPException(status_code=403, detail="Invalid signature")
    logger.warning("Inbound SMS signature invalid or missing (accepted outside production)")


@router.post("/api/sms/inbound")
@limiter.limit(SMS_RATE_LIMIT)
async def inbound_sms(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
    sms_client: SmsClient = Depends(get_sms_client),
    detector: SmsIntentDetector = Depends(get_intent_detector),
):
    """
    Webhook for SMS replies (form-encoded From/Body).

    Responds with TwiML so the provider texts the reply back to the player.
    """
    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    _check_signature(request, params, sms_client)

    from_number = params.get("From", "").strip()
    body = params.get("Body", "")
    if not from_number:
        raise HTTPException(status_code=400, detail="Missing From")

    try:
        reply = await sms_inbound_service.handle_inbound_message(
            session, notifier, from_number, body, detector=detector
        )
    except Exception as e:
        logger.error(f"Error handling inbound SMS from {from_number}: {str(e)}")
        await session.rollback()
        reply = "Sorry, something went wrong. Please try again or use the LocalDink app."

    return Response(content=sms_inbound_service.build_twiml(reply), media_type="text/xml")


@router.get("/api/sms/inbound")
async def inbound_sms_status(sms_client: SmsClient = Depends(get_sms_client)):
    """Readiness check for the webhook."""
    return {"status": "ok", "configured": sms_client.is_configured()}
