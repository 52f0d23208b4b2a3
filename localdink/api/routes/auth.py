"""Auth session route handlers."""

import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.auth_dependencies import extract_token, require_user, security
from localdink.database.db import get_db_session
from localdink.models.schemas import AuthSessionRequest, AuthSessionResponse, PlayerResponse
from localdink.services import auth_service

logger = logging.getLogger(__name__)
router = APIRouter()

COOKIE_SECURE = os.getenv("ENV", "").lower() == "production"


@router.post("/api/auth/session", response_model=AuthSessionResponse)
async def create_session(
    payload: AuthSessionRequest,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Register the token issued by the sign-in provider and set the auth cookie.
    """
    try:
        auth = await auth_service.create_auth_session(session, payload.player_id, payload.token)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating auth session: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating auth session")

    response.set_cookie(
        key=auth_service.AUTH_COOKIE_NAME,
        value=auth["token"],
        max_age=auth_service.AUTH_SESSION_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
    )
    return auth


@router.delete("/api/auth/session")
async def delete_session(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
    credentials=Depends(security),
):
    """Revoke the current token (if any) and clear the auth cookie."""
    token = extract_token(request, credentials)
    revoked = False
    if token:
        revoked = await auth_service.revoke_token(session, token)
    response.delete_cookie(auth_service.AUTH_COOKIE_NAME)
    return {"success": True, "revoked": revoked}


@router.get("/api/auth/me", response_model=PlayerResponse)
async def get_me(user: dict = Depends(require_user)):
    return user
