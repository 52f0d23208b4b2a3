"""
Auth session service.

Sign-in happens with the external auth provider; afterwards the client
registers an opaque token here. A known, unexpired token is the only
authentication check this service performs.
"""

import logging
import secrets
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import AuthSession, Player
from localdink.services.errors import NotFoundError
from localdink.services.player_service import player_to_dict
from localdink.utils.datetime_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "auth-token"
AUTH_SESSION_DAYS = 7


async def create_auth_session(
    session: AsyncSession, player_id: str, token: Optional[str] = None
) -> Dict:
    """
    Store a token for a player, replacing any previous row for the same token.

    Raises:
        NotFoundError: If the player does not exist
    """
    if await session.get(Player, player_id) is None:
        raise NotFoundError("Player", player_id)

    token = (token or "").strip() or secrets.token_urlsafe(32)
    expires_at = utcnow() + timedelta(days=AUTH_SESSION_DAYS)

    existing = await session.get(AuthSession, token)
    if existing is not None:
        existing.player_id = player_id
        existing.expires_at = expires_at
    else:
        session.add(AuthSession(token=token, player_id=player_id, expires_at=expires_at))
    await session.flush()
    logger.info(f"Auth session created for player {player_id}")
    return {"token": token, "player_id": player_id, "expires_at": expires_at.isoformat()}


async def resolve_token(session: AsyncSession, token: Optional[str]) -> Optional[Dict]:
    """Return the player dict for a valid token, or None."""
    if not token:
        return None
    auth = await session.get(AuthSession, token)
    if auth is None:
        return None
    if ensure_utc(auth.expires_at) <= utcnow():
        logger.debug(f"Auth token for player {auth.player_id} expired")
        return None
    player = await session.get(Player, auth.player_id)
    if player is None:
        return None
    return player_to_dict(player)


async def revoke_token(session: AsyncSession, token: str) -> bool:
    result = await session.execute(delete(AuthSession).where(AuthSession.token == token))
    await session.flush()
    return (result.rowcount or 0) > 0
