"""
Player service - profiles, contacts and notification preferences.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import Group, Player
from localdink.services.errors import NotFoundError, PermissionDeniedError
from localdink.services.notification_router import resolve_preferences, validate_preferences
from localdink.services.sms_service import normalize_to_e164

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "first_name",
    "last_name",
    "avatar_url",
    "phone",
    "email",
    "dink_rating",
    "doubles_preference",
    "home_court_id",
    "availability",
)


def display_name(player: Optional[Player]) -> str:
    if player is None:
        return "Unknown"
    name = f"{player.first_name or ''} {player.last_name or ''}".strip()
    return name or "Unknown"


def player_to_dict(player: Player) -> Dict:
    return {
        "id": player.id,
        "first_name": player.first_name,
        "last_name": player.last_name,
        "name": display_name(player),
        "avatar_url": player.avatar_url,
        "phone": player.phone,
        "email": player.email,
        "dink_rating": player.dink_rating,
        "doubles_preference": player.doubles_preference,
        "home_court_id": player.home_court_id,
        "availability": player.availability,
        "owner_id": player.owner_id,
        "created_at": player.created_at.isoformat() if player.created_at else None,
        "updated_at": player.updated_at.isoformat() if player.updated_at else None,
    }


def _clean_phone(phone: Optional[str]) -> Optional[str]:
    if phone is None:
        return None
    phone = phone.strip()
    if not phone:
        return None
    # Keep unresolvable numbers as entered; SMS is simply skipped for them
    return normalize_to_e164(phone) or phone


async def create_player(
    session: AsyncSession,
    *,
    first_name: str,
    last_name: str = "",
    owner_id: Optional[str] = None,
    player_id: Optional[str] = None,
    phone: Optional[str] = None,
    email: Optional[str] = None,
    avatar_url: str = "",
    dink_rating: Optional[str] = None,
    doubles_preference: Optional[bool] = None,
    home_court_id: Optional[str] = None,
    availability: Optional[str] = None,
) -> Dict:
    """
    Create a player profile.

    Raises:
        ValueError: If both name fields are blank or the id is taken
    """
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name and not last_name:
        raise ValueError("Player name is required")
    if player_id and await session.get(Player, player_id) is not None:
        raise ValueError(f"Player {player_id} already exists")

    player = Player(
        first_name=first_name,
        last_name=last_name,
        owner_id=owner_id,
        phone=_clean_phone(phone),
        email=(email or "").strip() or None,
        avatar_url=avatar_url or "",
        dink_rating=dink_rating,
        doubles_preference=doubles_preference,
        home_court_id=home_court_id,
        availability=availability,
    )
    if player_id:
        player.id = player_id
    session.add(player)
    await session.flush()
    await session.refresh(player)
    logger.info(f"Created player {player.id}")
    return player_to_dict(player)


async def list_players(session: AsyncSession, owner_id: Optional[str] = None) -> List[Dict]:
    """List players, optionally only the contacts created by one owner."""
    query = select(Player)
    if owner_id is not None:
        query = query.where(Player.owner_id == owner_id)
    result = await session.execute(query.order_by(Player.first_name, Player.last_name))
    return [player_to_dict(p) for p in result.scalars().all()]


async def get_player(session: AsyncSession, player_id: str) -> Optional[Dict]:
    player = await session.get(Player, player_id)
    return player_to_dict(player) if player else None


async def get_player_by_phone(session: AsyncSession, phone: str) -> Optional[Dict]:
    """Find a player by phone number (compared in E.164 form)."""
    normalized = normalize_to_e164(phone)
    if not normalized:
        return None
    result = await session.execute(select(Player).where(Player.phone == normalized).limit(1))
    player = result.scalar_one_or_none()
    return player_to_dict(player) if player else None


def _check_can_edit(player: Player, requester_id: str) -> None:
    if requester_id not in (player.id, player.owner_id):
        raise PermissionDeniedError("players", "Only the player or the contact's owner can change it")


async def update_player(
    session: AsyncSession, player_id: str, requester_id: str, **fields
) -> Dict:
    """
    Update profile fields. Unknown or None-valued fields are ignored.

    Raises:
        NotFoundError: If the player does not exist
        PermissionDeniedError: If the requester is neither the player nor its owner
        ValueError: If the update would blank the player's name
    """
    player = await session.get(Player, player_id)
    if player is None:
        raise NotFoundError("Player", player_id)
    _check_can_edit(player, requester_id)

    for key, value in fields.items():
        if key not in UPDATABLE_FIELDS or value is None:
            continue
        if key == "phone":
            value = _clean_phone(value)
        elif isinstance(value, str) and key in ("first_name", "last_name"):
            value = value.strip()
        setattr(player, key, value)

    if not (player.first_name or player.last_name):
        raise ValueError("Player name is required")

    await session.flush()
    await session.refresh(player)
    return player_to_dict(player)


async def delete_player(session: AsyncSession, player_id: str, requester_id: str) -> bool:
    """
    Delete a player after removing them from every group.

    Membership removals and the delete are flushed together so they commit
    or roll back as one transaction.
    """
    player = await session.get(Player, player_id)
    if player is None:
        raise NotFoundError("Player", player_id)
    _check_can_edit(player, requester_id)

    result = await session.execute(select(Group))
    touched = 0
    for group in result.scalars().all():
        members = list(group.member_ids or [])
        admins = list(group.admin_ids or [])
        if player_id in members or player_id in admins:
            group.member_ids = [m for m in members if m != player_id]
            group.admin_ids = [a for a in admins if a != player_id]
            touched += 1

    await session.delete(player)
    await session.flush()
    logger.info(f"Deleted player {player_id} (removed from {touched} groups)")
    return True


async def get_preferences(session: AsyncSession, player_id: str) -> Dict:
    player = await session.get(Player, player_id)
    if player is None:
        raise NotFoundError("Player", player_id)
    return resolve_preferences(player.notification_preferences)


async def update_preferences(session: AsyncSession, player_id: str, preferences: Dict) -> Dict:
    """
    Replace a player's notification preferences.

    Sections missing from the payload keep their current values.
    """
    player = await session.get(Player, player_id)
    if player is None:
        raise NotFoundError("Player", player_id)

    current = resolve_preferences(player.notification_preferences)
    merged = {
        "channels": {**current["channels"], **(preferences.get("channels") or {})},
        "types": {**current["types"], **(preferences.get("types") or {})},
        "quiet_hours": preferences.get("quiet_hours", current["quiet_hours"]),
    }
    player.notification_preferences = validate_preferences(merged)
    await session.flush()
    return resolve_preferences(player.notification_preferences)
