"""
Group service - player groups and their membership.

Membership is a set of player ids. Every membership change for one request
is validated first and then applied in a single flush.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import Group, Player
from localdink.services.errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)


def group_to_dict(group: Group) -> Dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "avatar_url": group.avatar_url,
        "member_ids": list(group.member_ids or []),
        "admin_ids": list(group.admin_ids or []),
        "owner_id": group.owner_id,
        "home_court_id": group.home_court_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "updated_at": group.updated_at.isoformat() if group.updated_at else None,
    }


def _dedupe(ids: Iterable[str]) -> List[str]:
    seen = []
    for player_id in ids:
        if player_id and player_id not in seen:
            seen.append(player_id)
    return seen


async def _missing_players(session: AsyncSession, player_ids: List[str]) -> List[str]:
    if not player_ids:
        return []
    result = await session.execute(select(Player.id).where(Player.id.in_(player_ids)))
    found = set(result.scalars().all())
    return [pid for pid in player_ids if pid not in found]


async def _require_players(session: AsyncSession, player_ids: List[str]) -> None:
    missing = await _missing_players(session, player_ids)
    if missing:
        raise ValueError(f"Unknown player ids: {', '.join(missing)}")


async def create_group(
    session: AsyncSession,
    *,
    name: str,
    owner_id: str,
    description: Optional[str] = None,
    avatar_url: str = "",
    member_ids: Optional[List[str]] = None,
    home_court_id: Optional[str] = None,
) -> Dict:
    """
    Create a group owned (and administered) by `owner_id`.

    Raises:
        ValueError: If the name is blank or a member id is unknown
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Group name is required")
    members = _dedupe(member_ids or [])
    await _require_players(session, members)

    group = Group(
        name=name,
        description=description,
        avatar_url=avatar_url or "",
        member_ids=members,
        owner_id=owner_id,
        admin_ids=[owner_id],
        home_court_id=home_court_id,
    )
    session.add(group)
    await session.flush()
    await session.refresh(group)
    logger.info(f"Created group {group.id} with {len(members)} members")
    return group_to_dict(group)


async def list_groups(session: AsyncSession, player_id: Optional[str] = None) -> List[Dict]:
    """List groups; with `player_id`, only groups the player owns or belongs to."""
    result = await session.execute(select(Group).order_by(Group.name))
    groups = result.scalars().all()
    if player_id is not None:
        groups = [
            g for g in groups
            if g.owner_id == player_id or player_id in (g.member_ids or [])
        ]
    return [group_to_dict(g) for g in groups]


async def get_group(session: AsyncSession, group_id: str) -> Optional[Dict]:
    group = await session.get(Group, group_id)
    return group_to_dict(group) if group else None


async def _get_managed(session: AsyncSession, group_id: str, requester_id: str) -> Group:
    group = await session.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group", group_id)
    if requester_id != group.owner_id and requester_id not in (group.admin_ids or []):
        raise PermissionDeniedError("groups", "Only group admins can change the group")
    return group


async def update_group(
    session: AsyncSession,
    group_id: str,
    requester_id: str,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    avatar_url: Optional[str] = None,
    home_court_id: Optional[str] = None,
    add_member_ids: Optional[List[str]] = None,
    remove_member_ids: Optional[List[str]] = None,
) -> Dict:
    """
    Update group details and membership together.

    All member ids being added are validated before any change is made.
    """
    group = await _get_managed(session, group_id, requester_id)

    to_add = _dedupe(add_member_ids or [])
    await _require_players(session, to_add)

    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Group name is required")
        group.name = name
    if description is not None:
        group.description = description
    if avatar_url is not None:
        group.avatar_url = avatar_url
    if home_court_id is not None:
        group.home_court_id = home_court_id or None

    if to_add or remove_member_ids:
        removed = set(remove_member_ids or [])
        members = [m for m in (group.member_ids or []) if m not in removed]
        group.member_ids = _dedupe(members + to_add)
        group.admin_ids = [
            a for a in (group.admin_ids or []) if a not in removed or a == group.owner_id
        ]

    await session.flush()
    await session.refresh(group)
    return group_to_dict(group)


async def add_members(
    session: AsyncSession, group_id: str, requester_id: str, player_ids: List[str]
) -> Dict:
    return await update_group(session, group_id, requester_id, add_member_ids=player_ids)


async def remove_members(
    session: AsyncSession, group_id: str, requester_id: str, player_ids: List[str]
) -> Dict:
    return await update_group(session, group_id, requester_id, remove_member_ids=player_ids)


async def delete_group(session: AsyncSession, group_id: str, requester_id: str) -> bool:
    group = await session.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group", group_id)
    if group.owner_id != requester_id:
        raise PermissionDeniedError("groups", "Only the group's owner can delete it")
    await session.delete(group)
    await session.flush()
    logger.info(f"Deleted group {group_id}")
    return True


async def get_member_ids(session: AsyncSession, group_ids: List[str]) -> List[str]:
    """Union of member ids across several groups, in first-seen order."""
    if not group_ids:
        return []
    result = await session.execute(select(Group).where(Group.id.in_(group_ids)))
    groups = {g.id: g for g in result.scalars().all()}
    missing = [gid for gid in group_ids if gid not in groups]
    if missing:
        raise ValueError(f"Unknown group ids: {', '.join(missing)}")
    members: List[str] = []
    for gid in group_ids:
        members.extend(groups[gid].member_ids or [])
    return _dedupe(members)
