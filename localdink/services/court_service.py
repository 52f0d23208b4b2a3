"""
Court service - CRUD for court locations.

Courts are owned by the player who created them; only the owner may change
or remove one.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import Court
from localdink.services.errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name",
    "location",
    "address",
    "city",
    "state",
    "zip_code",
    "is_home",
    "is_favorite",
)


def court_to_dict(court: Court) -> Dict:
    return {
        "id": court.id,
        "name": court.name,
        "location": court.location,
        "address": court.address,
        "city": court.city,
        "state": court.state,
        "zip_code": court.zip_code,
        "is_home": court.is_home,
        "is_favorite": court.is_favorite,
        "owner_id": court.owner_id,
        "created_at": court.created_at.isoformat() if court.created_at else None,
        "updated_at": court.updated_at.isoformat() if court.updated_at else None,
    }


def _require_text(value: Optional[str], label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"Court {label} is required")
    return value


async def create_court(
    session: AsyncSession,
    *,
    name: str,
    location: str,
    owner_id: Optional[str] = None,
    court_id: Optional[str] = None,
    address: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    zip_code: Optional[str] = None,
    is_home: bool = False,
    is_favorite: bool = False,
) -> Dict:
    """
    Create a court.

    Raises:
        ValueError: If name or location is blank
    """
    court = Court(
        name=_require_text(name, "name"),
        location=_require_text(location, "location"),
        owner_id=owner_id,
        address=address,
        city=city,
        state=state,
        zip_code=zip_code,
        is_home=is_home,
        is_favorite=is_favorite,
    )
    if court_id:
        court.id = court_id
    session.add(court)
    await session.flush()
    await session.refresh(court)
    logger.info(f"Created court {court.id} ({court.name})")
    return court_to_dict(court)


async def list_courts(session: AsyncSession, owner_id: Optional[str] = None) -> List[Dict]:
    """List courts visible to a player: shared courts plus the player's own."""
    query = select(Court)
    if owner_id is not None:
        query = query.where(or_(Court.owner_id == owner_id, Court.owner_id.is_(None)))
    result = await session.execute(query.order_by(Court.name))
    return [court_to_dict(c) for c in result.scalars().all()]


async def get_court(session: AsyncSession, court_id: str) -> Optional[Dict]:
    court = await session.get(Court, court_id)
    return court_to_dict(court) if court else None


async def _get_owned(session: AsyncSession, court_id: str, requester_id: str) -> Court:
    court = await session.get(Court, court_id)
    if court is None:
        raise NotFoundError("Court", court_id)
    if court.owner_id != requester_id:
        raise PermissionDeniedError("courts", "Only the court's owner can change it")
    return court


async def update_court(session: AsyncSession, court_id: str, requester_id: str, **fields) -> Dict:
    """Update court fields (owner only). None values are ignored."""
    court = await _get_owned(session, court_id, requester_id)
    for key, value in fields.items():
        if key not in UPDATABLE_FIELDS or value is None:
            continue
        if key in ("name", "location"):
            value = _require_text(value, key)
        setattr(court, key, value)
    await session.flush()
    await session.refresh(court)
    return court_to_dict(court)


async def delete_court(session: AsyncSession, court_id: str, requester_id: str) -> bool:
    court = await _get_owned(session, court_id, requester_id)
    await session.delete(court)
    await session.flush()
    logger.info(f"Deleted court {court_id}")
    return True
