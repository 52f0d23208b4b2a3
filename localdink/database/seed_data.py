"""
Seed demo players, courts and groups from CSV files on startup.

Only runs against an empty database (no players). Existing data is never
touched; to re-seed, clear the players, courts and groups tables first.
"""

import csv
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from localdink.database.models import Court, Group, Player
from localdink.services.sms_service import normalize_to_e164

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).resolve().parent.parent / "seed"


def _read_csv(filename: str):
    csv_path = SEED_DIR / filename
    if not csv_path.exists():
        logger.warning("Seed CSV not found: %s", csv_path)
        return []
    with open(csv_path, "r", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def _bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


async def is_database_empty(session: AsyncSession) -> bool:
    result = await session.execute(select(func.count()).select_from(Player))
    return (result.scalar_one() or 0) == 0


async def _seed(session: AsyncSession) -> dict:
    counts = {"players": 0, "courts": 0, "groups": 0}

    for row in _read_csv("players.csv"):
        phone = row.get("phone") or None
        session.add(
            Player(
                id=row["id"],
                first_name=row["first_name"],
                last_name=row.get("last_name") or "",
                phone=normalize_to_e164(phone) or phone,
            )
        )
        counts["players"] += 1

    for row in _read_csv("courts.csv"):
        session.add(
            Court(
                id=row["id"],
                name=row["name"],
                location=row["location"],
                city=row.get("city") or None,
                state=row.get("state") or None,
                is_home=_bool(row.get("is_home")),
                is_favorite=_bool(row.get("is_favorite")),
            )
        )
        counts["courts"] += 1

    for row in _read_csv("groups.csv"):
        session.add(
            Group(
                id=row["id"],
                name=row["name"],
                owner_id=row["owner_id"],
                admin_ids=[row["owner_id"]],
                member_ids=[m for m in (row.get("member_ids") or "").split(";") if m],
            )
        )
        counts["groups"] += 1

    await session.flush()
    return counts


async def seed_demo_data(session_factory: Optional[async_sessionmaker] = None) -> dict:
    """
    Seed demo data when the database has no players.

    Returns:
        Counts of created rows per table (all zero when skipped)
    """
    if session_factory is None:
        from localdink.database.db import get_session_factory
        session_factory = get_session_factory()

    async with session_factory() as session:
        if not await is_database_empty(session):
            logger.info("Database already has players, skipping demo seed")
            return {"players": 0, "courts": 0, "groups": 0}
        counts = await _seed(session)
        await session.commit()

    logger.info(
        f"Seeded {counts['players']} players, {counts['courts']} courts, {counts['groups']} groups"
    )
    return counts
