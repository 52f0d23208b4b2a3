"""
Session hydration - resolves a raw game session into a view model.

Each reference (court, organizer, every player and alternate) is an
independent point lookup through an EntityReader. Lookups run concurrently;
a missing entity or a failed lookup becomes a Placeholder instead of failing
the session. Whether a session is confirmed is computed from the view model
and never stored.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from localdink.database.models import Court, Player, RsvpStatus
from localdink.services import court_service, game_session_service, player_service, rsvp_service
from localdink.services.errors import LoadingFailedError
from localdink.services.notification_templates import DISPLAY_TIMEZONE
from localdink.utils.datetime_utils import format_session_date, format_session_time, parse_datetime

logger = logging.getLogger(__name__)

UNKNOWN_ID = "unknown"
UNKNOWN_COURT = "Unknown Court"
UNKNOWN_PLAYER = "Unknown Player"


@dataclass(frozen=True)
class Resolved:
    """A reference that resolved to an entity snapshot."""

    entity: Dict

    @property
    def id(self) -> str:
        return self.entity["id"]

    @property
    def name(self) -> str:
        return self.entity.get("name") or ""


@dataclass(frozen=True)
class Placeholder:
    """Stand-in for a reference that could not be resolved."""

    name: str
    requested_id: Optional[str] = None
    id: str = UNKNOWN_ID


Ref = Union[Resolved, Placeholder]


@dataclass(frozen=True)
class PlayerEntry:
    player: Ref
    status: Optional[str]


@dataclass(frozen=True)
class SessionView:
    id: str
    court: Ref
    organizer: Ref
    start_time: datetime
    date: str
    time: str
    type: str
    is_doubles: bool
    duration_minutes: int
    max_players: int
    status: str
    players: Tuple[PlayerEntry, ...] = field(default_factory=tuple)
    alternates: Tuple[Ref, ...] = field(default_factory=tuple)
    group_ids: Tuple[str, ...] = field(default_factory=tuple)


class EntityReader(Protocol):
    async def get_court(self, court_id: str) -> Optional[Dict]: ...

    async def get_player(self, player_id: str) -> Optional[Dict]: ...

    async def get_statuses(self, game_session_id: str) -> Dict[str, str]: ...


class DatabaseEntityReader:
    """
    EntityReader backed by the database.

    Every lookup opens its own session from the factory since a single
    AsyncSession cannot serve concurrent awaits.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_court(self, court_id: str) -> Optional[Dict]:
        async with self.session_factory() as session:
            court = await session.get(Court, court_id)
            return court_service.court_to_dict(court) if court else None

    async def get_player(self, player_id: str) -> Optional[Dict]:
        async with self.session_factory() as session:
            player = await session.get(Player, player_id)
            return player_service.player_to_dict(player) if player else None

    async def get_statuses(self, game_session_id: str) -> Dict[str, str]:
        async with self.session_factory() as session:
            latest = await rsvp_service.get_latest_invitations(session, game_session_id)
            return {pid: inv.status for pid, inv in latest.items()}


def confirmed_count(view: SessionView) -> int:
    """Number of players whose latest RSVP is ACCEPTED."""
    return sum(1 for entry in view.players if entry.status == RsvpStatus.ACCEPTED.value)


def is_confirmed(view: SessionView) -> bool:
    return confirmed_count(view) >= view.max_players


def ref_to_dict(ref: Ref) -> Dict:
    if isinstance(ref, Resolved):
        return {**ref.entity, "resolved": True}
    return {
        "id": ref.id,
        "name": ref.name,
        "requested_id": ref.requested_id,
        "resolved": False,
    }


def view_to_dict(view: SessionView) -> Dict:
    return {
        "id": view.id,
        "court": ref_to_dict(view.court),
        "organizer": ref_to_dict(view.organizer),
        "start_time": view.start_time.isoformat(),
        "date": view.date,
        "time": view.time,
        "type": view.type,
        "is_doubles": view.is_doubles,
        "duration_minutes": view.duration_minutes,
        "max_players": view.max_players,
        "status": view.status,
        "players": [
            {"player": ref_to_dict(entry.player), "status": entry.status}
            for entry in view.players
        ],
        "alternates": [ref_to_dict(ref) for ref in view.alternates],
        "group_ids": list(view.group_ids),
        "confirmed_count": confirmed_count(view),
        "is_confirmed": is_confirmed(view),
    }


class SessionHydrator:
    """Assembles SessionView objects from raw session dicts."""

    def __init__(self, reader: EntityReader):
        self.reader = reader

    async def _lookup(self, getter, requested_id: Optional[str], placeholder_name: str) -> Ref:
        if not requested_id:
            return Placeholder(name=placeholder_name)
        try:
            entity = await getter(requested_id)
        except Exception as e:
            logger.warning(f"Lookup for {requested_id} failed, using placeholder: {e}")
            return Placeholder(name=placeholder_name, requested_id=requested_id)
        if entity is None:
            return Placeholder(name=placeholder_name, requested_id=requested_id)
        return Resolved(entity=entity)

    def _court(self, court_id: Optional[str]):
        return self._lookup(self.reader.get_court, court_id, UNKNOWN_COURT)

    def _player(self, player_id: Optional[str]):
        return self._lookup(self.reader.get_player, player_id, UNKNOWN_PLAYER)

    async def _statuses(self, game_session_id: str) -> Dict[str, str]:
        try:
            return await self.reader.get_statuses(game_session_id)
        except Exception as e:
            logger.warning(f"Status lookup failed for game session {game_session_id}: {e}")
            return {}

    async def hydrate(self, raw: Dict) -> SessionView:
        """
        Hydrate one raw session.

        All lookups are started together and awaited behind a single barrier;
        a rejected lookup degrades to a Placeholder for that reference only.
        """
        player_ids = list(dict.fromkeys(raw.get("player_ids") or []))
        alternate_ids = list(dict.fromkeys(raw.get("alternate_ids") or []))

        court, organizer, statuses, *refs = await asyncio.gather(
            self._court(raw.get("court_id")),
            self._player(raw.get("organizer_id")),
            self._statuses(raw["id"]),
            *(self._player(pid) for pid in player_ids),
            *(self._player(pid) for pid in alternate_ids),
        )
        player_refs = refs[:len(player_ids)]
        alternate_refs = refs[len(player_ids):]

        start_time = parse_datetime(raw["start_time"])
        is_doubles = bool(raw.get("is_doubles", True))
        max_players = raw.get("max_players") or game_session_service.default_max_players(is_doubles)

        return SessionView(
            id=raw["id"],
            court=court,
            organizer=organizer,
            start_time=start_time,
            date=format_session_date(start_time, DISPLAY_TIMEZONE),
            time=format_session_time(start_time, DISPLAY_TIMEZONE),
            type="Doubles" if is_doubles else "Singles",
            is_doubles=is_doubles,
            duration_minutes=raw.get("duration_minutes") or game_session_service.DEFAULT_DURATION_MINUTES,
            max_players=max_players,
            status=raw.get("status") or "open",
            players=tuple(
                PlayerEntry(player=ref, status=statuses.get(pid))
                for pid, ref in zip(player_ids, player_refs)
            ),
            alternates=tuple(alternate_refs),
            group_ids=tuple(raw.get("group_ids") or ()),
        )

    async def hydrate_many(self, raws: List[Dict]) -> List[SessionView]:
        """Hydrate rows independently; a row that fails outright is dropped and logged."""
        results = await asyncio.gather(*(self.hydrate(raw) for raw in raws), return_exceptions=True)
        views = []
        for raw, result in zip(raws, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to hydrate game session {raw.get('id')}: {result}")
                continue
            views.append(result)
        return views


async def list_hydrated_sessions(
    session: AsyncSession, hydrator: SessionHydrator, player_id: str
) -> List[SessionView]:
    """
    Hydrated sessions for a player's dashboard.

    Raises:
        LoadingFailedError: If the session list itself cannot be read
    """
    try:
        raws = await game_session_service.list_game_sessions_for_player(session, player_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load game sessions for player {player_id}: {e}")
        raise LoadingFailedError() from e
    return await hydrator.hydrate_many(raws)


def get_session_hydrator() -> SessionHydrator:
    """FastAPI dependency building a hydrator over the current session factory."""
    from localdink.database.db import get_session_factory
    return SessionHydrator(DatabaseEntityReader(get_session_factory()))
