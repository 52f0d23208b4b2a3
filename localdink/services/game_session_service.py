"""
Game session service - scheduling, changes, cancellation and the waitlist.

Invitation state lives in rsvp_service; this module owns the session record
and tells invitees when it changes.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import (
    Court,
    GameSession,
    GameSessionStatus,
    Invitation,
    NotificationType,
    Player,
    RsvpStatus,
)
from localdink.services import group_service, rsvp_service
from localdink.services.errors import NotFoundError, PermissionDeniedError
from localdink.services.notification_router import NotificationRouter
from localdink.services.notification_templates import AUDIENCE_INVITEE
from localdink.utils.datetime_utils import ensure_utc, parse_datetime, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 120


def default_max_players(is_doubles: bool) -> int:
    return 4 if is_doubles else 2


def game_session_to_dict(game_session: GameSession) -> Dict:
    """Raw (unhydrated) session record."""
    return {
        "id": game_session.id,
        "court_id": game_session.court_id,
        "organizer_id": game_session.organizer_id,
        "start_time": ensure_utc(game_session.start_time).isoformat(),
        "is_doubles": game_session.is_doubles,
        "duration_minutes": game_session.duration_minutes,
        "player_ids": list(game_session.player_ids or []),
        "alternate_ids": list(game_session.alternate_ids or []),
        "group_ids": list(game_session.group_ids or []),
        "status": game_session.status,
        "max_players": game_session.max_players,
        "created_at": ensure_utc(game_session.created_at).isoformat()
        if game_session.created_at else None,
        "updated_at": ensure_utc(game_session.updated_at).isoformat()
        if game_session.updated_at else None,
    }


async def _require(session: AsyncSession, model, entity_id: str, label: str):
    entity = await session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(label, entity_id)
    return entity


async def _get_organized(
    session: AsyncSession, game_session_id: str, requester_id: str
) -> GameSession:
    game_session = await rsvp_service.get_open_game_session(session, game_session_id)
    if game_session.organizer_id != requester_id:
        raise PermissionDeniedError("game_sessions", "Only the organizer can change this game")
    return game_session


async def create_game_session(
    session: AsyncSession,
    router: NotificationRouter,
    *,
    organizer_id: str,
    court_id: str,
    start_time,
    is_doubles: bool = True,
    player_ids: Optional[List[str]] = None,
    group_ids: Optional[List[str]] = None,
    alternate_ids: Optional[List[str]] = None,
    duration_minutes: int = DEFAULT_DURATION_MINUTES,
    max_players: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Schedule a game and invite its players.

    Invitees are the union of `player_ids` and the members of `group_ids`,
    de-duplicated, with the organizer removed. Each gets an INVITED
    invitation and a GAME_INVITE notification.

    Raises:
        NotFoundError: If the court or organizer does not exist
        ValueError: On unknown invitee/group ids or invalid numbers
    """
    await _require(session, Player, organizer_id, "Player")
    await _require(session, Court, court_id, "Court")
    start = parse_datetime(start_time)
    if duration_minutes is None or duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    if max_players is not None and max_players < 1:
        raise ValueError("max_players must be at least 1")

    invitees = list(player_ids or [])
    invitees.extend(await group_service.get_member_ids(session, group_ids or []))
    invitees = [pid for pid in dict.fromkeys(invitees) if pid and pid != organizer_id]
    alternates = [
        pid for pid in dict.fromkeys(alternate_ids or [])
        if pid and pid != organizer_id and pid not in invitees
    ]

    found = set()
    if invitees or alternates:
        result = await session.execute(select(Player.id).where(Player.id.in_(invitees + alternates)))
        found = set(result.scalars().all())
    missing = [pid for pid in invitees + alternates if pid not in found]
    if missing:
        raise ValueError(f"Unknown player ids: {', '.join(missing)}")

    game_session = GameSession(
        organizer_id=organizer_id,
        court_id=court_id,
        start_time=start,
        is_doubles=is_doubles,
        duration_minutes=duration_minutes,
        player_ids=invitees,
        alternate_ids=alternates,
        group_ids=list(dict.fromkeys(group_ids or [])),
        status=GameSessionStatus.OPEN.value,
        max_players=max_players or default_max_players(is_doubles),
    )
    session.add(game_session)
    await session.flush()
    await session.refresh(game_session)
    logger.info(
        f"Created game session {game_session.id} by {organizer_id} with {len(invitees)} invitees"
    )

    await rsvp_service.create_invitations(session, router, game_session, invitees, now=now)
    return game_session_to_dict(game_session)


async def get_game_session(session: AsyncSession, game_session_id: str) -> Optional[Dict]:
    game_session = await session.get(GameSession, game_session_id)
    return game_session_to_dict(game_session) if game_session else None


async def list_game_sessions_for_player(
    session: AsyncSession, player_id: str, include_cancelled: bool = False
) -> List[Dict]:
    """Sessions the player organizes or has been invited to, by start time."""
    invited = select(Invitation.session_id).where(Invitation.player_id == player_id)
    query = (
        select(GameSession)
        .where(or_(GameSession.organizer_id == player_id, GameSession.id.in_(invited)))
        .order_by(GameSession.start_time)
    )
    if not include_cancelled:
        query = query.where(GameSession.status != GameSessionStatus.CANCELLED.value)
    result = await session.execute(query)
    return [game_session_to_dict(gs) for gs in result.scalars().all()]


async def _clamp_pending_deadlines(session: AsyncSession, game_session: GameSession) -> None:
    """Pull INVITED deadlines that now fall after the start back to the start."""
    start = ensure_utc(game_session.start_time)
    result = await session.execute(
        select(Invitation).where(
            and_(
                Invitation.session_id == game_session.id,
                Invitation.status == RsvpStatus.INVITED.value,
                Invitation.response_deadline > start,
            )
        )
    )
    for invitation in result.scalars().all():
        invitation.response_deadline = start


async def _active_audience(session: AsyncSession, game_session: GameSession) -> List[str]:
    """Invitees whose latest invitation is INVITED or ACCEPTED."""
    latest = await rsvp_service.get_latest_invitations(session, game_session.id)
    active = {RsvpStatus.INVITED.value, RsvpStatus.ACCEPTED.value}
    return [
        pid for pid in (game_session.player_ids or [])
        if pid in latest and latest[pid].status in active
    ]


async def update_game_session(
    session: AsyncSession,
    router: NotificationRouter,
    game_session_id: str,
    requester_id: str,
    *,
    start_time=None,
    court_id: Optional[str] = None,
    is_doubles: Optional[bool] = None,
    duration_minutes: Optional[int] = None,
    max_players: Optional[int] = None,
) -> Dict:
    """
    Change a session's time, court or format (organizer only).

    Active invitees get GAME_CHANGED when anything actually changed.
    A new start time re-arms the reminder and pulls pending response
    deadlines back to the new start.
    """
    game_session = await _get_organized(session, game_session_id, requester_id)
    changed = False

    if start_time is not None:
        start = parse_datetime(start_time)
        if start != ensure_utc(game_session.start_time):
            game_session.start_time = start
            # The old reminder and any deadline past the new start no longer apply
            game_session.reminder_sent_at = None
            await _clamp_pending_deadlines(session, game_session)
            changed = True
    if court_id is not None and court_id != game_session.court_id:
        await _require(session, Court, court_id, "Court")
        game_session.court_id = court_id
        changed = True
    if is_doubles is not None and is_doubles != game_session.is_doubles:
        game_session.is_doubles = is_doubles
        if max_players is None:
            game_session.max_players = default_max_players(is_doubles)
        changed = True
    if duration_minutes is not None and duration_minutes != game_session.duration_minutes:
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        game_session.duration_minutes = duration_minutes
        changed = True
    if max_players is not None and max_players != game_session.max_players:
        if max_players < 1:
            raise ValueError("max_players must be at least 1")
        game_session.max_players = max_players
        changed = True

    if not changed:
        return game_session_to_dict(game_session)

    game_session.updated_at = utcnow()
    await session.flush()
    await session.refresh(game_session)

    template_data = await rsvp_service.build_template_data(session, game_session)
    for player_id in await _active_audience(session, game_session):
        await rsvp_service.notify(
            session, router, game_session, player_id,
            NotificationType.GAME_CHANGED, template_data, audience=AUDIENCE_INVITEE,
        )
    logger.info(f"Updated game session {game_session_id}")
    return game_session_to_dict(game_session)


async def cancel_game_session(
    session: AsyncSession,
    router: NotificationRouter,
    game_session_id: str,
    requester_id: str,
) -> Dict:
    """Cancel a session (organizer only) and send GAME_CANCELLED to active invitees."""
    game_session = await _get_organized(session, game_session_id, requester_id)
    game_session.status = GameSessionStatus.CANCELLED.value
    await session.flush()
    await session.refresh(game_session)

    template_data = await rsvp_service.build_template_data(session, game_session)
    for player_id in await _active_audience(session, game_session):
        await rsvp_service.notify(
            session, router, game_session, player_id,
            NotificationType.GAME_CANCELLED, template_data, audience=AUDIENCE_INVITEE,
        )
    logger.info(f"Cancelled game session {game_session_id}")
    return game_session_to_dict(game_session)


async def add_alternate(
    session: AsyncSession, game_session_id: str, requester_id: str, player_id: str
) -> Dict:
    """Append a player to the session's waitlist (organizer only)."""
    game_session = await _get_organized(session, game_session_id, requester_id)
    await _require(session, Player, player_id, "Player")
    if player_id == game_session.organizer_id:
        raise ValueError("The organizer cannot be an alternate")
    if player_id in (game_session.player_ids or []):
        raise ValueError("Player is already invited to this game")
    alternates = list(game_session.alternate_ids or [])
    if player_id in alternates:
        raise ValueError("Player is already on the waitlist")
    game_session.alternate_ids = alternates + [player_id]
    await session.flush()
    await session.refresh(game_session)
    return game_session_to_dict(game_session)
