"""
RSVP service - applies invitation transitions and fires their notifications.

Every transition is validated by rsvp_state before anything is written.
Notifications are sent after the status change is flushed; a failed
notification is logged and never undoes the transition.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import and_, select, update
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
from localdink.services import rsvp_state, settings_service
from localdink.services.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError
from localdink.services.notification_router import NotificationRouter
from localdink.services.notification_templates import (
    AUDIENCE_INVITEE,
    AUDIENCE_ORGANIZER,
    DISPLAY_TIMEZONE,
    TemplateData,
)
from localdink.services.player_service import display_name
from localdink.utils.datetime_utils import (
    ensure_utc,
    format_session_date,
    format_session_time,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_WINDOW_HOURS = 2.0


def invitation_to_dict(invitation: Invitation) -> Dict:
    return {
        "id": invitation.id,
        "session_id": invitation.session_id,
        "player_id": invitation.player_id,
        "status": invitation.status,
        "response_deadline": ensure_utc(invitation.response_deadline).isoformat()
        if invitation.response_deadline else None,
        "created_at": ensure_utc(invitation.created_at).isoformat()
        if invitation.created_at else None,
        "responded_at": ensure_utc(invitation.responded_at).isoformat()
        if invitation.responded_at else None,
    }


def match_type(game_session: GameSession) -> str:
    return "Doubles" if game_session.is_doubles else "Singles"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_active_invitation(
    session: AsyncSession, game_session_id: str, player_id: str
) -> Optional[Invitation]:
    """Most recent invitation instance for a (session, player) pair."""
    result = await session.execute(
        select(Invitation)
        .where(and_(Invitation.session_id == game_session_id, Invitation.player_id == player_id))
        .order_by(Invitation.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_invitations(
    session: AsyncSession, game_session_id: str
) -> Dict[str, Invitation]:
    """Map of player id to that player's most recent invitation for a session."""
    result = await session.execute(
        select(Invitation)
        .where(Invitation.session_id == game_session_id)
        .order_by(Invitation.created_at)
    )
    latest: Dict[str, Invitation] = {}
    for invitation in result.scalars().all():
        latest[invitation.player_id] = invitation
    return latest


async def find_pending_invitation_for_player(
    session: AsyncSession, player_id: str, now: Optional[datetime] = None
) -> Optional[Invitation]:
    """Latest INVITED invitation of a player in an open session, still before its deadline."""
    now = now or utcnow()
    result = await session.execute(
        select(Invitation)
        .join(GameSession, GameSession.id == Invitation.session_id)
        .where(
            and_(
                Invitation.player_id == player_id,
                Invitation.status == RsvpStatus.INVITED.value,
                Invitation.response_deadline > now,
                GameSession.status == GameSessionStatus.OPEN.value,
            )
        )
        .order_by(Invitation.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_accepted_invitation_for_player(
    session: AsyncSession, player_id: str, now: Optional[datetime] = None
) -> Optional[Invitation]:
    """Accepted invitation for the player's nearest upcoming open session."""
    now = now or utcnow()
    result = await session.execute(
        select(Invitation)
        .join(GameSession, GameSession.id == Invitation.session_id)
        .where(
            and_(
                Invitation.player_id == player_id,
                Invitation.status == RsvpStatus.ACCEPTED.value,
                GameSession.status == GameSessionStatus.OPEN.value,
                GameSession.start_time >= now,
            )
        )
        .order_by(GameSession.start_time)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_open_game_session(session: AsyncSession, game_session_id: str) -> GameSession:
    game_session = await session.get(GameSession, game_session_id)
    if game_session is None:
        raise NotFoundError("Game session", game_session_id)
    if game_session.status != GameSessionStatus.OPEN.value:
        raise ValueError(f"Game session is {game_session.status}")
    return game_session


# ---------------------------------------------------------------------------
# Notification helpers
# ---------------------------------------------------------------------------


async def build_template_data(
    session: AsyncSession, game_session: GameSession, invitee_id: Optional[str] = None
) -> TemplateData:
    organizer = await session.get(Player, game_session.organizer_id)
    court = await session.get(Court, game_session.court_id)
    invitee = await session.get(Player, invitee_id) if invitee_id else None
    return TemplateData(
        inviter_name=display_name(organizer) if organizer else None,
        invitee_name=display_name(invitee) if invitee else None,
        match_type=match_type(game_session),
        date=format_session_date(game_session.start_time, DISPLAY_TIMEZONE),
        time=format_session_time(game_session.start_time, DISPLAY_TIMEZONE),
        court_name=court.name if court else None,
    )


async def notify(
    session: AsyncSession,
    router: NotificationRouter,
    game_session: GameSession,
    recipient_id: str,
    type: NotificationType,
    template_data: TemplateData,
    audience: str = AUDIENCE_ORGANIZER,
    actor_id: Optional[str] = None,
) -> None:
    """Send one notification for a session event; failures are logged only."""
    if actor_id is not None and recipient_id == actor_id:
        return
    payload = {
        "game_session_id": game_session.id,
        "organizer_id": game_session.organizer_id,
        "court_id": game_session.court_id,
    }
    if actor_id is not None:
        payload["player_id"] = actor_id
    try:
        await router.send(
            session,
            recipient_id=recipient_id,
            type=type.value,
            template_data=template_data,
            data=payload,
            audience=audience,
        )
    except Exception as e:
        logger.warning(
            f"Failed to send {type.value} notification to {recipient_id} "
            f"for game session {game_session.id}: {e}"
        )


# ---------------------------------------------------------------------------
# Invitation creation
# ---------------------------------------------------------------------------


async def response_deadline_for(
    session: AsyncSession, game_session: GameSession, now: datetime
) -> datetime:
    hours = await settings_service.get_invite_response_hours(session)
    deadline = ensure_utc(now) + timedelta(hours=hours)
    return min(deadline, ensure_utc(game_session.start_time))


async def create_invitations(
    session: AsyncSession,
    router: NotificationRouter,
    game_session: GameSession,
    player_ids: List[str],
    now: Optional[datetime] = None,
) -> List[Invitation]:
    """Write one INVITED invitation per player and send each a GAME_INVITE."""
    now = now or utcnow()
    deadline = await response_deadline_for(session, game_session, now)
    invitations = [
        Invitation(
            session_id=game_session.id,
            player_id=player_id,
            status=RsvpStatus.INVITED.value,
            response_deadline=deadline,
        )
        for player_id in player_ids
    ]
    session.add_all(invitations)
    await session.flush()

    template_data = await build_template_data(session, game_session)
    for invitation in invitations:
        await notify(
            session, router, game_session, invitation.player_id,
            NotificationType.GAME_INVITE, template_data, audience=AUDIENCE_INVITEE,
        )
    return invitations


async def reinvite_player(
    session: AsyncSession,
    router: NotificationRouter,
    game_session_id: str,
    player_id: str,
    requester_id: str,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Create a fresh INVITED instance for a player.

    Allowed when the player has no invitation yet or the last one was
    declined or expired.

    Raises:
        PermissionDeniedError: If the requester is not the organizer
        ValueError: If the player already has an active invitation
    """
    game_session = await get_open_game_session(session, game_session_id)
    if game_session.organizer_id != requester_id:
        raise PermissionDeniedError("game_sessions", "Only the organizer can invite players")
    if player_id == game_session.organizer_id:
        raise ValueError("The organizer cannot be invited to their own game")
    if await session.get(Player, player_id) is None:
        raise NotFoundError("Player", player_id)

    active = await get_active_invitation(session, game_session_id, player_id)
    if not rsvp_state.can_reinvite(active.status if active else None):
        raise ValueError(f"Player already has an active invitation ({active.status})")

    player_ids = list(game_session.player_ids or [])
    if player_id not in player_ids:
        game_session.player_ids = player_ids + [player_id]
    alternates = list(game_session.alternate_ids or [])
    if player_id in alternates:
        game_session.alternate_ids = [a for a in alternates if a != player_id]

    invitations = await create_invitations(session, router, game_session, [player_id], now=now)
    logger.info(f"Re-invited player {player_id} to game session {game_session_id}")
    return invitation_to_dict(invitations[0])


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


async def _lock_invitation(session: AsyncSession, invitation_id: str) -> Invitation:
    """Re-read an invitation under a row lock so its status reflects concurrent commits."""
    result = await session.execute(
        select(Invitation)
        .where(Invitation.id == invitation_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise NotFoundError("Invitation", invitation_id)
    return invitation


async def _write_transition(
    session: AsyncSession, invitation: Invitation, target: RsvpStatus, now: datetime
) -> None:
    """
    Move the row out of INVITED, only if it is still INVITED.

    Raises:
        InvalidTransitionError: If another transaction answered or expired it first
    """
    result = await session.execute(
        update(Invitation)
        .where(
            and_(
                Invitation.id == invitation.id,
                Invitation.status == RsvpStatus.INVITED.value,
            )
        )
        .values(status=target.value, responded_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(invitation)
    if result.rowcount != 1:
        raise InvalidTransitionError(invitation.status, target.value)


async def _respond(
    session: AsyncSession,
    game_session_id: str,
    player_id: str,
    target: RsvpStatus,
    now: datetime,
):
    game_session = await get_open_game_session(session, game_session_id)
    active = await get_active_invitation(session, game_session_id, player_id)
    if active is None:
        raise NotFoundError("Invitation", f"{game_session_id}/{player_id}")
    invitation = await _lock_invitation(session, active.id)
    rsvp_state.transition(invitation.status, target, now=now, deadline=invitation.response_deadline)
    await _write_transition(session, invitation, target, now)
    logger.info(f"Player {player_id} {target.value} game session {game_session_id}")
    return game_session, invitation


async def accept_invitation(
    session: AsyncSession,
    router: NotificationRouter,
    game_session_id: str,
    player_id: str,
    now: Optional[datetime] = None,
) -> Dict:
    """
    INVITED -> ACCEPTED; notifies the organizer and confirms to the invitee.

    Raises:
        InvalidTransitionError: If the invitation already left INVITED
        ValueError: If the response deadline has passed
    """
    game_session, invitation = await _respond(
        session, game_session_id, player_id, RsvpStatus.ACCEPTED, now or utcnow()
    )
    template_data = await build_template_data(session, game_session, invitee_id=player_id)
    await notify(
        session, router, game_session, game_session.organizer_id,
        NotificationType.GAME_INVITE_ACCEPTED, template_data,
        audience=AUDIENCE_ORGANIZER, actor_id=player_id,
    )
    await notify(
        session, router, game_session, player_id,
        NotificationType.GAME_INVITE_ACCEPTED, template_data,
        audience=AUDIENCE_INVITEE,
    )
    return invitation_to_dict(invitation)


async def decline_invitation(
    session: AsyncSession,
    router: NotificationRouter,
    game_session_id: str,
    player_id: str,
    now: Optional[datetime] = None,
) -> Dict:
    """INVITED -> DECLINED; notifies the organizer and tells the waitlist a spot opened."""
    game_session, invitation = await _respond(
        session, game_session_id, player_id, RsvpStatus.DECLINED, now or utcnow()
    )
    template_data = await build_template_data(session, game_session, invitee_id=player_id)
    await notify(
        session, router, game_session, game_session.organizer_id,
        NotificationType.GAME_INVITE_DECLINED, template_data,
        audience=AUDIENCE_ORGANIZER, actor_id=player_id,
    )
    for alternate_id in list(game_session.alternate_ids or []):
        await notify(
            session, router, game_session, alternate_id,
            NotificationType.SPOT_AVAILABLE, template_data, audience=AUDIENCE_INVITEE,
        )
    return invitation_to_dict(invitation)


async def _expire(
    session: AsyncSession,
    router: NotificationRouter,
    game_session: GameSession,
    invitation_id: str,
    now: datetime,
) -> Dict:
    invitation = await _lock_invitation(session, invitation_id)
    rsvp_state.transition(
        invitation.status, RsvpStatus.EXPIRED,
        now=now, deadline=invitation.response_deadline,
    )
    await _write_transition(session, invitation, RsvpStatus.EXPIRED, now)
    logger.info(
        f"Invitation {invitation.id} for player {invitation.player_id} expired "
        f"(game session {game_session.id})"
    )

    template_data = await build_template_data(
        session, game_session, invitee_id=invitation.player_id
    )
    await notify(
        session, router, game_session, game_session.organizer_id,
        NotificationType.RSVP_EXPIRED, template_data,
        audience=AUDIENCE_ORGANIZER, actor_id=invitation.player_id,
    )
    await notify(
        session, router, game_session, invitation.player_id,
        NotificationType.RSVP_EXPIRED, template_data, audience=AUDIENCE_INVITEE,
    )
    return invitation_to_dict(invitation)


async def expire_invitation(
    session: AsyncSession,
    router: NotificationRouter,
    invitation_id: str,
    now: Optional[datetime] = None,
) -> Dict:
    """
    INVITED -> EXPIRED for one invitation.

    Raises:
        InvalidTransitionError: If the invitation already left INVITED
        ValueError: If its response deadline has not passed
    """
    invitation = await session.get(Invitation, invitation_id)
    if invitation is None:
        raise NotFoundError("Invitation", invitation_id)
    game_session = await session.get(GameSession, invitation.session_id)
    if game_session is None:
        raise NotFoundError("Game session", invitation.session_id)
    return await _expire(session, router, game_session, invitation_id, now or utcnow())


async def expire_overdue_invitations(
    session: AsyncSession,
    router: NotificationRouter,
    now: Optional[datetime] = None,
) -> List[Dict]:
    """
    Expire every INVITED invitation in an open session whose deadline has passed.

    Invitations answered while the sweep runs are skipped.
    """
    now = now or utcnow()
    result = await session.execute(
        select(Invitation.id, GameSession)
        .join(GameSession, GameSession.id == Invitation.session_id)
        .where(
            and_(
                Invitation.status == RsvpStatus.INVITED.value,
                Invitation.response_deadline <= now,
                GameSession.status == GameSessionStatus.OPEN.value,
            )
        )
        .order_by(Invitation.response_deadline)
    )
    expired = []
    for invitation_id, game_session in result.all():
        try:
            expired.append(await _expire(session, router, game_session, invitation_id, now))
        except InvalidTransitionError as e:
            logger.info(f"Skipping invitation {invitation_id}: {e}")
    if expired:
        logger.info(f"Expired {len(expired)} overdue invitations")
    return expired


async def send_reminders(
    session: AsyncSession,
    router: NotificationRouter,
    now: Optional[datetime] = None,
    window_hours: float = DEFAULT_REMINDER_WINDOW_HOURS,
) -> int:
    """
    Send GAME_REMINDER to players still INVITED for open sessions starting soon.

    Each session is reminded once. Returns the number of reminders sent.
    """
    now = now or utcnow()
    result = await session.execute(
        select(GameSession).where(
            and_(
                GameSession.status == GameSessionStatus.OPEN.value,
                GameSession.reminder_sent_at.is_(None),
                GameSession.start_time >= now,
                GameSession.start_time <= now + timedelta(hours=window_hours),
            )
        )
    )
    sent = 0
    for game_session in result.scalars().all():
        latest = await get_latest_invitations(session, game_session.id)
        pending = [
            pid for pid, inv in latest.items() if inv.status == RsvpStatus.INVITED.value
        ]
        game_session.reminder_sent_at = now
        if not pending:
            continue
        template_data = await build_template_data(session, game_session)
        for player_id in pending:
            await notify(
                session, router, game_session, player_id,
                NotificationType.GAME_REMINDER, template_data, audience=AUDIENCE_INVITEE,
            )
            sent += 1
    await session.flush()
    return sent
