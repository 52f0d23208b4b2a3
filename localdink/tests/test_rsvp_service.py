"""
Tests for RSVP transitions, their notifications and the scheduled jobs
(expiry and reminders).
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from localdink.database import db
from localdink.database.models import Invitation, NotificationType, RsvpStatus
from localdink.services import (
    game_session_service,
    notification_service,
    player_service,
    rsvp_service,
)
from localdink.services.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError


async def _schedule(db_session, notifier, start_time, now, **kwargs):
    kwargs.setdefault("player_ids", ["p2", "p3", "p4"])
    return await game_session_service.create_game_session(
        db_session,
        notifier,
        organizer_id="p1",
        court_id="c1",
        start_time=start_time,
        now=now,
        **kwargs,
    )


async def _titles(db_session, recipient_id):
    page = await notification_service.get_notifications(db_session, recipient_id)
    return [n["title"] for n in page["notifications"]]


async def _types(db_session, recipient_id):
    page = await notification_service.get_notifications(db_session, recipient_id)
    return [n["type"] for n in page["notifications"]]


@pytest_asyncio.fixture
async def game(db_session, organizer, invitees, court, notifier, start_time, now):
    return await _schedule(db_session, notifier, start_time, now)


@pytest.mark.asyncio
async def test_scheduling_invites_everyone(db_session, game, sms_client, now):
    latest = await rsvp_service.get_latest_invitations(db_session, game["id"])

    assert sorted(latest) == ["p2", "p3", "p4"]
    assert {inv.status for inv in latest.values()} == {RsvpStatus.INVITED.value}
    invitation = rsvp_service.invitation_to_dict(latest["p2"])
    assert invitation["response_deadline"] == (now + timedelta(hours=24)).isoformat()

    assert await _types(db_session, "p2") == [NotificationType.GAME_INVITE.value]
    assert sorted(m["to"] for m in sms_client.sent) == ["+14045389332", "+14155550103", "+14155550104"]
    assert await _types(db_session, "p1") == []


@pytest.mark.asyncio
async def test_deadline_never_passes_the_start_time(
    db_session, organizer, invitees, court, notifier, now
):
    soon = now + timedelta(hours=3)
    game = await _schedule(db_session, notifier, soon, now, player_ids=["p2"])

    invitation = await rsvp_service.get_active_invitation(db_session, game["id"], "p2")
    assert rsvp_service.invitation_to_dict(invitation)["response_deadline"] == soon.isoformat()


@pytest.mark.asyncio
async def test_accept_notifies_organizer_and_invitee(db_session, game, notifier, now):
    result = await rsvp_service.accept_invitation(db_session, notifier, game["id"], "p2", now=now)

    assert result["status"] == RsvpStatus.ACCEPTED.value
    assert result["responded_at"] == now.isoformat()
    assert await _titles(db_session, "p1") == ["Alex Johnson is in!"]
    assert "You're in!" in await _titles(db_session, "p2")


@pytest.mark.asyncio
async def test_answering_twice_is_rejected(db_session, game, notifier, now):
    await rsvp_service.accept_invitation(db_session, notifier, game["id"], "p2", now=now)

    with pytest.raises(InvalidTransitionError):
        await rsvp_service.decline_invitation(db_session, notifier, game["id"], "p2", now=now)
    with pytest.raises(InvalidTransitionError):
        await rsvp_service.accept_invitation(db_session, notifier, game["id"], "p2", now=now)


@pytest.mark.asyncio
async def test_answer_without_invitation(db_session, game, notifier, organizer, now):
    await player_service.create_player(db_session, player_id="p8", first_name="Outsider")
    with pytest.raises(NotFoundError):
        await rsvp_service.accept_invitation(db_session, notifier, game["id"], "p8", now=now)


@pytest.mark.asyncio
async def test_decline_offers_the_spot_to_alternates(
    db_session, organizer, invitees, court, notifier, start_time, now, sms_client
):
    await player_service.create_player(
        db_session, player_id="p5", first_name="Sam", last_name="Lee", phone="4155550105"
    )
    game = await _schedule(db_session, notifier, start_time, now, alternate_ids=["p5"])
    sms_client.sent.clear()

    await rsvp_service.decline_invitation(db_session, notifier, game["id"], "p3", now=now)

    assert await _titles(db_session, "p1") == ["Maria Garcia can't make it"]
    assert await _types(db_session, "p5") == [NotificationType.SPOT_AVAILABLE.value]
    assert [m["to"] for m in sms_client.sent] == ["+14155550105"]


@pytest.mark.asyncio
async def test_expire_before_deadline_is_rejected(db_session, game, notifier, now):
    invitation = await rsvp_service.get_active_invitation(db_session, game["id"], "p2")

    with pytest.raises(ValueError, match="response deadline"):
        await rsvp_service.expire_invitation(db_session, notifier, invitation.id, now=now)
    await db_session.refresh(invitation)
    assert invitation.status == RsvpStatus.INVITED.value


@pytest.mark.asyncio
async def test_expire_overdue_only_touches_pending(db_session, game, notifier, now):
    await rsvp_service.accept_invitation(db_session, notifier, game["id"], "p2", now=now)
    await rsvp_service.decline_invitation(db_session, notifier, game["id"], "p3", now=now)

    assert await rsvp_service.expire_overdue_invitations(db_session, notifier, now=now) == []

    later = now + timedelta(hours=25)
    expired = await rsvp_service.expire_overdue_invitations(db_session, notifier, now=later)

    assert [inv["player_id"] for inv in expired] == ["p4"]
    assert "Chen Wei didn't respond" in await _titles(db_session, "p1")
    assert "Invite expired" in await _titles(db_session, "p4")
    assert await rsvp_service.expire_overdue_invitations(db_session, notifier, now=later) == []


@pytest.mark.asyncio
async def test_cancelled_sessions_do_not_expire(db_session, game, notifier, now):
    await game_session_service.cancel_game_session(db_session, notifier, game["id"], "p1")

    later = now + timedelta(hours=25)
    assert await rsvp_service.expire_overdue_invitations(db_session, notifier, now=later) == []


@pytest.mark.asyncio
async def test_reinvite_after_decline_creates_new_instance(db_session, game, notifier, now):
    await rsvp_service.decline_invitation(db_session, notifier, game["id"], "p3", now=now)

    result = await rsvp_service.reinvite_player(
        db_session, notifier, game["id"], "p3", requester_id="p1", now=now + timedelta(minutes=5)
    )

    assert result["status"] == RsvpStatus.INVITED.value
    active = await rsvp_service.get_active_invitation(db_session, game["id"], "p3")
    assert active.id == result["id"]
    rows = (await db_session.execute(
        select(Invitation).where(Invitation.player_id == "p3")
    )).scalars().all()
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_reinvite_rules(db_session, game, notifier, now):
    with pytest.raises(ValueError, match="active invitation"):
        await rsvp_service.reinvite_player(db_session, notifier, game["id"], "p2", requester_id="p1", now=now)
    with pytest.raises(PermissionDeniedError):
        await rsvp_service.reinvite_player(db_session, notifier, game["id"], "p2", requester_id="p3", now=now)
    with pytest.raises(ValueError, match="organizer"):
        await rsvp_service.reinvite_player(db_session, notifier, game["id"], "p1", requester_id="p1", now=now)


@pytest.mark.asyncio
async def test_reinvite_moves_alternate_into_players(
    db_session, organizer, invitees, court, notifier, start_time, now
):
    await player_service.create_player(db_session, player_id="p5", first_name="Sam", last_name="Lee")
    game = await _schedule(db_session, notifier, start_time, now, player_ids=["p2"], alternate_ids=["p5"])

    await rsvp_service.reinvite_player(db_session, notifier, game["id"], "p5", requester_id="p1", now=now)

    updated = await game_session_service.get_game_session(db_session, game["id"])
    assert updated["player_ids"] == ["p2", "p5"]
    assert updated["alternate_ids"] == []


@pytest.mark.asyncio
async def test_reminders_are_sent_once(db_session, organizer, invitees, court, notifier, now, sms_client):
    game = await _schedule(db_session, notifier, now + timedelta(hours=1), now)
    await rsvp_service.accept_invitation(db_session, notifier, game["id"], "p2", now=now)
    sms_client.sent.clear()

    assert await rsvp_service.send_reminders(db_session, notifier, now=now) == 2
    assert NotificationType.GAME_REMINDER.value in await _types(db_session, "p3")
    assert NotificationType.GAME_REMINDER.value not in await _types(db_session, "p2")
    assert len(sms_client.sent) == 2

    assert await rsvp_service.send_reminders(db_session, notifier, now=now) == 0


@pytest.mark.asyncio
async def test_reminders_ignore_distant_games(db_session, game, notifier, now):
    assert await rsvp_service.send_reminders(db_session, notifier, now=now) == 0


@pytest.mark.asyncio
async def test_reschedule_rearms_the_reminder(db_session, organizer, invitees, court, notifier, now):
    start = now + timedelta(hours=1)
    game = await _schedule(db_session, notifier, start, now)
    assert await rsvp_service.send_reminders(db_session, notifier, now=now) == 3

    new_start = start + timedelta(days=7)
    await game_session_service.update_game_session(
        db_session, notifier, game["id"], "p1", start_time=new_start
    )

    assert await rsvp_service.send_reminders(
        db_session, notifier, now=new_start - timedelta(hours=1)
    ) == 3


@pytest.mark.asyncio
async def test_answer_after_deadline_is_rejected(db_session, game, notifier, now):
    late = now + timedelta(hours=25)

    with pytest.raises(ValueError, match="deadline"):
        await rsvp_service.accept_invitation(db_session, notifier, game["id"], "p2", now=late)
    with pytest.raises(ValueError, match="deadline"):
        await rsvp_service.decline_invitation(db_session, notifier, game["id"], "p3", now=late)

    latest = await rsvp_service.get_latest_invitations(db_session, game["id"])
    assert latest["p2"].status == RsvpStatus.INVITED.value
    assert latest["p3"].status == RsvpStatus.INVITED.value
    assert await _types(db_session, "p1") == []


@pytest.mark.asyncio
async def test_expiry_loses_to_a_concurrent_accept(db_session, game, notifier, now):
    await db_session.commit()
    stale = await rsvp_service.get_active_invitation(db_session, game["id"], "p2")
    assert stale.status == RsvpStatus.INVITED.value

    # Another request accepts and commits while this session still holds the INVITED row
    async with db.get_session_factory()() as other:
        await rsvp_service.accept_invitation(other, notifier, game["id"], "p2", now=now)
        await other.commit()

    with pytest.raises(InvalidTransitionError):
        await rsvp_service.expire_invitation(
            db_session, notifier, stale.id, now=now + timedelta(hours=25)
        )

    assert stale.status == RsvpStatus.ACCEPTED.value
    organizer_inbox = await _types(db_session, "p1")
    assert organizer_inbox == [NotificationType.GAME_INVITE_ACCEPTED.value]


@pytest.mark.asyncio
async def test_expiry_sweep_skips_an_invitation_answered_mid_sweep(
    db_session, game, notifier, now, monkeypatch
):
    await db_session.commit()
    lock_invitation = rsvp_service._lock_invitation
    answered = []

    async def accept_first_then_lock(session, invitation_id):
        # The first row the sweep reaches gets accepted by another request just before the lock
        if not answered:
            answered.append(None)
            async with db.get_session_factory()() as other:
                invitation = await other.get(Invitation, invitation_id)
                answered[0] = invitation.player_id
                await rsvp_service.accept_invitation(
                    other, notifier, game["id"], invitation.player_id, now=now
                )
                await other.commit()
        return await lock_invitation(session, invitation_id)

    monkeypatch.setattr(rsvp_service, "_lock_invitation", accept_first_then_lock)

    expired = await rsvp_service.expire_overdue_invitations(
        db_session, notifier, now=now + timedelta(hours=25)
    )

    assert len(expired) == 2
    assert answered[0] not in {inv["player_id"] for inv in expired}
    latest = await rsvp_service.get_latest_invitations(db_session, game["id"])
    assert latest[answered[0]].status == RsvpStatus.ACCEPTED.value
