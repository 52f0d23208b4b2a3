"""
Tests for replies to invitation texts.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from localdink.database.models import RsvpStatus
from localdink.services import game_session_service, player_service, rsvp_service
from localdink.tests.fakes import FakeGeminiClient
from localdink.services.sms_inbound_service import (
    HELP_TEXT,
    INTENT_ACCEPT,
    INTENT_CANCEL,
    INTENT_DECLINE,
    INTENT_QUESTION,
    INTENT_UNKNOWN,
    SmsIntentDetector,
    UNKNOWN_INTENT_TEXT,
    UNKNOWN_NUMBER_TEXT,
    build_twiml,
    classify_intent,
    detect_intent,
    handle_inbound_message,
)


@pytest.mark.parametrize(
    "text,intent",
    [
        ("Y", INTENT_ACCEPT),
        ("yes!", INTENT_ACCEPT),
        ("  Count me in.  ", INTENT_ACCEPT),
        ("🏓", INTENT_ACCEPT),
        ("N", INTENT_DECLINE),
        ("nope", INTENT_DECLINE),
        ("Not this time", INTENT_DECLINE),
        ("cancel", INTENT_CANCEL),
        ("Something came up", INTENT_CANCEL),
        ("when is it?", INTENT_QUESTION),
        ("help", INTENT_QUESTION),
        ("maybe", INTENT_UNKNOWN),
        ("", INTENT_UNKNOWN),
        (None, INTENT_UNKNOWN),
        ("yes I can make it saturday", INTENT_ACCEPT),
        ("no can't do sunday, sorry", INTENT_DECLINE),
        ("is it in the morning?", INTENT_QUESTION),
        ("Saturday works great for me", INTENT_UNKNOWN),
    ],
)
def test_classify_intent(text, intent):
    assert classify_intent(text) == intent


def test_twiml_escapes_markup():
    twiml = build_twiml('Tom & "Jerry" <3')

    assert twiml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "<Message>Tom &amp; &quot;Jerry&quot; &lt;3</Message>" in twiml


@pytest_asyncio.fixture
async def game(db_session, organizer, invitees, court, notifier, start_time, now):
    return await game_session_service.create_game_session(
        db_session,
        notifier,
        organizer_id="p1",
        court_id="c1",
        start_time=start_time,
        player_ids=["p2", "p3"],
        now=now,
    )


async def _status(db_session, game, player_id):
    invitation = await rsvp_service.get_active_invitation(db_session, game["id"], player_id)
    return invitation.status


@pytest.mark.asyncio
async def test_unknown_number(db_session, notifier):
    reply = await handle_inbound_message(db_session, notifier, "+19999999999", "yes")
    assert reply == UNKNOWN_NUMBER_TEXT


@pytest.mark.asyncio
async def test_yes_accepts_pending_invitation(db_session, game, notifier, now):
    # Sender formats differ from the stored E.164 number
    reply = await handle_inbound_message(db_session, notifier, "404-538-9332", "Yes", now=now)

    assert reply.startswith("You're in!")
    assert await _status(db_session, game, "p2") == RsvpStatus.ACCEPTED.value


@pytest.mark.asyncio
async def test_no_declines_pending_invitation(db_session, game, notifier, now):
    reply = await handle_inbound_message(db_session, notifier, "+14155550103", "no", now=now)

    assert reply.startswith("No problem!")
    assert await _status(db_session, game, "p3") == RsvpStatus.DECLINED.value


@pytest.mark.asyncio
async def test_answer_without_pending_invitation(db_session, game, notifier, now):
    await handle_inbound_message(db_session, notifier, "+14045389332", "yes", now=now)

    assert await handle_inbound_message(db_session, notifier, "+14045389332", "yes", now=now) == (
        "You don't have any pending game invites right now."
    )
    assert await handle_inbound_message(db_session, notifier, "+14045389332", "no", now=now) == (
        "You don't have any pending game invites to decline."
    )
    assert await _status(db_session, game, "p2") == RsvpStatus.ACCEPTED.value


@pytest.mark.asyncio
async def test_cancel_points_to_the_organizer(db_session, game, notifier, now):
    await handle_inbound_message(db_session, notifier, "+14045389332", "yes", now=now)

    reply = await handle_inbound_message(db_session, notifier, "+14045389332", "cancel", now=now)

    assert reply == "To drop out of the game on Thu, Jun 4, please let Robert Smith know directly."
    assert await _status(db_session, game, "p2") == RsvpStatus.ACCEPTED.value


@pytest.mark.asyncio
async def test_cancel_without_confirmed_game(db_session, game, notifier, now):
    reply = await handle_inbound_message(db_session, notifier, "+14045389332", "cancel", now=now)
    assert reply == "You don't have any confirmed games to cancel."


@pytest.mark.asyncio
async def test_questions_and_gibberish(db_session, notifier):
    await player_service.create_player(db_session, player_id="p9", first_name="Pat", phone="4155550199")

    assert await handle_inbound_message(db_session, notifier, "+14155550199", "where?") == HELP_TEXT
    assert await handle_inbound_message(db_session, notifier, "+14155550199", "purple") == UNKNOWN_INTENT_TEXT


def _detector(client, api_key="test-key"):
    return SmsIntentDetector(api_key=api_key, client_factory=lambda: client, model="test-model")


@pytest.mark.asyncio
async def test_keyword_replies_never_reach_the_model():
    client = FakeGeminiClient(reply={"intent": "decline"})

    assert await detect_intent("Y", _detector(client)) == INTENT_ACCEPT
    assert await detect_intent("yes I can make it saturday", _detector(client)) == INTENT_ACCEPT
    assert client.calls == []


@pytest.mark.asyncio
async def test_model_classifies_what_keywords_miss():
    client = FakeGeminiClient(reply={"intent": "accept"})

    assert await detect_intent("Saturday works great for me", _detector(client)) == INTENT_ACCEPT
    call = client.calls[0]
    assert call["model"] == "test-model"
    assert '"Saturday works great for me"' in call["contents"]
    assert call["config"]["response_mime_type"] == "application/json"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "client",
    [
        FakeGeminiClient(reply={"intent": "maybe"}),
        FakeGeminiClient(reply_text="not json"),
        FakeGeminiClient(error=RuntimeError("quota exceeded")),
    ],
)
async def test_unusable_model_answers_are_unknown(client):
    assert await detect_intent("Saturday works great for me", _detector(client)) == INTENT_UNKNOWN


@pytest.mark.asyncio
async def test_without_api_key_the_model_is_skipped():
    client = FakeGeminiClient(reply={"intent": "accept"})

    assert await detect_intent("Saturday works great for me", _detector(client, api_key=None)) == INTENT_UNKNOWN
    assert client.calls == []


@pytest.mark.asyncio
async def test_model_detected_accept_is_applied(db_session, game, notifier, now):
    detector = _detector(FakeGeminiClient(reply={"intent": "accept"}))

    reply = await handle_inbound_message(
        db_session, notifier, "+14045389332", "Saturday works great for me", now=now, detector=detector
    )

    assert reply.startswith("You're in!")
    assert await _status(db_session, game, "p2") == RsvpStatus.ACCEPTED.value


@pytest.mark.asyncio
async def test_reply_after_deadline_is_not_applied(db_session, game, notifier, now):
    late = now + timedelta(hours=25)

    reply = await handle_inbound_message(db_session, notifier, "+14045389332", "yes", now=late)

    assert reply == "You don't have any pending game invites right now."
    assert await _status(db_session, game, "p2") == RsvpStatus.INVITED.value
