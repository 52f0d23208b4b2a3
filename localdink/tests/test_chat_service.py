"""
Tests for Robin with a stubbed Gemini client.
"""

import json

import pytest
import pytest_asyncio

from localdink.services.chat_service import (
    APOLOGY_TEXT,
    FALLBACK_TEXT,
    NO_PLAYERS_TEXT,
    ChatAssistant,
    build_conversation,
    match_player_name,
)
from localdink.services import player_service
from localdink.tests.fakes import FakeGeminiClient

KNOWN = ["Alex Johnson", "Maria Garcia", "Chen Wei", "Chen Li"]


@pytest_asyncio.fixture
async def roster(db_session, organizer):
    """Contacts saved by Robert (p1)."""
    for player_id, first, last in [("c2", "Alex", "Johnson"), ("c3", "Maria", "Garcia"), ("c4", "Chen", "Wei")]:
        await player_service.create_player(
            db_session, player_id=player_id, first_name=first, last_name=last, owner_id="p1"
        )


def _assistant(client):
    return ChatAssistant(api_key="test-key", client_factory=lambda: client, model="test-model")


@pytest.mark.asyncio
async def test_without_api_key_returns_fallback(db_session):
    client = FakeGeminiClient(reply={"players": ["Alex"]})
    reply = await ChatAssistant(api_key=None, client_factory=lambda: client).reply(db_session, "hi")

    assert reply == {"confirmationText": FALLBACK_TEXT}
    assert client.calls == []


@pytest.mark.asyncio
async def test_scheduling_request_is_confirmed_with_matched_names(db_session, roster, now):
    client = FakeGeminiClient(reply={
        "players": ["Alex", "maria garcia", "Alex"],
        "date": "Saturday, June 6",
        "time": "9:00 AM",
        "location": "Sunnyvale Park",
        "confirmationText": "",
    })

    reply = await _assistant(client).reply(
        db_session,
        "Set up doubles with Alex and Maria on Saturday at 9",
        history=[{"sender": "user", "text": "hey robin"}, {"sender": "robin", "text": "Hi!"}],
        player_id="p1",
        now=now,
    )

    assert reply["confirmationText"] == (
        "Great! I'll schedule a game for Saturday, June 6 at 9:00 AM at Sunnyvale Park. "
        "I'll invite: Alex Johnson, Maria Garcia. Does that look right?"
    )
    call = client.calls[0]
    assert call["model"] == "test-model"
    assert "- robin: Hi!" in call["contents"]
    assert "- Chen Wei" in call["config"]["system_instruction"]
    assert call["config"]["response_mime_type"] == "application/json"


@pytest.mark.asyncio
async def test_missing_details_use_placeholders(db_session, roster):
    client = FakeGeminiClient(reply={"players": ["Chen Wei"]})

    reply = await _assistant(client).reply(db_session, "game with Chen", player_id="p1")

    assert reply["confirmationText"] == (
        "Great! I'll schedule a game for a yet to be determined date at a yet to be "
        "determined time at your home court. I'll invite: Chen Wei. Does that look right?"
    )


@pytest.mark.asyncio
async def test_roster_only_holds_the_players_own_contacts(db_session, roster):
    await player_service.create_player(
        db_session, player_id="x1", first_name="Secret", last_name="Stranger", owner_id="p9"
    )
    client = FakeGeminiClient(reply={"players": ["Secret"]})

    reply = await _assistant(client).reply(db_session, "game with Secret", player_id="p1")

    instruction = client.calls[0]["config"]["system_instruction"]
    assert "Stranger" not in instruction
    assert "- Robert Smith" in instruction
    assert "- Alex Johnson" in instruction
    assert "I'll invite: Secret." in reply["confirmationText"]


@pytest.mark.asyncio
async def test_anonymous_request_gets_an_empty_roster(db_session, roster):
    client = FakeGeminiClient(reply={"players": [], "confirmationText": "Hi there!"})

    await _assistant(client).reply(db_session, "hello")

    assert "- (none yet)" in client.calls[0]["config"]["system_instruction"]


@pytest.mark.asyncio
async def test_conversational_reply_is_passed_through(db_session):
    client = FakeGeminiClient(reply={"players": [], "confirmationText": "Happy to help!"})

    reply = await _assistant(client).reply(db_session, "thanks")

    assert reply == {"confirmationText": "Happy to help!"}


@pytest.mark.asyncio
async def test_no_players_asks_again(db_session):
    client = FakeGeminiClient(reply={"players": ["  "], "date": "tomorrow"})

    reply = await _assistant(client).reply(db_session, "schedule a game tomorrow")

    assert reply == {"confirmationText": NO_PLAYERS_TEXT}


@pytest.mark.asyncio
async def test_fenced_json_is_accepted(db_session, roster):
    fenced = "```json\n" + json.dumps({"players": ["Maria"]}) + "\n```"
    client = FakeGeminiClient(reply_text=fenced)

    reply = await _assistant(client).reply(db_session, "game with Maria", player_id="p1")

    assert "I'll invite: Maria Garcia." in reply["confirmationText"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "client",
    [
        FakeGeminiClient(error=RuntimeError("quota exceeded")),
        FakeGeminiClient(reply_text="not json"),
        FakeGeminiClient(reply_text="[1, 2]"),
    ],
)
async def test_model_failures_return_apology(db_session, client):
    reply = await _assistant(client).reply(db_session, "game tomorrow with Alex")

    assert reply == {"confirmationText": APOLOGY_TEXT}


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Alex", "Alex Johnson"),
        ("alex johnson", "Alex Johnson"),
        ("Marie Garcia", "Maria Garcia"),
        ("Chen", "Chen"),
        ("Zed", "Zed"),
        ("", ""),
    ],
)
def test_match_player_name(name, expected):
    assert match_player_name(name, KNOWN) == expected


def test_match_player_name_without_roster():
    assert match_player_name(" Alex ", []) == "Alex"


def test_build_conversation_ends_with_new_message():
    text = build_conversation("game at 6?", [{"sender": "user", "text": "hi"}])
    assert text.splitlines()[-1] == "- user: game at 6?"
