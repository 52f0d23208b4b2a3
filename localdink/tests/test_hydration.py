"""
Tests for session hydration with an in-memory entity reader.
"""

import pytest

from localdink.services.hydration_service import (
    UNKNOWN_COURT,
    UNKNOWN_ID,
    UNKNOWN_PLAYER,
    Placeholder,
    Resolved,
    SessionHydrator,
    confirmed_count,
    is_confirmed,
    view_to_dict,
)


class MemoryReader:
    """EntityReader over plain dicts; ids in `failing` raise on lookup."""

    def __init__(self, courts=None, players=None, statuses=None, failing=()):
        self.courts = courts or {}
        self.players = players or {}
        self.statuses = statuses or {}
        self.failing = set(failing)
        self.lookups = []

    async def get_court(self, court_id):
        self.lookups.append(court_id)
        if court_id in self.failing:
            raise RuntimeError("permission denied")
        return self.courts.get(court_id)

    async def get_player(self, player_id):
        self.lookups.append(player_id)
        if player_id in self.failing:
            raise RuntimeError("permission denied")
        return self.players.get(player_id)

    async def get_statuses(self, game_session_id):
        if game_session_id in self.failing:
            raise RuntimeError("permission denied")
        return self.statuses.get(game_session_id, {})


def _player(player_id, name):
    return {"id": player_id, "name": name}


PLAYERS = {
    "p1": _player("p1", "Robert Smith"),
    "p2": _player("p2", "Alex Johnson"),
    "p3": _player("p3", "Maria Garcia"),
    "p5": _player("p5", "Sam Lee"),
}
COURTS = {"c1": {"id": "c1", "name": "Sunnyvale Park"}}

RAW = {
    "id": "gs1",
    "court_id": "c1",
    "organizer_id": "p1",
    "start_time": "2026-06-04T17:00:00+00:00",
    "is_doubles": True,
    "duration_minutes": 90,
    "player_ids": ["p2", "p3", "ghost"],
    "alternate_ids": ["p5"],
    "group_ids": ["g1"],
    "status": "open",
    "max_players": 4,
}


def _reader(**kwargs):
    kwargs.setdefault("courts", COURTS)
    kwargs.setdefault("players", PLAYERS)
    kwargs.setdefault("statuses", {"gs1": {"p2": "ACCEPTED", "p3": "DECLINED", "ghost": "INVITED"}})
    return MemoryReader(**kwargs)


@pytest.mark.asyncio
async def test_hydrate_resolves_every_reference():
    view = await SessionHydrator(_reader()).hydrate(RAW)

    assert view.court == Resolved(entity=COURTS["c1"])
    assert view.organizer.name == "Robert Smith"
    assert [entry.player.id for entry in view.players] == ["p2", "p3", UNKNOWN_ID]
    assert [entry.status for entry in view.players] == ["ACCEPTED", "DECLINED", "INVITED"]
    assert [ref.id for ref in view.alternates] == ["p5"]
    assert view.date == "Thu, Jun 4"
    assert view.time == "10:00 AM"
    assert view.type == "Doubles"
    assert view.duration_minutes == 90


@pytest.mark.asyncio
async def test_missing_player_becomes_placeholder():
    view = await SessionHydrator(_reader()).hydrate(RAW)

    ghost = view.players[2].player
    assert ghost == Placeholder(name=UNKNOWN_PLAYER, requested_id="ghost")
    assert view.players[0].player.name == "Alex Johnson"


@pytest.mark.asyncio
async def test_failed_lookup_only_affects_that_reference():
    view = await SessionHydrator(_reader(failing={"c1", "p3"})).hydrate(RAW)

    assert view.court == Placeholder(name=UNKNOWN_COURT, requested_id="c1")
    assert isinstance(view.players[1].player, Placeholder)
    assert isinstance(view.players[0].player, Resolved)
    assert isinstance(view.organizer, Resolved)


@pytest.mark.asyncio
async def test_failed_status_lookup_leaves_statuses_empty():
    view = await SessionHydrator(_reader(failing={"gs1"})).hydrate(RAW)

    assert all(entry.status is None for entry in view.players)
    assert confirmed_count(view) == 0


@pytest.mark.asyncio
async def test_missing_court_id_has_no_requested_id():
    view = await SessionHydrator(_reader()).hydrate({**RAW, "court_id": None})

    assert view.court == Placeholder(name=UNKNOWN_COURT)
    assert view.court.requested_id is None


@pytest.mark.asyncio
async def test_hydration_is_idempotent():
    hydrator = SessionHydrator(_reader())

    assert await hydrator.hydrate(RAW) == await hydrator.hydrate(RAW)


@pytest.mark.asyncio
async def test_duplicate_ids_are_looked_up_once():
    reader = _reader()
    view = await SessionHydrator(reader).hydrate({**RAW, "player_ids": ["p2", "p2", "p3"]})

    assert [entry.player.id for entry in view.players] == ["p2", "p3"]
    assert reader.lookups.count("p2") == 1


@pytest.mark.asyncio
async def test_confirmation_is_derived_from_accepted_players():
    statuses = {"gs1": {"p2": "ACCEPTED", "p3": "ACCEPTED"}}
    view = await SessionHydrator(_reader(statuses=statuses)).hydrate(
        {**RAW, "player_ids": ["p2", "p3"], "is_doubles": False, "max_players": None}
    )

    assert view.max_players == 2
    assert view.type == "Singles"
    assert confirmed_count(view) == 2
    assert is_confirmed(view) is True

    doubles = await SessionHydrator(_reader(statuses=statuses)).hydrate(RAW)
    assert is_confirmed(doubles) is False


@pytest.mark.asyncio
async def test_view_to_dict_marks_placeholders():
    view = await SessionHydrator(_reader()).hydrate(RAW)
    data = view_to_dict(view)

    assert data["court"] == {"id": "c1", "name": "Sunnyvale Park", "resolved": True}
    assert data["players"][2]["player"] == {
        "id": UNKNOWN_ID,
        "name": UNKNOWN_PLAYER,
        "requested_id": "ghost",
        "resolved": False,
    }
    assert data["confirmed_count"] == 1
    assert data["is_confirmed"] is False
    assert data["group_ids"] == ["g1"]


@pytest.mark.asyncio
async def test_hydrate_many_drops_rows_that_fail_outright():
    broken = {**RAW, "id": "gs2", "start_time": "not a date"}
    views = await SessionHydrator(_reader()).hydrate_many([RAW, broken])

    assert [view.id for view in views] == ["gs1"]
