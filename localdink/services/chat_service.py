"""
Robin, the scheduling chat assistant.

The hosted model (Gemini) extracts scheduling details from the conversation.
Player names it returns are matched against known players; the reply is a
confirmation sentence composed here. The assistant never sends messages or
writes sessions itself.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from difflib import SequenceMatcher
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import Player
from localdink.services.player_service import display_name
from localdink.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

FALLBACK_TEXT = (
    "Robin isn't connected to the scheduling service right now. "
    "You can still create a game from the Games page."
)
APOLOGY_TEXT = "Sorry, I'm having trouble responding right now. Please try again in a moment."
NO_PLAYERS_TEXT = (
    "I'm sorry, I didn't catch who is playing. Could you list the players for the game?"
)

NAME_MATCH_THRESHOLD = 0.6

EXTRACTION_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "players": {"type": "array", "items": {"type": "string"}},
        "date": {"type": "string"},
        "time": {"type": "string"},
        "location": {"type": "string"},
        "confirmationText": {"type": "string"},
    },
}

_gemini_client: Any = None


def get_gemini_client():
    """Get or create the Gemini client. google.genai is imported on first use."""
    global _gemini_client
    if _gemini_client is None:
        if not GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY or GOOGLE_API_KEY environment variable is not set")
        from google import genai
        _gemini_client = genai.Client(api_key=GEMINI_API_KEY)
    return _gemini_client


def build_system_prompt(known_players: List[str], today: datetime) -> str:
    roster = "\n".join(f"- {name}" for name in known_players) or "- (none yet)"
    return f"""You are Robin, a friendly scheduling assistant for pickleball games.

Extract scheduling details from the user's latest message, using the conversation history for context:
- players: the names of the people who should play (not the user themselves)
- date: the game date; convert relative terms like "tomorrow" to an absolute date (today is {today.strftime('%A, %B %d, %Y')})
- time: the start time, e.g. "6:00 PM"
- location: the court or park name, or leave it empty

If the message is not a scheduling request, reply conversationally in "confirmationText" and leave the other fields empty.
If it is a scheduling request, leave "confirmationText" empty.

Known players:
{roster}

Respond with a single JSON object."""


def build_conversation(message: str, history: List[Dict]) -> str:
    lines = ["Conversation history:"]
    for turn in history or []:
        lines.append(f"- {turn.get('sender', 'user')}: {turn.get('text', '')}")
    lines.append("")
    lines.append("New user message:")
    lines.append(f"- user: {message}")
    return "\n".join(lines)


def calculate_name_similarity(name1: str, name2: str) -> float:
    return SequenceMatcher(None, name1.lower().strip(), name2.lower().strip()).ratio()


def match_player_name(name: str, known_players: List[str]) -> str:
    """
    Resolve a possibly partial name to a known player's full name.

    A unique first-name match wins and a shared first name stays as given;
    otherwise the closest full name above NAME_MATCH_THRESHOLD. Unmatched
    names are returned unchanged.
    """
    cleaned = (name or "").strip()
    if not cleaned or not known_players:
        return cleaned

    for known in known_players:
        if known.lower() == cleaned.lower():
            return known

    first_matches = [k for k in known_players if k.split()[0].lower() == cleaned.lower()]
    if len(first_matches) == 1:
        return first_matches[0]
    if first_matches:
        return cleaned

    best = max(known_players, key=lambda k: calculate_name_similarity(cleaned, k))
    if calculate_name_similarity(cleaned, best) >= NAME_MATCH_THRESHOLD:
        return best
    return cleaned


def compose_confirmation(players: List[str], date: str, time: str, location: str) -> str:
    return (
        f"Great! I'll schedule a game for {date or 'a yet to be determined date'} "
        f"at {time or 'a yet to be determined time'} at {location or 'your home court'}. "
        f"I'll invite: {', '.join(players)}. Does that look right?"
    )


def parse_model_json(raw_text: str) -> Dict:
    text = (raw_text or "").strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("Model response is not a JSON object")
    return parsed


class ChatAssistant:
    """Robin. The model client is created lazily through `client_factory`."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client_factory: Callable[[], Any] = get_gemini_client,
        model: str = GEMINI_MODEL,
    ):
        self.api_key = api_key
        self.client_factory = client_factory
        self.model = model

    async def _known_player_names(self, session: AsyncSession, player_id: Optional[str]) -> List[str]:
        """The requesting player and the contacts they own; nobody else's."""
        if not player_id:
            return []
        result = await session.execute(
            select(Player)
            .where(or_(Player.owner_id == player_id, Player.id == player_id))
            .order_by(Player.first_name, Player.last_name)
        )
        return [display_name(p) for p in result.scalars().all()]

    async def _extract(self, system_prompt: str, conversation: str) -> Dict:
        client = self.client_factory()

        def _call() -> str:
            response = client.models.generate_content(
                model=self.model,
                contents=conversation,
                config={
                    "response_mime_type": "application/json",
                    "response_json_schema": EXTRACTION_JSON_SCHEMA,
                    "system_instruction": system_prompt,
                    "temperature": 0.2,
                },
            )
            return getattr(response, "text", None) or ""

        raw_text = await asyncio.to_thread(_call)
        return parse_model_json(raw_text)

    async def reply(
        self,
        session: AsyncSession,
        message: str,
        history: Optional[List[Dict]] = None,
        now: Optional[datetime] = None,
        player_id: Optional[str] = None,
    ) -> Dict:
        """
        Answer one chat turn.

        Returns:
            {"confirmationText": str}
        """
        if not self.api_key:
            logger.info("Chat requested without model credentials, returning fallback")
            return {"confirmationText": FALLBACK_TEXT}

        try:
            known_players = await self._known_player_names(session, player_id)
            extraction = await self._extract(
                build_system_prompt(known_players, now or utcnow()),
                build_conversation(message, history or []),
            )
        except Exception as e:
            logger.error(f"Chat model error: {e}")
            return {"confirmationText": APOLOGY_TEXT}

        conversational = (extraction.get("confirmationText") or "").strip()
        if conversational:
            return {"confirmationText": conversational}

        players = [p for p in (extraction.get("players") or []) if isinstance(p, str) and p.strip()]
        if not players:
            return {"confirmationText": NO_PLAYERS_TEXT}

        matched = list(dict.fromkeys(match_player_name(p, known_players) for p in players))
        return {
            "confirmationText": compose_confirmation(
                matched,
                (extraction.get("date") or "").strip(),
                (extraction.get("time") or "").strip(),
                (extraction.get("location") or "").strip(),
            )
        }


def get_chat_assistant() -> ChatAssistant:
    """FastAPI dependency for the process chat assistant."""
    return ChatAssistant(api_key=GEMINI_API_KEY)
