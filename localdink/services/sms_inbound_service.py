"""
Inbound SMS replies.

Players answer invitations by text. Common replies are classified by keyword;
anything the keywords miss is handed to the hosted model (Gemini). Accept and
decline are applied to the sender's most recent pending invitation.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Callable, Optional
from xml.sax.saxutils import escape

from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import GameSession, Player
from localdink.services import chat_service, player_service, rsvp_service
from localdink.services.notification_router import NotificationRouter
from localdink.services.notification_templates import DISPLAY_TIMEZONE
from localdink.utils.datetime_utils import format_session_date

logger = logging.getLogger(__name__)

INTENT_ACCEPT = "accept"
INTENT_DECLINE = "decline"
INTENT_CANCEL = "cancel"
INTENT_QUESTION = "question"
INTENT_UNKNOWN = "unknown"

ACCEPT_PATTERN = re.compile(
    r"^(y|yes|yep|yeah|yea|ya|yup|sure|ok|okay|k|in|im in|i'm in|count me in|"
    r"i'll be there|see you there|confirmed|accept|joining|join|down|let's go|lets go|"
    r"absolutely|definitely|for sure|👍|✅|🏓)$",
    re.IGNORECASE,
)
DECLINE_PATTERN = re.compile(
    r"^(n|no|nope|nah|can't|cant|cannot|pass|skip|out|i'm out|im out|not this time|"
    r"maybe next time|decline|busy|unavailable|sorry|❌|👎)$",
    re.IGNORECASE,
)
CANCEL_PATTERN = re.compile(
    r"^(cancel|canceling|cancelling|back out|backing out|pull out|pulling out|drop|"
    r"dropping|remove me|take me out|something came up|can't make it anymore|cant make it)$",
    re.IGNORECASE,
)
QUESTION_PATTERN = re.compile(r"(\?$|^(help|info|what|when|where|who|how)\b)", re.IGNORECASE)
# A longer reply that still carries a plain yes or no, e.g. "yes I can make it saturday"
ACCEPT_KEYWORD = re.compile(r"\b(yes|yep|yeah|in|join)\b", re.IGNORECASE)
DECLINE_KEYWORD = re.compile(r"\b(no|nope|out|pass)\b", re.IGNORECASE)

INTENTS = (INTENT_ACCEPT, INTENT_DECLINE, INTENT_CANCEL, INTENT_QUESTION, INTENT_UNKNOWN)

INTENT_PROMPT = """You are reading an SMS reply to a pickleball game invitation.

The player replied with this message:
"{message}"

Decide what they want:
- "accept": they want to join the game
- "decline": they don't want to join
- "cancel": they accepted earlier and now want to back out
- "question": they are asking for more information
- "unknown": it is not clear

Respond with JSON only: {{"intent": "..."}}"""

INTENT_JSON_SCHEMA = {
    "type": "object",
    "properties": {"intent": {"type": "string", "enum": list(INTENTS)}},
    "required": ["intent"],
}

UNKNOWN_NUMBER_TEXT = (
    "I don't recognize this number. Please make sure your phone is registered in LocalDink."
)
HELP_TEXT = (
    "For help, check the LocalDink app or contact the game organizer. "
    "Reply YES to join a game or NO to decline."
)
UNKNOWN_INTENT_TEXT = (
    "I didn't understand. Reply YES to join a game, NO to decline, "
    "or CANCEL to back out of a confirmed game."
)
CLOSED_INVITE_TEXT = "Sorry, that invite is no longer open. Check the LocalDink app for your games."


def classify_intent(text: str) -> str:
    """Keyword classification of an SMS reply; INTENT_UNKNOWN when no rule matches."""
    cleaned = re.sub(r"[!.\s]+$", "", (text or "").strip().lower())
    if not cleaned:
        return INTENT_UNKNOWN
    if ACCEPT_PATTERN.match(cleaned):
        return INTENT_ACCEPT
    if DECLINE_PATTERN.match(cleaned):
        return INTENT_DECLINE
    if CANCEL_PATTERN.match(cleaned):
        return INTENT_CANCEL
    if QUESTION_PATTERN.search(cleaned):
        return INTENT_QUESTION
    if len(cleaned.split()) > 1:
        if ACCEPT_KEYWORD.search(cleaned):
            return INTENT_ACCEPT
        if DECLINE_KEYWORD.search(cleaned):
            return INTENT_DECLINE
    return INTENT_UNKNOWN


class SmsIntentDetector:
    """Asks the hosted model about replies the keyword rules cannot place."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client_factory: Callable[[], Any] = chat_service.get_gemini_client,
        model: str = chat_service.GEMINI_MODEL,
    ):
        self.api_key = api_key
        self.client_factory = client_factory
        self.model = model

    async def detect(self, text: str) -> str:
        if not self.api_key:
            return INTENT_UNKNOWN
        client = self.client_factory()

        def _call() -> str:
            response = client.models.generate_content(
                model=self.model,
                contents=INTENT_PROMPT.format(message=text),
                config={
                    "response_mime_type": "application/json",
                    "response_json_schema": INTENT_JSON_SCHEMA,
                    "temperature": 0.1,
                },
            )
            return getattr(response, "text", None) or ""

        try:
            parsed = chat_service.parse_model_json(await asyncio.to_thread(_call))
        except Exception as e:
            logger.error(f"SMS intent model error: {e}")
            return INTENT_UNKNOWN
        intent = str(parsed.get("intent", "")).strip().lower()
        return intent if intent in INTENTS else INTENT_UNKNOWN


def get_intent_detector() -> SmsIntentDetector:
    """FastAPI dependency for the inbound SMS intent detector."""
    return SmsIntentDetector(api_key=chat_service.GEMINI_API_KEY)


async def detect_intent(text: str, detector: Optional[SmsIntentDetector] = None) -> str:
    """Keyword rules first; the model only sees replies they leave unknown."""
    intent = classify_intent(text)
    if intent != INTENT_UNKNOWN or detector is None or not (text or "").strip():
        return intent
    intent = await detector.detect(text.strip())
    logger.info(f"SMS intent from model: {intent}")
    return intent


def build_twiml(message: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<Response>\n"
        f"  <Message>{escape(message, {chr(34): '&quot;', chr(39): '&apos;'})}</Message>\n"
        "</Response>"
    )


async def _organizer_name(session: AsyncSession, game_session: GameSession) -> str:
    organizer = await session.get(Player, game_session.organizer_id)
    return player_service.display_name(organizer) if organizer else "the organizer"


async def handle_inbound_message(
    session: AsyncSession,
    router: NotificationRouter,
    from_number: str,
    body: str,
    now: Optional[datetime] = None,
    detector: Optional[SmsIntentDetector] = None,
) -> str:
    """
    Apply an SMS reply and return the response text.

    Accept and decline go through the RSVP state machine; cancel only
    points the player at the organizer.
    """
    player = await player_service.get_player_by_phone(session, from_number)
    if player is None:
        logger.info(f"Inbound SMS from unknown number {from_number}")
        return UNKNOWN_NUMBER_TEXT

    intent = await detect_intent(body, detector)
    logger.info(f"Inbound SMS from player {player['id']} classified as {intent}")

    if intent in (INTENT_ACCEPT, INTENT_DECLINE):
        invitation = await rsvp_service.find_pending_invitation_for_player(
            session, player["id"], now=now
        )
        if invitation is None:
            if intent == INTENT_ACCEPT:
                return "You don't have any pending game invites right now."
            return "You don't have any pending game invites to decline."
        try:
            if intent == INTENT_ACCEPT:
                await rsvp_service.accept_invitation(
                    session, router, invitation.session_id, player["id"], now=now
                )
                return "You're in! ✅ We'll let you know if anything changes."
            await rsvp_service.decline_invitation(
                session, router, invitation.session_id, player["id"], now=now
            )
            return "No problem! Maybe next time. 👍"
        except ValueError as e:
            logger.info(f"SMS reply from player {player['id']} not applied: {e}")
            return CLOSED_INVITE_TEXT

    if intent == INTENT_CANCEL:
        invitation = await rsvp_service.find_accepted_invitation_for_player(session, player["id"], now=now)
        if invitation is None:
            return "You don't have any confirmed games to cancel."
        game_session = await session.get(GameSession, invitation.session_id)
        date = format_session_date(game_session.start_time, DISPLAY_TIMEZONE)
        organizer = await _organizer_name(session, game_session)
        return f"To drop out of the game on {date}, please let {organizer} know directly."

    if intent == INTENT_QUESTION:
        return HELP_TEXT
    return UNKNOWN_INTENT_TEXT
