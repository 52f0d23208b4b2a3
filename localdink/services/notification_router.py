"""
Notification channel router.

Turns a classified event (type, recipient, payload) into deliveries: the
recipient's preferences decide whether the event is wanted at all, then the
in-app document is written and an SMS is attempted when every SMS condition
holds. SMS failures are logged and never undo the in-app write.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Callable, Dict, List, Optional

import pytz
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.database.models import NotificationChannel, NotificationType, Player
from localdink.services import notification_service, settings_service
from localdink.services.notification_templates import (
    AUDIENCE_ORGANIZER,
    TemplateData,
    render,
    session_link,
)
from localdink.services.sms_service import SmsClient, SmsError, normalize_to_e164
from localdink.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: Dict = {
    "channels": {"in_app": True, "sms": True, "push": False},
    "types": {
        "game_invites": True,
        "rsvp_updates": True,
        "game_reminders": True,
        "game_changes": True,
        "spot_available": True,
    },
    "quiet_hours": None,
}

TYPE_CATEGORIES = {
    NotificationType.GAME_INVITE.value: "game_invites",
    NotificationType.RSVP_EXPIRED.value: "game_invites",
    NotificationType.GAME_INVITE_ACCEPTED.value: "rsvp_updates",
    NotificationType.GAME_INVITE_DECLINED.value: "rsvp_updates",
    NotificationType.GAME_REMINDER.value: "game_reminders",
    NotificationType.GAME_CHANGED.value: "game_changes",
    NotificationType.GAME_CANCELLED.value: "game_changes",
    NotificationType.SPOT_AVAILABLE.value: "spot_available",
}

STATUS_SENT = "sent"
STATUS_SUPPRESSED = "suppressed"
STATUS_SKIPPED = "skipped"


@dataclass
class DeliveryResult:
    status: str
    channels: List[str] = field(default_factory=list)
    notification: Optional[Dict] = None


def resolve_preferences(stored: Optional[Dict]) -> Dict:
    """Merge stored preferences over the defaults; missing keys take default values."""
    prefs = copy.deepcopy(DEFAULT_PREFERENCES)
    if not stored:
        return prefs
    for section in ("channels", "types"):
        values = stored.get(section)
        if isinstance(values, dict):
            for key, value in values.items():
                if key in prefs[section] and isinstance(value, bool):
                    prefs[section][key] = value
    if "quiet_hours" in stored:
        prefs["quiet_hours"] = stored["quiet_hours"] or None
    return prefs


def validate_preferences(prefs: Dict) -> Dict:
    """
    Validate a preferences payload and return it merged with defaults.

    Raises:
        ValueError: On unknown keys or a malformed quiet-hours window
    """
    for section in ("channels", "types"):
        for key in (prefs.get(section) or {}):
            if key not in DEFAULT_PREFERENCES[section]:
                raise ValueError(f"Unknown {section} preference: {key}")
    quiet = prefs.get("quiet_hours")
    if quiet:
        _parse_clock(quiet.get("start"), "quiet_hours.start")
        _parse_clock(quiet.get("end"), "quiet_hours.end")
        tz_name = quiet.get("timezone") or "UTC"
        try:
            pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone: {tz_name}")
    return resolve_preferences(prefs)


def _parse_clock(value: Optional[str], label: str) -> time:
    try:
        hours, minutes = (value or "").split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValueError(f"{label} must be HH:MM, got {value!r}")


def in_quiet_hours(quiet_hours: Optional[Dict], now: datetime) -> bool:
    """
    Whether `now` falls inside the quiet-hours window.

    The window is evaluated in its own timezone and may wrap midnight
    (e.g. 22:00-07:00). A window whose start equals its end is empty.
    """
    if not quiet_hours:
        return False
    try:
        start = _parse_clock(quiet_hours.get("start"), "start")
        end = _parse_clock(quiet_hours.get("end"), "end")
        tz = pytz.timezone(quiet_hours.get("timezone") or "UTC")
    except (ValueError, pytz.UnknownTimeZoneError) as e:
        logger.warning(f"Ignoring malformed quiet hours {quiet_hours}: {e}")
        return False

    if now.tzinfo is None:
        now = pytz.UTC.localize(now)
    local = now.astimezone(tz).time().replace(second=0, microsecond=0)
    if start == end:
        return False
    if start < end:
        return start <= local < end
    return local >= start or local < end


class NotificationRouter:
    """Routes notification events to the in-app store and SMS."""

    def __init__(
        self,
        sms_client: Optional[SmsClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sms_client = sms_client
        self.clock = clock

    async def send(
        self,
        session: AsyncSession,
        recipient_id: str,
        type: str,
        template_data: TemplateData,
        data: Optional[Dict] = None,
        audience: str = AUDIENCE_ORGANIZER,
    ) -> DeliveryResult:
        """
        Deliver one notification event to one recipient.

        Returns:
            DeliveryResult with status "sent", "suppressed" (type disabled)
            or "skipped" (unknown recipient)
        """
        player = await session.get(Player, recipient_id)
        if player is None:
            logger.warning(f"Player {recipient_id} not found, skipping {type} notification")
            return DeliveryResult(status=STATUS_SKIPPED)

        prefs = resolve_preferences(player.notification_preferences)
        category = TYPE_CATEGORIES.get(type)
        if category and not prefs["types"].get(category, True):
            logger.info(f"Notification type {type} disabled for player {recipient_id}")
            return DeliveryResult(status=STATUS_SUPPRESSED)

        data = dict(data or {})
        if template_data.link is None:
            template_data = TemplateData(
                inviter_name=template_data.inviter_name,
                invitee_name=template_data.invitee_name,
                match_type=template_data.match_type,
                date=template_data.date,
                time=template_data.time,
                court_name=template_data.court_name,
                link=session_link(data.get("game_session_id")),
            )
        rendered = render(type, template_data, audience=audience)

        result = DeliveryResult(status=STATUS_SENT)
        if prefs["channels"]["in_app"]:
            result.notification = await notification_service.create_notification(
                session,
                recipient_id=recipient_id,
                type=type,
                title=rendered.title,
                body=rendered.body,
                data=data,
                link_url=template_data.link,
                channels=[NotificationChannel.IN_APP.value],
            )
            result.channels.append(NotificationChannel.IN_APP.value)

        if await self._sms_allowed(session, player, prefs, rendered.sms_body):
            if await self._send_sms(player, rendered.sms_body):
                result.channels.append(NotificationChannel.SMS.value)
                if result.notification is not None:
                    await notification_service.add_channel(
                        session, result.notification["id"], NotificationChannel.SMS.value
                    )
                    result.notification["channels"].append(NotificationChannel.SMS.value)

        return result

    async def _sms_allowed(
        self, session: AsyncSession, player: Player, prefs: Dict, sms_body: Optional[str]
    ) -> bool:
        if not prefs["channels"]["sms"] or not sms_body:
            return False
        if self.sms_client is None:
            return False
        if not await settings_service.is_sms_enabled(session):
            logger.debug("SMS disabled by settings")
            return False
        if normalize_to_e164(player.phone) is None:
            logger.info(f"No resolvable phone for player {player.id}, skipping SMS")
            return False
        if in_quiet_hours(prefs.get("quiet_hours"), self.clock()):
            logger.info(f"Quiet hours active for player {player.id}, skipping SMS")
            return False
        return True

    async def _send_sms(self, player: Player, body: str) -> bool:
        to = normalize_to_e164(player.phone)
        try:
            await self.sms_client.send(to, body)
            return True
        except SmsError as e:
            logger.warning(f"Failed to send SMS to player {player.id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error sending SMS to player {player.id}: {e}")
        return False


def get_notification_router() -> NotificationRouter:
    """FastAPI dependency building a router around the process SMS client."""
    from localdink.services.sms_service import get_sms_client
    return NotificationRouter(sms_client=get_sms_client())
