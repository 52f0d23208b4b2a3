"""
Notification copy for each notification type.

In-app copy has a title and body; types that are worth a text message also
carry shorter SMS copy. Missing template values fall back to neutral words.
"""

import os
from dataclasses import dataclass
from typing import Optional

from localdink.database.models import NotificationType

APP_URL = os.getenv("APP_URL", "https://localdink.app").rstrip("/")
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "America/Los_Angeles")

# Recipient roles for types that are sent to more than one party
AUDIENCE_ORGANIZER = "organizer"
AUDIENCE_INVITEE = "invitee"


@dataclass(frozen=True)
class TemplateData:
    inviter_name: Optional[str] = None
    invitee_name: Optional[str] = None
    match_type: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    court_name: Optional[str] = None
    link: Optional[str] = None


@dataclass(frozen=True)
class RenderedNotification:
    title: str
    body: str
    sms_body: Optional[str] = None


def session_link(game_session_id: Optional[str]) -> str:
    if game_session_id:
        return f"{APP_URL}/dashboard/sessions/{game_session_id}"
    return f"{APP_URL}/dashboard/sessions"


def render(
    type: str,
    data: TemplateData,
    audience: str = AUDIENCE_ORGANIZER,
) -> RenderedNotification:
    """
    Render the copy for a notification type.

    Args:
        type: NotificationType value
        data: Placeholder values
        audience: AUDIENCE_ORGANIZER or AUDIENCE_INVITEE for types sent to both
    """
    inviter = data.inviter_name or "Someone"
    invitee = data.invitee_name or "Someone"
    date = data.date or "TBD"
    time = data.time or "TBD"
    court = data.court_name or "the courts"
    link = data.link or "the app"

    if type == NotificationType.GAME_INVITE.value:
        match = data.match_type or "pickleball"
        return RenderedNotification(
            title=f"Game invite from {data.inviter_name or 'a friend'}",
            body=f"{data.match_type or 'Game'} on {date} at {time} • {data.court_name or 'TBD'}",
            sms_body=(
                f"🏓 {inviter} invited you to play {match} on {date} at {time} at {court}. "
                f"Reply Y to accept, N to decline, or tap: {link}"
            ),
        )

    if type == NotificationType.GAME_INVITE_ACCEPTED.value:
        if audience == AUDIENCE_INVITEE:
            return RenderedNotification(
                title="You're in!",
                body=(
                    f"You accepted the {data.match_type or 'game'} invite for "
                    f"{data.date or 'the game'} at {court}"
                ),
            )
        return RenderedNotification(
            title=f"{invitee} is in!",
            body=f"Accepted your {data.match_type or 'game'} invite for {data.date or 'the game'}",
        )

    if type == NotificationType.GAME_INVITE_DECLINED.value:
        return RenderedNotification(
            title=f"{invitee} can't make it",
            body=f"Declined your {data.match_type or 'game'} invite for {data.date or 'the game'}",
        )

    if type == NotificationType.GAME_REMINDER.value:
        match = data.match_type or "Your game"
        return RenderedNotification(
            title="Game starting soon!",
            body=f"{match} in 2 hours at {court}. Still need your RSVP!",
            sms_body=f"⏰ Reminder: {match} at {court} starts in 2 hours! Tap to view: {link}",
        )

    if type == NotificationType.GAME_CHANGED.value:
        match = data.match_type or "Your game"
        return RenderedNotification(
            title="Game details changed",
            body=f"{match} on {date} has been updated",
            sms_body=f"📝 Game update: {match} on {date} has changed. Tap for details: {link}",
        )

    if type == NotificationType.GAME_CANCELLED.value:
        match = data.match_type or "The game"
        return RenderedNotification(
            title="Game cancelled",
            body=f"{match} on {date} at {court} has been cancelled",
            sms_body=f"❌ Cancelled: {match} on {date} at {court} has been cancelled.",
        )

    if type == NotificationType.SPOT_AVAILABLE.value:
        match = data.match_type or "the game"
        return RenderedNotification(
            title="A spot opened up!",
            body=f"A spot opened up for {match} on {date} at {court}",
            sms_body=(
                f"🎉 Good news! A spot opened up for {match} on {date} at {court}. "
                f"Tap to grab it: {link}"
            ),
        )

    if type == NotificationType.RSVP_EXPIRED.value:
        match = data.match_type or "the game"
        if audience == AUDIENCE_ORGANIZER:
            return RenderedNotification(
                title=f"{invitee} didn't respond",
                body=f"The invite to {match} on {date} expired without a response",
            )
        return RenderedNotification(
            title="Invite expired",
            body=f"The invite to {match} on {date} has expired",
        )

    return RenderedNotification(title="Notification", body="You have a new notification")
