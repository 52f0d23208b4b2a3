"""
SQLAlchemy ORM models for the LocalDink scheduling system.

Every entity is keyed by an opaque string id. References between entities are
plain id columns (ownership by reference, not containment); list-valued
references such as group members or session players are JSON arrays.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    JSON,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from localdink.database.db import Base
from localdink.utils.datetime_utils import utcnow


def new_id() -> str:
    """Generate an opaque string id."""
    return str(uuid.uuid4())


class RsvpStatus(str, enum.Enum):
    """Invitation (RSVP) status enum."""

    INVITED = "INVITED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class GameSessionStatus(str, enum.Enum):
    """Game session status enum."""

    OPEN = "open"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    GAME_INVITE = "GAME_INVITE"
    GAME_INVITE_ACCEPTED = "GAME_INVITE_ACCEPTED"
    GAME_INVITE_DECLINED = "GAME_INVITE_DECLINED"
    GAME_REMINDER = "GAME_REMINDER"
    GAME_CHANGED = "GAME_CHANGED"
    GAME_CANCELLED = "GAME_CANCELLED"
    SPOT_AVAILABLE = "SPOT_AVAILABLE"
    RSVP_EXPIRED = "RSVP_EXPIRED"


class NotificationChannel(str, enum.Enum):
    """Notification delivery channel enum."""

    IN_APP = "in_app"
    SMS = "sms"
    PUSH = "push"


class Player(Base):
    """Player profiles (registered accounts and contacts)."""

    __tablename__ = "players"

    id = Column(String(64), primary_key=True, default=new_id)
    first_name = Column(String, nullable=False, default="")
    last_name = Column(String, nullable=False, default="")
    avatar_url = Column(String, nullable=False, default="")
    phone = Column(String(20), nullable=True)  # E.164 when resolvable
    email = Column(String, nullable=True)
    dink_rating = Column(String, nullable=True)
    doubles_preference = Column(Boolean, nullable=True)
    home_court_id = Column(String(64), nullable=True)
    availability = Column(Text, nullable=True)
    owner_id = Column(String(64), nullable=True)  # Player who created this contact
    notification_preferences = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_players_phone", "phone"),
        Index("idx_players_owner", "owner_id"),
    )


class Court(Base):
    """Court locations."""

    __tablename__ = "courts"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    location = Column(String, nullable=False)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip_code = Column(String(20), nullable=True)
    is_home = Column(Boolean, default=False, nullable=False)
    is_favorite = Column(Boolean, default=False, nullable=False)
    owner_id = Column(String(64), nullable=True)  # Player who created the court
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_courts_owner", "owner_id"),)


class Group(Base):
    """Groups of players."""

    __tablename__ = "groups"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    avatar_url = Column(String, nullable=False, default="")
    member_ids = Column(JSON, nullable=False, default=list)
    owner_id = Column(String(64), nullable=False)
    admin_ids = Column(JSON, nullable=False, default=list)
    home_court_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_groups_owner", "owner_id"),)


class GameSession(Base):
    """A scheduled game at a court, organized by one player."""

    __tablename__ = "game_sessions"

    id = Column(String(64), primary_key=True, default=new_id)
    court_id = Column(String(64), nullable=False)
    organizer_id = Column(String(64), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    is_doubles = Column(Boolean, default=True, nullable=False)
    duration_minutes = Column(Integer, default=120, nullable=False)
    player_ids = Column(JSON, nullable=False, default=list)  # Invitees, organizer excluded
    alternate_ids = Column(JSON, nullable=False, default=list)  # Waitlist, in order
    group_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=GameSessionStatus.OPEN.value)
    max_players = Column(Integer, nullable=True)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    invitations = relationship(
        "Invitation", back_populates="game_session", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'cancelled', 'completed')", name="ck_game_sessions_status"
        ),
        Index("idx_game_sessions_organizer", "organizer_id"),
        Index("idx_game_sessions_start_time", "start_time"),
    )


class Invitation(Base):
    """One RSVP instance for a (session, player) pair.

    Status transitions: INVITED -> ACCEPTED | DECLINED | EXPIRED, never back.
    Re-inviting creates a new row; the active instance for a pair is the most
    recent one.
    """

    __tablename__ = "invitations"

    id = Column(String(64), primary_key=True, default=new_id)
    session_id = Column(
        String(64), ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False
    )
    player_id = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=RsvpStatus.INVITED.value)
    response_deadline = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    game_session = relationship("GameSession", back_populates="invitations")

    __table_args__ = (
        CheckConstraint(
            "status IN ('INVITED', 'ACCEPTED', 'DECLINED', 'EXPIRED')",
            name="ck_invitations_status",
        ),
        Index("idx_invitations_session_player", "session_id", "player_id", "created_at"),
        Index("idx_invitations_player_status", "player_id", "status"),
        Index("idx_invitations_status_deadline", "status", "response_deadline"),
    )


class Notification(Base):
    """Notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, default=new_id)
    recipient_id = Column(String(64), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)  # Structured payload (game_session_id, etc.)
    link_url = Column(String(500), nullable=True)  # Navigation target
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    channels = Column(JSON, nullable=False, default=list)  # Channels actually used
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # Collected by database TTL

    __table_args__ = (
        Index("idx_notifications_recipient_unread", "recipient_id", "read", "created_at"),
        Index("idx_notifications_recipient_created", "recipient_id", "created_at"),
    )


class AuthSession(Base):
    """Opaque session tokens issued after sign-in with the external auth provider."""

    __tablename__ = "auth_sessions"

    token = Column(String(255), primary_key=True)
    player_id = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("idx_auth_sessions_player", "player_id"),)


class Setting(Base):
    """Key/value runtime settings."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
