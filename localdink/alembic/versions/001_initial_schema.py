"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-06-01 00:00:00.000000

Creates all LocalDink tables:
- players, courts, groups
- game_sessions and invitations (RSVP instances)
- notifications
- auth_sessions, settings
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all tables and indexes."""
    op.create_table(
        "players",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(), nullable=False, server_default=""),
        sa.Column("avatar_url", sa.String(), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("dink_rating", sa.String(), nullable=True),
        sa.Column("doubles_preference", sa.Boolean(), nullable=True),
        sa.Column("home_court_id", sa.String(length=64), nullable=True),
        sa.Column("availability", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.String(length=64), nullable=True),
        sa.Column("notification_preferences", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_players_phone", "players", ["phone"])
    op.create_index("idx_players_owner", "players", ["owner_id"])

    op.create_table(
        "courts",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("state", sa.String(), nullable=True),
        sa.Column("zip_code", sa.String(length=20), nullable=True),
        sa.Column("is_home", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("owner_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_courts_owner", "courts", ["owner_id"])

    op.create_table(
        "groups",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=False, server_default=""),
        sa.Column("member_ids", sa.JSON(), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("admin_ids", sa.JSON(), nullable=False),
        sa.Column("home_court_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_groups_owner", "groups", ["owner_id"])

    op.create_table(
        "game_sessions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("court_id", sa.String(length=64), nullable=False),
        sa.Column("organizer_id", sa.String(length=64), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_doubles", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="120"),
        sa.Column("player_ids", sa.JSON(), nullable=False),
        sa.Column("alternate_ids", sa.JSON(), nullable=False),
        sa.Column("group_ids", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
        sa.Column("max_players", sa.Integer(), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('open', 'cancelled', 'completed')", name="ck_game_sessions_status"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_game_sessions_organizer", "game_sessions", ["organizer_id"])
    op.create_index("idx_game_sessions_start_time", "game_sessions", ["start_time"])

    op.create_table(
        "invitations",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="INVITED"),
        sa.Column("response_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('INVITED', 'ACCEPTED', 'DECLINED', 'EXPIRED')",
            name="ck_invitations_status",
        ),
        sa.ForeignKeyConstraint(["session_id"], ["game_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_invitations_session_player", "invitations", ["session_id", "player_id", "created_at"]
    )
    op.create_index("idx_invitations_player_status", "invitations", ["player_id", "status"])
    op.create_index(
        "idx_invitations_status_deadline", "invitations", ["status", "response_deadline"]
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("link_url", sa.String(length=500), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("channels", sa.JSON(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_notifications_recipient_unread",
        "notifications",
        ["recipient_id", "read", "created_at"],
    )
    op.create_index(
        "idx_notifications_recipient_created", "notifications", ["recipient_id", "created_at"]
    )

    op.create_table(
        "auth_sessions",
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("player_id", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("token"),
    )
    op.create_index("idx_auth_sessions_player", "auth_sessions", ["player_id"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("settings")
    op.drop_index("idx_auth_sessions_player", table_name="auth_sessions")
    op.drop_table("auth_sessions")
    op.drop_index("idx_notifications_recipient_created", table_name="notifications")
    op.drop_index("idx_notifications_recipient_unread", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_invitations_status_deadline", table_name="invitations")
    op.drop_index("idx_invitations_player_status", table_name="invitations")
    op.drop_index("idx_invitations_session_player", table_name="invitations")
    op.drop_table("invitations")
    op.drop_index("idx_game_sessions_start_time", table_name="game_sessions")
    op.drop_index("idx_game_sessions_organizer", table_name="game_sessions")
    op.drop_table("game_sessions")
    op.drop_index("idx_groups_owner", table_name="groups")
    op.drop_table("groups")
    op.drop_index("idx_courts_owner", table_name="courts")
    op.drop_table("courts")
    op.drop_index("idx_players_owner", table_name="players")
    op.drop_index("idx_players_phone", table_name="players")
    op.drop_table("players")
