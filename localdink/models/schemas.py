"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _not_blank(value: Optional[str], label: str) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError(f"{label} must not be blank")
    return value.strip() if value is not None else value


# ============================================================================
# Players
# ============================================================================


class PlayerCreate(BaseModel):
    """Create a player (a contact when created by another player)."""

    first_name: str = Field(min_length=1)
    last_name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar_url: str = ""
    dink_rating: Optional[str] = None
    doubles_preference: Optional[bool] = None
    home_court_id: Optional[str] = None
    availability: Optional[str] = None

    @field_validator("first_name")
    @classmethod
    def first_name_not_blank(cls, v: str) -> str:
        return _not_blank(v, "first_name")


class PlayerUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    dink_rating: Optional[str] = None
    doubles_preference: Optional[bool] = None
    home_court_id: Optional[str] = None
    availability: Optional[str] = None


class PlayerResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    name: str
    avatar_url: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    dink_rating: Optional[str] = None
    doubles_preference: Optional[bool] = None
    home_court_id: Optional[str] = None
    availability: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class QuietHours(BaseModel):
    """Quiet-hours window; may wrap midnight (e.g. 22:00-07:00)."""

    start: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    end: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    timezone: str = "UTC"


class NotificationPreferencesUpdate(BaseModel):
    """Partial preferences update; omitted sections keep their current values."""

    channels: Optional[Dict[str, bool]] = None
    types: Optional[Dict[str, bool]] = None
    quiet_hours: Optional[QuietHours] = None


class NotificationPreferencesResponse(BaseModel):
    channels: Dict[str, bool]
    types: Dict[str, bool]
    quiet_hours: Optional[QuietHours] = None


# ============================================================================
# Courts
# ============================================================================


class CourtCreate(BaseModel):
    name: str = Field(min_length=1)
    location: str = Field(min_length=1)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    is_home: bool = False
    is_favorite: bool = False

    @field_validator("name", "location")
    @classmethod
    def not_blank(cls, v: str, info) -> str:
        return _not_blank(v, info.field_name)


class CourtUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    is_home: Optional[bool] = None
    is_favorite: Optional[bool] = None

    @field_validator("name", "location")
    @classmethod
    def not_blank(cls, v: Optional[str], info) -> Optional[str]:
        return _not_blank(v, info.field_name)


class CourtResponse(BaseModel):
    id: str
    name: str
    location: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    is_home: bool = False
    is_favorite: bool = False
    owner_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ============================================================================
# Groups
# ============================================================================


class GroupCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    avatar_url: str = ""
    member_ids: List[str] = Field(default_factory=list)
    home_court_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _not_blank(v, "name")


class GroupUpdate(BaseModel):
    """Group details plus membership deltas, applied together."""

    name: Optional[str] = None
    description: Optional[str] = None
    avatar_url: Optional[str] = None
    home_court_id: Optional[str] = None
    add_member_ids: List[str] = Field(default_factory=list)
    remove_member_ids: List[str] = Field(default_factory=list)


class GroupMembersRequest(BaseModel):
    player_ids: List[str] = Field(min_length=1)


class GroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    avatar_url: str = ""
    member_ids: List[str]
    admin_ids: List[str]
    owner_id: str
    home_court_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ============================================================================
# Game sessions
# ============================================================================


class GameSessionCreate(BaseModel):
    court_id: str
    start_time: datetime
    is_doubles: bool = True
    player_ids: List[str] = Field(default_factory=list)
    group_ids: List[str] = Field(default_factory=list)
    alternate_ids: List[str] = Field(default_factory=list)
    duration_minutes: int = Field(default=120, gt=0)
    max_players: Optional[int] = Field(default=None, ge=1)


class GameSessionUpdate(BaseModel):
    start_time: Optional[datetime] = None
    court_id: Optional[str] = None
    is_doubles: Optional[bool] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    max_players: Optional[int] = Field(default=None, ge=1)


class GameSessionResponse(BaseModel):
    """Raw game session record."""

    id: str
    court_id: str
    organizer_id: str
    start_time: str
    is_doubles: bool
    duration_minutes: int
    player_ids: List[str]
    alternate_ids: List[str]
    group_ids: List[str]
    status: str
    max_players: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PlayerIdRequest(BaseModel):
    player_id: str = Field(min_length=1)


class InvitationResponse(BaseModel):
    id: str
    session_id: str
    player_id: str
    status: Literal["INVITED", "ACCEPTED", "DECLINED", "EXPIRED"]
    response_deadline: Optional[str] = None
    created_at: Optional[str] = None
    responded_at: Optional[str] = None


class EntityRef(BaseModel):
    """Hydrated reference: a resolved entity snapshot or an "unknown" placeholder."""

    model_config = ConfigDict(extra="allow")
    id: str
    name: str
    resolved: bool
    requested_id: Optional[str] = None


class SessionPlayerEntry(BaseModel):
    player: EntityRef
    status: Optional[Literal["INVITED", "ACCEPTED", "DECLINED", "EXPIRED"]] = None


class HydratedGameSessionResponse(BaseModel):
    id: str
    court: EntityRef
    organizer: EntityRef
    start_time: str
    date: str
    time: str
    type: Literal["Singles", "Doubles"]
    is_doubles: bool
    duration_minutes: int
    max_players: int
    status: str
    players: List[SessionPlayerEntry]
    alternates: List[EntityRef]
    group_ids: List[str]
    confirmed_count: int
    is_confirmed: bool


# ============================================================================
# Maintenance (called by an external scheduler)
# ============================================================================


class ExpireInvitationsResponse(BaseModel):
    expired: List[InvitationResponse]
    count: int


class SendRemindersRequest(BaseModel):
    window_hours: float = Field(default=2.0, gt=0)


class SendRemindersResponse(BaseModel):
    sent: int


# ============================================================================
# Notifications
# ============================================================================


class NotificationResponse(BaseModel):
    """Notification response."""

    id: str
    recipient_id: str
    type: str
    title: str
    body: str
    data: Optional[dict] = None
    link_url: Optional[str] = None
    read: bool
    read_at: Optional[str] = None
    channels: List[str]
    created_at: Optional[str] = None
    expires_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    count: int


# ============================================================================
# Chat
# ============================================================================


class ChatHistoryItem(BaseModel):
    sender: str
    text: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    history: List[ChatHistoryItem] = Field(default_factory=list)


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    confirmation_text: str = Field(alias="confirmationText")


# ============================================================================
# Auth
# ============================================================================


class AuthSessionRequest(BaseModel):
    """Register the token issued by the external auth provider for a player."""

    player_id: str = Field(min_length=1)
    token: Optional[str] = None


class AuthSessionResponse(BaseModel):
    token: str
    player_id: str
    expires_at: str
