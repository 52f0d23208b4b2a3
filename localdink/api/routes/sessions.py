"""Game session and RSVP route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.auth_dependencies import require_user
from localdink.database.db import get_db_session
from localdink.models.schemas import (
    GameSessionCreate,
    GameSessionResponse,
    GameSessionUpdate,
    HydratedGameSessionResponse,
    InvitationResponse,
    PlayerIdRequest,
)
from localdink.services import game_session_service, hydration_service, rsvp_service
from localdink.services.errors import InvalidTransitionError, PermissionDeniedError
from localdink.services.hydration_service import SessionHydrator, get_session_hydrator
from localdink.services.notification_router import NotificationRouter, get_notification_router

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/sessions", response_model=GameSessionResponse, status_code=201)
async def create_game_session(
    payload: GameSessionCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    """
    Schedule a game organized by the current player.

    Every invitee (listed players plus members of the listed groups) gets an
    invitation and a GAME_INVITE notification.
    """
    try:
        return await game_session_service.create_game_session(
            session, notifier, organizer_id=user["id"], **payload.model_dump()
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating game session: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating game session")


@router.get("/api/sessions", response_model=List[HydratedGameSessionResponse])
async def list_game_sessions(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    hydrator: SessionHydrator = Depends(get_session_hydrator),
):
    """
    Hydrated sessions for the current player's dashboard.

    Unresolvable courts and players come back as placeholders; only a failure
    to read the session list itself is an error.
    """
    views = await hydration_service.list_hydrated_sessions(session, hydrator, user["id"])
    return [hydration_service.view_to_dict(view) for view in views]


@router.get("/api/sessions/{game_session_id}", response_model=HydratedGameSessionResponse)
async def get_game_session(
    game_session_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    hydrator: SessionHydrator = Depends(get_session_hydrator),
):
    raw = await game_session_service.get_game_session(session, game_session_id)
    if raw is None:
        raise HTTPException(status_code=404, detail="Game session not found")
    view = await hydrator.hydrate(raw)
    return hydration_service.view_to_dict(view)


@router.patch("/api/sessions/{game_session_id}", response_model=GameSessionResponse)
async def update_game_session(
    game_session_id: str,
    payload: GameSessionUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    try:
        return await game_session_service.update_game_session(
            session, notifier, game_session_id, user["id"],
            **payload.model_dump(exclude_unset=True),
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating game session {game_session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating game session")


@router.post("/api/sessions/{game_session_id}/cancel", response_model=GameSessionResponse)
async def cancel_game_session(
    game_session_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    try:
        return await game_session_service.cancel_game_session(
            session, notifier, game_session_id, user["id"]
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error cancelling game session {game_session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error cancelling game session")


# ---------------------------------------------------------------------------
# RSVP
# ---------------------------------------------------------------------------


@router.post("/api/sessions/{game_session_id}/accept", response_model=InvitationResponse)
async def accept_invitation(
    game_session_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    """Accept the current player's invitation to a game."""
    try:
        return await rsvp_service.accept_invitation(session, notifier, game_session_id, user["id"])
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error accepting invitation to {game_session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error accepting invitation")


@router.post("/api/sessions/{game_session_id}/decline", response_model=InvitationResponse)
async def decline_invitation(
    game_session_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    """Decline the current player's invitation to a game."""
    try:
        return await rsvp_service.decline_invitation(session, notifier, game_session_id, user["id"])
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error declining invitation to {game_session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error declining invitation")


@router.post("/api/sessions/{game_session_id}/invitations", response_model=InvitationResponse)
async def reinvite_player(
    game_session_id: str,
    payload: PlayerIdRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationRouter = Depends(get_notification_router),
):
    """Invite a player again after a decline or expiry (organizer only)."""
    try:
        return await rsvp_service.reinvite_player(
            session, notifier, game_session_id, payload.player_id, user["id"]
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error re-inviting {payload.player_id} to {game_session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error inviting player")


@router.post("/api/sessions/{game_session_id}/alternates", response_model=GameSessionResponse)
async def add_alternate(
    game_session_id: str,
    payload: PlayerIdRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await game_session_service.add_alternate(
            session, game_session_id, user["id"], payload.player_id
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error adding alternate to {game_session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error adding alternate")
