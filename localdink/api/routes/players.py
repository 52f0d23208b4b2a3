"""Player and notification preference route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.auth_dependencies import require_user
from localdink.database.db import get_db_session
from localdink.models.schemas import (
    NotificationPreferencesResponse,
    NotificationPreferencesUpdate,
    PlayerCreate,
    PlayerResponse,
    PlayerUpdate,
)
from localdink.services import player_service
from localdink.services.errors import PermissionDeniedError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/players", response_model=PlayerResponse, status_code=201)
async def create_player(
    payload: PlayerCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a contact owned by the current player."""
    try:
        return await player_service.create_player(
            session, owner_id=user["id"], **payload.model_dump()
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating player: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating player")


@router.get("/api/players", response_model=List[PlayerResponse])
async def list_players(
    owner_id: Optional[str] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List players; `owner_id` limits the list to one player's contacts."""
    try:
        return await player_service.list_players(session, owner_id=owner_id)
    except Exception as e:
        logger.error(f"Error listing players: {str(e)}")
        raise HTTPException(status_code=500, detail="Error listing players")


@router.get("/api/players/me/preferences", response_model=NotificationPreferencesResponse)
async def get_my_preferences(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await player_service.get_preferences(session, user["id"])
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/api/players/me/preferences", response_model=NotificationPreferencesResponse)
async def update_my_preferences(
    payload: NotificationPreferencesUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Merge a partial preferences update into the current player's preferences."""
    try:
        return await player_service.update_preferences(
            session, user["id"], payload.model_dump(exclude_unset=True)
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating preferences: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating preferences")


@router.get("/api/players/{player_id}", response_model=PlayerResponse)
async def get_player(
    player_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    player = await player_service.get_player(session, player_id)
    if player is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return player


@router.patch("/api/players/{player_id}", response_model=PlayerResponse)
async def update_player(
    player_id: str,
    payload: PlayerUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await player_service.update_player(
            session, player_id, user["id"], **payload.model_dump(exclude_unset=True)
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating player {player_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating player")


@router.delete("/api/players/{player_id}")
async def delete_player(
    player_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a player and drop them from every group in the same transaction."""
    try:
        await player_service.delete_player(session, player_id, user["id"])
        return {"success": True}
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting player {player_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error deleting player")
