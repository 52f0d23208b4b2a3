"""Group route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.auth_dependencies import require_user
from localdink.database.db import get_db_session
from localdink.models.schemas import (
    GroupCreate,
    GroupMembersRequest,
    GroupResponse,
    GroupUpdate,
)
from localdink.services import group_service
from localdink.services.errors import PermissionDeniedError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/groups", response_model=GroupResponse, status_code=201)
async def create_group(
    payload: GroupCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await group_service.create_group(session, owner_id=user["id"], **payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating group: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating group")


@router.get("/api/groups", response_model=List[GroupResponse])
async def list_groups(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Groups the current player owns or belongs to."""
    try:
        return await group_service.list_groups(session, player_id=user["id"])
    except Exception as e:
        logger.error(f"Error listing groups: {str(e)}")
        raise HTTPException(status_code=500, detail="Error listing groups")


@router.get("/api/groups/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    group = await group_service.get_group(session, group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


@router.patch("/api/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: str,
    payload: GroupUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update details and membership deltas in one transaction."""
    try:
        return await group_service.update_group(
            session, group_id, user["id"], **payload.model_dump()
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating group")


@router.post("/api/groups/{group_id}/members", response_model=GroupResponse)
async def add_group_members(
    group_id: str,
    payload: GroupMembersRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await group_service.add_members(session, group_id, user["id"], payload.player_ids)
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error adding members to group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error adding group members")


@router.delete("/api/groups/{group_id}/members", response_model=GroupResponse)
async def remove_group_members(
    group_id: str,
    payload: GroupMembersRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await group_service.remove_members(
            session, group_id, user["id"], payload.player_ids
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error removing members from group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error removing group members")


@router.delete("/api/groups/{group_id}")
async def delete_group(
    group_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await group_service.delete_group(session, group_id, user["id"])
        return {"success": True}
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error deleting group")
