"""Court route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.auth_dependencies import require_user
from localdink.database.db import get_db_session
from localdink.models.schemas import CourtCreate, CourtResponse, CourtUpdate
from localdink.services import court_service
from localdink.services.errors import PermissionDeniedError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/courts", response_model=CourtResponse, status_code=201)
async def create_court(
    payload: CourtCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await court_service.create_court(session, owner_id=user["id"], **payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating court: {str(e)}")
        raise HTTPException(status_code=500, detail="Error creating court")


@router.get("/api/courts", response_model=List[CourtResponse])
async def list_courts(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Courts the current player created plus shared ones."""
    try:
        return await court_service.list_courts(session, owner_id=user["id"])
    except Exception as e:
        logger.error(f"Error listing courts: {str(e)}")
        raise HTTPException(status_code=500, detail="Error listing courts")


@router.get("/api/courts/{court_id}", response_model=CourtResponse)
async def get_court(
    court_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    court = await court_service.get_court(session, court_id)
    if court is None:
        raise HTTPException(status_code=404, detail="Court not found")
    return court


@router.patch("/api/courts/{court_id}", response_model=CourtResponse)
async def update_court(
    court_id: str,
    payload: CourtUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await court_service.update_court(
            session, court_id, user["id"], **payload.model_dump(exclude_unset=True)
        )
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating court {court_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error updating court")


@router.delete("/api/courts/{court_id}")
async def delete_court(
    court_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await court_service.delete_court(session, court_id, user["id"])
        return {"success": True}
    except PermissionDeniedError:
        raise
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting court {court_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Error deleting court")
