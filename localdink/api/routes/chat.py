"""Robin chat route handler."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from localdink.api.auth_dependencies import require_user
from localdink.api.routes import CHAT_RATE_LIMIT, limiter
from localdink.database.db import get_db_session
from localdink.models.schemas import ChatRequest, ChatResponse
from localdink.services.chat_service import ChatAssistant, get_chat_assistant

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/chat", response_model=ChatResponse)
@limiter.limit(CHAT_RATE_LIMIT)
async def chat(
    request: Request,
    payload: ChatRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    assistant: ChatAssistant = Depends(get_chat_assistant),
):
    """
    One turn with Robin.

    Always answers with a confirmationText; model failures come back as a
    fixed apology rather than an error status.
    """
    history = [item.model_dump() for item in payload.history]
    return await assistant.reply(session, payload.message, history, player_id=user["id"])
