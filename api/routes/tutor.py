import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_current_user
from models import User
from services.exceptions import AppError
from services.tutor_service import MAX_MESSAGE_LENGTH, get_tutor_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tutor", tags=["tutor"])


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    conversation_id: Optional[str] = Field(default=None, max_length=64)


@router.post("/chat")
async def chat(request: ChatRequest, user: User = Depends(get_current_user)):
    """
    Ask the AI tutor a question, continuing a conversation when an id is given
    """
    try:
        return get_tutor_service().chat(user.id, request.message, request.conversation_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error in tutor chat for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to process tutor message")


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, user: User = Depends(get_current_user)):
    try:
        return get_tutor_service().get_conversation(user.id, conversation_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching conversation {conversation_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch conversation")
