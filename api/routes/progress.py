import logging

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_current_user
from models import User
from services.exceptions import AppError
from services.progress_service import get_progress_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.get("")
async def get_progress(user: User = Depends(get_current_user)):
    try:
        return get_progress_service().get_progress(user.id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching progress for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch progress")
