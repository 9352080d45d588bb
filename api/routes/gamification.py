import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.deps import get_current_user
from models import User
from services.exceptions import AppError
from services.gamification_service import get_gamification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gamification", tags=["gamification"])


class ClaimXPRequest(BaseModel):
    action: str = Field(min_length=1, max_length=50)


@router.get("")
async def get_summary(user: User = Depends(get_current_user)):
    try:
        return get_gamification_service().get_summary(user.id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching gamification summary: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch gamification data")


@router.post("/xp")
async def claim_xp(request: ClaimXPRequest, user: User = Depends(get_current_user)):
    try:
        return get_gamification_service().claim_xp(user.id, request.action)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error awarding XP to {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to award XP")


@router.get("/leaderboard")
async def get_leaderboard(limit: int = Query(default=10, ge=1, le=100), user: User = Depends(get_current_user)):
    try:
        return {"leaderboard": get_gamification_service().get_leaderboard(limit)}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching leaderboard: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch leaderboard")
