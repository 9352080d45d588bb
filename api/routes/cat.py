import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from api.deps import get_current_user
from models import User
from services.cat_service import get_cat_service
from services.exceptions import AppError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cat", tags=["cat"])


class StartCATRequest(BaseModel):
    min_questions: Optional[int] = Field(default=None, ge=5, le=145)
    max_questions: Optional[int] = Field(default=None, ge=5, le=265)
    time_limit_seconds: Optional[int] = Field(default=None, ge=60, le=21600)


class CATAnswerRequest(BaseModel):
    question_id: str
    user_answer: Any = None
    time_spent_seconds: int = Field(default=0, ge=0)


@router.post("/sessions", status_code=201)
async def start_session(response: Response, request: Optional[StartCATRequest] = None,
                        user: User = Depends(get_current_user)):
    """
    Start an adaptive test, or resume the one already in progress
    """
    try:
        request = request or StartCATRequest()
        result = get_cat_service().start_session(
            user.id,
            min_questions=request.min_questions,
            max_questions=request.max_questions,
            time_limit_seconds=request.time_limit_seconds,
        )
        if result.get("resuming"):
            response.status_code = 200
        return result
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error starting CAT session for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to start CAT session")


@router.get("/sessions")
async def list_sessions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user),
):
    try:
        sessions, total = get_cat_service().list_sessions(user.id, page, limit)
        return {"sessions": sessions, "total": total, "page": page, "limit": limit}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching CAT sessions: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch CAT sessions")


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, user: User = Depends(get_current_user)):
    try:
        return get_cat_service().get_session(user.id, session_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching CAT session {session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch CAT session")


@router.post("/sessions/{session_id}/answers")
async def submit_answer(session_id: str, request: CATAnswerRequest, user: User = Depends(get_current_user)):
    try:
        return get_cat_service().submit_answer(
            user.id,
            session_id,
            request.question_id,
            request.user_answer,
            request.time_spent_seconds,
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error submitting CAT answer for session {session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to submit answer")


@router.post("/sessions/{session_id}/end")
async def end_session(session_id: str, user: User = Depends(get_current_user)):
    try:
        return get_cat_service().end_session(user.id, session_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error ending CAT session {session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to end CAT session")


@router.get("/sessions/{session_id}/analysis")
async def get_analysis(session_id: str, user: User = Depends(get_current_user)):
    try:
        return get_cat_service().get_analysis(user.id, session_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error analysing CAT session {session_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to analyse CAT session")
