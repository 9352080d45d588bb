import logging
from typing import Any, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.deps import get_current_user
from models import User
from services.exceptions import AppError
from services.quiz_service import get_quiz_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])


class CreateQuizRequest(BaseModel):
    question_count: int = Field(default=10, ge=1, le=100)
    category_codes: Optional[List[str]] = None
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None
    question_types: Optional[List[str]] = None
    time_limit_seconds: Optional[int] = Field(default=None, ge=60, le=21600)


class SubmitAnswerRequest(BaseModel):
    question_id: str
    user_answer: Any = None
    question_index: Optional[int] = Field(default=None, ge=0)
    time_spent_seconds: int = Field(default=0, ge=0)


class CompleteQuizRequest(BaseModel):
    total_time_seconds: Optional[int] = Field(default=None, ge=0)


@router.post("", status_code=201)
async def create_quiz(request: CreateQuizRequest, user: User = Depends(get_current_user)):
    """
    Start a practice quiz from random active questions matching the filters
    """
    try:
        return get_quiz_service().create_quiz(
            user_id=user.id,
            question_count=request.question_count,
            category_codes=request.category_codes,
            difficulty=request.difficulty,
            question_types=request.question_types,
            time_limit_seconds=request.time_limit_seconds,
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error creating quiz for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create quiz")


@router.get("")
async def list_quizzes(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user),
):
    try:
        quizzes, total = get_quiz_service().list_quizzes(user.id, page, limit)
        return {"quizzes": quizzes, "total": total, "page": page, "limit": limit}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching quizzes: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch quizzes")


@router.get("/{quiz_id}")
async def get_quiz(quiz_id: str, user: User = Depends(get_current_user)):
    try:
        return get_quiz_service().get_quiz(user.id, quiz_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching quiz {quiz_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch quiz")


@router.post("/{quiz_id}/answers")
async def submit_answer(quiz_id: str, request: SubmitAnswerRequest, user: User = Depends(get_current_user)):
    try:
        return get_quiz_service().submit_answer(
            user_id=user.id,
            quiz_id=quiz_id,
            question_id=request.question_id,
            user_answer=request.user_answer,
            question_index=request.question_index,
            time_spent_seconds=request.time_spent_seconds,
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error submitting answer for quiz {quiz_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to submit answer")


@router.post("/{quiz_id}/complete")
async def complete_quiz(quiz_id: str, request: Optional[CompleteQuizRequest] = None,
                        user: User = Depends(get_current_user)):
    try:
        total_time = request.total_time_seconds if request else None
        return get_quiz_service().complete_quiz(user.id, quiz_id, total_time)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error completing quiz {quiz_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to complete quiz")
