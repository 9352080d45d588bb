import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import get_current_user
from models import User
from services.exceptions import AppError, NotFoundError
from services.grading import QUESTION_TYPES
from services.question_repository import DIFFICULTY_LEVELS, get_question_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["questions"])


@router.get("/categories")
async def list_categories():
    try:
        return {"categories": get_question_repository().list_categories()}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching categories: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch categories")


@router.get("/questions")
async def list_questions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    question_type: Optional[str] = None,
    user: User = Depends(get_current_user),
):
    """
    Browse the question bank without answer keys
    """
    try:
        if difficulty and difficulty not in DIFFICULTY_LEVELS:
            raise AppError("Invalid difficulty level")
        if question_type and question_type not in QUESTION_TYPES:
            raise AppError("Invalid question type")

        questions, total = get_question_repository().list_questions(page, limit, category, difficulty, question_type)
        return {"questions": questions, "total": total, "page": page, "limit": limit}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching questions: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch questions")


@router.get("/questions/{question_id}")
async def get_question(question_id: str, user: User = Depends(get_current_user)):
    try:
        question = get_question_repository().get_question(question_id)
        if not question:
            raise NotFoundError("Question not found")
        return question
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching question {question_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch question")
