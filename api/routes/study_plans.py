import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.deps import get_current_user
from models import User
from services.exceptions import AppError
from services.study_planner_service import get_study_planner_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/study-plans", tags=["study-plans"])


class CreatePlanRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    target_date: date
    daily_study_minutes: int = Field(default=120, ge=15, le=720)
    focus_areas: Optional[List[str]] = None
    weak_areas: Optional[List[str]] = None
    # 0 = Monday .. 6 = Sunday
    study_days: Optional[List[int]] = Field(default=None, min_length=1, max_length=7)


class UpdateTaskRequest(BaseModel):
    status: Literal["pending", "in_progress", "completed", "skipped"]
    actual_minutes: Optional[int] = Field(default=None, ge=0, le=1440)


@router.post("", status_code=201)
async def create_plan(request: CreatePlanRequest, user: User = Depends(get_current_user)):
    """
    Create a study plan and generate its daily tasks up to the target date
    """
    try:
        if request.study_days and any(day < 0 or day > 6 for day in request.study_days):
            raise AppError("Study days must be weekday numbers from 0 (Monday) to 6 (Sunday)")

        return get_study_planner_service().create_plan(
            user.id,
            request.name,
            request.target_date,
            daily_study_minutes=request.daily_study_minutes,
            focus_areas=request.focus_areas,
            weak_areas=request.weak_areas,
            study_days=request.study_days,
            description=request.description,
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error creating study plan: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create study plan")


@router.get("")
async def list_plans(include_archived: bool = Query(default=False), user: User = Depends(get_current_user)):
    try:
        return {"plans": get_study_planner_service().list_plans(user.id, include_archived)}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching study plans: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch study plans")


@router.get("/{plan_id}")
async def get_plan(plan_id: str, user: User = Depends(get_current_user)):
    try:
        return get_study_planner_service().get_plan(user.id, plan_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching study plan {plan_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch study plan")


@router.patch("/{plan_id}/tasks/{task_id}")
async def update_task(plan_id: str, task_id: str, request: UpdateTaskRequest,
                      user: User = Depends(get_current_user)):
    try:
        return get_study_planner_service().update_task(
            user.id, plan_id, task_id, request.status, request.actual_minutes
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error updating task {task_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update task")


@router.delete("/{plan_id}", status_code=204)
async def archive_plan(plan_id: str, user: User = Depends(get_current_user)):
    try:
        get_study_planner_service().archive_plan(user.id, plan_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error archiving study plan {plan_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to archive study plan")
