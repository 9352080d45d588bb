import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from models import Category, StudyPlan, StudyPlanTask, User, utc_today, utcnow
from services import subscription
from services.database_service import get_database_service
from services.exceptions import AppError, NotFoundError, UsageLimitError
from services.reference_data import CATEGORY_CODES

logger = logging.getLogger(__name__)

MAX_PLAN_DAYS = 365
MAX_STUDY_DAYS = 180
SESSION_MINUTES = 45
CAT_DAY_INTERVAL = 7
DEFAULT_STUDY_DAYS = [0, 1, 2, 3, 4]  # Monday..Friday

TASK_TYPES = ("practice", "flashcards", "review")
TASK_STATUSES = ("pending", "in_progress", "completed", "skipped")

TASK_TITLES = {
    "practice": "Practice questions",
    "flashcards": "Flashcard review",
    "review": "Content review",
}


def build_rotation(focus_areas: List[str], weak_areas: List[str]) -> List[str]:
    """Focus categories in order, then each weak area a second time."""
    rotation = list(focus_areas)
    rotation.extend(code for code in weak_areas if code not in focus_areas)
    rotation.extend(weak_areas)
    return rotation


def study_dates(start: date, target: date, study_days: List[int]) -> List[date]:
    dates = []
    current = start
    while current <= target and len(dates) < MAX_STUDY_DAYS:
        if current.weekday() in study_days:
            dates.append(current)
        current += timedelta(days=1)
    return dates


def generate_tasks(
    start: date,
    target: date,
    daily_minutes: int,
    focus_areas: List[str],
    weak_areas: List[str],
    study_days: List[int],
    category_names: Optional[Dict[str, str]] = None,
) -> List[Dict[str, Any]]:
    """Lay out the plan day by day.

    Every seventh study day and the final one are CAT assessment days; the
    rest are split into sessions of up to 45 minutes that walk the category
    rotation while cycling practice, flashcards and review.
    """
    category_names = category_names or {}
    rotation = build_rotation(focus_areas, weak_areas)
    dates = study_dates(start, target, study_days)

    tasks = []
    rotation_index = 0
    type_index = 0
    for day_number, day in enumerate(dates, start=1):
        if day_number % CAT_DAY_INTERVAL == 0 or day_number == len(dates):
            tasks.append({
                "title": "CAT practice assessment",
                "task_type": "cat",
                "category_code": None,
                "scheduled_date": day,
                "estimated_minutes": daily_minutes,
            })
            continue

        remaining = daily_minutes
        while remaining > 0:
            minutes = min(SESSION_MINUTES, remaining)
            code = rotation[rotation_index % len(rotation)]
            task_type = TASK_TYPES[type_index % len(TASK_TYPES)]
            tasks.append({
                "title": f"{TASK_TITLES[task_type]}: {category_names.get(code, code)}",
                "task_type": task_type,
                "category_code": code,
                "scheduled_date": day,
                "estimated_minutes": minutes,
            })
            rotation_index += 1
            type_index += 1
            remaining -= minutes

    return tasks


class StudyPlannerService:
    """Personal study plans with generated daily tasks."""

    def __init__(self):
        self.db_service = get_database_service()

    def _serialize_plan(self, plan: StudyPlan) -> Dict[str, Any]:
        return {
            "id": plan.id,
            "name": plan.name,
            "description": plan.description,
            "start_date": plan.start_date.isoformat(),
            "target_date": plan.target_date.isoformat(),
            "daily_study_minutes": plan.daily_study_minutes,
            "focus_areas": plan.focus_areas or [],
            "weak_areas": plan.weak_areas or [],
            "study_days": plan.study_days or [],
            "status": plan.status,
            "created_at": plan.created_at.isoformat() if plan.created_at else None,
        }

    def _serialize_task(self, task: StudyPlanTask) -> Dict[str, Any]:
        return {
            "id": task.id,
            "title": task.title,
            "task_type": task.task_type,
            "category_code": task.category_code,
            "scheduled_date": task.scheduled_date.isoformat(),
            "estimated_minutes": task.estimated_minutes,
            "actual_minutes": task.actual_minutes,
            "status": task.status,
            "completed_at": task.completed_at.isoformat() if task.completed_at else None,
        }

    def _progress(self, plan: StudyPlan, tasks: List[StudyPlanTask]) -> Dict[str, Any]:
        completed = [t for t in tasks if t.status == "completed"]
        return {
            "total_tasks": len(tasks),
            "completed_tasks": len(completed),
            "skipped_tasks": sum(1 for t in tasks if t.status == "skipped"),
            "planned_minutes": sum(t.estimated_minutes for t in tasks),
            "studied_minutes": sum(t.actual_minutes if t.actual_minutes is not None else t.estimated_minutes
                                   for t in completed),
            "percent_complete": round(len(completed) / len(tasks) * 100) if tasks else 0,
            "days_remaining": max(0, (plan.target_date - utc_today()).days),
        }

    def _owned_plan(self, session: Session, user_id: str, plan_id: str) -> StudyPlan:
        plan = session.get(StudyPlan, plan_id)
        if not plan or plan.user_id != user_id:
            raise NotFoundError("Study plan not found")
        return plan

    def create_plan(
        self,
        user_id: str,
        name: str,
        target_date: date,
        daily_study_minutes: int = 120,
        focus_areas: Optional[List[str]] = None,
        weak_areas: Optional[List[str]] = None,
        study_days: Optional[List[int]] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        today = utc_today()
        if target_date <= today:
            raise AppError("Target date must be in the future")
        if target_date > today + timedelta(days=MAX_PLAN_DAYS):
            raise AppError(f"Target date must be within {MAX_PLAN_DAYS} days")

        unknown = [code for code in (focus_areas or []) + (weak_areas or []) if code not in CATEGORY_CODES]
        if unknown:
            raise AppError(f"Unknown categories: {', '.join(sorted(set(unknown)))}")

        days = sorted(set(study_days)) if study_days else list(DEFAULT_STUDY_DAYS)

        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            if (focus_areas or weak_areas) and not subscription.can_access(user.subscription_tier, "custom_study_plans"):
                raise UsageLimitError("custom_study_plans", 0, 0,
                                      "Custom focus areas require a Pro or Premium subscription.")

            focus = list(dict.fromkeys(focus_areas)) if focus_areas else list(CATEGORY_CODES)
            weak = list(dict.fromkeys(weak_areas or []))

            plan = StudyPlan(
                user_id=user_id,
                name=name.strip(),
                description=description,
                start_date=today,
                target_date=target_date,
                daily_study_minutes=daily_study_minutes,
                focus_areas=focus,
                weak_areas=weak,
                study_days=days,
            )
            session.add(plan)
            session.flush()

            names = {c.code: c.name for c in session.query(Category).all()}
            tasks = [
                StudyPlanTask(plan_id=plan.id, **task)
                for task in generate_tasks(today, target_date, daily_study_minutes, focus, weak, days, names)
            ]
            session.add_all(tasks)
            session.flush()

            logger.info(f"Created study plan {plan.id} with {len(tasks)} tasks for user {user_id}")
            return {
                **self._serialize_plan(plan),
                "progress": self._progress(plan, tasks),
            }

    def list_plans(self, user_id: str, include_archived: bool = False) -> List[Dict[str, Any]]:
        with self.db_service.session_scope() as session:
            query = session.query(StudyPlan).filter(StudyPlan.user_id == user_id)
            if not include_archived:
                query = query.filter(StudyPlan.status != "archived")
            return [self._serialize_plan(p) for p in query.order_by(StudyPlan.created_at.desc()).all()]

    def _tasks(self, session: Session, plan_id: str) -> List[StudyPlanTask]:
        return (
            session.query(StudyPlanTask)
            .filter(StudyPlanTask.plan_id == plan_id)
            .order_by(StudyPlanTask.scheduled_date, StudyPlanTask.id)
            .all()
        )

    def get_plan(self, user_id: str, plan_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            plan = self._owned_plan(session, user_id, plan_id)
            tasks = self._tasks(session, plan.id)
            return {
                **self._serialize_plan(plan),
                "tasks": [self._serialize_task(t) for t in tasks],
                "progress": self._progress(plan, tasks),
            }

    def update_task(self, user_id: str, plan_id: str, task_id: str, status: str,
                    actual_minutes: Optional[int] = None) -> Dict[str, Any]:
        if status not in TASK_STATUSES:
            raise AppError(f"Invalid status. Valid statuses: {', '.join(TASK_STATUSES)}")

        with self.db_service.session_scope() as session:
            plan = self._owned_plan(session, user_id, plan_id)
            task = session.get(StudyPlanTask, task_id)
            if not task or task.plan_id != plan.id:
                raise NotFoundError("Task not found")

            task.status = status
            if actual_minutes is not None:
                task.actual_minutes = actual_minutes
            task.completed_at = utcnow() if status == "completed" else None
            session.flush()

            tasks = self._tasks(session, plan.id)
            if tasks and all(t.status in ("completed", "skipped") for t in tasks):
                plan.status = "completed"
            elif plan.status == "completed":
                plan.status = "active"

            return {"task": self._serialize_task(task), "progress": self._progress(plan, tasks)}

    def archive_plan(self, user_id: str, plan_id: str) -> None:
        with self.db_service.session_scope() as session:
            plan = self._owned_plan(session, user_id, plan_id)
            plan.status = "archived"


study_planner_service: Optional[StudyPlannerService] = None


def get_study_planner_service() -> StudyPlannerService:
    global study_planner_service
    if study_planner_service is None:
        study_planner_service = StudyPlannerService()
    return study_planner_service
