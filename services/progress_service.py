import logging
from typing import Any, Dict, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from models import Category, CATSession, Question, QuizResponse, QuizSession, StudyActivity, User
from services import subscription
from services.database_service import get_database_service
from services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def record_activity(
    session: Session,
    user_id: str,
    activity_type: str,
    title: str,
    session_id: Optional[str] = None,
    duration_minutes: int = 0,
    questions_attempted: int = 0,
    questions_correct: int = 0,
    score: Optional[int] = None,
) -> StudyActivity:
    activity = StudyActivity(
        user_id=user_id,
        activity_type=activity_type,
        title=title,
        session_id=session_id,
        duration_minutes=duration_minutes,
        questions_attempted=questions_attempted,
        questions_correct=questions_correct,
        score=score,
    )
    session.add(activity)
    return activity


class ProgressService:
    """Dashboard statistics across quizzes, CAT sessions and study activity."""

    def __init__(self):
        self.db_service = get_database_service()

    def _category_breakdown(self, session: Session, user_id: str) -> list:
        rows = (
            session.query(
                Category.code,
                Category.name,
                func.count(QuizResponse.id),
                func.sum(case((QuizResponse.is_correct.is_(True), 1), else_=0)),
            )
            .join(Question, Question.id == QuizResponse.question_id)
            .join(Category, Category.id == Question.category_id)
            .filter(QuizResponse.user_id == user_id)
            .group_by(Category.code, Category.name, Category.display_order)
            .order_by(Category.display_order)
            .all()
        )
        breakdown = []
        for code, name, answered, correct in rows:
            correct = int(correct or 0)
            breakdown.append({
                "category_code": code,
                "category_name": name,
                "answered": answered,
                "correct": correct,
                "accuracy": round(correct / answered * 100) if answered else 0,
            })
        return breakdown

    def get_progress(self, user_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            if not user:
                raise NotFoundError("User not found")

            completed_quizzes = session.query(
                func.count(QuizSession.id), func.avg(QuizSession.score)
            ).filter(QuizSession.user_id == user_id, QuizSession.status == "completed").one()

            answered = session.query(QuizResponse).filter(QuizResponse.user_id == user_id).count()
            correct = session.query(QuizResponse).filter(
                QuizResponse.user_id == user_id, QuizResponse.is_correct.is_(True)
            ).count()

            cat_completed = session.query(CATSession).filter(
                CATSession.user_id == user_id, CATSession.status == "completed"
            ).count()
            latest_cat = (
                session.query(CATSession)
                .filter(CATSession.user_id == user_id, CATSession.status == "completed")
                .order_by(CATSession.completed_at.desc())
                .first()
            )

            recent = (
                session.query(StudyActivity)
                .filter(StudyActivity.user_id == user_id)
                .order_by(StudyActivity.created_at.desc())
                .limit(10)
                .all()
            )

            progress = {
                "quizzes_completed": completed_quizzes[0] or 0,
                "average_quiz_score": round(float(completed_quizzes[1])) if completed_quizzes[1] is not None else None,
                "questions_answered": answered,
                "questions_correct": correct,
                "accuracy": round(correct / answered * 100) if answered else 0,
                "cat_sessions_completed": cat_completed,
                "latest_ability": latest_cat.current_ability if latest_cat else None,
                "latest_passing_probability": latest_cat.passing_probability if latest_cat else None,
                "current_streak": user.current_streak,
                "longest_streak": user.longest_streak,
                "xp_total": user.xp_total,
                "level": user.level,
                "recent_activity": [
                    {
                        "activity_type": a.activity_type,
                        "title": a.title,
                        "score": a.score,
                        "questions_attempted": a.questions_attempted,
                        "questions_correct": a.questions_correct,
                        "created_at": a.created_at.isoformat(),
                    }
                    for a in recent
                ],
            }

            if subscription.can_access(user.subscription_tier, "advanced_analytics"):
                progress["category_breakdown"] = self._category_breakdown(session, user_id)
                progress["upgrade_required"] = False
            else:
                progress["upgrade_required"] = True

            return progress


progress_service: Optional[ProgressService] = None


def get_progress_service() -> ProgressService:
    global progress_service
    if progress_service is None:
        progress_service = ProgressService()
    return progress_service
