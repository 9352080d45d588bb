import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Category, Question, QuizResponse, QuizSession, User, utcnow
from services import subscription
from services.database_service import get_database_service
from services.exceptions import AppError, NotFoundError, UsageLimitError
from services.gamification_service import get_gamification_service
from services.grading import grade_answer
from services.progress_service import record_activity
from services.question_repository import get_question_repository
from services.usage_service import get_usage_service

logger = logging.getLogger(__name__)

PASSING_SCORE = 70


class QuizService:
    """Practice quizzes: creation, answering and scoring."""

    def __init__(self):
        self.db_service = get_database_service()
        self.questions = get_question_repository()
        self.usage = get_usage_service()
        self.gamification = get_gamification_service()

    def _serialize_session(self, quiz: QuizSession) -> Dict[str, Any]:
        return {
            "id": quiz.id,
            "status": quiz.status,
            "question_ids": quiz.question_ids or [],
            "filters": quiz.filters or {},
            "total_questions": quiz.total_questions,
            "correct_answers": quiz.correct_answers,
            "score": quiz.score,
            "time_limit_seconds": quiz.time_limit_seconds,
            "total_time_seconds": quiz.total_time_seconds,
            "started_at": quiz.started_at.isoformat() if quiz.started_at else None,
            "completed_at": quiz.completed_at.isoformat() if quiz.completed_at else None,
        }

    def _get_owned(self, session: Session, user_id: str, quiz_id: str, in_progress: bool = False) -> QuizSession:
        quiz = session.get(QuizSession, quiz_id)
        if not quiz or quiz.user_id != user_id:
            raise NotFoundError("Quiz session not found")
        if in_progress and quiz.status != "in_progress":
            raise NotFoundError("Quiz session not found or already completed")
        return quiz

    def create_quiz(
        self,
        user_id: str,
        question_count: int,
        category_codes: Optional[List[str]] = None,
        difficulty: Optional[str] = None,
        question_types: Optional[List[str]] = None,
        time_limit_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            remaining = self.usage.remaining(session, user_id, "questions_attempted", user.subscription_tier)
            if remaining == 0:
                raise UsageLimitError("questions_attempted", self._question_limit(user), 0,
                                      "Monthly question limit reached. Upgrade your plan for unlimited practice.")

            questions = (
                self.questions.filtered_query(session, category_codes, difficulty, question_types)
                .order_by(func.random())
                .limit(question_count)
                .all()
            )
            if not questions:
                raise AppError("No questions match the selected filters")

            quiz = QuizSession(
                user_id=user_id,
                question_ids=[q.id for q in questions],
                filters={
                    "category_codes": category_codes or [],
                    "difficulty": difficulty,
                    "question_types": question_types or [],
                },
                total_questions=len(questions),
                time_limit_seconds=time_limit_seconds,
            )
            session.add(quiz)
            session.flush()

            categories = self.questions.category_lookup(session)
            logger.info(f"Created quiz {quiz.id} with {len(questions)} questions for user {user_id}")
            return {
                **self._serialize_session(quiz),
                "questions": [self.questions.serialize_public(q, categories.get(q.category_id)) for q in questions],
                "questions_remaining": remaining,
            }

    def _question_limit(self, user: User) -> int:
        return subscription.get_limit(user.subscription_tier, "questions_per_month")

    def list_quizzes(self, user_id: str, page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        with self.db_service.session_scope() as session:
            query = session.query(QuizSession).filter(QuizSession.user_id == user_id)
            total = query.count()
            quizzes = (
                query.order_by(QuizSession.started_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return [self._serialize_session(q) for q in quizzes], total

    def get_quiz(self, user_id: str, quiz_id: str) -> Dict[str, Any]:
        """In-progress sessions never reveal answer keys; completed ones do."""
        with self.db_service.session_scope() as session:
            quiz = self._get_owned(session, user_id, quiz_id)
            question_ids = quiz.question_ids or []
            by_id = {
                q.id: q for q in session.query(Question).filter(Question.id.in_(question_ids)).all()
            }
            categories = self.questions.category_lookup(session)
            responses = (
                session.query(QuizResponse)
                .filter(QuizResponse.session_id == quiz.id)
                .order_by(QuizResponse.question_index)
                .all()
            )

            completed = quiz.status == "completed"
            questions = []
            for question_id in question_ids:
                question = by_id.get(question_id)
                if question is None:
                    continue
                category = categories.get(question.category_id)
                if completed:
                    questions.append(self.questions.serialize_with_answers(question, category))
                else:
                    questions.append(self.questions.serialize_public(question, category))

            result = {**self._serialize_session(quiz), "questions": questions}
            result["responses"] = [
                {
                    "question_id": r.question_id,
                    "question_index": r.question_index,
                    "user_answer": r.user_answer,
                    "time_spent_seconds": r.time_spent_seconds,
                    **({"is_correct": r.is_correct, "score": r.score} if completed else {}),
                }
                for r in responses
            ]
            return result

    def submit_answer(
        self,
        user_id: str,
        quiz_id: str,
        question_id: str,
        user_answer: Any,
        question_index: Optional[int] = None,
        time_spent_seconds: int = 0,
    ) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            quiz = self._get_owned(session, user_id, quiz_id, in_progress=True)
            if question_id not in (quiz.question_ids or []):
                raise AppError("Question is not part of this quiz session")

            question = session.get(Question, question_id)
            if not question:
                raise NotFoundError("Question not found")

            result = grade_answer(
                question.question_type,
                user_answer,
                question.correct_answers,
                question.correct_order,
                question.hot_spot_data,
            )

            existing = (
                session.query(QuizResponse)
                .filter(QuizResponse.session_id == quiz.id, QuizResponse.question_id == question_id)
                .one_or_none()
            )
            if existing:
                existing.user_answer = user_answer
                existing.is_correct = result.is_correct
                existing.score = result.score
                existing.time_spent_seconds = time_spent_seconds
                existing.answered_at = utcnow()
            else:
                user = session.get(User, user_id)
                usage = self.usage.check_and_increment(session, user_id, "questions_attempted", user.subscription_tier)
                if not usage["allowed"]:
                    raise UsageLimitError("questions_attempted", usage["limit"], 0,
                                          "Monthly question limit reached. Upgrade your plan for unlimited practice.")

                session.add(QuizResponse(
                    session_id=quiz.id,
                    question_id=question_id,
                    user_id=user_id,
                    user_answer=user_answer,
                    is_correct=result.is_correct,
                    score=result.score,
                    time_spent_seconds=time_spent_seconds,
                    question_index=question_index if question_index is not None else quiz.question_ids.index(question_id),
                ))
                question.times_used = (question.times_used or 0) + 1
                if result.is_correct:
                    question.times_correct = (question.times_correct or 0) + 1

            return {"is_correct": result.is_correct, "score": result.score}

    def complete_quiz(self, user_id: str, quiz_id: str, total_time_seconds: Optional[int] = None) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            quiz = self._get_owned(session, user_id, quiz_id, in_progress=True)

            rows = (
                session.query(QuizResponse, Category)
                .join(Question, Question.id == QuizResponse.question_id)
                .join(Category, Category.id == Question.category_id)
                .filter(QuizResponse.session_id == quiz.id)
                .all()
            )

            answered = len(rows)
            correct = sum(1 for response, _ in rows if response.is_correct)
            score = round(correct / answered * 100) if answered else 0

            breakdown: Dict[str, Dict[str, Any]] = {}
            for response, category in rows:
                entry = breakdown.setdefault(category.code, {"name": category.name, "correct": 0, "total": 0})
                entry["total"] += 1
                if response.is_correct:
                    entry["correct"] += 1

            if total_time_seconds is None:
                total_time_seconds = sum(response.time_spent_seconds or 0 for response, _ in rows)

            quiz.status = "completed"
            quiz.score = score
            quiz.correct_answers = correct
            quiz.total_time_seconds = total_time_seconds
            quiz.completed_at = utcnow()

            record_activity(
                session, user_id, "quiz_completed", f"Quiz - {score}%",
                session_id=quiz.id,
                duration_minutes=round(total_time_seconds / 60),
                questions_attempted=answered,
                questions_correct=correct,
                score=score,
            )
            xp = self.gamification.award_xp(session, user_id, "quiz_complete")

            logger.info(f"Quiz {quiz.id} completed with score {score}")
            return {
                "session_id": quiz.id,
                "score": score,
                "passed": score >= PASSING_SCORE,
                "total_questions": quiz.total_questions,
                "answered_questions": answered,
                "correct_answers": correct,
                "total_time_seconds": total_time_seconds,
                "category_breakdown": breakdown,
                "xp_awarded": xp["xp_awarded"],
                "new_achievements": xp["new_achievements"],
            }


quiz_service: Optional[QuizService] = None


def get_quiz_service() -> QuizService:
    global quiz_service
    if quiz_service is None:
        quiz_service = QuizService()
    return quiz_service
