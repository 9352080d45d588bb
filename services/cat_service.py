import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from config import Config
from models import Category, CATResponse, CATSession, Question, User, utcnow
from services import irt_engine, subscription
from services.database_service import get_database_service
from services.exceptions import AppError, ConflictError, NotFoundError, UsageLimitError
from services.gamification_service import get_gamification_service
from services.grading import grade_answer
from services.progress_service import record_activity
from services.question_repository import get_question_repository
from services.usage_service import get_usage_service

logger = logging.getLogger(__name__)

DEFAULT_MIN_QUESTIONS = 60
DEFAULT_MAX_QUESTIONS = 145
DEFAULT_TIME_LIMIT_SECONDS = 5 * 60 * 60

SLOW_ANSWER_SECONDS = 90


def proficiency_band(accuracy: float) -> str:
    if accuracy >= 85:
        return "mastered"
    if accuracy >= 70:
        return "proficient"
    if accuracy >= 50:
        return "developing"
    return "needs_improvement"


def _variance(values: List[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def consistency_score(responses: List[CATResponse]) -> int:
    """Accuracy and ability stability over the second half of the test."""
    if len(responses) < 5:
        return 50
    last_half = responses[len(responses) // 2:]
    accuracy = sum(1 for r in last_half if r.is_correct) / len(last_half)
    stability = max(0.0, 100 - _variance([r.ability_after for r in last_half]) * 200)
    return round(accuracy * 60 + stability * 0.4)


def difficulty_score(responses: List[CATResponse]) -> int:
    """Rewards correct answers on harder items."""
    if not responses:
        return 50
    total = 0.0
    for r in responses:
        if r.is_correct:
            total += 50 + r.irt_difficulty * 30
        else:
            total += max(0.0, 30 - r.irt_difficulty * 10)
    return min(100, round(total / len(responses)))


def readiness_level(score: int) -> str:
    if score >= 85:
        return "exam_ready"
    if score >= 70:
        return "nearly_ready"
    if score >= 55:
        return "developing"
    return "needs_preparation"


class CATService:
    """Computerized adaptive testing sessions driven by the 3PL engine."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.db_service = get_database_service()
        self.questions = get_question_repository()
        self.usage = get_usage_service()
        self.gamification = get_gamification_service()
        self.rng = rng or random.Random()

    def _estimate(self, responses: List[irt_engine.ItemResponse]) -> float:
        if Config.CAT_ESTIMATOR == "mle":
            return irt_engine.estimate_ability_mle(responses)
        return irt_engine.estimate_ability_eap(responses)

    def _item_pool(self, session: Session, exclude_ids: List[str]) -> List[irt_engine.ItemParameters]:
        query = session.query(
            Question.id, Question.discrimination, Question.difficulty_irt, Question.guessing, Question.category_id
        ).filter(Question.is_active.is_(True))
        if exclude_ids:
            query = query.filter(Question.id.notin_(exclude_ids))
        return [
            irt_engine.ItemParameters(id=row[0], a=row[1], b=row[2], c=row[3], category_id=row[4])
            for row in query.all()
        ]

    def _select_first_item(self, session: Session) -> Optional[irt_engine.ItemParameters]:
        pool = self._item_pool(session, [])
        medium = [item for item in pool if irt_engine.difficulty_bucket(item.b) == "medium"]
        return irt_engine.select_next_item(0.0, medium or pool, [], rng=self.rng)

    def _serialize_session(self, cat: CATSession) -> Dict[str, Any]:
        return {
            "id": cat.id,
            "status": cat.status,
            "result": cat.result,
            "stop_reason": cat.stop_reason,
            "current_ability": cat.current_ability,
            "standard_error": cat.standard_error,
            "confidence_interval": [cat.confidence_interval_lower, cat.confidence_interval_upper],
            "passing_probability": cat.passing_probability,
            "questions_answered": cat.questions_answered,
            "questions_correct": cat.questions_correct,
            "min_questions": cat.min_questions,
            "max_questions": cat.max_questions,
            "time_limit_seconds": cat.time_limit_seconds,
            "time_spent_seconds": cat.time_spent_seconds,
            "category_performance": cat.category_performance or {},
            "difficulty_distribution": cat.difficulty_distribution or {},
            "started_at": cat.started_at.isoformat() if cat.started_at else None,
            "completed_at": cat.completed_at.isoformat() if cat.completed_at else None,
        }

    def _public_question(self, session: Session, question_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not question_id:
            return None
        question = session.get(Question, question_id)
        if not question:
            return None
        return self.questions.serialize_public(question, session.get(Category, question.category_id))

    def _get_owned(self, session: Session, user_id: str, session_id: str) -> CATSession:
        cat = session.get(CATSession, session_id)
        if not cat or cat.user_id != user_id:
            raise NotFoundError("CAT session not found")
        return cat

    def start_session(
        self,
        user_id: str,
        min_questions: Optional[int] = None,
        max_questions: Optional[int] = None,
        time_limit_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            if not subscription.can_access(user.subscription_tier, "cat_simulations"):
                raise UsageLimitError("cat_simulations", 0, 0,
                                      "CAT simulations require a Pro or Premium subscription.")

            existing = (
                session.query(CATSession)
                .filter(CATSession.user_id == user_id, CATSession.status == "in_progress")
                .order_by(CATSession.started_at.desc())
                .first()
            )
            if existing:
                return {
                    **self._serialize_session(existing),
                    "resuming": True,
                    "current_question": self._public_question(session, existing.current_question_id),
                }

            minimum = min_questions or DEFAULT_MIN_QUESTIONS
            maximum = max_questions or max(DEFAULT_MAX_QUESTIONS, minimum)
            if maximum < minimum:
                raise AppError("max_questions must be at least min_questions")

            first_item = self._select_first_item(session)
            if first_item is None:
                raise AppError("No questions available for adaptive testing")

            usage = self.usage.check_and_increment(session, user_id, "cat_sessions", user.subscription_tier)
            if not usage["allowed"]:
                raise UsageLimitError("cat_simulations", usage["limit"], 0)

            cat = CATSession(
                user_id=user_id,
                current_ability=0.0,
                standard_error=1.0,
                confidence_interval_lower=-irt_engine.Z_95,
                confidence_interval_upper=irt_engine.Z_95,
                passing_probability=0.5,
                min_questions=minimum,
                max_questions=maximum,
                time_limit_seconds=time_limit_seconds or DEFAULT_TIME_LIMIT_SECONDS,
                current_question_id=first_item.id,
                category_performance={},
                difficulty_distribution={"easy": 0, "medium": 0, "hard": 0},
            )
            session.add(cat)
            session.flush()

            logger.info(f"Started CAT session {cat.id} for user {user_id}")
            return {
                **self._serialize_session(cat),
                "resuming": False,
                "current_question": self._public_question(session, first_item.id),
            }

    def list_sessions(self, user_id: str, page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        with self.db_service.session_scope() as session:
            query = session.query(CATSession).filter(CATSession.user_id == user_id)
            total = query.count()
            sessions = (
                query.order_by(CATSession.started_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return [self._serialize_session(s) for s in sessions], total

    def _responses(self, session: Session, session_id: str) -> List[CATResponse]:
        return (
            session.query(CATResponse)
            .filter(CATResponse.session_id == session_id)
            .order_by(CATResponse.question_number)
            .all()
        )

    def get_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            cat = self._get_owned(session, user_id, session_id)
            responses = self._responses(session, cat.id)
            questions = {
                q.id: q for q in session.query(Question).filter(
                    Question.id.in_([r.question_id for r in responses])
                ).all()
            } if responses else {}
            categories = self.questions.category_lookup(session)

            graded = []
            for r in responses:
                question = questions.get(r.question_id)
                graded.append({
                    "question_number": r.question_number,
                    "question": self.questions.serialize_with_answers(question, categories.get(question.category_id))
                    if question else None,
                    "user_answer": r.user_answer,
                    "is_correct": r.is_correct,
                    "time_spent_seconds": r.time_spent_seconds,
                    "ability_before": r.ability_before,
                    "ability_after": r.ability_after,
                    "se_after": r.se_after,
                })

            result = {**self._serialize_session(cat), "responses": graded}
            if cat.status == "in_progress":
                result["current_question"] = self._public_question(session, cat.current_question_id)
            return result

    def _complete(self, session: Session, cat: CATSession, result: str, reason: str) -> Dict[str, Any]:
        cat.status = "completed"
        cat.result = result
        cat.stop_reason = reason
        cat.current_question_id = None
        cat.completed_at = utcnow()
        session.flush()

        record_activity(
            session, cat.user_id, "cat_completed", f"CAT Test - {result.upper()}",
            session_id=cat.id,
            duration_minutes=round(cat.time_spent_seconds / 60),
            questions_attempted=cat.questions_answered,
            questions_correct=cat.questions_correct,
        )
        logger.info(f"CAT session {cat.id} completed: {result} ({reason})")
        return self.gamification.award_xp(session, cat.user_id, "cat_complete")

    def submit_answer(
        self,
        user_id: str,
        session_id: str,
        question_id: str,
        user_answer: Any,
        time_spent_seconds: int = 0,
    ) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            cat = self._get_owned(session, user_id, session_id)
            if cat.status != "in_progress":
                raise ConflictError("CAT session is not in progress")
            if question_id != cat.current_question_id:
                raise AppError("Answer must be for the current question")

            question = session.get(Question, question_id)
            if not question:
                raise NotFoundError("Question not found")

            graded = grade_answer(
                question.question_type,
                user_answer,
                question.correct_answers,
                question.correct_order,
                question.hot_spot_data,
            )

            previous = self._responses(session, cat.id)
            history = [
                irt_engine.ItemResponse(r.irt_discrimination, r.irt_difficulty, r.irt_guessing, r.is_correct)
                for r in previous
            ]
            history.append(irt_engine.ItemResponse(
                question.discrimination, question.difficulty_irt, question.guessing, graded.is_correct
            ))

            ability_before = cat.current_ability
            se_before = cat.standard_error
            ability = self._estimate(history)
            se = irt_engine.standard_error(ability, history)
            lower, upper = irt_engine.confidence_interval(ability, se)

            # JSON columns need a new object to register as changed
            performance = {k: dict(v) for k, v in (cat.category_performance or {}).items()}
            entry = performance.setdefault(str(question.category_id), {"correct": 0, "total": 0})
            entry["total"] += 1
            if graded.is_correct:
                entry["correct"] += 1

            distribution = dict(cat.difficulty_distribution or {})
            bucket = irt_engine.difficulty_bucket(question.difficulty_irt)
            distribution[bucket] = distribution.get(bucket, 0) + 1

            cat.current_ability = ability
            cat.standard_error = se
            cat.confidence_interval_lower = lower
            cat.confidence_interval_upper = upper
            cat.passing_probability = irt_engine.passing_probability(ability, se)
            cat.questions_answered += 1
            cat.questions_correct += 1 if graded.is_correct else 0
            cat.time_spent_seconds += time_spent_seconds or 0
            cat.category_performance = performance
            cat.difficulty_distribution = distribution

            session.add(CATResponse(
                session_id=cat.id,
                question_id=question_id,
                user_answer=user_answer,
                is_correct=graded.is_correct,
                time_spent_seconds=time_spent_seconds or 0,
                ability_before=ability_before,
                ability_after=ability,
                se_before=se_before,
                se_after=se,
                irt_discrimination=question.discrimination,
                irt_difficulty=question.difficulty_irt,
                irt_guessing=question.guessing,
                question_number=cat.questions_answered,
            ))
            question.times_used = (question.times_used or 0) + 1
            if graded.is_correct:
                question.times_correct = (question.times_correct or 0) + 1

            reply = {
                "is_correct": graded.is_correct,
                "score": graded.score,
                "current_ability": ability,
                "standard_error": se,
                "confidence_interval": [lower, upper],
                "passing_probability": cat.passing_probability,
                "questions_answered": cat.questions_answered,
                "questions_correct": cat.questions_correct,
                "category_performance": performance,
            }

            decision = irt_engine.check_stopping_rules(
                ability,
                se,
                cat.questions_answered,
                cat.min_questions,
                cat.max_questions,
                cat.time_limit_seconds,
                cat.time_spent_seconds,
            )

            next_item = None
            if not decision.should_stop:
                answered_ids = [r.question_id for r in previous] + [question_id]
                next_item = irt_engine.select_next_item(
                    ability,
                    self._item_pool(session, answered_ids),
                    answered_ids,
                    performance,
                    rng=self.rng,
                )
                if next_item is None:
                    decision = irt_engine.StopDecision(
                        True, "item_pool_exhausted", "pass" if ability >= irt_engine.PASSING_THETA else "fail"
                    )

            if decision.should_stop:
                xp = self._complete(session, cat, decision.result, decision.reason)
                reply.update({
                    "completed": True,
                    "result": decision.result,
                    "stop_reason": decision.reason,
                    "next_question": None,
                    "xp_awarded": xp["xp_awarded"],
                })
                return reply

            cat.current_question_id = next_item.id
            reply.update({
                "completed": False,
                "result": None,
                "stop_reason": None,
                "next_question": self._public_question(session, next_item.id),
            })
            return reply

    def end_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            cat = self._get_owned(session, user_id, session_id)
            if cat.status != "in_progress":
                raise ConflictError("CAT session is not in progress")
            cat.status = "abandoned"
            cat.stop_reason = "user_ended"
            cat.current_question_id = None
            cat.completed_at = utcnow()
            logger.info(f"CAT session {cat.id} abandoned by user")
            return self._serialize_session(cat)

    def get_analysis(self, user_id: str, session_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            cat = self._get_owned(session, user_id, session_id)
            responses = self._responses(session, cat.id)
            categories = self.questions.category_lookup(session)
            questions = {
                q.id: q for q in session.query(Question).filter(
                    Question.id.in_([r.question_id for r in responses])
                ).all()
            } if responses else {}

            category_analysis = []
            for category_id, perf in (cat.category_performance or {}).items():
                category = categories.get(int(category_id))
                accuracy = perf["correct"] / perf["total"] * 100 if perf.get("total") else 0
                category_analysis.append({
                    "category_id": int(category_id),
                    "category_name": category.name if category else "Unknown",
                    "category_code": category.code if category else "",
                    "correct": perf.get("correct", 0),
                    "total": perf.get("total", 0),
                    "accuracy": round(accuracy),
                    "proficiency": proficiency_band(accuracy),
                })

            def category_name(response: CATResponse) -> str:
                question = questions.get(response.question_id)
                category = categories.get(question.category_id) if question else None
                return category.name if category else ""

            progression = [
                {
                    "question_number": r.question_number,
                    "difficulty": r.irt_difficulty,
                    "is_correct": r.is_correct,
                    "ability_after": r.ability_after,
                    "category": category_name(r),
                }
                for r in responses
            ]

            by_type: Dict[str, Dict[str, int]] = {}
            for r in responses:
                question = questions.get(r.question_id)
                question_type = question.question_type if question else "unknown"
                entry = by_type.setdefault(question_type, {"correct": 0, "total": 0})
                entry["total"] += 1
                if r.is_correct:
                    entry["correct"] += 1
            type_analysis = [
                {
                    "type": question_type,
                    "correct": perf["correct"],
                    "total": perf["total"],
                    "accuracy": round(perf["correct"] / perf["total"] * 100),
                }
                for question_type, perf in by_type.items()
            ]

            times = [r.time_spent_seconds or 0 for r in responses]
            positive_times = [t for t in times if t > 0]
            time_analysis = {
                "average_per_question": round(sum(times) / len(times)) if times else 0,
                "fastest": min(positive_times) if positive_times else 0,
                "slowest": max(times) if times else 0,
                "total_time": cat.time_spent_seconds,
                "time_struggles": [
                    {"question_number": r.question_number, "category": category_name(r),
                     "time_spent": r.time_spent_seconds}
                    for r in responses
                    if (r.time_spent_seconds or 0) > SLOW_ANSWER_SECONDS and not r.is_correct
                ],
            }

            history = (
                session.query(CATSession)
                .filter(CATSession.user_id == user_id, CATSession.status == "completed")
                .order_by(CATSession.completed_at.desc())
                .limit(20)
                .all()
            )
            ability_trend = [
                {
                    "date": s.completed_at.isoformat(),
                    "ability": s.current_ability,
                    "passing_probability": round(s.passing_probability * 100),
                    "accuracy": round(s.questions_correct / s.questions_answered * 100) if s.questions_answered else 0,
                }
                for s in reversed(history)
                if s.completed_at
            ]

            accuracy = cat.questions_correct / cat.questions_answered * 100 if cat.questions_answered else 0
            readiness = round(
                cat.passing_probability * 40
                + accuracy / 100 * 25
                + consistency_score(responses) / 100 * 20
                + difficulty_score(responses) / 100 * 15
            )

            weak = sorted((c for c in category_analysis if c["accuracy"] < 70), key=lambda c: c["accuracy"])
            recommendations = [
                {
                    "priority": "high" if c["accuracy"] < 50 else "medium",
                    "category": c["category_name"],
                    "title": f"Strengthen {c['category_name']}",
                    "description": (
                        f"You answered {c['accuracy']}% correctly in this area. "
                        "Review the rationales and practice targeted questions."
                    ),
                }
                for c in weak
            ]
            if time_analysis["time_struggles"]:
                recommendations.append({
                    "priority": "low",
                    "category": "Pacing",
                    "title": "Work on pacing",
                    "description": (
                        f"{len(time_analysis['time_struggles'])} questions took over "
                        f"{SLOW_ANSWER_SECONDS} seconds and were missed."
                    ),
                })

            return {
                "session_id": cat.id,
                "status": cat.status,
                "overall_result": cat.result,
                "total_questions": cat.questions_answered,
                "total_correct": cat.questions_correct,
                "accuracy": round(accuracy),
                "ability": cat.current_ability,
                "standard_error": cat.standard_error,
                "passing_probability": cat.passing_probability,
                "readiness": {"score": readiness, "level": readiness_level(readiness)},
                "category_analysis": category_analysis,
                "difficulty_progression": progression,
                "question_type_analysis": type_analysis,
                "time_analysis": time_analysis,
                "ability_trend": ability_trend,
                "recommendations": recommendations,
                "historical_session_count": len(history),
            }


cat_service: Optional[CATService] = None


def get_cat_service() -> CATService:
    global cat_service
    if cat_service is None:
        cat_service = CATService()
    return cat_service
