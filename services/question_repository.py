import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Category, Question
from services.cache_service import get_cache_service
from services.database_service import get_database_service
from services.grading import QUESTION_TYPES

logger = logging.getLogger(__name__)

DIFFICULTY_LEVELS = ("easy", "medium", "hard")

# default 3PL difficulty for each label when a bank omits IRT parameters
DEFAULT_IRT_DIFFICULTY = {"easy": -1.0, "medium": 0.0, "hard": 1.0}


class QuestionRepository:
    """Repository for the NCLEX question bank and its categories."""

    def __init__(self):
        self.db_service = get_database_service()
        self.SessionLocal = self.db_service.SessionLocal

    def serialize_public(self, question: Question, category: Optional[Category] = None) -> Dict[str, Any]:
        """Question payload safe to show before it is answered (no answer keys)."""
        payload = {
            "id": question.id,
            "category_id": question.category_id,
            "question_text": question.question_text,
            "question_type": question.question_type,
            "options": question.options or [],
            "scenario": question.scenario,
            "difficulty": question.difficulty,
        }
        if question.question_type == "hot_spot" and question.hot_spot_data:
            # image only; regions are the answer key
            payload["hot_spot_image"] = question.hot_spot_data.get("image_url")
        if category is not None:
            payload["category_code"] = category.code
            payload["category_name"] = category.name
        return payload

    def serialize_with_answers(self, question: Question, category: Optional[Category] = None) -> Dict[str, Any]:
        payload = self.serialize_public(question, category)
        payload.update({
            "correct_answers": question.correct_answers,
            "correct_order": question.correct_order,
            "hot_spot_data": question.hot_spot_data,
            "explanation": question.explanation,
            "rationale": question.rationale,
        })
        return payload

    def _serialize_category(self, category: Category) -> Dict[str, Any]:
        return {
            "id": category.id,
            "code": category.code,
            "name": category.name,
            "description": category.description,
            "display_order": category.display_order,
        }

    def list_categories(self) -> List[Dict[str, Any]]:
        cache_service = get_cache_service()
        cached = cache_service.get_cached_categories()
        if cached:
            return cached

        session = self.SessionLocal()
        try:
            categories = (
                session.query(Category)
                .filter(Category.is_active.is_(True))
                .order_by(Category.display_order)
                .all()
            )
            result = [self._serialize_category(c) for c in categories]
        except Exception as e:
            logger.error(f"Failed to list categories: {e}")
            raise
        finally:
            session.close()

        if result:
            cache_service.cache_categories(result)
        return result

    def category_ids_for_codes(self, session: Session, codes: List[str]) -> List[int]:
        rows = session.query(Category.id).filter(Category.code.in_(codes)).all()
        return [row[0] for row in rows]

    def category_lookup(self, session: Session) -> Dict[int, Category]:
        return {c.id: c for c in session.query(Category).all()}

    def filtered_query(
        self,
        session: Session,
        category_codes: Optional[List[str]] = None,
        difficulty: Optional[str] = None,
        question_types: Optional[List[str]] = None,
    ):
        query = session.query(Question).filter(Question.is_active.is_(True))
        if category_codes:
            query = query.filter(Question.category_id.in_(self.category_ids_for_codes(session, category_codes)))
        if difficulty:
            query = query.filter(Question.difficulty == difficulty)
        if question_types:
            query = query.filter(Question.question_type.in_(question_types))
        return query

    def list_questions(
        self,
        page: int,
        limit: int,
        category_code: Optional[str] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        session = self.SessionLocal()
        try:
            query = self.filtered_query(
                session,
                [category_code] if category_code else None,
                difficulty,
                [question_type] if question_type else None,
            )
            total = query.count()
            questions = (
                query.order_by(Question.created_at, Question.id)
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            categories = self.category_lookup(session)
            return [self.serialize_public(q, categories.get(q.category_id)) for q in questions], total
        except Exception as e:
            logger.error(f"Failed to list questions: {e}")
            raise
        finally:
            session.close()

    def get_question(self, question_id: str) -> Optional[Dict[str, Any]]:
        cache_service = get_cache_service()
        cached = cache_service.get_cached_question(question_id)
        if cached:
            return cached

        session = self.SessionLocal()
        try:
            question = session.get(Question, question_id)
            if not question or not question.is_active:
                return None
            payload = self.serialize_public(question, session.get(Category, question.category_id))
        except Exception as e:
            logger.error(f"Failed to fetch question {question_id}: {e}")
            raise
        finally:
            session.close()

        cache_service.cache_question(question_id, payload)
        return payload

    def import_questions(self, items: List[Dict[str, Any]]) -> Dict[str, int]:
        """Bulk import from question-bank dicts keyed by category code.

        Rows with an unknown category or type are skipped, not fatal.
        """
        imported = 0
        skipped = 0
        with self.db_service.session_scope() as session:
            codes = {c.code: c.id for c in session.query(Category).all()}
            for item in items:
                category_id = codes.get(item.get("category_code"))
                question_type = item.get("question_type", "multiple_choice")
                if category_id is None or question_type not in QUESTION_TYPES or not item.get("question_text"):
                    skipped += 1
                    continue

                difficulty = item.get("difficulty", "medium")
                if difficulty not in DIFFICULTY_LEVELS:
                    difficulty = "medium"

                session.add(Question(
                    category_id=category_id,
                    question_text=item["question_text"],
                    question_type=question_type,
                    options=item.get("options"),
                    correct_answers=item.get("correct_answers"),
                    correct_order=item.get("correct_order"),
                    hot_spot_data=item.get("hot_spot_data"),
                    scenario=item.get("scenario"),
                    explanation=item.get("explanation"),
                    rationale=item.get("rationale"),
                    difficulty=difficulty,
                    discrimination=float(item.get("discrimination", 1.0)),
                    difficulty_irt=float(item.get("difficulty_irt", DEFAULT_IRT_DIFFICULTY[difficulty])),
                    guessing=float(item.get("guessing", 0.2)),
                ))
                imported += 1

        logger.info(f"Imported {imported} questions ({skipped} skipped)")
        return {"imported": imported, "skipped": skipped}

    def count_questions(self) -> int:
        session = self.SessionLocal()
        try:
            return session.query(func.count(Question.id)).scalar() or 0
        except Exception as e:
            logger.error(f"Failed to count questions: {e}")
            raise
        finally:
            session.close()


question_repository: Optional[QuestionRepository] = None


def get_question_repository() -> QuestionRepository:
    global question_repository
    if question_repository is None:
        question_repository = QuestionRepository()
    return question_repository
