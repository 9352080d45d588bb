"""
Answer grading for every NextGen NCLEX item type.

``grade_answer`` never raises on malformed input: an answer that does not
have the shape its item type expects simply scores zero.
"""

from dataclasses import dataclass
from typing import Any

QUESTION_TYPES = (
    "multiple_choice",
    "multiple_response",
    "select_all",
    "fill_blank",
    "ordered_response",
    "hot_spot",
    "cloze_dropdown",
    "matrix",
    "highlight",
    "bow_tie",
    "case_study",
)


@dataclass
class GradingResult:
    is_correct: bool
    score: float

    @classmethod
    def wrong(cls) -> "GradingResult":
        return cls(is_correct=False, score=0.0)


def grade_answer(
    question_type: str,
    user_answer: Any,
    correct_answers: Any,
    correct_order: Any = None,
    hot_spot_data: Any = None,
) -> GradingResult:
    if question_type == "multiple_choice":
        return _grade_multiple_choice(user_answer, correct_answers)
    if question_type in ("multiple_response", "select_all"):
        return _grade_multiple_response(user_answer, correct_answers)
    if question_type == "fill_blank":
        return _grade_fill_blank(user_answer, correct_answers)
    if question_type == "ordered_response":
        return _grade_ordered_response(user_answer, correct_order or correct_answers)
    if question_type == "hot_spot":
        return _grade_hot_spot(user_answer, hot_spot_data)
    if question_type in ("cloze_dropdown", "matrix"):
        return _grade_keyed(user_answer, correct_answers)
    if question_type == "highlight":
        return _grade_highlight(user_answer, correct_answers)
    if question_type == "bow_tie":
        return _grade_bow_tie(user_answer, correct_answers)
    if question_type == "case_study":
        return _grade_case_study(user_answer, correct_answers)
    return GradingResult.wrong()


def _grade_multiple_choice(user_answer: Any, correct_answers: Any) -> GradingResult:
    if isinstance(correct_answers, list):
        if not correct_answers:
            return GradingResult.wrong()
        correct = correct_answers[0]
    else:
        correct = correct_answers
    if isinstance(user_answer, list) and len(user_answer) == 1:
        user_answer = user_answer[0]
    is_correct = user_answer is not None and user_answer == correct
    return GradingResult(is_correct, 1.0 if is_correct else 0.0)


def _grade_multiple_response(user_answer: Any, correct_answers: Any) -> GradingResult:
    if not isinstance(user_answer, list) or not isinstance(correct_answers, list) or not correct_answers:
        return GradingResult.wrong()

    try:
        user_set = set(user_answer)
        correct_set = set(correct_answers)
    except TypeError:
        return GradingResult.wrong()

    # SATA is all-or-nothing; partial credit is reported separately
    is_correct = user_set == correct_set
    hits = len(user_set & correct_set)
    wrong = len(user_set - correct_set)
    score = max(0.0, (hits - wrong) / len(correct_set))

    return GradingResult(is_correct, 1.0 if is_correct else score)


def _grade_fill_blank(user_answer: Any, correct_answers: Any) -> GradingResult:
    acceptable = correct_answers if isinstance(correct_answers, list) else [correct_answers]
    normalized = str(user_answer or "").strip().lower()
    is_correct = bool(normalized) and any(
        normalized == str(answer or "").strip().lower() for answer in acceptable
    )
    return GradingResult(is_correct, 1.0 if is_correct else 0.0)


def _grade_ordered_response(user_answer: Any, correct_order: Any) -> GradingResult:
    if not isinstance(user_answer, list) or not isinstance(correct_order, list) or not correct_order:
        return GradingResult.wrong()
    if len(user_answer) != len(correct_order):
        return GradingResult.wrong()

    correct_positions = sum(1 for given, expected in zip(user_answer, correct_order) if given == expected)
    return GradingResult(correct_positions == len(correct_order), correct_positions / len(correct_order))


def _grade_hot_spot(user_answer: Any, hot_spot_data: Any) -> GradingResult:
    if not isinstance(user_answer, dict) or not isinstance(hot_spot_data, dict):
        return GradingResult.wrong()
    regions = hot_spot_data.get("regions") or []
    try:
        x = float(user_answer["x"])
        y = float(user_answer["y"])
        is_correct = any(
            region["x"] <= x <= region["x"] + region["width"]
            and region["y"] <= y <= region["y"] + region["height"]
            for region in regions
        )
    except (KeyError, TypeError, ValueError):
        return GradingResult.wrong()
    return GradingResult(is_correct, 1.0 if is_correct else 0.0)


def _grade_keyed(user_answer: Any, correct_answers: Any) -> GradingResult:
    """Cloze dropdowns and matrix grids: one expected value per key."""
    if not isinstance(user_answer, dict) or not isinstance(correct_answers, dict) or not correct_answers:
        return GradingResult.wrong()

    correct = sum(1 for key, expected in correct_answers.items() if user_answer.get(key) == expected)
    return GradingResult(correct == len(correct_answers), correct / len(correct_answers))


def _grade_highlight(user_answer: Any, correct_answers: Any) -> GradingResult:
    if not isinstance(user_answer, list) or not isinstance(correct_answers, list):
        return GradingResult.wrong()

    user_set = {str(s).strip().lower() for s in user_answer}
    correct_set = {str(s).strip().lower() for s in correct_answers}
    if not correct_set:
        return GradingResult.wrong()

    hits = len(user_set & correct_set)
    misses = len(user_set - correct_set)
    is_correct = hits == len(correct_set) and misses == 0
    score = max(0.0, (hits - misses) / len(correct_set))
    return GradingResult(is_correct, 1.0 if is_correct else score)


def _grade_bow_tie(user_answer: Any, correct_answers: Any) -> GradingResult:
    if not isinstance(user_answer, dict) or not isinstance(correct_answers, dict):
        return GradingResult.wrong()

    parts = [
        _grade_multiple_response(user_answer.get(part) or [], correct_answers.get(part) or [])
        for part in ("causes", "actions", "parameters")
    ]
    score = sum(part.score for part in parts) / len(parts)
    return GradingResult(all(part.is_correct for part in parts), score)


def _grade_case_study(user_answer: Any, correct_answers: Any) -> GradingResult:
    if not isinstance(user_answer, dict) or not isinstance(correct_answers, dict) or not correct_answers:
        return GradingResult.wrong()

    total = 0.0
    all_correct = True
    for key, sub in correct_answers.items():
        sub = sub if isinstance(sub, dict) else {"answer": sub}
        result = grade_answer(
            sub.get("type", "multiple_choice"),
            user_answer.get(key),
            sub.get("answer"),
            sub.get("order"),
            sub.get("hot_spot_data"),
        )
        total += result.score
        all_correct = all_correct and result.is_correct

    return GradingResult(all_correct, total / len(correct_answers))
