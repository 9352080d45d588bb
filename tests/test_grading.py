import pytest

from services.grading import grade_answer


def test_multiple_choice_uses_first_key():
    assert grade_answer("multiple_choice", "B", ["B"]).is_correct
    assert grade_answer("multiple_choice", ["B"], ["B"]).is_correct
    assert grade_answer("multiple_choice", "B", "B").is_correct
    result = grade_answer("multiple_choice", "A", ["B"])
    assert not result.is_correct and result.score == 0.0
    assert not grade_answer("multiple_choice", None, ["B"]).is_correct


def test_select_all_is_all_or_nothing_with_partial_score():
    key = ["A", "C", "D"]
    assert grade_answer("select_all", ["D", "C", "A"], key).score == 1.0

    partial = grade_answer("multiple_response", ["A", "C"], key)
    assert not partial.is_correct
    assert partial.score == pytest.approx(2 / 3)

    penalised = grade_answer("multiple_response", ["A", "B"], key)
    assert penalised.score == 0.0


def test_select_all_rejects_malformed_answers():
    assert grade_answer("select_all", "A", ["A"]).score == 0.0
    assert grade_answer("select_all", [{"x": 1}], ["A"]).score == 0.0


def test_fill_blank_is_trimmed_and_case_insensitive():
    assert grade_answer("fill_blank", "  Furosemide ", ["furosemide", "Lasix"]).is_correct
    assert grade_answer("fill_blank", "lasix", "Lasix").is_correct
    assert not grade_answer("fill_blank", "", ["furosemide"]).is_correct


def test_ordered_response_scores_positions():
    order = ["1", "2", "3", "4"]
    assert grade_answer("ordered_response", order, None, order).is_correct
    partial = grade_answer("ordered_response", ["1", "2", "4", "3"], None, order)
    assert not partial.is_correct
    assert partial.score == 0.5
    assert grade_answer("ordered_response", ["1", "2"], None, order).score == 0.0


def test_hot_spot_region_bounds_are_inclusive():
    data = {"image_url": "/img.png", "regions": [{"x": 10, "y": 10, "width": 20, "height": 20}]}
    assert grade_answer("hot_spot", {"x": 10, "y": 30}, None, None, data).is_correct
    assert grade_answer("hot_spot", {"x": 20, "y": 20}, None, None, data).is_correct
    assert not grade_answer("hot_spot", {"x": 31, "y": 20}, None, None, data).is_correct
    assert not grade_answer("hot_spot", {"x": "left"}, None, None, data).is_correct


def test_cloze_and_matrix_score_per_key():
    key = {"blank1": "hypokalemia", "blank2": "ECG"}
    assert grade_answer("cloze_dropdown", dict(key), key).is_correct
    half = grade_answer("matrix", {"blank1": "hypokalemia", "blank2": "CBC"}, key)
    assert not half.is_correct
    assert half.score == 0.5


def test_highlight_compares_case_insensitively():
    key = ["Crackles in lung bases", "Weight gain of 2 kg"]
    assert grade_answer("highlight", ["crackles in lung bases", "weight gain of 2 kg "], key).is_correct
    result = grade_answer("highlight", ["crackles in lung bases"], key)
    assert result.score == 0.5


def test_bow_tie_averages_three_parts():
    key = {"causes": ["c1"], "actions": ["a1", "a2"], "parameters": ["p1", "p2"]}
    full = {"causes": ["c1"], "actions": ["a2", "a1"], "parameters": ["p1", "p2"]}
    assert grade_answer("bow_tie", full, key).is_correct

    result = grade_answer("bow_tie", {"causes": ["c1"], "actions": ["a1"], "parameters": []}, key)
    assert not result.is_correct
    assert result.score == pytest.approx((1.0 + 0.5 + 0.0) / 3)


def test_case_study_grades_sub_questions_recursively():
    key = {
        "q1": "B",
        "q2": {"type": "select_all", "answer": ["A", "C"]},
        "q3": {"type": "ordered_response", "order": ["x", "y"]},
    }
    answer = {"q1": "B", "q2": ["A", "C"], "q3": ["x", "y"]}
    assert grade_answer("case_study", answer, key).is_correct

    answer["q3"] = ["y", "x"]
    result = grade_answer("case_study", answer, key)
    assert not result.is_correct
    assert result.score == pytest.approx(2 / 3)


def test_unknown_type_scores_zero():
    result = grade_answer("essay", "anything", ["anything"])
    assert not result.is_correct
    assert result.score == 0.0
