import pytest

from services.flashcard_service import calculate_sm2, mastery_for


def test_first_successful_reviews_use_fixed_intervals():
    first = calculate_sm2(4)
    assert first.interval_days == 1
    assert first.repetitions == 1

    second = calculate_sm2(4, first.ease_factor, first.interval_days, first.repetitions)
    assert second.interval_days == 6
    assert second.repetitions == 2


def test_later_interval_uses_current_ease_factor():
    schedule = calculate_sm2(5, ease_factor=2.5, interval_days=6, repetitions=2)
    assert schedule.interval_days == 15
    assert schedule.ease_factor == pytest.approx(2.6)


def test_failed_review_resets_progress():
    schedule = calculate_sm2(1, ease_factor=2.5, interval_days=15, repetitions=3)
    assert schedule.repetitions == 0
    assert schedule.interval_days == 1
    assert schedule.ease_factor == pytest.approx(2.5 - 0.54)


def test_ease_factor_never_drops_below_floor():
    schedule = calculate_sm2(0, ease_factor=1.3)
    assert schedule.ease_factor == 1.3


@pytest.mark.parametrize("repetitions, level", [(0, "new"), (1, "reviewing"), (3, "learned"), (5, "mastered")])
def test_mastery_levels(repetitions, level):
    assert mastery_for(repetitions) == level
