import math
import random

import pytest

from services import irt_engine
from services.irt_engine import ItemParameters, ItemResponse


def test_probability_3pl_stays_between_guessing_and_one():
    for theta in [-4, -2, 0, 2, 4]:
        p = irt_engine.probability_3pl(theta, 1.2, 0.0, 0.2)
        assert 0.2 < p < 1.0


def test_probability_3pl_is_stable_for_extreme_logits():
    assert irt_engine.probability_3pl(-1000, 1.0, 0.0, 0.0) == pytest.approx(0.0)
    assert irt_engine.probability_3pl(1000, 1.0, 0.0, 0.0) == pytest.approx(1.0)


def test_probability_at_difficulty_is_halfway_above_guessing():
    p = irt_engine.probability_3pl(0.5, 1.0, 0.5, 0.2)
    assert p == pytest.approx(0.2 + 0.8 * 0.5)


def test_fisher_information_peaks_near_difficulty():
    near = irt_engine.fisher_information(0.0, 1.0, 0.0, 0.2)
    far = irt_engine.fisher_information(3.0, 1.0, 0.0, 0.2)
    assert near > 0.01
    assert near > far


def test_fisher_information_zero_when_probability_saturates():
    assert irt_engine.fisher_information(1000, 1.0, 0.0, 0.0) == 0.0


def test_eap_without_responses_returns_prior_mean():
    assert irt_engine.estimate_ability_eap([]) == 0.0
    assert irt_engine.estimate_ability_eap([], prior_mean=0.7) == 0.7


def test_eap_moves_with_correctness():
    correct = irt_engine.estimate_ability_eap([ItemResponse(1.2, 0.0, 0.2, True)])
    wrong = irt_engine.estimate_ability_eap([ItemResponse(1.2, 0.0, 0.2, False)])
    assert correct > 0.0
    assert wrong < 0.0


def test_eap_survives_long_tests():
    responses = [ItemResponse(1.5, 0.0, 0.2, i % 3 != 0) for i in range(300)]
    theta = irt_engine.estimate_ability_eap(responses)
    assert math.isfinite(theta)
    assert irt_engine.THETA_MIN <= theta <= irt_engine.THETA_MAX


def test_mle_perfect_and_zero_scores_step_from_prior():
    all_correct = [ItemResponse(1.0, 0.0, 0.2, True)] * 3
    all_wrong = [ItemResponse(1.0, 0.0, 0.2, False)] * 3
    assert irt_engine.estimate_ability_mle(all_correct) == 1.5
    assert irt_engine.estimate_ability_mle(all_wrong) == -1.5
    assert irt_engine.estimate_ability_mle(all_correct, prior_theta=3.0) == 4.0
    assert irt_engine.estimate_ability_mle(all_wrong, prior_theta=-3.0) == -4.0


def test_mle_mixed_responses_stay_in_bounds():
    responses = [
        ItemResponse(1.0, -1.0, 0.2, True),
        ItemResponse(1.0, 0.0, 0.2, True),
        ItemResponse(1.0, 1.0, 0.2, False),
    ]
    theta = irt_engine.estimate_ability_mle(responses)
    assert -4.0 <= theta <= 4.0
    assert theta > -1.0


def test_standard_error_shrinks_with_more_items():
    one = [ItemParameters("q1", 1.0, 0.0, 0.2)]
    many = [ItemParameters(f"q{i}", 1.0, 0.0, 0.2) for i in range(20)]
    assert irt_engine.standard_error(0.0, many) < irt_engine.standard_error(0.0, one)


def test_standard_error_defaults_to_one_without_information():
    assert irt_engine.standard_error(0.0, []) == 1.0


def test_select_next_item_skips_answered_and_handles_exhaustion():
    items = [ItemParameters("a", 1.0, 0.0, 0.2), ItemParameters("b", 1.0, 0.1, 0.2)]
    picked = irt_engine.select_next_item(0.0, items, ["a"], rng=random.Random(1))
    assert picked.id == "b"
    assert irt_engine.select_next_item(0.0, items, ["a", "b"]) is None


def test_select_next_item_picks_from_most_informative():
    informative = [ItemParameters(f"good{i}", 2.0, 0.0, 0.1) for i in range(5)]
    poor = [ItemParameters(f"poor{i}", 0.3, 3.5, 0.3) for i in range(20)]
    rng = random.Random(7)
    for _ in range(20):
        picked = irt_engine.select_next_item(0.0, informative + poor, [], rng=rng)
        assert picked.id.startswith("good")


def test_content_balancing_favours_underrepresented_category():
    seen = ItemParameters("seen", 1.0, 0.0, 0.2, category_id=1)
    fresh = ItemParameters("fresh", 1.0, 0.0, 0.2, category_id=2)
    performance = {"1": {"correct": 5, "total": 10}}
    picked = irt_engine.select_next_item(0.0, [seen, fresh], [], performance, top_n=1)
    assert picked.id == "fresh"


def test_stopping_rules_order():
    rules = irt_engine.check_stopping_rules

    decision = rules(0.5, 0.5, 145, 60, 145, 18000, 100)
    assert (decision.should_stop, decision.reason, decision.result) == (True, "maximum_questions", "pass")

    decision = rules(-0.5, 0.5, 70, 60, 145, 18000, 18000)
    assert (decision.should_stop, decision.reason, decision.result) == (True, "time_limit", "fail")

    decision = rules(3.0, 0.1, 10, 60, 145, 18000, 100)
    assert not decision.should_stop

    decision = rules(1.0, 0.3, 70, 60, 145, 18000, 100)
    assert (decision.reason, decision.result) == ("confidence_pass", "pass")

    decision = rules(-1.0, 0.3, 70, 60, 145, 18000, 100)
    assert (decision.reason, decision.result) == ("confidence_fail", "fail")

    decision = rules(0.1, 0.25, 70, 60, 145, 18000, 100)
    assert (decision.reason, decision.result) == ("precision_reached", "pass")

    decision = rules(0.1, 0.5, 70, 60, 145, 18000, 100)
    assert not decision.should_stop


def test_passing_probability_and_interval():
    assert irt_engine.passing_probability(0.0, 0.5) == pytest.approx(0.5)
    assert irt_engine.passing_probability(1.0, 0.5) > 0.95
    assert irt_engine.passing_probability(-1.0, 0.0) == 0.0
    lower, upper = irt_engine.confidence_interval(0.5, 0.2)
    assert lower == pytest.approx(0.5 - 1.96 * 0.2)
    assert upper == pytest.approx(0.5 + 1.96 * 0.2)


@pytest.mark.parametrize("b, bucket", [(-1.0, "easy"), (-0.5, "medium"), (0.0, "medium"), (0.5, "medium"), (0.51, "hard")])
def test_difficulty_bucket(b, bucket):
    assert irt_engine.difficulty_bucket(b) == bucket
