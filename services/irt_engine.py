"""
Item response theory for adaptive testing.

Three-parameter logistic (3PL) model: a = discrimination, b = difficulty,
c = pseudo-guessing. Ability (theta) lives on [-4, 4].
"""

import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

THETA_MIN, THETA_MAX = -4.0, 4.0
SE_THRESHOLD = 0.30
PASSING_THETA = 0.0
Z_95 = 1.96


@dataclass
class ItemParameters:
    id: str
    a: float
    b: float
    c: float
    category_id: Optional[int] = None


@dataclass
class ItemResponse:
    a: float
    b: float
    c: float
    correct: bool


@dataclass
class StopDecision:
    should_stop: bool
    reason: str
    result: str  # pass | fail | undetermined


def sigmoid_stable(x: float) -> float:
    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


def probability_3pl(theta: float, a: float, b: float, c: float = 0.0) -> float:
    return c + (1.0 - c) * sigmoid_stable(a * (theta - b))


def fisher_information(theta: float, a: float, b: float, c: float = 0.0) -> float:
    p = probability_3pl(theta, a, b, c)
    q = 1.0 - p
    if p <= c or q <= 0:
        return 0.0
    denominator = (1.0 - c) ** 2 * p
    if denominator <= 0:
        return 0.0
    return a * a * (p - c) ** 2 * q / denominator


def _clamp_theta(theta: float) -> float:
    return min(max(theta, THETA_MIN), THETA_MAX)


def estimate_ability_eap(
    responses: Sequence[ItemResponse],
    prior_mean: float = 0.0,
    prior_sd: float = 1.0,
    points: int = 41,
) -> float:
    """Expected a posteriori estimate over a fixed quadrature grid."""
    if not responses:
        return prior_mean

    step = (THETA_MAX - THETA_MIN) / (points - 1)
    grid = [THETA_MIN + i * step for i in range(points)]

    log_posteriors = []
    for theta in grid:
        log_likelihood = 0.0
        for r in responses:
            p = probability_3pl(theta, r.a, r.b, r.c)
            p = min(max(p, 1e-12), 1.0 - 1e-12)
            log_likelihood += math.log(p) if r.correct else math.log(1.0 - p)
        log_prior = -0.5 * ((theta - prior_mean) / prior_sd) ** 2
        log_posteriors.append(log_likelihood + log_prior)

    # shift by the max so long tests don't underflow to zero
    peak = max(log_posteriors)
    weights = [math.exp(lp - peak) for lp in log_posteriors]
    total = sum(weights)
    if total <= 0:
        return prior_mean
    return sum(theta * w for theta, w in zip(grid, weights)) / total


def estimate_ability_mle(
    responses: Sequence[ItemResponse],
    prior_theta: float = 0.0,
    max_iterations: int = 30,
    tolerance: float = 0.001,
) -> float:
    """Newton-Raphson maximum likelihood estimate, bounded to the theta range.

    MLE diverges for perfect or zero scores, so those return a fixed step
    away from the prior instead.
    """
    if not responses:
        return prior_theta

    if all(r.correct for r in responses):
        return min(prior_theta + 1.5, THETA_MAX)
    if not any(r.correct for r in responses):
        return max(prior_theta - 1.5, THETA_MIN)

    theta = prior_theta
    for _ in range(max_iterations):
        numerator = 0.0
        denominator = 0.0
        for r in responses:
            p = probability_3pl(theta, r.a, r.b, r.c)
            q = 1.0 - p
            w = r.a * (p - r.c) / ((1.0 - r.c) * p)
            numerator += w * ((1.0 if r.correct else 0.0) - p)
            denominator += w * w * p * q

        if abs(denominator) < 1e-10:
            break

        delta = numerator / denominator
        theta = _clamp_theta(theta + delta)
        if abs(delta) < tolerance:
            break

    return theta


def standard_error(theta: float, items: Iterable) -> float:
    """1/sqrt(total information); items need ``a``, ``b`` and ``c`` attributes."""
    information = sum(fisher_information(theta, item.a, item.b, item.c) for item in items)
    return 1.0 / math.sqrt(information) if information > 0 else 1.0


def select_next_item(
    theta: float,
    items: Sequence[ItemParameters],
    answered_ids: Iterable[str],
    category_performance: Optional[Dict[str, Dict[str, int]]] = None,
    content_balancing: bool = True,
    top_n: int = 5,
    rng: Optional[random.Random] = None,
) -> Optional[ItemParameters]:
    """Maximum-information selection with content balancing and exposure control.

    ``category_performance`` maps category id (as a string, the way it is
    stored in JSON) to ``{"correct", "total"}``.
    """
    answered = set(answered_ids)
    candidates = [item for item in items if item.id not in answered]
    if not candidates:
        return None

    scored = [(fisher_information(theta, item.a, item.b, item.c), item) for item in candidates]

    if content_balancing and category_performance:
        total_answered = sum(perf.get("total", 0) for perf in category_performance.values())
        if total_answered > 0:
            boosted = []
            for information, item in scored:
                count = category_performance.get(str(item.category_id), {}).get("total", 0)
                boost = max(0.5, 1.5 - (count / total_answered) * 2)
                boosted.append((information * boost, item))
            scored = boosted

    scored.sort(key=lambda pair: pair[0], reverse=True)
    shortlist = scored[: min(top_n, len(scored))]
    return (rng or random).choice(shortlist)[1]


def check_stopping_rules(
    theta: float,
    se: float,
    questions_answered: int,
    min_questions: int,
    max_questions: int,
    time_limit_seconds: int,
    time_spent_seconds: int,
    passing_theta: float = PASSING_THETA,
    se_threshold: float = SE_THRESHOLD,
) -> StopDecision:
    verdict = "pass" if theta >= passing_theta else "fail"

    if questions_answered >= max_questions:
        return StopDecision(True, "maximum_questions", verdict)

    if time_spent_seconds >= time_limit_seconds:
        return StopDecision(True, "time_limit", verdict)

    if questions_answered < min_questions:
        return StopDecision(False, "", "undetermined")

    lower, upper = confidence_interval(theta, se)
    if lower > passing_theta:
        return StopDecision(True, "confidence_pass", "pass")
    if upper < passing_theta:
        return StopDecision(True, "confidence_fail", "fail")

    if se < se_threshold:
        return StopDecision(True, "precision_reached", verdict)

    return StopDecision(False, "", "undetermined")


def normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def passing_probability(theta: float, se: float, passing_theta: float = PASSING_THETA) -> float:
    if se <= 0:
        return 1.0 if theta >= passing_theta else 0.0
    return 1.0 - normal_cdf((passing_theta - theta) / se)


def confidence_interval(theta: float, se: float) -> List[float]:
    return [theta - Z_95 * se, theta + Z_95 * se]


def difficulty_bucket(b: float) -> str:
    if b < -0.5:
        return "easy"
    if b > 0.5:
        return "hard"
    return "medium"
