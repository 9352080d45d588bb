"""
Feature access per subscription tier.

Numeric limits use -1 for unlimited and 0 for no access. Boolean features
read as -1/0 through ``get_limit`` so callers can treat every feature alike.
"""

from typing import Any, Dict

TIER_FREE = "Free"
TIER_PRO = "Pro"
TIER_PREMIUM = "Premium"

TIER_FEATURES: Dict[str, Dict[str, Any]] = {
    TIER_FREE: {
        "questions_per_month": 50,
        "cat_simulations": 0,
        "ai_tutor_messages": 10,
        "flashcard_decks": 3,
        "study_groups": 1,
        "advanced_analytics": False,
        "custom_study_plans": False,
        "content_downloads": False,
    },
    TIER_PRO: {
        "questions_per_month": -1,
        "cat_simulations": -1,
        "ai_tutor_messages": -1,
        "flashcard_decks": -1,
        "study_groups": 5,
        "advanced_analytics": True,
        "custom_study_plans": True,
        "content_downloads": False,
    },
    TIER_PREMIUM: {
        "questions_per_month": -1,
        "cat_simulations": -1,
        "ai_tutor_messages": -1,
        "flashcard_decks": -1,
        "study_groups": -1,
        "advanced_analytics": True,
        "custom_study_plans": True,
        "content_downloads": True,
    },
}


def normalize_tier(tier: str) -> str:
    """Capitalize a tier name; anything unknown falls back to Free."""
    if not tier:
        return TIER_FREE
    normalized = tier[:1].upper() + tier[1:].lower()
    return normalized if normalized in TIER_FEATURES else TIER_FREE


def get_tier_features(tier: str) -> Dict[str, Any]:
    return dict(TIER_FEATURES[normalize_tier(tier)])


def can_access(tier: str, feature: str) -> bool:
    value = TIER_FEATURES[normalize_tier(tier)].get(feature)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    return False


def get_limit(tier: str, feature: str) -> int:
    value = TIER_FEATURES[normalize_tier(tier)].get(feature)
    if isinstance(value, bool):
        return -1 if value else 0
    if isinstance(value, int):
        return value
    return 0


def check_usage_limit(tier: str, feature: str, current_usage: int) -> Dict[str, Any]:
    """Compare current usage against the tier limit for feature."""
    limit = get_limit(tier, feature)

    if limit == -1:
        return {"allowed": True, "limit": -1, "remaining": -1}

    if limit == 0:
        return {"allowed": False, "limit": 0, "remaining": 0}

    return {
        "allowed": current_usage < limit,
        "limit": limit,
        "remaining": max(0, limit - current_usage),
    }
