from services import subscription


def test_unknown_and_lowercase_tiers_normalize():
    assert subscription.normalize_tier("pro") == "Pro"
    assert subscription.normalize_tier("PREMIUM") == "Premium"
    assert subscription.normalize_tier("enterprise") == "Free"
    assert subscription.normalize_tier(None) == "Free"


def test_feature_access_by_tier():
    assert not subscription.can_access("Free", "cat_simulations")
    assert subscription.can_access("Pro", "cat_simulations")
    assert not subscription.can_access("Pro", "content_downloads")
    assert subscription.can_access("Premium", "content_downloads")
    assert subscription.can_access("Free", "questions_per_month")


def test_limits():
    assert subscription.get_limit("Free", "questions_per_month") == 50
    assert subscription.get_limit("Pro", "questions_per_month") == -1
    assert subscription.get_limit("Pro", "study_groups") == 5
    assert subscription.get_limit("Free", "unknown_feature") == 0


def test_check_usage_limit():
    assert subscription.check_usage_limit("Free", "flashcard_decks", 2) == {
        "allowed": True, "limit": 3, "remaining": 1,
    }
    assert subscription.check_usage_limit("Free", "flashcard_decks", 3)["allowed"] is False
    assert subscription.check_usage_limit("Premium", "flashcard_decks", 500) == {
        "allowed": True, "limit": -1, "remaining": -1,
    }
    assert subscription.check_usage_limit("Free", "cat_simulations", 0)["allowed"] is False


def test_tier_features_returns_a_copy():
    features = subscription.get_tier_features("Free")
    features["questions_per_month"] = 999
    assert subscription.get_limit("Free", "questions_per_month") == 50
