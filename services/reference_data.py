import logging
from typing import Optional

from sqlalchemy.orm import Session

from models import Achievement, Category, DiscussionCategory
from services.cache_service import get_cache_service
from services.database_service import get_database_service

logger = logging.getLogger(__name__)

# NCLEX client-need categories, in exam blueprint order
NCLEX_CATEGORIES = [
    ("MGMT_CARE", "Management of Care", "Providing integrated, cost-effective care"),
    ("SAFETY_INFECT", "Safety and Infection Control", "Protecting clients and healthcare personnel"),
    ("HEALTH_PROMO", "Health Promotion and Maintenance", "Health promotion and disease prevention"),
    ("PSYCHOSOCIAL", "Psychosocial Integrity", "Emotional, mental, and social well-being"),
    ("BASIC_CARE", "Basic Care and Comfort", "Activities of daily living"),
    ("PHARMACOLOGY", "Pharmacological Therapies", "Medication administration"),
    ("RISK_REDUCTION", "Reduction of Risk Potential", "Reducing complications"),
    ("PHYSIO_ADAPT", "Physiological Adaptation", "Acute, chronic, or life-threatening conditions"),
]

CATEGORY_CODES = [code for code, _, _ in NCLEX_CATEGORIES]

DISCUSSION_CATEGORIES = [
    ("General Discussion", "general"),
    ("Study Tips", "study-tips"),
    ("Question Help", "question-help"),
    ("Test Day Tips", "test-day"),
    ("Success Stories", "success-stories"),
]

# code, name, description, type, threshold, xp reward
DEFAULT_ACHIEVEMENTS = [
    ("first_quiz", "First Steps", "Complete your first quiz", "quizzes_completed", 1, 10),
    ("quiz_regular", "Quiz Regular", "Complete 25 quizzes", "quizzes_completed", 25, 100),
    ("streak_3", "On Fire", "Maintain a 3-day study streak", "streak_days", 3, 50),
    ("streak_7", "Week Warrior", "Maintain a 7-day study streak", "streak_days", 7, 100),
    ("streak_30", "Unstoppable", "Maintain a 30-day study streak", "streak_days", 30, 300),
    ("first_cat", "Adaptive Explorer", "Finish a CAT simulation", "cat_completed", 1, 25),
    ("cat_passed", "CAT Conqueror", "Pass a CAT simulation", "cat_passed", 1, 75),
    ("flashcards_100", "Card Shark", "Review 100 flashcards", "flashcards_reviewed", 100, 50),
    ("first_post", "Community Voice", "Start your first discussion", "discussion_posts", 1, 15),
    ("level_5", "Rising Star", "Reach level 5", "level_reached", 5, 100),
    ("xp_5000", "Dedicated Learner", "Earn 5000 XP", "xp_total", 5000, 200),
]


def _seed(session: Session) -> int:
    created = 0

    existing = {code for (code,) in session.query(Category.code).all()}
    for order, (code, name, description) in enumerate(NCLEX_CATEGORIES, start=1):
        if code not in existing:
            session.add(Category(code=code, name=name, description=description, display_order=order))
            created += 1

    existing = {slug for (slug,) in session.query(DiscussionCategory.slug).all()}
    for order, (name, slug) in enumerate(DISCUSSION_CATEGORIES, start=1):
        if slug not in existing:
            session.add(DiscussionCategory(
                name=name, slug=slug, description=f"{name} forum category", display_order=order,
            ))
            created += 1

    existing = {code for (code,) in session.query(Achievement.code).all()}
    for code, name, description, achievement_type, threshold, xp_reward in DEFAULT_ACHIEVEMENTS:
        if code not in existing:
            session.add(Achievement(
                code=code,
                name=name,
                description=description,
                achievement_type=achievement_type,
                threshold_value=threshold,
                xp_reward=xp_reward,
            ))
            created += 1

    return created


def seed_reference_data(session: Optional[Session] = None) -> int:
    """Insert categories, forum categories and achievements that are missing.

    Safe to run repeatedly; returns the number of rows created.
    """
    if session is not None:
        return _seed(session)

    with get_database_service().session_scope() as own_session:
        created = _seed(own_session)
    if created:
        get_cache_service().invalidate("categories")
        logger.info(f"Seeded {created} reference rows")
    return created
