from .routes import (
    account,
    auth,
    cat,
    discussions,
    flashcards,
    gamification,
    notifications,
    progress,
    questions,
    quizzes,
    study_groups,
    study_plans,
    tutor,
)

routers = [
    auth.router,
    account.router,
    questions.router,
    quizzes.router,
    cat.router,
    flashcards.router,
    discussions.router,
    study_plans.router,
    study_groups.router,
    gamification.router,
    notifications.router,
    progress.router,
    tutor.router,
]

__all__ = ["routers"]
