from conftest import add_questions, set_user_fields, signup
from models import Notification
from services.database_service import get_database_service
from services.notification_service import get_notification_service


def _notify(user_id, count):
    service = get_notification_service()
    with get_database_service().session_scope() as session:
        for n in range(count):
            service.notify(session, user_id, "system", f"Notice {n}", "Body")


def test_list_and_mark_notifications(client):
    headers, user = signup(client)
    _notify(user["id"], 3)

    listing = client.get("/api/notifications", headers=headers).json()
    assert listing["unread_count"] == 3
    assert len(listing["notifications"]) == 3

    target = listing["notifications"][0]["id"]
    marked = client.post(f"/api/notifications/{target}/read", headers=headers)
    assert marked.status_code == 200
    assert marked.json()["is_read"] is True

    unread = client.get("/api/notifications", headers=headers, params={"unread_only": True}).json()
    assert unread["unread_count"] == 2
    assert target not in [n["id"] for n in unread["notifications"]]

    assert client.post("/api/notifications/read-all", headers=headers).json() == {"updated": 2}
    assert client.get("/api/notifications", headers=headers).json()["unread_count"] == 0


def test_notifications_are_private(client):
    _, owner = signup(client)
    intruder, _ = signup(client, email="intruder@example.com")
    _notify(owner["id"], 1)

    assert client.get("/api/notifications", headers=intruder).json()["notifications"] == []
    with get_database_service().session_scope() as session:
        notification_id = session.query(Notification.id).filter(Notification.user_id == owner["id"]).scalar()
    assert client.post(f"/api/notifications/{notification_id}/read", headers=intruder).status_code == 404


def _complete_quiz(client, headers, answers):
    quiz = client.post("/api/quizzes", headers=headers, json={"question_count": len(answers)}).json()
    for question, answer in zip(quiz["questions"], answers):
        client.post(f"/api/quizzes/{quiz['id']}/answers", headers=headers, json={
            "question_id": question["id"], "user_answer": answer,
        })
    return client.post(f"/api/quizzes/{quiz['id']}/complete", headers=headers).json()


def test_progress_for_free_tier_hides_breakdown(client):
    headers, _ = signup(client)
    add_questions(4)
    _complete_quiz(client, headers, ["B", "B", "A", "A"])

    progress = client.get("/api/progress", headers=headers).json()
    assert progress["quizzes_completed"] == 1
    assert progress["average_quiz_score"] == 50
    assert progress["questions_answered"] == 4
    assert progress["accuracy"] == 50
    assert progress["upgrade_required"] is True
    assert "category_breakdown" not in progress
    assert progress["recent_activity"][0]["activity_type"] == "quiz_completed"


def test_progress_for_paid_tier_includes_breakdown(client):
    headers, user = signup(client)
    set_user_fields(user["id"], subscription_tier="Pro")
    add_questions(2)
    add_questions(2, category_code="BASIC_CARE")
    _complete_quiz(client, headers, ["B", "B", "B", "B"])

    progress = client.get("/api/progress", headers=headers).json()
    assert progress["upgrade_required"] is False
    breakdown = {row["category_code"]: row for row in progress["category_breakdown"]}
    assert set(breakdown) == {"PHARMACOLOGY", "BASIC_CARE"}
    assert breakdown["BASIC_CARE"]["accuracy"] == 100
    assert progress["latest_ability"] is None
