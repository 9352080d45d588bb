from conftest import add_questions, set_user_fields, signup
from models import DailyUsage, Question, utc_today
from services.database_service import get_database_service


def _create_quiz(client, headers, **payload):
    payload.setdefault("question_count", 4)
    return client.post("/api/quizzes", headers=headers, json=payload)


def test_categories_are_public(client):
    response = client.get("/api/categories")
    assert response.status_code == 200
    codes = [c["code"] for c in response.json()["categories"]]
    assert len(codes) == 8
    assert "PHARMACOLOGY" in codes


def test_question_browsing_hides_answer_keys(client):
    headers, _ = signup(client)
    add_questions(3)
    add_questions(2, category_code="BASIC_CARE", difficulty="hard")

    listing = client.get("/api/questions", headers=headers, params={"category": "BASIC_CARE"}).json()
    assert listing["total"] == 2
    question = listing["questions"][0]
    assert question["category_code"] == "BASIC_CARE"
    assert "correct_answers" not in question

    detail = client.get(f"/api/questions/{question['id']}", headers=headers).json()
    assert "correct_answers" not in detail
    assert "explanation" not in detail

    assert client.get("/api/questions/missing", headers=headers).status_code == 404
    assert client.get("/api/questions", headers=headers, params={"difficulty": "brutal"}).status_code == 400


def test_quiz_flow(client):
    headers, _ = signup(client)
    add_questions(6)

    quiz = _create_quiz(client, headers).json()
    assert quiz["status"] == "in_progress"
    assert len(quiz["questions"]) == 4
    assert all("correct_answers" not in q for q in quiz["questions"])

    questions = quiz["questions"]
    for index, question in enumerate(questions):
        answer = "B" if index < 3 else "A"
        response = client.post(f"/api/quizzes/{quiz['id']}/answers", headers=headers, json={
            "question_id": question["id"],
            "user_answer": answer,
            "time_spent_seconds": 30,
        })
        assert response.status_code == 200
        assert response.json()["is_correct"] == (answer == "B")

    in_progress = client.get(f"/api/quizzes/{quiz['id']}", headers=headers).json()
    assert all("correct_answers" not in q for q in in_progress["questions"])

    result = client.post(f"/api/quizzes/{quiz['id']}/complete", headers=headers, json={}).json()
    assert result["score"] == 75
    assert result["passed"] is True
    assert result["correct_answers"] == 3
    assert result["category_breakdown"]["PHARMACOLOGY"] == {"name": "Pharmacological Therapies", "correct": 3, "total": 4}
    assert result["total_time_seconds"] == 120
    assert result["xp_awarded"] > 0

    completed = client.get(f"/api/quizzes/{quiz['id']}", headers=headers).json()
    assert completed["status"] == "completed"
    assert all(q["correct_answers"] == ["B"] for q in completed["questions"])
    assert all("is_correct" in r for r in completed["responses"])

    again = client.post(f"/api/quizzes/{quiz['id']}/answers", headers=headers, json={
        "question_id": questions[0]["id"], "user_answer": "B",
    })
    assert again.status_code == 404

    listing = client.get("/api/quizzes", headers=headers).json()
    assert listing["total"] == 1


def test_reanswering_does_not_count_twice(client):
    headers, _ = signup(client)
    add_questions(2)
    quiz = _create_quiz(client, headers, question_count=1).json()
    question_id = quiz["questions"][0]["id"]

    for answer in ("A", "B"):
        client.post(f"/api/quizzes/{quiz['id']}/answers", headers=headers, json={
            "question_id": question_id, "user_answer": answer,
        })

    with get_database_service().session_scope() as session:
        question = session.get(Question, question_id)
        assert question.times_used == 1
        assert question.times_correct == 0
        assert sum(row.questions_attempted for row in session.query(DailyUsage).all()) == 1

    result = client.post(f"/api/quizzes/{quiz['id']}/complete", headers=headers).json()
    assert result["score"] == 100


def test_answer_must_belong_to_quiz(client):
    headers, _ = signup(client)
    add_questions(3)
    quiz = _create_quiz(client, headers, question_count=1).json()
    other = [q for q in client.get("/api/questions", headers=headers).json()["questions"]
             if q["id"] != quiz["questions"][0]["id"]][0]

    response = client.post(f"/api/quizzes/{quiz['id']}/answers", headers=headers, json={
        "question_id": other["id"], "user_answer": "B",
    })
    assert response.status_code == 400


def test_quizzes_are_private(client):
    owner, _ = signup(client)
    intruder, _ = signup(client, email="intruder@example.com")
    add_questions(2)
    quiz = _create_quiz(client, owner, question_count=1).json()

    assert client.get(f"/api/quizzes/{quiz['id']}", headers=intruder).status_code == 404
    response = client.post(f"/api/quizzes/{quiz['id']}/answers", headers=intruder, json={
        "question_id": quiz["questions"][0]["id"], "user_answer": "B",
    })
    assert response.status_code == 404


def test_no_matching_questions(client):
    headers, _ = signup(client)
    add_questions(2)
    response = _create_quiz(client, headers, category_codes=["PSYCHOSOCIAL"])
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BAD_REQUEST"


def test_question_count_is_validated(client):
    headers, _ = signup(client)
    assert _create_quiz(client, headers, question_count=0).status_code == 422
    assert _create_quiz(client, headers, question_count=101).status_code == 422


def test_monthly_question_quota(client):
    headers, user = signup(client)
    add_questions(3)
    quiz = _create_quiz(client, headers, question_count=3).json()

    with get_database_service().session_scope() as session:
        session.add(DailyUsage(user_id=user["id"], usage_date=utc_today(), questions_attempted=50,
                               ai_chat_messages=0, flashcards_reviewed=0, cat_sessions=0))

    blocked = client.post(f"/api/quizzes/{quiz['id']}/answers", headers=headers, json={
        "question_id": quiz["questions"][0]["id"], "user_answer": "B",
    })
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "USAGE_LIMIT_REACHED"
    assert blocked.json()["error"]["details"]["feature"] == "questions_attempted"

    new_quiz = _create_quiz(client, headers)
    assert new_quiz.status_code == 403

    set_user_fields(user["id"], subscription_tier="Pro")
    assert _create_quiz(client, headers).status_code == 201
