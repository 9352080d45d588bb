import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["CAT_ESTIMATOR"] = "eap"
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("GOOGLE_API_KEY", None)
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from main import app
from models import User
from services.database_service import get_database_service
from services.question_repository import get_question_repository
from services.reference_data import seed_reference_data


@pytest.fixture
def client():
    db_service = get_database_service()
    db_service.reset_schema()
    seed_reference_data()
    with TestClient(app) as test_client:
        yield test_client


def signup(client, email="nurse@example.com", password="password123", full_name="Test Nurse"):
    response = client.post("/api/auth/signup", json={
        "email": email,
        "password": password,
        "full_name": full_name,
    })
    assert response.status_code == 201, response.text
    body = response.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]


def set_user_fields(user_id, **fields):
    with get_database_service().session_scope() as session:
        user = session.get(User, user_id)
        for name, value in fields.items():
            setattr(user, name, value)


def add_questions(count=10, category_code="PHARMACOLOGY", difficulty="medium", **overrides):
    items = []
    for i in range(count):
        item = {
            "category_code": category_code,
            "question_text": f"Which action should the nurse take first? ({category_code} #{i})",
            "question_type": "multiple_choice",
            "options": ["A", "B", "C", "D"],
            "correct_answers": ["B"],
            "explanation": "Assess before intervening.",
            "difficulty": difficulty,
        }
        item.update(overrides)
        items.append(item)
    return get_question_repository().import_questions(items)
