from datetime import date, timedelta

from conftest import set_user_fields, signup
from models import utc_today
from services.study_planner_service import build_rotation, generate_tasks, study_dates

MONDAY = date(2024, 1, 1)


def test_rotation_repeats_weak_areas():
    rotation = build_rotation(["PHARMACOLOGY", "SAFETY_INFECT"], ["PHYSIO_ADAPT", "PHARMACOLOGY"])
    assert rotation == ["PHARMACOLOGY", "SAFETY_INFECT", "PHYSIO_ADAPT", "PHYSIO_ADAPT", "PHARMACOLOGY"]


def test_study_dates_follow_weekdays():
    dates = study_dates(MONDAY, MONDAY + timedelta(days=13), [0, 2])
    assert [d.weekday() for d in dates] == [0, 2, 0, 2]


def test_study_dates_are_capped():
    dates = study_dates(MONDAY, MONDAY + timedelta(days=364), list(range(7)))
    assert len(dates) == 180


def test_generated_days_split_into_sessions_and_cycle_types():
    tasks = generate_tasks(MONDAY, MONDAY + timedelta(days=2), 100, ["PHARMACOLOGY", "BASIC_CARE"], [],
                           list(range(7)))
    first_day = [t for t in tasks if t["scheduled_date"] == MONDAY]
    assert [t["estimated_minutes"] for t in first_day] == [45, 45, 10]
    assert [t["task_type"] for t in first_day] == ["practice", "flashcards", "review"]
    assert [t["category_code"] for t in first_day] == ["PHARMACOLOGY", "BASIC_CARE", "PHARMACOLOGY"]
    assert tasks[-1]["task_type"] == "cat"
    assert tasks[-1]["scheduled_date"] == MONDAY + timedelta(days=2)


def test_every_seventh_study_day_is_an_assessment():
    tasks = generate_tasks(MONDAY, MONDAY + timedelta(days=20), 45, ["PHARMACOLOGY"], [], list(range(7)))
    cat_days = sorted({t["scheduled_date"] for t in tasks if t["task_type"] == "cat"})
    assert cat_days == [MONDAY + timedelta(days=6), MONDAY + timedelta(days=13), MONDAY + timedelta(days=20)]


def test_create_plan_defaults_and_progress(client):
    headers, _ = signup(client)
    target = utc_today() + timedelta(days=30)
    response = client.post("/api/study-plans", headers=headers, json={
        "name": "Final month",
        "target_date": target.isoformat(),
        "daily_study_minutes": 90,
    })
    assert response.status_code == 201, response.text
    plan = response.json()
    assert len(plan["focus_areas"]) == 8
    assert plan["study_days"] == [0, 1, 2, 3, 4]
    assert plan["progress"]["total_tasks"] > 0

    detail = client.get(f"/api/study-plans/{plan['id']}", headers=headers).json()
    task = detail["tasks"][0]
    updated = client.patch(f"/api/study-plans/{plan['id']}/tasks/{task['id']}", headers=headers, json={
        "status": "completed",
        "actual_minutes": 50,
    })
    assert updated.status_code == 200
    body = updated.json()
    assert body["task"]["status"] == "completed"
    assert body["progress"]["completed_tasks"] == 1
    assert body["progress"]["studied_minutes"] == 50


def test_create_plan_rejects_bad_dates(client):
    headers, _ = signup(client)
    past = client.post("/api/study-plans", headers=headers, json={
        "name": "Too late",
        "target_date": utc_today().isoformat(),
    })
    assert past.status_code == 400

    far = client.post("/api/study-plans", headers=headers, json={
        "name": "Too far",
        "target_date": (utc_today() + timedelta(days=400)).isoformat(),
    })
    assert far.status_code == 400

    short = client.post("/api/study-plans", headers=headers, json={
        "name": "Short days",
        "target_date": (utc_today() + timedelta(days=10)).isoformat(),
        "daily_study_minutes": 5,
    })
    assert short.status_code == 422
    assert short.json()["error"]["code"] == "VALIDATION_ERROR"


def test_custom_focus_areas_need_paid_tier(client):
    headers, user = signup(client)
    payload = {
        "name": "Pharm focus",
        "target_date": (utc_today() + timedelta(days=14)).isoformat(),
        "focus_areas": ["PHARMACOLOGY"],
        "weak_areas": ["PHYSIO_ADAPT"],
    }
    blocked = client.post("/api/study-plans", headers=headers, json=payload)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "USAGE_LIMIT_REACHED"

    set_user_fields(user["id"], subscription_tier="Pro")
    allowed = client.post("/api/study-plans", headers=headers, json=payload)
    assert allowed.status_code == 201
    assert allowed.json()["weak_areas"] == ["PHYSIO_ADAPT"]


def test_plans_are_private_and_archivable(client):
    owner_headers, _ = signup(client)
    other_headers, _ = signup(client, email="other@example.com")
    plan = client.post("/api/study-plans", headers=owner_headers, json={
        "name": "Mine",
        "target_date": (utc_today() + timedelta(days=7)).isoformat(),
    }).json()

    assert client.get(f"/api/study-plans/{plan['id']}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/study-plans/{plan['id']}", headers=owner_headers).status_code == 204
    assert client.get("/api/study-plans", headers=owner_headers).json()["plans"] == []
