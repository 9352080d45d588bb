from conftest import add_questions, signup


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "NCLEX Prep API"
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["services"]["database"]["status"] == "healthy"
    assert health["services"]["cache"]["status"] == "disconnected"


def test_metrics_counts(client):
    signup(client)
    add_questions(3)
    metrics = client.get("/metrics").json()
    assert metrics["api"]["total_users"] == 1
    assert metrics["api"]["total_questions"] == 3


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["message"] == "Resource not found"
    assert "timestamp" in error
