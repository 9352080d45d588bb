from conftest import set_user_fields, signup


def _deck(client, headers, title="Cardiac meds", **extra):
    return client.post("/api/flashcards/decks", headers=headers, json={"title": title, **extra})


def _card(client, headers, deck_id, front="Digoxin toxicity sign?", back="Visual halos"):
    return client.post(f"/api/flashcards/decks/{deck_id}/cards", headers=headers,
                       json={"front": front, "back": back})


def test_free_tier_deck_limit(client):
    headers, user = signup(client)
    for n in range(3):
        assert _deck(client, headers, title=f"Deck {n}").status_code == 201

    blocked = _deck(client, headers, title="Deck 4")
    assert blocked.status_code == 403
    assert blocked.json()["error"]["details"]["feature"] == "flashcard_decks"

    set_user_fields(user["id"], subscription_tier="Pro")
    assert _deck(client, headers, title="Deck 4").status_code == 201
    assert len(client.get("/api/flashcards/decks", headers=headers).json()["decks"]) == 4


def test_unknown_category_is_rejected(client):
    headers, _ = signup(client)
    assert _deck(client, headers, category_code="NOT_A_CATEGORY").status_code == 404
    ok = _deck(client, headers, category_code="PHARMACOLOGY")
    assert ok.status_code == 201
    assert ok.json()["category_id"] is not None


def test_only_owner_adds_cards_to_public_deck(client):
    owner, _ = signup(client)
    reader, _ = signup(client, email="reader@example.com")
    deck = _deck(client, owner, is_public=True).json()

    assert _card(client, owner, deck["id"]).status_code == 201
    assert _card(client, reader, deck["id"]).status_code == 403

    shared = client.get(f"/api/flashcards/decks/{deck['id']}", headers=reader).json()
    assert shared["is_owner"] is False
    assert shared["card_count"] == 1


def test_private_decks_are_hidden(client):
    owner, _ = signup(client)
    other, _ = signup(client, email="other@example.com")
    deck = _deck(client, owner).json()

    assert client.get(f"/api/flashcards/decks/{deck['id']}", headers=other).status_code == 404
    assert client.get("/api/flashcards/decks", headers=other).json()["decks"] == []


def test_review_schedules_card_and_awards_xp(client):
    headers, _ = signup(client)
    deck = _deck(client, headers).json()
    first = _card(client, headers, deck["id"]).json()
    _card(client, headers, deck["id"], front="Normal potassium?", back="3.5-5.0 mEq/L")

    due = client.get(f"/api/flashcards/decks/{deck['id']}/review", headers=headers).json()
    assert due["total_cards"] == 2
    assert due["due_cards"] == 2

    review = client.post(f"/api/flashcards/decks/{deck['id']}/review", headers=headers, json={
        "flashcard_id": first["id"], "quality": 4,
    })
    assert review.status_code == 200
    body = review.json()
    assert body["interval_days"] == 1
    assert body["repetitions"] == 1
    assert body["ease_factor"] == 2.5
    assert body["mastery_level"] == "reviewing"
    assert body["xp_awarded"] == 5

    due = client.get(f"/api/flashcards/decks/{deck['id']}/review", headers=headers).json()
    assert due["due_cards"] == 1
    assert due["cards"][0]["id"] != first["id"]

    stats = client.get(f"/api/flashcards/decks/{deck['id']}", headers=headers).json()["stats"]
    assert stats == {"total": 2, "new": 1, "learning": 1, "mature": 0, "due": 1}


def test_review_validation(client):
    headers, _ = signup(client)
    deck = _deck(client, headers).json()
    card = _card(client, headers, deck["id"]).json()
    other_deck = _deck(client, headers, title="Other").json()

    bad_quality = client.post(f"/api/flashcards/decks/{deck['id']}/review", headers=headers, json={
        "flashcard_id": card["id"], "quality": 6,
    })
    assert bad_quality.status_code == 422

    wrong_deck = client.post(f"/api/flashcards/decks/{other_deck['id']}/review", headers=headers, json={
        "flashcard_id": card["id"], "quality": 3,
    })
    assert wrong_deck.status_code == 404
