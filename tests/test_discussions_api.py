from conftest import set_user_fields, signup


def _category_id(client):
    categories = client.get("/api/discussions/categories").json()["categories"]
    return categories[0]["id"]


def _post(client, headers, title="Best way to study pharm?", content="<b>Any</b> tips welcome", **extra):
    return client.post("/api/discussions", headers=headers, json={
        "category_id": _category_id(client), "title": title, "content": content, **extra,
    })


def test_categories_are_public(client):
    response = client.get("/api/discussions/categories")
    assert response.status_code == 200
    assert len(response.json()["categories"]) > 0


def test_create_post_sanitizes_and_counts(client):
    headers, user = signup(client)
    response = _post(client, headers)
    assert response.status_code == 201
    post = response.json()
    assert post["content"] == "Any tips welcome"
    assert post["slug"].startswith("best-way-to-study-pharm-")
    assert post["author_name"] == "Test Nurse"

    categories = client.get("/api/discussions/categories").json()["categories"]
    assert categories[0]["post_count"] == 1

    summary = client.get("/api/gamification", headers=headers).json()
    assert summary["xp_total"] >= 15


def test_post_validation(client):
    headers, _ = signup(client)
    assert _post(client, headers, title="Hi").status_code == 422
    assert _post(client, headers, post_type="rant").status_code == 422
    assert _post(client, headers, content="<p></p>").status_code == 400

    missing = client.post("/api/discussions", headers=headers, json={
        "category_id": 9999, "title": "Valid title", "content": "Body",
    })
    assert missing.status_code == 404


def test_listing_search_and_sort(client):
    headers, _ = signup(client)
    _post(client, headers, title="Lab values cheat sheet", content="Potassium and sodium")
    _post(client, headers, title="Delegation question", content="Who can the UAP help?")

    everything = client.get("/api/discussions").json()
    assert everything["total"] == 2

    found = client.get("/api/discussions", params={"search": "POTASSIUM"}).json()
    assert found["total"] == 1
    assert found["posts"][0]["title"] == "Lab values cheat sheet"

    assert client.get("/api/discussions", params={"sort": "oldest"}).status_code == 400
    assert client.get("/api/discussions", params={"sort": "popular"}).status_code == 200


def test_view_comment_and_notify_author(client):
    author, author_user = signup(client)
    replier, _ = signup(client, email="replier@example.com", full_name="Helpful Nurse")
    post = _post(client, author).json()

    viewed = client.get(f"/api/discussions/{post['slug']}").json()
    assert viewed["view_count"] == 1
    assert client.get(f"/api/discussions/{post['slug']}").json()["view_count"] == 2

    comment = client.post(f"/api/discussions/{post['slug']}/comments", headers=replier, json={
        "content": "Use <i>mnemonics</i>",
    })
    assert comment.status_code == 201
    assert comment.json()["content"] == "Use mnemonics"

    detail = client.get(f"/api/discussions/{post['slug']}").json()
    assert detail["comment_count"] == 1
    assert detail["comments"][0]["author_name"] == "Helpful Nurse"

    notifications = client.get("/api/notifications", headers=author).json()
    replies = [n for n in notifications["notifications"] if n["type"] == "discussion_reply"]
    assert len(replies) == 1
    assert "Helpful Nurse" in replies[0]["message"]

    bad_parent = client.post(f"/api/discussions/{post['slug']}/comments", headers=replier, json={
        "content": "Nested", "parent_id": "missing",
    })
    assert bad_parent.status_code == 404


def test_like_toggles(client):
    headers, _ = signup(client)
    post = _post(client, headers).json()

    liked = client.post(f"/api/discussions/{post['slug']}/like", headers=headers).json()
    assert liked == {"liked": True, "like_count": 1}
    unliked = client.post(f"/api/discussions/{post['slug']}/like", headers=headers).json()
    assert unliked == {"liked": False, "like_count": 0}


def test_delete_permissions(client):
    author, _ = signup(client)
    other, other_user = signup(client, email="other@example.com")
    post = _post(client, author).json()
    comment = client.post(f"/api/discussions/{post['slug']}/comments", headers=author,
                          json={"content": "Self reply"}).json()

    assert client.delete(f"/api/discussions/comments/{comment['id']}", headers=other).status_code == 403
    assert client.delete(f"/api/discussions/{post['slug']}", headers=other).status_code == 403

    assert client.delete(f"/api/discussions/comments/{comment['id']}", headers=author).status_code == 204
    detail = client.get(f"/api/discussions/{post['slug']}").json()
    assert detail["comments"] == []
    assert detail["comment_count"] == 0

    set_user_fields(other_user["id"], role="admin")
    assert client.delete(f"/api/discussions/{post['slug']}", headers=other).status_code == 204
    assert client.get(f"/api/discussions/{post['slug']}").status_code == 404
    assert client.get("/api/discussions").json()["total"] == 0
