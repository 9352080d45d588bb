from conftest import set_user_fields, signup


def _group(client, headers, name="Pharm night owls", **extra):
    return client.post("/api/study-groups", headers=headers, json={"name": name, **extra})


def test_create_group_makes_creator_a_member(client):
    headers, user = signup(client)
    created = _group(client, headers, description="<b>Daily</b> med math", category_code="PHARMACOLOGY")
    assert created.status_code == 201
    group = created.json()
    assert group["member_count"] == 1
    assert group["role"] == "creator"
    assert group["description"] == "Daily med math"

    detail = client.get(f"/api/study-groups/{group['id']}", headers=headers).json()
    assert [m["user_id"] for m in detail["members"]] == [user["id"]]

    mine = client.get("/api/study-groups/mine", headers=headers).json()["groups"]
    assert [g["id"] for g in mine] == [group["id"]]


def test_unknown_category_is_rejected(client):
    headers, _ = signup(client)
    assert _group(client, headers, category_code="NOT_A_CATEGORY").status_code == 404


def test_free_tier_counts_joined_groups(client):
    owner, owner_user = signup(client)
    set_user_fields(owner_user["id"], subscription_tier="Premium")
    headers, user = signup(client, email="member@example.com")
    first = _group(client, owner, name="Group one").json()
    second = _group(client, owner, name="Group two").json()
    third = _group(client, owner, name="Group three").json()

    assert client.post(f"/api/study-groups/{first['id']}/join", headers=headers).status_code == 201

    blocked = client.post(f"/api/study-groups/{second['id']}/join", headers=headers)
    assert blocked.status_code == 403
    error = blocked.json()["error"]
    assert error["code"] == "USAGE_LIMIT_REACHED"
    assert error["details"]["feature"] == "study_groups"
    assert error["details"]["limit"] == 1

    create_blocked = _group(client, headers, name="My own group")
    assert create_blocked.status_code == 403
    assert create_blocked.json()["error"]["details"]["feature"] == "study_groups"

    set_user_fields(user["id"], subscription_tier="Pro")
    assert client.post(f"/api/study-groups/{second['id']}/join", headers=headers).status_code == 201
    assert client.post(f"/api/study-groups/{third['id']}/join", headers=headers).status_code == 201
    assert len(client.get("/api/study-groups/mine", headers=headers).json()["groups"]) == 3


def test_pro_tier_stops_at_five_groups(client):
    owner, owner_user = signup(client)
    set_user_fields(owner_user["id"], subscription_tier="Premium")
    groups = [_group(client, owner, name=f"Group {n}").json() for n in range(6)]

    headers, user = signup(client, email="pro@example.com")
    set_user_fields(user["id"], subscription_tier="Pro")
    for group in groups[:5]:
        assert client.post(f"/api/study-groups/{group['id']}/join", headers=headers).status_code == 201

    blocked = client.post(f"/api/study-groups/{groups[5]['id']}/join", headers=headers)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["details"]["limit"] == 5


def test_join_rules(client):
    owner, _ = signup(client)
    group = _group(client, owner, max_members=2).json()
    first, _ = signup(client, email="first@example.com")
    second, _ = signup(client, email="second@example.com")

    assert client.post(f"/api/study-groups/{group['id']}/join", headers=first).status_code == 201
    again = client.post(f"/api/study-groups/{group['id']}/join", headers=first)
    assert again.status_code == 409

    full = client.post(f"/api/study-groups/{group['id']}/join", headers=second)
    assert full.status_code == 409
    assert "full" in full.json()["error"]["message"]

    assert client.post("/api/study-groups/missing/join", headers=second).status_code == 404

    notifications = client.get("/api/notifications", headers=owner).json()["notifications"]
    assert any(n["type"] == "study_group_join" for n in notifications)


def test_leave_frees_a_slot_and_creator_cannot_leave(client):
    owner, _ = signup(client)
    group = _group(client, owner, max_members=2).json()
    member, _ = signup(client, email="member@example.com")
    other, _ = signup(client, email="other@example.com")

    client.post(f"/api/study-groups/{group['id']}/join", headers=member)
    assert client.post(f"/api/study-groups/{group['id']}/leave", headers=member).status_code == 204
    assert client.post(f"/api/study-groups/{group['id']}/leave", headers=member).status_code == 404
    assert client.post(f"/api/study-groups/{group['id']}/join", headers=other).status_code == 201

    creator_leaves = client.post(f"/api/study-groups/{group['id']}/leave", headers=owner)
    assert creator_leaves.status_code == 400

    detail = client.get(f"/api/study-groups/{group['id']}", headers=owner).json()
    assert detail["member_count"] == 2


def test_private_groups_are_hidden_from_non_members(client):
    owner, owner_user = signup(client)
    set_user_fields(owner_user["id"], subscription_tier="Premium")
    outsider, _ = signup(client, email="outsider@example.com")
    private = _group(client, owner, name="Invite only", is_public=False).json()
    public = _group(client, owner, name="Open cardiac review").json()

    listing = client.get("/api/study-groups", headers=outsider).json()
    assert [g["id"] for g in listing["groups"]] == [public["id"]]
    assert listing["total"] == 1

    assert client.get(f"/api/study-groups/{private['id']}", headers=outsider).status_code == 404
    assert client.post(f"/api/study-groups/{private['id']}/join", headers=outsider).status_code == 403
    assert client.get(f"/api/study-groups/{private['id']}", headers=owner).status_code == 200


def test_list_filters_by_search_and_category(client):
    headers, user = signup(client)
    set_user_fields(user["id"], subscription_tier="Premium")
    _group(client, headers, name="Cardiac crew", category_code="PHARMACOLOGY")
    _group(client, headers, name="Delegation drills")

    by_search = client.get("/api/study-groups", headers=headers, params={"search": "cardiac"}).json()
    assert [g["name"] for g in by_search["groups"]] == ["Cardiac crew"]
    assert by_search["groups"][0]["is_member"] is True

    by_category = client.get("/api/study-groups", headers=headers, params={"category": "PHARMACOLOGY"}).json()
    assert by_category["total"] == 1


def test_only_creator_or_admin_deletes(client):
    owner, _ = signup(client)
    member, member_user = signup(client, email="member@example.com")
    group = _group(client, owner).json()
    client.post(f"/api/study-groups/{group['id']}/join", headers=member)

    assert client.delete(f"/api/study-groups/{group['id']}", headers=member).status_code == 403

    set_user_fields(member_user["id"], role="admin")
    assert client.delete(f"/api/study-groups/{group['id']}", headers=member).status_code == 204
    assert client.get(f"/api/study-groups/{group['id']}", headers=owner).status_code == 404
    # deleted groups no longer count against the limit
    assert _group(client, owner, name="Fresh start").status_code == 201


def test_messages_are_for_members_only(client):
    owner, _ = signup(client)
    outsider, _ = signup(client, email="outsider@example.com")
    group = _group(client, owner).json()

    posted = client.post(f"/api/study-groups/{group['id']}/messages", headers=owner,
                         json={"content": "<script>x</script>Quiz at 8pm"})
    assert posted.status_code == 201
    assert "<script>" not in posted.json()["content"]
    assert posted.json()["author_name"] == "Test Nurse"

    messages = client.get(f"/api/study-groups/{group['id']}/messages", headers=owner).json()["messages"]
    assert len(messages) == 1

    assert client.get(f"/api/study-groups/{group['id']}/messages", headers=outsider).status_code == 403
    denied = client.post(f"/api/study-groups/{group['id']}/messages", headers=outsider, json={"content": "hi"})
    assert denied.status_code == 403
