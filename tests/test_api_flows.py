from __future__ import annotations


def test_guest_session_and_profile(api_client) -> None:
    start = api_client.post("/api/auth/guest", json={"display_name": "Nia"})
    assert start.status_code == 200
    token = start.json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}

    me = api_client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["display_name"] == "Nia"

    profile = api_client.get("/api/profile", headers=headers)
    assert profile.status_code == 200
    body = profile.json()
    assert body["level"] == 1
    assert body["xp_to_next"] == 100
    assert body["hp"] == 100
    assert body["rank"] == "Iron"
    assert body["degraded"] is False


def test_requests_without_token_are_rejected(api_client) -> None:
    assert api_client.get("/api/profile").status_code == 401
    bad = api_client.get("/api/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401


def test_task_completion_then_duplicate(api_client, auth_headers) -> None:
    headers = auth_headers("u_api_tasks")

    created = api_client.post("/api/tasks", headers=headers, json={"title": "Stretch", "difficulty": "easy"})
    assert created.status_code == 200
    task_id = created.json()["id"]
    assert created.json()["xp_reward"] == 10

    done = api_client.post(f"/api/tasks/{task_id}/complete", headers=headers)
    assert done.status_code == 200
    out = done.json()
    assert out["accepted"] is True
    assert out["reward"]["xp_reward"] == 10
    assert out["progress"]["total_xp"] == 10
    assert out["progress"]["streak"] == 1

    dup = api_client.post(f"/api/tasks/{task_id}/complete", headers=headers)
    assert dup.status_code == 409
    assert dup.json()["detail"] == "already_completed"
    assert dup.json()["error"]["code"] == "already_completed"

    listing = api_client.get("/api/tasks", headers=headers).json()
    assert [(t["id"], t["completed_in_window"]) for t in listing] == [(task_id, True)]

    invalid = api_client.post("/api/tasks", headers=headers, json={"title": "x", "difficulty": "epic"})
    assert invalid.status_code == 422

    missing = api_client.post("/api/tasks/task_missing/complete", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "task_not_found"


def test_daily_challenges_over_http(api_client, auth_headers, session_factory) -> None:
    from peakhabit_api.completions import seed_daily_challenges

    with session_factory() as session:
        seed_daily_challenges(session)
        session.commit()

    headers = auth_headers("u_api_daily")
    listing = api_client.get("/api/daily", headers=headers)
    assert listing.status_code == 200
    challenges = listing.json()["challenges"]
    assert len(challenges) == 7
    assert all(c["completed_today"] is False for c in challenges)

    done = api_client.post("/api/daily/daily_01/complete", headers=headers)
    assert done.status_code == 200
    assert done.json()["xp_reward"] == 50
    assert done.json()["gold_reward"] == 25

    assert api_client.post("/api/daily/daily_01/complete", headers=headers).status_code == 409
    unknown = api_client.post("/api/daily/daily_99/complete", headers=headers)
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "daily_task_not_found"

    after = {c["id"]: c["completed_today"] for c in api_client.get("/api/daily", headers=headers).json()["challenges"]}
    assert after["daily_01"] is True


def test_guild_raid_flow_over_http(api_client, auth_headers) -> None:
    lead = auth_headers("u_api_lead")
    member = auth_headers("u_api_member")
    outsider = auth_headers("u_api_outsider")

    created = api_client.post("/api/guilds", headers=lead, json={"name": "Night Owls"})
    assert created.status_code == 200
    guild = created.json()
    assert guild["member_count"] == 1

    joined = api_client.post("/api/guilds/join-by-code", headers=member, json={"invite_code": guild["invite_code"]})
    assert joined.status_code == 200
    assert joined.json()["member_count"] == 2

    raid = api_client.post(
        f"/api/guilds/{guild['id']}/raids",
        headers=lead,
        json={"title": "Clean the garage", "difficulty": "easy"},
    )
    assert raid.status_code == 200
    raid_id = raid.json()["id"]
    assert raid.json()["xp_reward"] == 300
    assert raid.json()["status"] == "active"

    denied = api_client.post(f"/api/raids/{raid_id}/participate", headers=outsider)
    assert denied.status_code == 403
    assert denied.json()["detail"] == "not_authorized"

    first = api_client.post(f"/api/raids/{raid_id}/participate", headers=member).json()
    assert first["completed"] is False
    assert (first["participants"], first["members"]) == (1, 2)

    last = api_client.post(f"/api/raids/{raid_id}/participate", headers=lead).json()
    assert last["completed"] is True
    assert last["rewarded_members"] == 2

    raids = api_client.get(f"/api/guilds/{guild['id']}/raids", headers=member).json()
    assert raids[0]["status"] == "completed"
    assert raids[0]["participated"] is True

    profile = api_client.get("/api/profile", headers=member).json()
    assert profile["total_xp"] == 300
    assert profile["level"] == 3

    assert api_client.get("/api/guilds/me", headers=outsider).json()["guild"] is None
    left = api_client.post("/api/guilds/leave", headers=lead)
    assert left.json()["dissolved"] is True
    assert api_client.get("/api/guilds/me", headers=member).json()["guild"] is None


def test_task_edit_and_progress_stats(api_client, auth_headers) -> None:
    headers = auth_headers("u_api_stats")

    empty = api_client.get("/api/profile/stats", headers=headers)
    assert empty.status_code == 200
    assert empty.json() == {"total_completions": 0, "easy": 0, "medium": 0, "hard": 0, "streak": 0}

    task_id = api_client.post("/api/tasks", headers=headers, json={"title": "Read", "difficulty": "easy"}).json()["id"]
    edited = api_client.patch(
        f"/api/tasks/{task_id}", headers=headers, json={"title": "Read 20 pages", "difficulty": "hard"}
    )
    assert edited.status_code == 200
    assert edited.json()["title"] == "Read 20 pages"
    assert (edited.json()["xp_reward"], edited.json()["xp_penalty"]) == (50, 25)
    assert edited.json()["repeat_type"] == "daily"

    bad = api_client.patch(f"/api/tasks/{task_id}", headers=headers, json={"difficulty": "epic"})
    assert bad.status_code == 422
    other = api_client.patch(f"/api/tasks/{task_id}", headers=auth_headers("u_api_other"), json={"title": "Mine"})
    assert other.status_code == 404

    done = api_client.post(f"/api/tasks/{task_id}/complete", headers=headers).json()
    assert done["reward"]["xp_reward"] == 50

    stats = api_client.get("/api/profile/stats", headers=headers).json()
    assert stats == {"total_completions": 1, "easy": 0, "medium": 0, "hard": 1, "streak": 1}


def test_guild_browsing_hides_invite_codes_from_outsiders(api_client, auth_headers) -> None:
    lead = auth_headers("u_api_browse_lead")
    outsider = auth_headers("u_api_browse_out")

    guild = api_client.post("/api/guilds", headers=lead, json={"name": "Early Birds"}).json()

    listing = api_client.get("/api/guilds", headers=outsider)
    assert listing.status_code == 200
    assert [(g["id"], g["invite_code"]) for g in listing.json()] == [(guild["id"], None)]

    mine = api_client.get(f"/api/guilds/{guild['id']}", headers=lead).json()
    assert mine["invite_code"] == guild["invite_code"]
    assert mine["member_count"] == 1

    missing = api_client.get("/api/guilds/guild_missing", headers=outsider)
    assert missing.status_code == 404


def test_request_id_and_metrics(api_client) -> None:
    resp = api_client.get("/api/health", headers={"X-Request-Id": "req_test_123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-Id"] == "req_test_123"
    assert resp.json()["day_boundary_utc_offset_hours"] == -3

    generated = api_client.get("/api/health")
    assert generated.headers["X-Request-Id"].startswith("req_")

    metrics = api_client.get("/api/metrics")
    assert metrics.status_code == 200
    text = metrics.text
    assert 'peakhabit_http_requests_total{path="/api/health",method="GET",status="200"} 2' in text
    assert "# TYPE peakhabit_http_request_duration_seconds histogram" in text
    assert "# TYPE peakhabit_completions_total counter" in text

    ready = api_client.get("/api/ready").json()
    assert ready["status"] == "ok"
