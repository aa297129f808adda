"""
tests/test_users.py
Tests for profile, saved guidance, followed topics and notification settings.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import SavedGuidance, User
from tests.conftest import auth_headers, make_situation


@pytest.mark.asyncio
async def test_get_my_profile(client: AsyncClient, user: User):
    response = await client.get("/users/me", headers=auth_headers(user))
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "grace@example.com"
    assert data["name"] == "Grace"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/users/me"),
        ("GET", "/users/me/saved"),
        ("POST", "/users/me/saved/1"),
        ("GET", "/users/me/topics"),
        ("GET", "/users/me/settings"),
    ],
)
async def test_user_routes_require_auth(client: AsyncClient, method, path):
    response = await client.request(method, path)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    response = await client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


# ── Saved Guidance ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_save_is_idempotent(client: AsyncClient, db: AsyncSession, user: User):
    situation = await make_situation(db, "Struggling to forgive my father")
    headers = auth_headers(user)

    for _ in range(2):
        response = await client.post(f"/users/me/saved/{situation.id}", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"saved": True}

    count = await db.scalar(
        select(func.count(SavedGuidance.id)).where(SavedGuidance.user_id == user.id)
    )
    assert count == 1

    status = await client.get(f"/users/me/saved/{situation.id}", headers=headers)
    assert status.json() == {"saved": True}


@pytest.mark.asyncio
async def test_save_unknown_situation_returns_404(client: AsyncClient, user: User):
    response = await client.post("/users/me/saved/999", headers=auth_headers(user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unsave_never_saved_is_ok(client: AsyncClient, db: AsyncSession, user: User):
    situation = await make_situation(db, "Jealous of my friend's success")

    response = await client.delete(f"/users/me/saved/{situation.id}", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json() == {"saved": False}


@pytest.mark.asyncio
async def test_list_saved_newest_save_first(
    client: AsyncClient, db: AsyncSession, user: User, other_user: User
):
    first = await make_situation(db, "Lonely after moving cities", stars=[4])
    second = await make_situation(db, "Anxious about my job interview")
    headers = auth_headers(user)

    await client.post(f"/users/me/saved/{first.id}", headers=headers)
    await client.post(f"/users/me/saved/{second.id}", headers=headers)
    await client.post(f"/users/me/saved/{first.id}", headers=auth_headers(other_user))

    data = (await client.get("/users/me/saved", headers=headers)).json()
    assert [s["id"] for s in data] == [second.id, first.id]
    assert data[1]["average_rating"] == 4.0
    assert data[1]["rating_count"] == 1
    assert "saved_at" in data[0]

    await client.delete(f"/users/me/saved/{second.id}", headers=headers)
    data = (await client.get("/users/me/saved", headers=headers)).json()
    assert [s["id"] for s in data] == [first.id]


# ── Topics ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_follow_and_unfollow_topics(client: AsyncClient, user: User):
    headers = auth_headers(user)

    response = await client.post("/users/me/topics", json={"topic": "  Forgiveness "}, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"following": True}
    await client.post("/users/me/topics", json={"topic": "forgiveness"}, headers=headers)
    await client.post("/users/me/topics", json={"topic": "work"}, headers=headers)

    topics = (await client.get("/users/me/topics", headers=headers)).json()["topics"]
    assert sorted(topics) == ["forgiveness", "work"]

    response = await client.delete("/users/me/topics/Forgiveness", headers=headers)
    assert response.json() == {"following": False}
    topics = (await client.get("/users/me/topics", headers=headers)).json()["topics"]
    assert topics == ["work"]


@pytest.mark.asyncio
@pytest.mark.parametrize("topic", ["", "   ", "x" * 51])
async def test_follow_invalid_topic(client: AsyncClient, user: User, topic):
    response = await client.post("/users/me/topics", json={"topic": topic}, headers=auth_headers(user))
    assert response.status_code == 400


# ── Settings ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_default_settings(client: AsyncClient, user: User):
    response = await client.get("/users/me/settings", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json() == {
        "email_digest": False,
        "digest_frequency": "weekly",
        "notify_ratings": True,
        "notify_prayers": True,
    }


@pytest.mark.asyncio
async def test_partial_settings_update_keeps_other_fields(client: AsyncClient, user: User):
    headers = auth_headers(user)
    await client.put(
        "/users/me/settings",
        json={"email_digest": True, "digest_frequency": "daily"},
        headers=headers,
    )

    response = await client.put(
        "/users/me/settings", json={"notify_prayers": False}, headers=headers
    )
    assert response.status_code == 200
    assert response.json() == {
        "email_digest": True,
        "digest_frequency": "daily",
        "notify_ratings": True,
        "notify_prayers": False,
    }


@pytest.mark.asyncio
async def test_null_settings_field_is_ignored(client: AsyncClient, user: User):
    response = await client.put(
        "/users/me/settings",
        json={"email_digest": None, "notify_ratings": False},
        headers=auth_headers(user),
    )
    data = response.json()
    assert data["email_digest"] is False
    assert data["notify_ratings"] is False


@pytest.mark.asyncio
async def test_invalid_digest_frequency(client: AsyncClient, user: User):
    response = await client.put(
        "/users/me/settings", json={"digest_frequency": "hourly"}, headers=auth_headers(user)
    )
    assert response.status_code == 400
