"""
Author directory endpoints: create, list and detail (with the author's
article summaries).
"""
import pytest
from httpx import AsyncClient

BODY = (
    "<p>This article body is long enough to pass the minimum length check "
    "and talks about publishing content.</p>"
)


@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={
        "username": "newuser",
        "email": "NewUser@Example.com",
        "display_name": "New User",
        "bio": "I am new here",
    })
    assert resp.status_code == 201
    user = resp.json()
    assert user["username"] == "newuser"
    assert user["email"] == "newuser@example.com"
    assert user["display_name"] == "New User"
    assert "created_at" in user


@pytest.mark.asyncio
async def test_create_user_missing_username_is_400(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={"email": "nousername@example.com"})
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "username"


@pytest.mark.asyncio
async def test_list_users(async_client: AsyncClient):
    assert (await async_client.get("/api/v1/users")).json() == []
    for i in range(2):
        await async_client.post("/api/v1/users", json={
            "username": f"listuser{i}",
            "email": f"listuser{i}@example.com",
        })
    assert len((await async_client.get("/api/v1/users")).json()) == 2


@pytest.mark.asyncio
async def test_get_user_detail_lists_articles(async_client: AsyncClient, as_user):
    user_id = (await async_client.post("/api/v1/users", json={
        "username": "prolific",
        "email": "prolific@example.com",
    })).json()["id"]

    for i in range(3):
        await async_client.post(
            "/api/v1/articles",
            json={"title": f"Prolific Article {i}", "content": BODY},
            headers=as_user(user_id),
        )

    resp = await async_client.get(f"/api/v1/users/{user_id}")
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["username"] == "prolific"
    assert sorted(a["slug"] for a in detail["articles"]) == [
        "prolific-article-0", "prolific-article-1", "prolific-article-2",
    ]


@pytest.mark.asyncio
async def test_user_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/99999")
    assert resp.status_code == 404
    assert resp.json()["message"] == "User not found"
