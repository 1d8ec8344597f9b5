"""
Article endpoint tests: the CRUD lifecycle over HTTP, the list envelope,
identity headers, image upload and the diagnostic response headers.

Authors are committed straight into the database through the ``make_user``
fixture; everything else goes through the API.
"""
import pytest
from httpx import AsyncClient

BODY = (
    "<p>This article body is long enough to pass the minimum length check "
    "and talks about publishing content.</p>"
)


async def _create(client: AsyncClient, headers: dict, **overrides) -> dict:
    payload = {"title": "Hello World", "content": BODY, **overrides}
    resp = await client.post("/api/v1/articles", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


# ---------------------------------------------------------------------------
# Infrastructure / health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_diagnostic_headers_present(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles", headers={"X-Request-Id": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"
    assert "x-response-time-ms" in resp.headers
    assert int(resp.headers["x-query-count"]) >= 1


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == []
    assert body["pagination"] == {
        "total": 0,
        "page": 1,
        "limit": 10,
        "pages": 0,
        "hasNext": False,
        "hasPrev": False,
    }
    assert body["filters"] == {"sortBy": "createdAt", "sortOrder": "desc"}


@pytest.mark.asyncio
async def test_list_filters_by_status(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    await _create(async_client, as_user(user.id), title="Live Post", status="published")
    await _create(async_client, as_user(user.id), title="Work In Progress")

    resp = await async_client.get("/api/v1/articles", params={"status": "published"})
    body = resp.json()
    assert body["pagination"]["total"] == 1
    assert body["data"][0]["title"] == "Live Post"
    assert body["filters"]["status"] == "published"
    # List items never carry the full body.
    assert "content" not in body["data"][0]


@pytest.mark.asyncio
async def test_list_search_matches_tags(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    await _create(async_client, as_user(user.id), title="First Post", tags=["FastAPI"])
    await _create(async_client, as_user(user.id), title="Second Post", tags=["django"])

    resp = await async_client.get("/api/v1/articles", params={"search": "fastapi"})
    titles = [a["title"] for a in resp.json()["data"]]
    assert titles == ["First Post"]


@pytest.mark.asyncio
async def test_list_search_treats_wildcards_literally(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    await _create(async_client, as_user(user.id), title="Growth of 100% Coverage")
    await _create(async_client, as_user(user.id), title="Ordinary Title")

    resp = await async_client.get("/api/v1/articles", params={"search": "%"})
    assert [a["title"] for a in resp.json()["data"]] == ["Growth of 100% Coverage"]


@pytest.mark.asyncio
async def test_list_invalid_sort_is_400(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles", params={"sortBy": "view_count"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["details"][0]["field"] == "sortBy"


@pytest.mark.asyncio
async def test_list_limit_above_maximum_is_400(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles", params={"limit": 101})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"


# ---------------------------------------------------------------------------
# Create + read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_and_get_by_id_and_slug(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    created = await _create(
        async_client,
        as_user(user.id),
        title="Café Culture",
        tags=["Travel", "travel", " food "],
        meta={"title": "<b>Cafés</b>", "keywords": ["coffee", "coffee"]},
    )
    assert created["slug"] == "cafe-culture"
    assert created["status"] == "draft"
    assert created["published_at"] is None
    assert created["author"]["id"] == user.id
    assert sorted(created["tags"]) == ["food", "travel"]
    assert created["meta"] == {"title": "Cafés", "description": None, "keywords": ["coffee"]}

    by_id = await async_client.get(f"/api/v1/articles/{created['id']}")
    by_slug = await async_client.get("/api/v1/articles/cafe-culture")
    assert by_id.status_code == by_slug.status_code == 200
    assert by_id.json()["data"]["id"] == by_slug.json()["data"]["id"] == created["id"]
    assert by_id.json()["data"]["content"] == BODY


@pytest.mark.asyncio
async def test_create_strips_scripts_from_content(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    created = await _create(
        async_client,
        as_user(user.id),
        content=BODY + '<script>alert("x")</script><a href="/x" onclick="steal()">link</a>',
    )
    assert "<script" not in created["content"]
    assert "alert" not in created["content"]
    assert "onclick" not in created["content"]
    assert '<a href="/x">link</a>' in created["content"]


@pytest.mark.asyncio
async def test_create_requires_identity(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/articles", json={"title": "Hello", "content": BODY})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_create_with_short_content_is_400(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    resp = await async_client.post(
        "/api/v1/articles",
        json={"title": "Hello", "content": "too short"},
        headers=as_user(user.id),
    )
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "content"


@pytest.mark.asyncio
async def test_create_with_unknown_category_is_400(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    resp = await async_client.post(
        "/api/v1/articles",
        json={"title": "Hello", "content": BODY, "categories": [42]},
        headers=as_user(user.id),
    )
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "categories"


@pytest.mark.asyncio
async def test_identical_titles_get_numbered_slugs(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    slugs = [
        (await _create(async_client, as_user(user.id), title="Same Title"))["slug"]
        for _ in range(3)
    ]
    assert slugs == ["same-title", "same-title-1", "same-title-2"]


@pytest.mark.asyncio
async def test_get_missing_article_returns_error_envelope(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles/does-not-exist")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Article not found"
    assert len(body["errorId"]) == 32


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_by_author(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    created = await _create(async_client, as_user(user.id))

    resp = await async_client.put(
        f"/api/v1/articles/{created['id']}",
        json={"title": "Renamed Post", "status": "published"},
        headers=as_user(user.id),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["slug"] == "renamed-post"
    assert data["status"] == "published"
    assert data["published_at"] is not None
    assert data["content"] == BODY


@pytest.mark.asyncio
async def test_update_null_title_is_400(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    created = await _create(async_client, as_user(user.id))
    resp = await async_client.put(
        f"/api/v1/articles/{created['id']}", json={"title": None}, headers=as_user(user.id)
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_by_other_author_is_403(async_client: AsyncClient, make_user, as_user):
    owner = await make_user("owner")
    other = await make_user("other")
    created = await _create(async_client, as_user(owner.id))

    resp = await async_client.put(
        f"/api/v1/articles/{created['id']}", json={"title": "Hijacked"}, headers=as_user(other.id)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_update_by_admin_allowed(async_client: AsyncClient, make_user, as_user):
    owner = await make_user("owner")
    admin = await make_user("admin")
    created = await _create(async_client, as_user(owner.id))

    resp = await async_client.put(
        f"/api/v1/articles/{created['id']}",
        json={"is_featured": True},
        headers=as_user(admin.id, role="admin"),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["is_featured"] is True


@pytest.mark.asyncio
async def test_update_missing_article_is_404_before_authorization(async_client: AsyncClient, as_user):
    resp = await async_client.put("/api/v1/articles/999", json={"title": "Nope"}, headers=as_user(1))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_removes_article_and_asset(async_client: AsyncClient, make_user, as_user, assets):
    user = await make_user()
    upload = await async_client.post(
        "/api/v1/articles/upload-image",
        files={"file": ("cover.png", b"\x89PNG fake", "image/png")},
        headers=as_user(user.id),
    )
    image = upload.json()["data"]
    created = await _create(async_client, as_user(user.id), featured_image=image)
    assert created["featured_image"] == image

    resp = await async_client.delete(f"/api/v1/articles/{created['id']}", headers=as_user(user.id))
    assert resp.status_code == 200
    assert assets.deleted == [image["reference_id"]]
    assert (await async_client.get(f"/api/v1/articles/{created['id']}")).status_code == 404


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upload_image(async_client: AsyncClient, as_user, assets):
    resp = await async_client.post(
        "/api/v1/articles/upload-image",
        files={"file": ("cover.jpg", b"jpeg bytes", "image/jpeg")},
        headers=as_user(1),
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["reference_id"] in assets.stored
    assert data["url"].endswith(data["reference_id"])


@pytest.mark.asyncio
async def test_upload_rejects_other_types(async_client: AsyncClient, as_user, assets):
    resp = await async_client.post(
        "/api/v1/articles/upload-image",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=as_user(1),
    )
    assert resp.status_code == 400
    assert assets.stored == {}


@pytest.mark.asyncio
async def test_overlong_tag_is_400(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    resp = await async_client.post(
        "/api/v1/articles",
        json={"title": "Tagged", "content": BODY, "tags": ["t" * 150]},
        headers=as_user(user.id),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_meta_title_escaping_past_bound_is_400(async_client: AsyncClient, make_user, as_user):
    user = await make_user()
    resp = await async_client.post(
        "/api/v1/articles",
        json={"title": "Angles", "content": BODY, "meta": {"title": "<" * 70}},
        headers=as_user(user.id),
    )
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "meta.title"
