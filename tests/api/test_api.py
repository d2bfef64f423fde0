"""
HTTP tests for the public, admin and monitoring routers.

The app fixture populates app.state directly, so no lifespan runs and Redis
stays disabled.
"""

import pytest


async def _create_project(client, admin_headers, **fields):
    payload = {"title": "Portfolio Site", "is_published": True, **fields}
    response = await client.post("/api/admin/projects", json=payload, headers=admin_headers)
    assert response.status_code == 201
    return response.json()["data"]


class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["environment"] == "test"
        assert body["cache"]["redis_connected"] is False

    @pytest.mark.asyncio
    async def test_readiness(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    @pytest.mark.asyncio
    async def test_response_headers(self, client):
        response = await client.get("/health")

        assert response.headers["X-Response-Time"].endswith("ms")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in response.headers

    @pytest.mark.asyncio
    async def test_unknown_route_uses_error_envelope(self, client):
        response = await client.get("/api/nope")

        assert response.status_code == 404
        assert response.json()["success"] is False


class TestPublicEndpoints:
    @pytest.mark.asyncio
    async def test_personal_info_empty(self, client):
        response = await client.get("/api/personal-info")

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": None}

    @pytest.mark.asyncio
    async def test_projects_pagination(self, client, admin_headers):
        for title in ("First", "Second", "Third"):
            await _create_project(client, admin_headers, title=title)

        response = await client.get("/api/projects", params={"limit": 2, "page": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [p["title"] for p in body["data"]] == ["First"]
        assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}

    @pytest.mark.asyncio
    async def test_projects_filter_by_tag(self, client, admin_headers):
        await _create_project(client, admin_headers, title="Tagged", tags=["Python"])
        await _create_project(client, admin_headers, title="Plain")

        response = await client.get("/api/projects", params={"tags": "python"})

        assert [p["title"] for p in response.json()["data"]] == ["Tagged"]

    @pytest.mark.asyncio
    async def test_projects_rejects_bad_limit(self, client):
        response = await client.get("/api/projects", params={"limit": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_project_by_slug(self, client, admin_headers):
        await _create_project(client, admin_headers, title="Hello World")

        response = await client.get("/api/projects/slug/hello-world")

        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Hello World"

    @pytest.mark.asyncio
    async def test_missing_project_is_404(self, client):
        response = await client.get("/api/projects/slug/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Project not found"}

    @pytest.mark.asyncio
    async def test_record_view(self, client, admin_headers):
        await _create_project(client, admin_headers, title="Viewed")

        assert (await client.post("/api/projects/slug/viewed/view")).status_code == 200
        assert (await client.post("/api/projects/slug/missing/view")).status_code == 404

    @pytest.mark.asyncio
    async def test_tags_and_skills_lists(self, client, admin_headers):
        await _create_project(client, admin_headers, tags=["Python"])

        tags = await client.get("/api/tags", params={"popular": "true"})
        tag = await client.get("/api/tags/python")
        skills = await client.get("/api/skills")

        assert [t["name"] for t in tags.json()["data"]] == ["Python"]
        assert tag.json()["data"]["usage_count"] == 1
        assert skills.json()["data"] == {"skills": [], "categories": [], "skills_by_category": []}

    @pytest.mark.asyncio
    async def test_blog_posts_empty(self, client):
        response = await client.get("/api/blog/posts")

        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 0


class TestAdminEndpoints:
    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, client):
        response = await client.post("/api/admin/projects", json={"title": "Nope"})

        assert response.status_code == 401
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_wrong_token_is_401(self, client):
        response = await client.post(
            "/api/admin/projects", json={"title": "Nope"}, headers={"X-Admin-Token": "wrong"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_disabled_without_configured_token(self, app, client, settings, admin_headers):
        app.state.settings = settings.model_copy(update={"ADMIN_TOKEN": None})

        response = await client.post("/api/admin/projects", json={"title": "Nope"}, headers=admin_headers)

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_create_update_delete_project(self, client, admin_headers):
        created = await _create_project(client, admin_headers, title="Draft Title")

        updated = await client.put(
            f"/api/admin/projects/{created['id']}",
            json={"title": "Final Title"},
            headers=admin_headers,
        )
        deleted = await client.delete(f"/api/admin/projects/{created['id']}", headers=admin_headers)
        missing = await client.delete(f"/api/admin/projects/{created['id']}", headers=admin_headers)

        assert created["slug"] == "draft-title"
        assert updated.json()["data"]["slug"] == "final-title"
        assert deleted.status_code == 200
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_write_is_visible_to_cached_reads(self, client, admin_headers):
        await client.get("/api/projects")
        await _create_project(client, admin_headers, title="Fresh")

        response = await client.get("/api/projects")

        assert [p["title"] for p in response.json()["data"]] == ["Fresh"]

    @pytest.mark.asyncio
    async def test_personal_info_upsert(self, client, admin_headers):
        response = await client.put(
            "/api/admin/personal-info",
            json={"name": "Kim", "profile_image": "/img/me.png"},
            headers=admin_headers,
        )
        public = await client.get("/api/personal-info")

        assert response.status_code == 200
        assert public.json()["data"]["full_name"] == "Kim"
        assert public.json()["data"]["avatar_url"] == "/img/me.png"

    @pytest.mark.asyncio
    async def test_interest_lifecycle(self, client, admin_headers):
        created = await client.post(
            "/api/admin/interests",
            json={"title": "Photography", "category": "hobby"},
            headers=admin_headers,
        )
        interest_id = created.json()["data"]["id"]

        listed = await client.get("/api/interests", params={"category": "hobby"})
        updated = await client.put(
            f"/api/admin/interests/{interest_id}",
            json={"description": "Film cameras"},
            headers=admin_headers,
        )
        deleted = await client.delete(f"/api/admin/interests/{interest_id}", headers=admin_headers)

        assert created.status_code == 201
        assert [i["title"] for i in listed.json()["data"]] == ["Photography"]
        assert updated.json()["data"]["description"] == "Film cameras"
        assert deleted.status_code == 200
        assert (await client.get("/api/interests")).json()["data"] == []


class TestMonitoringEndpoints:
    @pytest.mark.asyncio
    async def test_dashboard(self, client):
        response = await client.get("/api/monitoring/dashboard")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["system"]["pid"] > 0
        assert data["cache"]["redis"] is None or "connected" in data["cache"]["redis"]
        assert "total_requests" in data["requests"]

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        response = await client.get("/api/monitoring/metrics")

        data = response.json()["data"]
        assert data["database"]["connected"] is True
        assert data["redis"]["connected"] is False

    @pytest.mark.asyncio
    async def test_clear_rejects_unknown_target(self, client, memory_cache):
        memory_cache.set("projects:list:x", [1])

        response = await client.post("/api/monitoring/cache/clear", json={"type": "bogus"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert memory_cache.has("projects:list:x")

    @pytest.mark.asyncio
    async def test_clear_all(self, client, memory_cache):
        memory_cache.set("projects:list:x", [1])

        response = await client.post("/api/monitoring/cache/clear", json={"type": "all"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(memory_cache) == 0

    @pytest.mark.asyncio
    async def test_prometheus_exposition(self, client):
        await client.get("/api/health")

        response = await client.get("/api/monitoring/prometheus")

        assert response.status_code == 200
        assert "portfolio_db_query_duration_seconds" in response.text
