"""
ClimbApp Backend — API Endpoint Tests
=====================================

What:  HTTP-level tests: status codes, headers and error bodies.
How:   httpx AsyncClient over ASGITransport; get_db_session is overridden
       with the mock session and Google Cloud is patched out.
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from climbapp.config import settings
from climbapp.exceptions import ImageRecognitionError
from climbapp.schemas.target import Target, TargetSearchResultEntry, TargetSearchResults
from climbapp.services.image_recognition_service import CircuitBreaker, image_recognition_service


class TestSitesApi:

    @pytest.mark.asyncio
    async def test_get_site(self, api_client, mock_db_session, sample_site):
        mock_db_session.get.return_value = sample_site

        response = await api_client.get(f"/api/v1/sites/{sample_site.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Fontainebleau"
        assert body["routes"][0]["name"] == "Black Slab"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_get_missing_site(self, api_client):
        response = await api_client.get("/api/v1/sites/missing", headers={"X-Request-ID": "req-1"})

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["request_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_list_sites_sets_total_count(self, api_client, mock_db_session, sample_site):
        page_result = MagicMock()
        page_result.scalars.return_value.all.return_value = [sample_site]
        count_result = MagicMock()
        count_result.scalar.return_value = 1
        mock_db_session.execute = AsyncMock(side_effect=[page_result, count_result])

        response = await api_client.get("/api/v1/sites")

        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "1"
        assert response.json()["sites"][0]["route_count"] == 1

    @pytest.mark.asyncio
    async def test_create_site(self, api_client):
        response = await api_client.post("/api/v1/sites", json={"name": "Ceuse"})

        assert response.status_code == 201
        site_id = response.json()["id"]
        assert response.headers["Location"] == f"http://test/api/v1/sites/{site_id}"

    @pytest.mark.asyncio
    async def test_create_site_invalid_body_is_400(self, api_client):
        response = await api_client.post("/api/v1/sites", json={"description": "no name"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["errors"][0]["field"] == "body.name"

    @pytest.mark.asyncio
    async def test_delete_missing_site_is_204(self, api_client):
        response = await api_client.delete("/api/v1/sites/missing")
        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_delete_site_with_image_recognition_down_is_204(
        self, api_client, mock_db_session, sample_site
    ):
        mock_db_session.get.return_value = sample_site

        with patch("climbapp.services.site_service.image_recognition_service") as mock_recognition:
            mock_recognition.delete_target = AsyncMock(side_effect=ImageRecognitionError("down"))
            response = await api_client.delete(f"/api/v1/sites/{sample_site.id}")

        assert response.status_code == 204
        mock_db_session.delete.assert_awaited_once_with(sample_site)


class TestClimbingRoutesApi:

    @pytest.mark.asyncio
    async def test_get_route(self, api_client, mock_db_session, sample_site, sample_route):
        mock_db_session.get.return_value = sample_site

        response = await api_client.get(
            f"/api/v1/sites/{sample_site.id}/routes/{sample_route.id.upper()}"
        )

        assert response.status_code == 200
        assert response.json()["id"] == sample_route.id

    @pytest.mark.asyncio
    async def test_create_route(self, api_client, mock_db_session, sample_site):
        mock_db_session.get.return_value = sample_site

        response = await api_client.post(
            f"/api/v1/sites/{sample_site.id}/routes",
            json={"name": "Red Arete", "difficulty": "7a"},
        )

        assert response.status_code == 201
        route_id = response.json()["id"]
        assert response.headers["Location"] == (
            f"http://test/api/v1/sites/{sample_site.id}/routes/{route_id}"
        )

    @pytest.mark.asyncio
    async def test_create_route_in_missing_site(self, api_client):
        response = await api_client.post("/api/v1/sites/missing/routes", json={"name": "Red Arete"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_create_route_bad_image_is_400(self, api_client, mock_db_session, sample_site):
        mock_db_session.get.return_value = sample_site

        response = await api_client.post(
            f"/api/v1/sites/{sample_site.id}/routes",
            json={"name": "Red Arete", "image": {"base64": "not-an-image"}},
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "image"

    @pytest.mark.asyncio
    async def test_update_route(self, api_client, mock_db_session, sample_site, sample_route):
        mock_db_session.get.return_value = sample_site

        response = await api_client.put(
            f"/api/v1/sites/{sample_site.id}/routes/{sample_route.id}",
            json={"name": "Black Slab", "difficulty": "6b+"},
        )

        assert response.status_code == 204
        assert sample_route.difficulty == "6b+"

    @pytest.mark.asyncio
    async def test_delete_route_in_missing_site_is_204(self, api_client):
        response = await api_client.delete("/api/v1/sites/missing/routes/any")
        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_delete_route_with_image_recognition_down_is_204(
        self, api_client, mock_db_session, sample_site, sample_route
    ):
        mock_db_session.get.return_value = sample_site

        with patch("climbapp.services.site_service.image_recognition_service") as mock_recognition:
            mock_recognition.delete_target = AsyncMock(side_effect=ImageRecognitionError("down"))
            response = await api_client.delete(
                f"/api/v1/sites/{sample_site.id}/routes/{sample_route.id}"
            )

        assert response.status_code == 204
        assert sample_site.routes == []


class TestQueryApi:

    @pytest.mark.asyncio
    async def test_no_match(self, api_client, sample_image_base64):
        with patch("climbapp.services.query_service.image_recognition_service") as mock_recognition:
            mock_recognition.query_similar_targets = AsyncMock(return_value=TargetSearchResults())
            response = await api_client.post(
                "/api/v1/query", json={"image": {"base64": sample_image_base64}}
            )

        assert response.status_code == 200
        assert response.json() == {
            "result": "no_match",
            "climbing_route": {
                "id": None,
                "name": None,
                "description": None,
                "difficulty": None,
                "site": {"id": None, "name": None, "description": None},
            },
        }

    @pytest.mark.asyncio
    async def test_match(self, api_client, mock_db_session, sample_site, sample_route, sample_image_base64):
        lookup = MagicMock()
        lookup.scalars.return_value.first.return_value = sample_site
        mock_db_session.execute.return_value = lookup
        results = TargetSearchResults(
            results=[
                TargetSearchResultEntry(
                    score=0.95,
                    target=Target(id="product-1", labels={"climbing_route_id": sample_route.id}),
                )
            ]
        )

        with patch("climbapp.services.query_service.image_recognition_service") as mock_recognition:
            mock_recognition.query_similar_targets = AsyncMock(return_value=results)
            response = await api_client.post(
                "/api/v1/query", json={"image": {"base64": sample_image_base64}}
            )

        body = response.json()
        assert body["result"] == "match"
        assert body["climbing_route"]["id"] == sample_route.id
        assert body["climbing_route"]["site"]["name"] == "Fontainebleau"

    @pytest.mark.asyncio
    async def test_missing_image_is_400(self, api_client):
        response = await api_client.post("/api/v1/query", json={})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_open_circuit_is_503(self, api_client, sample_image_base64):
        breaker = image_recognition_service.circuit_breaker
        with patch.object(breaker, "state", CircuitBreaker.OPEN), \
             patch.object(breaker, "last_failure_time", time.time()):
            response = await api_client.post(
                "/api/v1/query", json={"image": {"base64": sample_image_base64}}
            )

        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"
        assert "Retry-After" in response.headers


class TestTargetsApi:

    @pytest.mark.asyncio
    async def test_get_target(self, test_client):
        with patch("climbapp.routes.targets.image_recognition_service") as mock_recognition:
            mock_recognition.get_target = AsyncMock(
                return_value=Target(id="p1", display_name="Black Slab")
            )
            response = await test_client.get("/api/v1/targets/p1")

        assert response.status_code == 200
        assert response.json()["display_name"] == "Black Slab"

    @pytest.mark.asyncio
    async def test_list_targets_passes_paging(self, test_client):
        with patch("climbapp.routes.targets.image_recognition_service") as mock_recognition:
            mock_recognition.get_targets = AsyncMock(return_value=[])
            response = await test_client.get(
                "/api/v1/target-sets/climbing-routes-1/targets?page=3&page_size=20"
            )

        assert response.status_code == 200
        mock_recognition.get_targets.assert_awaited_once_with("climbing-routes-1", 3, 20)

    @pytest.mark.asyncio
    async def test_create_target_set(self, test_client):
        with patch("climbapp.routes.targets.image_recognition_service") as mock_recognition:
            mock_recognition.create_target_set = AsyncMock()
            response = await test_client.post(
                "/api/v1/target-sets", json={"id": "routes-2", "display_name": "Routes"}
            )

        assert response.status_code == 201
        mock_recognition.create_target_set.assert_awaited_once_with("routes-2", "Routes")

    @pytest.mark.asyncio
    async def test_delete_target(self, test_client):
        with patch("climbapp.routes.targets.image_recognition_service") as mock_recognition:
            mock_recognition.delete_target = AsyncMock()
            response = await test_client.delete("/api/v1/target-sets/climbing-routes-1/targets/p1")

        assert response.status_code == 204
        mock_recognition.delete_target.assert_awaited_once_with("climbing-routes-1", "p1")


class TestHealthApi:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        with patch.object(image_recognition_service, "health_check", AsyncMock(return_value=True)):
            response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["image_recognition"] == "available"

    @pytest.mark.asyncio
    async def test_health_degraded_without_image_recognition(self, test_client):
        with patch.object(image_recognition_service, "health_check", AsyncMock(return_value=False)):
            response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_health_unhealthy_when_database_unreachable(self, test_client):
        with patch("climbapp.routes.health.engine") as mock_engine, \
             patch.object(image_recognition_service, "health_check", AsyncMock(return_value=True)):
            mock_engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("db down"))
            response = await test_client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_health_reports_open_circuit(self, test_client):
        breaker = image_recognition_service.circuit_breaker
        health_check = AsyncMock(return_value=True)
        with patch.object(breaker, "state", CircuitBreaker.OPEN), \
             patch.object(breaker, "last_failure_time", time.time()), \
             patch.object(image_recognition_service, "health_check", health_check):
            response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["image_recognition"] == "circuit_open"
        health_check.assert_not_awaited()


class TestMiddlewareApi:

    @pytest.mark.asyncio
    async def test_request_id_generated_when_absent(self, api_client):
        response = await api_client.get("/api/v1/sites/missing")

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 8
        assert response.json()["request_id"] == request_id

    @pytest.mark.asyncio
    async def test_rate_limit_answers_429(self, api_client):
        with patch.object(settings, "rate_limit_requests", 2):
            responses = [await api_client.get("/api/v1/sites/missing") for _ in range(3)]

        limited = responses[-1]
        assert limited.status_code == 429
        assert limited.json()["error"] == "rate_limit_exceeded"
        assert int(limited.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_health_is_not_rate_limited(self, test_client):
        with patch.object(settings, "rate_limit_requests", 1), \
             patch.object(image_recognition_service, "health_check", AsyncMock(return_value=True)):
            responses = [await test_client.get("/health") for _ in range(3)]

        assert all(response.status_code == 200 for response in responses)
