# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for the Resource Store HTTP API.

Requests go through aiohttp's test client against an in-memory store.
"""

from __future__ import annotations

import warnings
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, patch
from uuid import UUID

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from fleetplane.api import ResourceStoreServer
from fleetplane.api.resource_store_server import _CORRELATION_KEY, error_middleware
from fleetplane.store import InMemoryResourceStore


def _report(adapter: str, generation: int, available: str = "True") -> dict[str, Any]:
    return {
        "adapterName": adapter,
        "observedGeneration": generation,
        "conditions": [
            {"type": "Applied", "status": "True"},
            {"type": "Available", "status": available},
            {"type": "Health", "status": "True"},
        ],
        "data": {"zone": "a"},
    }


@pytest.fixture
async def client(store: InMemoryResourceStore) -> AsyncIterator[TestClient]:
    server = ResourceStoreServer(store, version="test")
    async with TestClient(TestServer(server.build_app())) as test_client:
        yield test_client


class TestResourceRoutes:
    """CRUD over /api/v1/{resources}."""

    @pytest.mark.asyncio
    async def test_create_get_list(self, client: TestClient) -> None:
        resp = await client.post(
            "/api/v1/clusters",
            json={"id": "c1", "spec": {"region": "eu"}, "labels": {"shard": "a"}},
        )
        assert resp.status == 201
        created = await resp.json()
        assert created["generation"] == 1
        assert created["status"]["phase"] == "NotReady"

        resp = await client.post("/api/v1/clusters/c2", json={"labels": {"shard": "b"}})
        assert resp.status == 201

        resp = await client.get("/api/v1/clusters/c1")
        assert (await resp.json())["spec"] == {"region": "eu"}

        resp = await client.get("/api/v1/clusters", params={"labelSelector": "shard=a"})
        listing = await resp.json()
        assert listing["total"] == 1
        assert listing["items"][0]["id"] == "c1"

    @pytest.mark.asyncio
    async def test_patch_bumps_generation_on_spec_change(self, client: TestClient) -> None:
        await client.post("/api/v1/clusters/c1", json={"spec": {"nodes": 1}})

        resp = await client.patch("/api/v1/clusters/c1", json={"labels": {"tier": "gold"}})
        assert (await resp.json())["generation"] == 1

        resp = await client.patch("/api/v1/clusters/c1", json={"spec": {"nodes": 2}})
        assert (await resp.json())["generation"] == 2

    @pytest.mark.asyncio
    async def test_delete_and_finalize(self, client: TestClient) -> None:
        await client.post("/api/v1/clusters/c1", json={})

        resp = await client.delete("/api/v1/clusters/c1")
        body = await resp.json()
        assert body["deletedTime"] is not None
        assert body["status"]["phase"] == "Terminating"

        resp = await client.delete("/api/v1/clusters/c1", params={"finalize": "true"})
        assert (await resp.json())["status"]["phase"] == "Terminated"

    @pytest.mark.asyncio
    async def test_errors_are_problem_details(self, client: TestClient) -> None:
        resp = await client.get(
            "/api/v1/clusters/missing", headers={"X-Correlation-ID": "not-a-uuid"}
        )
        assert resp.status == 404
        assert resp.content_type == "application/problem+json"
        problem = await resp.json()
        assert problem["code"] == "RESOURCE_NOT_FOUND"
        assert problem["trace_id"] == resp.headers["X-Correlation-ID"]

        resp = await client.get("/api/v1/widgets")
        assert resp.status == 404

        await client.post("/api/v1/clusters/c1", json={})
        resp = await client.post("/api/v1/clusters/c1", json={})
        assert resp.status == 409
        assert (await resp.json())["code"] == "ALREADY_EXISTS"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("path", "body"),
        [
            ("/api/v1/clusters", "{not json"),
            ("/api/v1/clusters", "[1, 2]"),
            ("/api/v1/clusters/c1", '{"id": "other"}'),
            ("/api/v1/clusters", '{"spec": "flat"}'),
        ],
    )
    async def test_bad_requests(self, client: TestClient, path: str, body: str) -> None:
        resp = await client.post(path, data=body, headers={"Content-Type": "application/json"})
        assert resp.status == 400
        assert (await resp.json())["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_correlation_id_is_echoed(self, client: TestClient) -> None:
        correlation_id = "7c9e6679-7425-40de-944b-e07fc1f90ae7"
        resp = await client.get("/health", headers={"X-Correlation-ID": correlation_id})
        assert resp.headers["X-Correlation-ID"] == correlation_id
        assert (await resp.json()) == {"status": "healthy", "version": "test"}

    @pytest.mark.asyncio
    async def test_correlation_id_is_typed_request_state(self) -> None:
        seen: list[object] = []

        async def handler(request: web.Request) -> web.Response:
            seen.append(request[_CORRELATION_KEY])
            return web.json_response({})

        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/echo", handler)
        correlation_id = "7c9e6679-7425-40de-944b-e07fc1f90ae7"
        with warnings.catch_warnings():
            warnings.simplefilter("error", web.NotAppKeyWarning)
            async with TestClient(TestServer(app)) as test_client:
                resp = await test_client.get(
                    "/echo", headers={"X-Correlation-ID": correlation_id}
                )
                assert resp.status == 200

        assert isinstance(_CORRELATION_KEY, web.RequestKey)
        assert seen == [UUID(correlation_id)]

    @pytest.mark.asyncio
    async def test_problem_trace_id_matches_correlation_id(
        self, client: TestClient
    ) -> None:
        correlation_id = "7c9e6679-7425-40de-944b-e07fc1f90ae7"
        resp = await client.get(
            "/api/v1/clusters/missing", headers={"X-Correlation-ID": correlation_id}
        )
        assert resp.status == 404
        assert (await resp.json())["trace_id"] == correlation_id

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(
        self, client: TestClient, store: InMemoryResourceStore
    ) -> None:
        with patch.object(
            store, "list_resources", AsyncMock(side_effect=RuntimeError("boom"))
        ):
            resp = await client.get("/api/v1/clusters")
        assert resp.status == 500
        assert (await resp.json())["code"] == "INTERNAL_ERROR"


class TestStatusRoutes:
    """Status upsert outcomes and audit trail."""

    @pytest.mark.asyncio
    async def test_accepted_stale_and_audited(self, client: TestClient) -> None:
        await client.post("/api/v1/clusters/c1", json={"spec": {"v": 1}})
        await client.patch("/api/v1/clusters/c1", json={"spec": {"v": 2}})

        resp = await client.post("/api/v1/clusters/c1/statuses", json=_report("dns", 2))
        assert resp.status == 200
        body = await resp.json()
        assert body["outcome"] == "accepted"
        assert body["resource"]["status"]["phase"] == "Ready"

        resp = await client.post("/api/v1/clusters/c1/statuses", json=_report("dns", 1))
        assert resp.status == 409
        problem = await resp.json()
        assert problem["code"] == "STALE_GENERATION"

        resp = await client.post(
            "/api/v1/clusters/c1/statuses", json=_report("dns", 2, available="Unknown")
        )
        assert resp.status == 202
        assert (await resp.json())["outcome"] == "audited"

        resp = await client.get("/api/v1/clusters/c1/statuses")
        listing = await resp.json()
        assert listing["total"] == 1
        assert listing["items"][0]["observedGeneration"] == 2

        resp = await client.get("/api/v1/clusters/c1/statuses/dns/audit")
        outcomes = [e["outcome"] for e in (await resp.json())["items"]]
        assert outcomes == ["accepted", "stale", "audited"]

    @pytest.mark.asyncio
    async def test_report_ahead_of_resource_is_rejected(self, client: TestClient) -> None:
        await client.post("/api/v1/clusters/c1", json={})
        resp = await client.post("/api/v1/clusters/c1/statuses", json=_report("dns", 5))
        assert resp.status == 400
        assert (await resp.json())["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_invalid_report_body(self, client: TestClient) -> None:
        await client.post("/api/v1/clusters/c1", json={})
        resp = await client.post(
            "/api/v1/clusters/c1/statuses", json={"adapterName": "dns"}
        )
        assert resp.status == 400


class TestServerLifecycle:
    """Start and stop on an ephemeral port."""

    @pytest.mark.asyncio
    async def test_start_stop(self, store: InMemoryResourceStore) -> None:
        server = ResourceStoreServer(store, port=0, host="127.0.0.1")
        await server.start()
        assert server.is_running
        await server.stop()
        assert not server.is_running
