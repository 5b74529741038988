# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for the httpx Resource Store client.

Test Pattern:
    Error mapping is tested with httpx.MockTransport. The round-trip tests
    run the client against the real aiohttp application on an ephemeral
    port, so both sides of the wire format are exercised together.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
from aiohttp.test_utils import TestServer

from fleetplane.api import ResourceStoreClient, ResourceStoreServer
from fleetplane.enums import EnumStatusWriteOutcome
from fleetplane.errors import (
    InfraConnectionError,
    InfraTimeoutError,
    InfraUnavailableError,
    ResourceConflictError,
    ResourceNotFoundError,
    ResourceStoreError,
)
from fleetplane.mixins import CircuitState
from fleetplane.models import ModelResourceCreate, ModelResourcePatch
from fleetplane.store import InMemoryResourceStore
from fleetplane.utils import parse_label_selector
from tests.conftest import assert_resource_store_interface
from tests.helpers import make_report

BASE_URL = "http://store.test"


def _client(
    handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any
) -> ResourceStoreClient:
    transport = httpx.MockTransport(handler)
    return ResourceStoreClient(
        BASE_URL,
        client=httpx.AsyncClient(transport=transport, base_url=BASE_URL),
        **kwargs,
    )


def _problem(status: int, code: str, detail: str = "nope") -> httpx.Response:
    return httpx.Response(
        status,
        json={"title": "x", "status": status, "code": code, "detail": detail},
        headers={"content-type": "application/problem+json"},
    )


class TestClientErrorMapping:
    """HTTP and transport failures map onto the error hierarchy."""

    def test_protocol_conformance(self) -> None:
        assert_resource_store_interface(ResourceStoreClient(BASE_URL))

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        client = _client(lambda request: _problem(404, "RESOURCE_NOT_FOUND", "c1 not found"))
        with pytest.raises(ResourceNotFoundError) as exc_info:
            await client.get_resource("clusters", "c1")
        assert exc_info.value.message == "c1 not found"

    @pytest.mark.asyncio
    async def test_conflict(self) -> None:
        client = _client(lambda request: _problem(409, "ALREADY_EXISTS"))
        with pytest.raises(ResourceConflictError):
            await client.create_resource("clusters", ModelResourceCreate(id="c1"))

    @pytest.mark.asyncio
    async def test_stale_upsert_is_a_result(self) -> None:
        client = _client(lambda request: _problem(409, "STALE_GENERATION"))
        result = await client.upsert_status("clusters", "c1", make_report("dns", 1))
        assert result.outcome == EnumStatusWriteOutcome.STALE
        assert not result.accepted

    @pytest.mark.asyncio
    async def test_bad_request_keeps_problem(self) -> None:
        client = _client(lambda request: _problem(400, "VALIDATION_ERROR", "ahead"))
        with pytest.raises(ResourceStoreError) as exc_info:
            await client.upsert_status("clusters", "c1", make_report("dns", 9))
        assert exc_info.value.status_code == 400
        assert exc_info.value.problem is not None
        assert exc_info.value.problem.detail == "ahead"

    @pytest.mark.asyncio
    async def test_unavailable(self) -> None:
        client = _client(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(InfraUnavailableError):
            await client.list_resources("clusters")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(InfraTimeoutError):
            await _client(handler).list_resources("clusters")

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(InfraConnectionError):
            await _client(handler).list_resources("clusters")

    @pytest.mark.asyncio
    async def test_circuit_opens_on_repeated_failures(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(502)

        client = _client(handler, circuit_breaker_threshold=2)
        for _ in range(2):
            with pytest.raises(InfraUnavailableError):
                await client.list_resources("clusters")
        assert client.circuit_state == CircuitState.OPEN

        with pytest.raises(InfraUnavailableError):
            await client.list_resources("clusters")
        assert calls == 2

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>proxy page</html>"),
            httpx.Response(200, json={"total": 0}),
            httpx.Response(200, json={"items": None}),
            httpx.Response(200, json={"items": [{"unexpected": True}]}),
        ],
        ids=["not-json", "no-items", "items-null", "bad-item"],
    )
    @pytest.mark.asyncio
    async def test_malformed_list_body(self, response: httpx.Response) -> None:
        client = _client(lambda request: response)
        with pytest.raises(ResourceStoreError) as exc_info:
            await client.list_resources("clusters")
        assert exc_info.value.status_code == 200
        assert "Malformed" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_resource_body(self) -> None:
        client = _client(lambda request: httpx.Response(200, json=["c1"]))
        with pytest.raises(ResourceStoreError):
            await client.get_resource("clusters", "c1")

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"items": [], "total": 0})

        client = _client(handler)
        await client.list_resources("clusters", parse_label_selector("shard=a"))
        await client.list_resources("clusters", parse_label_selector(None))

        assert seen[0].url.path == "/api/v1/clusters"
        assert seen[0].url.params["labelSelector"] == "shard=a"
        assert "labelSelector" not in seen[1].url.params
        assert "X-Correlation-ID" in seen[0].headers


@pytest.fixture
async def live_client(store: InMemoryResourceStore) -> AsyncIterator[ResourceStoreClient]:
    server = ResourceStoreServer(store)
    async with TestServer(server.build_app()) as test_server:
        base_url = str(test_server.make_url("/")).rstrip("/")
        async with ResourceStoreClient(base_url) as client:
            yield client


class TestClientAgainstServer:
    """Client and server agree on the wire format."""

    @pytest.mark.asyncio
    async def test_resource_lifecycle(self, live_client: ResourceStoreClient) -> None:
        created = await live_client.create_resource(
            "clusters", ModelResourceCreate(id="c1", labels={"shard": "a"})
        )
        assert created.generation == 1

        updated = await live_client.update_resource(
            "clusters", "c1", ModelResourcePatch(spec={"nodes": 3})
        )
        assert updated.generation == 2

        listed = await live_client.list_resources(
            "clusters", parse_label_selector("shard=a,!decommissioned")
        )
        assert [r.id for r in listed] == ["c1"]

        deleted = await live_client.delete_resource("clusters", "c1", finalize=True)
        assert deleted.is_terminated

    @pytest.mark.asyncio
    async def test_status_outcomes(self, live_client: ResourceStoreClient) -> None:
        await live_client.create_resource("clusters", ModelResourceCreate(id="c1"))

        accepted = await live_client.upsert_status("clusters", "c1", make_report("dns", 1))
        assert accepted.accepted
        assert accepted.resource is not None
        assert accepted.resource.status.is_ready

        audited = await live_client.upsert_status(
            "clusters", "c1", make_report("dns", 1, available=None)
        )
        assert audited.outcome == EnumStatusWriteOutcome.AUDITED

        statuses = await live_client.list_statuses("clusters", "c1")
        assert [s.adapter_name for s in statuses] == ["dns"]

        audit = await live_client.get_status_audit("clusters", "c1", "dns")
        assert [e.outcome for e in audit] == [
            EnumStatusWriteOutcome.ACCEPTED,
            EnumStatusWriteOutcome.AUDITED,
        ]

    @pytest.mark.asyncio
    async def test_not_found_round_trip(self, live_client: ResourceStoreClient) -> None:
        with pytest.raises(ResourceNotFoundError):
            await live_client.get_resource("clusters", "missing")
