# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for process bootstrap and teardown.

Each run_* coroutine is given a pre-set shutdown event so it starts its
components, returns immediately and tears down.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetplane.adapter import (
    ModelAdapterConfig,
    ModelAdapterRuntimeConfig,
    parse_adapter_config,
)
from fleetplane.enums import EnumReconcileReason
from fleetplane.errors import InfraConnectionError
from fleetplane.event_bus import InMemoryEventBus, ModelEventBusConfig
from fleetplane.models import ModelReconcileEvent, ModelResourceCreate
from fleetplane.runtime import (
    ModelApiServerConfig,
    build_store,
    run_adapters,
    run_api,
    run_dev,
    run_sentinel,
    trigger_reconcile,
)
from fleetplane.sentinel import ModelSentinelConfig
from fleetplane.store import InMemoryResourceStore


def _stopped() -> asyncio.Event:
    event = asyncio.Event()
    event.set()
    return event


def _adapter(name: str = "dns") -> ModelAdapterConfig:
    return parse_adapter_config(
        {"name": name, "resourceType": "clusters", "action": {"backend": "inmemory"}},
        environ={},
    )


class TestBuildStore:
    """Store selection from the API config."""

    @pytest.mark.asyncio
    async def test_inmemory(self) -> None:
        store = await build_store(
            ModelApiServerConfig(resource_types=("clusters",), owner_types={})
        )
        assert isinstance(store, InMemoryResourceStore)
        assert store.resource_types == ("clusters",)

    @pytest.mark.asyncio
    async def test_postgres_is_initialized(self) -> None:
        config = ModelApiServerConfig(store="postgres", dsn="postgresql://db/fleet")
        with patch("fleetplane.runtime.process_runner.PostgresResourceStore") as store_cls:
            store_cls.return_value.initialize = AsyncMock()
            store = await build_store(config)

        assert store is store_cls.return_value
        store.initialize.assert_awaited_once()


class TestRunProcesses:
    """Start-up and teardown of each process kind."""

    @pytest.mark.asyncio
    async def test_run_api(self) -> None:
        config = ModelApiServerConfig(host="127.0.0.1", port=0)
        assert await run_api(config, shutdown_event=_stopped()) == 0

    @pytest.mark.asyncio
    async def test_run_api_store_failure(self) -> None:
        config = ModelApiServerConfig(store="postgres", dsn="postgresql://db/fleet")
        with patch("fleetplane.runtime.process_runner.PostgresResourceStore") as store_cls:
            store_cls.return_value.initialize = AsyncMock(
                side_effect=InfraConnectionError("connection refused")
            )
            assert await run_api(config, shutdown_event=_stopped()) == 1

    @pytest.mark.asyncio
    async def test_run_sentinel_bus_failure(self) -> None:
        bus = MagicMock()
        bus.start = AsyncMock(side_effect=InfraConnectionError("no brokers"))
        with patch("fleetplane.runtime.process_runner.create_event_bus", return_value=bus):
            assert await run_sentinel(ModelSentinelConfig(), shutdown_event=_stopped()) == 1

    @pytest.mark.asyncio
    async def test_run_sentinel(self) -> None:
        config = ModelSentinelConfig(health_port=0, poll_interval_seconds=60)
        store = InMemoryResourceStore()
        with patch("fleetplane.runtime.process_runner.ResourceStoreClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = store
            assert await run_sentinel(config, shutdown_event=_stopped()) == 0

    @pytest.mark.asyncio
    async def test_run_adapters(self) -> None:
        runtime_config = ModelAdapterRuntimeConfig(health_port=0)
        with patch("fleetplane.runtime.process_runner.ResourceStoreClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = InMemoryResourceStore()
            code = await run_adapters(
                [_adapter("dns"), _adapter("validation")],
                runtime_config,
                shutdown_event=_stopped(),
            )
        assert code == 0

    @pytest.mark.asyncio
    async def test_run_dev(self) -> None:
        code = await run_dev(
            [_adapter()], api_port=0, poll_interval_seconds=60, shutdown_event=_stopped()
        )
        assert code == 0


class TestTriggerReconcile:
    """Manual reconcile from the CLI."""

    @pytest.mark.asyncio
    async def test_publishes_manual_event(self) -> None:
        store = InMemoryResourceStore()
        await store.create_resource("clusters", ModelResourceCreate(id="c1"))
        bus = InMemoryEventBus(environment="test")
        bus_config = ModelEventBusConfig(environment="test")

        with (
            patch("fleetplane.runtime.process_runner.ResourceStoreClient") as client_cls,
            patch("fleetplane.runtime.process_runner.create_event_bus", return_value=bus),
        ):
            client_cls.return_value.__aenter__.return_value = store
            event = await trigger_reconcile(
                "http://store:8080", bus_config, "clusters", "c1"
            )

        assert event.reason == EnumReconcileReason.MANUAL
        client_cls.assert_called_once_with("http://store:8080")
        [message] = await bus.get_event_history()
        assert message.topic == "test.fleet.evt.clusters-reconcile.v1"
        assert ModelReconcileEvent.from_bytes(message.value).id == event.id
        assert (await bus.health_check())["started"] is False
