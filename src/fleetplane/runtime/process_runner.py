# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Process bootstrap for the fleetplane components.

Each ``run_*`` coroutine wires one process from its config, serves until
the shutdown event is set (SIGINT/SIGTERM by default), tears everything
down in reverse order and returns an exit code:

    0: clean shutdown
    1: configuration or startup failure
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections import defaultdict
from collections.abc import Sequence
from uuid import uuid4

from fleetplane import __version__
from fleetplane.adapter import (
    AdapterRuntime,
    ModelAdapterConfig,
    ModelAdapterRuntimeConfig,
)
from fleetplane.api import ResourceStoreClient, ResourceStoreServer
from fleetplane.errors import FleetError
from fleetplane.event_bus import (
    InMemoryEventBus,
    ModelEventBusConfig,
    ProtocolEventBus,
    create_event_bus,
)
from fleetplane.models import ModelReconcileEvent
from fleetplane.runtime.health_server import HealthServer
from fleetplane.runtime.model_api_server_config import ModelApiServerConfig
from fleetplane.sentinel import ModelSentinelConfig, SentinelService
from fleetplane.status import StatusMergePolicy
from fleetplane.store import (
    DEFAULT_RESOURCE_TYPES,
    InMemoryResourceStore,
    ModelPostgresStoreConfig,
    PostgresResourceStore,
    ProtocolResourceStore,
)
from fleetplane.utils import sanitize_error_message

logger = logging.getLogger(__name__)

DEV_ENVIRONMENT = "dev"


def install_shutdown_handlers(shutdown_event: asyncio.Event) -> None:
    """Set ``shutdown_event`` on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating graceful shutdown...", sig.name)
        shutdown_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_shutdown, sig)
    else:
        # No loop signal handlers on Windows; SIGTERM does not exist there.
        def windows_handler(signum: int, frame: object) -> None:
            logger.info("Received %s, initiating graceful shutdown...", signal.Signals(signum).name)
            loop.call_soon_threadsafe(shutdown_event.set)

        signal.signal(signal.SIGINT, windows_handler)


def _shutdown_event(shutdown_event: asyncio.Event | None) -> asyncio.Event:
    if shutdown_event is not None:
        return shutdown_event
    event = asyncio.Event()
    install_shutdown_handlers(event)
    return event


async def build_store(config: ModelApiServerConfig) -> ProtocolResourceStore:
    """Create (and initialize) the store selected by the API config."""
    policy = StatusMergePolicy(config.required_adapters, audit_limit=config.audit_limit)
    if config.store == "postgres":
        store = PostgresResourceStore(
            ModelPostgresStoreConfig(dsn=config.dsn or "", pool_max_size=config.pool_max_size),
            merge_policy=policy,
            resource_types=config.resource_types,
            owner_types=config.owner_types,
        )
        await store.initialize()
        return store
    return InMemoryResourceStore(
        merge_policy=policy,
        resource_types=config.resource_types,
        owner_types=config.owner_types,
    )


async def run_api(
    config: ModelApiServerConfig, shutdown_event: asyncio.Event | None = None
) -> int:
    """Serve the Resource Store API until shutdown."""
    shutdown = _shutdown_event(shutdown_event)
    try:
        store = await build_store(config)
    except FleetError as e:
        logger.error("Failed to initialize store: %s", sanitize_error_message(e))
        return 1

    server = ResourceStoreServer(store, port=config.port, host=config.host, version=__version__)
    try:
        await server.start()
        await shutdown.wait()
    except FleetError as e:
        logger.error("Resource Store API failed: %s", sanitize_error_message(e))
        return 1
    finally:
        await server.stop()
        if isinstance(store, PostgresResourceStore):
            await store.shutdown()
    return 0


async def run_sentinel(
    config: ModelSentinelConfig, shutdown_event: asyncio.Event | None = None
) -> int:
    """Run one Sentinel shard against the HTTP store until shutdown."""
    shutdown = _shutdown_event(shutdown_event)
    bus = create_event_bus(config.event_bus)
    try:
        await bus.start()
    except FleetError as e:
        logger.error("Failed to start event bus: %s", sanitize_error_message(e))
        return 1

    async with ResourceStoreClient(config.store_url) as store:
        sentinel = SentinelService(store, bus, config)

        async def readiness() -> tuple[bool, dict[str, object]]:
            bus_health = await bus.health_check()
            last_tick = sentinel.last_tick
            ready = bool(bus_health.get("healthy")) and last_tick is not None
            return ready, {
                "event_bus": bus_health,
                "last_tick": last_tick.model_dump(mode="json") if last_tick else None,
            }

        health = HealthServer("sentinel", readiness, config.health_port, version=__version__)
        run_task: asyncio.Task[None] | None = None
        try:
            await health.start()
            run_task = asyncio.create_task(sentinel.run())
            await shutdown.wait()
        except FleetError as e:
            logger.error("Sentinel failed: %s", sanitize_error_message(e))
            return 1
        finally:
            sentinel.stop()
            if run_task is not None:
                await run_task
            await health.stop()
            await bus.close()
    return 0


async def _start_adapters(
    configs: Sequence[ModelAdapterConfig],
    store: ProtocolResourceStore,
    bus: ProtocolEventBus,
    environment: str,
) -> list[AdapterRuntime]:
    runtimes = [
        AdapterRuntime(config, store, bus, environment=environment) for config in configs
    ]
    for runtime in runtimes:
        await runtime.start()
    return runtimes


async def run_adapters(
    configs: Sequence[ModelAdapterConfig],
    runtime_config: ModelAdapterRuntimeConfig,
    shutdown_event: asyncio.Event | None = None,
) -> int:
    """Run one or more adapters against the HTTP store until shutdown."""
    shutdown = _shutdown_event(shutdown_event)
    bus = create_event_bus(runtime_config.event_bus)
    try:
        await bus.start()
    except FleetError as e:
        logger.error("Failed to start event bus: %s", sanitize_error_message(e))
        return 1

    runtimes: list[AdapterRuntime] = []
    async with ResourceStoreClient(runtime_config.store_url) as store:

        async def readiness() -> tuple[bool, dict[str, object]]:
            return bool(runtimes) and all(r.is_running for r in runtimes), {
                r.name: {"running": r.is_running, "in_flight": r.in_flight}
                for r in runtimes
            }

        health = HealthServer(
            "adapter", readiness, runtime_config.health_port, version=__version__
        )
        try:
            runtimes = await _start_adapters(
                configs, store, bus, runtime_config.event_bus.environment
            )
            await health.start()
            await shutdown.wait()
        except FleetError as e:
            logger.error("Adapter runtime failed: %s", sanitize_error_message(e))
            return 1
        finally:
            for runtime in runtimes:
                await runtime.stop()
            await health.stop()
            await bus.close()
    return 0


async def run_dev(
    configs: Sequence[ModelAdapterConfig],
    api_port: int,
    poll_interval_seconds: float = 5.0,
    shutdown_event: asyncio.Event | None = None,
) -> int:
    """Run the store API, a Sentinel and the adapters in one process.

    Uses the in-memory store and event bus. Every loaded adapter is
    required for its resource type's Available condition.
    """
    shutdown = _shutdown_event(shutdown_event)
    required: dict[str, list[str]] = defaultdict(list)
    for config in configs:
        required[config.resource_type].append(config.name)
    resource_types = tuple(dict.fromkeys([*DEFAULT_RESOURCE_TYPES, *required]))

    store = InMemoryResourceStore(
        merge_policy=StatusMergePolicy(required), resource_types=resource_types
    )
    server = ResourceStoreServer(store, port=api_port, version=__version__)
    bus = InMemoryEventBus(environment=DEV_ENVIRONMENT)
    sentinel = SentinelService(
        store,
        bus,
        ModelSentinelConfig(
            resource_types=resource_types,
            poll_interval_seconds=poll_interval_seconds,
            source="sentinel.dev",
            event_bus=ModelEventBusConfig(environment=DEV_ENVIRONMENT),
        ),
    )

    runtimes: list[AdapterRuntime] = []
    run_task: asyncio.Task[None] | None = None
    try:
        await bus.start()
        runtimes = await _start_adapters(configs, store, bus, DEV_ENVIRONMENT)
        await server.start()
        run_task = asyncio.create_task(sentinel.run())
        logger.info(
            "Dev stack running",
            extra={"api_port": api_port, "adapters": [c.name for c in configs]},
        )
        await shutdown.wait()
    except FleetError as e:
        logger.error("Dev stack failed: %s", sanitize_error_message(e))
        return 1
    finally:
        sentinel.stop()
        if run_task is not None:
            await run_task
        for runtime in runtimes:
            await runtime.stop()
        await server.stop()
        await bus.close()
    return 0


async def trigger_reconcile(
    store_url: str,
    bus_config: ModelEventBusConfig,
    resource_type: str,
    resource_id: str,
) -> ModelReconcileEvent:
    """Publish a ``Manual`` reconcile event for one resource."""
    bus = create_event_bus(bus_config)
    await bus.start()
    try:
        async with ResourceStoreClient(store_url) as store:
            sentinel = SentinelService(
                store,
                bus,
                ModelSentinelConfig(
                    store_url=store_url,
                    resource_types=(resource_type,),
                    source=f"cli.{uuid4().hex[:8]}",
                    event_bus=bus_config,
                ),
            )
            return await sentinel.trigger(resource_type, resource_id)
    finally:
        await bus.close()


__all__ = [
    "build_store",
    "install_shutdown_handlers",
    "run_adapters",
    "run_api",
    "run_dev",
    "run_sentinel",
    "trigger_reconcile",
]
