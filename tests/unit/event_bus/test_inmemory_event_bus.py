# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for InMemoryEventBus.

Covers:
- Lifecycle and protocol conformance
- Per-group delivery with round-robin inside a group
- Bounded redelivery on handler failure
- Background delivery tasks: non-blocking publish, drain, cancel on close
- History and offset helpers
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from fleetplane.errors import InfraUnavailableError
from fleetplane.event_bus import (
    InMemoryEventBus,
    ModelEventBusConfig,
    ModelEventHeaders,
    ModelEventMessage,
    ProtocolEventBus,
    create_event_bus,
)
from tests.conftest import assert_has_async_methods

TOPIC = "test.fleet.evt.clusters-reconcile.v1"


@pytest.fixture
async def event_bus() -> InMemoryEventBus:
    bus = InMemoryEventBus(environment="test", max_history=10, max_delivery_attempts=3)
    await bus.start()
    return bus


class TestInMemoryEventBusLifecycle:
    """Start, close and health."""

    def test_protocol_conformance(self) -> None:
        bus = InMemoryEventBus()
        assert_has_async_methods(
            bus, ["start", "close", "publish", "subscribe", "health_check"]
        )
        assert isinstance(bus, ProtocolEventBus)

    def test_invalid_delivery_attempts(self) -> None:
        with pytest.raises(ValueError):
            InMemoryEventBus(max_delivery_attempts=0)

    @pytest.mark.asyncio
    async def test_publish_before_start_fails(self) -> None:
        bus = InMemoryEventBus()
        with pytest.raises(InfraUnavailableError):
            await bus.publish(TOPIC, None, b"{}")

    @pytest.mark.asyncio
    async def test_health_check(self, event_bus: InMemoryEventBus) -> None:
        async def handler(msg: ModelEventMessage) -> None:
            return None

        await event_bus.subscribe(TOPIC, "dns", handler)
        await event_bus.publish(TOPIC, b"c1", b"{}")
        health = await event_bus.health_check()
        assert health["healthy"] is True
        assert health["environment"] == "test"
        assert health["subscriber_count"] == 1
        assert health["history_size"] == 1

        await event_bus.close()
        health = await event_bus.health_check()
        assert health["healthy"] is False
        assert health["subscriber_count"] == 0

    def test_factory_selects_inmemory(self) -> None:
        bus = create_event_bus(ModelEventBusConfig(environment="dev"))
        assert isinstance(bus, InMemoryEventBus)
        assert bus.environment == "dev"


class TestInMemoryEventBusDelivery:
    """Delivery semantics."""

    @pytest.mark.asyncio
    async def test_each_group_receives_each_message(
        self, event_bus: InMemoryEventBus
    ) -> None:
        received: dict[str, list[bytes]] = {"dns": [], "validation": []}

        async def dns(msg: ModelEventMessage) -> None:
            received["dns"].append(msg.value)

        async def validation(msg: ModelEventMessage) -> None:
            received["validation"].append(msg.value)

        await event_bus.subscribe(TOPIC, "dns", dns)
        await event_bus.subscribe(TOPIC, "validation", validation)
        await event_bus.publish(TOPIC, b"c1", b"one")
        await event_bus.publish(TOPIC, b"c2", b"two")
        await event_bus.drain()

        assert received == {"dns": [b"one", b"two"], "validation": [b"one", b"two"]}
        assert event_bus.delivered_count == 4

    @pytest.mark.asyncio
    async def test_group_members_take_turns(self, event_bus: InMemoryEventBus) -> None:
        calls: list[str] = []

        def make_handler(name: str):  # noqa: ANN202
            async def handler(msg: ModelEventMessage) -> None:
                calls.append(name)

            return handler

        await event_bus.subscribe(TOPIC, "dns", make_handler("a"))
        await event_bus.subscribe(TOPIC, "dns", make_handler("b"))
        for _ in range(4):
            await event_bus.publish(TOPIC, None, b"{}")
        await event_bus.drain()
        assert calls == ["a", "b", "a", "b"]

    @pytest.mark.asyncio
    async def test_headers_and_offsets(self, event_bus: InMemoryEventBus) -> None:
        seen: list[ModelEventMessage] = []

        async def handler(msg: ModelEventMessage) -> None:
            seen.append(msg)

        await event_bus.subscribe(TOPIC, "dns", handler)
        headers = ModelEventHeaders(source="sentinel", event_type="fleet.reconcile.v1")
        await event_bus.publish(TOPIC, b"c1", b"{}", headers)
        await event_bus.publish(TOPIC, b"c1", b"{}")
        await event_bus.drain()

        assert seen[0].headers.correlation_id == headers.correlation_id
        assert [m.offset for m in seen] == ["0", "1"]
        assert await event_bus.get_topic_offset(TOPIC) == 2

    @pytest.mark.asyncio
    async def test_failed_handler_is_retried(self, event_bus: InMemoryEventBus) -> None:
        attempts: list[int] = []

        async def flaky(msg: ModelEventMessage) -> None:
            attempts.append(msg.headers.delivery_attempt)
            if len(attempts) < 2:
                raise RuntimeError("transient")

        await event_bus.subscribe(TOPIC, "dns", flaky)
        await event_bus.publish(TOPIC, None, b"{}")
        await event_bus.drain()
        assert attempts == [1, 2]
        assert event_bus.failed_count == 0

    @pytest.mark.asyncio
    async def test_message_dropped_after_max_attempts(
        self, event_bus: InMemoryEventBus
    ) -> None:
        attempts = 0

        async def broken(msg: ModelEventMessage) -> None:
            nonlocal attempts
            attempts += 1
            raise RuntimeError("always")

        await event_bus.subscribe(TOPIC, "dns", broken)
        await event_bus.publish(TOPIC, None, b"{}")
        await event_bus.drain()
        assert attempts == 3
        assert event_bus.failed_count == 1

    @pytest.mark.asyncio
    async def test_handler_may_publish(self, event_bus: InMemoryEventBus) -> None:
        other = "test.fleet.evt.nodepools-reconcile.v1"
        received: list[bytes] = []

        async def relay(msg: ModelEventMessage) -> None:
            await event_bus.publish(other, None, msg.value)

        async def sink(msg: ModelEventMessage) -> None:
            received.append(msg.value)

        await event_bus.subscribe(TOPIC, "relay", relay)
        await event_bus.subscribe(other, "sink", sink)
        await event_bus.publish(TOPIC, None, b"payload")
        await event_bus.drain()
        assert received == [b"payload"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, event_bus: InMemoryEventBus) -> None:
        received: list[bytes] = []

        async def handler(msg: ModelEventMessage) -> None:
            received.append(msg.value)

        unsubscribe = await event_bus.subscribe(TOPIC, "dns", handler)
        await unsubscribe()
        await unsubscribe()
        await event_bus.publish(TOPIC, None, b"{}")
        await event_bus.drain()
        assert received == []
        assert await event_bus.get_subscriber_count(TOPIC) == 0


class TestInMemoryEventBusBackgroundDelivery:
    """Publishing never waits on subscriber handlers."""

    @pytest.mark.asyncio
    async def test_publish_returns_before_handler_finishes(
        self, event_bus: InMemoryEventBus
    ) -> None:
        release = asyncio.Event()
        done: list[bytes] = []

        async def slow(msg: ModelEventMessage) -> None:
            await release.wait()
            done.append(msg.value)

        await event_bus.subscribe(TOPIC, "dns", slow)
        async with asyncio.timeout(1.0):
            await event_bus.publish(TOPIC, None, b"one")
        assert done == []
        assert (await event_bus.health_check())["pending_deliveries"] == 1

        release.set()
        await event_bus.drain()
        assert done == [b"one"]
        assert (await event_bus.health_check())["pending_deliveries"] == 0

    @pytest.mark.asyncio
    async def test_close_cancels_pending_deliveries(
        self, event_bus: InMemoryEventBus
    ) -> None:
        started = asyncio.Event()
        cancelled: list[bool] = []

        async def stuck(msg: ModelEventMessage) -> None:
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        await event_bus.subscribe(TOPIC, "dns", stuck)
        await event_bus.publish(TOPIC, None, b"{}")
        await started.wait()
        await event_bus.close()

        assert cancelled == [True]
        assert (await event_bus.health_check())["pending_deliveries"] == 0
        assert event_bus.delivery_errors == []

    @pytest.mark.asyncio
    async def test_escaped_delivery_error_is_collected(
        self, event_bus: InMemoryEventBus
    ) -> None:
        async def handler(msg: ModelEventMessage) -> None:
            return None

        await event_bus.subscribe(TOPIC, "dns", handler)
        with patch.object(
            event_bus, "_deliver", AsyncMock(side_effect=RuntimeError("boom"))
        ):
            await event_bus.publish(TOPIC, None, b"{}")
            await event_bus.drain()

        assert [str(e) for e in event_bus.delivery_errors] == ["boom"]

    @pytest.mark.asyncio
    async def test_group_bound_limits_concurrent_handlers(
        self, event_bus: InMemoryEventBus
    ) -> None:
        release = asyncio.Event()
        active = 0
        peak = 0

        async def handler(msg: ModelEventMessage) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await release.wait()
            active -= 1

        await event_bus.subscribe(TOPIC, "dns", handler, max_in_flight=2)
        for _ in range(5):
            await event_bus.publish(TOPIC, None, b"{}")
        await asyncio.sleep(0.05)
        assert active == 2

        release.set()
        await event_bus.drain()
        assert peak == 2
        assert event_bus.delivered_count == 5

    @pytest.mark.asyncio
    async def test_invalid_bound_rejected(self, event_bus: InMemoryEventBus) -> None:
        async def handler(msg: ModelEventMessage) -> None:
            return None

        with pytest.raises(ValueError):
            await event_bus.subscribe(TOPIC, "dns", handler, max_in_flight=0)


class TestInMemoryEventBusHistory:
    """Bounded history helpers."""

    @pytest.mark.asyncio
    async def test_history_is_bounded_and_filterable(
        self, event_bus: InMemoryEventBus
    ) -> None:
        for i in range(12):
            await event_bus.publish(TOPIC, None, str(i).encode())
        await event_bus.publish("other.topic", None, b"x")

        history = await event_bus.get_event_history(limit=100)
        assert len(history) == 10
        assert history[-1].topic == "other.topic"

        filtered = await event_bus.get_event_history(limit=2, topic=TOPIC)
        assert [m.value for m in filtered] == [b"10", b"11"]

        event_bus.clear_event_history()
        assert await event_bus.get_event_history() == []
