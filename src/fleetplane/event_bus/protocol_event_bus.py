# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Protocol implemented by the in-memory and Kafka event buses.

Handler contract: returning from ``on_message`` acknowledges the message;
raising requests redelivery. ``max_in_flight`` bounds how many messages a
consumer group handles at once.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from fleetplane.event_bus.models import ModelEventHeaders, ModelEventMessage

MessageHandler = Callable[[ModelEventMessage], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


@runtime_checkable
class ProtocolEventBus(Protocol):
    """Publish/subscribe broker abstraction."""

    async def start(self) -> None: ...

    async def close(self) -> None: ...

    async def publish(
        self,
        topic: str,
        key: bytes | None,
        value: bytes,
        headers: ModelEventHeaders | None = None,
    ) -> None: ...

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        on_message: MessageHandler,
        max_in_flight: int | None = None,
    ) -> Unsubscribe: ...

    async def health_check(self) -> dict[str, object]: ...


__all__ = ["MessageHandler", "ProtocolEventBus", "Unsubscribe"]
