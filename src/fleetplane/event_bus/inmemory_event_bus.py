# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""In-memory event bus for tests and single-process development.

Delivery semantics:
    - Every consumer group on a topic receives each message once
    - Within a group, subscribers take turns (round-robin)
    - ``publish`` returns once the message is recorded; each group handles
      it in a background task, at most ``max_in_flight`` at a time
    - ``drain`` waits for pending deliveries, including ones published by
      handlers; ``close`` cancels them
    - A handler that raises is retried up to ``max_delivery_attempts``
      times, then the message is dropped for that group and logged

Usage:
    ```python
    bus = InMemoryEventBus(environment="dev")
    await bus.start()

    async def handler(msg):
        print(msg.value)

    unsubscribe = await bus.subscribe("dev.fleet.evt.clusters-reconcile.v1", "dns", handler)
    await bus.publish("dev.fleet.evt.clusters-reconcile.v1", b"c1", b"{}")
    await bus.drain()
    await unsubscribe()
    await bus.close()
    ```
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from uuid import uuid4

from fleetplane.enums import EnumInfraTransportType
from fleetplane.errors import InfraUnavailableError, ModelInfraErrorContext
from fleetplane.event_bus.models import ModelEventHeaders, ModelEventMessage
from fleetplane.event_bus.protocol_event_bus import MessageHandler, Unsubscribe
from fleetplane.utils import sanitize_error_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Subscription:
    subscription_id: str
    group_id: str
    on_message: MessageHandler


class InMemoryEventBus:
    """In-memory implementation of ProtocolEventBus.

    Attributes:
        environment: Environment identifier (e.g. "local", "dev", "test")
        delivered_count: Successful handler invocations since start
        failed_count: Messages dropped after exhausting delivery attempts
        delivery_errors: Exceptions that escaped a background delivery task
    """

    def __init__(
        self,
        environment: str = "local",
        max_history: int = 1000,
        max_delivery_attempts: int = 5,
        redelivery_delay_seconds: float = 0.0,
        max_in_flight: int = 1,
    ) -> None:
        if max_delivery_attempts < 1:
            raise ValueError(
                f"max_delivery_attempts must be >= 1, got {max_delivery_attempts}"
            )
        if max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {max_in_flight}")
        self._environment = environment
        self._max_delivery_attempts = max_delivery_attempts
        self._redelivery_delay = redelivery_delay_seconds
        self._default_max_in_flight = max_in_flight
        # (topic, group) -> requested bound; the semaphore is built on first delivery
        self._group_limits: dict[tuple[str, str], int] = {}
        self._group_slots: dict[tuple[str, str], asyncio.Semaphore] = {}
        self._delivery_tasks: set[asyncio.Task[None]] = set()
        self.delivery_errors: list[BaseException] = []

        self._subscribers: dict[str, list[_Subscription]] = defaultdict(list)
        self._event_history: deque[ModelEventMessage] = deque(maxlen=max_history)
        self._topic_offsets: dict[str, int] = defaultdict(int)
        # (topic, group) -> next subscriber index
        self._round_robin: dict[tuple[str, str], int] = defaultdict(int)
        self._lock = asyncio.Lock()
        self._started = False
        self.delivered_count = 0
        self.failed_count = 0

    @property
    def environment(self) -> str:
        return self._environment

    async def start(self) -> None:
        async with self._lock:
            self._started = True
        logger.info(
            "InMemoryEventBus started", extra={"environment": self._environment}
        )

    async def close(self) -> None:
        """Cancel pending deliveries, clear all subscribers and stop the bus."""
        async with self._lock:
            self._started = False
            tasks = list(self._delivery_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        async with self._lock:
            self._subscribers.clear()
            self._round_robin.clear()
            self._group_limits.clear()
            self._group_slots.clear()
        logger.info(
            "InMemoryEventBus closed",
            extra={"environment": self._environment, "cancelled_deliveries": len(tasks)},
        )

    async def drain(self) -> None:
        """Wait until no delivery is pending, including ones handlers published."""
        while self._delivery_tasks:
            await asyncio.gather(*list(self._delivery_tasks), return_exceptions=True)

    async def publish(
        self,
        topic: str,
        key: bytes | None,
        value: bytes,
        headers: ModelEventHeaders | None = None,
    ) -> None:
        """Record a message and schedule delivery to every subscribed group.

        Returns without waiting for handlers; use ``drain`` to wait.

        Raises:
            InfraUnavailableError: If the bus has not been started
        """
        if headers is None:
            headers = ModelEventHeaders(source=self._environment, event_type=topic)

        async with self._lock:
            if not self._started:
                raise InfraUnavailableError(
                    "Event bus not started. Call start() first.",
                    context=ModelInfraErrorContext(
                        transport_type=EnumInfraTransportType.INMEMORY,
                        operation="publish",
                        target_name=topic,
                        correlation_id=headers.correlation_id,
                    ),
                )
            offset = self._topic_offsets[topic]
            self._topic_offsets[topic] = offset + 1
            message = ModelEventMessage(
                topic=topic,
                key=key,
                value=value,
                headers=headers,
                offset=str(offset),
                partition=0,
            )
            self._event_history.append(message)
            targets = self._select_targets(topic)
            for subscription in targets:
                task = asyncio.create_task(self._deliver_bounded(subscription, message))
                self._delivery_tasks.add(task)
                task.add_done_callback(self._on_delivery_done)

    def _on_delivery_done(self, task: asyncio.Task[None]) -> None:
        self._delivery_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.delivery_errors.append(error)
            logger.error(
                "Delivery task failed: %s",
                sanitize_error_message(error),
                exc_info=error,
                extra={"environment": self._environment},
            )

    def _slots(self, topic: str, group_id: str) -> asyncio.Semaphore:
        key = (topic, group_id)
        slots = self._group_slots.get(key)
        if slots is None:
            limit = self._group_limits.get(key, self._default_max_in_flight)
            slots = asyncio.Semaphore(limit)
            self._group_slots[key] = slots
        return slots

    async def _deliver_bounded(
        self, subscription: _Subscription, message: ModelEventMessage
    ) -> None:
        async with self._slots(message.topic, subscription.group_id):
            await self._deliver(subscription, message)

    def _select_targets(self, topic: str) -> list[_Subscription]:
        by_group: dict[str, list[_Subscription]] = defaultdict(list)
        for subscription in self._subscribers.get(topic, []):
            by_group[subscription.group_id].append(subscription)
        targets = []
        for group_id, members in by_group.items():
            index = self._round_robin[(topic, group_id)]
            targets.append(members[index % len(members)])
            self._round_robin[(topic, group_id)] = index + 1
        return targets

    async def _deliver(
        self, subscription: _Subscription, message: ModelEventMessage
    ) -> None:
        for attempt in range(1, self._max_delivery_attempts + 1):
            attempt_message = message
            if attempt > 1:
                attempt_message = message.model_copy(
                    update={
                        "headers": message.headers.model_copy(
                            update={"delivery_attempt": attempt}
                        )
                    }
                )
            try:
                await subscription.on_message(attempt_message)
            except Exception as e:
                logger.warning(
                    "Subscriber handler failed (attempt %d/%d)",
                    attempt,
                    self._max_delivery_attempts,
                    extra={
                        "topic": message.topic,
                        "group_id": subscription.group_id,
                        "offset": message.offset,
                        "error": sanitize_error_message(e),
                        "correlation_id": str(message.headers.correlation_id),
                    },
                )
                if attempt < self._max_delivery_attempts and self._redelivery_delay:
                    await asyncio.sleep(self._redelivery_delay)
                continue
            self.delivered_count += 1
            return

        self.failed_count += 1
        logger.error(
            "Message dropped after %d delivery attempts",
            self._max_delivery_attempts,
            extra={
                "topic": message.topic,
                "group_id": subscription.group_id,
                "offset": message.offset,
                "correlation_id": str(message.headers.correlation_id),
            },
        )

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        on_message: MessageHandler,
        max_in_flight: int | None = None,
    ) -> Unsubscribe:
        """Register a handler; returns an async function that removes it.

        ``max_in_flight`` bounds concurrent deliveries for the group; the
        largest value requested before the group's first delivery wins.
        """
        if max_in_flight is not None and max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {max_in_flight}")
        subscription = _Subscription(
            subscription_id=str(uuid4()), group_id=group_id, on_message=on_message
        )
        async with self._lock:
            self._subscribers[topic].append(subscription)
            if max_in_flight is not None:
                key = (topic, group_id)
                self._group_limits[key] = max(self._group_limits.get(key, 0), max_in_flight)
        logger.debug(
            "Subscriber added",
            extra={
                "topic": topic,
                "group_id": group_id,
                "subscription_id": subscription.subscription_id,
            },
        )

        async def unsubscribe() -> None:
            async with self._lock:
                subs = self._subscribers.get(topic, [])
                if subscription in subs:
                    subs.remove(subscription)
                if not subs:
                    self._subscribers.pop(topic, None)

        return unsubscribe

    async def health_check(self) -> dict[str, object]:
        async with self._lock:
            subscriber_count = sum(len(subs) for subs in self._subscribers.values())
            topic_count = len(self._subscribers)
            history_size = len(self._event_history)
        return {
            "healthy": self._started,
            "started": self._started,
            "environment": self._environment,
            "subscriber_count": subscriber_count,
            "topic_count": topic_count,
            "history_size": history_size,
            "pending_deliveries": len(self._delivery_tasks),
        }

    async def get_event_history(
        self, limit: int = 100, topic: str | None = None
    ) -> list[ModelEventMessage]:
        """Recent published messages, most recent last."""
        async with self._lock:
            history = list(self._event_history)
        if topic:
            history = [msg for msg in history if msg.topic == topic]
        return history[-limit:]

    def clear_event_history(self) -> None:
        self._event_history.clear()

    async def get_subscriber_count(self, topic: str | None = None) -> int:
        async with self._lock:
            if topic:
                return len(self._subscribers.get(topic, []))
            return sum(len(subs) for subs in self._subscribers.values())

    async def get_topic_offset(self, topic: str) -> int:
        async with self._lock:
            return self._topic_offsets.get(topic, 0)


__all__ = ["InMemoryEventBus"]
