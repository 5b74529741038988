# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Kafka event bus built on aiokafka.

Features:
    - Idempotent producer (``acks=all``) guarded by a circuit breaker
    - Publish retry with exponential backoff and jitter
    - One consumer per (topic, group), group id ``<environment>.<group>``
    - Up to ``max_in_flight`` handler calls per consumer group run as tasks
    - Manual offset commit of the contiguous finished prefix per partition
    - Seek back to the failed offset when the handler raises, bounded by
      ``max_delivery_attempts``; an exhausted message is committed past and
      logged, since Sentinel re-emits the work on a later tick

Environment Variables:
    FLEET_ENVIRONMENT: Topic and consumer group prefix
    FLEET_KAFKA_BOOTSTRAP_SERVERS: Comma-separated broker list

Usage:
    ```python
    bus = KafkaEventBus(ModelEventBusConfig(type="kafka", environment="dev"))
    await bus.start()
    unsubscribe = await bus.subscribe(topic, "dns", handler)
    await bus.publish(topic, b"cluster-1", payload)
    await bus.close()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from uuid import UUID, uuid4

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, TopicPartition
from aiokafka.structs import ConsumerRecord

from fleetplane.enums import EnumInfraTransportType
from fleetplane.errors import (
    InfraConnectionError,
    InfraTimeoutError,
    InfraUnavailableError,
    ModelInfraErrorContext,
    ProtocolConfigurationError,
)
from fleetplane.event_bus.model_event_bus_config import ModelEventBusConfig
from fleetplane.event_bus.models import ModelEventHeaders, ModelEventMessage
from fleetplane.event_bus.protocol_event_bus import MessageHandler, Unsubscribe
from fleetplane.event_bus.topic_constants import TOPIC_NAME_PATTERN
from fleetplane.mixins import MixinAsyncCircuitBreaker
from fleetplane.utils import sanitize_error_message

logger = logging.getLogger(__name__)


_RUNNING = "running"
_RETRY = "retry"
_DONE = "done"


@dataclass
class _PartitionOffsets:
    """Offsets fetched on one partition and not yet committed."""

    pending: dict[int, str] = field(default_factory=dict)
    committed: int = -1

    def is_claimed(self, offset: int) -> bool:
        """True when a seek-back refetched an offset already running or handled."""
        return offset < self.committed or self.pending.get(offset) in (_RUNNING, _DONE)

    def resume_offset(self) -> int:
        return min(o for o, state in self.pending.items() if state == _RETRY)

    def pop_committable(self) -> int | None:
        """Drop the finished prefix and return the next offset to commit."""
        commit_at = None
        for offset in sorted(self.pending):
            if self.pending[offset] != _DONE:
                break
            del self.pending[offset]
            commit_at = offset + 1
        if commit_at is not None:
            self.committed = commit_at
        return commit_at


@dataclass
class _ConsumerGroup:
    """Subscriptions sharing one aiokafka consumer."""

    topic: str
    group_id: str
    handlers: list[tuple[str, MessageHandler]] = field(default_factory=list)
    consumer: AIOKafkaConsumer | None = None
    task: asyncio.Task[None] | None = None
    next_handler: int = 0
    attempts: dict[tuple[TopicPartition, int], int] = field(default_factory=dict)
    max_in_flight: int | None = None
    slots: asyncio.Semaphore | None = None
    in_flight: set[asyncio.Task[None]] = field(default_factory=set)
    partitions: dict[TopicPartition, _PartitionOffsets] = field(default_factory=dict)

    def offsets(self, tp: TopicPartition) -> _PartitionOffsets:
        return self.partitions.setdefault(tp, _PartitionOffsets())

    def pick_handler(self) -> MessageHandler | None:
        if not self.handlers:
            return None
        _, handler = self.handlers[self.next_handler % len(self.handlers)]
        self.next_handler += 1
        return handler


def sanitize_bootstrap_servers(servers: str) -> str:
    """Strip ``user:pass@`` prefixes before servers are logged.

    Example:
        >>> sanitize_bootstrap_servers("user:pass@kafka:9092,kafka2:9092")
        'kafka:9092,kafka2:9092'
    """
    if not servers:
        return "unknown"
    sanitized = []
    for server in (s.strip() for s in servers.split(",")):
        sanitized.append(server.rsplit("@", 1)[-1])
    return ",".join(sanitized)


class KafkaEventBus(MixinAsyncCircuitBreaker):
    """aiokafka implementation of ProtocolEventBus."""

    def __init__(self, config: ModelEventBusConfig) -> None:
        self._config = config
        self._environment = config.environment
        self._bootstrap_servers = config.bootstrap_servers
        self._timeout_seconds = config.timeout_seconds
        self._producer: AIOKafkaProducer | None = None
        self._producer_lock = asyncio.Lock()
        self._lock = asyncio.Lock()
        self._groups: dict[tuple[str, str], _ConsumerGroup] = {}
        self._started = False
        self._shutdown = False
        self.committed_count: dict[str, int] = defaultdict(int)
        self._init_circuit_breaker(
            threshold=config.circuit_breaker_threshold,
            reset_timeout=config.circuit_breaker_reset_timeout,
            service_name=f"kafka.{config.environment}",
            transport_type=EnumInfraTransportType.KAFKA,
        )

    @property
    def environment(self) -> str:
        return self._environment

    def _context(
        self, operation: str, correlation_id: UUID | None, target: str | None = None
    ) -> ModelInfraErrorContext:
        return ModelInfraErrorContext(
            transport_type=EnumInfraTransportType.KAFKA,
            operation=operation,
            target_name=target or f"kafka.{self._environment}",
            correlation_id=correlation_id,
        )

    async def start(self) -> None:
        """Start the producer and any consumers registered before start.

        Raises:
            InfraTimeoutError: If the producer does not connect in time
            InfraConnectionError: If the producer fails to connect
            InfraUnavailableError: If the circuit breaker is open
        """
        correlation_id = uuid4()
        async with self._lock:
            if self._started:
                return
            async with self._circuit_breaker_lock:
                await self._check_circuit_breaker("start", correlation_id)

            producer = AIOKafkaProducer(
                bootstrap_servers=self._bootstrap_servers,
                acks=self._config.acks,
                enable_idempotence=self._config.enable_idempotence,
            )
            try:
                await asyncio.wait_for(producer.start(), timeout=self._timeout_seconds)
            except TimeoutError as e:
                await self._stop_quietly(producer, "producer")
                async with self._circuit_breaker_lock:
                    await self._record_circuit_failure("start", correlation_id)
                raise InfraTimeoutError(
                    f"Timeout connecting to Kafka after {self._timeout_seconds}s",
                    context=self._context("start", correlation_id),
                    servers=sanitize_bootstrap_servers(self._bootstrap_servers),
                    timeout_seconds=self._timeout_seconds,
                ) from e
            except Exception as e:
                await self._stop_quietly(producer, "producer")
                async with self._circuit_breaker_lock:
                    await self._record_circuit_failure("start", correlation_id)
                raise InfraConnectionError(
                    f"Failed to connect to Kafka: {sanitize_error_message(e)}",
                    context=self._context("start", correlation_id),
                    servers=sanitize_bootstrap_servers(self._bootstrap_servers),
                ) from e

            async with self._producer_lock:
                self._producer = producer
            self._started = True
            self._shutdown = False
            async with self._circuit_breaker_lock:
                await self._reset_circuit_breaker()

            for group in self._groups.values():
                if group.consumer is None and group.handlers:
                    await self._start_consumer(group)

        logger.info(
            "KafkaEventBus started",
            extra={
                "environment": self._environment,
                "bootstrap_servers": sanitize_bootstrap_servers(self._bootstrap_servers),
            },
        )

    @staticmethod
    async def _stop_quietly(client: AIOKafkaProducer | AIOKafkaConsumer, kind: str) -> None:
        try:
            await client.stop()
        except Exception as e:
            logger.warning(
                "Error stopping Kafka %s: %s", kind, sanitize_error_message(e)
            )

    async def close(self) -> None:
        """Stop consumers and the producer. Safe to call more than once."""
        async with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            self._started = False
            groups = list(self._groups.values())
            self._groups.clear()

        for group in groups:
            await self._stop_consumer(group)

        async with self._producer_lock:
            if self._producer is not None:
                await self._stop_quietly(self._producer, "producer")
                self._producer = None

        logger.info("KafkaEventBus closed", extra={"environment": self._environment})

    def _validate_topic_name(self, topic: str, correlation_id: UUID) -> None:
        if not TOPIC_NAME_PATTERN.match(topic):
            raise ProtocolConfigurationError(
                f"Invalid Kafka topic name: {topic!r}",
                context=self._context("validate_topic", correlation_id, topic),
            )

    async def publish(
        self,
        topic: str,
        key: bytes | None,
        value: bytes,
        headers: ModelEventHeaders | None = None,
    ) -> None:
        """Publish with retry and circuit breaker protection.

        Raises:
            InfraUnavailableError: If the bus is not started or the circuit is open
            InfraConnectionError: If every attempt failed
        """
        if headers is None:
            headers = ModelEventHeaders(source=self._environment, event_type=topic)
        correlation_id = headers.correlation_id

        if not self._started:
            raise InfraUnavailableError(
                "Event bus not started. Call start() first.",
                context=self._context("publish", correlation_id, topic),
            )
        self._validate_topic_name(topic, correlation_id)

        async with self._circuit_breaker_lock:
            await self._check_circuit_breaker("publish", correlation_id)

        await self._publish_with_retry(topic, key, value, headers)

    async def _publish_with_retry(
        self,
        topic: str,
        key: bytes | None,
        value: bytes,
        headers: ModelEventHeaders,
    ) -> None:
        correlation_id = headers.correlation_id
        max_attempts = self._config.max_retry_attempts + 1
        last_exception: Exception | None = None

        for attempt in range(max_attempts):
            try:
                async with self._producer_lock:
                    if self._producer is None:
                        raise InfraConnectionError(
                            "Kafka producer not initialized",
                            context=self._context("publish", correlation_id, topic),
                        )
                    future = await self._producer.send(
                        topic, value=value, key=key, headers=headers.to_kafka()
                    )
                record_metadata = await asyncio.wait_for(
                    future, timeout=self._timeout_seconds
                )
                async with self._circuit_breaker_lock:
                    await self._reset_circuit_breaker()
                logger.debug(
                    "Published to topic %s",
                    topic,
                    extra={
                        "partition": record_metadata.partition,
                        "offset": record_metadata.offset,
                        "correlation_id": str(correlation_id),
                    },
                )
                return
            except Exception as e:
                last_exception = e
                async with self._circuit_breaker_lock:
                    await self._record_circuit_failure("publish", correlation_id)
                logger.warning(
                    "Publish failed (attempt %d/%d)",
                    attempt + 1,
                    max_attempts,
                    extra={
                        "topic": topic,
                        "error": sanitize_error_message(e),
                        "correlation_id": str(correlation_id),
                    },
                )

            if attempt < max_attempts - 1:
                delay = self._config.retry_backoff_base * (2**attempt)
                delay *= random.uniform(0.5, 1.5)
                await asyncio.sleep(delay)

        if isinstance(last_exception, TimeoutError):
            raise InfraTimeoutError(
                f"Timeout publishing to {topic} after {max_attempts} attempts",
                context=self._context("publish", correlation_id, topic),
                timeout_seconds=self._timeout_seconds,
            ) from last_exception
        raise InfraConnectionError(
            f"Failed to publish to {topic} after {max_attempts} attempts",
            context=self._context("publish", correlation_id, topic),
        ) from last_exception

    async def subscribe(
        self,
        topic: str,
        group_id: str,
        on_message: MessageHandler,
        max_in_flight: int | None = None,
    ) -> Unsubscribe:
        """Register a handler for ``(topic, group_id)``.

        The consumer starts immediately when the bus is running, otherwise
        on ``start()``. ``max_in_flight`` bounds concurrent handler calls for
        the group; the largest value requested by its subscribers wins.
        """
        subscription_id = str(uuid4())
        self._validate_topic_name(topic, uuid4())
        if max_in_flight is not None and max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {max_in_flight}")

        async with self._lock:
            group = self._groups.get((topic, group_id))
            if group is None:
                group = _ConsumerGroup(topic=topic, group_id=group_id)
                self._groups[(topic, group_id)] = group
            if max_in_flight is not None and group.consumer is None:
                group.max_in_flight = max(group.max_in_flight or 0, max_in_flight)
            group.handlers.append((subscription_id, on_message))
            if self._started and group.consumer is None:
                await self._start_consumer(group)

        logger.debug(
            "Subscriber added",
            extra={"topic": topic, "group_id": group_id, "subscription_id": subscription_id},
        )

        async def unsubscribe() -> None:
            async with self._lock:
                current = self._groups.get((topic, group_id))
                if current is None:
                    return
                current.handlers = [h for h in current.handlers if h[0] != subscription_id]
                if current.handlers:
                    return
                self._groups.pop((topic, group_id), None)
            await self._stop_consumer(current)

        return unsubscribe

    async def _start_consumer(self, group: _ConsumerGroup) -> None:
        correlation_id = uuid4()
        consumer = AIOKafkaConsumer(
            group.topic,
            bootstrap_servers=self._bootstrap_servers,
            group_id=f"{self._environment}.{group.group_id}",
            auto_offset_reset=self._config.auto_offset_reset,
            enable_auto_commit=False,
        )
        try:
            await asyncio.wait_for(consumer.start(), timeout=self._timeout_seconds)
        except TimeoutError as e:
            await self._stop_quietly(consumer, "consumer")
            raise InfraTimeoutError(
                f"Timeout starting consumer for topic {group.topic}",
                context=self._context("start_consumer", correlation_id, group.topic),
                group_id=group.group_id,
                timeout_seconds=self._timeout_seconds,
            ) from e
        except Exception as e:
            await self._stop_quietly(consumer, "consumer")
            raise InfraConnectionError(
                f"Failed to start consumer for topic {group.topic}",
                context=self._context("start_consumer", correlation_id, group.topic),
                group_id=group.group_id,
            ) from e

        group.consumer = consumer
        max_in_flight = group.max_in_flight or self._config.max_in_flight
        group.slots = asyncio.Semaphore(max_in_flight)
        group.task = asyncio.create_task(self._consume_loop(group))
        logger.info(
            "Started consumer for topic %s",
            group.topic,
            extra={
                "topic": group.topic,
                "group_id": group.group_id,
                "max_in_flight": max_in_flight,
            },
        )

    async def _stop_consumer(self, group: _ConsumerGroup) -> None:
        if group.task is not None and not group.task.done():
            group.task.cancel()
            try:
                await group.task
            except asyncio.CancelledError:
                logger.debug("Consumer task cancelled", extra={"topic": group.topic})
        group.task = None
        tasks = list(group.in_flight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        group.in_flight.clear()
        group.partitions.clear()
        group.attempts.clear()
        if group.consumer is not None:
            await self._stop_quietly(group.consumer, "consumer")
            group.consumer = None

    async def _consume_loop(self, group: _ConsumerGroup) -> None:
        consumer = group.consumer
        slots = group.slots
        if consumer is None or slots is None:
            return
        while not self._shutdown:
            try:
                record = await consumer.getone()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    "Error fetching from topic %s",
                    group.topic,
                    extra={"group_id": group.group_id, "error": sanitize_error_message(e)},
                )
                await asyncio.sleep(1.0)
                continue

            tp = TopicPartition(record.topic, record.partition)
            offsets = group.offsets(tp)
            if offsets.is_claimed(record.offset):
                continue
            offsets.pending[record.offset] = _RUNNING
            await slots.acquire()
            task = asyncio.create_task(self._dispatch(group, consumer, record, slots))
            group.in_flight.add(task)
            task.add_done_callback(group.in_flight.discard)

    async def _dispatch(
        self,
        group: _ConsumerGroup,
        consumer: AIOKafkaConsumer,
        record: ConsumerRecord,
        slots: asyncio.Semaphore,
    ) -> None:
        try:
            await self._handle_record(group, consumer, record)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error handling record from topic %s",
                group.topic,
                extra={
                    "group_id": group.group_id,
                    "partition": record.partition,
                    "offset": record.offset,
                    "error": sanitize_error_message(e),
                },
            )
        finally:
            slots.release()

    async def _handle_record(
        self,
        group: _ConsumerGroup,
        consumer: AIOKafkaConsumer,
        record: ConsumerRecord,
    ) -> None:
        tp = TopicPartition(record.topic, record.partition)
        offset: int = record.offset
        offsets = group.offsets(tp)
        offsets.pending[offset] = _RUNNING
        attempt = group.attempts.get((tp, offset), 0) + 1
        headers = ModelEventHeaders.from_kafka(record.headers, delivery_attempt=attempt)
        message = ModelEventMessage(
            topic=tp.topic,
            key=record.key,
            value=record.value or b"",
            headers=headers,
            offset=str(offset),
            partition=tp.partition,
        )
        handler = group.pick_handler()
        if handler is None:
            offsets.pending[offset] = _RETRY
            consumer.seek(tp, offsets.resume_offset())
            return

        try:
            await handler(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt < self._config.max_delivery_attempts:
                group.attempts[(tp, offset)] = attempt
                logger.warning(
                    "Handler failed, seeking back for redelivery (attempt %d/%d)",
                    attempt,
                    self._config.max_delivery_attempts,
                    extra={
                        "topic": tp.topic,
                        "partition": tp.partition,
                        "offset": offset,
                        "group_id": group.group_id,
                        "error": sanitize_error_message(e),
                        "correlation_id": str(headers.correlation_id),
                    },
                )
                if self._config.redelivery_delay_seconds:
                    await asyncio.sleep(self._config.redelivery_delay_seconds)
                # Later offsets refetched by the seek are skipped while claimed.
                offsets.pending[offset] = _RETRY
                consumer.seek(tp, offsets.resume_offset())
                return
            logger.error(
                "Message dropped after %d delivery attempts",
                attempt,
                extra={
                    "topic": tp.topic,
                    "partition": tp.partition,
                    "offset": offset,
                    "group_id": group.group_id,
                    "correlation_id": str(headers.correlation_id),
                },
            )

        group.attempts.pop((tp, offset), None)
        offsets.pending[offset] = _DONE
        self.committed_count[group.group_id] += 1
        commit_at = offsets.pop_committable()
        if commit_at is None:
            return
        try:
            await consumer.commit({tp: commit_at})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A later commit on this partition covers the skipped one.
            logger.warning(
                "Offset commit failed",
                extra={
                    "topic": tp.topic,
                    "partition": tp.partition,
                    "offset": commit_at,
                    "group_id": group.group_id,
                    "error": sanitize_error_message(e),
                },
            )

    async def health_check(self) -> dict[str, object]:
        async with self._lock:
            consumer_count = sum(1 for g in self._groups.values() if g.consumer is not None)
        return {
            "healthy": self._started and self._producer is not None,
            "started": self._started,
            "environment": self._environment,
            "circuit_state": self.circuit_state.value,
            "consumer_count": consumer_count,
            "bootstrap_servers": sanitize_bootstrap_servers(self._bootstrap_servers),
        }


__all__ = ["KafkaEventBus", "sanitize_bootstrap_servers"]
