# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Sentinel: periodic, level-triggered reconcile event emitter.

Each tick lists the shard's resources from the store, decides per resource
whether a reconcile is due, and publishes one event per due resource to
``<env>.fleet.evt.<resource_type>-reconcile.v1``. Sentinel never waits for
adapters; a failed publish is retried by a later tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from fleetplane.enums import EnumReconcileReason
from fleetplane.event_bus import (
    ModelEventHeaders,
    ProtocolEventBus,
    build_reconcile_topic,
)
from fleetplane.models import RECONCILE_EVENT_TYPE, ModelReconcileEvent, ModelResource
from fleetplane.sentinel.model_sentinel_config import ModelSentinelConfig
from fleetplane.sentinel.sentinel_decision import decide_reconcile
from fleetplane.store import ProtocolResourceStore
from fleetplane.utils import parse_label_selector, sanitize_error_message, utc_now

logger = logging.getLogger(__name__)


class ModelSentinelTickResult(BaseModel):
    """Counters for one Sentinel tick."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tick_id: UUID = Field(default_factory=uuid4)
    evaluated: int = 0
    published: int = 0
    skipped: int = 0
    errors: int = 0
    duration_seconds: float = 0.0


class SentinelService:
    """Polls the store and publishes reconcile events.

    Args:
        store: Resource store (usually the HTTP client)
        event_bus: Started event bus
        config: Shard configuration
        clock: Source of "now", replaceable in tests
    """

    def __init__(
        self,
        store: ProtocolResourceStore,
        event_bus: ProtocolEventBus,
        config: ModelSentinelConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._bus = event_bus
        self._config = config
        self._clock = clock
        self._selector = parse_label_selector(config.label_selector)
        self._backoff_ready = timedelta(seconds=config.backoff_ready_seconds)
        self._backoff_not_ready = timedelta(seconds=config.backoff_not_ready_seconds)
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._stop_event = asyncio.Event()
        self._last_tick: ModelSentinelTickResult | None = None

    @property
    def last_tick(self) -> ModelSentinelTickResult | None:
        return self._last_tick

    async def tick(self) -> ModelSentinelTickResult:
        """Run one poll over every configured resource type."""
        tick_id = uuid4()
        started = time.monotonic()
        now = self._clock()
        evaluated = published = skipped = errors = 0

        for resource_type in self._config.resource_types:
            try:
                resources = await self._store.list_resources(
                    resource_type, self._selector, correlation_id=tick_id
                )
            except Exception as e:
                errors += 1
                logger.warning(
                    "Failed to list %s; skipping type for this tick",
                    resource_type,
                    extra={
                        "error": sanitize_error_message(e),
                        "correlation_id": str(tick_id),
                    },
                )
                continue

            due: list[tuple[ModelResource, EnumReconcileReason]] = []
            for resource in resources:
                evaluated += 1
                reason = decide_reconcile(
                    resource, now, self._backoff_ready, self._backoff_not_ready
                )
                if reason is None:
                    skipped += 1
                else:
                    due.append((resource, reason))

            outcomes = await asyncio.gather(
                *(self._publish_bounded(resource, reason) for resource, reason in due)
            )
            published += sum(1 for ok in outcomes if ok)
            errors += sum(1 for ok in outcomes if not ok)

        result = ModelSentinelTickResult(
            tick_id=tick_id,
            evaluated=evaluated,
            published=published,
            skipped=skipped,
            errors=errors,
            duration_seconds=time.monotonic() - started,
        )
        self._last_tick = result
        logger.info(
            "Sentinel tick complete",
            extra={
                "evaluated": evaluated,
                "published": published,
                "skipped": skipped,
                "errors": errors,
                "duration_seconds": round(result.duration_seconds, 3),
                "correlation_id": str(tick_id),
            },
        )
        return result

    async def _publish_bounded(
        self, resource: ModelResource, reason: EnumReconcileReason
    ) -> bool:
        async with self._semaphore:
            try:
                await self.publish_event(resource, reason)
            except Exception as e:
                logger.warning(
                    "Failed to publish reconcile event for %s/%s",
                    resource.resource_type,
                    resource.id,
                    extra={"reason": reason.value, "error": sanitize_error_message(e)},
                )
                return False
        return True

    async def publish_event(
        self, resource: ModelResource, reason: EnumReconcileReason
    ) -> ModelReconcileEvent:
        """Publish one reconcile event at the resource's current generation."""
        event = ModelReconcileEvent(
            resource_type=resource.resource_type,
            resource_id=resource.id,
            generation=resource.generation,
            reason=reason,
            source=self._config.source,
        )
        topic = build_reconcile_topic(self._config.event_bus.environment, resource.resource_type)
        headers = ModelEventHeaders(
            correlation_id=event.correlation_id,
            message_id=event.id,
            source=self._config.source,
            event_type=RECONCILE_EVENT_TYPE,
        )
        await self._bus.publish(topic, resource.id.encode("utf-8"), event.to_bytes(), headers)
        logger.debug(
            "Published reconcile event for %s/%s",
            resource.resource_type,
            resource.id,
            extra={
                "generation": resource.generation,
                "reason": reason.value,
                "correlation_id": str(event.correlation_id),
            },
        )
        return event

    async def trigger(self, resource_type: str, resource_id: str) -> ModelReconcileEvent:
        """Publish a ``Manual`` reconcile event regardless of backoff."""
        resource = await self._store.get_resource(resource_type, resource_id)
        return await self.publish_event(resource, EnumReconcileReason.MANUAL)

    async def run(self) -> None:
        """Tick every ``poll_interval_seconds`` until ``stop()``."""
        logger.info(
            "Sentinel started",
            extra={
                "resource_types": list(self._config.resource_types),
                "label_selector": str(self._selector),
                "poll_interval_seconds": self._config.poll_interval_seconds,
            },
        )
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.exception(
                    "Sentinel tick failed", extra={"error": sanitize_error_message(e)}
                )
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._config.poll_interval_seconds
                )
            except TimeoutError:
                continue
        logger.info("Sentinel stopped")

    def stop(self) -> None:
        self._stop_event.set()


__all__ = ["ModelSentinelTickResult", "SentinelService"]
