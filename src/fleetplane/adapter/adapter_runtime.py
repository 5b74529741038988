# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Adapter worker: subscribes to reconcile events and runs the pipeline.

Handler contract with the event bus:
    - return: the message is acknowledged
    - raise: the bus redelivers the message

Transient infrastructure errors and processing-deadline overruns are
raised; every other outcome is acknowledged, because the action identity
and the store's generation checks make a later Sentinel event redo the
work safely.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from fleetplane.actions import (
    IdempotentActionManager,
    InMemoryActionBackend,
    ProtocolActionBackend,
)
from fleetplane.actions.backend_kubernetes import (
    KubernetesJobBackend,
    load_kubernetes_config,
)
from fleetplane.adapter.model_adapter_config import ModelActionSpec, ModelAdapterConfig
from fleetplane.adapter.reconciliation_pipeline import (
    ModelPipelineResult,
    ReconciliationPipeline,
)
from fleetplane.enums import EnumInfraTransportType
from fleetplane.errors import (
    TRANSIENT_ERRORS,
    FleetError,
    InfraTimeoutError,
    ModelInfraErrorContext,
)
from fleetplane.event_bus import (
    ModelEventMessage,
    ProtocolEventBus,
    Unsubscribe,
    build_reconcile_topic,
)
from fleetplane.models import ModelReconcileEvent
from fleetplane.store import ProtocolResourceStore
from fleetplane.utils import sanitize_error_message, utc_now

logger = logging.getLogger(__name__)


def create_action_backend(spec: ModelActionSpec) -> ProtocolActionBackend:
    """Build the action backend named by an adapter's ``action.backend``."""
    if spec.backend == "kubernetes":
        load_kubernetes_config(spec.kubeconfig)
        return KubernetesJobBackend(
            namespace=spec.namespace,
            ttl_seconds_after_finished=spec.ttl_seconds_after_finished,
        )
    return InMemoryActionBackend(auto_complete=spec.auto_complete)


class AdapterRuntime:
    """Bounded-concurrency worker for one adapter.

    Args:
        config: Adapter definition
        store: Resource store
        event_bus: Started event bus
        backend: Action backend; built from ``config.action`` when omitted
        environment: Topic prefix
    """

    def __init__(
        self,
        config: ModelAdapterConfig,
        store: ProtocolResourceStore,
        event_bus: ProtocolEventBus,
        backend: ProtocolActionBackend | None = None,
        environment: str = "local",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._config = config
        self._bus = event_bus
        self._backend = backend or create_action_backend(config.action)
        self._actions = IdempotentActionManager(
            config.name,
            self._backend,
            revalidate_after_seconds=config.revalidate_after_seconds,
            clock=clock,
        )
        self._pipeline = ReconciliationPipeline(config, store, self._actions)
        self._topic = build_reconcile_topic(environment, config.resource_type)
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._unsubscribe: Unsubscribe | None = None
        self.stage_counts: Counter[str] = Counter()
        self.in_flight = 0

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def backend(self) -> ProtocolActionBackend:
        return self._backend

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> None:
        """Subscribe with the adapter name as consumer group."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = await self._bus.subscribe(
            self._topic,
            self._config.name,
            self.handle_message,
            max_in_flight=self._config.max_concurrency,
        )
        logger.info(
            "Adapter %s subscribed",
            self._config.name,
            extra={
                "topic": self._topic,
                "max_concurrency": self._config.max_concurrency,
            },
        )

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None
            logger.info("Adapter %s unsubscribed", self._config.name)

    async def handle_message(self, message: ModelEventMessage) -> None:
        """Bus handler: decode, bound, run under the processing deadline."""
        try:
            event = ModelReconcileEvent.from_bytes(message.value)
        except ValidationError as e:
            logger.error(
                "Discarding undecodable reconcile event",
                extra={
                    "topic": message.topic,
                    "offset": message.offset,
                    "error": sanitize_error_message(e),
                    "correlation_id": str(message.headers.correlation_id),
                },
            )
            return

        if event.resource_type != self._config.resource_type:
            logger.debug(
                "Ignoring event for resource type %s",
                event.resource_type,
                extra={"correlation_id": str(event.correlation_id)},
            )
            return

        await self.process(event)

    async def process(self, event: ModelReconcileEvent) -> ModelPipelineResult | None:
        """Run the pipeline for one event.

        Returns None when a non-transient error was logged and acknowledged.

        Raises:
            InfraTimeoutError: If the processing deadline is exceeded
            InfraConnectionError, InfraUnavailableError: transient failures
        """
        timeout = self._config.processing_timeout_seconds
        async with self._semaphore:
            self.in_flight += 1
            try:
                async with asyncio.timeout(timeout):
                    result = await self._pipeline.run(event)
            except TimeoutError as e:
                self.stage_counts["timeout"] += 1
                raise InfraTimeoutError(
                    f"Reconcile exceeded processing deadline of {timeout}s",
                    context=ModelInfraErrorContext(
                        transport_type=EnumInfraTransportType.RUNTIME,
                        operation="reconcile",
                        target_name=f"{event.resource_type}/{event.resource_id}",
                        correlation_id=event.correlation_id,
                    ),
                    timeout_seconds=timeout,
                ) from e
            except TRANSIENT_ERRORS as e:
                self.stage_counts["transient_error"] += 1
                logger.warning(
                    "Transient failure; requesting redelivery",
                    extra={
                        "adapter_name": self._config.name,
                        "resource_id": event.resource_id,
                        "error": sanitize_error_message(e),
                        "correlation_id": str(event.correlation_id),
                    },
                )
                raise
            except FleetError as e:
                self.stage_counts["error"] += 1
                logger.error(
                    "Reconcile failed; acknowledging",
                    extra={
                        "adapter_name": self._config.name,
                        "resource_id": event.resource_id,
                        "error_code": e.error_code.value,
                        "error": sanitize_error_message(e),
                        "correlation_id": str(event.correlation_id),
                    },
                )
                return None
            finally:
                self.in_flight -= 1

        self.stage_counts[result.stage.value] += 1
        return result


__all__ = ["AdapterRuntime", "create_action_backend"]
