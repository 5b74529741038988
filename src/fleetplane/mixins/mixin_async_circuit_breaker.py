# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Coroutine-safe async circuit breaker mixin.

Guards the store HTTP client, the Postgres store and the Kafka producer.

Circuit Breaker States:
    - CLOSED: Normal operation, requests allowed
    - OPEN: Circuit tripped, requests fail fast with InfraUnavailableError
    - HALF_OPEN: Reset timeout elapsed, the next request tests recovery

Usage:
    ```python
    class ResourceStoreClient(MixinAsyncCircuitBreaker):
        def __init__(self, base_url):
            self._init_circuit_breaker(
                threshold=5,
                reset_timeout=30.0,
                service_name=f"resource-store.{base_url}",
                transport_type=EnumInfraTransportType.HTTP,
            )

        async def get_resource(self, ...):
            async with self._circuit_breaker_lock:
                await self._check_circuit_breaker("get_resource", correlation_id)
            try:
                response = await self._client.get(...)
            except httpx.TransportError:
                async with self._circuit_breaker_lock:
                    await self._record_circuit_failure("get_resource", correlation_id)
                raise
            async with self._circuit_breaker_lock:
                await self._reset_circuit_breaker()
    ```

Concurrency Safety:
    Every ``_check``/``_record``/``_reset`` call REQUIRES the caller to hold
    ``_circuit_breaker_lock``. asyncio.Lock gives coroutine safety only.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from uuid import UUID, uuid4

from fleetplane.enums import EnumInfraTransportType
from fleetplane.errors import InfraUnavailableError, ModelInfraErrorContext

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker state.

    State Transitions:
        CLOSED -> OPEN: Failure count >= threshold
        OPEN -> HALF_OPEN: Reset timeout elapsed
        HALF_OPEN -> CLOSED: First successful operation
        HALF_OPEN -> OPEN: Failure count reaches threshold again
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class MixinAsyncCircuitBreaker:
    """Async circuit breaker mixin.

    State Variables:
        _circuit_breaker_failures: Consecutive failure counter
        _circuit_breaker_open: True while the circuit is open
        _circuit_breaker_open_until: Epoch seconds when the circuit half-opens
        _circuit_breaker_lock: asyncio.Lock the caller must hold
    """

    def _init_circuit_breaker(
        self,
        threshold: int = 5,
        reset_timeout: float = 60.0,
        service_name: str = "unknown",
        transport_type: EnumInfraTransportType = EnumInfraTransportType.HTTP,
    ) -> None:
        """Initialize circuit breaker state.

        Raises:
            ValueError: If threshold < 1 or reset_timeout < 0
        """
        if threshold < 1:
            raise ValueError(f"Circuit breaker threshold must be >= 1, got {threshold}")
        if reset_timeout < 0:
            raise ValueError(
                f"Circuit breaker reset_timeout must be >= 0, got {reset_timeout}"
            )

        self._circuit_breaker_failures = 0
        self._circuit_breaker_open = False
        self._circuit_breaker_open_until: float = 0.0
        self._half_open = False

        self.circuit_breaker_threshold = threshold
        self.circuit_breaker_reset_timeout = reset_timeout
        self.service_name = service_name
        self.transport_type = transport_type

        self._circuit_breaker_lock = asyncio.Lock()

    @property
    def circuit_state(self) -> CircuitState:
        if self._circuit_breaker_open:
            return CircuitState.OPEN
        if self._half_open:
            return CircuitState.HALF_OPEN
        return CircuitState.CLOSED

    async def _check_circuit_breaker(
        self, operation: str, correlation_id: UUID | None = None
    ) -> None:
        """Raise InfraUnavailableError if the circuit is open.

        REQUIRES: self._circuit_breaker_lock must be held by caller.
        """
        if not self._circuit_breaker_lock.locked():
            logger.error(
                "Circuit breaker lock not held during state check",
                extra={"service": self.service_name, "operation": operation},
            )

        if not self._circuit_breaker_open:
            return

        current_time = time.time()
        if current_time >= self._circuit_breaker_open_until:
            self._circuit_breaker_open = False
            self._circuit_breaker_failures = 0
            self._half_open = True
            logger.info(
                "Circuit breaker transitioning to half-open for %s",
                self.service_name,
                extra={"service": self.service_name, "operation": operation},
            )
            return

        retry_after = max(0, int(self._circuit_breaker_open_until - current_time))
        context = ModelInfraErrorContext(
            transport_type=self.transport_type,
            operation=operation,
            target_name=self.service_name,
            correlation_id=correlation_id or uuid4(),
        )
        raise InfraUnavailableError(
            f"Circuit breaker is open for {self.service_name}",
            context=context,
            circuit_state=CircuitState.OPEN.value,
            retry_after_seconds=retry_after,
        )

    async def _record_circuit_failure(
        self, operation: str, correlation_id: UUID | None = None
    ) -> None:
        """Count a failure and open the circuit at the threshold.

        REQUIRES: self._circuit_breaker_lock must be held by caller.
        """
        if not self._circuit_breaker_lock.locked():
            logger.error(
                "Circuit breaker lock not held during failure recording",
                extra={"service": self.service_name, "operation": operation},
            )

        self._circuit_breaker_failures += 1
        if self._half_open or self._circuit_breaker_failures >= self.circuit_breaker_threshold:
            self._circuit_breaker_open = True
            self._half_open = False
            self._circuit_breaker_open_until = (
                time.time() + self.circuit_breaker_reset_timeout
            )
            logger.warning(
                "Circuit breaker opened for %s after %d failures",
                self.service_name,
                self._circuit_breaker_failures,
                extra={
                    "service": self.service_name,
                    "operation": operation,
                    "failure_count": self._circuit_breaker_failures,
                    "threshold": self.circuit_breaker_threshold,
                    "reset_timeout": self.circuit_breaker_reset_timeout,
                    "correlation_id": str(correlation_id) if correlation_id else None,
                },
            )

    async def _reset_circuit_breaker(self) -> None:
        """Close the circuit after a successful operation.

        REQUIRES: self._circuit_breaker_lock must be held by caller.
        """
        if not self._circuit_breaker_lock.locked():
            logger.error(
                "Circuit breaker lock not held during reset",
                extra={"service": self.service_name},
            )

        if self._circuit_breaker_open or self._circuit_breaker_failures > 0 or self._half_open:
            logger.info(
                "Circuit breaker reset to closed for %s",
                self.service_name,
                extra={
                    "service": self.service_name,
                    "previous_failures": self._circuit_breaker_failures,
                },
            )
        self._circuit_breaker_open = False
        self._half_open = False
        self._circuit_breaker_failures = 0
        self._circuit_breaker_open_until = 0.0


__all__ = ["CircuitState", "MixinAsyncCircuitBreaker"]
