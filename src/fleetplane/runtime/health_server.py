# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Liveness/readiness HTTP server for Sentinel and adapter processes.

Endpoints:
    GET /health: 200 while the process is serving
    GET /ready: 200 when the readiness check reports ready, else 503

Example:
    >>> async def check_ready():
    ...     return True, {"subscribed": True}
    >>> server = HealthServer("sentinel", check_ready, port=8081)
    >>> await server.start()
    >>> await server.stop()
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from aiohttp import web

from fleetplane.enums import EnumInfraTransportType
from fleetplane.errors import FleetError, ModelInfraErrorContext
from fleetplane.utils import generate_correlation_id, sanitize_error_message

logger = logging.getLogger(__name__)

DEFAULT_HTTP_HOST = "0.0.0.0"  # noqa: S104 - container networking

ReadinessCheck = Callable[[], Awaitable[tuple[bool, dict[str, object]]]]


class HealthServer:
    """Minimal aiohttp server exposing /health and /ready."""

    def __init__(
        self,
        service_name: str,
        readiness: ReadinessCheck,
        port: int,
        host: str = DEFAULT_HTTP_HOST,
        version: str = "unknown",
    ) -> None:
        self._service_name = service_name
        self._readiness = readiness
        self._port = port
        self._host = host
        self._version = version
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/ready", self._handle_ready)
        return app

    async def start(self) -> None:
        """Bind and start serving.

        Raises:
            FleetError: If the port cannot be bound.
        """
        if self._is_running:
            return
        correlation_id = generate_correlation_id()
        try:
            self._runner = web.AppRunner(self.build_app())
            await self._runner.setup()
            self._site = web.TCPSite(self._runner, self._host, self._port)
            await self._site.start()
        except OSError as e:
            raise FleetError(
                f"Failed to start health server on {self._host}:{self._port}: {e}",
                context=ModelInfraErrorContext(
                    transport_type=EnumInfraTransportType.HTTP,
                    operation="start_health_server",
                    target_name=f"{self._host}:{self._port}",
                    correlation_id=correlation_id,
                ),
            ) from e
        self._is_running = True
        logger.info(
            "HealthServer started (correlation_id=%s)",
            correlation_id,
            extra={"service": self._service_name, "host": self._host, "port": self._port},
        )

    async def stop(self) -> None:
        if not self._is_running:
            return
        if self._site is not None:
            await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
        self._is_running = False
        logger.info("HealthServer stopped", extra={"service": self._service_name})

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "healthy", "service": self._service_name, "version": self._version}
        )

    async def _handle_ready(self, request: web.Request) -> web.Response:
        try:
            ready, details = await self._readiness()
        except Exception as e:
            logger.warning(
                "Readiness check raised", extra={"error": sanitize_error_message(e)}
            )
            return web.json_response(
                {"status": "not_ready", "error": sanitize_error_message(e)}, status=503
            )
        return web.json_response(
            {
                "status": "ready" if ready else "not_ready",
                "service": self._service_name,
                "version": self._version,
                "details": details,
            },
            status=200 if ready else 503,
        )


__all__ = ["DEFAULT_HTTP_HOST", "HealthServer", "ReadinessCheck"]
