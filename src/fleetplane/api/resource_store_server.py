# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Resource Store HTTP API.

aiohttp application exposing a ProtocolResourceStore under ``/api/v1``.

Routes:
    GET    /api/v1/{resources}                                   list (?labelSelector=)
    POST   /api/v1/{resources}                                   create
    GET    /api/v1/{resources}/{id}                              fetch
    POST   /api/v1/{resources}/{id}                              create with id
    PATCH  /api/v1/{resources}/{id}                              update spec/labels
    DELETE /api/v1/{resources}/{id}                              request deletion (?finalize=true)
    GET    /api/v1/{resources}/{id}/statuses                     list adapter statuses
    POST   /api/v1/{resources}/{id}/statuses                     upsert adapter status
    GET    /api/v1/{resources}/{id}/statuses/{adapter}/audit     audit trail
    GET    /health, /ready                                       health checks

Errors are problem-details JSON bodies. A stale status report is answered
with 409 and ``code: STALE_GENERATION``; a report kept only in the audit
trail is answered with 202.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

from aiohttp import web
from pydantic import ValidationError

from fleetplane.enums import (
    EnumFleetErrorCode,
    EnumInfraTransportType,
    EnumStatusWriteOutcome,
)
from fleetplane.errors import FleetError, ModelInfraErrorContext, ModelProblemDetails
from fleetplane.models import (
    ModelAdapterStatusReport,
    ModelResourceCreate,
    ModelResourcePatch,
)
from fleetplane.store import ProtocolResourceStore
from fleetplane.utils import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    parse_correlation_id,
    parse_label_selector,
    sanitize_error_message,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DEFAULT_API_PORT = 8080
DEFAULT_API_HOST = "0.0.0.0"  # noqa: S104 - Required for container networking

_STATUS_BY_CODE: dict[EnumFleetErrorCode, tuple[int, str]] = {
    EnumFleetErrorCode.RESOURCE_NOT_FOUND: (404, "Not Found"),
    EnumFleetErrorCode.ALREADY_EXISTS: (409, "Conflict"),
    EnumFleetErrorCode.STALE_GENERATION: (409, "Stale Generation"),
    EnumFleetErrorCode.VALIDATION_ERROR: (400, "Bad Request"),
    EnumFleetErrorCode.INVALID_CONFIGURATION: (400, "Bad Request"),
    EnumFleetErrorCode.CONNECTION_ERROR: (503, "Service Unavailable"),
    EnumFleetErrorCode.TIMEOUT_ERROR: (503, "Service Unavailable"),
    EnumFleetErrorCode.SERVICE_UNAVAILABLE: (503, "Service Unavailable"),
}

_CORRELATION_KEY = web.RequestKey("correlation_id", UUID)


def _dump(model: Any) -> Any:
    return model.model_dump(mode="json", by_alias=True)


def problem_response(
    status: int,
    title: str,
    code: EnumFleetErrorCode,
    detail: str | None,
    correlation_id: UUID,
) -> web.Response:
    problem = ModelProblemDetails.build(
        status=status,
        title=title,
        code=code,
        detail=detail,
        trace_id=str(correlation_id),
    )
    return web.json_response(
        _dump(problem),
        status=status,
        content_type="application/problem+json",
    )


@web.middleware
async def error_middleware(
    request: web.Request, handler: Any
) -> web.StreamResponse:
    """Attach a correlation id and translate errors into problem details."""
    correlation_id = parse_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
    request[_CORRELATION_KEY] = correlation_id
    try:
        response = await handler(request)
    except FleetError as e:
        status, title = _STATUS_BY_CODE.get(e.error_code, (500, "Internal Server Error"))
        if status >= 500:
            logger.warning(
                "Request failed: %s",
                e.message,
                extra={"correlation_id": str(correlation_id), "path": request.path},
            )
        response = problem_response(status, title, e.error_code, e.message, correlation_id)
    except ValidationError as e:
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()[:5]
        )
        response = problem_response(
            400, "Bad Request", EnumFleetErrorCode.VALIDATION_ERROR, detail, correlation_id
        )
    except json.JSONDecodeError as e:
        response = problem_response(
            400,
            "Bad Request",
            EnumFleetErrorCode.VALIDATION_ERROR,
            f"Malformed JSON body: {e.msg}",
            correlation_id,
        )
    except web.HTTPException as e:
        if e.status < 400:
            raise
        response = problem_response(
            e.status,
            e.reason,
            EnumFleetErrorCode.RESOURCE_NOT_FOUND
            if e.status == 404
            else EnumFleetErrorCode.VALIDATION_ERROR,
            e.text,
            correlation_id,
        )
    except Exception as e:
        logger.exception(
            "Unhandled error serving %s %s",
            request.method,
            request.path,
            extra={"correlation_id": str(correlation_id)},
        )
        response = problem_response(
            500,
            "Internal Server Error",
            EnumFleetErrorCode.INTERNAL_ERROR,
            sanitize_error_message(e),
            correlation_id,
        )
    response.headers[CORRELATION_ID_HEADER] = str(correlation_id)
    return response


async def _read_json(request: web.Request) -> Any:
    text = await request.text()
    if not text.strip():
        return {}
    return json.loads(text)


class ResourceStoreServer:
    """HTTP front-end for a ProtocolResourceStore.

    Example:
        >>> server = ResourceStoreServer(InMemoryResourceStore(), port=8080)
        >>> await server.start()
        >>> # curl http://localhost:8080/api/v1/clusters
        >>> await server.stop()
    """

    def __init__(
        self,
        store: ProtocolResourceStore,
        port: int = DEFAULT_API_PORT,
        host: str = DEFAULT_API_HOST,
        version: str = "unknown",
    ) -> None:
        self._store = store
        self._port = port
        self._host = host
        self._version = version
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def port(self) -> int:
        return self._port

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/ready", self._handle_ready)
        base = API_PREFIX + "/{resource_type}"
        item = base + "/{resource_id}"
        app.router.add_get(base, self._handle_list)
        app.router.add_post(base, self._handle_create)
        app.router.add_get(item, self._handle_get)
        app.router.add_post(item, self._handle_create)
        app.router.add_patch(item, self._handle_update)
        app.router.add_delete(item, self._handle_delete)
        app.router.add_get(item + "/statuses", self._handle_list_statuses)
        app.router.add_post(item + "/statuses", self._handle_upsert_status)
        app.router.add_get(item + "/statuses/{adapter_name}/audit", self._handle_audit)
        return app

    async def start(self) -> None:
        """Start serving.

        Raises:
            FleetError: If the server fails to bind.
        """
        if self._is_running:
            return
        correlation_id = generate_correlation_id()
        context = ModelInfraErrorContext(
            transport_type=EnumInfraTransportType.HTTP,
            operation="start_api_server",
            target_name=f"{self._host}:{self._port}",
            correlation_id=correlation_id,
        )
        try:
            self._runner = web.AppRunner(self.build_app())
            await self._runner.setup()
            self._site = web.TCPSite(self._runner, self._host, self._port)
            await self._site.start()
        except OSError as e:
            raise FleetError(
                f"Failed to start API server on {self._host}:{self._port}: {e}",
                context=context,
            ) from e
        self._is_running = True
        logger.info(
            "Resource Store API started (correlation_id=%s)",
            correlation_id,
            extra={"host": self._host, "port": self._port, "version": self._version},
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
        logger.info("Resource Store API stopped")

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy", "version": self._version})

    async def _handle_ready(self, request: web.Request) -> web.Response:
        ready = bool(getattr(self._store, "is_initialized", True))
        return web.json_response(
            {"status": "ready" if ready else "not_ready", "version": self._version},
            status=200 if ready else 503,
        )

    async def _handle_list(self, request: web.Request) -> web.Response:
        selector = parse_label_selector(request.query.get("labelSelector"))
        resources = await self._store.list_resources(
            request.match_info["resource_type"],
            label_selector=selector,
            correlation_id=request[_CORRELATION_KEY],
        )
        return web.json_response(
            {"items": [_dump(r) for r in resources], "total": len(resources)}
        )

    async def _handle_create(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        if not isinstance(body, dict):
            raise FleetError(
                "Request body must be a JSON object",
                error_code=EnumFleetErrorCode.VALIDATION_ERROR,
            )
        path_id = request.match_info.get("resource_id")
        if path_id is not None:
            if body.get("id") not in (None, path_id):
                raise FleetError(
                    f"Body id '{body.get('id')}' does not match path id '{path_id}'",
                    error_code=EnumFleetErrorCode.VALIDATION_ERROR,
                )
            body["id"] = path_id
        resource = await self._store.create_resource(
            request.match_info["resource_type"],
            ModelResourceCreate.model_validate(body),
            correlation_id=request[_CORRELATION_KEY],
        )
        return web.json_response(_dump(resource), status=201)

    async def _handle_get(self, request: web.Request) -> web.Response:
        resource = await self._store.get_resource(
            request.match_info["resource_type"],
            request.match_info["resource_id"],
            correlation_id=request[_CORRELATION_KEY],
        )
        return web.json_response(_dump(resource))

    async def _handle_update(self, request: web.Request) -> web.Response:
        patch = ModelResourcePatch.model_validate(await _read_json(request))
        resource = await self._store.update_resource(
            request.match_info["resource_type"],
            request.match_info["resource_id"],
            patch,
            correlation_id=request[_CORRELATION_KEY],
        )
        return web.json_response(_dump(resource))

    async def _handle_delete(self, request: web.Request) -> web.Response:
        finalize = request.query.get("finalize", "false").lower() in ("1", "true", "yes")
        resource = await self._store.delete_resource(
            request.match_info["resource_type"],
            request.match_info["resource_id"],
            finalize=finalize,
            correlation_id=request[_CORRELATION_KEY],
        )
        return web.json_response(_dump(resource))

    async def _handle_list_statuses(self, request: web.Request) -> web.Response:
        statuses = await self._store.list_statuses(
            request.match_info["resource_type"],
            request.match_info["resource_id"],
            correlation_id=request[_CORRELATION_KEY],
        )
        return web.json_response(
            {"items": [_dump(s) for s in statuses], "total": len(statuses)}
        )

    async def _handle_upsert_status(self, request: web.Request) -> web.Response:
        correlation_id: UUID = request[_CORRELATION_KEY]
        report = ModelAdapterStatusReport.model_validate(await _read_json(request))
        result = await self._store.upsert_status(
            request.match_info["resource_type"],
            request.match_info["resource_id"],
            report,
            correlation_id=correlation_id,
        )
        if result.outcome == EnumStatusWriteOutcome.STALE:
            return problem_response(
                409,
                "Stale Generation",
                EnumFleetErrorCode.STALE_GENERATION,
                f"Report generation {report.observed_generation} is older than "
                f"stored generation {result.stored_generation}",
                correlation_id,
            )
        status = 202 if result.outcome == EnumStatusWriteOutcome.AUDITED else 200
        return web.json_response(_dump(result), status=status)

    async def _handle_audit(self, request: web.Request) -> web.Response:
        entries = await self._store.get_status_audit(
            request.match_info["resource_type"],
            request.match_info["resource_id"],
            request.match_info["adapter_name"],
            correlation_id=request[_CORRELATION_KEY],
        )
        return web.json_response(
            {"items": [_dump(e) for e in entries], "total": len(entries)}
        )


__all__ = [
    "API_PREFIX",
    "DEFAULT_API_PORT",
    "ResourceStoreServer",
    "error_middleware",
    "problem_response",
]
