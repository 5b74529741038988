# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""HTTP client for the Resource Store API.

Implements ProtocolResourceStore over httpx so Sentinel and adapters can
run as separate processes from the store.

Error mapping:
    - httpx.TimeoutException: InfraTimeoutError
    - httpx.TransportError: InfraConnectionError
    - 503 / 502 / 504: InfraUnavailableError
    - 404: ResourceNotFoundError
    - 409 ALREADY_EXISTS: ResourceConflictError
    - 409 STALE_GENERATION on a status upsert: a STALE write result,
      never an exception, so adapters do not error on write races
    - other 4xx/5xx: ResourceStoreError carrying the problem details
    - a 2xx body that is not the expected JSON shape: ResourceStoreError

Transport failures and 5xx responses count towards the circuit breaker.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar
from uuid import UUID, uuid4

import httpx
from pydantic import BaseModel, ValidationError

from fleetplane.enums import (
    EnumFleetErrorCode,
    EnumInfraTransportType,
    EnumStatusWriteOutcome,
)
from fleetplane.errors import (
    InfraConnectionError,
    InfraTimeoutError,
    InfraUnavailableError,
    ModelInfraErrorContext,
    ModelProblemDetails,
    ResourceConflictError,
    ResourceNotFoundError,
    ResourceStoreError,
)
from fleetplane.mixins import MixinAsyncCircuitBreaker
from fleetplane.models import (
    ModelAdapterStatus,
    ModelAdapterStatusReport,
    ModelResource,
    ModelResourceCreate,
    ModelResourcePatch,
    ModelStatusAuditEntry,
    ModelStatusWriteResult,
)
from fleetplane.utils import CORRELATION_ID_HEADER, ModelLabelSelector

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
_UNAVAILABLE_STATUSES = frozenset({502, 503, 504})

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class ResourceStoreClient(MixinAsyncCircuitBreaker):
    """httpx-based implementation of ProtocolResourceStore.

    Args:
        base_url: Store base URL, e.g. ``http://fleet-api:8080``
        timeout: Per-request timeout in seconds
        client: Optional pre-built AsyncClient (tests pass one with a
            MockTransport)

    Example:
        >>> async with ResourceStoreClient("http://localhost:8080") as store:
        ...     clusters = await store.list_resources("clusters")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_reset_timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
        )
        self._init_circuit_breaker(
            threshold=circuit_breaker_threshold,
            reset_timeout=circuit_breaker_reset_timeout,
            service_name=f"resource-store.{self._base_url}",
            transport_type=EnumInfraTransportType.HTTP,
        )

    async def __aenter__(self) -> ResourceStoreClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        correlation_id: UUID | None,
        json_body: Any = None,
        params: dict[str, str] | None = None,
    ) -> tuple[httpx.Response, ModelInfraErrorContext]:
        op_correlation_id = correlation_id or uuid4()
        context = ModelInfraErrorContext(
            transport_type=EnumInfraTransportType.HTTP,
            operation=operation,
            target_name=self._base_url,
            correlation_id=op_correlation_id,
        )

        async with self._circuit_breaker_lock:
            await self._check_circuit_breaker(operation, op_correlation_id)

        try:
            response = await self._client.request(
                method,
                path,
                json=json_body,
                params=params,
                headers={CORRELATION_ID_HEADER: str(op_correlation_id)},
            )
        except httpx.TimeoutException as e:
            async with self._circuit_breaker_lock:
                await self._record_circuit_failure(operation, op_correlation_id)
            raise InfraTimeoutError(
                f"Resource store request timed out: {operation}", context=context
            ) from e
        except httpx.TransportError as e:
            async with self._circuit_breaker_lock:
                await self._record_circuit_failure(operation, op_correlation_id)
            raise InfraConnectionError(
                f"Failed to reach resource store: {type(e).__name__}", context=context
            ) from e

        if response.status_code in _UNAVAILABLE_STATUSES:
            async with self._circuit_breaker_lock:
                await self._record_circuit_failure(operation, op_correlation_id)
            raise InfraUnavailableError(
                f"Resource store unavailable: HTTP {response.status_code}",
                context=context,
                status_code=response.status_code,
            )

        async with self._circuit_breaker_lock:
            await self._reset_circuit_breaker()
        return response, context

    @staticmethod
    def _problem(response: httpx.Response) -> ModelProblemDetails | None:
        try:
            return ModelProblemDetails.model_validate(response.json())
        except (ValueError, ValidationError):
            return None

    def _raise_for_status(
        self, response: httpx.Response, context: ModelInfraErrorContext
    ) -> None:
        if response.is_success:
            return
        problem = self._problem(response)
        detail = (problem.detail if problem else None) or response.reason_phrase
        if response.status_code == 404:
            raise ResourceNotFoundError(detail, context=context)
        if response.status_code == 409 and (
            problem is None or problem.code == EnumFleetErrorCode.ALREADY_EXISTS
        ):
            raise ResourceConflictError(detail, context=context)
        raise ResourceStoreError(
            f"Resource store returned HTTP {response.status_code}: {detail}",
            status_code=response.status_code,
            problem=problem,
            context=context,
        )

    @staticmethod
    def _malformed(
        response: httpx.Response, context: ModelInfraErrorContext, error: Exception
    ) -> ResourceStoreError:
        return ResourceStoreError(
            f"Malformed resource store response: {type(error).__name__}",
            status_code=response.status_code,
            context=context,
        )

    def _decode(
        self,
        response: httpx.Response,
        context: ModelInfraErrorContext,
        model: type[_ModelT],
    ) -> _ModelT:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise self._malformed(response, context, e) from e

    def _decode_items(
        self,
        response: httpx.Response,
        context: ModelInfraErrorContext,
        model: type[_ModelT],
    ) -> list[_ModelT]:
        """Decode a ``{"items": [...]}`` list body."""
        try:
            return [model.model_validate(item) for item in response.json()["items"]]
        except (ValueError, ValidationError, KeyError, TypeError) as e:
            raise self._malformed(response, context, e) from e

    @staticmethod
    def _path(resource_type: str, resource_id: str | None = None) -> str:
        path = f"/api/v1/{resource_type}"
        return f"{path}/{resource_id}" if resource_id is not None else path

    async def create_resource(
        self,
        resource_type: str,
        request: ModelResourceCreate,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        response, context = await self._request(
            "POST",
            self._path(resource_type),
            "create_resource",
            correlation_id,
            json_body=request.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        self._raise_for_status(response, context)
        return self._decode(response, context, ModelResource)

    async def get_resource(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        response, context = await self._request(
            "GET", self._path(resource_type, resource_id), "get_resource", correlation_id
        )
        self._raise_for_status(response, context)
        return self._decode(response, context, ModelResource)

    async def list_resources(
        self,
        resource_type: str,
        label_selector: ModelLabelSelector | None = None,
        correlation_id: UUID | None = None,
    ) -> list[ModelResource]:
        params = None
        if label_selector is not None and label_selector.requirements:
            params = {"labelSelector": str(label_selector)}
        response, context = await self._request(
            "GET", self._path(resource_type), "list_resources", correlation_id, params=params
        )
        self._raise_for_status(response, context)
        return self._decode_items(response, context, ModelResource)

    async def update_resource(
        self,
        resource_type: str,
        resource_id: str,
        patch: ModelResourcePatch,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        response, context = await self._request(
            "PATCH",
            self._path(resource_type, resource_id),
            "update_resource",
            correlation_id,
            json_body=patch.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        self._raise_for_status(response, context)
        return self._decode(response, context, ModelResource)

    async def delete_resource(
        self,
        resource_type: str,
        resource_id: str,
        finalize: bool = False,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        response, context = await self._request(
            "DELETE",
            self._path(resource_type, resource_id),
            "delete_resource",
            correlation_id,
            params={"finalize": "true"} if finalize else None,
        )
        self._raise_for_status(response, context)
        return self._decode(response, context, ModelResource)

    async def list_statuses(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelAdapterStatus]:
        response, context = await self._request(
            "GET",
            self._path(resource_type, resource_id) + "/statuses",
            "list_statuses",
            correlation_id,
        )
        self._raise_for_status(response, context)
        return self._decode_items(response, context, ModelAdapterStatus)

    async def upsert_status(
        self,
        resource_type: str,
        resource_id: str,
        report: ModelAdapterStatusReport,
        correlation_id: UUID | None = None,
    ) -> ModelStatusWriteResult:
        response, context = await self._request(
            "POST",
            self._path(resource_type, resource_id) + "/statuses",
            "upsert_status",
            correlation_id,
            json_body=report.model_dump(mode="json", by_alias=True),
        )
        if response.status_code == 409:
            problem = self._problem(response)
            if problem is not None and problem.code == EnumFleetErrorCode.STALE_GENERATION:
                logger.info(
                    "Status report for %s/%s was stale",
                    resource_type,
                    resource_id,
                    extra={
                        "adapter_name": report.adapter_name,
                        "observed_generation": report.observed_generation,
                        "correlation_id": str(context.correlation_id),
                    },
                )
                return ModelStatusWriteResult(outcome=EnumStatusWriteOutcome.STALE)
        self._raise_for_status(response, context)
        return self._decode(response, context, ModelStatusWriteResult)

    async def get_status_audit(
        self,
        resource_type: str,
        resource_id: str,
        adapter_name: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelStatusAuditEntry]:
        response, context = await self._request(
            "GET",
            self._path(resource_type, resource_id) + f"/statuses/{adapter_name}/audit",
            "get_status_audit",
            correlation_id,
        )
        self._raise_for_status(response, context)
        return self._decode_items(response, context, ModelStatusAuditEntry)


__all__ = ["ResourceStoreClient"]
