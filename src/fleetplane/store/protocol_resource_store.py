# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Protocol for Resource Store implementations.

Implemented by the in-memory store, the Postgres store and the HTTP
client, so Sentinel and adapters can run against any of them.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from fleetplane.models import (
    ModelAdapterStatus,
    ModelAdapterStatusReport,
    ModelResource,
    ModelResourceCreate,
    ModelResourcePatch,
    ModelStatusAuditEntry,
    ModelStatusWriteResult,
)
from fleetplane.utils import ModelLabelSelector

DEFAULT_RESOURCE_TYPES: tuple[str, ...] = ("clusters", "nodepools")
DEFAULT_OWNER_TYPES: dict[str, str] = {"nodepools": "clusters"}


@runtime_checkable
class ProtocolResourceStore(Protocol):
    """Resource and adapter status persistence.

    Errors:
        ResourceNotFoundError: Unknown resource type or id
        ResourceConflictError: Creating an id that already exists
        InfraConnectionError / InfraTimeoutError / InfraUnavailableError:
            transient failures of the underlying transport
    """

    async def create_resource(
        self,
        resource_type: str,
        request: ModelResourceCreate,
        correlation_id: UUID | None = None,
    ) -> ModelResource: ...

    async def get_resource(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> ModelResource: ...

    async def list_resources(
        self,
        resource_type: str,
        label_selector: ModelLabelSelector | None = None,
        correlation_id: UUID | None = None,
    ) -> list[ModelResource]: ...

    async def update_resource(
        self,
        resource_type: str,
        resource_id: str,
        patch: ModelResourcePatch,
        correlation_id: UUID | None = None,
    ) -> ModelResource: ...

    async def delete_resource(
        self,
        resource_type: str,
        resource_id: str,
        finalize: bool = False,
        correlation_id: UUID | None = None,
    ) -> ModelResource: ...

    async def list_statuses(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelAdapterStatus]: ...

    async def upsert_status(
        self,
        resource_type: str,
        resource_id: str,
        report: ModelAdapterStatusReport,
        correlation_id: UUID | None = None,
    ) -> ModelStatusWriteResult: ...

    async def get_status_audit(
        self,
        resource_type: str,
        resource_id: str,
        adapter_name: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelStatusAuditEntry]: ...


__all__ = [
    "DEFAULT_OWNER_TYPES",
    "DEFAULT_RESOURCE_TYPES",
    "ProtocolResourceStore",
]
