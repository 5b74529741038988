# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""In-memory Resource Store.

Used by tests and single-process dev mode. All mutations are serialized
through one asyncio.Lock, which also serializes status writes per
resource as the merge policy requires.

Not persistent: all state is lost on restart.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from uuid import UUID, uuid4

from fleetplane.enums import EnumResourcePhase, EnumStatusWriteOutcome
from fleetplane.errors import ResourceConflictError, ResourceNotFoundError
from fleetplane.models import (
    ModelAdapterStatus,
    ModelAdapterStatusReport,
    ModelResource,
    ModelResourceCreate,
    ModelResourcePatch,
    ModelStatusAuditEntry,
    ModelStatusWriteResult,
)
from fleetplane.status import StatusMergePolicy
from fleetplane.store.protocol_resource_store import (
    DEFAULT_OWNER_TYPES,
    DEFAULT_RESOURCE_TYPES,
)
from fleetplane.utils import ModelLabelSelector, utc_now

logger = logging.getLogger(__name__)

_Key = tuple[str, str]


class InMemoryResourceStore:
    """Dict-backed implementation of ProtocolResourceStore.

    Example:
        >>> store = InMemoryResourceStore()
        >>> cluster = await store.create_resource(
        ...     "clusters", ModelResourceCreate(id="c1", spec={"region": "eu"})
        ... )
        >>> cluster.generation
        1
    """

    def __init__(
        self,
        merge_policy: StatusMergePolicy | None = None,
        resource_types: Sequence[str] = DEFAULT_RESOURCE_TYPES,
        owner_types: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._policy = merge_policy or StatusMergePolicy()
        self._resource_types = tuple(resource_types)
        self._owner_types = dict(DEFAULT_OWNER_TYPES if owner_types is None else owner_types)
        self._clock = clock
        self._resources: dict[_Key, ModelResource] = {}
        self._statuses: dict[_Key, dict[str, ModelAdapterStatus]] = {}
        self._audit: dict[tuple[str, str, str], deque[ModelStatusAuditEntry]] = {}
        self._lock = asyncio.Lock()

    @property
    def resource_types(self) -> tuple[str, ...]:
        return self._resource_types

    def _check_type(self, resource_type: str) -> None:
        if resource_type not in self._resource_types:
            raise ResourceNotFoundError(
                f"Unknown resource type '{resource_type}'", resource_type=resource_type
            )

    def _require(self, resource_type: str, resource_id: str) -> ModelResource:
        self._check_type(resource_type)
        resource = self._resources.get((resource_type, resource_id))
        if resource is None:
            raise ResourceNotFoundError(
                f"{resource_type}/{resource_id} not found",
                resource_type=resource_type,
                resource_id=resource_id,
            )
        return resource

    async def create_resource(
        self,
        resource_type: str,
        request: ModelResourceCreate,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        async with self._lock:
            self._check_type(resource_type)
            resource_id = request.id or str(uuid4())
            key = (resource_type, resource_id)
            if key in self._resources:
                raise ResourceConflictError(
                    f"{resource_type}/{resource_id} already exists",
                    resource_type=resource_type,
                    resource_id=resource_id,
                )
            owner_type = self._owner_types.get(resource_type)
            if request.owner_id is not None and owner_type is not None:
                self._require(owner_type, request.owner_id)

            now = self._clock()
            resource = ModelResource(
                resource_type=resource_type,
                id=resource_id,
                generation=1,
                spec=request.spec,
                labels=request.labels,
                owner_id=request.owner_id,
                created_time=now,
                updated_time=now,
            )
            resource = resource.model_copy(
                update={"status": self._policy.recompute(resource, [], now)}
            )
            self._resources[key] = resource
            self._statuses[key] = {}

        logger.info(
            "Created %s/%s",
            resource_type,
            resource_id,
            extra={"correlation_id": str(correlation_id) if correlation_id else None},
        )
        return resource

    async def get_resource(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        return self._require(resource_type, resource_id)

    async def list_resources(
        self,
        resource_type: str,
        label_selector: ModelLabelSelector | None = None,
        correlation_id: UUID | None = None,
    ) -> list[ModelResource]:
        self._check_type(resource_type)
        return [
            resource
            for (rtype, _), resource in self._resources.items()
            if rtype == resource_type
            and (label_selector is None or label_selector.matches(resource.labels))
        ]

    async def update_resource(
        self,
        resource_type: str,
        resource_id: str,
        patch: ModelResourcePatch,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        async with self._lock:
            resource = self._require(resource_type, resource_id)
            key = (resource_type, resource_id)
            now = self._clock()
            update: dict[str, object] = {"updated_time": now}
            if patch.labels is not None:
                update["labels"] = patch.labels
            spec_changed = patch.spec is not None and patch.spec != resource.spec
            if spec_changed:
                update["spec"] = patch.spec
                update["generation"] = resource.generation + 1
            resource = resource.model_copy(update=update)
            if spec_changed:
                statuses = list(self._statuses[key].values())
                resource = resource.model_copy(
                    update={"status": self._policy.on_generation_bump(resource, statuses, now)}
                )
                logger.info(
                    "Generation of %s/%s bumped to %d",
                    resource_type,
                    resource_id,
                    resource.generation,
                    extra={"correlation_id": str(correlation_id) if correlation_id else None},
                )
            self._resources[key] = resource
            return resource

    async def delete_resource(
        self,
        resource_type: str,
        resource_id: str,
        finalize: bool = False,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        async with self._lock:
            resource = self._require(resource_type, resource_id)
            key = (resource_type, resource_id)
            now = self._clock()
            if resource.deleted_time is None:
                resource = resource.model_copy(update={"deleted_time": now, "updated_time": now})
            if finalize:
                status = resource.status.model_copy(
                    update={"phase": EnumResourcePhase.TERMINATED}
                )
            else:
                status = self._policy.recompute(
                    resource, list(self._statuses[key].values()), now
                )
            resource = resource.model_copy(update={"status": status})
            self._resources[key] = resource
            return resource

    async def list_statuses(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelAdapterStatus]:
        self._require(resource_type, resource_id)
        return list(self._statuses[(resource_type, resource_id)].values())

    async def upsert_status(
        self,
        resource_type: str,
        resource_id: str,
        report: ModelAdapterStatusReport,
        correlation_id: UUID | None = None,
    ) -> ModelStatusWriteResult:
        async with self._lock:
            resource = self._require(resource_type, resource_id)
            key = (resource_type, resource_id)
            statuses = self._statuses[key]
            current = statuses.get(report.adapter_name)
            outcome = self._policy.classify(resource, report, current)
            now = self._clock()
            self._append_audit(key, report, outcome, now)

            if outcome != EnumStatusWriteOutcome.ACCEPTED:
                return ModelStatusWriteResult(
                    outcome=outcome,
                    status=current,
                    resource=resource,
                    stored_generation=(
                        current.observed_generation
                        if current is not None and outcome == EnumStatusWriteOutcome.STALE
                        else None
                    ),
                )

            new_status = self._policy.apply_report(resource, report, current, now)
            statuses[report.adapter_name] = new_status
            aggregate = self._policy.recompute(
                resource, list(statuses.values()), now, status_written=True
            )
            resource = resource.model_copy(update={"status": aggregate})
            self._resources[key] = resource

        logger.debug(
            "Accepted status from %s for %s/%s at generation %d",
            report.adapter_name,
            resource_type,
            resource_id,
            report.observed_generation,
            extra={"correlation_id": str(correlation_id) if correlation_id else None},
        )
        return ModelStatusWriteResult(
            outcome=EnumStatusWriteOutcome.ACCEPTED,
            status=new_status,
            resource=resource,
        )

    def _append_audit(
        self,
        key: _Key,
        report: ModelAdapterStatusReport,
        outcome: EnumStatusWriteOutcome,
        now: datetime,
    ) -> None:
        audit_key = (key[0], key[1], report.adapter_name)
        trail = self._audit.get(audit_key)
        if trail is None:
            trail = deque(maxlen=self._policy.audit_limit)
            self._audit[audit_key] = trail
        trail.append(
            ModelStatusAuditEntry(report=report, outcome=outcome, received_time=now)
        )

    async def get_status_audit(
        self,
        resource_type: str,
        resource_id: str,
        adapter_name: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelStatusAuditEntry]:
        self._require(resource_type, resource_id)
        return list(self._audit.get((resource_type, resource_id, adapter_name), ()))


__all__ = ["InMemoryResourceStore"]
