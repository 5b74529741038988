# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Idempotent Action Manager.

Maps (resource, generation) to exactly one side-effecting action per
adapter. The action name is derived deterministically, so replays,
duplicates and concurrent workers all converge on the same action and a
create conflict simply means another worker got there first.

A generation bump yields a new identity; actions of earlier generations
are never reused or mutated.

Drift re-validation (``revalidate_after_seconds``) is off by default.
When enabled, a Succeeded action whose completion is older than the TTL
resolves as NotExists and ``ensure`` replaces it with a fresh run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from fleetplane.actions.model_action import ModelActionRecord, ModelActionResolution
from fleetplane.actions.protocol_action_backend import ProtocolActionBackend
from fleetplane.actions.util_action_naming import (
    ANNOTATION_RESOURCE_ID,
    LABEL_ADAPTER,
    LABEL_GENERATION,
    build_action_name,
)
from fleetplane.enums import EnumActionState
from fleetplane.errors import ResourceConflictError
from fleetplane.utils import utc_now

logger = logging.getLogger(__name__)


class IdempotentActionManager:
    """Generation-keyed create/reuse decisions for one adapter."""

    def __init__(
        self,
        adapter_name: str,
        backend: ProtocolActionBackend,
        revalidate_after_seconds: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if revalidate_after_seconds is not None and revalidate_after_seconds <= 0:
            raise ValueError(
                f"revalidate_after_seconds must be > 0, got {revalidate_after_seconds}"
            )
        self._adapter_name = adapter_name
        self._backend = backend
        self._revalidate_after = (
            timedelta(seconds=revalidate_after_seconds)
            if revalidate_after_seconds is not None
            else None
        )
        self._clock = clock

    def action_name(self, resource_id: str, generation: int) -> str:
        return build_action_name(self._adapter_name, resource_id, generation)

    def _is_expired(self, record: ModelActionRecord) -> bool:
        if (
            self._revalidate_after is None
            or record.state != EnumActionState.SUCCEEDED
            or record.completion_time is None
        ):
            return False
        return self._clock() - record.completion_time >= self._revalidate_after

    async def resolve(
        self,
        resource_id: str,
        generation: int,
        correlation_id: UUID | None = None,
    ) -> ModelActionResolution:
        """Look up the action for (resource, generation)."""
        name = self.action_name(resource_id, generation)
        record = await self._backend.get(name)
        if record is None:
            return ModelActionResolution(name=name, state=EnumActionState.NOT_EXISTS)
        if self._is_expired(record):
            logger.info(
                "Action %s exceeded revalidation TTL",
                name,
                extra={
                    "action_name": name,
                    "correlation_id": str(correlation_id) if correlation_id else None,
                },
            )
            return ModelActionResolution(
                name=name,
                state=EnumActionState.NOT_EXISTS,
                action=record,
                expired=True,
            )
        return ModelActionResolution(name=name, state=record.state, action=record)

    async def ensure(
        self,
        resource_id: str,
        generation: int,
        manifest: dict[str, Any],
        correlation_id: UUID | None = None,
    ) -> ModelActionResolution:
        """Create the action unless it already exists.

        Returns the resolution of the existing action when one is present,
        including when a concurrent worker wins the create race.
        """
        resolution = await self.resolve(resource_id, generation, correlation_id)
        if resolution.state != EnumActionState.NOT_EXISTS:
            return resolution

        name = resolution.name
        if resolution.expired:
            await self._backend.delete(name)

        labels = {
            LABEL_ADAPTER: self._adapter_name,
            LABEL_GENERATION: str(generation),
        }
        annotations = {ANNOTATION_RESOURCE_ID: resource_id}
        try:
            record = await self._backend.create(name, manifest, labels, annotations)
        except ResourceConflictError:
            existing = await self._backend.get(name)
            if existing is None:
                raise
            logger.debug(
                "Action %s created concurrently; reusing",
                name,
                extra={
                    "action_name": name,
                    "correlation_id": str(correlation_id) if correlation_id else None,
                },
            )
            return ModelActionResolution(name=name, state=existing.state, action=existing)

        logger.info(
            "Created action %s",
            name,
            extra={
                "action_name": name,
                "resource_id": resource_id,
                "generation": generation,
                "correlation_id": str(correlation_id) if correlation_id else None,
            },
        )
        return ModelActionResolution(
            name=name, state=record.state, action=record, created=True
        )


__all__ = ["IdempotentActionManager"]
