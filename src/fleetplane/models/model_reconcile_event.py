# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Reconcile event published by Sentinel and consumed by adapters."""

from __future__ import annotations

import json
from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleetplane.enums import EnumReconcileReason
from fleetplane.utils import utc_now

RECONCILE_EVENT_TYPE = "fleet.reconcile.v1"


class ModelReconcileEvent(BaseModel):
    """Request to reconcile one resource at one generation.

    Events have no persistent identity. Consumers are idempotent, so
    duplicates and replays are harmless.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    resource_type: str
    resource_id: str
    generation: int = Field(..., ge=1)
    reason: EnumReconcileReason
    id: UUID = Field(default_factory=uuid4)
    time: datetime = Field(default_factory=utc_now)
    source: str = "sentinel"
    correlation_id: UUID = Field(default_factory=uuid4)

    def to_bytes(self) -> bytes:
        return json.dumps(self.model_dump(mode="json", by_alias=True)).encode("utf-8")

    @classmethod
    def from_bytes(cls, value: bytes) -> ModelReconcileEvent:
        return cls.model_validate_json(value)


__all__ = ["RECONCILE_EVENT_TYPE", "ModelReconcileEvent"]
