# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Resource models: desired spec, generation and derived aggregate status."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleetplane.enums import EnumConditionType, EnumResourcePhase
from fleetplane.models.model_condition import ModelCondition, find_condition

_WIRE_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


class ModelResourceStatus(BaseModel):
    """Aggregate status derived by the status merge policy.

    Attributes:
        phase: Coarse lifecycle phase
        conditions: Aggregate Available and Ready conditions
        observed_generation: Generation of the Available aggregate
        last_transition_time: Time of the last accepted adapter status write;
            None after a generation bump until an adapter reports again
    """

    model_config = _WIRE_CONFIG

    phase: EnumResourcePhase = EnumResourcePhase.NOT_READY
    conditions: tuple[ModelCondition, ...] = ()
    observed_generation: int = Field(default=0, ge=0)
    last_transition_time: datetime | None = None

    def condition(self, condition_type: EnumConditionType) -> ModelCondition | None:
        return find_condition(self.conditions, condition_type)

    @property
    def is_available(self) -> bool:
        cond = self.condition(EnumConditionType.AVAILABLE)
        return cond is not None and cond.is_true

    @property
    def is_ready(self) -> bool:
        cond = self.condition(EnumConditionType.READY)
        return cond is not None and cond.is_true


class ModelResource(BaseModel):
    """A managed resource (cluster, node pool, ...).

    ``generation`` is owned by the store: it starts at 1 and is bumped on
    every spec mutation, never by status writes.
    """

    model_config = _WIRE_CONFIG

    resource_type: str = Field(..., description="Plural kind, e.g. 'clusters'")
    id: str = Field(..., min_length=1)
    generation: int = Field(default=1, ge=1)
    spec: dict[str, Any] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    owner_id: str | None = None
    created_time: datetime | None = None
    updated_time: datetime | None = None
    deleted_time: datetime | None = None
    status: ModelResourceStatus = Field(default_factory=ModelResourceStatus)

    @property
    def phase(self) -> EnumResourcePhase:
        return self.status.phase

    @property
    def is_terminated(self) -> bool:
        return self.status.phase == EnumResourcePhase.TERMINATED


class ModelResourceCreate(BaseModel):
    """Body of a create request."""

    model_config = _WIRE_CONFIG

    id: str | None = Field(default=None, min_length=1, max_length=253)
    spec: dict[str, Any] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    owner_id: str | None = None


class ModelResourcePatch(BaseModel):
    """Body of an update request; omitted fields are left unchanged."""

    model_config = _WIRE_CONFIG

    spec: dict[str, Any] | None = None
    labels: dict[str, str] | None = None


__all__ = [
    "ModelResource",
    "ModelResourceCreate",
    "ModelResourcePatch",
    "ModelResourceStatus",
]
