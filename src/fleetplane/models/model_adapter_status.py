# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Per-adapter status models.

One ModelAdapterStatus exists per (resource, adapter name). Reports
replace it wholesale; they are never merged field by field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleetplane.enums import (
    EnumConditionStatus,
    EnumConditionType,
    EnumStatusWriteOutcome,
)
from fleetplane.models.model_condition import ModelCondition, find_condition

_WIRE_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


class ModelAdapterStatusReport(BaseModel):
    """Status report sent by an adapter to the store."""

    model_config = _WIRE_CONFIG

    adapter_name: str = Field(..., min_length=1, max_length=63)
    observed_generation: int = Field(..., ge=1)
    conditions: tuple[ModelCondition, ...] = Field(default=())
    data: dict[str, Any] = Field(default_factory=dict)

    def condition(self, condition_type: EnumConditionType) -> ModelCondition | None:
        return find_condition(self.conditions, condition_type)

    @property
    def available_status(self) -> EnumConditionStatus:
        """Status of the Available condition, Unknown when not reported."""
        cond = self.condition(EnumConditionType.AVAILABLE)
        return cond.status if cond is not None else EnumConditionStatus.UNKNOWN


class ModelAdapterStatus(BaseModel):
    """Latest known-good status of one adapter for one resource."""

    model_config = _WIRE_CONFIG

    resource_type: str
    resource_id: str
    adapter_name: str
    observed_generation: int = Field(..., ge=1)
    conditions: tuple[ModelCondition, ...] = Field(default=())
    data: dict[str, Any] = Field(default_factory=dict)
    created_time: datetime
    last_transition_time: datetime

    def condition(self, condition_type: EnumConditionType) -> ModelCondition | None:
        return find_condition(self.conditions, condition_type)

    def condition_status(self, condition_type: EnumConditionType) -> EnumConditionStatus:
        cond = self.condition(condition_type)
        return cond.status if cond is not None else EnumConditionStatus.UNKNOWN


class ModelStatusAuditEntry(BaseModel):
    """One received report and what the merge policy did with it."""

    model_config = _WIRE_CONFIG

    report: ModelAdapterStatusReport
    outcome: EnumStatusWriteOutcome
    received_time: datetime


__all__ = [
    "ModelAdapterStatus",
    "ModelAdapterStatusReport",
    "ModelStatusAuditEntry",
]
