# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Condition models shared by adapter statuses and resource aggregates."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleetplane.enums import EnumConditionStatus, EnumConditionType


class ModelCondition(BaseModel):
    """A single typed condition.

    Adapter-reported conditions leave ``observed_generation`` unset because
    the generation is carried once by the enclosing status. Aggregate
    conditions on a resource carry both the generation they refer to and
    the time their status value last changed.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    type: EnumConditionType = Field(..., description="Condition type")
    status: EnumConditionStatus = Field(..., description="True, False or Unknown")
    reason: str = Field(default="", description="CamelCase machine-readable reason")
    message: str = Field(default="", description="Human-readable detail")
    observed_generation: int | None = Field(
        default=None,
        ge=0,
        description="Generation this condition refers to (aggregates only)",
    )
    last_transition_time: datetime | None = Field(
        default=None,
        description="Last time the status value changed (aggregates only)",
    )

    @property
    def is_true(self) -> bool:
        return self.status == EnumConditionStatus.TRUE

    @property
    def is_false(self) -> bool:
        return self.status == EnumConditionStatus.FALSE


def find_condition(
    conditions: Iterable[ModelCondition], condition_type: EnumConditionType
) -> ModelCondition | None:
    """Return the first condition of the given type, or None."""
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


class ModelConditionSet(BaseModel):
    """The Applied/Available/Health triad produced for one adapter report."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    applied: ModelCondition
    available: ModelCondition
    health: ModelCondition

    def as_list(self) -> list[ModelCondition]:
        return [self.applied, self.available, self.health]

    @classmethod
    def build(
        cls,
        *,
        applied: bool,
        available: bool,
        health: bool,
        applied_reason: str = "",
        available_reason: str = "",
        health_reason: str = "",
        message: str = "",
    ) -> ModelConditionSet:
        """Build a triad from booleans with a shared message."""
        return cls(
            applied=ModelCondition(
                type=EnumConditionType.APPLIED,
                status=EnumConditionStatus.from_bool(applied),
                reason=applied_reason,
                message=message,
            ),
            available=ModelCondition(
                type=EnumConditionType.AVAILABLE,
                status=EnumConditionStatus.from_bool(available),
                reason=available_reason,
                message=message,
            ),
            health=ModelCondition(
                type=EnumConditionType.HEALTH,
                status=EnumConditionStatus.from_bool(health),
                reason=health_reason,
                message=message,
            ),
        )


__all__ = ["ModelCondition", "ModelConditionSet", "find_condition"]
