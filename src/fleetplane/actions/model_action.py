# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Action record and resolution models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fleetplane.enums import EnumActionState


class ModelActionRecord(BaseModel):
    """An action as observed in its backend.

    Attributes:
        name: Deterministic action name
        state: IN_PROGRESS, SUCCEEDED or FAILED
        status: Backend sub-status exposed to postconditions as ``action.status``
        created_time: When the backend created the action
        completion_time: When the action completed, if it has
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    state: EnumActionState
    status: dict[str, Any] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    created_time: datetime | None = None
    completion_time: datetime | None = None

    def to_context(self) -> dict[str, Any]:
        """Document exposed under ``action`` in the evaluation context."""
        return {
            "name": self.name,
            "state": self.state.value,
            "status": self.status,
            "labels": self.labels,
            "annotations": self.annotations,
            "createdTime": self.created_time.isoformat() if self.created_time else None,
            "completionTime": (
                self.completion_time.isoformat() if self.completion_time else None
            ),
        }


class ModelActionResolution(BaseModel):
    """Result of resolving the action for (resource, generation)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    state: EnumActionState
    action: ModelActionRecord | None = None
    expired: bool = Field(
        default=False,
        description="Succeeded action older than the revalidation TTL",
    )
    created: bool = Field(
        default=False,
        description="True when ensure() created the action in this call",
    )


__all__ = ["ModelActionRecord", "ModelActionResolution"]
