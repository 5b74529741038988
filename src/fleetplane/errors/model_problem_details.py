# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Problem-details error body returned by the Resource Store API."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from fleetplane.enums import EnumFleetErrorCode

PROBLEM_TYPE_PREFIX = "urn:fleetplane:problem:"


class ModelProblemDetails(BaseModel):
    """Structured API error.

    Attributes:
        type: URN identifying the problem class
        title: Short human-readable summary of the problem class
        status: HTTP status code
        detail: Human-readable explanation of this occurrence
        code: Machine-readable error code
        timestamp: When the error was produced
        trace_id: Correlation id of the failing request
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: str | None = None
    code: EnumFleetErrorCode | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    trace_id: str | None = None

    @classmethod
    def build(
        cls,
        status: int,
        title: str,
        code: EnumFleetErrorCode,
        detail: str | None = None,
        trace_id: str | None = None,
    ) -> ModelProblemDetails:
        slug = code.value.lower().replace("_", "-")
        return cls(
            type=f"{PROBLEM_TYPE_PREFIX}{slug}",
            title=title,
            status=status,
            detail=detail,
            code=code,
            trace_id=trace_id,
        )


__all__ = ["PROBLEM_TYPE_PREFIX", "ModelProblemDetails"]
