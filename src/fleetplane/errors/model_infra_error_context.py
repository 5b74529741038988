# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Infrastructure Error Context Model.

Bundles the structured fields shared by fleetplane errors so error
constructors keep a short, strongly-typed signature.
"""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fleetplane.enums import EnumInfraTransportType


class ModelInfraErrorContext(BaseModel):
    """Structured context attached to infrastructure errors.

    Attributes:
        transport_type: Transport the failing operation used (HTTP, DATABASE, ...)
        operation: Operation being performed (upsert_status, publish, ...)
        target_name: Target resource or endpoint name
        correlation_id: Request correlation ID for distributed tracing

    Example:
        >>> context = ModelInfraErrorContext(
        ...     transport_type=EnumInfraTransportType.HTTP,
        ...     operation="get_resource",
        ...     target_name="resource-store",
        ...     correlation_id=uuid4(),
        ... )
        >>> raise InfraConnectionError("Store unreachable", context=context)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    transport_type: EnumInfraTransportType | None = Field(
        default=None,
        description="Type of infrastructure transport (HTTP, DATABASE, KAFKA, etc.)",
    )
    operation: str | None = Field(
        default=None,
        description="Operation being performed",
    )
    target_name: str | None = Field(
        default=None,
        description="Target resource or endpoint name",
    )
    correlation_id: UUID | None = Field(
        default=None,
        description="Request correlation ID for distributed tracing",
    )


__all__ = ["ModelInfraErrorContext"]
