# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Result of an adapter status upsert."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from fleetplane.enums import EnumStatusWriteOutcome
from fleetplane.models.model_adapter_status import ModelAdapterStatus
from fleetplane.models.model_resource import ModelResource


class ModelStatusWriteResult(BaseModel):
    """What the store did with a status report.

    Attributes:
        outcome: ACCEPTED, STALE or AUDITED
        status: The adapter's stored latest status after the write, if any
        resource: The resource with its recomputed aggregate (None for
            results reconstructed from a 409 response)
        stored_generation: Stored observedGeneration that caused a STALE outcome
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    outcome: EnumStatusWriteOutcome
    status: ModelAdapterStatus | None = None
    resource: ModelResource | None = None
    stored_generation: int | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome == EnumStatusWriteOutcome.ACCEPTED


__all__ = ["ModelStatusWriteResult"]
