# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Status Merge Policy.

Decides what happens to each adapter status report and derives the
resource's aggregate conditions. This is the only code that writes the
derived fields of ModelResourceStatus.

Report handling:
    - observedGeneration lower than the stored one: STALE, dropped.
    - Available=Unknown: AUDITED, kept in the audit trail only.
    - Otherwise: ACCEPTED, replaces the stored status wholesale.

Aggregate Available:
    - True at G once every required adapter reports Available=True at G.
    - Retracted as soon as a required adapter reports Available=False at
      the generation currently marked Available.
    - A False at any other generation leaves the last known good value.

Aggregate Ready is Available=True at the resource's current generation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from fleetplane.enums import (
    EnumConditionStatus,
    EnumConditionType,
    EnumFleetErrorCode,
    EnumResourcePhase,
    EnumStatusWriteOutcome,
)
from fleetplane.errors import FleetError
from fleetplane.models import (
    ModelAdapterStatus,
    ModelAdapterStatusReport,
    ModelCondition,
    ModelResource,
    ModelResourceStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LIMIT = 50


class StatusMergePolicy:
    """Generation-monotonic merge of adapter reports into resource aggregates.

    Args:
        required_adapters: Adapter names required per resource type. When a
            type has no entry, every adapter that has reported is required.
        audit_limit: Maximum audit entries retained per (resource, adapter).
    """

    def __init__(
        self,
        required_adapters: Mapping[str, Sequence[str]] | None = None,
        audit_limit: int = DEFAULT_AUDIT_LIMIT,
    ) -> None:
        if audit_limit < 1:
            raise ValueError(f"audit_limit must be >= 1, got {audit_limit}")
        self._required = {k: tuple(v) for k, v in (required_adapters or {}).items()}
        self.audit_limit = audit_limit

    def required_adapters_for(
        self, resource_type: str, statuses: Sequence[ModelAdapterStatus]
    ) -> tuple[str, ...]:
        configured = self._required.get(resource_type)
        if configured:
            return configured
        return tuple(sorted({s.adapter_name for s in statuses}))

    def classify(
        self,
        resource: ModelResource,
        report: ModelAdapterStatusReport,
        current: ModelAdapterStatus | None,
    ) -> EnumStatusWriteOutcome:
        """Classify a report against the stored status.

        Raises:
            FleetError: VALIDATION_ERROR if the report claims a generation
                the resource has not reached.
        """
        if report.observed_generation > resource.generation:
            raise FleetError(
                f"Report generation {report.observed_generation} is ahead of "
                f"resource generation {resource.generation}",
                error_code=EnumFleetErrorCode.VALIDATION_ERROR,
                adapter_name=report.adapter_name,
                resource_id=resource.id,
            )
        if current is not None and report.observed_generation < current.observed_generation:
            logger.info(
                "Dropping stale status report",
                extra={
                    "resource_type": resource.resource_type,
                    "resource_id": resource.id,
                    "adapter_name": report.adapter_name,
                    "report_generation": report.observed_generation,
                    "stored_generation": current.observed_generation,
                },
            )
            return EnumStatusWriteOutcome.STALE
        if report.available_status == EnumConditionStatus.UNKNOWN:
            return EnumStatusWriteOutcome.AUDITED
        return EnumStatusWriteOutcome.ACCEPTED

    def apply_report(
        self,
        resource: ModelResource,
        report: ModelAdapterStatusReport,
        current: ModelAdapterStatus | None,
        now: datetime,
    ) -> ModelAdapterStatus:
        """Build the replacement status for an ACCEPTED report."""
        return ModelAdapterStatus(
            resource_type=resource.resource_type,
            resource_id=resource.id,
            adapter_name=report.adapter_name,
            observed_generation=report.observed_generation,
            conditions=report.conditions,
            data=report.data,
            created_time=current.created_time if current is not None else now,
            last_transition_time=now,
        )

    def recompute(
        self,
        resource: ModelResource,
        statuses: Sequence[ModelAdapterStatus],
        now: datetime,
        *,
        status_written: bool = False,
    ) -> ModelResourceStatus:
        """Derive aggregate Available/Ready/phase from the latest statuses.

        Args:
            resource: Resource carrying the previous aggregate
            statuses: Latest status of every adapter for the resource
            now: Timestamp for condition transitions
            status_written: True when an adapter status was just accepted;
                the resource last_transition_time is then set to ``now``
        """
        previous = resource.status
        prev_available = previous.condition(EnumConditionType.AVAILABLE)
        prev_ready = previous.condition(EnumConditionType.READY)

        required = self.required_adapters_for(resource.resource_type, statuses)
        by_name = {s.adapter_name: s for s in statuses}
        required_statuses = [by_name[name] for name in required if name in by_name]

        candidate = _common_available_generation(required, by_name)
        prev_gen = (
            prev_available.observed_generation or 0
            if prev_available is not None
            else 0
        )
        prev_true = prev_available is not None and prev_available.is_true

        if candidate is not None and (not prev_true or candidate >= prev_gen):
            available = True
            available_gen = candidate
            available_reason = "AllAdaptersAvailable"
            available_message = f"{len(required)} adapter(s) available at generation {candidate}"
        elif prev_true:
            retracted = sorted(
                s.adapter_name
                for s in required_statuses
                if s.observed_generation == prev_gen
                and s.condition_status(EnumConditionType.AVAILABLE)
                == EnumConditionStatus.FALSE
            )
            available_gen = prev_gen
            if retracted:
                available = False
                available_reason = "AdapterUnavailable"
                available_message = (
                    f"Unavailable at generation {prev_gen}: {', '.join(retracted)}"
                )
            else:
                available = True
                available_reason = prev_available.reason if prev_available else ""
                available_message = prev_available.message if prev_available else ""
        else:
            available = False
            available_gen = max((s.observed_generation for s in statuses), default=0)
            if not required:
                available_reason = "NoAdapters"
                available_message = "No adapter has reported"
            else:
                pending = sorted(
                    name
                    for name in required
                    if name not in by_name
                    or by_name[name].condition_status(EnumConditionType.AVAILABLE)
                    != EnumConditionStatus.TRUE
                )
                available_reason = "AdaptersNotAvailable"
                available_message = (
                    f"Waiting for: {', '.join(pending)}"
                    if pending
                    else "Adapters available at different generations"
                )

        ready = available and available_gen == resource.generation
        if ready:
            ready_reason = "AllAdaptersReady"
        elif available:
            ready_reason = "GenerationPending"
        else:
            ready_reason = "NotAvailable"

        available_condition = ModelCondition(
            type=EnumConditionType.AVAILABLE,
            status=EnumConditionStatus.from_bool(available),
            reason=available_reason,
            message=available_message,
            observed_generation=available_gen,
            last_transition_time=_transition_time(prev_available, available, now),
        )
        ready_condition = ModelCondition(
            type=EnumConditionType.READY,
            status=EnumConditionStatus.from_bool(ready),
            reason=ready_reason,
            message=(
                f"Available at generation {available_gen}, "
                f"resource at generation {resource.generation}"
            ),
            observed_generation=resource.generation,
            last_transition_time=_transition_time(prev_ready, ready, now),
        )

        return ModelResourceStatus(
            phase=self._derive_phase(resource, statuses, ready),
            conditions=(available_condition, ready_condition),
            observed_generation=available_gen,
            last_transition_time=now if status_written else previous.last_transition_time,
        )

    def on_generation_bump(
        self,
        resource: ModelResource,
        statuses: Sequence[ModelAdapterStatus],
        now: datetime,
    ) -> ModelResourceStatus:
        """Aggregate for a resource whose generation was just bumped.

        Ready flips to False and last_transition_time resets so Sentinel
        emits an event for the new generation immediately.
        """
        status = self.recompute(resource, statuses, now)
        return status.model_copy(update={"last_transition_time": None})

    @staticmethod
    def _derive_phase(
        resource: ModelResource,
        statuses: Sequence[ModelAdapterStatus],
        ready: bool,
    ) -> EnumResourcePhase:
        if resource.deleted_time is not None:
            if resource.status.phase == EnumResourcePhase.TERMINATED:
                return EnumResourcePhase.TERMINATED
            return EnumResourcePhase.TERMINATING
        if ready:
            return EnumResourcePhase.READY
        current = [s for s in statuses if s.observed_generation == resource.generation]
        if any(
            s.condition_status(EnumConditionType.HEALTH) == EnumConditionStatus.FALSE
            for s in current
        ):
            return EnumResourcePhase.FAILED
        if any(
            s.condition_status(EnumConditionType.APPLIED) == EnumConditionStatus.TRUE
            for s in current
        ):
            return EnumResourcePhase.PROVISIONING
        return EnumResourcePhase.NOT_READY


def _common_available_generation(
    required: Sequence[str], by_name: Mapping[str, ModelAdapterStatus]
) -> int | None:
    """Generation at which every required adapter reports Available=True, if any."""
    if not required or any(name not in by_name for name in required):
        return None
    generations = {by_name[name].observed_generation for name in required}
    if len(generations) != 1:
        return None
    if all(
        by_name[name].condition_status(EnumConditionType.AVAILABLE)
        == EnumConditionStatus.TRUE
        for name in required
    ):
        return generations.pop()
    return None


def _transition_time(
    previous: ModelCondition | None, value: bool, now: datetime
) -> datetime:
    if (
        previous is not None
        and previous.last_transition_time is not None
        and previous.status == EnumConditionStatus.from_bool(value)
    ):
        return previous.last_transition_time
    return now


__all__ = ["DEFAULT_AUDIT_LIMIT", "StatusMergePolicy"]
