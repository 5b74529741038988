# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Adapter Reconciliation Pipeline.

Strict ordered gate run once per reconcile event:

    1. Fetch resource + statuses; drop missing, stale and future events
    2. Preconditions; report Applied=False when unmet
    3. Idempotent action: create or wait; report Applied=True, Available=False
    4. Postconditions over the completed action
    5. Upsert the condition triad at ``observedGeneration = event.generation``

Error taxonomy:
    - Stale input: dropped and logged, never reported
    - Unmet precondition: a normal report (Applied=False, Health=True)
    - Transient infrastructure errors: re-raised so the bus redelivers
    - Adapter faults (bad template, rule error, backend rejection,
      unexpected exception): reported as Health=False with
      Applied/Available=False
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from fleetplane.actions import IdempotentActionManager, ModelActionRecord
from fleetplane.adapter.model_adapter_config import ModelAdapterConfig
from fleetplane.enums import (
    EnumActionState,
    EnumConditionStatus,
    EnumPipelineStage,
    EnumStatusWriteOutcome,
)
from fleetplane.errors import TRANSIENT_ERRORS, ResourceNotFoundError
from fleetplane.models import (
    ModelAdapterStatus,
    ModelAdapterStatusReport,
    ModelConditionSet,
    ModelReconcileEvent,
    ModelResource,
)
from fleetplane.rules import evaluate_rule, extract_fields, render_template
from fleetplane.status import aggregate_conditions
from fleetplane.store import ProtocolResourceStore
from fleetplane.utils import sanitize_error_message

logger = logging.getLogger(__name__)

REASON_PRECONDITION_NOT_MET = "PreconditionNotMet"
REASON_ACTION_CREATED = "ActionCreated"
REASON_ACTION_IN_PROGRESS = "ActionInProgress"
REASON_ACTION_FAILED = "ActionFailed"
REASON_ADAPTER_FAULT = "AdapterFault"
REASON_HEALTHY = "Healthy"


class ModelPipelineResult(BaseModel):
    """Outcome of one pipeline run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    stage: EnumPipelineStage
    resource_type: str
    resource_id: str
    event_generation: int
    conditions: ModelConditionSet | None = None
    action_name: str | None = None
    write_outcome: EnumStatusWriteOutcome | None = None
    message: str = ""


class ReconciliationPipeline:
    """Runs the reconcile gate for one adapter.

    Args:
        config: Adapter definition
        store: Resource store used for reads and status writes
        actions: Idempotent action manager bound to this adapter
    """

    def __init__(
        self,
        config: ModelAdapterConfig,
        store: ProtocolResourceStore,
        actions: IdempotentActionManager,
    ) -> None:
        self._config = config
        self._store = store
        self._actions = actions

    @property
    def adapter_name(self) -> str:
        return self._config.name

    def build_context(
        self,
        event: ModelReconcileEvent,
        resource: ModelResource,
        statuses: list[ModelAdapterStatus],
        action: ModelActionRecord | None = None,
    ) -> dict[str, Any]:
        """Evaluation document shared by rules, templates and status data."""
        context: dict[str, Any] = {
            "event": event.model_dump(mode="json", by_alias=True),
            "resource": resource.model_dump(mode="json", by_alias=True),
            "statuses": {
                status.adapter_name: status.model_dump(mode="json", by_alias=True)
                for status in statuses
            },
            "env": dict(self._config.env),
            "adapter": {
                "name": self._config.name,
                "resourceType": self._config.resource_type,
            },
        }
        if action is not None:
            context["action"] = action.to_context()
        return context

    def _result(
        self, event: ModelReconcileEvent, stage: EnumPipelineStage, **fields: Any
    ) -> ModelPipelineResult:
        return ModelPipelineResult(
            stage=stage,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            event_generation=event.generation,
            **fields,
        )

    async def run(self, event: ModelReconcileEvent) -> ModelPipelineResult:
        """Process one reconcile event.

        Raises:
            InfraConnectionError, InfraTimeoutError, InfraUnavailableError:
                transient failures; the caller must request redelivery.
        """
        log_extra = {
            "adapter_name": self._config.name,
            "resource_type": event.resource_type,
            "resource_id": event.resource_id,
            "generation": event.generation,
            "correlation_id": str(event.correlation_id),
        }

        try:
            resource = await self._store.get_resource(
                event.resource_type, event.resource_id, event.correlation_id
            )
        except ResourceNotFoundError:
            logger.info("Resource no longer exists; acknowledging", extra=log_extra)
            return self._result(event, EnumPipelineStage.RESOURCE_MISSING)

        if event.generation < resource.generation:
            logger.info(
                "Dropping stale event (resource is at generation %d)",
                resource.generation,
                extra=log_extra,
            )
            return self._result(event, EnumPipelineStage.STALE_EVENT)
        if event.generation > resource.generation:
            logger.warning(
                "Dropping event ahead of store (resource is at generation %d)",
                resource.generation,
                extra=log_extra,
            )
            return self._result(event, EnumPipelineStage.FUTURE_EVENT)

        statuses = await self._store.list_statuses(
            event.resource_type, event.resource_id, event.correlation_id
        )

        try:
            return await self._reconcile(event, resource, statuses)
        except TRANSIENT_ERRORS:
            raise
        except Exception as e:
            logger.exception("Adapter fault while reconciling", extra=log_extra)
            conditions = ModelConditionSet.build(
                applied=False,
                available=False,
                health=False,
                applied_reason=REASON_ADAPTER_FAULT,
                available_reason=REASON_ADAPTER_FAULT,
                health_reason=REASON_ADAPTER_FAULT,
                message=sanitize_error_message(e),
            )
            outcome = await self._report(event, conditions, {})
            return self._result(
                event,
                EnumPipelineStage.FAULTED,
                conditions=conditions,
                write_outcome=outcome,
                message=conditions.health.message,
            )

    async def _reconcile(
        self,
        event: ModelReconcileEvent,
        resource: ModelResource,
        statuses: list[ModelAdapterStatus],
    ) -> ModelPipelineResult:
        context = self.build_context(event, resource, statuses)

        for rule in self._config.preconditions:
            if not evaluate_rule(rule, context):
                message = f"Precondition not met: {rule.describe()}"
                conditions = ModelConditionSet.build(
                    applied=False,
                    available=False,
                    health=True,
                    applied_reason=REASON_PRECONDITION_NOT_MET,
                    available_reason=REASON_PRECONDITION_NOT_MET,
                    health_reason=REASON_HEALTHY,
                    message=message,
                )
                outcome = await self._report(event, conditions, {})
                return self._result(
                    event,
                    EnumPipelineStage.PRECONDITION_NOT_MET,
                    conditions=conditions,
                    write_outcome=outcome,
                    message=message,
                )

        resolution = await self._actions.resolve(
            event.resource_id, event.generation, event.correlation_id
        )
        if resolution.state == EnumActionState.NOT_EXISTS:
            manifest = render_template(self._config.action.template, context)
            resolution = await self._actions.ensure(
                event.resource_id, event.generation, manifest, event.correlation_id
            )

        if not resolution.state.is_complete:
            stage = (
                EnumPipelineStage.ACTION_CREATED
                if resolution.created
                else EnumPipelineStage.ACTION_IN_PROGRESS
            )
            reason = REASON_ACTION_CREATED if resolution.created else REASON_ACTION_IN_PROGRESS
            conditions = ModelConditionSet.build(
                applied=True,
                available=False,
                health=True,
                applied_reason=reason,
                available_reason=REASON_ACTION_IN_PROGRESS,
                health_reason=REASON_HEALTHY,
                message=f"Action {resolution.name} is running",
            )
            outcome = await self._report(event, conditions, {})
            return self._result(
                event,
                stage,
                conditions=conditions,
                action_name=resolution.name,
                write_outcome=outcome,
            )

        action = resolution.action
        context = self.build_context(event, resource, statuses, action)
        postconditions = self._config.postconditions
        conditions = aggregate_conditions(
            postconditions.applied,
            postconditions.available,
            postconditions.health.failure,
            context,
        )
        if (
            resolution.state == EnumActionState.FAILED
            and conditions.available.status == EnumConditionStatus.TRUE
        ):
            conditions = conditions.model_copy(
                update={
                    "available": conditions.available.model_copy(
                        update={
                            "status": EnumConditionStatus.FALSE,
                            "reason": REASON_ACTION_FAILED,
                            "message": f"Action {resolution.name} failed",
                        }
                    )
                }
            )

        data = extract_fields(self._config.status_data, context)
        outcome = await self._report(event, conditions, data)
        return self._result(
            event,
            EnumPipelineStage.POSTCONDITIONS_EVALUATED,
            conditions=conditions,
            action_name=resolution.name,
            write_outcome=outcome,
        )

    async def _report(
        self,
        event: ModelReconcileEvent,
        conditions: ModelConditionSet,
        data: dict[str, Any],
    ) -> EnumStatusWriteOutcome:
        report = ModelAdapterStatusReport(
            adapter_name=self._config.name,
            observed_generation=event.generation,
            conditions=tuple(conditions.as_list()),
            data=data,
        )
        result = await self._store.upsert_status(
            event.resource_type, event.resource_id, report, event.correlation_id
        )
        logger.info(
            "Reported status (%s)",
            result.outcome.value,
            extra={
                "adapter_name": self._config.name,
                "resource_id": event.resource_id,
                "observed_generation": event.generation,
                "applied": conditions.applied.status.value,
                "available": conditions.available.status.value,
                "health": conditions.health.status.value,
                "correlation_id": str(event.correlation_id),
            },
        )
        return result.outcome


__all__ = ["ModelPipelineResult", "ReconciliationPipeline"]
