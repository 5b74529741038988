# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for the adapter reconciliation pipeline.

Covers:
- Stale, future and missing-resource events are dropped without a report
- Unmet preconditions report Applied=False and never create an action
- One action per (resource, generation) across duplicate events
- Postcondition evaluation and status data once the action completes
- Adapter faults reported as Health=False; transient errors re-raised
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from fleetplane.actions import IdempotentActionManager, InMemoryActionBackend
from fleetplane.adapter import ReconciliationPipeline, parse_adapter_config
from fleetplane.adapter.model_adapter_config import ModelAdapterConfig
from fleetplane.enums import (
    EnumConditionStatus,
    EnumConditionType,
    EnumPipelineStage,
    EnumStatusWriteOutcome,
)
from fleetplane.errors import InfraConnectionError
from fleetplane.models import ModelResourceCreate, ModelResourcePatch
from fleetplane.store import InMemoryResourceStore
from tests.helpers import make_event, make_report, make_resource

DNS_CONFIG: dict[str, Any] = {
    "name": "dns",
    "resourceType": "clusters",
    "preconditions": [
        {"field": "resource.spec.provider", "operator": "eq", "value": "gcp"},
    ],
    "action": {
        "backend": "inmemory",
        "template": {
            "cluster": "{{ resource.id }}",
            "generation": "{{ resource.generation }}",
            "region": "{{ env.REGION }}",
        },
    },
    "postconditions": {
        "applied": [{"field": "action.state", "operator": "exists"}],
        "available": [
            {"field": "action.status.succeeded", "operator": "gte", "value": 1}
        ],
        "health": {
            "failure": [
                {
                    "operator": "and",
                    "operands": [
                        {"field": "action.status.failed", "operator": "exists"},
                        {"field": "action.status.failed", "operator": "gt", "value": 2},
                    ],
                }
            ]
        },
    },
    "statusData": {"dnsName": "action.status.dnsName"},
    "env": {"REGION": "eu-west-1"},
}


def _config(**overrides: Any) -> ModelAdapterConfig:
    return parse_adapter_config({**DNS_CONFIG, **overrides}, environ={})


@pytest.fixture
def pipeline(
    store: InMemoryResourceStore, backend: InMemoryActionBackend
) -> ReconciliationPipeline:
    return ReconciliationPipeline(
        _config(), store, IdempotentActionManager("dns", backend)
    )


async def _create_cluster(
    store: InMemoryResourceStore, provider: str = "gcp", resource_id: str = "c1"
):  # noqa: ANN202
    return await store.create_resource(
        "clusters", ModelResourceCreate(id=resource_id, spec={"provider": provider})
    )


async def _dns_status(store: InMemoryResourceStore, resource_id: str = "c1"):  # noqa: ANN202
    statuses = await store.list_statuses("clusters", resource_id)
    return next(s for s in statuses if s.adapter_name == "dns")


class TestPipelineDropsInvalidEvents:
    """Events that do not match the stored generation are never reported."""

    @pytest.mark.asyncio
    async def test_missing_resource(
        self, pipeline: ReconciliationPipeline, backend: InMemoryActionBackend
    ) -> None:

        result = await pipeline.run(make_event(make_resource("gone")))
        assert result.stage == EnumPipelineStage.RESOURCE_MISSING
        assert not result.stage.reported
        assert backend.create_count == 0

    @pytest.mark.asyncio
    async def test_stale_event(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        await store.update_resource(
            "clusters", "c1", ModelResourcePatch(spec={"provider": "gcp", "nodes": 5})
        )

        result = await pipeline.run(make_event(resource, generation=1))
        assert result.stage == EnumPipelineStage.STALE_EVENT
        assert backend.create_count == 0
        assert await store.list_statuses("clusters", "c1") == []

    @pytest.mark.asyncio
    async def test_future_event(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        result = await pipeline.run(make_event(resource, generation=3))
        assert result.stage == EnumPipelineStage.FUTURE_EVENT
        assert backend.create_count == 0
        assert await store.list_statuses("clusters", "c1") == []


class TestPipelinePreconditions:
    """Precondition gate."""

    @pytest.mark.asyncio
    async def test_unmet_precondition_reports_not_applied(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store, provider="aws")
        result = await pipeline.run(make_event(resource))

        assert result.stage == EnumPipelineStage.PRECONDITION_NOT_MET
        assert result.write_outcome == EnumStatusWriteOutcome.ACCEPTED
        assert "resource.spec.provider" in result.message
        assert backend.create_count == 0

        status = await _dns_status(store)
        assert status.observed_generation == 1
        assert status.condition_status(EnumConditionType.APPLIED) == EnumConditionStatus.FALSE
        assert status.condition_status(EnumConditionType.AVAILABLE) == EnumConditionStatus.FALSE
        assert status.condition_status(EnumConditionType.HEALTH) == EnumConditionStatus.TRUE
        assert status.condition(EnumConditionType.APPLIED).reason == "PreconditionNotMet"

    @pytest.mark.asyncio
    async def test_preconditions_see_other_adapter_statuses(
        self, store: InMemoryResourceStore, backend: InMemoryActionBackend
    ) -> None:

        config = _config(
            preconditions=[
                {
                    "field": "statuses.validation.observedGeneration",
                    "operator": "eq",
                    "fieldRef": "resource.generation",
                }
            ]
        )
        pipeline = ReconciliationPipeline(
            config, store, IdempotentActionManager("dns", backend)
        )
        resource = await _create_cluster(store)
        await store.upsert_status("clusters", "c1", make_report("validation", 1))

        result = await pipeline.run(make_event(resource))
        assert result.stage == EnumPipelineStage.ACTION_CREATED


class TestPipelineActions:
    """Idempotent action lifecycle through the pipeline."""

    @pytest.mark.asyncio
    async def test_first_event_creates_action(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        result = await pipeline.run(make_event(resource))

        assert result.stage == EnumPipelineStage.ACTION_CREATED
        assert result.action_name == "dns-c1-gen1"
        assert backend.manifest("dns-c1-gen1") == {
            "cluster": "c1",
            "generation": 1,
            "region": "eu-west-1",
        }
        status = await _dns_status(store)
        assert status.condition_status(EnumConditionType.APPLIED) == EnumConditionStatus.TRUE
        assert status.condition_status(EnumConditionType.AVAILABLE) == EnumConditionStatus.FALSE

    @pytest.mark.asyncio
    async def test_duplicate_events_reuse_action(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        event = make_event(resource)
        await pipeline.run(event)
        again = await pipeline.run(event)
        replay = await pipeline.run(make_event(resource))

        assert again.stage == EnumPipelineStage.ACTION_IN_PROGRESS
        assert replay.stage == EnumPipelineStage.ACTION_IN_PROGRESS
        assert backend.create_count == 1

    @pytest.mark.asyncio
    async def test_completed_action_evaluates_postconditions(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        await pipeline.run(make_event(resource))
        backend.complete("dns-c1-gen1", status={"dnsName": "c1.example.com"})

        result = await pipeline.run(make_event(resource))
        assert result.stage == EnumPipelineStage.POSTCONDITIONS_EVALUATED
        assert result.conditions is not None
        assert result.conditions.available.is_true
        assert result.conditions.health.is_true
        assert backend.create_count == 1

        status = await _dns_status(store)
        assert status.data == {"dnsName": "c1.example.com"}
        stored = await store.get_resource("clusters", "c1")
        assert stored.status.is_available
        assert stored.status.is_ready

    @pytest.mark.asyncio
    async def test_failed_action_is_not_available(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        await pipeline.run(make_event(resource))
        backend.complete("dns-c1-gen1", succeeded=False, status={"succeeded": 1})

        result = await pipeline.run(make_event(resource))
        assert result.conditions is not None
        assert result.conditions.available.is_false
        assert result.conditions.available.reason == "ActionFailed"
        assert backend.create_count == 1

    @pytest.mark.asyncio
    async def test_failure_rule_marks_unhealthy(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        await pipeline.run(make_event(resource))
        backend.complete("dns-c1-gen1", succeeded=False, status={"failed": 3})

        result = await pipeline.run(make_event(resource))
        assert result.conditions is not None
        assert result.conditions.health.is_false
        assert result.conditions.available.is_false

    @pytest.mark.asyncio
    async def test_generation_bump_creates_new_action(
        self,
        pipeline: ReconciliationPipeline,
        store: InMemoryResourceStore,
        backend: InMemoryActionBackend,
    ) -> None:
        resource = await _create_cluster(store)
        await pipeline.run(make_event(resource))
        backend.complete("dns-c1-gen1")
        await pipeline.run(make_event(resource))

        bumped = await store.update_resource(
            "clusters", "c1", ModelResourcePatch(spec={"provider": "gcp", "nodes": 3})
        )
        result = await pipeline.run(make_event(bumped))

        assert result.stage == EnumPipelineStage.ACTION_CREATED
        assert result.action_name == "dns-c1-gen2"
        assert backend.records["dns-c1-gen1"].state.is_complete
        assert backend.create_count == 2

        # The old event is now stale and must not touch the new generation.
        stale = await pipeline.run(make_event(resource))
        assert stale.stage == EnumPipelineStage.STALE_EVENT
        status = await _dns_status(store)
        assert status.observed_generation == 2


class TestPipelineFaults:
    """Fault reporting and transient error propagation."""

    @pytest.mark.asyncio
    async def test_template_error_reports_fault(
        self, store: InMemoryResourceStore, backend: InMemoryActionBackend
    ) -> None:
        config = _config(
            action={"backend": "inmemory", "template": {"zone": "{{ resource.spec.zone }}"}}
        )
        pipeline = ReconciliationPipeline(
            config, store, IdempotentActionManager("dns", backend)
        )
        resource = await _create_cluster(store)
        result = await pipeline.run(make_event(resource))

        assert result.stage == EnumPipelineStage.FAULTED
        assert "resource.spec.zone" in result.message
        assert backend.create_count == 0
        status = await _dns_status(store)
        assert status.condition_status(EnumConditionType.HEALTH) == EnumConditionStatus.FALSE
        assert status.condition(EnumConditionType.HEALTH).reason == "AdapterFault"
        assert status.condition_status(EnumConditionType.APPLIED) == EnumConditionStatus.FALSE

    @pytest.mark.asyncio
    async def test_transient_store_error_is_raised(
        self, pipeline: ReconciliationPipeline, store: InMemoryResourceStore
    ) -> None:
        resource = await _create_cluster(store)
        with patch.object(
            store,
            "upsert_status",
            AsyncMock(side_effect=InfraConnectionError("store unreachable")),
        ):
            with pytest.raises(InfraConnectionError):
                await pipeline.run(make_event(resource))

    @pytest.mark.asyncio
    async def test_context_document(
        self, pipeline: ReconciliationPipeline, store: InMemoryResourceStore
    ) -> None:
        resource = await _create_cluster(store)
        event = make_event(resource)
        context = pipeline.build_context(event, resource, [])

        assert context["resource"]["spec"] == {"provider": "gcp"}
        assert context["event"]["resourceId"] == "c1"
        assert context["adapter"] == {"name": "dns", "resourceType": "clusters"}
        assert context["statuses"] == {}
        assert "action" not in context
