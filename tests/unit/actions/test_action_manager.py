# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for IdempotentActionManager."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from fleetplane.actions import (
    IdempotentActionManager,
    InMemoryActionBackend,
    ModelActionRecord,
)
from fleetplane.actions.util_action_naming import (
    ANNOTATION_RESOURCE_ID,
    LABEL_ADAPTER,
    LABEL_GENERATION,
)
from fleetplane.enums import EnumActionState
from fleetplane.errors import ResourceConflictError
from tests.helpers import DeterministicClock


@pytest.fixture
def manager(backend: InMemoryActionBackend) -> IdempotentActionManager:
    return IdempotentActionManager("dns", backend)


class TestResolve:
    """Looking up the action for (resource, generation)."""

    @pytest.mark.asyncio
    async def test_not_exists(self, manager: IdempotentActionManager) -> None:
        resolution = await manager.resolve("c1", 1)
        assert resolution.state is EnumActionState.NOT_EXISTS
        assert resolution.name == "dns-c1-gen1"
        assert resolution.action is None

    @pytest.mark.asyncio
    async def test_reports_backend_state(
        self, manager: IdempotentActionManager, backend: InMemoryActionBackend
    ) -> None:
        await manager.ensure("c1", 1, {})
        assert (await manager.resolve("c1", 1)).state is EnumActionState.IN_PROGRESS
        backend.complete("dns-c1-gen1", succeeded=False)
        assert (await manager.resolve("c1", 1)).state is EnumActionState.FAILED


class TestEnsure:
    """At most one action per (resource, generation)."""

    @pytest.mark.asyncio
    async def test_creates_once(
        self, manager: IdempotentActionManager, backend: InMemoryActionBackend
    ) -> None:
        first = await manager.ensure("c1", 1, {"spec": {}})
        second = await manager.ensure("c1", 1, {"spec": {}})
        assert first.created
        assert not second.created
        assert second.state is EnumActionState.IN_PROGRESS
        assert backend.create_count == 1

    @pytest.mark.asyncio
    async def test_labels_identity(
        self, manager: IdempotentActionManager, backend: InMemoryActionBackend
    ) -> None:
        resolution = await manager.ensure("c1", 3, {})
        assert resolution.action is not None
        assert resolution.action.labels == {LABEL_ADAPTER: "dns", LABEL_GENERATION: "3"}
        assert resolution.action.annotations == {ANNOTATION_RESOURCE_ID: "c1"}

    @pytest.mark.asyncio
    async def test_new_generation_gets_new_action(
        self, manager: IdempotentActionManager, backend: InMemoryActionBackend
    ) -> None:
        await manager.ensure("c1", 1, {})
        backend.complete("dns-c1-gen1")
        second = await manager.ensure("c1", 2, {})
        assert second.created
        assert set(backend.records) == {"dns-c1-gen1", "dns-c1-gen2"}
        assert backend.records["dns-c1-gen1"].state is EnumActionState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_completed_action_is_not_recreated(
        self, manager: IdempotentActionManager, backend: InMemoryActionBackend
    ) -> None:
        await manager.ensure("c1", 1, {})
        backend.complete("dns-c1-gen1", succeeded=False)
        again = await manager.ensure("c1", 1, {})
        assert again.state is EnumActionState.FAILED
        assert backend.create_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_ensure_creates_one_action(
        self, manager: IdempotentActionManager, backend: InMemoryActionBackend
    ) -> None:
        results = await asyncio.gather(*(manager.ensure("c1", 1, {}) for _ in range(10)))
        assert backend.create_count == 1
        assert sum(r.created for r in results) == 1
        assert {r.name for r in results} == {"dns-c1-gen1"}

    @pytest.mark.asyncio
    async def test_lost_create_race_reuses_winner(self) -> None:
        winner = ModelActionRecord(name="dns-c1-gen1", state=EnumActionState.IN_PROGRESS)
        backend = AsyncMock()
        backend.get.side_effect = [None, winner]
        backend.create.side_effect = ResourceConflictError("exists")
        manager = IdempotentActionManager("dns", backend)

        resolution = await manager.ensure("c1", 1, {})
        assert resolution.action == winner
        assert not resolution.created

    @pytest.mark.asyncio
    async def test_conflict_without_existing_action_propagates(self) -> None:
        backend = AsyncMock()
        backend.get.return_value = None
        backend.create.side_effect = ResourceConflictError("exists")
        manager = IdempotentActionManager("dns", backend)
        with pytest.raises(ResourceConflictError):
            await manager.ensure("c1", 1, {})


class TestRevalidation:
    """Opt-in drift TTL for succeeded actions."""

    def test_ttl_must_be_positive(self, backend: InMemoryActionBackend) -> None:
        with pytest.raises(ValueError):
            IdempotentActionManager("dns", backend, revalidate_after_seconds=0)

    @pytest.mark.asyncio
    async def test_without_ttl_success_is_final(self) -> None:
        clock = DeterministicClock()
        backend = InMemoryActionBackend(auto_complete=True, clock=clock)
        manager = IdempotentActionManager("dns", backend, clock=clock)
        await manager.ensure("c1", 1, {})
        clock.advance(10 * 365 * 24 * 3600)
        assert (await manager.resolve("c1", 1)).state is EnumActionState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_expired_success_is_replaced(self) -> None:
        clock = DeterministicClock()
        backend = InMemoryActionBackend(auto_complete=True, clock=clock)
        manager = IdempotentActionManager(
            "dns", backend, revalidate_after_seconds=600, clock=clock
        )
        await manager.ensure("c1", 1, {})
        clock.advance(599)
        assert (await manager.resolve("c1", 1)).state is EnumActionState.SUCCEEDED

        clock.advance(1)
        expired = await manager.resolve("c1", 1)
        assert expired.state is EnumActionState.NOT_EXISTS
        assert expired.expired

        replaced = await manager.ensure("c1", 1, {})
        assert replaced.created
        assert backend.delete_count == 1
        assert backend.create_count == 2
        assert replaced.action is not None
        assert replaced.action.completion_time == clock.now()

    @pytest.mark.asyncio
    async def test_failed_actions_never_expire(self) -> None:
        clock = DeterministicClock()
        backend = InMemoryActionBackend(clock=clock)
        manager = IdempotentActionManager(
            "dns", backend, revalidate_after_seconds=60, clock=clock
        )
        await manager.ensure("c1", 1, {})
        backend.complete("dns-c1-gen1", succeeded=False)
        clock.advance(3600)
        assert (await manager.resolve("c1", 1)).state is EnumActionState.FAILED
