# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for the per-resource reconcile decision."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from fleetplane.enums import EnumReconcileReason, EnumResourcePhase
from fleetplane.sentinel import decide_reconcile
from tests.helpers import make_resource

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
READY_BACKOFF = timedelta(minutes=30)
NOT_READY_BACKOFF = timedelta(seconds=10)


def _decide(**kwargs: object) -> EnumReconcileReason | None:
    return decide_reconcile(make_resource(**kwargs), NOW, READY_BACKOFF, NOT_READY_BACKOFF)


class TestDecideReconcile:
    """Phase-dependent backoff."""

    def test_never_transitioned_is_due(self) -> None:
        assert _decide() == EnumReconcileReason.NEVER_RECONCILED

    def test_never_transitioned_ready_resource_is_due(self) -> None:
        assert _decide(phase=EnumResourcePhase.READY) == (
            EnumReconcileReason.NEVER_RECONCILED
        )

    @pytest.mark.parametrize(
        ("phase", "age", "expected"),
        [
            (EnumResourcePhase.NOT_READY, timedelta(seconds=5), None),
            (EnumResourcePhase.NOT_READY, timedelta(seconds=10), EnumReconcileReason.BACKOFF_EXPIRED),
            (EnumResourcePhase.FAILED, timedelta(seconds=11), EnumReconcileReason.BACKOFF_EXPIRED),
            (EnumResourcePhase.READY, timedelta(minutes=29), None),
            (EnumResourcePhase.READY, timedelta(minutes=30), EnumReconcileReason.BACKOFF_EXPIRED),
            (EnumResourcePhase.TERMINATING, timedelta(minutes=1), EnumReconcileReason.BACKOFF_EXPIRED),
        ],
    )
    def test_backoff_by_phase(
        self,
        phase: EnumResourcePhase,
        age: timedelta,
        expected: EnumReconcileReason | None,
    ) -> None:
        assert _decide(phase=phase, last_transition_time=NOW - age) == expected

    def test_terminated_is_never_due(self) -> None:
        assert _decide(phase=EnumResourcePhase.TERMINATED) is None
        assert (
            _decide(
                phase=EnumResourcePhase.TERMINATED,
                last_transition_time=NOW - timedelta(days=1),
            )
            is None
        )

    def test_future_transition_is_not_due(self) -> None:
        assert _decide(last_transition_time=NOW + timedelta(minutes=5)) is None
