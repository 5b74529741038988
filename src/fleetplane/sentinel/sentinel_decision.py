# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Pure reconcile decision for one resource."""

from __future__ import annotations

from datetime import datetime, timedelta

from fleetplane.enums import EnumReconcileReason, EnumResourcePhase
from fleetplane.models import ModelResource
from fleetplane.utils import ensure_timezone_aware


def decide_reconcile(
    resource: ModelResource,
    now: datetime,
    backoff_ready: timedelta,
    backoff_not_ready: timedelta,
) -> EnumReconcileReason | None:
    """Return the reason to publish a reconcile event, or None to skip.

    Terminated resources are never reconciled. A resource whose status has
    never transitioned is always due. Otherwise the resource is due once
    the phase-dependent backoff has elapsed since its last transition.
    """
    if resource.phase == EnumResourcePhase.TERMINATED:
        return None

    last_transition = resource.status.last_transition_time
    if last_transition is None:
        return EnumReconcileReason.NEVER_RECONCILED

    backoff = backoff_ready if resource.phase == EnumResourcePhase.READY else backoff_not_ready
    due = ensure_timezone_aware(last_transition, context="last_transition_time") + backoff
    if now >= due:
        return EnumReconcileReason.BACKOFF_EXPIRED
    return None


__all__ = ["decide_reconcile"]
