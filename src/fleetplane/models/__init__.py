# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Domain models for resources, statuses and reconcile events."""

from fleetplane.models.model_adapter_status import (
    ModelAdapterStatus,
    ModelAdapterStatusReport,
    ModelStatusAuditEntry,
)
from fleetplane.models.model_condition import (
    ModelCondition,
    ModelConditionSet,
    find_condition,
)
from fleetplane.models.model_reconcile_event import (
    RECONCILE_EVENT_TYPE,
    ModelReconcileEvent,
)
from fleetplane.models.model_resource import (
    ModelResource,
    ModelResourceCreate,
    ModelResourcePatch,
    ModelResourceStatus,
)
from fleetplane.models.model_status_write_result import ModelStatusWriteResult

__all__ = [
    "RECONCILE_EVENT_TYPE",
    "ModelAdapterStatus",
    "ModelAdapterStatusReport",
    "ModelCondition",
    "ModelConditionSet",
    "ModelReconcileEvent",
    "ModelResource",
    "ModelResourceCreate",
    "ModelResourcePatch",
    "ModelResourceStatus",
    "ModelStatusAuditEntry",
    "ModelStatusWriteResult",
    "find_condition",
]
