# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Enumerations for fleetplane."""

from fleetplane.enums.enum_action_state import EnumActionState
from fleetplane.enums.enum_condition_status import EnumConditionStatus
from fleetplane.enums.enum_condition_type import EnumConditionType
from fleetplane.enums.enum_fleet_error_code import EnumFleetErrorCode
from fleetplane.enums.enum_infra_transport_type import EnumInfraTransportType
from fleetplane.enums.enum_pipeline_stage import EnumPipelineStage
from fleetplane.enums.enum_reconcile_reason import EnumReconcileReason
from fleetplane.enums.enum_resource_phase import EnumResourcePhase
from fleetplane.enums.enum_rule_operator import (
    EnumRuleGroupOperator,
    EnumRuleOperator,
)
from fleetplane.enums.enum_status_write_outcome import EnumStatusWriteOutcome

__all__ = [
    "EnumActionState",
    "EnumConditionStatus",
    "EnumConditionType",
    "EnumFleetErrorCode",
    "EnumInfraTransportType",
    "EnumPipelineStage",
    "EnumReconcileReason",
    "EnumResourcePhase",
    "EnumRuleGroupOperator",
    "EnumRuleOperator",
    "EnumStatusWriteOutcome",
]
