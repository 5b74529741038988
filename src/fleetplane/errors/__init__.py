# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Fleetplane error classes and error context models."""

from fleetplane.errors.fleet_errors import (
    TRANSIENT_ERRORS,
    ActionBackendError,
    FleetError,
    InfraConnectionError,
    InfraTimeoutError,
    InfraUnavailableError,
    ProtocolConfigurationError,
    ResourceConflictError,
    ResourceNotFoundError,
    ResourceStoreError,
    RuleEvaluationError,
)
from fleetplane.errors.model_infra_error_context import ModelInfraErrorContext
from fleetplane.errors.model_problem_details import ModelProblemDetails

__all__ = [
    "TRANSIENT_ERRORS",
    "ActionBackendError",
    "FleetError",
    "InfraConnectionError",
    "InfraTimeoutError",
    "InfraUnavailableError",
    "ModelInfraErrorContext",
    "ModelProblemDetails",
    "ProtocolConfigurationError",
    "ResourceConflictError",
    "ResourceNotFoundError",
    "ResourceStoreError",
    "RuleEvaluationError",
]
