# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Error code enumeration shared by all fleetplane errors."""

from enum import Enum


class EnumFleetErrorCode(str, Enum):
    """Machine-readable error classification.

    The value is surfaced as the ``code`` member of problem-details
    responses returned by the Resource Store API.
    """

    OPERATION_FAILED = "OPERATION_FAILED"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    STALE_GENERATION = "STALE_GENERATION"
    RULE_EVALUATION_ERROR = "RULE_EVALUATION_ERROR"
    ACTION_BACKEND_ERROR = "ACTION_BACKEND_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


__all__ = ["EnumFleetErrorCode"]
