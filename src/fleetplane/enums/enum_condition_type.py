# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Condition type enumeration."""

from enum import Enum


class EnumConditionType(str, Enum):
    """Condition types reported by adapters and derived by the store.

    Attributes:
        APPLIED: Adapter has started (or decided not to start) its work
        AVAILABLE: Adapter's workload is serving correctly
        HEALTH: Adapter itself is not faulting
        READY: Aggregate, Available at the resource's current generation
    """

    APPLIED = "Applied"
    AVAILABLE = "Available"
    HEALTH = "Health"
    READY = "Ready"


__all__ = ["EnumConditionType"]
