# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Sentinel decision loop."""

from fleetplane.sentinel.model_sentinel_config import ModelSentinelConfig
from fleetplane.sentinel.sentinel_decision import decide_reconcile
from fleetplane.sentinel.sentinel_service import (
    ModelSentinelTickResult,
    SentinelService,
)

__all__ = [
    "ModelSentinelConfig",
    "ModelSentinelTickResult",
    "SentinelService",
    "decide_reconcile",
]
