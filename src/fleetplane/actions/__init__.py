# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Idempotent actions and their backends."""

from fleetplane.actions.action_manager import IdempotentActionManager
from fleetplane.actions.backend_inmemory import InMemoryActionBackend
from fleetplane.actions.model_action import ModelActionRecord, ModelActionResolution
from fleetplane.actions.protocol_action_backend import ProtocolActionBackend
from fleetplane.actions.util_action_naming import build_action_name

__all__ = [
    "IdempotentActionManager",
    "InMemoryActionBackend",
    "ModelActionRecord",
    "ModelActionResolution",
    "ProtocolActionBackend",
    "build_action_name",
]
