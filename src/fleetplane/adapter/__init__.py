# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Adapter configuration, reconciliation pipeline and worker runtime."""

from fleetplane.adapter.adapter_config_loader import (
    load_adapter_config,
    parse_adapter_config,
)
from fleetplane.adapter.adapter_runtime import AdapterRuntime, create_action_backend
from fleetplane.adapter.model_adapter_config import (
    ModelActionSpec,
    ModelAdapterConfig,
    ModelAdapterRuntimeConfig,
    ModelHealthRules,
    ModelPostconditions,
)
from fleetplane.adapter.reconciliation_pipeline import (
    ModelPipelineResult,
    ReconciliationPipeline,
)

__all__ = [
    "AdapterRuntime",
    "ModelActionSpec",
    "ModelAdapterConfig",
    "ModelAdapterRuntimeConfig",
    "ModelHealthRules",
    "ModelPostconditions",
    "ModelPipelineResult",
    "ReconciliationPipeline",
    "create_action_backend",
    "load_adapter_config",
    "parse_adapter_config",
]
