# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Load adapter definitions from YAML."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from fleetplane.adapter.model_adapter_config import ModelAdapterConfig
from fleetplane.errors import ModelInfraErrorContext, ProtocolConfigurationError
from fleetplane.utils import expand_env_references, load_yaml_mapping, validate_config


def parse_adapter_config(
    data: Mapping[str, Any],
    source: str = "adapter config",
    environ: Mapping[str, str] | None = None,
) -> ModelAdapterConfig:
    """Validate a raw mapping, expanding ``${VAR}`` references in ``env``.

    Raises:
        ProtocolConfigurationError: On validation failure or an unset variable.
    """
    raw = dict(data)
    env = raw.get("env")
    if env is not None:
        if not isinstance(env, Mapping):
            raise ProtocolConfigurationError(
                f"'env' in {source} must be a mapping",
                context=ModelInfraErrorContext(
                    operation="parse_adapter_config", target_name=source
                ),
            )
        raw["env"] = expand_env_references(env, environ, source=source)
    return validate_config(ModelAdapterConfig, raw, source=source)


def load_adapter_config(
    path: str | Path, environ: Mapping[str, str] | None = None
) -> ModelAdapterConfig:
    """Load an adapter definition from YAML."""
    data = load_yaml_mapping(path, operation="load_adapter_config")
    return parse_adapter_config(data, source=str(path), environ=environ)


__all__ = [
    "load_adapter_config",
    "parse_adapter_config",
]
