# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""YAML configuration loading shared by every process entrypoint.

Security:
    - Uses yaml.safe_load() to prevent arbitrary code execution
    - Rejects files larger than MAX_CONFIG_SIZE_BYTES
    - ``${VAR}`` expansion reads the process environment only
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from fleetplane.errors import ModelInfraErrorContext, ProtocolConfigurationError

logger = logging.getLogger(__name__)

MAX_CONFIG_SIZE_BYTES = 1024 * 1024
MAX_REPORTED_ERRORS = 5

_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

ModelT = TypeVar("ModelT", bound=BaseModel)


def load_yaml_mapping(path: str | Path, operation: str = "load_config") -> dict[str, Any]:
    """Read a YAML file that must contain a mapping.

    Raises:
        ProtocolConfigurationError: If the file is missing, too large, not
            valid YAML, or not a mapping.
    """
    config_path = Path(path)
    context = ModelInfraErrorContext(operation=operation, target_name=str(config_path))

    if not config_path.is_file():
        raise ProtocolConfigurationError(
            f"Config file not found: {config_path}", context=context
        )
    file_size = config_path.stat().st_size
    if file_size > MAX_CONFIG_SIZE_BYTES:
        raise ProtocolConfigurationError(
            f"Config file too large: {file_size} bytes (max {MAX_CONFIG_SIZE_BYTES})",
            context=context,
        )

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ProtocolConfigurationError(
            f"Invalid YAML in {config_path}: {e}", context=context
        ) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProtocolConfigurationError(
            f"Config must be a mapping, got {type(data).__name__}", context=context
        )
    logger.debug("Loaded config file", extra={"config_path": str(config_path)})
    return data


def expand_env_references(
    values: Mapping[str, Any],
    environ: Mapping[str, str] | None = None,
    source: str = "config",
) -> dict[str, Any]:
    """Expand ``${VAR}`` references in string values.

    Raises:
        ProtocolConfigurationError: If a referenced variable is unset.
    """
    env = os.environ if environ is None else environ
    expanded: dict[str, Any] = {}
    for key, value in values.items():
        if not isinstance(value, str):
            expanded[key] = value
            continue
        missing = [name for name in _ENV_REFERENCE.findall(value) if name not in env]
        if missing:
            raise ProtocolConfigurationError(
                f"Environment variable {missing[0]} referenced by '{key}' is not set",
                context=ModelInfraErrorContext(
                    operation="expand_env_references", target_name=source
                ),
                variable=missing[0],
            )
        expanded[key] = _ENV_REFERENCE.sub(lambda m: env[m.group(1)], value)
    return expanded


def format_validation_errors(error: ValidationError) -> str:
    """Summarize the first few validation errors as ``loc: msg; ...``."""
    parts = []
    for item in error.errors()[:MAX_REPORTED_ERRORS]:
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    remaining = error.error_count() - MAX_REPORTED_ERRORS
    if remaining > 0:
        parts.append(f"... and {remaining} more")
    return "; ".join(parts)


def validate_config(
    model: type[ModelT], data: Mapping[str, Any], source: str = "config"
) -> ModelT:
    """Validate ``data`` into ``model``.

    Raises:
        ProtocolConfigurationError: Listing the first validation errors.
    """
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        raise ProtocolConfigurationError(
            f"Invalid {model.__name__} in {source}: {format_validation_errors(e)}",
            context=ModelInfraErrorContext(operation="validate_config", target_name=source),
        ) from e


def load_config_file(model: type[ModelT], path: str | Path) -> ModelT:
    """Load and validate a YAML config file into ``model``."""
    return validate_config(model, load_yaml_mapping(path), source=str(path))


__all__ = [
    "MAX_CONFIG_SIZE_BYTES",
    "expand_env_references",
    "format_validation_errors",
    "load_config_file",
    "load_yaml_mapping",
    "validate_config",
]
