# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Process configuration loading.

Each loader reads a YAML file when a path is given. Without a file, the
defaults are used with environment-variable fallbacks:

    FLEET_API_PORT                  API listen port
    FLEET_POSTGRES_DSN              selects the Postgres store
    FLEET_STORE_URL                 Resource Store base URL
    FLEET_HTTP_PORT                 health server port
    FLEET_ENVIRONMENT               topic prefix
    FLEET_KAFKA_BOOTSTRAP_SERVERS   selects the Kafka bus

All failures raise ProtocolConfigurationError.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from fleetplane.adapter import ModelAdapterRuntimeConfig
from fleetplane.event_bus import ModelEventBusConfig
from fleetplane.event_bus.model_event_bus_config import (
    ENV_ENVIRONMENT,
    ENV_KAFKA_BOOTSTRAP_SERVERS,
)
from fleetplane.runtime.model_api_server_config import ModelApiServerConfig
from fleetplane.sentinel import ModelSentinelConfig
from fleetplane.utils import load_yaml_mapping, validate_config

ENV_API_PORT = "FLEET_API_PORT"
ENV_POSTGRES_DSN = "FLEET_POSTGRES_DSN"
ENV_STORE_URL = "FLEET_STORE_URL"
ENV_HTTP_PORT = "FLEET_HTTP_PORT"


def _environ(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def load_event_bus_config(
    path: str | Path | None = None, environ: Mapping[str, str] | None = None
) -> ModelEventBusConfig:
    if path is not None:
        return validate_config(
            ModelEventBusConfig, load_yaml_mapping(path, "load_event_bus_config"), str(path)
        )
    env = _environ(environ)
    values: dict[str, Any] = {}
    servers = env.get(ENV_KAFKA_BOOTSTRAP_SERVERS)
    if servers:
        values["type"] = "kafka"
        values["bootstrap_servers"] = servers
    if env.get(ENV_ENVIRONMENT):
        values["environment"] = env[ENV_ENVIRONMENT]
    return validate_config(ModelEventBusConfig, values, source="environment")


def load_api_server_config(
    path: str | Path | None = None, environ: Mapping[str, str] | None = None
) -> ModelApiServerConfig:
    if path is not None:
        return validate_config(
            ModelApiServerConfig, load_yaml_mapping(path, "load_api_server_config"), str(path)
        )
    env = _environ(environ)
    values: dict[str, Any] = {}
    if env.get(ENV_API_PORT):
        values["port"] = env[ENV_API_PORT]
    if env.get(ENV_POSTGRES_DSN):
        values["store"] = "postgres"
        values["dsn"] = env[ENV_POSTGRES_DSN]
    return validate_config(ModelApiServerConfig, values, source="environment")


def load_sentinel_config(
    path: str | Path | None = None,
    bus_config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ModelSentinelConfig:
    """Load a Sentinel shard config; ``bus_config_path`` replaces its event bus."""
    if path is not None:
        values = load_yaml_mapping(path, "load_sentinel_config")
        source = str(path)
    else:
        env = _environ(environ)
        values = {"event_bus": load_event_bus_config(environ=env)}
        if env.get(ENV_STORE_URL):
            values["store_url"] = env[ENV_STORE_URL]
        if env.get(ENV_HTTP_PORT):
            values["health_port"] = env[ENV_HTTP_PORT]
        source = "environment"
    if bus_config_path is not None:
        values.pop("eventBus", None)
        values["event_bus"] = load_event_bus_config(bus_config_path)
    return validate_config(ModelSentinelConfig, values, source=source)


def load_adapter_runtime_config(
    path: str | Path | None = None, environ: Mapping[str, str] | None = None
) -> ModelAdapterRuntimeConfig:
    if path is not None:
        return validate_config(
            ModelAdapterRuntimeConfig,
            load_yaml_mapping(path, "load_adapter_runtime_config"),
            str(path),
        )
    env = _environ(environ)
    values: dict[str, Any] = {"event_bus": load_event_bus_config(environ=env)}
    if env.get(ENV_STORE_URL):
        values["store_url"] = env[ENV_STORE_URL]
    if env.get(ENV_HTTP_PORT):
        values["health_port"] = env[ENV_HTTP_PORT]
    return validate_config(ModelAdapterRuntimeConfig, values, source="environment")


__all__ = [
    "ENV_API_PORT",
    "ENV_HTTP_PORT",
    "ENV_POSTGRES_DSN",
    "ENV_STORE_URL",
    "load_adapter_runtime_config",
    "load_api_server_config",
    "load_event_bus_config",
    "load_sentinel_config",
]
