# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Process runtime: logging, configuration, health server and bootstrap."""

from fleetplane.runtime.config_loader import (
    load_adapter_runtime_config,
    load_api_server_config,
    load_event_bus_config,
    load_sentinel_config,
)
from fleetplane.runtime.health_server import HealthServer
from fleetplane.runtime.logging_config import configure_logging
from fleetplane.runtime.model_api_server_config import ModelApiServerConfig
from fleetplane.runtime.process_runner import (
    build_store,
    install_shutdown_handlers,
    run_adapters,
    run_api,
    run_dev,
    run_sentinel,
    trigger_reconcile,
)

__all__ = [
    "HealthServer",
    "ModelApiServerConfig",
    "build_store",
    "configure_logging",
    "install_shutdown_handlers",
    "load_adapter_runtime_config",
    "load_api_server_config",
    "load_event_bus_config",
    "load_sentinel_config",
    "run_adapters",
    "run_api",
    "run_dev",
    "run_sentinel",
    "trigger_reconcile",
]
