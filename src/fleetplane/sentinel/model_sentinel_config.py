# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Sentinel shard configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleetplane.event_bus import ModelEventBusConfig
from fleetplane.store.protocol_resource_store import DEFAULT_RESOURCE_TYPES

DEFAULT_STORE_URL = "http://localhost:8080"
DEFAULT_HEALTH_PORT = 8081


class ModelSentinelConfig(BaseModel):
    """Configuration for one Sentinel shard.

    Shards partition the fleet with disjoint ``label_selector`` values.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    store_url: str = DEFAULT_STORE_URL
    resource_types: tuple[str, ...] = Field(default=DEFAULT_RESOURCE_TYPES, min_length=1)
    label_selector: str | None = None
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    backoff_ready_seconds: float = Field(default=1800.0, ge=0)
    backoff_not_ready_seconds: float = Field(default=10.0, ge=0)
    max_concurrency: int = Field(default=100, ge=1)
    source: str = "sentinel"
    health_port: int = Field(default=DEFAULT_HEALTH_PORT, ge=0, le=65535)
    event_bus: ModelEventBusConfig = Field(default_factory=ModelEventBusConfig)


__all__ = [
    "DEFAULT_HEALTH_PORT",
    "DEFAULT_STORE_URL",
    "ModelSentinelConfig",
]
