# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Event bus configuration model."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ENV_ENVIRONMENT = "FLEET_ENVIRONMENT"
ENV_KAFKA_BOOTSTRAP_SERVERS = "FLEET_KAFKA_BOOTSTRAP_SERVERS"


class ModelEventBusConfig(BaseModel):
    """Configuration shared by the in-memory and Kafka event buses.

    Attributes:
        type: ``inmemory`` or ``kafka``
        environment: Topic prefix and consumer group prefix
        bootstrap_servers: Kafka brokers (ignored by the in-memory bus)
        timeout_seconds: Producer/consumer start and send deadline
        max_retry_attempts: Publish retries after the first attempt
        retry_backoff_base: Base delay in seconds, doubled per attempt
        max_delivery_attempts: Handler attempts per message before it is
            skipped; Sentinel re-emits skipped work on a later tick
        redelivery_delay_seconds: Pause before redelivering a failed message
        max_in_flight: Concurrent handler calls per consumer group when the
            subscriber does not ask for a different bound
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    type: Literal["inmemory", "kafka"] = "inmemory"
    environment: str = Field(default="local", min_length=1)
    bootstrap_servers: str = "localhost:9092"
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retry_attempts: int = Field(default=3, ge=0)
    retry_backoff_base: float = Field(default=1.0, ge=0)
    max_delivery_attempts: int = Field(default=5, ge=1)
    redelivery_delay_seconds: float = Field(default=0.0, ge=0)
    max_in_flight: int = Field(default=1, ge=1)
    acks: Literal["all", 0, 1] = "all"
    enable_idempotence: bool = True
    auto_offset_reset: Literal["earliest", "latest"] = "earliest"
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_reset_timeout: float = Field(default=30.0, ge=0)


__all__ = [
    "ENV_ENVIRONMENT",
    "ENV_KAFKA_BOOTSTRAP_SERVERS",
    "ModelEventBusConfig",
]
