# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Event bus implementations for reconcile event delivery.

- InMemoryEventBus: tests and ``fleetplane dev``
- KafkaEventBus: production, via aiokafka
"""

from __future__ import annotations

from fleetplane.event_bus.inmemory_event_bus import InMemoryEventBus
from fleetplane.event_bus.kafka_event_bus import KafkaEventBus
from fleetplane.event_bus.model_event_bus_config import ModelEventBusConfig
from fleetplane.event_bus.models import ModelEventHeaders, ModelEventMessage
from fleetplane.event_bus.protocol_event_bus import (
    MessageHandler,
    ProtocolEventBus,
    Unsubscribe,
)
from fleetplane.event_bus.topic_constants import (
    build_reconcile_topic,
    parse_reconcile_topic,
)


def create_event_bus(config: ModelEventBusConfig) -> ProtocolEventBus:
    """Build the bus selected by ``config.type``."""
    if config.type == "kafka":
        return KafkaEventBus(config)
    return InMemoryEventBus(
        environment=config.environment,
        max_delivery_attempts=config.max_delivery_attempts,
        redelivery_delay_seconds=config.redelivery_delay_seconds,
        max_in_flight=config.max_in_flight,
    )


__all__ = [
    "InMemoryEventBus",
    "KafkaEventBus",
    "MessageHandler",
    "ModelEventBusConfig",
    "ModelEventHeaders",
    "ModelEventMessage",
    "ProtocolEventBus",
    "Unsubscribe",
    "build_reconcile_topic",
    "create_event_bus",
    "parse_reconcile_topic",
]
