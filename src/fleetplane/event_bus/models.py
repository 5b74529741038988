# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Message envelope models shared by the event bus implementations."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fleetplane.utils import parse_correlation_id, utc_now

logger = logging.getLogger(__name__)

_KAFKA_HEADER_KEYS = frozenset(
    {"correlation_id", "message_id", "source", "event_type", "content_type", "timestamp"}
)


class ModelEventHeaders(BaseModel):
    """Transport headers attached to every published message.

    Attributes:
        correlation_id: Carried through Sentinel, adapter and store logs
        message_id: Unique per publish
        source: Publishing component, e.g. ``sentinel.shard-a``
        event_type: Logical event type, e.g. ``fleet.reconcile.v1``
        delivery_attempt: 1 on first delivery, incremented on redelivery
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    correlation_id: UUID = Field(default_factory=uuid4)
    message_id: UUID = Field(default_factory=uuid4)
    source: str = "fleetplane"
    event_type: str = ""
    content_type: str = "application/json"
    timestamp: datetime = Field(default_factory=utc_now)
    delivery_attempt: int = Field(default=1, ge=1)

    def to_kafka(self) -> list[tuple[str, bytes]]:
        """Encode as Kafka record headers."""
        return [
            ("correlation_id", str(self.correlation_id).encode("utf-8")),
            ("message_id", str(self.message_id).encode("utf-8")),
            ("source", self.source.encode("utf-8")),
            ("event_type", self.event_type.encode("utf-8")),
            ("content_type", self.content_type.encode("utf-8")),
            ("timestamp", self.timestamp.isoformat().encode("utf-8")),
        ]

    @classmethod
    def from_kafka(
        cls, headers: Sequence[tuple[str, bytes]] | None, delivery_attempt: int = 1
    ) -> ModelEventHeaders:
        """Decode Kafka record headers, ignoring unknown keys.

        Headers that fail validation fall back to defaults, keeping the
        correlation id when it parses.
        """
        values: dict[str, str] = {}
        for key, raw in headers or []:
            if key in _KAFKA_HEADER_KEYS and raw is not None:
                values[key] = raw.decode("utf-8", errors="replace")
        try:
            return cls.model_validate({**values, "delivery_attempt": delivery_attempt})
        except ValidationError:
            logger.warning(
                "Malformed Kafka headers, using defaults",
                extra={"header_keys": sorted(values)},
            )
            return cls(
                correlation_id=parse_correlation_id(values.get("correlation_id")),
                delivery_attempt=delivery_attempt,
            )


class ModelEventMessage(BaseModel):
    """A message as delivered to a subscriber."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    topic: str
    key: bytes | None = None
    value: bytes
    headers: ModelEventHeaders
    offset: str | None = None
    partition: int | None = None


__all__ = ["ModelEventHeaders", "ModelEventMessage"]
