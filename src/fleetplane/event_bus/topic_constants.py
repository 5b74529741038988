# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Topic naming for reconcile events.

Topic Naming:
    - **Format**: ``<env>.fleet.evt.<resource_type>-reconcile.<version>``
    - Example: ``prod.fleet.evt.clusters-reconcile.v1``

Sentinel publishes and adapters subscribe on the same name, so both sides
build it here rather than formatting strings themselves.

Usage:
    >>> from fleetplane.event_bus.topic_constants import build_reconcile_topic
    >>> build_reconcile_topic("dev", "clusters")
    'dev.fleet.evt.clusters-reconcile.v1'
"""

from __future__ import annotations

import re
from typing import Final

from fleetplane.enums import EnumInfraTransportType
from fleetplane.errors import ModelInfraErrorContext, ProtocolConfigurationError

RECONCILE_TOPIC_VERSION: Final[str] = "v1"

ENV_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[\w-]+$")
"""Valid environment identifiers: 'dev', 'prod', 'test-1', 'my_env'."""

_RESOURCE_TYPE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9-]*$")

RECONCILE_TOPIC_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?P<env>[\w-]+)\.fleet\.evt\.(?P<resource_type>[a-z][a-z0-9-]*)"
    r"-reconcile\.(?P<version>v\d+)$"
)

TOPIC_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9._-]{1,249}$")
"""Kafka's own constraint on topic names."""


def build_reconcile_topic(
    environment: str,
    resource_type: str,
    *,
    version: str = RECONCILE_TOPIC_VERSION,
) -> str:
    """Build the reconcile topic name for a resource type.

    Raises:
        ProtocolConfigurationError: If environment or resource type is empty
            or has an invalid format.

    Example:
        >>> build_reconcile_topic("staging", "nodepools")
        'staging.fleet.evt.nodepools-reconcile.v1'
    """
    context = ModelInfraErrorContext(
        transport_type=EnumInfraTransportType.KAFKA,
        operation="build_reconcile_topic",
    )
    env = environment.strip()
    if not env or not ENV_PATTERN.match(env):
        raise ProtocolConfigurationError(
            f"Invalid environment {environment!r}: must be alphanumeric with "
            "underscores or hyphens",
            context=context,
            parameter="environment",
        )
    if not _RESOURCE_TYPE_PATTERN.match(resource_type):
        raise ProtocolConfigurationError(
            f"Invalid resource type {resource_type!r}: must be a lowercase identifier",
            context=context,
            parameter="resource_type",
        )
    return f"{env}.fleet.evt.{resource_type}-reconcile.{version}"


def parse_reconcile_topic(topic: str) -> tuple[str, str] | None:
    """Return ``(environment, resource_type)`` for a reconcile topic, else None."""
    match = RECONCILE_TOPIC_PATTERN.match(topic)
    if match is None:
        return None
    return match.group("env"), match.group("resource_type")


__all__ = [
    "ENV_PATTERN",
    "RECONCILE_TOPIC_PATTERN",
    "RECONCILE_TOPIC_VERSION",
    "TOPIC_NAME_PATTERN",
    "build_reconcile_topic",
    "parse_reconcile_topic",
]
