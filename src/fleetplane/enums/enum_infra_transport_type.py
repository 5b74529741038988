# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Infrastructure Transport Type Enumeration.

Defines the transport types fleetplane components talk over.
Used for error context and circuit breaker identification.
"""

from enum import Enum


class EnumInfraTransportType(str, Enum):
    """Infrastructure transport types for fleetplane components.

    Attributes:
        HTTP: Resource Store HTTP API transport
        DATABASE: Database connection transport (PostgreSQL)
        KAFKA: Kafka message broker transport
        INMEMORY: In-process transport used by tests and dev mode
        KUBERNETES: Kubernetes API transport used by action backends
        RUNTIME: Runtime host process internal transport
    """

    HTTP = "http"
    DATABASE = "db"
    KAFKA = "kafka"
    INMEMORY = "inmemory"
    KUBERNETES = "kubernetes"
    RUNTIME = "runtime"


__all__ = ["EnumInfraTransportType"]
