# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Resource Store implementations."""

from fleetplane.store.model_postgres_store_config import ModelPostgresStoreConfig
from fleetplane.store.protocol_resource_store import (
    DEFAULT_OWNER_TYPES,
    DEFAULT_RESOURCE_TYPES,
    ProtocolResourceStore,
)
from fleetplane.store.store_inmemory import InMemoryResourceStore
from fleetplane.store.store_postgres import PostgresResourceStore

__all__ = [
    "DEFAULT_OWNER_TYPES",
    "DEFAULT_RESOURCE_TYPES",
    "InMemoryResourceStore",
    "ModelPostgresStoreConfig",
    "PostgresResourceStore",
    "ProtocolResourceStore",
]
