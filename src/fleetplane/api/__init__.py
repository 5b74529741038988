# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Resource Store HTTP API server and client."""

from fleetplane.api.resource_store_client import ResourceStoreClient
from fleetplane.api.resource_store_server import (
    API_PREFIX,
    DEFAULT_API_PORT,
    ResourceStoreServer,
)

__all__ = [
    "API_PREFIX",
    "DEFAULT_API_PORT",
    "ResourceStoreClient",
    "ResourceStoreServer",
]
