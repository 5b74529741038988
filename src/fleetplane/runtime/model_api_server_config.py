# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Resource Store API process configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from fleetplane.api.resource_store_server import DEFAULT_API_HOST, DEFAULT_API_PORT
from fleetplane.status.status_merge_policy import DEFAULT_AUDIT_LIMIT
from fleetplane.store import DEFAULT_OWNER_TYPES, DEFAULT_RESOURCE_TYPES


class ModelApiServerConfig(BaseModel):
    """Settings for ``fleetplane api``.

    Attributes:
        store: ``inmemory`` (single process, non-durable) or ``postgres``
        dsn: Postgres DSN; required for the postgres store, never logged
        required_adapters: Per resource type, the adapters whose
            Available=True makes the resource Available
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    host: str = DEFAULT_API_HOST
    port: int = Field(default=DEFAULT_API_PORT, ge=0, le=65535)
    store: Literal["inmemory", "postgres"] = "inmemory"
    dsn: str | None = Field(default=None, repr=False)
    pool_max_size: int = Field(default=10, ge=1)
    resource_types: tuple[str, ...] = Field(default=DEFAULT_RESOURCE_TYPES, min_length=1)
    owner_types: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_OWNER_TYPES))
    required_adapters: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    audit_limit: int = Field(default=DEFAULT_AUDIT_LIMIT, ge=1)

    @model_validator(mode="after")
    def _check_store(self) -> ModelApiServerConfig:
        if self.store == "postgres" and not self.dsn:
            raise ValueError("store 'postgres' requires a dsn")
        unknown = set(self.required_adapters) - set(self.resource_types)
        if unknown:
            raise ValueError(
                f"required_adapters names unknown resource types: {sorted(unknown)}"
            )
        return self


__all__ = ["ModelApiServerConfig"]
