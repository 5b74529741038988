# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Configuration model for the Postgres Resource Store."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ModelPostgresStoreConfig(BaseModel):
    """Connection pool and resilience settings.

    The DSN contains credentials: it is excluded from repr and must never
    be logged.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    dsn: str = Field(..., min_length=1, repr=False)
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    command_timeout: float = Field(default=30.0, gt=0)
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_reset_timeout: float = Field(default=60.0, ge=0)


__all__ = ["ModelPostgresStoreConfig"]
