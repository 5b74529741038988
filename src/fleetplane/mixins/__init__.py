# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Reusable mixins."""

from fleetplane.mixins.mixin_async_circuit_breaker import (
    CircuitState,
    MixinAsyncCircuitBreaker,
)

__all__ = ["CircuitState", "MixinAsyncCircuitBreaker"]
