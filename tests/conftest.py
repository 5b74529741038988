# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Pytest configuration and shared fixtures for fleetplane tests."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator

import pytest

from fleetplane.actions import InMemoryActionBackend
from fleetplane.rules import clear_path_cache
from fleetplane.status import StatusMergePolicy
from fleetplane.store import InMemoryResourceStore
from tests.helpers import DeterministicClock

# =============================================================================
# Duck Typing Conformance Helpers
# =============================================================================


def assert_has_methods(
    obj: object,
    required_methods: list[str],
    *,
    protocol_name: str | None = None,
) -> None:
    """Assert that an object has all required methods (duck typing conformance).

    Args:
        obj: The object to check for method presence.
        required_methods: List of method names that must be present and callable.
        protocol_name: Optional protocol name for clearer error messages.

    Raises:
        AssertionError: If any required method is missing or not callable.
    """
    name = protocol_name or obj.__class__.__name__
    for method_name in required_methods:
        assert hasattr(obj, method_name), f"{name} must have '{method_name}' method"
        if not method_name.startswith("__"):
            assert callable(
                getattr(obj, method_name)
            ), f"{name}.{method_name} must be callable"


def assert_has_async_methods(
    obj: object,
    required_methods: list[str],
    *,
    protocol_name: str | None = None,
) -> None:
    """Assert that an object has all required async methods."""
    name = protocol_name or obj.__class__.__name__
    for method_name in required_methods:
        assert hasattr(obj, method_name), f"{name} must have '{method_name}' method"
        method = getattr(obj, method_name)
        assert callable(method), f"{name}.{method_name} must be callable"
        assert asyncio.iscoroutinefunction(
            method
        ), f"{name}.{method_name} must be async (coroutine function)"


def assert_resource_store_interface(store: object) -> None:
    """Assert that an object implements the ProtocolResourceStore interface."""
    assert_has_async_methods(
        store,
        [
            "create_resource",
            "get_resource",
            "list_resources",
            "update_resource",
            "delete_resource",
            "list_statuses",
            "upsert_status",
            "get_status_audit",
        ],
        protocol_name="ProtocolResourceStore",
    )


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_path_cache() -> Iterator[None]:
    yield
    clear_path_cache()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def store(clock: DeterministicClock) -> InMemoryResourceStore:
    """In-memory store on the deterministic clock; every reporter is required."""
    return InMemoryResourceStore(merge_policy=StatusMergePolicy(), clock=clock)


@pytest.fixture
def backend() -> InMemoryActionBackend:
    return InMemoryActionBackend()
