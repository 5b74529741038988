# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Test helpers for fleetplane unit tests.

Available Utilities:
    Deterministic:
        - DeterministicClock: Controllable clock injected into stores,
          Sentinel and adapter runtimes

    Factories:
        - make_resource: Build a ModelResource without a store
        - make_report: Build an adapter status report from booleans
        - make_event: Build a reconcile event for a resource
"""

from tests.helpers.deterministic import DeterministicClock
from tests.helpers.factories import make_event, make_report, make_resource

__all__ = [
    "DeterministicClock",
    "make_event",
    "make_report",
    "make_resource",
]
