# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""fleetplane: level-triggered fleet reconciliation.

Components:
    - Resource Store (``fleetplane.store``, ``fleetplane.api``)
    - Sentinel decision loop (``fleetplane.sentinel``)
    - Adapters (``fleetplane.adapter``) built from rules
      (``fleetplane.rules``), idempotent actions (``fleetplane.actions``)
      and status aggregation (``fleetplane.status``)
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
