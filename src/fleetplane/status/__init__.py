# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Status aggregation and merge policy."""

from fleetplane.status.status_aggregator import (
    REASON_EVALUATION_ERROR,
    aggregate_conditions,
)
from fleetplane.status.status_merge_policy import (
    DEFAULT_AUDIT_LIMIT,
    StatusMergePolicy,
)

__all__ = [
    "DEFAULT_AUDIT_LIMIT",
    "REASON_EVALUATION_ERROR",
    "StatusMergePolicy",
    "aggregate_conditions",
]
