# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Reason carried by a reconcile event."""

from enum import Enum


class EnumReconcileReason(str, Enum):
    """Why a reconcile event was emitted."""

    NEVER_RECONCILED = "NeverReconciled"
    BACKOFF_EXPIRED = "BackoffExpired"
    MANUAL = "Manual"


__all__ = ["EnumReconcileReason"]
