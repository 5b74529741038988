# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Resource lifecycle phase enumeration."""

from enum import Enum


class EnumResourcePhase(str, Enum):
    """Coarse lifecycle phase derived from the aggregate conditions.

    Attributes:
        NOT_READY: No adapter has started work at the current generation
        PROVISIONING: At least one adapter applied at the current generation
        READY: Every required adapter is Available at the current generation
        FAILED: An adapter reports Health=False at the current generation
        TERMINATING: Deletion has been requested
        TERMINATED: Deletion has been finalized
    """

    NOT_READY = "NotReady"
    PROVISIONING = "Provisioning"
    READY = "Ready"
    FAILED = "Failed"
    TERMINATING = "Terminating"
    TERMINATED = "Terminated"


__all__ = ["EnumResourcePhase"]
