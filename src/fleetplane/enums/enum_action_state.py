# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Idempotent action state enumeration."""

from enum import Enum


class EnumActionState(str, Enum):
    """State of the action identified by (resource, generation).

    Attributes:
        NOT_EXISTS: No action with the identity exists (or it expired)
        IN_PROGRESS: Action exists and has not completed
        SUCCEEDED: Action completed successfully
        FAILED: Action completed unsuccessfully
    """

    NOT_EXISTS = "NotExists"
    IN_PROGRESS = "InProgress"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def is_complete(self) -> bool:
        return self in (EnumActionState.SUCCEEDED, EnumActionState.FAILED)


__all__ = ["EnumActionState"]
