# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Condition status enumeration."""

from enum import Enum


class EnumConditionStatus(str, Enum):
    """Tri-state condition value, serialized as ``True``/``False``/``Unknown``."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"

    @classmethod
    def from_bool(cls, value: bool) -> "EnumConditionStatus":
        return cls.TRUE if value else cls.FALSE


__all__ = ["EnumConditionStatus"]
