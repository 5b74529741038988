# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Rule operator enumerations."""

from enum import Enum


class EnumRuleOperator(str, Enum):
    """Comparison operators available to field rules."""

    EQ = "eq"
    NE = "ne"
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS = "contains"
    EXISTS = "exists"
    NOT_EXISTS = "notExists"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"


class EnumRuleGroupOperator(str, Enum):
    """Boolean combinators for nested rule groups."""

    AND = "and"
    OR = "or"


__all__ = ["EnumRuleGroupOperator", "EnumRuleOperator"]
