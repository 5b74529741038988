# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Condition evaluator.

Evaluates rule trees against a merged context document. Evaluation is
pure: no I/O, no clock, and the same inputs always give the same result.

Missing data semantics:
    - ``exists`` is False and ``notExists`` is True for a missing path.
    - ``ne`` is True when either side is missing.
    - Every other operator raises RuleEvaluationError for a missing path,
      so a typo in a rule surfaces as an adapter fault instead of a silent
      False.

Type semantics:
    - ``eq``/``ne`` never treat booleans as integers.
    - ``in``/``notIn`` require a list right-hand side.
    - ``contains`` works on lists (membership), strings (substring) and
      mappings (key presence).
    - ``gt``/``lt``/``gte``/``lte`` require two numbers or two strings.
"""

from __future__ import annotations

import logging
import operator as _op
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

from fleetplane.enums import EnumRuleGroupOperator, EnumRuleOperator
from fleetplane.errors import RuleEvaluationError
from fleetplane.rules.field_path import resolve_field, values_equal
from fleetplane.rules.model_rule import ModelFieldRule, ModelRuleGroup, RuleNode

logger = logging.getLogger(__name__)

_ORDERING: dict[EnumRuleOperator, Callable[[Any, Any], bool]] = {
    EnumRuleOperator.GT: _op.gt,
    EnumRuleOperator.LT: _op.lt,
    EnumRuleOperator.GTE: _op.ge,
    EnumRuleOperator.LTE: _op.le,
}


class ModelRuleExplanation(BaseModel):
    """Outcome of one top-level rule, for diagnostics."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    rule: str
    result: bool | None
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.result is True


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _compare_ordered(
    operator: EnumRuleOperator, actual: Any, expected: Any, field: str
) -> bool:
    if (_is_number(actual) and _is_number(expected)) or (
        isinstance(actual, str) and isinstance(expected, str)
    ):
        return _ORDERING[operator](actual, expected)
    raise RuleEvaluationError(
        f"Operator '{operator.value}' cannot compare "
        f"{type(actual).__name__} with {type(expected).__name__} at '{field}'",
        field=field,
    )


def _contains(actual: Any, expected: Any, field: str) -> bool:
    if isinstance(actual, list | tuple):
        return any(values_equal(item, expected) for item in actual)
    if isinstance(actual, str):
        if not isinstance(expected, str):
            raise RuleEvaluationError(
                f"Operator 'contains' on a string at '{field}' needs a string operand",
                field=field,
            )
        return expected in actual
    if isinstance(actual, Mapping):
        if not isinstance(expected, str):
            raise RuleEvaluationError(
                f"Operator 'contains' on a mapping at '{field}' needs a string key",
                field=field,
            )
        return expected in actual
    raise RuleEvaluationError(
        f"Operator 'contains' cannot be applied to {type(actual).__name__} at '{field}'",
        field=field,
    )


def _member_of(actual: Any, expected: Any, operator: EnumRuleOperator, field: str) -> bool:
    if not isinstance(expected, list | tuple):
        raise RuleEvaluationError(
            f"Operator '{operator.value}' at '{field}' requires a list operand, "
            f"got {type(expected).__name__}",
            field=field,
        )
    return any(values_equal(actual, candidate) for candidate in expected)


def _compare(operator: EnumRuleOperator, actual: Any, expected: Any, field: str) -> bool:
    if operator is EnumRuleOperator.EQ:
        return values_equal(actual, expected)
    if operator is EnumRuleOperator.NE:
        return not values_equal(actual, expected)
    if operator is EnumRuleOperator.IN:
        return _member_of(actual, expected, operator, field)
    if operator is EnumRuleOperator.NOT_IN:
        return not _member_of(actual, expected, operator, field)
    if operator is EnumRuleOperator.CONTAINS:
        return _contains(actual, expected, field)
    if operator in _ORDERING:
        return _compare_ordered(operator, actual, expected, field)
    raise RuleEvaluationError(f"Unsupported operator '{operator.value}'", field=field)


def _evaluate_field_rule(rule: ModelFieldRule, context: Mapping[str, Any]) -> bool:
    found, actual = resolve_field(context, rule.field)
    operator = rule.operator

    if operator is EnumRuleOperator.EXISTS:
        return found
    if operator is EnumRuleOperator.NOT_EXISTS:
        return not found

    if rule.field_ref is not None:
        ref_found, expected = resolve_field(context, rule.field_ref)
        if not ref_found:
            if operator is EnumRuleOperator.NE:
                return True
            raise RuleEvaluationError(
                f"Referenced field '{rule.field_ref}' not found", field=rule.field_ref
            )
    else:
        expected = rule.value

    if not found:
        if operator is EnumRuleOperator.NE:
            return True
        raise RuleEvaluationError(f"Field '{rule.field}' not found", field=rule.field)

    return _compare(operator, actual, expected, rule.field)


def evaluate_rule(rule: RuleNode, context: Mapping[str, Any]) -> bool:
    """Evaluate a single rule or rule group.

    Raises:
        RuleEvaluationError: If a required field is missing or operand
            types are incompatible.
    """
    if isinstance(rule, ModelRuleGroup):
        if rule.operator is EnumRuleGroupOperator.AND:
            return all(evaluate_rule(operand, context) for operand in rule.operands)
        return any(evaluate_rule(operand, context) for operand in rule.operands)
    return _evaluate_field_rule(rule, context)


def evaluate_rules(rules: Sequence[RuleNode], context: Mapping[str, Any]) -> bool:
    """Evaluate a rule set: True when every rule passes (True for an empty set).

    Evaluation short-circuits on the first False rule, so an error in a
    later rule is not raised once the outcome is decided.

    Raises:
        RuleEvaluationError: If evaluation of a consulted rule fails.
    """
    return all(evaluate_rule(rule, context) for rule in rules)


def explain_rules(
    rules: Sequence[RuleNode], context: Mapping[str, Any]
) -> list[ModelRuleExplanation]:
    """Evaluate every top-level rule without short-circuiting.

    Errors are captured per rule rather than raised.
    """
    explanations: list[ModelRuleExplanation] = []
    for rule in rules:
        try:
            result: bool | None = evaluate_rule(rule, context)
            error = None
        except RuleEvaluationError as e:
            result = None
            error = e.message
            logger.debug("Rule evaluation failed: %s", e.message, extra={"rule": rule.describe()})
        explanations.append(
            ModelRuleExplanation(rule=rule.describe(), result=result, error=error)
        )
    return explanations


__all__ = [
    "ModelRuleExplanation",
    "evaluate_rule",
    "evaluate_rules",
    "explain_rules",
]
