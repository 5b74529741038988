# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Status Aggregator.

Reduces postcondition rule sets into the Applied/Available/Health triad:

    - Applied is True only if every ``applied`` rule passes.
    - Available is True only if every ``available`` rule passes.
    - Health is False if ANY ``health.failure`` rule passes.

An empty set yields Applied/Available True and Health True.

If a rule set cannot be evaluated, its condition is False with reason
``EvaluationError`` and Health is False, so a broken rule is reported as
an adapter fault rather than a business outcome.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from fleetplane.enums import EnumConditionStatus, EnumConditionType
from fleetplane.errors import RuleEvaluationError
from fleetplane.models import ModelCondition, ModelConditionSet
from fleetplane.rules import RuleNode, evaluate_rule

logger = logging.getLogger(__name__)

REASON_EVALUATION_ERROR = "EvaluationError"


def _evaluate_all(
    rules: Sequence[RuleNode], context: Mapping[str, Any]
) -> tuple[bool, str | None, str | None]:
    """Return ``(passed, first_failed_rule, error_message)``."""
    try:
        for rule in rules:
            if not evaluate_rule(rule, context):
                return False, rule.describe(), None
    except RuleEvaluationError as e:
        return False, None, e.message
    return True, None, None


def _evaluate_any(
    rules: Sequence[RuleNode], context: Mapping[str, Any]
) -> tuple[bool, str | None, str | None]:
    """Return ``(matched, first_matching_rule, error_message)``."""
    try:
        for rule in rules:
            if evaluate_rule(rule, context):
                return True, rule.describe(), None
    except RuleEvaluationError as e:
        return False, None, e.message
    return False, None, None


def _condition(
    condition_type: EnumConditionType, value: bool, reason: str, message: str
) -> ModelCondition:
    return ModelCondition(
        type=condition_type,
        status=EnumConditionStatus.from_bool(value),
        reason=reason,
        message=message,
    )


def aggregate_conditions(
    applied_rules: Sequence[RuleNode],
    available_rules: Sequence[RuleNode],
    health_failure_rules: Sequence[RuleNode],
    context: Mapping[str, Any],
) -> ModelConditionSet:
    """Evaluate postconditions into an Applied/Available/Health triad.

    Args:
        applied_rules: Rules that must all pass for Applied=True
        available_rules: Rules that must all pass for Available=True
        health_failure_rules: Rules of which any passing makes Health=False
        context: Evaluation context document

    Returns:
        The condition triad. Never raises for rule errors.
    """
    applied_ok, applied_failed, applied_error = _evaluate_all(applied_rules, context)
    available_ok, available_failed, available_error = _evaluate_all(
        available_rules, context
    )
    failure_hit, failure_rule, failure_error = _evaluate_any(
        health_failure_rules, context
    )

    if applied_error is not None:
        applied = _condition(
            EnumConditionType.APPLIED, False, REASON_EVALUATION_ERROR, applied_error
        )
    elif applied_ok:
        applied = _condition(EnumConditionType.APPLIED, True, "Applied", "")
    else:
        applied = _condition(
            EnumConditionType.APPLIED,
            False,
            "NotApplied",
            f"Rule not satisfied: {applied_failed}",
        )

    if available_error is not None:
        available = _condition(
            EnumConditionType.AVAILABLE, False, REASON_EVALUATION_ERROR, available_error
        )
    elif available_ok:
        available = _condition(EnumConditionType.AVAILABLE, True, "Available", "")
    else:
        available = _condition(
            EnumConditionType.AVAILABLE,
            False,
            "NotAvailable",
            f"Rule not satisfied: {available_failed}",
        )

    errors = [e for e in (applied_error, available_error, failure_error) if e]
    if errors:
        logger.warning(
            "Postcondition evaluation failed",
            extra={"errors": errors},
        )
        health = _condition(
            EnumConditionType.HEALTH, False, REASON_EVALUATION_ERROR, "; ".join(errors)
        )
    elif failure_hit:
        health = _condition(
            EnumConditionType.HEALTH,
            False,
            "FailureDetected",
            f"Failure rule matched: {failure_rule}",
        )
    else:
        health = _condition(EnumConditionType.HEALTH, True, "Healthy", "")

    return ModelConditionSet(applied=applied, available=available, health=health)


__all__ = ["REASON_EVALUATION_ERROR", "aggregate_conditions"]
