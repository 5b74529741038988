# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Declarative rule models and the condition evaluator."""

from fleetplane.rules.field_path import (
    clear_path_cache,
    parse_field_path,
    resolve_field,
    values_equal,
)
from fleetplane.rules.model_rule import (
    ModelFieldRule,
    ModelRuleGroup,
    RuleNode,
    parse_rules,
)
from fleetplane.rules.rule_evaluator import (
    ModelRuleExplanation,
    evaluate_rule,
    evaluate_rules,
    explain_rules,
)
from fleetplane.rules.template_renderer import extract_fields, render_template

__all__ = [
    "ModelFieldRule",
    "ModelRuleExplanation",
    "ModelRuleGroup",
    "RuleNode",
    "clear_path_cache",
    "evaluate_rule",
    "evaluate_rules",
    "explain_rules",
    "extract_fields",
    "parse_field_path",
    "parse_rules",
    "render_template",
    "resolve_field",
    "values_equal",
]
