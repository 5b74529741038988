# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Declarative rule tree models.

A rule is either a field rule that compares the value at a path against a
literal or against the value at another path, or a group that combines
nested rules with ``and``/``or``. Rule sets (lists) are AND-combined.

YAML form::

    - field: resource.spec.region
      operator: in
      value: [us-east-1, eu-west-1]
    - field: statuses[adapterName=="validation"].observedGeneration
      operator: eq
      fieldRef: resource.generation
    - operator: or
      operands:
        - {field: resource.labels.tier, operator: eq, value: gold}
        - {field: resource.labels.tier, operator: notExists}
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Annotated, Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    model_validator,
)
from pydantic.alias_generators import to_camel

from fleetplane.enums import EnumRuleGroupOperator, EnumRuleOperator

_UNARY_OPERATORS = frozenset({EnumRuleOperator.EXISTS, EnumRuleOperator.NOT_EXISTS})
_LIST_OPERATORS = frozenset({EnumRuleOperator.IN, EnumRuleOperator.NOT_IN})


class ModelFieldRule(BaseModel):
    """Compare the value at ``field`` using ``operator``.

    Exactly one of ``value`` or ``field_ref`` supplies the right-hand side,
    except for ``exists``/``notExists`` which take none.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    field: str = Field(..., min_length=1, description="Dotted path into the context")
    operator: EnumRuleOperator
    value: Any = None
    field_ref: str | None = Field(
        default=None,
        min_length=1,
        description="Path whose value is used as the right-hand side",
    )

    @model_validator(mode="after")
    def _check_operands(self) -> ModelFieldRule:
        has_value = "value" in self.model_fields_set
        has_ref = self.field_ref is not None
        if self.operator in _UNARY_OPERATORS:
            if has_value or has_ref:
                raise ValueError(
                    f"operator '{self.operator.value}' takes no value or fieldRef"
                )
            return self
        if has_value and has_ref:
            raise ValueError("value and fieldRef are mutually exclusive")
        if not has_value and not has_ref:
            raise ValueError(
                f"operator '{self.operator.value}' requires value or fieldRef"
            )
        if (
            self.operator in _LIST_OPERATORS
            and has_value
            and not isinstance(self.value, list | tuple)
        ):
            raise ValueError(f"operator '{self.operator.value}' requires a list value")
        return self

    def describe(self) -> str:
        if self.operator in _UNARY_OPERATORS:
            return f"{self.field} {self.operator.value}"
        if self.field_ref is not None:
            return f"{self.field} {self.operator.value} @{self.field_ref}"
        return f"{self.field} {self.operator.value} {self.value!r}"


class ModelRuleGroup(BaseModel):
    """Boolean combination of nested rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    operator: EnumRuleGroupOperator
    operands: tuple[RuleNode, ...] = Field(..., min_length=1)

    def describe(self) -> str:
        inner = f" {self.operator.value} ".join(op.describe() for op in self.operands)
        return f"({inner})"


def _rule_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "group" if "operands" in value else "field"
    return "group" if isinstance(value, ModelRuleGroup) else "field"


RuleNode = Annotated[
    Union[
        Annotated[ModelFieldRule, Tag("field")],
        Annotated[ModelRuleGroup, Tag("group")],
    ],
    Discriminator(_rule_kind),
]

ModelRuleGroup.model_rebuild()

_RULE_LIST_ADAPTER: TypeAdapter[list[RuleNode]] = TypeAdapter(list[RuleNode])


def parse_rules(data: Sequence[Any] | None) -> tuple[RuleNode, ...]:
    """Validate a list of plain dicts into rule models.

    Raises:
        pydantic.ValidationError: If any rule is malformed.
    """
    if data is None:
        return ()
    return tuple(_RULE_LIST_ADAPTER.validate_python(list(data)))


__all__ = [
    "ModelFieldRule",
    "ModelRuleGroup",
    "RuleNode",
    "parse_rules",
]
