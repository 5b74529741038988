# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Equality-based label selector parsing and matching.

Selector grammar (comma separated requirements, all must match)::

    key=value     label present and equal
    key==value    same as above
    key!=value    label absent or different
    key           label present
    !key          label absent

Sentinel shards use selectors to partition the fleet without any
cross-shard coordination.
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from fleetplane.errors import ProtocolConfigurationError


class ModelLabelRequirement(BaseModel):
    """A single selector requirement."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str
    operator: str  # "=", "!=", "exists", "!exists"
    value: str | None = None

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator == "exists":
            return self.key in labels
        if self.operator == "!exists":
            return self.key not in labels
        if self.operator == "=":
            return labels.get(self.key) == self.value
        return labels.get(self.key) != self.value


class ModelLabelSelector(BaseModel):
    """Parsed label selector; an empty selector matches everything."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    requirements: tuple[ModelLabelRequirement, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        parts = []
        for req in self.requirements:
            if req.operator == "exists":
                parts.append(req.key)
            elif req.operator == "!exists":
                parts.append(f"!{req.key}")
            else:
                parts.append(f"{req.key}{req.operator}{req.value}")
        return ",".join(parts)


def parse_label_selector(selector: str | None) -> ModelLabelSelector:
    """Parse a selector string.

    Raises:
        ProtocolConfigurationError: If a requirement has an empty key.
    """
    if not selector or not selector.strip():
        return ModelLabelSelector()

    requirements: list[ModelLabelRequirement] = []
    for raw in selector.split(","):
        part = raw.strip()
        if not part:
            continue
        if "!=" in part:
            key, _, value = part.partition("!=")
            req = ModelLabelRequirement(key=key.strip(), operator="!=", value=value.strip())
        elif "=" in part:
            key, _, value = part.partition("=")
            value = value[1:] if value.startswith("=") else value
            req = ModelLabelRequirement(key=key.strip(), operator="=", value=value.strip())
        elif part.startswith("!"):
            req = ModelLabelRequirement(key=part[1:].strip(), operator="!exists")
        else:
            req = ModelLabelRequirement(key=part, operator="exists")
        if not req.key:
            raise ProtocolConfigurationError(
                f"Invalid label selector requirement '{part}': empty key",
                selector=selector,
            )
        requirements.append(req)
    return ModelLabelSelector(requirements=tuple(requirements))


__all__ = [
    "ModelLabelRequirement",
    "ModelLabelSelector",
    "parse_label_selector",
]
