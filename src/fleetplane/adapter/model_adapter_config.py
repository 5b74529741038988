# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Adapter configuration models.

An adapter is defined entirely by one YAML document:

    name: dns
    resourceType: clusters
    preconditions:
      - field: resource.spec.provider
        operator: eq
        value: gcp
    action:
      backend: kubernetes
      namespace: fleet-jobs
      template:
        spec:
          template:
            spec:
              containers:
                - name: dns
                  image: registry.example.com/dns-adapter:1.4
                  args: ["--cluster", "{{ resource.id }}"]
    postconditions:
      applied:
        - field: action.state
          operator: exists
      available:
        - field: action.status.succeeded
          operator: exists
        - field: action.status.succeeded
          operator: gte
          value: 1
      health:
        failure:
          - operator: and
            operands:
              - field: action.status.failed
                operator: exists
              - field: action.status.failed
                operator: gt
                value: 3
    statusData:
      dnsName: action.status.outputs.dnsName
    env:
      REGION: ${FLEET_REGION}

The config is loaded once and never mutated.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from fleetplane.event_bus import ModelEventBusConfig
from fleetplane.rules import RuleNode

_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)

DNS_LABEL_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"


class ModelActionSpec(BaseModel):
    """Where and how the adapter's side effect runs."""

    model_config = _CONFIG

    backend: Literal["kubernetes", "inmemory"] = "inmemory"
    namespace: str = "default"
    template: dict[str, Any] = Field(default_factory=dict)
    kubeconfig: str | None = None
    ttl_seconds_after_finished: int | None = Field(default=None, ge=0)
    auto_complete: bool = Field(
        default=False, description="In-memory backend only: complete actions on create"
    )

    @model_validator(mode="after")
    def _check_template(self) -> ModelActionSpec:
        if self.backend == "kubernetes" and not self.template.get("spec"):
            raise ValueError("kubernetes actions need a Job template with a 'spec'")
        return self


class ModelHealthRules(BaseModel):
    model_config = _CONFIG

    failure: tuple[RuleNode, ...] = ()


class ModelPostconditions(BaseModel):
    """Rule sets evaluated once the action is complete."""

    model_config = _CONFIG

    applied: tuple[RuleNode, ...] = ()
    available: tuple[RuleNode, ...] = ()
    health: ModelHealthRules = Field(default_factory=ModelHealthRules)


class ModelAdapterConfig(BaseModel):
    """Complete definition of one adapter."""

    model_config = _CONFIG

    name: str = Field(..., min_length=1, max_length=40, pattern=DNS_LABEL_PATTERN)
    resource_type: str = Field(..., min_length=1)
    preconditions: tuple[RuleNode, ...] = ()
    action: ModelActionSpec = Field(default_factory=ModelActionSpec)
    postconditions: ModelPostconditions = Field(default_factory=ModelPostconditions)
    status_data: dict[str, str] = Field(
        default_factory=dict, description="Report data key -> context path"
    )
    env: dict[str, str] = Field(default_factory=dict)
    revalidate_after_seconds: float | None = Field(default=None, gt=0)
    max_concurrency: int = Field(default=100, ge=1)
    processing_timeout_seconds: float = Field(default=300.0, gt=0)


class ModelAdapterRuntimeConfig(BaseModel):
    """Process-level settings for running one or more adapters."""

    model_config = _CONFIG

    store_url: str = "http://localhost:8080"
    event_bus: ModelEventBusConfig = Field(default_factory=ModelEventBusConfig)
    health_port: int = Field(default=8082, ge=0, le=65535)


__all__ = [
    "DNS_LABEL_PATTERN",
    "ModelActionSpec",
    "ModelAdapterConfig",
    "ModelAdapterRuntimeConfig",
    "ModelHealthRules",
    "ModelPostconditions",
]
