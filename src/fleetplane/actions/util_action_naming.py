# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Deterministic action identity.

Action names are ``{adapter}-{resourceId}-gen{generation}`` normalized to
a DNS-1123 label so they are valid Kubernetes object names. When the raw
identity is not already a valid label (uppercase, illegal characters or
longer than 63 characters) a short stable hash of the raw identity is
appended so distinct identities never collapse onto one name.
"""

from __future__ import annotations

import hashlib
import re

MAX_NAME_LENGTH = 63
_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_REPEATED_DASHES = re.compile(r"-{2,}")
_HASH_LENGTH = 8

LABEL_ADAPTER = "fleetplane.io/adapter"
LABEL_GENERATION = "fleetplane.io/generation"
ANNOTATION_RESOURCE_ID = "fleetplane.io/resource-id"


def build_action_name(adapter_name: str, resource_id: str, generation: int) -> str:
    """Return the action name for (adapter, resource, generation).

    Example:
        >>> build_action_name("dns", "c-123", 4)
        'dns-c-123-gen4'
    """
    raw = f"{adapter_name}-{resource_id}-gen{generation}"
    name = _REPEATED_DASHES.sub("-", _INVALID_CHARS.sub("-", raw.lower())).strip("-")
    if name == raw and len(name) <= MAX_NAME_LENGTH:
        return name

    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:_HASH_LENGTH]
    suffix = f"-gen{generation}-{digest}"
    head = name.removesuffix(f"-gen{generation}")
    head = head[: MAX_NAME_LENGTH - len(suffix)].rstrip("-")
    return f"{head}{suffix}" if head else suffix.lstrip("-")


__all__ = [
    "ANNOTATION_RESOURCE_ID",
    "LABEL_ADAPTER",
    "LABEL_GENERATION",
    "MAX_NAME_LENGTH",
    "build_action_name",
]
