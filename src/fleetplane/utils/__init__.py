# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Shared utilities."""

from fleetplane.utils.util_config_loader import (
    expand_env_references,
    format_validation_errors,
    load_config_file,
    load_yaml_mapping,
    validate_config,
)
from fleetplane.utils.util_correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    parse_correlation_id,
)
from fleetplane.utils.util_datetime import ensure_timezone_aware, utc_now
from fleetplane.utils.util_error_sanitization import sanitize_error_message
from fleetplane.utils.util_label_selector import (
    ModelLabelRequirement,
    ModelLabelSelector,
    parse_label_selector,
)

__all__ = [
    "CORRELATION_ID_HEADER",
    "ModelLabelRequirement",
    "ModelLabelSelector",
    "ensure_timezone_aware",
    "expand_env_references",
    "format_validation_errors",
    "generate_correlation_id",
    "load_config_file",
    "load_yaml_mapping",
    "parse_correlation_id",
    "parse_label_selector",
    "sanitize_error_message",
    "utc_now",
    "validate_config",
]
