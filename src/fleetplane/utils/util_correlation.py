# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Correlation ID helpers.

Correlation ids travel in the ``X-Correlation-ID`` HTTP header, in event
bus message headers and in every structured log record.
"""

from __future__ import annotations

from uuid import UUID, uuid4

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> UUID:
    return uuid4()


def parse_correlation_id(value: str | bytes | UUID | None) -> UUID:
    """Parse a correlation id, generating a fresh one when absent or malformed."""
    if isinstance(value, UUID):
        return value
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if value:
        try:
            return UUID(value)
        except ValueError:
            pass
    return uuid4()


__all__ = [
    "CORRELATION_ID_HEADER",
    "generate_correlation_id",
    "parse_correlation_id",
]
