# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""UTC timestamp helpers.

Backoff deadlines and condition transition times are compared as aware
UTC datetimes. Values from the Kubernetes client or hand-written YAML may
arrive naive and are normalized here.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Default clock for stores, Sentinel and the action manager."""
    return datetime.now(UTC)


def ensure_timezone_aware(
    dt: datetime,
    *,
    assume_utc: bool = True,
    warn_on_naive: bool = True,
    context: str | None = None,
) -> datetime:
    """Return ``dt`` as an aware datetime, treating a naive value as UTC.

    Args:
        dt: Timestamp to normalize
        assume_utc: When False a naive value raises instead
        warn_on_naive: Log each conversion
        context: Field name included in the log or error

    Raises:
        ValueError: If ``dt`` is naive and ``assume_utc`` is False.
    """
    if dt.tzinfo is not None and dt.utcoffset() is not None:
        return dt

    where = f" for '{context}'" if context else ""
    if not assume_utc:
        raise ValueError(f"Naive datetime rejected{where}")
    if warn_on_naive:
        logger.warning(
            "Treating naive datetime as UTC%s",
            where,
            extra={"naive_datetime": dt.isoformat(), "field": context},
        )
    return dt.replace(tzinfo=UTC)


__all__ = ["ensure_timezone_aware", "utc_now"]
