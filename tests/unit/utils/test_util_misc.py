# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Unit tests for correlation, datetime and error sanitization helpers."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest

from fleetplane.utils import (
    ensure_timezone_aware,
    parse_correlation_id,
    sanitize_error_message,
    utc_now,
)


class TestParseCorrelationId:
    """Header values into UUIDs."""

    def test_passes_through_uuid(self) -> None:
        value = uuid4()
        assert parse_correlation_id(value) is value

    def test_parses_str_and_bytes(self) -> None:
        value = uuid4()
        assert parse_correlation_id(str(value)) == value
        assert parse_correlation_id(str(value).encode()) == value

    @pytest.mark.parametrize("raw", [None, "", "not-a-uuid", b"\xff"])
    def test_generates_when_missing_or_malformed(self, raw: str | bytes | None) -> None:
        assert isinstance(parse_correlation_id(raw), UUID)


class TestEnsureTimezoneAware:
    """Naive datetimes are normalized to UTC."""

    def test_aware_is_unchanged(self) -> None:
        now = utc_now()
        assert ensure_timezone_aware(now) is now

    def test_naive_becomes_utc(self) -> None:
        naive = datetime(2024, 1, 1, 12, 0)
        assert ensure_timezone_aware(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_naive_rejected_when_not_assuming_utc(self) -> None:
        with pytest.raises(ValueError, match="deleted_time"):
            ensure_timezone_aware(
                datetime(2024, 1, 1), assume_utc=False, context="deleted_time"
            )


class TestSanitizeErrorMessage:
    """Sensitive text never reaches API clients."""

    def test_plain_message(self) -> None:
        assert sanitize_error_message(ValueError("bad input")) == "ValueError: bad input"

    def test_redacts_credentials(self) -> None:
        error = ConnectionError("postgresql://fleet:secret@db/fleet refused")
        sanitized = sanitize_error_message(error)
        assert "secret" not in sanitized
        assert sanitized.startswith("ConnectionError: [REDACTED")

    def test_truncates_long_messages(self) -> None:
        sanitized = sanitize_error_message(RuntimeError("x" * 2000))
        assert sanitized.endswith("...")
        assert len(sanitized) < 600
