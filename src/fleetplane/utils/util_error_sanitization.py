# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Error message sanitization utilities.

Error text is sanitized before it is placed in API responses or in adapter
status messages, both of which are readable by every API client.

Example:
    >>> try:
    ...     raise ValueError("connect failed: postgresql://fleet:secret@db/fleet")
    ... except Exception as e:
    ...     safe_msg = sanitize_error_message(e)
    >>> "secret" not in safe_msg
    True
"""

from __future__ import annotations

SENSITIVE_PATTERNS: tuple[str, ...] = (
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "private_key",
    "credential",
    "bearer",
    "authorization",
    "postgres://",
    "postgresql://",
    "-----begin",
)

MAX_MESSAGE_LENGTH = 500


def sanitize_error_message(error: BaseException) -> str:
    """Return ``"<ErrorType>: <message>"`` with sensitive messages redacted."""
    error_type = type(error).__name__
    message = str(error)
    lowered = message.lower()
    if any(pattern in lowered for pattern in SENSITIVE_PATTERNS):
        return f"{error_type}: [REDACTED - potentially sensitive data]"
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH] + "..."
    return f"{error_type}: {message}"


__all__ = ["SENSITIVE_PATTERNS", "sanitize_error_message"]
