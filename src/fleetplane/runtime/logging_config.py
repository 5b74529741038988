# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Process-wide logging setup for fleetplane entrypoints."""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "FLEET_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_VALID_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def configure_logging(level: str | None = None) -> str:
    """Configure root logging from ``level`` or FLEET_LOG_LEVEL (default INFO).

    An invalid level falls back to INFO with a warning on stderr.

    Returns:
        The level name actually applied.
    """
    log_level = (level or os.getenv(ENV_LOG_LEVEL, "INFO")).upper()
    if log_level not in _VALID_LEVELS:
        print(
            f"Warning: Invalid {ENV_LOG_LEVEL} '{log_level}', using INFO. "
            f"Valid levels: {', '.join(sorted(_VALID_LEVELS))}",
            file=sys.stderr,
        )
        log_level = "INFO"

    logging.basicConfig(
        level=getattr(logging, log_level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )
    # Client libraries are noisy at INFO.
    for noisy in ("aiokafka", "kubernetes", "httpx", "aiohttp.access"):
        logging.getLogger(noisy).setLevel(max(logging.WARNING, logging.getLogger().level))
    return log_level


__all__ = ["ENV_LOG_LEVEL", "LOG_FORMAT", "configure_logging"]
