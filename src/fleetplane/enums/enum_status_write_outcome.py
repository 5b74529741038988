# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Outcome of an adapter status upsert."""

from enum import Enum


class EnumStatusWriteOutcome(str, Enum):
    """How the merge policy handled a status report.

    Attributes:
        ACCEPTED: Report replaced the adapter's latest status
        STALE: Report generation was older than the stored one; dropped
        AUDITED: Report had Available=Unknown; kept in the audit trail only
    """

    ACCEPTED = "accepted"
    STALE = "stale"
    AUDITED = "audited"


__all__ = ["EnumStatusWriteOutcome"]
