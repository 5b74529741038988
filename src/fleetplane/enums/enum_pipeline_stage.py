# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Stage at which a reconciliation pipeline run stopped."""

from enum import Enum


class EnumPipelineStage(str, Enum):
    """Terminal stage of one pipeline run.

    Attributes:
        RESOURCE_MISSING: Resource no longer exists; event acknowledged
        STALE_EVENT: Event generation is older than the resource's
        FUTURE_EVENT: Event generation is newer than the store's
        PRECONDITION_NOT_MET: Preconditions evaluated False
        ACTION_CREATED: Action was created for this generation
        ACTION_IN_PROGRESS: Action exists and is still running
        POSTCONDITIONS_EVALUATED: Action complete; postconditions reported
        FAULTED: Adapter internal fault reported as Health=False
    """

    RESOURCE_MISSING = "resource_missing"
    STALE_EVENT = "stale_event"
    FUTURE_EVENT = "future_event"
    PRECONDITION_NOT_MET = "precondition_not_met"
    ACTION_CREATED = "action_created"
    ACTION_IN_PROGRESS = "action_in_progress"
    POSTCONDITIONS_EVALUATED = "postconditions_evaluated"
    FAULTED = "faulted"

    @property
    def reported(self) -> bool:
        """Whether a status report is written for this stage."""
        return self not in (
            EnumPipelineStage.RESOURCE_MISSING,
            EnumPipelineStage.STALE_EVENT,
            EnumPipelineStage.FUTURE_EVENT,
        )


__all__ = ["EnumPipelineStage"]
