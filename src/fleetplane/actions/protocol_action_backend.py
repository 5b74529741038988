# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Protocol for backends that execute side-effecting actions."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from fleetplane.actions.model_action import ModelActionRecord


@runtime_checkable
class ProtocolActionBackend(Protocol):
    """Backend that creates, observes and deletes named actions.

    Implementations must make ``create`` atomic per name: a second create
    of an existing name raises ResourceConflictError instead of starting a
    second action. Transient failures raise InfraConnectionError.
    """

    async def get(self, name: str) -> ModelActionRecord | None:
        """Return the action, or None if it does not exist."""
        ...

    async def create(
        self,
        name: str,
        manifest: dict[str, Any],
        labels: dict[str, str],
        annotations: dict[str, str],
    ) -> ModelActionRecord:
        """Create the action.

        Raises:
            ResourceConflictError: If an action with the name already exists.
            ActionBackendError: If the manifest is rejected.
            InfraConnectionError: If the backend is unreachable.
        """
        ...

    async def delete(self, name: str) -> None:
        """Delete the action; deleting a missing action is not an error."""
        ...


__all__ = ["ProtocolActionBackend"]
