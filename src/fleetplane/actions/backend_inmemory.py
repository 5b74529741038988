# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""In-memory action backend for tests and single-process dev mode."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from fleetplane.actions.model_action import ModelActionRecord
from fleetplane.enums import EnumActionState
from fleetplane.errors import ResourceConflictError
from fleetplane.utils import utc_now

logger = logging.getLogger(__name__)


class InMemoryActionBackend:
    """Dict-backed action backend.

    Create is atomic because no await happens between the existence check
    and the insert.

    Args:
        auto_complete: Mark actions Succeeded as soon as they are created.
        clock: Time source, injectable for TTL tests.

    Example:
        >>> backend = InMemoryActionBackend()
        >>> record = await backend.create("dns-c1-gen1", {}, {}, {})
        >>> backend.complete("dns-c1-gen1", status={"outputs": {"ip": "10.0.0.1"}})
    """

    def __init__(
        self,
        auto_complete: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._auto_complete = auto_complete
        self._clock = clock
        self._records: dict[str, ModelActionRecord] = {}
        self._manifests: dict[str, dict[str, Any]] = {}
        self.create_count = 0
        self.delete_count = 0

    @property
    def records(self) -> dict[str, ModelActionRecord]:
        return dict(self._records)

    def manifest(self, name: str) -> dict[str, Any] | None:
        return self._manifests.get(name)

    async def get(self, name: str) -> ModelActionRecord | None:
        return self._records.get(name)

    async def create(
        self,
        name: str,
        manifest: dict[str, Any],
        labels: dict[str, str],
        annotations: dict[str, str],
    ) -> ModelActionRecord:
        if name in self._records:
            raise ResourceConflictError(f"Action '{name}' already exists", action_name=name)

        now = self._clock()
        if self._auto_complete:
            record = ModelActionRecord(
                name=name,
                state=EnumActionState.SUCCEEDED,
                status={"succeeded": 1},
                labels=labels,
                annotations=annotations,
                created_time=now,
                completion_time=now,
            )
        else:
            record = ModelActionRecord(
                name=name,
                state=EnumActionState.IN_PROGRESS,
                status={"active": 1},
                labels=labels,
                annotations=annotations,
                created_time=now,
            )
        self._records[name] = record
        self._manifests[name] = manifest
        self.create_count += 1
        logger.debug("Created in-memory action", extra={"action_name": name})
        return record

    async def delete(self, name: str) -> None:
        if self._records.pop(name, None) is not None:
            self.delete_count += 1
        self._manifests.pop(name, None)

    def complete(
        self,
        name: str,
        succeeded: bool = True,
        status: dict[str, Any] | None = None,
    ) -> ModelActionRecord:
        """Finish an in-progress action (test/dev helper).

        Raises:
            KeyError: If no action with the name exists.
        """
        current = self._records[name]
        base: dict[str, Any] = {"succeeded": 1} if succeeded else {"failed": 1}
        record = current.model_copy(
            update={
                "state": EnumActionState.SUCCEEDED if succeeded else EnumActionState.FAILED,
                "status": {**base, **(status or {})},
                "completion_time": self._clock(),
            }
        )
        self._records[name] = record
        return record


__all__ = ["InMemoryActionBackend"]
