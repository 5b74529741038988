# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Kubernetes Job action backend.

Actions are batch/v1 Jobs named after the action identity. The official
``kubernetes`` client is synchronous, so every API call runs in a worker
thread via ``asyncio.to_thread`` to keep the event loop responsive.

State mapping:
    - Job condition ``Complete=True``: SUCCEEDED
    - Job condition ``Failed=True``: FAILED
    - otherwise: IN_PROGRESS

The Job's status (camelCase, as served by the API) plus its annotations
is exposed to postconditions as ``action.status``.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from fleetplane.actions.model_action import ModelActionRecord
from fleetplane.enums import EnumActionState, EnumInfraTransportType
from fleetplane.errors import (
    ActionBackendError,
    InfraConnectionError,
    ModelInfraErrorContext,
    ResourceConflictError,
)
from fleetplane.utils import ensure_timezone_aware

logger = logging.getLogger(__name__)


def load_kubernetes_config(kubeconfig_path: str | None = None) -> None:
    """Load in-cluster config, falling back to the local kubeconfig."""
    if kubeconfig_path:
        config.load_kube_config(config_file=kubeconfig_path)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


class KubernetesJobBackend:
    """Action backend creating one Job per action name.

    Args:
        namespace: Namespace Jobs are created in.
        batch_api: Optional pre-built ``BatchV1Api`` (tests inject a mock).
        api_client: Optional ``ApiClient`` used to serialize Job status.
        ttl_seconds_after_finished: Default Job TTL applied when the
            manifest does not set one.
    """

    def __init__(
        self,
        namespace: str,
        batch_api: client.BatchV1Api | None = None,
        api_client: client.ApiClient | None = None,
        ttl_seconds_after_finished: int | None = None,
    ) -> None:
        self._namespace = namespace
        self._api_client = api_client or client.ApiClient()
        self._batch = batch_api or client.BatchV1Api(self._api_client)
        self._ttl_seconds_after_finished = ttl_seconds_after_finished

    def _context(self, operation: str, name: str) -> ModelInfraErrorContext:
        return ModelInfraErrorContext(
            transport_type=EnumInfraTransportType.KUBERNETES,
            operation=operation,
            target_name=f"{self._namespace}/{name}",
        )

    def _to_record(self, job: Any) -> ModelActionRecord:
        status = job.status
        state = EnumActionState.IN_PROGRESS
        for condition in (status.conditions if status is not None else None) or []:
            if condition.status != "True":
                continue
            if condition.type == "Complete":
                state = EnumActionState.SUCCEEDED
            elif condition.type == "Failed":
                state = EnumActionState.FAILED

        status_doc: dict[str, Any] = (
            self._api_client.sanitize_for_serialization(status) if status is not None else {}
        ) or {}
        metadata = job.metadata
        annotations = dict(metadata.annotations or {})
        status_doc["annotations"] = annotations

        completion_time = None
        if status is not None and status.completion_time is not None:
            completion_time = ensure_timezone_aware(
                status.completion_time, context="job.completion_time"
            )
        created_time = None
        if metadata.creation_timestamp is not None:
            created_time = ensure_timezone_aware(
                metadata.creation_timestamp, context="job.creation_timestamp"
            )

        return ModelActionRecord(
            name=metadata.name,
            state=state,
            status=status_doc,
            labels=dict(metadata.labels or {}),
            annotations=annotations,
            created_time=created_time,
            completion_time=completion_time,
        )

    async def get(self, name: str) -> ModelActionRecord | None:
        try:
            job = await asyncio.to_thread(
                self._batch.read_namespaced_job, name, self._namespace
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise InfraConnectionError(
                f"Failed to read Job: HTTP {e.status}",
                context=self._context("read_job", name),
            ) from e
        except Exception as e:
            raise InfraConnectionError(
                f"Failed to read Job: {type(e).__name__}",
                context=self._context("read_job", name),
            ) from e
        return self._to_record(job)

    async def create(
        self,
        name: str,
        manifest: dict[str, Any],
        labels: dict[str, str],
        annotations: dict[str, str],
    ) -> ModelActionRecord:
        body = copy.deepcopy(manifest)
        body.setdefault("apiVersion", "batch/v1")
        body.setdefault("kind", "Job")
        metadata = body.setdefault("metadata", {})
        metadata["name"] = name
        metadata["namespace"] = self._namespace
        metadata["labels"] = {**(metadata.get("labels") or {}), **labels}
        metadata["annotations"] = {**(metadata.get("annotations") or {}), **annotations}
        if self._ttl_seconds_after_finished is not None:
            body.setdefault("spec", {}).setdefault(
                "ttlSecondsAfterFinished", self._ttl_seconds_after_finished
            )

        try:
            job = await asyncio.to_thread(
                self._batch.create_namespaced_job, self._namespace, body
            )
        except ApiException as e:
            if e.status == 409:
                raise ResourceConflictError(
                    f"Job '{name}' already exists",
                    context=self._context("create_job", name),
                ) from e
            if e.status is not None and 400 <= e.status < 500 and e.status != 429:
                raise ActionBackendError(
                    f"Job '{name}' rejected: HTTP {e.status} {e.reason}",
                    context=self._context("create_job", name),
                ) from e
            raise InfraConnectionError(
                f"Failed to create Job: HTTP {e.status}",
                context=self._context("create_job", name),
            ) from e
        except Exception as e:
            raise InfraConnectionError(
                f"Failed to create Job: {type(e).__name__}",
                context=self._context("create_job", name),
            ) from e

        logger.info(
            "Created Job %s",
            name,
            extra={"namespace": self._namespace, "action_name": name},
        )
        return self._to_record(job)

    async def delete(self, name: str) -> None:
        try:
            await asyncio.to_thread(
                self._batch.delete_namespaced_job,
                name,
                self._namespace,
                propagation_policy="Background",
            )
        except ApiException as e:
            if e.status == 404:
                return
            raise InfraConnectionError(
                f"Failed to delete Job: HTTP {e.status}",
                context=self._context("delete_job", name),
            ) from e
        except Exception as e:
            raise InfraConnectionError(
                f"Failed to delete Job: {type(e).__name__}",
                context=self._context("delete_job", name),
            ) from e


__all__ = ["KubernetesJobBackend", "load_kubernetes_config"]
