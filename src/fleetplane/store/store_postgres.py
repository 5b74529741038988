# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""PostgreSQL Resource Store.

Table Schema:
    fleet_resources               one row per (resource_type, id)
    fleet_adapter_statuses        latest status per (resource, adapter)
    fleet_adapter_status_audit    bounded audit trail of every report

Status writes lock the resource row (``SELECT ... FOR UPDATE``) so the
merge policy sees a consistent view of all adapter statuses while it
recomputes the aggregate. The status upsert additionally carries a
``WHERE observed_generation <= EXCLUDED.observed_generation`` guard so the
database itself never lets a stored generation move backwards.

JSONB columns use an asyncpg type codec, so Python dicts go in and come
out directly.

Security Note:
    - DSN contains credentials - never log the raw value
    - All queries are parameterized
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID, uuid4

import asyncpg

from fleetplane.enums import (
    EnumInfraTransportType,
    EnumResourcePhase,
    EnumStatusWriteOutcome,
)
from fleetplane.errors import (
    FleetError,
    InfraConnectionError,
    InfraTimeoutError,
    ModelInfraErrorContext,
    ResourceConflictError,
    ResourceNotFoundError,
)
from fleetplane.mixins import MixinAsyncCircuitBreaker
from fleetplane.models import (
    ModelAdapterStatus,
    ModelAdapterStatusReport,
    ModelResource,
    ModelResourceCreate,
    ModelResourcePatch,
    ModelResourceStatus,
    ModelStatusAuditEntry,
    ModelStatusWriteResult,
)
from fleetplane.status import StatusMergePolicy
from fleetplane.store.model_postgres_store_config import ModelPostgresStoreConfig
from fleetplane.store.protocol_resource_store import (
    DEFAULT_OWNER_TYPES,
    DEFAULT_RESOURCE_TYPES,
)
from fleetplane.utils import ModelLabelSelector, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

TARGET_NAME = "postgres_resource_store"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS fleet_resources (
    resource_type TEXT NOT NULL,
    id TEXT NOT NULL,
    generation BIGINT NOT NULL DEFAULT 1,
    spec JSONB NOT NULL DEFAULT '{}'::jsonb,
    labels JSONB NOT NULL DEFAULT '{}'::jsonb,
    owner_id TEXT,
    status JSONB NOT NULL,
    created_time TIMESTAMPTZ NOT NULL,
    updated_time TIMESTAMPTZ NOT NULL,
    deleted_time TIMESTAMPTZ,
    PRIMARY KEY (resource_type, id)
);
CREATE INDEX IF NOT EXISTS idx_fleet_resources_labels
    ON fleet_resources USING GIN (labels);
CREATE TABLE IF NOT EXISTS fleet_adapter_statuses (
    resource_type TEXT NOT NULL,
    resource_id TEXT NOT NULL,
    adapter_name TEXT NOT NULL,
    observed_generation BIGINT NOT NULL,
    conditions JSONB NOT NULL,
    data JSONB NOT NULL,
    created_time TIMESTAMPTZ NOT NULL,
    last_transition_time TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (resource_type, resource_id, adapter_name),
    FOREIGN KEY (resource_type, resource_id)
        REFERENCES fleet_resources (resource_type, id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS fleet_adapter_status_audit (
    id BIGSERIAL PRIMARY KEY,
    resource_type TEXT NOT NULL,
    resource_id TEXT NOT NULL,
    adapter_name TEXT NOT NULL,
    observed_generation BIGINT NOT NULL,
    outcome TEXT NOT NULL,
    report JSONB NOT NULL,
    received_time TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_fleet_status_audit_lookup
    ON fleet_adapter_status_audit (resource_type, resource_id, adapter_name, id DESC);
"""

_RESOURCE_COLUMNS = (
    "resource_type, id, generation, spec, labels, owner_id, status, "
    "created_time, updated_time, deleted_time"
)
_STATUS_COLUMNS = (
    "resource_type, resource_id, adapter_name, observed_generation, conditions, "
    "data, created_time, last_transition_time"
)

SQL_SELECT_RESOURCE = f"""
    SELECT {_RESOURCE_COLUMNS} FROM fleet_resources
    WHERE resource_type = $1 AND id = $2
"""
SQL_SELECT_RESOURCE_FOR_UPDATE = SQL_SELECT_RESOURCE + " FOR UPDATE"
SQL_LIST_RESOURCES = f"""
    SELECT {_RESOURCE_COLUMNS} FROM fleet_resources
    WHERE resource_type = $1 AND labels @> $2
    ORDER BY created_time, id
"""
SQL_INSERT_RESOURCE = """
    INSERT INTO fleet_resources
        (resource_type, id, generation, spec, labels, owner_id, status,
         created_time, updated_time)
    VALUES ($1, $2, 1, $3, $4, $5, $6, $7, $7)
"""
SQL_UPDATE_RESOURCE = """
    UPDATE fleet_resources
    SET generation = $3, spec = $4, labels = $5, status = $6,
        updated_time = $7, deleted_time = $8
    WHERE resource_type = $1 AND id = $2
"""
SQL_UPDATE_RESOURCE_STATUS = """
    UPDATE fleet_resources SET status = $3
    WHERE resource_type = $1 AND id = $2
"""
SQL_LIST_STATUSES = f"""
    SELECT {_STATUS_COLUMNS} FROM fleet_adapter_statuses
    WHERE resource_type = $1 AND resource_id = $2
    ORDER BY adapter_name
"""
SQL_UPSERT_STATUS = """
    INSERT INTO fleet_adapter_statuses
        (resource_type, resource_id, adapter_name, observed_generation,
         conditions, data, created_time, last_transition_time)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
    ON CONFLICT (resource_type, resource_id, adapter_name) DO UPDATE SET
        observed_generation = EXCLUDED.observed_generation,
        conditions = EXCLUDED.conditions,
        data = EXCLUDED.data,
        last_transition_time = EXCLUDED.last_transition_time
    WHERE fleet_adapter_statuses.observed_generation <= EXCLUDED.observed_generation
"""
SQL_INSERT_AUDIT = """
    INSERT INTO fleet_adapter_status_audit
        (resource_type, resource_id, adapter_name, observed_generation,
         outcome, report, received_time)
    VALUES ($1, $2, $3, $4, $5, $6, $7)
"""
SQL_TRIM_AUDIT = """
    DELETE FROM fleet_adapter_status_audit
    WHERE resource_type = $1 AND resource_id = $2 AND adapter_name = $3
      AND id NOT IN (
        SELECT id FROM fleet_adapter_status_audit
        WHERE resource_type = $1 AND resource_id = $2 AND adapter_name = $3
        ORDER BY id DESC LIMIT $4
      )
"""
SQL_SELECT_AUDIT = """
    SELECT outcome, report, received_time FROM fleet_adapter_status_audit
    WHERE resource_type = $1 AND resource_id = $2 AND adapter_name = $3
    ORDER BY id
"""


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


def _row_to_resource(row: Mapping[str, Any]) -> ModelResource:
    return ModelResource(
        resource_type=row["resource_type"],
        id=row["id"],
        generation=row["generation"],
        spec=row["spec"],
        labels=row["labels"],
        owner_id=row["owner_id"],
        status=ModelResourceStatus.model_validate(row["status"]),
        created_time=row["created_time"],
        updated_time=row["updated_time"],
        deleted_time=row["deleted_time"],
    )


def _row_to_status(row: Mapping[str, Any]) -> ModelAdapterStatus:
    return ModelAdapterStatus(
        resource_type=row["resource_type"],
        resource_id=row["resource_id"],
        adapter_name=row["adapter_name"],
        observed_generation=row["observed_generation"],
        conditions=row["conditions"],
        data=row["data"],
        created_time=row["created_time"],
        last_transition_time=row["last_transition_time"],
    )


def _dump(model: Any) -> Any:
    return model.model_dump(mode="json", by_alias=True)


class PostgresResourceStore(MixinAsyncCircuitBreaker):
    """asyncpg-backed implementation of ProtocolResourceStore.

    Example:
        >>> store = PostgresResourceStore(
        ...     ModelPostgresStoreConfig(dsn="postgresql://fleet@localhost/fleet")
        ... )
        >>> await store.initialize()
        >>> try:
        ...     clusters = await store.list_resources("clusters")
        ... finally:
        ...     await store.shutdown()
    """

    def __init__(
        self,
        config: ModelPostgresStoreConfig,
        merge_policy: StatusMergePolicy | None = None,
        resource_types: Sequence[str] = DEFAULT_RESOURCE_TYPES,
        owner_types: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] = utc_now,
        pool: asyncpg.Pool | None = None,
    ) -> None:
        self._config = config
        self._policy = merge_policy or StatusMergePolicy()
        self._resource_types = tuple(resource_types)
        self._owner_types = dict(DEFAULT_OWNER_TYPES if owner_types is None else owner_types)
        self._clock = clock
        self._pool = pool
        self._init_circuit_breaker(
            threshold=config.circuit_breaker_threshold,
            reset_timeout=config.circuit_breaker_reset_timeout,
            service_name=TARGET_NAME,
            transport_type=EnumInfraTransportType.DATABASE,
        )

    @property
    def resource_types(self) -> tuple[str, ...]:
        return self._resource_types

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """Create the pool and ensure the schema exists.

        Raises:
            InfraConnectionError: If the database cannot be reached.
            FleetError: If pool creation or schema setup fails otherwise.
        """
        if self._pool is not None:
            return
        context = ModelInfraErrorContext(
            transport_type=EnumInfraTransportType.DATABASE,
            operation="initialize",
            target_name=TARGET_NAME,
            correlation_id=uuid4(),
        )
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._config.dsn,
                min_size=self._config.pool_min_size,
                max_size=self._config.pool_max_size,
                command_timeout=self._config.command_timeout,
                init=_init_connection,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except asyncpg.InvalidPasswordError as e:
            raise InfraConnectionError(
                "Database authentication failed - check credentials",
                context=context,
            ) from e
        except asyncpg.InvalidCatalogNameError as e:
            raise InfraConnectionError(
                "Database not found - check database name",
                context=context,
            ) from e
        except OSError as e:
            raise InfraConnectionError(
                "Failed to connect to database - check host and port",
                context=context,
            ) from e
        except asyncpg.PostgresError as e:
            raise FleetError(
                f"Failed to initialize resource store: {type(e).__name__}",
                context=context,
            ) from e

        logger.info(
            "PostgresResourceStore initialized",
            extra={
                "pool_min_size": self._config.pool_min_size,
                "pool_max_size": self._config.pool_max_size,
            },
        )

    async def shutdown(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        logger.info("PostgresResourceStore shutdown complete")

    async def _execute(
        self,
        operation: str,
        correlation_id: UUID | None,
        func: Callable[[asyncpg.Connection], Awaitable[T]],
    ) -> T:
        """Run ``func`` on a pooled connection with error mapping.

        Domain errors raised by ``func`` (not found, conflict) propagate
        unchanged and do not count as circuit failures.
        """
        op_correlation_id = correlation_id or uuid4()
        context = ModelInfraErrorContext(
            transport_type=EnumInfraTransportType.DATABASE,
            operation=operation,
            target_name=TARGET_NAME,
            correlation_id=op_correlation_id,
        )
        if self._pool is None:
            raise FleetError(
                "Store not initialized - call initialize() first",
                context=context,
            )

        async with self._circuit_breaker_lock:
            await self._check_circuit_breaker(operation, op_correlation_id)

        try:
            async with self._pool.acquire() as conn:
                result = await func(conn)
        except asyncpg.QueryCanceledError as e:
            async with self._circuit_breaker_lock:
                await self._record_circuit_failure(operation, op_correlation_id)
            raise InfraTimeoutError(
                f"{operation} timed out after {self._config.command_timeout}s",
                context=context,
                timeout_seconds=self._config.command_timeout,
            ) from e
        except (asyncpg.PostgresConnectionError, asyncpg.InterfaceError, OSError) as e:
            async with self._circuit_breaker_lock:
                await self._record_circuit_failure(operation, op_correlation_id)
            raise InfraConnectionError(
                f"Database connection lost during {operation}",
                context=context,
            ) from e
        except asyncpg.PostgresError as e:
            raise FleetError(
                f"Database error during {operation}: {type(e).__name__}",
                context=context,
            ) from e

        async with self._circuit_breaker_lock:
            await self._reset_circuit_breaker()
        return result

    def _check_type(self, resource_type: str) -> None:
        if resource_type not in self._resource_types:
            raise ResourceNotFoundError(
                f"Unknown resource type '{resource_type}'", resource_type=resource_type
            )

    @staticmethod
    async def _fetch_resource(
        conn: asyncpg.Connection,
        resource_type: str,
        resource_id: str,
        for_update: bool = False,
    ) -> ModelResource:
        sql = SQL_SELECT_RESOURCE_FOR_UPDATE if for_update else SQL_SELECT_RESOURCE
        row = await conn.fetchrow(sql, resource_type, resource_id)
        if row is None:
            raise ResourceNotFoundError(
                f"{resource_type}/{resource_id} not found",
                resource_type=resource_type,
                resource_id=resource_id,
            )
        return _row_to_resource(row)

    @staticmethod
    async def _fetch_statuses(
        conn: asyncpg.Connection, resource_type: str, resource_id: str
    ) -> list[ModelAdapterStatus]:
        rows = await conn.fetch(SQL_LIST_STATUSES, resource_type, resource_id)
        return [_row_to_status(row) for row in rows]

    async def create_resource(
        self,
        resource_type: str,
        request: ModelResourceCreate,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        self._check_type(resource_type)
        resource_id = request.id or str(uuid4())
        owner_type = self._owner_types.get(resource_type)

        async def _create(conn: asyncpg.Connection) -> ModelResource:
            if request.owner_id is not None and owner_type is not None:
                await self._fetch_resource(conn, owner_type, request.owner_id)
            now = self._clock()
            resource = ModelResource(
                resource_type=resource_type,
                id=resource_id,
                spec=request.spec,
                labels=request.labels,
                owner_id=request.owner_id,
                created_time=now,
                updated_time=now,
            )
            resource = resource.model_copy(
                update={"status": self._policy.recompute(resource, [], now)}
            )
            try:
                await conn.execute(
                    SQL_INSERT_RESOURCE,
                    resource_type,
                    resource_id,
                    resource.spec,
                    resource.labels,
                    resource.owner_id,
                    _dump(resource.status),
                    now,
                )
            except asyncpg.UniqueViolationError as e:
                raise ResourceConflictError(
                    f"{resource_type}/{resource_id} already exists",
                    resource_type=resource_type,
                    resource_id=resource_id,
                ) from e
            return resource

        return await self._execute("create_resource", correlation_id, _create)

    async def get_resource(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        self._check_type(resource_type)

        async def _get(conn: asyncpg.Connection) -> ModelResource:
            return await self._fetch_resource(conn, resource_type, resource_id)

        return await self._execute("get_resource", correlation_id, _get)

    async def list_resources(
        self,
        resource_type: str,
        label_selector: ModelLabelSelector | None = None,
        correlation_id: UUID | None = None,
    ) -> list[ModelResource]:
        self._check_type(resource_type)
        # Equality requirements are pushed down as JSONB containment; the
        # rest are filtered after the fetch.
        containment = {
            req.key: req.value
            for req in (label_selector.requirements if label_selector else ())
            if req.operator == "="
        }

        async def _list(conn: asyncpg.Connection) -> list[ModelResource]:
            rows = await conn.fetch(SQL_LIST_RESOURCES, resource_type, containment)
            return [_row_to_resource(row) for row in rows]

        resources = await self._execute("list_resources", correlation_id, _list)
        if label_selector is None:
            return resources
        return [r for r in resources if label_selector.matches(r.labels)]

    async def update_resource(
        self,
        resource_type: str,
        resource_id: str,
        patch: ModelResourcePatch,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        self._check_type(resource_type)

        async def _update(conn: asyncpg.Connection) -> ModelResource:
            async with conn.transaction():
                resource = await self._fetch_resource(
                    conn, resource_type, resource_id, for_update=True
                )
                now = self._clock()
                update: dict[str, object] = {"updated_time": now}
                if patch.labels is not None:
                    update["labels"] = patch.labels
                spec_changed = patch.spec is not None and patch.spec != resource.spec
                if spec_changed:
                    update["spec"] = patch.spec
                    update["generation"] = resource.generation + 1
                resource = resource.model_copy(update=update)
                if spec_changed:
                    statuses = await self._fetch_statuses(conn, resource_type, resource_id)
                    resource = resource.model_copy(
                        update={
                            "status": self._policy.on_generation_bump(
                                resource, statuses, now
                            )
                        }
                    )
                await self._write_resource(conn, resource)
                return resource

        return await self._execute("update_resource", correlation_id, _update)

    async def delete_resource(
        self,
        resource_type: str,
        resource_id: str,
        finalize: bool = False,
        correlation_id: UUID | None = None,
    ) -> ModelResource:
        self._check_type(resource_type)

        async def _delete(conn: asyncpg.Connection) -> ModelResource:
            async with conn.transaction():
                resource = await self._fetch_resource(
                    conn, resource_type, resource_id, for_update=True
                )
                now = self._clock()
                if resource.deleted_time is None:
                    resource = resource.model_copy(
                        update={"deleted_time": now, "updated_time": now}
                    )
                if finalize:
                    status = resource.status.model_copy(
                        update={"phase": EnumResourcePhase.TERMINATED}
                    )
                else:
                    statuses = await self._fetch_statuses(conn, resource_type, resource_id)
                    status = self._policy.recompute(resource, statuses, now)
                resource = resource.model_copy(update={"status": status})
                await self._write_resource(conn, resource)
                return resource

        return await self._execute("delete_resource", correlation_id, _delete)

    @staticmethod
    async def _write_resource(conn: asyncpg.Connection, resource: ModelResource) -> None:
        await conn.execute(
            SQL_UPDATE_RESOURCE,
            resource.resource_type,
            resource.id,
            resource.generation,
            resource.spec,
            resource.labels,
            _dump(resource.status),
            resource.updated_time,
            resource.deleted_time,
        )

    async def list_statuses(
        self,
        resource_type: str,
        resource_id: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelAdapterStatus]:
        self._check_type(resource_type)

        async def _list(conn: asyncpg.Connection) -> list[ModelAdapterStatus]:
            await self._fetch_resource(conn, resource_type, resource_id)
            return await self._fetch_statuses(conn, resource_type, resource_id)

        return await self._execute("list_statuses", correlation_id, _list)

    async def upsert_status(
        self,
        resource_type: str,
        resource_id: str,
        report: ModelAdapterStatusReport,
        correlation_id: UUID | None = None,
    ) -> ModelStatusWriteResult:
        self._check_type(resource_type)

        async def _upsert(conn: asyncpg.Connection) -> ModelStatusWriteResult:
            async with conn.transaction():
                resource = await self._fetch_resource(
                    conn, resource_type, resource_id, for_update=True
                )
                statuses = {
                    s.adapter_name: s
                    for s in await self._fetch_statuses(conn, resource_type, resource_id)
                }
                current = statuses.get(report.adapter_name)
                outcome = self._policy.classify(resource, report, current)
                now = self._clock()

                await conn.execute(
                    SQL_INSERT_AUDIT,
                    resource_type,
                    resource_id,
                    report.adapter_name,
                    report.observed_generation,
                    outcome.value,
                    _dump(report),
                    now,
                )
                await conn.execute(
                    SQL_TRIM_AUDIT,
                    resource_type,
                    resource_id,
                    report.adapter_name,
                    self._policy.audit_limit,
                )

                if outcome != EnumStatusWriteOutcome.ACCEPTED:
                    return ModelStatusWriteResult(
                        outcome=outcome,
                        status=current,
                        resource=resource,
                        stored_generation=(
                            current.observed_generation
                            if current is not None
                            and outcome == EnumStatusWriteOutcome.STALE
                            else None
                        ),
                    )

                new_status = self._policy.apply_report(resource, report, current, now)
                await conn.execute(
                    SQL_UPSERT_STATUS,
                    resource_type,
                    resource_id,
                    new_status.adapter_name,
                    new_status.observed_generation,
                    [_dump(c) for c in new_status.conditions],
                    new_status.data,
                    new_status.created_time,
                    new_status.last_transition_time,
                )
                statuses[report.adapter_name] = new_status
                aggregate = self._policy.recompute(
                    resource, list(statuses.values()), now, status_written=True
                )
                await conn.execute(
                    SQL_UPDATE_RESOURCE_STATUS,
                    resource_type,
                    resource_id,
                    _dump(aggregate),
                )
                return ModelStatusWriteResult(
                    outcome=EnumStatusWriteOutcome.ACCEPTED,
                    status=new_status,
                    resource=resource.model_copy(update={"status": aggregate}),
                )

        return await self._execute("upsert_status", correlation_id, _upsert)

    async def get_status_audit(
        self,
        resource_type: str,
        resource_id: str,
        adapter_name: str,
        correlation_id: UUID | None = None,
    ) -> list[ModelStatusAuditEntry]:
        self._check_type(resource_type)

        async def _audit(conn: asyncpg.Connection) -> list[ModelStatusAuditEntry]:
            await self._fetch_resource(conn, resource_type, resource_id)
            rows = await conn.fetch(SQL_SELECT_AUDIT, resource_type, resource_id, adapter_name)
            return [
                ModelStatusAuditEntry(
                    report=ModelAdapterStatusReport.model_validate(row["report"]),
                    outcome=EnumStatusWriteOutcome(row["outcome"]),
                    received_time=row["received_time"],
                )
                for row in rows
            ]

        return await self._execute("get_status_audit", correlation_id, _audit)


__all__ = ["SCHEMA_SQL", "PostgresResourceStore"]
