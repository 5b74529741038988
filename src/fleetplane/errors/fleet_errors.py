# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Fleetplane Error Classes.

Error Hierarchy:
    FleetError (base error)
    ├── ProtocolConfigurationError
    ├── InfraConnectionError
    ├── InfraTimeoutError
    ├── InfraUnavailableError
    ├── RuleEvaluationError
    ├── ResourceNotFoundError
    ├── ResourceConflictError
    ├── ActionBackendError
    └── ResourceStoreError

All errors:
    - Carry an EnumFleetErrorCode for classification
    - Support proper error chaining with `raise ... from e`
    - Include structured context for debugging
    - Support correlation IDs for request tracking
    - Accept ModelInfraErrorContext for bundled context parameters

The three ``Infra*`` errors are the transient class: callers that sit on a
message bus re-raise them so the message is redelivered.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fleetplane.enums import EnumFleetErrorCode
from fleetplane.errors.model_infra_error_context import ModelInfraErrorContext

if TYPE_CHECKING:
    from fleetplane.errors.model_problem_details import ModelProblemDetails


class FleetError(Exception):
    """Base error class for fleetplane.

    Structured Fields (via ModelInfraErrorContext):
        transport_type: Type of transport (http, db, kafka, etc.)
        operation: Operation being performed
        correlation_id: Request correlation ID for tracking
        target_name: Target resource/endpoint name

    Example:
        >>> context = ModelInfraErrorContext(
        ...     transport_type=EnumInfraTransportType.HTTP,
        ...     operation="upsert_status",
        ...     target_name="resource-store",
        ... )
        >>> raise FleetError("Operation failed", context=context, retry_count=3)
    """

    def __init__(
        self,
        message: str,
        error_code: EnumFleetErrorCode | None = None,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        """Initialize FleetError with structured fields.

        Args:
            message: Human-readable error message
            error_code: Error code (defaults to OPERATION_FAILED)
            context: Bundled infrastructure context (transport_type, operation, etc.)
            **extra_context: Additional context information
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or EnumFleetErrorCode.OPERATION_FAILED
        self.correlation_id: UUID | None = None

        structured_context: dict[str, object] = dict(extra_context)
        if context is not None:
            if context.transport_type is not None:
                structured_context["transport_type"] = context.transport_type.value
            if context.operation is not None:
                structured_context["operation"] = context.operation
            if context.target_name is not None:
                structured_context["target_name"] = context.target_name
            self.correlation_id = context.correlation_id
        self.context = structured_context

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ProtocolConfigurationError(FleetError):
    """Raised when configuration validation fails.

    Used for YAML parse errors, missing required fields, unresolvable
    environment references, or schema validation failures.
    """

    def __init__(
        self,
        message: str,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.INVALID_CONFIGURATION,
            context=context,
            **extra_context,
        )


class InfraConnectionError(FleetError):
    """Raised when a connection to the store, broker or cluster API fails."""

    def __init__(
        self,
        message: str,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.CONNECTION_ERROR,
            context=context,
            **extra_context,
        )


class InfraTimeoutError(FleetError):
    """Raised when an infrastructure operation exceeds its deadline.

    Example:
        >>> raise InfraTimeoutError(
        ...     "Reconcile exceeded processing deadline",
        ...     context=context,
        ...     timeout_seconds=300,
        ... )
    """

    def __init__(
        self,
        message: str,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.TIMEOUT_ERROR,
            context=context,
            **extra_context,
        )


class InfraUnavailableError(FleetError):
    """Raised when a dependency is unavailable, including an open circuit breaker."""

    def __init__(
        self,
        message: str,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.SERVICE_UNAVAILABLE,
            context=context,
            **extra_context,
        )


class RuleEvaluationError(FleetError):
    """Raised when a rule cannot be evaluated.

    A missing field for an operator that needs a value, or operands of
    incompatible types, are evaluation errors rather than False results.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        if field is not None:
            extra_context["field"] = field
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.RULE_EVALUATION_ERROR,
            context=context,
            **extra_context,
        )
        self.field = field


class ResourceNotFoundError(FleetError):
    """Raised when a resource or resource type does not exist."""

    def __init__(
        self,
        message: str,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.RESOURCE_NOT_FOUND,
            context=context,
            **extra_context,
        )


class ResourceConflictError(FleetError):
    """Raised when creating a resource whose id is already taken."""

    def __init__(
        self,
        message: str,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.ALREADY_EXISTS,
            context=context,
            **extra_context,
        )


class ActionBackendError(FleetError):
    """Raised when an action backend rejects a request.

    Transient backend failures are raised as InfraConnectionError instead;
    this class covers permanent rejections such as an invalid manifest.
    """

    def __init__(
        self,
        message: str,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        super().__init__(
            message=message,
            error_code=EnumFleetErrorCode.ACTION_BACKEND_ERROR,
            context=context,
            **extra_context,
        )


class ResourceStoreError(FleetError):
    """Raised by the HTTP store client for non-transient API errors.

    Carries the problem-details body returned by the server when one was
    present.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        problem: ModelProblemDetails | None = None,
        context: ModelInfraErrorContext | None = None,
        **extra_context: object,
    ) -> None:
        error_code = EnumFleetErrorCode.OPERATION_FAILED
        if problem is not None and problem.code is not None:
            error_code = problem.code
        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            status_code=status_code,
            **extra_context,
        )
        self.status_code = status_code
        self.problem = problem


TRANSIENT_ERRORS: tuple[type[FleetError], ...] = (
    InfraConnectionError,
    InfraTimeoutError,
    InfraUnavailableError,
)


__all__ = [
    "TRANSIENT_ERRORS",
    "ActionBackendError",
    "FleetError",
    "InfraConnectionError",
    "InfraTimeoutError",
    "InfraUnavailableError",
    "ProtocolConfigurationError",
    "ResourceConflictError",
    "ResourceNotFoundError",
    "ResourceStoreError",
    "RuleEvaluationError",
]
