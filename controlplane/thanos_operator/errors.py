"""
Error types for the Thanos operator.

This module defines the exceptions raised by the reconciliation engine:
- OperatorError: Base exception
- InvalidSpecError: Parent spec cannot be parsed or validated
- ReconcileError: A reconcile pass failed and should be retried
- ApplyError: Create or update of a child resource failed
- ReadBackError: Reading live child status after apply failed
- StatusUpdateError: Persisting the parent status failed

Cluster access errors live in cluster.base and derive from OperatorError too.

Invariants:
    - All errors inherit from OperatorError
    - Errors carry the identity they relate to for log correlation
    - Hard errors are raised to the scheduler, never swallowed
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class OperatorError(Exception):
    """Base exception for all operator errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "OPERATOR_ERROR"
        self.details = details or {}


class InvalidSpecError(OperatorError):
    """Parent resource spec is invalid.

    Raised when:
    - The resource kind maps to no known role
    - A spec field has the wrong type
    - A quantity string cannot be parsed

    Retrying does not help; the user must fix the resource.
    """

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_SPEC",
            details={"field": field_name},
        )
        self.field_name = field_name


class ReconcileError(OperatorError):
    """A reconcile pass failed.

    The scheduler should retry the pass with its own backoff.
    """

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code=code or "RECONCILE_ERROR",
            details={"kind": kind, "namespace": namespace, "name": name},
        )
        self.kind = kind
        self.namespace = namespace
        self.name = name


class ApplyError(ReconcileError):
    """Create or update of a child resource failed."""

    def __init__(self, message: str, kind: str, namespace: str, name: str) -> None:
        super().__init__(message, kind=kind, namespace=namespace, name=name, code="APPLY_ERROR")


class ReadBackError(ReconcileError):
    """Fetching live status of an applied child failed."""

    def __init__(self, message: str, kind: str, namespace: str, name: str) -> None:
        super().__init__(
            message, kind=kind, namespace=namespace, name=name, code="READ_BACK_ERROR"
        )


class StatusUpdateError(ReconcileError):
    """Persisting the parent status failed."""

    def __init__(self, message: str, kind: str, namespace: str, name: str) -> None:
        super().__init__(
            message, kind=kind, namespace=namespace, name=name, code="STATUS_UPDATE_ERROR"
        )
