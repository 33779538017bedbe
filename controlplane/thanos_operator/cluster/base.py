"""
Base protocol and errors for cluster access.

This module defines the ClusterClient protocol that all backends implement.
Objects cross the protocol as plain dicts in Kubernetes wire form (camelCase
keys, metadata/spec/status blocks), so the reconciler never depends on a
particular client library's model classes.

Invariants:
    - get() raises NotFoundError for absent objects, never returns None
    - update() honours metadata.resourceVersion when present (optimistic
      concurrency); a stale version raises ConflictError
    - update() never changes status; update_status() changes only status
    - Returned dicts are owned by the caller and safe to mutate

How to change safely:
    - Protocol changes require updating every backend
    - Keep the in-memory backend's semantics aligned with the API server's
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Optional,
    Protocol,
    runtime_checkable,
)
import logging

from ..errors import OperatorError
from ..resources.kinds import ObjectRef, ResourceKind

if TYPE_CHECKING:
    from ..config import ClusterConfig

logger = logging.getLogger(__name__)


class ClusterError(OperatorError):
    """Base exception for cluster operations."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        ref: Optional[ObjectRef] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code=code or "CLUSTER_ERROR",
            details={"kind": kind, "object": str(ref) if ref else None},
        )
        self.kind = kind
        self.ref = ref


class NotFoundError(ClusterError):
    """The requested object does not exist."""

    def __init__(self, kind: str, ref: ObjectRef) -> None:
        super().__init__(f"{kind} {ref} not found", kind=kind, ref=ref, code="NOT_FOUND")


class ConflictError(ClusterError):
    """The write lost an optimistic-concurrency race or the object already exists."""

    def __init__(self, message: str, kind: str, ref: ObjectRef) -> None:
        super().__init__(message, kind=kind, ref=ref, code="CONFLICT")


class ClusterConnectionError(ClusterError):
    """The client is not connected or the API server is unreachable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONNECTION_ERROR")


def object_ref(obj: Dict[str, Any]) -> ObjectRef:
    """Namespaced name of a wire-form object."""
    metadata = obj.get("metadata") or {}
    return ObjectRef(namespace=metadata.get("namespace", ""), name=metadata.get("name", ""))


@runtime_checkable
class ClusterClient(Protocol):
    """Protocol for cluster backends.

    Example:
        >>> client = InMemoryClusterClient()
        >>> await client.connect()
        >>> svc = await client.get(SERVICE, ObjectRef("monitoring", "thanos-querier"))
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the cluster.

        Must be called before any other operation.

        Raises:
            ClusterConnectionError: If credentials cannot be loaded
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""
        ...

    @abstractmethod
    async def get(self, kind: ResourceKind, ref: ObjectRef) -> Dict[str, Any]:
        """Read one object.

        Raises:
            NotFoundError: If the object does not exist
            ClusterError: For other failures
        """
        ...

    @abstractmethod
    async def create(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Create an object and return it as stored.

        Raises:
            ConflictError: If an object with the same name exists
            ClusterError: For other failures
        """
        ...

    @abstractmethod
    async def update(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Replace an object's metadata and spec; status is left untouched.

        Raises:
            NotFoundError: If the object does not exist
            ConflictError: If metadata.resourceVersion is stale
            ClusterError: For other failures
        """
        ...

    @abstractmethod
    async def update_status(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Replace an object's status through the status sub-resource.

        Raises:
            NotFoundError: If the object does not exist
            ConflictError: If metadata.resourceVersion is stale
            ClusterError: For other failures
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether connect() has succeeded and close() has not been called."""
        ...


async def get_optional(
    client: ClusterClient, kind: ResourceKind, ref: ObjectRef
) -> Optional[Dict[str, Any]]:
    """Read an object, returning None when it does not exist."""
    try:
        return await client.get(kind, ref)
    except NotFoundError:
        return None


def create_cluster_client(config: "ClusterConfig") -> ClusterClient:
    """Factory function to create a cluster client from configuration.

    Args:
        config: Cluster configuration

    Returns:
        Appropriate ClusterClient implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import ClusterBackend
    from .kube import KubernetesClusterClient
    from .memory import InMemoryClusterClient

    if config.backend == ClusterBackend.KUBERNETES:
        return KubernetesClusterClient(config)
    elif config.backend == ClusterBackend.MEMORY:
        return InMemoryClusterClient()
    else:
        raise ValueError(f"Unsupported cluster backend: {config.backend}")
