"""
Cluster access layer.

This module provides:
- ClusterClient protocol (dict-in, dict-out, async)
- InMemoryClusterClient: API-server-like store for tests and dry runs
- KubernetesClusterClient: kubernetes_asyncio-backed client
- Cluster error types

Invariants:
    - Absent objects raise NotFoundError
    - Stale resourceVersion writes raise ConflictError
"""

from .base import (
    ClusterClient,
    ClusterConnectionError,
    ClusterError,
    ConflictError,
    NotFoundError,
    create_cluster_client,
    get_optional,
    object_ref,
)
from .memory import InMemoryClusterClient

__all__ = [
    "ClusterClient",
    "ClusterError",
    "ClusterConnectionError",
    "ConflictError",
    "NotFoundError",
    "InMemoryClusterClient",
    "create_cluster_client",
    "get_optional",
    "object_ref",
]
