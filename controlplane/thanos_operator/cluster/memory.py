"""
In-memory cluster client for testing.

This module provides a small in-memory object store with API-server-like
semantics for:
- Unit and integration tests of the reconciler
- Offline dry runs (CLUSTER_BACKEND=memory)

Invariants:
    - All data is lost on process exit
    - resourceVersion increases on every write; stale writes raise ConflictError
    - uid is assigned once at creation and never changes
    - update() preserves status; update_status() preserves everything else

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the ClusterClient protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import logging

from ..resources.kinds import ObjectRef, ResourceKind
from .base import (
    ClusterConnectionError,
    ClusterError,
    ConflictError,
    NotFoundError,
    object_ref,
)

logger = logging.getLogger(__name__)


@dataclass
class _FailureRule:
    operation: str
    kind: Optional[str]
    error: Exception
    remaining: Optional[int]
    skip: int = 0

    def matches(self, operation: str, kind: ResourceKind) -> bool:
        if self.remaining is not None and self.remaining <= 0:
            return False
        return self.operation == operation and self.kind in (None, kind.kind)


@dataclass(frozen=True)
class Call:
    """One recorded client call (testing helper)."""

    operation: str
    kind: str
    ref: ObjectRef


class InMemoryClusterClient:
    """In-memory implementation of ClusterClient.

    Thread safety:
        Uses an asyncio lock around every read-modify-write. Safe to use from
        multiple coroutines.

    Example:
        >>> client = InMemoryClusterClient()
        >>> await client.connect()
        >>> client.put(QUERIER, querier_manifest)
        >>> await reconciler.reconcile(ObjectRef("monitoring", "thanos-querier"))
        >>> client.mutation_count(DEPLOYMENT)
        1
    """

    def __init__(self) -> None:
        self._objects: Dict[Tuple[ResourceKind, ObjectRef], Dict[str, Any]] = {}
        self._versions = itertools.count(1)
        self._uids = itertools.count(1)
        self._lock = asyncio.Lock()
        self._connected = False
        self._failures: List[_FailureRule] = []
        self.calls: List[Call] = []
        self.mutations: Counter = Counter()

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryClusterClient connected")

    async def close(self) -> None:
        """Disconnect; stored objects are kept for inspection."""
        self._connected = False
        logger.debug("InMemoryClusterClient closed")

    async def get(self, kind: ResourceKind, ref: ObjectRef) -> Dict[str, Any]:
        self._record("get", kind, ref)
        async with self._lock:
            return copy.deepcopy(self._require(kind, ref))

    async def create(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        ref = object_ref(obj)
        self._record("create", kind, ref)

        async with self._lock:
            if (kind, ref) in self._objects:
                raise ConflictError(f"{kind.kind} {ref} already exists", kind.kind, ref)

            stored = copy.deepcopy(obj)
            stored.pop("status", None)
            metadata = stored.setdefault("metadata", {})
            metadata["uid"] = self._next_uid()
            metadata["resourceVersion"] = self._next_version()
            metadata["generation"] = 1
            self._objects[(kind, ref)] = stored
            self.mutations[kind.kind] += 1

        logger.debug(
            "Object created in memory",
            extra={"kind": kind.kind, "object": str(ref)},
        )
        return copy.deepcopy(stored)

    async def update(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        ref = object_ref(obj)
        self._record("update", kind, ref)

        async with self._lock:
            current = self._require(kind, ref)
            self._check_version(kind, ref, obj, current)

            stored = copy.deepcopy(obj)
            metadata = stored.setdefault("metadata", {})
            current_meta = current["metadata"]
            metadata["uid"] = current_meta["uid"]
            metadata["resourceVersion"] = self._next_version()
            generation = current_meta.get("generation", 1)
            if stored.get("spec") != current.get("spec"):
                generation += 1
            metadata["generation"] = generation
            if "status" in current:
                stored["status"] = copy.deepcopy(current["status"])
            else:
                stored.pop("status", None)
            self._objects[(kind, ref)] = stored
            self.mutations[kind.kind] += 1

        logger.debug(
            "Object updated in memory",
            extra={"kind": kind.kind, "object": str(ref)},
        )
        return copy.deepcopy(stored)

    async def update_status(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        ref = object_ref(obj)
        self._record("update_status", kind, ref)

        async with self._lock:
            current = self._require(kind, ref)
            self._check_version(kind, ref, obj, current)

            stored = copy.deepcopy(current)
            stored["status"] = copy.deepcopy(obj.get("status") or {})
            stored["metadata"]["resourceVersion"] = self._next_version()
            self._objects[(kind, ref)] = stored
            self.mutations[f"{kind.kind}/status"] += 1

        return copy.deepcopy(stored)

    def _require(self, kind: ResourceKind, ref: ObjectRef) -> Dict[str, Any]:
        try:
            return self._objects[(kind, ref)]
        except KeyError:
            raise NotFoundError(kind.kind, ref)

    def _check_version(
        self,
        kind: ResourceKind,
        ref: ObjectRef,
        obj: Dict[str, Any],
        current: Dict[str, Any],
    ) -> None:
        version = (obj.get("metadata") or {}).get("resourceVersion")
        if version and version != current["metadata"]["resourceVersion"]:
            raise ConflictError(
                f"{kind.kind} {ref} was modified (resourceVersion {version} is stale)",
                kind.kind,
                ref,
            )

    def _record(self, operation: str, kind: ResourceKind, ref: ObjectRef) -> None:
        if not self._connected:
            raise ClusterConnectionError("Not connected")
        self.calls.append(Call(operation=operation, kind=kind.kind, ref=ref))
        for rule in self._failures:
            if rule.matches(operation, kind):
                if rule.skip > 0:
                    rule.skip -= 1
                    continue
                if rule.remaining is not None:
                    rule.remaining -= 1
                raise rule.error

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _next_uid(self) -> str:
        return f"uid-{next(self._uids):06d}"

    # Testing helpers

    def put(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        """Store an object directly, status included (testing helper).

        Missing uid and resourceVersion are assigned. Not counted as a
        mutation and not recorded in the call log.
        """
        stored = copy.deepcopy(obj)
        metadata = stored.setdefault("metadata", {})
        metadata.setdefault("uid", self._next_uid())
        metadata["resourceVersion"] = self._next_version()
        metadata.setdefault("generation", 1)
        self._objects[(kind, object_ref(stored))] = stored
        return copy.deepcopy(stored)

    def set_status(self, kind: ResourceKind, ref: ObjectRef, status: Dict[str, Any]) -> None:
        """Overwrite an object's status, as a built-in controller would (testing helper)."""
        stored = self._require(kind, ref)
        stored["status"] = copy.deepcopy(status)
        stored["metadata"]["resourceVersion"] = self._next_version()

    def stored(self, kind: ResourceKind, ref: ObjectRef) -> Optional[Dict[str, Any]]:
        """Copy of a stored object, or None (testing helper)."""
        obj = self._objects.get((kind, ref))
        return copy.deepcopy(obj) if obj is not None else None

    def objects(self, kind: ResourceKind) -> List[Dict[str, Any]]:
        """Copies of every stored object of a kind (testing helper)."""
        return [copy.deepcopy(obj) for (k, _), obj in self._objects.items() if k == kind]

    def mutation_count(self, kind: Optional[ResourceKind] = None) -> int:
        """Number of create/update calls that succeeded, optionally for one kind.

        Status updates are counted separately under "<Kind>/status".
        """
        if kind is None:
            return sum(n for key, n in self.mutations.items() if not key.endswith("/status"))
        return self.mutations[kind.kind]

    def status_update_count(self, kind: ResourceKind) -> int:
        return self.mutations[f"{kind.kind}/status"]

    def fail_on(
        self,
        operation: str,
        kind: Optional[ResourceKind] = None,
        error: Optional[Exception] = None,
        times: Optional[int] = None,
        after: int = 0,
    ) -> None:
        """Inject a failure for testing error handling.

        Args:
            operation: "get", "create", "update" or "update_status"
            kind: Restrict the failure to one kind; None matches every kind
            error: Exception to raise; defaults to a ClusterError
            times: Number of calls to fail; None fails every matching call
            after: Number of matching calls to let through before failing
        """
        self._failures.append(
            _FailureRule(
                operation=operation,
                kind=kind.kind if kind else None,
                error=error or ClusterError(f"injected {operation} failure"),
                remaining=times,
                skip=after,
            )
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def reset_counters(self) -> None:
        """Forget recorded calls and mutation counts (testing helper)."""
        self.calls.clear()
        self.mutations.clear()
