"""
Idempotent create-or-update of child resources.

The API server adds defaults to every object it stores (clusterIP, protocol,
strategy, securityContext, ...), so a live child never equals the rendered
manifest. Instead, each kind declares the fields this operator manages, and a
child is in sync when every managed value in the desired manifest is present
with the same value in the live object.

Subset comparison alone cannot see a key that was dropped from the parent
spec (a node selector, a pod label, a resource limit). OWNED_KEYS lists the
maps and optional fields the builders render in full; for those the live key
set must equal the desired key set, and a field the builders no longer render
must be absent or empty in the live object.

Invariants:
    - A child already in sync is never written (no second mutation)
    - Updates start from the live object: unmanaged fields and
      server-assigned values survive, managed fields are replaced wholesale
    - The controller owner reference is always present after a write
    - Updates carry the live resourceVersion, so concurrent writers surface
      as ConflictError instead of being silently overwritten

How to change safely:
    - Managing a new field means adding its path to MANAGED_FIELDS
    - A path under a managed field that the API server never defaults can go
      in OWNED_KEYS; server-defaulted maps must not
    - A path managed here must always be rendered by the builders
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import logging

from ..cluster.base import ClusterClient, object_ref
from ..resources.kinds import DEPLOYMENT, SERVICE, STATEFUL_SET, ResourceKind
from .ownership import with_owner_reference

logger = logging.getLogger(__name__)

FieldPath = Tuple[str, ...]

_WORKLOAD_FIELDS: Tuple[FieldPath, ...] = (
    ("metadata", "labels"),
    ("spec", "replicas"),
    ("spec", "selector"),
    ("spec", "template"),
)

MANAGED_FIELDS: Dict[ResourceKind, Tuple[FieldPath, ...]] = {
    SERVICE: (
        ("metadata", "labels"),
        ("spec", "ports"),
        ("spec", "selector"),
    ),
    DEPLOYMENT: _WORKLOAD_FIELDS,
    STATEFUL_SET: _WORKLOAD_FIELDS + (
        ("spec", "serviceName"),
        ("spec", "volumeClaimTemplates"),
    ),
}

# "*" walks list elements pairwise.
_CONTAINER: FieldPath = ("spec", "template", "spec", "containers", "*")

_WORKLOAD_OWNED: Tuple[FieldPath, ...] = (
    ("metadata", "labels"),
    ("spec", "selector", "matchLabels"),
    ("spec", "template", "metadata", "labels"),
    ("spec", "template", "metadata", "annotations"),
    ("spec", "template", "spec", "nodeSelector"),
    ("spec", "template", "spec", "volumes"),
    _CONTAINER + ("env",),
    _CONTAINER + ("volumeMounts",),
    _CONTAINER + ("resources",),
    _CONTAINER + ("resources", "requests"),
    _CONTAINER + ("resources", "limits"),
)

OWNED_KEYS: Dict[ResourceKind, Tuple[FieldPath, ...]] = {
    SERVICE: (
        ("metadata", "labels"),
        ("spec", "selector"),
    ),
    DEPLOYMENT: _WORKLOAD_OWNED,
    STATEFUL_SET: _WORKLOAD_OWNED,
}


class OperationResult(Enum):
    """What create_or_update did."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class UpsertResult:
    """Outcome of one create_or_update call.

    Attributes:
        operation: Whether the child was created, updated or left alone
        live: The child as stored after the call
    """

    operation: OperationResult
    live: Dict[str, Any]

    @property
    def mutated(self) -> bool:
        return self.operation is not OperationResult.UNCHANGED


_MISSING = object()


def _lookup(obj: Dict[str, Any], path: FieldPath) -> Any:
    current: Any = obj
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


def is_subset(desired: Any, live: Any) -> bool:
    """True when every value in desired appears in live.

    Dicts may carry extra keys in live; lists must match in length and order,
    element by element.
    """
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        return all(k in live and is_subset(v, live[k]) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(live, list) or len(desired) != len(live):
            return False
        return all(is_subset(d, l) for d, l in zip(desired, live))
    return desired == live


def _empty(value: Any) -> bool:
    return value is None or value == {} or value == []


def _child(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None


def owned_keys_match(desired: Any, live: Any, path: FieldPath) -> bool:
    """True when live holds no key at path that desired does not render.

    A missing value counts as empty. Maps must have the same key set; any
    other value only needs to be empty in live when it is empty in desired.
    Values themselves are left to is_subset.
    """
    if not path:
        if _empty(desired):
            return _empty(live)
        if isinstance(desired, dict) and isinstance(live, dict):
            return desired.keys() == live.keys()
        return True
    key, rest = path[0], path[1:]
    if key == "*":
        if not isinstance(desired, list) or not isinstance(live, list):
            return True
        return all(owned_keys_match(d, l, rest) for d, l in zip(desired, live))
    return owned_keys_match(_child(desired, key), _child(live, key), rest)


def has_owner(live: Dict[str, Any], owner: Dict[str, Any]) -> bool:
    for ref in (live.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("uid") == owner["uid"] and ref.get("controller"):
            return True
    return False


def in_sync(
    kind: ResourceKind,
    desired: Dict[str, Any],
    live: Dict[str, Any],
    owner: Dict[str, Any],
) -> bool:
    """Whether live matches desired on every managed field and owned key."""
    if not has_owner(live, owner):
        return False
    for path in MANAGED_FIELDS[kind]:
        want = _lookup(desired, path)
        if want is _MISSING:
            continue
        have = _lookup(live, path)
        if have is _MISSING or not is_subset(want, have):
            return False
    return all(owned_keys_match(desired, live, path) for path in OWNED_KEYS[kind])


def merge_managed(
    kind: ResourceKind,
    desired: Dict[str, Any],
    live: Dict[str, Any],
    owner: Dict[str, Any],
) -> Dict[str, Any]:
    """Live object with every managed field replaced by its desired value."""
    merged = copy.deepcopy(live)
    merged.pop("status", None)
    for path in MANAGED_FIELDS[kind]:
        want = _lookup(desired, path)
        parent = merged
        for key in path[:-1]:
            parent = parent.setdefault(key, {})
        if want is _MISSING:
            parent.pop(path[-1], None)
        else:
            parent[path[-1]] = copy.deepcopy(want)
    return with_owner_reference(merged, owner)


async def create_or_update(
    client: ClusterClient,
    kind: ResourceKind,
    desired: Dict[str, Any],
    owner: Dict[str, Any],
    existing: Optional[Dict[str, Any]],
) -> UpsertResult:
    """Create the child if absent, update it if it drifted, else do nothing.

    Args:
        client: Cluster client
        kind: Child kind
        desired: Rendered manifest, without owner references
        owner: Controller owner reference to the parent
        existing: Live child as already read by the caller, or None

    Returns:
        UpsertResult with the operation performed and the stored object

    Raises:
        ClusterError: If the create or update call fails
    """
    ref = object_ref(desired)

    if existing is None:
        live = await client.create(kind, with_owner_reference(desired, owner))
        logger.info("Child created", extra={"kind": kind.kind, "object": str(ref)})
        return UpsertResult(OperationResult.CREATED, live)

    if in_sync(kind, desired, existing, owner):
        logger.debug("Child up to date", extra={"kind": kind.kind, "object": str(ref)})
        return UpsertResult(OperationResult.UNCHANGED, existing)

    live = await client.update(kind, merge_managed(kind, desired, existing, owner))
    logger.info("Child updated", extra={"kind": kind.kind, "object": str(ref)})
    return UpsertResult(OperationResult.UPDATED, live)
