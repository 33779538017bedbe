"""
Ownership guard.

A child is only ever mutated when it is absent, has no controlling owner, or
is controlled by the parent being reconciled. Anything controlled by another
object is left alone and reported as an orphan conflict.

Invariants:
    - Only the controller owner reference counts; plain owner references
      never block reconciliation
    - The guard never writes to the cluster
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..resources.types import ParentResource


def controller_ref(obj: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """The owner reference marked controller=true, if any."""
    if not obj:
        return None
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref
    return None


def check_ownership(
    existing: Optional[Dict[str, Any]],
    owner_kind: str,
    owner_name: str,
) -> Optional[Dict[str, Any]]:
    """Check whether an existing child may be mutated by a parent.

    Args:
        existing: Child as read from the cluster, or None when absent
        owner_kind: Kind of the parent being reconciled
        owner_name: Name of the parent being reconciled

    Returns:
        The conflicting controller reference, or None when mutation is allowed
    """
    ref = controller_ref(existing)
    if ref is None:
        return None
    if ref.get("kind") != owner_kind or ref.get("name") != owner_name:
        return ref
    return None


def owner_reference_for(parent: ParentResource) -> Dict[str, Any]:
    """Controller owner reference pointing at a parent."""
    kind = parent.role.parent_kind
    return {
        "apiVersion": kind.api_version,
        "kind": kind.kind,
        "name": parent.name,
        "uid": parent.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def with_owner_reference(obj: Dict[str, Any], owner: Dict[str, Any]) -> Dict[str, Any]:
    """Attach a controller owner reference, replacing any for the same owner uid.

    Returns a new dict; the input is not modified.
    """
    metadata = dict(obj.get("metadata") or {})
    refs: List[Dict[str, Any]] = [
        r for r in metadata.get("ownerReferences") or [] if r.get("uid") != owner["uid"]
    ]
    refs.append(dict(owner))
    metadata["ownerReferences"] = refs
    return {**obj, "metadata": metadata}
