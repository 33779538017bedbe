"""
Reconciliation engine.

This module handles:
- Ownership checks for existing children
- Health conditions on the parent status
- Idempotent create-or-update of children
- The per-role reconcile pass

Invariants:
    - Children held by another controller are never mutated
    - A pass against unchanged input performs no child writes
"""

from .conditions import all_healthy, find_condition, is_healthy, set_condition
from .ownership import check_ownership, controller_ref, owner_reference_for
from .reconciler import ChildOutcome, Reconciler, ReconcileResult, mirror_child_status
from .upsert import OperationResult, UpsertResult, create_or_update, is_subset

__all__ = [
    "Reconciler",
    "ReconcileResult",
    "ChildOutcome",
    "mirror_child_status",
    "OperationResult",
    "UpsertResult",
    "create_or_update",
    "is_subset",
    "check_ownership",
    "controller_ref",
    "owner_reference_for",
    "set_condition",
    "find_condition",
    "is_healthy",
    "all_healthy",
]
