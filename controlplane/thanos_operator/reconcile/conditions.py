"""
Condition tracker.

Conditions are kept unique by type: setting a condition replaces the entry of
the same type in place, otherwise it is appended. Order of first appearance
is therefore stable across reconcile passes, which keeps status diffs small.

Invariants:
    - At most one condition per type
    - lastTransitionTime changes only when the status value changes
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..resources.types import Condition, ConditionStatus


def utc_now() -> str:
    """Current time in RFC 3339 form, second precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def set_condition(
    conditions: List[Condition],
    new: Condition,
    now: Callable[[], str] = utc_now,
) -> Condition:
    """Insert or replace a condition by type.

    Args:
        conditions: Condition list, modified in place
        new: Condition to set; its last_transition_time is filled in
        now: Clock returning an RFC 3339 timestamp

    Returns:
        The condition as stored
    """
    for i, existing in enumerate(conditions):
        if existing.type != new.type:
            continue
        if existing.status is new.status and existing.last_transition_time:
            new.last_transition_time = existing.last_transition_time
        else:
            new.last_transition_time = now()
        conditions[i] = new
        return new

    new.last_transition_time = now()
    conditions.append(new)
    return new


def find_condition(conditions: List[Condition], condition_type: str) -> Optional[Condition]:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def is_healthy(conditions: List[Condition], condition_type: str) -> bool:
    """True when the condition exists and is Healthy."""
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status is ConditionStatus.HEALTHY


def all_healthy(conditions: List[Condition]) -> bool:
    return all(c.status is ConditionStatus.HEALTHY for c in conditions)
