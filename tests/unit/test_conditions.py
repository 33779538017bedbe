"""
Unit tests for the condition tracker.

Tests cover:
- Replace-by-type, append otherwise
- Order preservation
- lastTransitionTime handling
- Lookup helpers
"""

from controlplane.thanos_operator.reconcile.conditions import (
    all_healthy,
    find_condition,
    is_healthy,
    set_condition,
)
from controlplane.thanos_operator.resources.types import Condition, ConditionStatus


def clock(*times):
    it = iter(times)
    return lambda: next(it)


def healthy(condition_type, reason="Ok"):
    return Condition(type=condition_type, status=ConditionStatus.HEALTHY, reason=reason)


def unhealthy(condition_type, reason="Broken"):
    return Condition(type=condition_type, status=ConditionStatus.UNHEALTHY, reason=reason)


class TestSetCondition:
    """Tests for set_condition."""

    def test_append_new_type(self):
        conditions = []
        set_condition(conditions, healthy("ServiceUpToDate"), now=clock("t1"))
        assert len(conditions) == 1
        assert conditions[0].last_transition_time == "t1"

    def test_replace_not_append(self):
        """Same type twice yields one entry with the latest status."""
        conditions = []
        set_condition(conditions, healthy("ServiceUpToDate"), now=clock("t1"))
        set_condition(conditions, unhealthy("ServiceUpToDate", "UpdateError"), now=clock("t2"))

        assert len(conditions) == 1
        assert conditions[0].status == ConditionStatus.UNHEALTHY
        assert conditions[0].reason == "UpdateError"

    def test_replace_keeps_position(self):
        conditions = []
        set_condition(conditions, healthy("A"), now=clock("t1"))
        set_condition(conditions, healthy("B"), now=clock("t2"))
        set_condition(conditions, unhealthy("A"), now=clock("t3"))

        assert [c.type for c in conditions] == ["A", "B"]

    def test_transition_time_kept_when_status_unchanged(self):
        conditions = []
        set_condition(conditions, healthy("A", "EnsuredService"), now=clock("t1"))
        set_condition(conditions, healthy("A", "EnsuredService"), now=clock("t2"))
        assert conditions[0].last_transition_time == "t1"

    def test_transition_time_updated_on_status_change(self):
        conditions = []
        set_condition(conditions, healthy("A"), now=clock("t1"))
        set_condition(conditions, unhealthy("A"), now=clock("t2"))
        assert conditions[0].last_transition_time == "t2"

    def test_default_clock_is_rfc3339(self):
        conditions = []
        stored = set_condition(conditions, healthy("A"))
        assert stored.last_transition_time.endswith("Z")
        assert "T" in stored.last_transition_time


class TestLookups:
    """Tests for find_condition, is_healthy and all_healthy."""

    def test_find_condition(self):
        conditions = [healthy("A"), unhealthy("B")]
        assert find_condition(conditions, "B").reason == "Broken"
        assert find_condition(conditions, "C") is None

    def test_is_healthy(self):
        conditions = [healthy("A"), unhealthy("B")]
        assert is_healthy(conditions, "A")
        assert not is_healthy(conditions, "B")
        assert not is_healthy(conditions, "missing")

    def test_all_healthy(self):
        assert all_healthy([healthy("A"), healthy("B")])
        assert not all_healthy([healthy("A"), unhealthy("B")])


class TestConditionWireFormat:
    """Tests for Condition serialization."""

    def test_to_dict(self):
        condition = Condition(
            type="ServiceUpToDate",
            status=ConditionStatus.HEALTHY,
            reason="EnsuredService",
            last_transition_time="2024-01-01T00:00:00Z",
        )
        assert condition.to_dict() == {
            "type": "ServiceUpToDate",
            "status": "Healthy",
            "reason": "EnsuredService",
            "message": "",
            "lastTransitionTime": "2024-01-01T00:00:00Z",
        }

    def test_from_dict(self):
        condition = Condition.from_dict(
            {"type": "SpecValid", "status": "Unhealthy", "reason": "InvalidSpec", "message": "bad"}
        )
        assert condition.status == ConditionStatus.UNHEALTHY
        assert condition.message == "bad"
        assert condition.last_transition_time is None
