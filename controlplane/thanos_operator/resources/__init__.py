"""
Resource model for the Thanos operator.

This module handles:
- Roles and the resource kinds they own
- Typed, read-only role specs parsed from custom resources
- Parent status and health conditions
- Quantity parsing and spec defaulting

Invariants:
    - Role dispatch uses the Role enum, never resource names
    - Specs are immutable; defaulting returns new values
"""

from .defaults import apply_defaults, default_memory_request
from .kinds import (
    DEPLOYMENT,
    QUERIER,
    RECEIVER,
    SERVICE,
    STATEFUL_SET,
    STORE,
    ObjectRef,
    ResourceKind,
    Role,
)
from .quantity import compare_quantities, parse_quantity
from .types import (
    Condition,
    ConditionStatus,
    ConditionType,
    ParentResource,
    ParentStatus,
    PodMetadata,
    QuerierSpec,
    ReceiverSpec,
    ResourceRequirements,
    RoleSpec,
    StoreSpec,
    parse_spec,
)

__all__ = [
    # Kinds and roles
    "Role",
    "ResourceKind",
    "ObjectRef",
    "SERVICE",
    "DEPLOYMENT",
    "STATEFUL_SET",
    "QUERIER",
    "STORE",
    "RECEIVER",
    # Specs
    "RoleSpec",
    "QuerierSpec",
    "StoreSpec",
    "ReceiverSpec",
    "ResourceRequirements",
    "PodMetadata",
    "parse_spec",
    # Status
    "ParentResource",
    "ParentStatus",
    "Condition",
    "ConditionStatus",
    "ConditionType",
    # Helpers
    "apply_defaults",
    "default_memory_request",
    "parse_quantity",
    "compare_quantities",
]
