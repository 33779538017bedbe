"""
Desired-state builders.

This module handles:
- Per-role container arguments, ports, volumes and pod metadata
- Rendering Service, Deployment and StatefulSet manifests

Everything here is a pure function of (spec, parent identity, defaults): no
cluster access, no clock, no randomness.

Invariants:
    - Identical inputs give JSON byte-identical manifests
    - Specs are defaulted before building and never mutated
"""

from .manifests import (
    desired_children,
    render_deployment,
    render_pod_template,
    render_service,
    render_stateful_set,
)
from .roles import WorkloadParts, build_gateway, build_ingestion, build_query, build_workload

__all__ = [
    "WorkloadParts",
    "build_workload",
    "build_query",
    "build_gateway",
    "build_ingestion",
    "desired_children",
    "render_service",
    "render_deployment",
    "render_stateful_set",
    "render_pod_template",
]
