"""
Child manifest rendering.

Turns WorkloadParts into the Service, Deployment and StatefulSet manifests a
parent owns. Manifests are plain dicts in Kubernetes wire form so they can be
compared, hashed and sent to the API without conversion.

Invariants:
    - Every child is named after its parent, in the parent's namespace
    - Every child carries the managed-by label
    - Owner references are attached by the reconciler, not here
"""

from __future__ import annotations

import json
from typing import Any, Dict

from ..config import BuilderDefaults
from ..resources.kinds import DEPLOYMENT, SERVICE, STATEFUL_SET, ObjectRef, ResourceKind, Role
from ..resources.types import RoleSpec
from . import pod
from .roles import WorkloadParts, build_workload


def _metadata(ref: ObjectRef, labels: Dict[str, str]) -> Dict[str, Any]:
    return {"name": ref.name, "namespace": ref.namespace, "labels": labels}


def _workload_labels(role: Role, ref: ObjectRef, defaults: BuilderDefaults) -> Dict[str, str]:
    return {
        "app": role.value,
        defaults.group_label_key: ref.name,
        defaults.managed_by_label: defaults.managed_by_value,
    }


def render_service(role: Role, ref: ObjectRef, defaults: BuilderDefaults) -> Dict[str, Any]:
    """Network endpoint selecting the parent's pods."""
    labels = {
        "service": role.value,
        defaults.group_label_key: ref.name,
        defaults.managed_by_label: defaults.managed_by_value,
    }
    return {
        "apiVersion": SERVICE.api_version,
        "kind": SERVICE.kind,
        "metadata": _metadata(ref, labels),
        "spec": {
            "ports": pod.service_ports(role, defaults),
            "selector": {defaults.group_label_key: ref.name},
        },
    }


def render_pod_template(parts: WorkloadParts, defaults: BuilderDefaults) -> Dict[str, Any]:
    container: Dict[str, Any] = {
        "name": parts.role.value,
        "image": parts.image,
        "args": list(parts.args),
        "ports": [dict(p) for p in parts.ports],
    }
    if parts.env:
        container["env"] = [dict(e) for e in parts.env]
    if parts.volume_mounts:
        container["volumeMounts"] = [dict(m) for m in parts.volume_mounts]
    if parts.resources:
        container["resources"] = parts.resources

    pod_spec: Dict[str, Any] = {
        "terminationGracePeriodSeconds": defaults.grace_period_seconds,
        "containers": [container],
    }
    if parts.volumes:
        pod_spec["volumes"] = [dict(v) for v in parts.volumes]
    if parts.node_selector:
        pod_spec["nodeSelector"] = dict(parts.node_selector)

    metadata: Dict[str, Any] = {"labels": dict(parts.pod_labels)}
    if parts.pod_annotations:
        metadata["annotations"] = dict(parts.pod_annotations)

    return {"metadata": metadata, "spec": pod_spec}


def render_deployment(parts: WorkloadParts, ref: ObjectRef, defaults: BuilderDefaults) -> Dict[str, Any]:
    """Stateless replica set for the query and gateway roles."""
    return {
        "apiVersion": DEPLOYMENT.api_version,
        "kind": DEPLOYMENT.kind,
        "metadata": _metadata(ref, _workload_labels(parts.role, ref, defaults)),
        "spec": {
            "replicas": parts.replicas,
            "selector": {"matchLabels": dict(parts.pod_labels)},
            "template": render_pod_template(parts, defaults),
        },
    }


def render_stateful_set(parts: WorkloadParts, ref: ObjectRef, defaults: BuilderDefaults) -> Dict[str, Any]:
    """Stateful replica set for the ingestion role, governed by the parent's Service."""
    return {
        "apiVersion": STATEFUL_SET.api_version,
        "kind": STATEFUL_SET.kind,
        "metadata": _metadata(ref, _workload_labels(parts.role, ref, defaults)),
        "spec": {
            "replicas": parts.replicas,
            "serviceName": ref.name,
            "selector": {"matchLabels": dict(parts.pod_labels)},
            "template": render_pod_template(parts, defaults),
            "volumeClaimTemplates": [json.loads(json.dumps(c)) for c in parts.volume_claim_templates],
        },
    }


def desired_children(
    role: Role,
    ref: ObjectRef,
    spec: RoleSpec,
    defaults: BuilderDefaults,
) -> Dict[ResourceKind, Dict[str, Any]]:
    """Render every child of a parent, in reconcile order.

    Args:
        role: Role of the parent
        ref: Parent namespaced name (shared by the children)
        spec: Parsed parent spec
        defaults: Builder defaults

    Returns:
        Mapping of child kind to manifest, Service first
    """
    parts = build_workload(role, spec, ref.name, defaults)
    children: Dict[ResourceKind, Dict[str, Any]] = {
        SERVICE: render_service(role, ref, defaults),
    }
    if role.workload_kind is STATEFUL_SET:
        children[STATEFUL_SET] = render_stateful_set(parts, ref, defaults)
    else:
        children[DEPLOYMENT] = render_deployment(parts, ref, defaults)
    return children
