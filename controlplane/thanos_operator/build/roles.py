"""
Per-role workload builders.

build_workload() turns a parsed spec into WorkloadParts: the container
arguments, ports, volumes and pod metadata for one role. Defaults are applied
first, so every role builder works on a fully populated spec.

Argument layout per role:
    query:   query, --query.replica-label, [--store], [--log.level]
    store:   store, --index-cache-size, --chunk-pool-size, --data-dir,
             --objstore.config, [--log.level]
    receive: receive, --tsdb.path, --tsdb.retention, --labels,
             --objstore.config, [--log.level]

Invariants:
    - Builders are total, pure functions of (spec, parent name, defaults)
    - Identical inputs give identical WorkloadParts
    - Only the ingestion role gets a volume claim template
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from ..config import BuilderDefaults
from ..resources.defaults import apply_defaults
from ..resources.kinds import Role
from ..resources.types import QuerierSpec, ReceiverSpec, RoleSpec, StoreSpec
from . import pod


@dataclass(frozen=True)
class WorkloadParts:
    """Everything needed to render a role's pod template.

    Attributes:
        role: Role being built
        image: Container image
        replicas: Desired replica count
        args: Container arguments, subcommand first
        env: Container environment variables
        ports: Container ports
        volumes: Pod volumes
        volume_mounts: Container volume mounts
        volume_claim_templates: Claim templates (ingestion only)
        pod_labels: Pod labels, also used as the workload selector
        pod_annotations: Pod annotations
        resources: Container resource requests and limits
        node_selector: Pod node selector
    """

    role: Role
    image: str
    replicas: int
    args: Tuple[str, ...]
    ports: Tuple[Dict[str, Any], ...]
    pod_labels: Dict[str, str]
    env: Tuple[Dict[str, Any], ...] = ()
    volumes: Tuple[Dict[str, Any], ...] = ()
    volume_mounts: Tuple[Dict[str, Any], ...] = ()
    volume_claim_templates: Tuple[Dict[str, Any], ...] = ()
    pod_annotations: Dict[str, str] = field(default_factory=dict)
    resources: Dict[str, Any] = field(default_factory=dict)
    node_selector: Dict[str, str] = field(default_factory=dict)


def _common(role: Role, spec: RoleSpec, parent_name: str, defaults: BuilderDefaults) -> Dict[str, Any]:
    return {
        "role": role,
        "image": spec.image,
        "replicas": spec.replicas,
        "ports": tuple(pod.container_ports(role, defaults)),
        "pod_labels": pod.pod_labels(role, parent_name, spec, defaults),
        "pod_annotations": pod.pod_annotations(spec),
        "resources": pod.container_resources(spec.resources),
        "node_selector": dict(spec.node_selector),
    }


def build_query(spec: QuerierSpec, parent_name: str, defaults: BuilderDefaults) -> WorkloadParts:
    args = [
        Role.QUERY.subcommand,
        f"--query.replica-label={spec.replica_label}",
    ]
    if spec.store_dns:
        args.append(f"--store=dnssrv+{spec.store_dns}")
    args.extend(pod.log_level_args(spec, defaults))

    return WorkloadParts(
        args=tuple(args),
        volumes=tuple(pod.secret_volumes(spec)),
        volume_mounts=tuple(pod.secret_mounts(spec, defaults)),
        **_common(Role.QUERY, spec, parent_name, defaults),
    )


def build_gateway(spec: StoreSpec, parent_name: str, defaults: BuilderDefaults) -> WorkloadParts:
    args = [
        Role.GATEWAY.subcommand,
        f"--index-cache-size={spec.index_cache_size}",
        f"--chunk-pool-size={spec.chunk_pool_size}",
        f"--data-dir={spec.data_dir}",
        pod.objstore_config_arg(spec),
    ]
    args.extend(pod.log_level_args(spec, defaults))

    volumes: List[Dict[str, Any]] = [pod.credentials_volume(spec, defaults)]
    volumes.extend(pod.secret_volumes(spec))
    mounts: List[Dict[str, Any]] = [pod.credentials_mount(defaults)]
    mounts.extend(pod.secret_mounts(spec, defaults))

    return WorkloadParts(
        args=tuple(args),
        env=tuple(pod.credentials_env(spec, defaults)),
        volumes=tuple(volumes),
        volume_mounts=tuple(mounts),
        **_common(Role.GATEWAY, spec, parent_name, defaults),
    )


def build_ingestion(spec: ReceiverSpec, parent_name: str, defaults: BuilderDefaults) -> WorkloadParts:
    args = [
        Role.INGESTION.subcommand,
        f"--tsdb.path={spec.receive_prefix}",
        f"--tsdb.retention={spec.retention}",
        f'--labels=receive="{spec.receive_labels}"',
        pod.objstore_config_arg(spec),
    ]
    args.extend(pod.log_level_args(spec, defaults))

    claim = {
        "metadata": {"name": defaults.storage_volume_name},
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": spec.storage}},
        },
    }

    volumes: List[Dict[str, Any]] = [pod.credentials_volume(spec, defaults)]
    volumes.extend(pod.secret_volumes(spec))
    mounts: List[Dict[str, Any]] = [
        {"name": defaults.storage_volume_name, "mountPath": spec.receive_prefix},
        pod.credentials_mount(defaults),
    ]
    mounts.extend(pod.secret_mounts(spec, defaults))

    return WorkloadParts(
        args=tuple(args),
        env=tuple(pod.credentials_env(spec, defaults)),
        volumes=tuple(volumes),
        volume_mounts=tuple(mounts),
        volume_claim_templates=(claim,),
        **_common(Role.INGESTION, spec, parent_name, defaults),
    )


_BUILDERS: Dict[Role, Callable[[Any, str, BuilderDefaults], WorkloadParts]] = {
    Role.QUERY: build_query,
    Role.GATEWAY: build_gateway,
    Role.INGESTION: build_ingestion,
}


def build_workload(role: Role, spec: RoleSpec, parent_name: str, defaults: BuilderDefaults) -> WorkloadParts:
    """Build the workload parts for a role.

    Args:
        role: Role tag of the parent resource
        spec: Spec as parsed from the parent (defaults not yet applied)
        parent_name: Name of the parent resource
        defaults: Builder defaults

    Returns:
        WorkloadParts for the role
    """
    defaulted = apply_defaults(role, spec, defaults)
    return _BUILDERS[role](defaulted, parent_name, defaults)
