"""
Pod-level derivations shared by every role.

Each helper takes a defaulted spec and returns plain manifest fragments
(dicts and lists in Kubernetes wire form). Nothing here performs I/O or
mutates its inputs.

Invariants:
    - Empty collections are omitted by callers, never emitted as []
    - Argument order is fixed; the log-level flag is always last
    - Caller-supplied pod labels win over generated ones on key collision
"""

from __future__ import annotations

from typing import Any, Dict, List

from ..config import BuilderDefaults
from ..resources.kinds import Role
from ..resources.types import CommonSpec, ObjectStorageSpec, ResourceRequirements


def pod_labels(role: Role, parent_name: str, spec: CommonSpec, defaults: BuilderDefaults) -> Dict[str, str]:
    """Labels for generated pods and the workload selector."""
    labels = {
        "app": role.value,
        defaults.group_label_key: parent_name,
    }
    if role is Role.INGESTION:
        labels[defaults.store_api_label] = "true"
    if spec.pod_metadata is not None:
        labels.update(spec.pod_metadata.labels)
    return labels


def pod_annotations(spec: CommonSpec) -> Dict[str, str]:
    if spec.pod_metadata is None:
        return {}
    return dict(spec.pod_metadata.annotations)


def log_level_args(spec: CommonSpec, defaults: BuilderDefaults) -> List[str]:
    """The log-level flag, or nothing when the level is empty or the default."""
    if spec.log_level and spec.log_level != defaults.default_log_level:
        return [f"--log.level={spec.log_level}"]
    return []


def objstore_config_arg(spec: ObjectStorageSpec) -> str:
    """Inline object storage configuration flag.

    Thanos accepts the YAML config document directly as the flag value.
    """
    return (
        f"--objstore.config=type: {spec.object_storage_type}\n"
        f"config:\n"
        f'  bucket: "{spec.bucket_name}"'
    )


def credentials_path(spec: ObjectStorageSpec, defaults: BuilderDefaults) -> str:
    return defaults.secrets_dir + spec.secret_name + defaults.credentials_extension


def credentials_env(spec: ObjectStorageSpec, defaults: BuilderDefaults) -> List[Dict[str, Any]]:
    return [
        {
            "name": defaults.credentials_env_var,
            "value": credentials_path(spec, defaults),
        }
    ]


def credentials_volume(spec: ObjectStorageSpec, defaults: BuilderDefaults) -> Dict[str, Any]:
    return {
        "name": defaults.credentials_volume_name,
        "secret": {"secretName": spec.secret_name},
    }


def credentials_mount(defaults: BuilderDefaults) -> Dict[str, Any]:
    return {
        "name": defaults.credentials_volume_name,
        "mountPath": defaults.secrets_dir,
    }


def secret_volumes(spec: CommonSpec) -> List[Dict[str, Any]]:
    """Volumes for the additional secrets listed in the spec."""
    return [
        {"name": f"secret-{name}", "secret": {"secretName": name}}
        for name in spec.secrets
    ]


def secret_mounts(spec: CommonSpec, defaults: BuilderDefaults) -> List[Dict[str, Any]]:
    return [
        {
            "name": f"secret-{name}",
            "mountPath": defaults.secrets_dir + name,
            "readOnly": True,
        }
        for name in spec.secrets
    ]


def container_ports(role: Role, defaults: BuilderDefaults) -> List[Dict[str, Any]]:
    """Container ports: HTTP and gRPC for every role, remote-write for ingestion."""
    ports = [
        {"containerPort": defaults.http_port, "name": "http"},
        {"containerPort": defaults.grpc_port, "name": "grpc"},
    ]
    if role is Role.INGESTION:
        ports.append({"containerPort": defaults.receive_port, "name": "receive"})
    return ports


def service_ports(role: Role, defaults: BuilderDefaults) -> List[Dict[str, Any]]:
    """Service ports; the ingestion endpoint lists remote-write first."""
    ports = [
        {"port": defaults.http_port, "name": "http"},
        {"port": defaults.grpc_port, "name": "grpc"},
    ]
    if role is Role.INGESTION:
        ports.insert(0, {"port": defaults.receive_port, "name": "receive"})
    return ports


def container_resources(resources: ResourceRequirements) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if resources.requests:
        data["requests"] = dict(resources.requests)
    if resources.limits:
        data["limits"] = dict(resources.limits)
    return data
