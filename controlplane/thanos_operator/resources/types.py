"""
Typed parent resources: role specs, status and conditions.

Role specs are parsed from the custom resource's `spec` block into frozen
pydantic models. They are read-only input: defaulting produces new models
(see defaults.py) and never touches the caller's copy.

Status and conditions are plain dataclasses, mutated during a reconcile pass
and serialized back into the parent's status sub-resource.

Invariants:
    - Spec models are frozen; wire names are camelCase
    - Unknown spec fields are ignored so newer CRDs do not break parsing
    - ParentStatus.to_dict() only emits the workload status matching the role
    - Condition types are unique within ParentStatus.conditions

How to change safely:
    - New spec fields need a default so existing resources keep parsing
    - Keep aliases identical to the CRD's JSON field names
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..errors import InvalidSpecError
from .kinds import ObjectRef, Role
from .quantity import parse_quantity


class _SpecModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class ResourceRequirements(_SpecModel):
    """Container resource requests and limits (quantity strings)."""

    requests: Dict[str, str] = Field(default_factory=dict)
    limits: Dict[str, str] = Field(default_factory=dict)

    @field_validator("requests", "limits", mode="before")
    @classmethod
    def _quantities_as_strings(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: str(v) for k, v in value.items()}
        return value

    @field_validator("requests", "limits")
    @classmethod
    def _quantities_parse(cls, value: Dict[str, str]) -> Dict[str, str]:
        for quantity in value.values():
            try:
                parse_quantity(quantity)
            except InvalidSpecError as e:
                raise ValueError(e.message) from e
        return value


class PodMetadata(_SpecModel):
    """Labels and annotations propagated to generated pods."""

    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


class CommonSpec(_SpecModel):
    """Fields shared by every role.

    Attributes:
        image: Container image; the configured default is used when unset
        log_level: Thanos log level; "" and "info" add no flag
        resources: Container resource requests and limits
        pod_metadata: Extra pod labels and annotations
        node_selector: Node placement constraints
        secrets: Additional secrets mounted under the secrets directory
        replicas: Replica count; the configured default is used when unset
    """

    image: Optional[str] = None
    log_level: str = ""
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)
    pod_metadata: Optional[PodMetadata] = None
    node_selector: Dict[str, str] = Field(default_factory=dict)
    secrets: List[str] = Field(default_factory=list)
    replicas: Optional[int] = Field(default=None, ge=0)


class ObjectStorageSpec(_SpecModel):
    """Object storage backend selection and credentials."""

    object_storage_type: str = Field(default="", alias="objstoreType")
    bucket_name: str = ""
    secret_name: str = ""


class QuerierSpec(CommonSpec):
    """Desired state of the query-aggregation role."""

    replica_label: str = ""
    store_dns: str = Field(default="", alias="storeDNS")


class StoreSpec(CommonSpec, ObjectStorageSpec):
    """Desired state of the object-store gateway role."""

    data_dir: str = ""
    index_cache_size: str = ""
    chunk_pool_size: str = ""


class ReceiverSpec(CommonSpec, ObjectStorageSpec):
    """Desired state of the ingestion role."""

    storage: Optional[str] = None
    retention: str = ""
    receive_prefix: str = ""
    receive_labels: str = ""


RoleSpec = QuerierSpec | StoreSpec | ReceiverSpec

SPEC_MODELS: Dict[Role, Type[CommonSpec]] = {
    Role.QUERY: QuerierSpec,
    Role.GATEWAY: StoreSpec,
    Role.INGESTION: ReceiverSpec,
}


def parse_spec(role: Role, data: Dict[str, Any]) -> RoleSpec:
    """Parse a custom resource's spec block for a role.

    Args:
        role: Role of the parent resource
        data: The `spec` mapping from the manifest

    Returns:
        Frozen spec model for the role

    Raises:
        InvalidSpecError: If the spec does not validate
    """
    model = SPEC_MODELS[role]
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        errors = e.errors()
        field_name = ".".join(str(p) for p in errors[0]["loc"]) if errors else None
        raise InvalidSpecError(f"Invalid {role.parent_kind.kind} spec: {e}", field_name)


class ConditionStatus(Enum):
    """Health of a condition."""

    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"


class ConditionType:
    """Condition types written to the parent status."""

    SERVICE = "ServiceUpToDate"
    DEPLOYMENT = "DeploymentUpToDate"
    STATEFUL_SET = "StatefulSetUpToDate"
    SPEC = "SpecValid"

    @classmethod
    def for_kind(cls, kind: str) -> str:
        return f"{kind}UpToDate"


@dataclass
class Condition:
    """One typed health entry on the parent status.

    Attributes:
        type: Condition type, unique within a status
        status: Healthy or Unhealthy
        reason: Short CamelCase code
        message: Human readable detail
        last_transition_time: RFC 3339 time the status last changed
    """

    type: str
    status: ConditionStatus
    reason: str
    message: str = ""
    last_transition_time: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.status is ConditionStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the status wire format."""
        data = {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
        }
        if self.last_transition_time:
            data["lastTransitionTime"] = self.last_transition_time
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Condition:
        """Create from the status wire format."""
        return cls(
            type=data["type"],
            status=ConditionStatus(data.get("status", ConditionStatus.UNHEALTHY.value)),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=data.get("lastTransitionTime"),
        )


@dataclass
class ParentStatus:
    """Observed state written back to the parent resource.

    Child status blocks are mirrored verbatim from the live children.

    Attributes:
        service_status: Status of the generated Service
        deployment_status: Status of the Deployment (Query and Gateway)
        stateful_set_status: Status of the StatefulSet (Ingestion)
        updated_replicas: Replicas running the current pod template
        available_replicas: Replicas ready for at least minReadySeconds
        unavailable_replicas: Replicas not yet available
        conditions: Health conditions, unique by type
    """

    service_status: Dict[str, Any] = field(default_factory=dict)
    deployment_status: Optional[Dict[str, Any]] = None
    stateful_set_status: Optional[Dict[str, Any]] = None
    updated_replicas: int = 0
    available_replicas: int = 0
    unavailable_replicas: int = 0
    conditions: List[Condition] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the status wire format."""
        data: Dict[str, Any] = {"serviceStatus": self.service_status}
        if self.deployment_status is not None:
            data["deploymentStatus"] = self.deployment_status
            data["updatedReplicas"] = self.updated_replicas
            data["availableReplicas"] = self.available_replicas
            data["unavailableReplicas"] = self.unavailable_replicas
        if self.stateful_set_status is not None:
            data["statefulSetStatus"] = self.stateful_set_status
        data["conditions"] = [c.to_dict() for c in self.conditions]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> ParentStatus:
        """Create from the status wire format. Unknown keys are ignored."""
        data = data or {}
        return cls(
            service_status=copy.deepcopy(data.get("serviceStatus") or {}),
            deployment_status=copy.deepcopy(data.get("deploymentStatus")),
            stateful_set_status=copy.deepcopy(data.get("statefulSetStatus")),
            updated_replicas=data.get("updatedReplicas", 0),
            available_replicas=data.get("availableReplicas", 0),
            unavailable_replicas=data.get("unavailableReplicas", 0),
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
        )


@dataclass
class ParentResource:
    """A parent custom resource as seen by one reconcile pass.

    Attributes:
        role: Role derived from the resource kind
        ref: Namespaced name
        uid: Server-assigned UID, used in child owner references
        manifest: The manifest as fetched; never mutated
        spec: Parsed spec, None when it failed validation
        status: Status being built during the pass
    """

    role: Role
    ref: ObjectRef
    uid: str
    manifest: Dict[str, Any]
    spec: Optional[RoleSpec] = None
    status: ParentStatus = field(default_factory=ParentStatus)

    @property
    def name(self) -> str:
        return self.ref.name

    @property
    def namespace(self) -> str:
        return self.ref.namespace

    @property
    def resource_version(self) -> str:
        return (self.manifest.get("metadata") or {}).get("resourceVersion", "")

    @property
    def generation(self) -> int:
        return (self.manifest.get("metadata") or {}).get("generation", 0)

    @classmethod
    def from_manifest(cls, role: Role, manifest: Dict[str, Any]) -> ParentResource:
        """Build from a fetched manifest without parsing the spec.

        Raises:
            InvalidSpecError: If the manifest kind does not match the role
        """
        kind = manifest.get("kind")
        if kind and Role.for_kind(kind) is not role:
            raise InvalidSpecError(
                f"Manifest kind {kind!r} does not belong to role {role.value!r}",
                field_name="kind",
            )
        metadata = manifest.get("metadata") or {}
        return cls(
            role=role,
            ref=ObjectRef(namespace=metadata.get("namespace", ""), name=metadata["name"]),
            uid=metadata.get("uid", ""),
            manifest=manifest,
            status=ParentStatus.from_dict(manifest.get("status")),
        )

    def parse_spec(self) -> RoleSpec:
        """Parse and remember the spec block.

        Raises:
            InvalidSpecError: If the spec does not validate
        """
        self.spec = parse_spec(self.role, self.manifest.get("spec") or {})
        return self.spec

    def status_manifest(self) -> Dict[str, Any]:
        """Manifest carrying the current status, for a status-only update.

        Status keys this package does not own are preserved.
        """
        manifest = copy.deepcopy(self.manifest)
        status = dict(manifest.get("status") or {})
        status.update(self.status.to_dict())
        manifest["status"] = status
        return manifest
