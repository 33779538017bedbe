"""
Resource kinds, roles and object references.

A Role is the explicit tag that decides which builder and child set apply to
a parent resource. It is derived from the parent's kind, never from its name.

Invariants:
    - Each Role maps to exactly one parent kind and one child set
    - ObjectRef identifies a namespaced object; children share it with parents
    - ResourceKind values are immutable and hashable
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..errors import InvalidSpecError

GROUP = "thanos.orangesys.io"
VERSION = "v1beta1"


@dataclass(frozen=True)
class ResourceKind:
    """Addressing information for one Kubernetes resource type.

    Attributes:
        group: API group ("" for the core group)
        version: API version within the group
        kind: Kind name as it appears in manifests
        plural: Plural resource name used in API paths
    """

    group: str
    version: str
    kind: str
    plural: str

    @property
    def api_version(self) -> str:
        """apiVersion string for manifests."""
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    def __str__(self) -> str:
        return self.kind


SERVICE = ResourceKind(group="", version="v1", kind="Service", plural="services")
DEPLOYMENT = ResourceKind(group="apps", version="v1", kind="Deployment", plural="deployments")
STATEFUL_SET = ResourceKind(group="apps", version="v1", kind="StatefulSet", plural="statefulsets")

QUERIER = ResourceKind(group=GROUP, version=VERSION, kind="Querier", plural="queriers")
STORE = ResourceKind(group=GROUP, version=VERSION, kind="Store", plural="stores")
RECEIVER = ResourceKind(group=GROUP, version=VERSION, kind="Receiver", plural="receivers")


class Role(Enum):
    """Topology roles. The value is the token used in labels and container names."""

    QUERY = "querier"
    GATEWAY = "store"
    INGESTION = "receiver"

    @property
    def parent_kind(self) -> ResourceKind:
        return _PARENT_KINDS[self]

    @property
    def workload_kind(self) -> ResourceKind:
        """Kind of the replica-set child (Deployment or StatefulSet)."""
        return STATEFUL_SET if self is Role.INGESTION else DEPLOYMENT

    @property
    def child_kinds(self) -> tuple[ResourceKind, ...]:
        """Children in the order they are reconciled."""
        return (SERVICE, self.workload_kind)

    @property
    def subcommand(self) -> str:
        return _SUBCOMMANDS[self]

    @classmethod
    def for_kind(cls, kind: str) -> Role:
        """Resolve a parent kind name to its role.

        Raises:
            InvalidSpecError: If the kind belongs to no role
        """
        for role, parent_kind in _PARENT_KINDS.items():
            if parent_kind.kind == kind:
                return role
        raise InvalidSpecError(f"Unknown parent kind: {kind!r}", field_name="kind")


_PARENT_KINDS = {
    Role.QUERY: QUERIER,
    Role.GATEWAY: STORE,
    Role.INGESTION: RECEIVER,
}

_SUBCOMMANDS = {
    Role.QUERY: "query",
    Role.GATEWAY: "store",
    Role.INGESTION: "receive",
}


@dataclass(frozen=True)
class ObjectRef:
    """Namespaced name of a cluster object.

    Attributes:
        namespace: Object namespace
        name: Object name
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"
