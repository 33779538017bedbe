"""
Per-role reconciler.

A Reconciler drives one parent resource toward its desired children in a
single pass:

    fetch parent -> parse spec -> for each child kind:
        read existing -> ownership guard -> render -> create_or_update
    -> read back live child status -> persist parent status

Invariants:
    - A missing parent ends the pass quietly with no side effects
    - An ownership conflict never mutates the child; the pass continues
    - Hard errors are raised, never swallowed; retry and backoff belong to
      the scheduler
    - Status is written through the status sub-resource only
    - No state survives between passes; one Reconciler instance serves
      every parent of its role concurrently

How to change safely:
    - New child kinds go in Role.child_kinds and MANAGED_FIELDS together
    - Keep condition reasons stable; users alert on them
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from ..build.manifests import desired_children
from ..cluster.base import ClusterClient, ClusterError, NotFoundError, get_optional
from ..config import BuilderDefaults
from ..errors import (
    ApplyError,
    InvalidSpecError,
    ReadBackError,
    ReconcileError,
    StatusUpdateError,
)
from ..resources.kinds import DEPLOYMENT, SERVICE, STATEFUL_SET, ObjectRef, ResourceKind, Role
from ..resources.types import (
    Condition,
    ConditionStatus,
    ConditionType,
    ParentResource,
    ParentStatus,
)
from .conditions import set_condition
from .ownership import check_ownership, owner_reference_for
from .upsert import OperationResult, create_or_update

logger = logging.getLogger(__name__)

REASON_UPDATE_ERROR = "UpdateError"
REASON_READ_BACK_ERROR = "ReadBackError"
REASON_INVALID_SPEC = "InvalidSpec"


def ensured_reason(kind: ResourceKind) -> str:
    return f"Ensured{kind.kind}"


def orphan_reason(kind: ResourceKind) -> str:
    return f"Orphan{kind.kind}"


@dataclass
class ChildOutcome:
    """What happened to one child during a pass.

    Attributes:
        kind: Child kind
        ref: Child namespaced name
        operation: Upsert result; None when the child was skipped
        conflicting_owner: Controller reference that blocked mutation, if any
    """

    kind: ResourceKind
    ref: ObjectRef
    operation: Optional[OperationResult] = None
    conflicting_owner: Optional[Dict[str, Any]] = None

    @property
    def orphaned(self) -> bool:
        return self.conflicting_owner is not None


@dataclass
class ReconcileResult:
    """Result of one reconcile pass.

    Attributes:
        ref: Parent namespaced name
        found: False when the parent no longer exists
        requeue_after: Seconds until the pass should be repeated without a
            new event; None to wait for the next change
        children: Per-child outcomes in reconcile order
        status: Status as persisted
    """

    ref: ObjectRef
    found: bool = True
    requeue_after: Optional[float] = None
    children: List[ChildOutcome] = field(default_factory=list)
    status: Optional[ParentStatus] = None

    @property
    def mutated(self) -> bool:
        return any(
            c.operation in (OperationResult.CREATED, OperationResult.UPDATED)
            for c in self.children
        )

    @property
    def orphans(self) -> List[ChildOutcome]:
        return [c for c in self.children if c.orphaned]


class Reconciler:
    """Reconciles parents of one role.

    Attributes:
        role: Role handled by this instance
        client: Cluster client
        defaults: Builder defaults injected into every render
        orphan_requeue_seconds: Requeue delay while a child is held by another
            owner; None disables requeueing

    Example:
        >>> reconciler = Reconciler(Role.QUERY, client, BuilderDefaults())
        >>> result = await reconciler.reconcile(ObjectRef("monitoring", "thanos-querier"))
        >>> [c.operation for c in result.children]
        [<OperationResult.CREATED: 'created'>, <OperationResult.CREATED: 'created'>]
    """

    def __init__(
        self,
        role: Role,
        client: ClusterClient,
        defaults: BuilderDefaults,
        orphan_requeue_seconds: Optional[float] = None,
    ) -> None:
        self.role = role
        self.client = client
        self.defaults = defaults
        self.orphan_requeue_seconds = orphan_requeue_seconds

    @property
    def parent_kind(self) -> ResourceKind:
        return self.role.parent_kind

    async def reconcile(self, ref: ObjectRef) -> ReconcileResult:
        """Run one reconcile pass for a parent.

        Args:
            ref: Parent namespaced name

        Returns:
            ReconcileResult describing the pass

        Raises:
            InvalidSpecError: The spec cannot be parsed (not retryable)
            ApplyError: Creating or updating a child failed
            ReadBackError: Reading an applied child back failed
            StatusUpdateError: Persisting the parent status failed
            ReconcileError: Fetching the parent failed
        """
        parent = await self._fetch_parent(ref)
        if parent is None:
            return ReconcileResult(ref=ref, found=False)

        log_extra = {"kind": self.parent_kind.kind, "object": str(ref)}
        logger.debug("Reconcile pass started", extra=log_extra)

        try:
            parent.parse_spec()
            desired = desired_children(self.role, ref, parent.spec, self.defaults)
        except InvalidSpecError as e:
            self._set(parent, ConditionType.SPEC, ConditionStatus.UNHEALTHY, REASON_INVALID_SPEC, e.message)
            logger.warning("Invalid spec", extra={**log_extra, "error": e.message})
            await self._persist_best_effort(parent)
            raise

        self._set(parent, ConditionType.SPEC, ConditionStatus.HEALTHY, "SpecParsed")

        owner = owner_reference_for(parent)
        result = ReconcileResult(ref=ref)
        applied: List[ResourceKind] = []

        for kind in self.role.child_kinds:
            outcome = ChildOutcome(kind=kind, ref=ref)
            result.children.append(outcome)
            condition_type = ConditionType.for_kind(kind.kind)

            existing = await self._read_child(parent, kind)
            conflict = check_ownership(existing, self.parent_kind.kind, parent.name)
            if conflict is not None:
                outcome.conflicting_owner = conflict
                message = (
                    f"{kind.kind} {ref} is controlled by "
                    f"{conflict.get('kind')}/{conflict.get('name')}"
                )
                self._set(parent, condition_type, ConditionStatus.UNHEALTHY, orphan_reason(kind), message)
                logger.warning(
                    "Child owned by another resource",
                    extra={**log_extra, "child_kind": kind.kind, "owner": conflict.get("name")},
                )
                continue

            try:
                upsert = await create_or_update(self.client, kind, desired[kind], owner, existing)
            except ClusterError as e:
                self._set(parent, condition_type, ConditionStatus.UNHEALTHY, REASON_UPDATE_ERROR, e.message)
                logger.error(
                    "Child apply failed",
                    extra={**log_extra, "child_kind": kind.kind, "error": e.message},
                )
                await self._persist_best_effort(parent)
                raise ApplyError(
                    f"Failed to apply {kind.kind} {ref}: {e.message}",
                    kind=kind.kind,
                    namespace=ref.namespace,
                    name=ref.name,
                ) from e

            outcome.operation = upsert.operation
            applied.append(kind)
            self._set(parent, condition_type, ConditionStatus.HEALTHY, ensured_reason(kind))

        for kind in applied:
            try:
                live = await self.client.get(kind, ref)
            except ClusterError as e:
                self._set(
                    parent,
                    ConditionType.for_kind(kind.kind),
                    ConditionStatus.UNHEALTHY,
                    REASON_READ_BACK_ERROR,
                    e.message,
                )
                logger.error(
                    "Child read-back failed",
                    extra={**log_extra, "child_kind": kind.kind, "error": e.message},
                )
                await self._persist_best_effort(parent)
                raise ReadBackError(
                    f"Failed to read back {kind.kind} {ref}: {e.message}",
                    kind=kind.kind,
                    namespace=ref.namespace,
                    name=ref.name,
                ) from e
            mirror_child_status(parent.status, kind, live)

        await self._persist(parent)

        result.status = parent.status
        if result.orphans and self.orphan_requeue_seconds is not None:
            result.requeue_after = self.orphan_requeue_seconds

        logger.info(
            "Reconcile pass finished",
            extra={
                **log_extra,
                "operations": {
                    c.kind.kind: c.operation.value if c.operation else "skipped"
                    for c in result.children
                },
            },
        )
        return result

    async def _fetch_parent(self, ref: ObjectRef) -> Optional[ParentResource]:
        try:
            manifest = await self.client.get(self.parent_kind, ref)
        except NotFoundError:
            logger.debug("Parent not found", extra={"kind": self.parent_kind.kind, "object": str(ref)})
            return None
        except ClusterError as e:
            raise ReconcileError(
                f"Failed to fetch {self.parent_kind.kind} {ref}: {e.message}",
                kind=self.parent_kind.kind,
                namespace=ref.namespace,
                name=ref.name,
            ) from e
        return ParentResource.from_manifest(self.role, manifest)

    async def _read_child(self, parent: ParentResource, kind: ResourceKind) -> Optional[Dict[str, Any]]:
        try:
            return await get_optional(self.client, kind, parent.ref)
        except ClusterError as e:
            raise ReconcileError(
                f"Failed to read {kind.kind} {parent.ref}: {e.message}",
                kind=kind.kind,
                namespace=parent.namespace,
                name=parent.name,
            ) from e

    def _set(
        self,
        parent: ParentResource,
        condition_type: str,
        status: ConditionStatus,
        reason: str,
        message: str = "",
    ) -> None:
        set_condition(
            parent.status.conditions,
            Condition(type=condition_type, status=status, reason=reason, message=message),
        )

    async def _persist(self, parent: ParentResource) -> None:
        try:
            await self.client.update_status(self.parent_kind, parent.status_manifest())
        except ClusterError as e:
            raise StatusUpdateError(
                f"Failed to persist status of {self.parent_kind.kind} {parent.ref}: {e.message}",
                kind=self.parent_kind.kind,
                namespace=parent.namespace,
                name=parent.name,
            ) from e

    async def _persist_best_effort(self, parent: ParentResource) -> None:
        """Persist status on an error path; the original error takes precedence."""
        try:
            await self._persist(parent)
        except StatusUpdateError as e:
            logger.warning(
                "Status persist failed on error path",
                extra={"kind": self.parent_kind.kind, "object": str(parent.ref), "error": e.message},
            )


def mirror_child_status(status: ParentStatus, kind: ResourceKind, live: Dict[str, Any]) -> None:
    """Copy a live child's status block into the parent status."""
    child_status = dict(live.get("status") or {})
    if kind == SERVICE:
        status.service_status = child_status
    elif kind == DEPLOYMENT:
        status.deployment_status = child_status
        status.updated_replicas = child_status.get("updatedReplicas") or 0
        status.available_replicas = child_status.get("availableReplicas") or 0
        status.unavailable_replicas = child_status.get("unavailableReplicas") or 0
    elif kind == STATEFUL_SET:
        status.stateful_set_status = child_status
