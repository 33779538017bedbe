"""
kopf registration for the per-role reconcilers.

For each role this binds:
- resume/create/update of the parent kind -> Reconciler.reconcile()
- any event on a Service/Deployment/StatefulSet carrying the managed-by
  label -> reconcile of the parent named by its controller owner reference

so that external edits to children are reverted on the next pass.

Error mapping:
    InvalidSpecError              -> kopf.PermanentError (not retried)
    ReconcileError and subclasses -> kopf.TemporaryError(delay=requeue delay)
    orphaned children             -> kopf.TemporaryError(delay=requeue_after)

Invariants:
    - Handlers return None so kopf never writes handler results into status
    - The handlers hold no state besides the reconcilers themselves
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
import logging

import kopf

from .config import OperatorConfig
from .errors import InvalidSpecError, ReconcileError
from .reconcile.ownership import controller_ref
from .reconcile.reconciler import Reconciler
from .resources.kinds import DEPLOYMENT, SERVICE, STATEFUL_SET, ObjectRef, Role

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None]]


async def run_reconcile(reconciler: Reconciler, ref: ObjectRef, requeue_delay: float) -> None:
    """Run one pass and translate the outcome into kopf's retry vocabulary.

    Raises:
        kopf.PermanentError: If the parent spec is invalid
        kopf.TemporaryError: If the pass failed or a child is orphaned
    """
    try:
        result = await reconciler.reconcile(ref)
    except InvalidSpecError as e:
        raise kopf.PermanentError(e.message) from e
    except ReconcileError as e:
        logger.warning(
            "Reconcile failed, will retry",
            extra={"object": str(ref), "code": e.code, "error": e.message, "delay": requeue_delay},
        )
        raise kopf.TemporaryError(e.message, delay=requeue_delay) from e

    if result.requeue_after is not None:
        kinds = ", ".join(c.kind.kind for c in result.orphans)
        raise kopf.TemporaryError(
            f"{kinds} held by another owner", delay=result.requeue_after
        )


def make_parent_handler(reconciler: Reconciler, requeue_delay: float) -> Handler:
    """Handler for events on the parent kind."""

    async def reconcile_parent(name: str, namespace: str, **_: Any) -> None:
        await run_reconcile(reconciler, ObjectRef(namespace=namespace, name=name), requeue_delay)

    return reconcile_parent


def parent_for_child(
    reconcilers: Mapping[Role, Reconciler], body: Mapping[str, Any]
) -> Optional[tuple[Reconciler, ObjectRef]]:
    """Resolve a child's controller owner to the reconciler and parent ref.

    Returns None when the child is not controlled by a parent kind we serve.
    """
    owner = controller_ref(dict(body))
    if owner is None:
        return None
    try:
        role = Role.for_kind(owner.get("kind", ""))
    except InvalidSpecError:
        return None
    reconciler = reconcilers.get(role)
    if reconciler is None:
        return None
    namespace = (body.get("metadata") or {}).get("namespace", "")
    return reconciler, ObjectRef(namespace=namespace, name=owner["name"])


def make_child_handler(reconcilers: Mapping[Role, Reconciler], requeue_delay: float) -> Handler:
    """Handler for events on owned children."""

    async def reconcile_owner(body: Mapping[str, Any], type: Optional[str] = None, **_: Any) -> None:
        target = parent_for_child(reconcilers, body)
        if target is None:
            return
        reconciler, ref = target
        logger.debug(
            "Child event",
            extra={"event": type, "kind": body.get("kind"), "parent": str(ref)},
        )
        await run_reconcile(reconciler, ref, requeue_delay)

    return reconcile_owner


def register_handlers(
    registry: kopf.OperatorRegistry,
    reconcilers: Dict[Role, Reconciler],
    config: OperatorConfig,
) -> None:
    """Register every handler on a kopf registry.

    Args:
        registry: Registry passed to kopf.operator()
        reconcilers: One reconciler per served role
        config: Operator configuration
    """
    requeue_delay = config.reconciler.requeue_delay_seconds
    managed = {config.builder.managed_by_label: config.builder.managed_by_value}

    @kopf.on.startup(registry=registry)
    def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
        # Keep kopf's bookkeeping out of .status, which this operator owns.
        settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()

    for role, reconciler in reconcilers.items():
        kind = role.parent_kind
        handler = make_parent_handler(reconciler, requeue_delay)
        selector = {"group": kind.group, "version": kind.version, "plural": kind.plural}
        kopf.on.resume(id=f"{role.value}-resume", registry=registry, **selector)(handler)
        kopf.on.create(id=f"{role.value}-create", registry=registry, **selector)(handler)
        kopf.on.update(id=f"{role.value}-update", registry=registry, **selector)(handler)

        logger.info(
            "Registered parent handlers",
            extra={"kind": kind.kind, "group": kind.group, "version": kind.version},
        )

    child_handler = make_child_handler(reconcilers, requeue_delay)
    for child in (SERVICE, DEPLOYMENT, STATEFUL_SET):
        kopf.on.event(
            group=child.group,
            version=child.version,
            plural=child.plural,
            labels=managed,
            id=f"watch-{child.plural}",
            registry=registry,
        )(child_handler)
