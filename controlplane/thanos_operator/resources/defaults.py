"""
Spec defaulting.

apply_defaults() returns a new, fully populated spec. Builders only ever see
defaulted specs, so they never need to branch on missing values and never
mutate caller-owned data.

Invariants:
    - The input spec is never modified
    - Defaulting is idempotent: apply_defaults(apply_defaults(s)) == apply_defaults(s)
    - A declared memory request is never overridden
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from ..config import BuilderDefaults
from .kinds import Role
from .quantity import compare_quantities
from .types import ReceiverSpec, ResourceRequirements, RoleSpec, StoreSpec

MEMORY = "memory"


def default_memory_request(resources: ResourceRequirements, floor: str) -> ResourceRequirements:
    """Fill in the memory request when none is declared.

    The request becomes the memory limit when that limit is at or below the
    floor, and the floor otherwise.

    Args:
        resources: Declared requests and limits
        floor: Default memory request (e.g. "1Gi")

    Returns:
        Requirements with a memory request set
    """
    if MEMORY in resources.requests:
        return resources

    limit = resources.limits.get(MEMORY)
    if limit is not None and compare_quantities(limit, floor) <= 0:
        request = limit
    else:
        request = floor

    return resources.model_copy(update={"requests": {**resources.requests, MEMORY: request}})


def _gateway_defaults(spec: StoreSpec, defaults: BuilderDefaults) -> Dict[str, Any]:
    return {
        "index_cache_size": spec.index_cache_size or defaults.index_cache_size,
        "chunk_pool_size": spec.chunk_pool_size or defaults.chunk_pool_size,
        "data_dir": spec.data_dir or defaults.data_dir,
    }


def _ingestion_defaults(spec: ReceiverSpec, defaults: BuilderDefaults) -> Dict[str, Any]:
    return {
        "storage": spec.storage or defaults.receive_storage,
        "retention": spec.retention or defaults.retention,
        "receive_prefix": spec.receive_prefix or defaults.receive_dir,
    }


_ROLE_DEFAULTS: Dict[Role, Callable[[Any, BuilderDefaults], Dict[str, Any]]] = {
    Role.GATEWAY: _gateway_defaults,
    Role.INGESTION: _ingestion_defaults,
}


def apply_defaults(role: Role, spec: RoleSpec, defaults: BuilderDefaults) -> RoleSpec:
    """Return a copy of spec with every optional field populated.

    Args:
        role: Role the spec belongs to
        spec: Spec as parsed from the parent resource
        defaults: Builder defaults

    Returns:
        New spec model of the same type
    """
    update: Dict[str, Any] = {
        "image": spec.image or defaults.default_image,
        "replicas": spec.replicas if spec.replicas is not None else defaults.replicas,
        "resources": default_memory_request(spec.resources, defaults.memory_request_floor),
    }

    role_defaults = _ROLE_DEFAULTS.get(role)
    if role_defaults is not None:
        update.update(role_defaults(spec, defaults))

    return spec.model_copy(update=update)
