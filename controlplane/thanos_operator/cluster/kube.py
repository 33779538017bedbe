"""
Kubernetes cluster client built on kubernetes_asyncio.

Built-in kinds go through the typed CoreV1Api/AppsV1Api, custom kinds through
CustomObjectsApi. Typed responses are converted back to wire-form dicts with
the client's own serializer, so callers see the same shape for every kind.

Invariants:
    - One ApiClient per process, shared by all API groups
    - ApiException 404 -> NotFoundError, 409 -> ConflictError,
      anything else -> ClusterError
    - Status writes always go through the status sub-resource

How to change safely:
    - New child kinds need an entry in _TYPED_KINDS
    - Keep exception mapping identical to the in-memory backend's semantics
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple
import logging

from kubernetes_asyncio import client, config as kube_config
from kubernetes_asyncio.client import ApiException
from kubernetes_asyncio.client.api_client import ApiClient
from kubernetes_asyncio.config import ConfigException

from ..config import ClusterConfig
from ..resources.kinds import DEPLOYMENT, SERVICE, STATEFUL_SET, ObjectRef, ResourceKind
from .base import (
    ClusterConnectionError,
    ClusterError,
    ConflictError,
    NotFoundError,
    object_ref,
)

logger = logging.getLogger(__name__)

# kind -> (API attribute, method suffix)
_TYPED_KINDS: Dict[ResourceKind, Tuple[str, str]] = {
    SERVICE: ("core_v1", "service"),
    DEPLOYMENT: ("apps_v1", "deployment"),
    STATEFUL_SET: ("apps_v1", "stateful_set"),
}


class KubernetesClusterClient:
    """ClusterClient backed by a real API server.

    Example:
        >>> client = KubernetesClusterClient(ClusterConfig(in_cluster=True))
        >>> await client.connect()
        >>> await client.get(DEPLOYMENT, ObjectRef("monitoring", "thanos-store"))
    """

    def __init__(self, config: ClusterConfig) -> None:
        self.config = config
        self._api_client: Optional[ApiClient] = None
        self.core_v1: Optional[client.CoreV1Api] = None
        self.apps_v1: Optional[client.AppsV1Api] = None
        self.custom_objects: Optional[client.CustomObjectsApi] = None

    @property
    def is_connected(self) -> bool:
        return self._api_client is not None

    async def connect(self) -> None:
        """Load credentials and create the API clients.

        Raises:
            ClusterConnectionError: If no usable credentials are found
        """
        try:
            if self.config.in_cluster:
                kube_config.load_incluster_config()
            else:
                await kube_config.load_kube_config(config_file=self.config.kubeconfig)
        except ConfigException as e:
            raise ClusterConnectionError(f"Failed to load cluster credentials: {e}")

        self._api_client = ApiClient()
        self.core_v1 = client.CoreV1Api(self._api_client)
        self.apps_v1 = client.AppsV1Api(self._api_client)
        self.custom_objects = client.CustomObjectsApi(self._api_client)

        logger.info(
            "Connected to Kubernetes",
            extra={
                "in_cluster": self.config.in_cluster,
                "kubeconfig": self.config.kubeconfig,
            },
        )

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
        self._api_client = None
        self.core_v1 = None
        self.apps_v1 = None
        self.custom_objects = None
        logger.info("Kubernetes client closed")

    async def get(self, kind: ResourceKind, ref: ObjectRef) -> Dict[str, Any]:
        with self._errors(kind, ref):
            if kind in _TYPED_KINDS:
                method = self._typed(kind, "read_namespaced_{}")
                return self._to_dict(await method(name=ref.name, namespace=ref.namespace))
            return await self.custom_objects.get_namespaced_custom_object(
                kind.group, kind.version, ref.namespace, kind.plural, ref.name
            )

    async def create(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        ref = object_ref(obj)
        with self._errors(kind, ref):
            if kind in _TYPED_KINDS:
                method = self._typed(kind, "create_namespaced_{}")
                return self._to_dict(await method(namespace=ref.namespace, body=obj))
            return await self.custom_objects.create_namespaced_custom_object(
                kind.group, kind.version, ref.namespace, kind.plural, obj
            )

    async def update(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        ref = object_ref(obj)
        with self._errors(kind, ref):
            if kind in _TYPED_KINDS:
                method = self._typed(kind, "replace_namespaced_{}")
                return self._to_dict(
                    await method(name=ref.name, namespace=ref.namespace, body=obj)
                )
            return await self.custom_objects.replace_namespaced_custom_object(
                kind.group, kind.version, ref.namespace, kind.plural, ref.name, obj
            )

    async def update_status(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        ref = object_ref(obj)
        with self._errors(kind, ref):
            if kind in _TYPED_KINDS:
                method = self._typed(kind, "replace_namespaced_{}_status")
                return self._to_dict(
                    await method(name=ref.name, namespace=ref.namespace, body=obj)
                )
            return await self.custom_objects.replace_namespaced_custom_object_status(
                kind.group, kind.version, ref.namespace, kind.plural, ref.name, obj
            )

    def _typed(self, kind: ResourceKind, template: str):
        if self._api_client is None:
            raise ClusterConnectionError("Not connected")
        api_attr, suffix = _TYPED_KINDS[kind]
        return getattr(getattr(self, api_attr), template.format(suffix))

    def _to_dict(self, model: Any) -> Dict[str, Any]:
        return self._api_client.sanitize_for_serialization(model)

    def _errors(self, kind: ResourceKind, ref: ObjectRef) -> "_ApiErrorMapper":
        if self._api_client is None:
            raise ClusterConnectionError("Not connected")
        return _ApiErrorMapper(kind, ref)


class _ApiErrorMapper:
    """Context manager translating ApiException into ClusterError subclasses."""

    def __init__(self, kind: ResourceKind, ref: ObjectRef) -> None:
        self.kind = kind
        self.ref = ref

    def __enter__(self) -> None:
        return None

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None or not isinstance(exc, ApiException):
            return False

        if exc.status == 404:
            raise NotFoundError(self.kind.kind, self.ref) from exc
        if exc.status == 409:
            raise ConflictError(
                f"{self.kind.kind} {self.ref}: {exc.reason}", self.kind.kind, self.ref
            ) from exc

        logger.warning(
            "Kubernetes API call failed",
            extra={
                "kind": self.kind.kind,
                "object": str(self.ref),
                "status": exc.status,
                "reason": exc.reason,
            },
        )
        raise ClusterError(
            f"{self.kind.kind} {self.ref}: API error {exc.status} {exc.reason}",
            kind=self.kind.kind,
            ref=self.ref,
        ) from exc
