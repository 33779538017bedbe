"""
Configuration management for the Thanos operator.

All configuration is done via environment variables - no config files inside
the operator container. This module provides typed configuration classes with
validation.

Invariants:
    - All settings have sensible defaults for local development
    - Builder defaults are passed explicitly to builders, never read globally
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep generated manifests stable
    - Changing a builder default rolls every managed workload
    - Read every new setting in the matching from_env()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class ClusterBackend(Enum):
    """Supported cluster client backends."""

    KUBERNETES = "kubernetes"
    MEMORY = "memory"


def _env(name: str, default: str) -> str:
    return os.getenv(f"THANOS_OPERATOR_{name}", default)


@dataclass(frozen=True)
class BuilderDefaults:
    """Defaults applied by the desired-state builders.

    Attributes:
        group_label_key: Label key tying pods and services to their parent
        managed_by_label: Label key marking children created by the operator
        managed_by_value: Value for managed_by_label
        store_api_label: Pod label the query role uses to discover ingestion
            pods as store APIs
        secrets_dir: Directory where the credentials secret is mounted
        credentials_env_var: Variable the storage SDK reads the key file from
        credentials_extension: Extension of the key file inside the secret
        credentials_volume_name: Volume name for the credentials secret
        default_image: Image used when the spec names none
        default_log_level: Thanos' own default level; never passed as a flag
        memory_request_floor: Memory request used when none is declared
        receive_storage: Volume claim size for ingestion when unset
        receive_dir: TSDB path for ingestion when unset
        retention: TSDB retention for ingestion when unset
        storage_volume_name: Name of the ingestion volume claim template
        index_cache_size: Gateway index cache size when unset
        chunk_pool_size: Gateway chunk pool size when unset
        data_dir: Gateway local cache directory when unset
        http_port: HTTP port exposed by every role
        grpc_port: gRPC port exposed by every role
        receive_port: Remote-write port exposed by the ingestion role
        grace_period_seconds: Pod termination grace period
        replicas: Replica count when the spec declares none
    """

    group_label_key: str = "thanos"
    managed_by_label: str = "managed-by"
    managed_by_value: str = "thanos-operator"
    store_api_label: str = "thanos-store-api"
    secrets_dir: str = "/etc/thanos/secrets/"
    credentials_env_var: str = "GOOGLE_APPLICATION_CREDENTIALS"
    credentials_extension: str = ".json"
    credentials_volume_name: str = "google-cloud-key"
    default_image: str = "quay.io/thanos/thanos:v0.5.0"
    default_log_level: str = "info"
    memory_request_floor: str = "1Gi"
    receive_storage: str = "2Gi"
    receive_dir: str = "/thanos-receive"
    retention: str = "24h"
    storage_volume_name: str = "thanos-persistent-storage"
    index_cache_size: str = "250MB"
    chunk_pool_size: str = "2GB"
    data_dir: str = "/var/thanos/store"
    http_port: int = 10902
    grpc_port: int = 10901
    receive_port: int = 19291
    grace_period_seconds: int = 10
    replicas: int = 1

    @classmethod
    def from_env(cls) -> BuilderDefaults:
        """Load configuration from environment variables."""
        return cls(
            group_label_key=_env("GROUP_LABEL_KEY", "thanos"),
            managed_by_value=_env("MANAGED_BY", "thanos-operator"),
            secrets_dir=_env("SECRETS_DIR", "/etc/thanos/secrets/"),
            credentials_env_var=_env("CREDENTIALS_ENV_VAR", "GOOGLE_APPLICATION_CREDENTIALS"),
            default_image=_env("DEFAULT_IMAGE", "quay.io/thanos/thanos:v0.5.0"),
            memory_request_floor=_env("MEMORY_REQUEST_FLOOR", "1Gi"),
            receive_storage=_env("RECEIVE_STORAGE", "2Gi"),
            receive_dir=_env("RECEIVE_DIR", "/thanos-receive"),
            retention=_env("RETENTION", "24h"),
            index_cache_size=_env("INDEX_CACHE_SIZE", "250MB"),
            chunk_pool_size=_env("CHUNK_POOL_SIZE", "2GB"),
            data_dir=_env("DATA_DIR", "/var/thanos/store"),
            grace_period_seconds=int(_env("GRACE_PERIOD_SECONDS", "10")),
        )

    def validate(self) -> None:
        """Validate defaults.

        Raises:
            ValueError: If a default cannot produce valid manifests.
        """
        if not self.secrets_dir.endswith("/"):
            raise ValueError("THANOS_OPERATOR_SECRETS_DIR must end with '/'")
        if not self.group_label_key:
            raise ValueError("THANOS_OPERATOR_GROUP_LABEL_KEY must not be empty")
        if self.grace_period_seconds < 0:
            raise ValueError("THANOS_OPERATOR_GRACE_PERIOD_SECONDS must be >= 0")


@dataclass(frozen=True)
class ClusterConfig:
    """Cluster access configuration.

    Attributes:
        backend: Which cluster client backend to use
        kubeconfig: Path to a kubeconfig file (outside the cluster)
        in_cluster: Use the pod's service account instead of a kubeconfig
        namespaces: Namespaces to watch; empty means cluster-wide
    """

    backend: ClusterBackend = ClusterBackend.KUBERNETES
    kubeconfig: str | None = None
    in_cluster: bool = False
    namespaces: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> ClusterConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("CLUSTER_BACKEND", "kubernetes").lower()
        try:
            backend = ClusterBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid CLUSTER_BACKEND '{backend_str}'. Must be one of: kubernetes, memory"
            )

        namespaces = tuple(
            ns.strip() for ns in os.getenv("WATCH_NAMESPACES", "").split(",") if ns.strip()
        )
        return cls(
            backend=backend,
            kubeconfig=os.getenv("KUBECONFIG"),
            in_cluster=os.getenv("IN_CLUSTER", "false").lower() == "true",
            namespaces=namespaces,
        )


@dataclass(frozen=True)
class ReconcilerConfig:
    """Reconcile loop configuration.

    Attributes:
        requeue_delay_seconds: Delay the scheduler waits before retrying a
            failed pass
    """

    requeue_delay_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> ReconcilerConfig:
        """Load configuration from environment variables."""
        return cls(
            requeue_delay_seconds=float(os.getenv("REQUEUE_DELAY_SECONDS", "10")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class OperatorConfig:
    """Complete operator configuration.

    Attributes:
        builder: Defaults injected into the desired-state builders
        cluster: Cluster access configuration
        reconciler: Reconcile loop configuration
        observability: Logging configuration
    """

    builder: BuilderDefaults = field(default_factory=BuilderDefaults)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> OperatorConfig:
        """Load complete configuration from environment variables.

        Returns:
            OperatorConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            builder=BuilderDefaults.from_env(),
            cluster=ClusterConfig.from_env(),
            reconciler=ReconcilerConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        self.builder.validate()

        if self.reconciler.requeue_delay_seconds <= 0:
            raise ValueError("REQUEUE_DELAY_SECONDS must be positive")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be json or text"
            )

        if self.cluster.kubeconfig and self.cluster.in_cluster:
            logger.warning("Both KUBECONFIG and IN_CLUSTER set; using in-cluster credentials")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Operator configuration loaded",
            extra={
                "cluster_backend": self.cluster.backend.value,
                "in_cluster": self.cluster.in_cluster,
                "namespaces": list(self.cluster.namespaces) or "all",
                "default_image": self.builder.default_image,
                "secrets_dir": self.builder.secrets_dir,
                "requeue_delay_seconds": self.reconciler.requeue_delay_seconds,
                "log_level": self.observability.log_level,
            },
        )
