"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment overrides
- Validation errors
"""

import pytest

from controlplane.thanos_operator.config import (
    BuilderDefaults,
    ClusterBackend,
    ClusterConfig,
    ObservabilityConfig,
    OperatorConfig,
    ReconcilerConfig,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CLUSTER_BACKEND",
        "KUBECONFIG",
        "IN_CLUSTER",
        "WATCH_NAMESPACES",
        "REQUEUE_DELAY_SECONDS",
        "LOG_LEVEL",
        "LOG_FORMAT",
        "THANOS_OPERATOR_SECRETS_DIR",
        "THANOS_OPERATOR_DEFAULT_IMAGE",
        "THANOS_OPERATOR_GROUP_LABEL_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


class TestBuilderDefaults:
    """Tests for BuilderDefaults."""

    def test_defaults(self):
        defaults = BuilderDefaults.from_env()
        assert defaults.secrets_dir == "/etc/thanos/secrets/"
        assert defaults.default_image == "quay.io/thanos/thanos:v0.5.0"
        assert defaults.memory_request_floor == "1Gi"
        assert defaults.grace_period_seconds == 10

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("THANOS_OPERATOR_DEFAULT_IMAGE", "quay.io/thanos/thanos:v0.34.0")
        assert BuilderDefaults.from_env().default_image == "quay.io/thanos/thanos:v0.34.0"

    def test_secrets_dir_needs_trailing_slash(self):
        with pytest.raises(ValueError, match="must end with"):
            BuilderDefaults(secrets_dir="/etc/thanos/secrets").validate()

    def test_empty_group_label_rejected(self):
        with pytest.raises(ValueError, match="GROUP_LABEL_KEY"):
            BuilderDefaults(group_label_key="").validate()


class TestClusterConfig:
    """Tests for ClusterConfig."""

    def test_defaults(self):
        config = ClusterConfig.from_env()
        assert config.backend == ClusterBackend.KUBERNETES
        assert config.in_cluster is False
        assert config.namespaces == ()

    def test_namespaces_parsed(self, monkeypatch):
        monkeypatch.setenv("WATCH_NAMESPACES", "monitoring, observability,,")
        assert ClusterConfig.from_env().namespaces == ("monitoring", "observability")

    def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("CLUSTER_BACKEND", "MEMORY")
        assert ClusterConfig.from_env().backend == ClusterBackend.MEMORY

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("CLUSTER_BACKEND", "etcd")
        with pytest.raises(ValueError, match="Invalid CLUSTER_BACKEND"):
            ClusterConfig.from_env()

    def test_in_cluster(self, monkeypatch):
        monkeypatch.setenv("IN_CLUSTER", "true")
        assert ClusterConfig.from_env().in_cluster is True


class TestOperatorConfig:
    """Tests for OperatorConfig."""

    def test_from_env(self):
        config = OperatorConfig.from_env()
        assert config.reconciler.requeue_delay_seconds == 10.0
        assert config.observability.log_format == "json"

    def test_invalid_log_format(self):
        config = OperatorConfig(observability=ObservabilityConfig(log_format="xml"))
        with pytest.raises(ValueError, match="LOG_FORMAT"):
            config.validate()

    def test_non_positive_requeue_delay(self):
        config = OperatorConfig(reconciler=ReconcilerConfig(requeue_delay_seconds=0))
        with pytest.raises(ValueError, match="REQUEUE_DELAY_SECONDS"):
            config.validate()

    def test_invalid_builder_defaults_propagate(self, monkeypatch):
        monkeypatch.setenv("THANOS_OPERATOR_SECRETS_DIR", "/no/slash")
        with pytest.raises(ValueError):
            OperatorConfig.from_env()
