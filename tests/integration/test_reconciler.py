"""
Integration tests for the Reconciler.

These run full reconcile passes against the in-memory cluster client.

Tests cover:
- Missing parent ends quietly
- Child creation, owner references and conditions per role
- Idempotence: a second pass performs no child writes
- Drift correction after external edits and spec changes
- Ownership safety for children controlled by another parent
- Failure paths: apply, read-back, status persist, invalid spec
"""

import asyncio

import pytest

from controlplane.thanos_operator.cluster import ClusterError, InMemoryClusterClient
from controlplane.thanos_operator.config import BuilderDefaults
from controlplane.thanos_operator.errors import (
    ApplyError,
    InvalidSpecError,
    ReadBackError,
    ReconcileError,
    StatusUpdateError,
)
from controlplane.thanos_operator.reconcile import OperationResult, Reconciler
from controlplane.thanos_operator.resources import (
    DEPLOYMENT,
    QUERIER,
    RECEIVER,
    SERVICE,
    STATEFUL_SET,
    STORE,
    ObjectRef,
    Role,
)

NAMESPACE = "monitoring"


def parent_manifest(kind, name, spec, status=None):
    manifest = {
        "apiVersion": kind.api_version,
        "kind": kind.kind,
        "metadata": {"name": name, "namespace": NAMESPACE},
        "spec": spec,
    }
    if status is not None:
        manifest["status"] = status
    return manifest


def conditions_by_type(status):
    return {c["type"]: c for c in status["conditions"]}


def args_of(workload):
    return workload["spec"]["template"]["spec"]["containers"][0]["args"]


@pytest.fixture
async def client():
    """Connected in-memory cluster client."""
    client = InMemoryClusterClient()
    await client.connect()
    yield client
    await client.close()


@pytest.fixture
def defaults():
    return BuilderDefaults()


@pytest.fixture
def query(client, defaults):
    return Reconciler(Role.QUERY, client, defaults)


@pytest.fixture
def ingestion(client, defaults):
    return Reconciler(Role.INGESTION, client, defaults)


class TestMissingParent:
    """A parent that no longer exists."""

    @pytest.mark.asyncio
    async def test_not_found_is_quiet(self, client, query):
        """No error and no side effects."""
        result = await query.reconcile(ObjectRef(NAMESPACE, "gone"))

        assert result.found is False
        assert result.children == []
        assert client.mutation_count() == 0
        assert [c.operation for c in client.calls] == ["get"]

    @pytest.mark.asyncio
    async def test_fetch_error_raises(self, client, query):
        client.fail_on("get", kind=QUERIER)

        with pytest.raises(ReconcileError) as exc_info:
            await query.reconcile(ObjectRef(NAMESPACE, "thanos-query"))

        assert exc_info.value.kind == "Querier"
        assert client.mutation_count() == 0


class TestQueryReconcile:
    """Full passes for the query role."""

    @pytest.fixture
    def ref(self, client):
        client.put(
            QUERIER,
            parent_manifest(QUERIER, "thanos-query", {"replicaLabel": "replica", "logLevel": "debug"}),
        )
        return ObjectRef(NAMESPACE, "thanos-query")

    @pytest.mark.asyncio
    async def test_creates_children(self, client, query, ref):
        result = await query.reconcile(ref)

        assert [(c.kind, c.operation) for c in result.children] == [
            (SERVICE, OperationResult.CREATED),
            (DEPLOYMENT, OperationResult.CREATED),
        ]
        deployment = client.stored(DEPLOYMENT, ref)
        assert args_of(deployment) == ["query", "--query.replica-label=replica", "--log.level=debug"]
        assert deployment["metadata"]["labels"]["managed-by"] == "thanos-operator"

    @pytest.mark.asyncio
    async def test_children_owned_by_parent(self, client, query, ref):
        await query.reconcile(ref)

        parent_uid = client.stored(QUERIER, ref)["metadata"]["uid"]
        for kind in (SERVICE, DEPLOYMENT):
            owner_refs = client.stored(kind, ref)["metadata"]["ownerReferences"]
            assert owner_refs == [
                {
                    "apiVersion": "thanos.orangesys.io/v1beta1",
                    "kind": "Querier",
                    "name": "thanos-query",
                    "uid": parent_uid,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ]

    @pytest.mark.asyncio
    async def test_status_persisted(self, client, query, ref):
        await query.reconcile(ref)

        status = client.stored(QUERIER, ref)["status"]
        conditions = conditions_by_type(status)
        assert list(conditions) == ["SpecValid", "ServiceUpToDate", "DeploymentUpToDate"]
        assert conditions["ServiceUpToDate"]["status"] == "Healthy"
        assert conditions["ServiceUpToDate"]["reason"] == "EnsuredService"
        assert conditions["DeploymentUpToDate"]["reason"] == "EnsuredDeployment"
        assert "deploymentStatus" in status
        assert "statefulSetStatus" not in status
        assert client.status_update_count(QUERIER) == 1

    @pytest.mark.asyncio
    async def test_spec_untouched_by_status_write(self, client, query, ref):
        before = client.stored(QUERIER, ref)
        await query.reconcile(ref)
        after = client.stored(QUERIER, ref)
        assert after["spec"] == before["spec"]
        assert after["metadata"]["generation"] == before["metadata"]["generation"]

    @pytest.mark.asyncio
    async def test_second_pass_is_a_no_op(self, client, query, ref):
        """Applying the same spec twice produces no second child mutation."""
        await query.reconcile(ref)
        mutations = client.mutation_count()

        result = await query.reconcile(ref)

        assert client.mutation_count() == mutations
        assert all(c.operation == OperationResult.UNCHANGED for c in result.children)
        assert not result.mutated

    @pytest.mark.asyncio
    async def test_transition_time_stable_across_passes(self, client, query, ref):
        await query.reconcile(ref)
        first = conditions_by_type(client.stored(QUERIER, ref)["status"])

        await query.reconcile(ref)
        second = conditions_by_type(client.stored(QUERIER, ref)["status"])

        assert (
            first["DeploymentUpToDate"]["lastTransitionTime"]
            == second["DeploymentUpToDate"]["lastTransitionTime"]
        )

    @pytest.mark.asyncio
    async def test_external_edit_reverted(self, client, query, ref):
        await query.reconcile(ref)
        edited = client.stored(DEPLOYMENT, ref)
        edited["spec"]["replicas"] = 7
        client.put(DEPLOYMENT, edited)

        result = await query.reconcile(ref)

        assert result.children[1].operation == OperationResult.UPDATED
        assert client.stored(DEPLOYMENT, ref)["spec"]["replicas"] == 1

    @pytest.mark.asyncio
    async def test_spec_change_rolls_out(self, client, query, ref):
        await query.reconcile(ref)
        parent = client.stored(QUERIER, ref)
        parent["spec"]["logLevel"] = "info"
        client.put(QUERIER, parent)

        result = await query.reconcile(ref)

        assert result.children[0].operation == OperationResult.UNCHANGED
        assert result.children[1].operation == OperationResult.UPDATED
        assert args_of(client.stored(DEPLOYMENT, ref)) == ["query", "--query.replica-label=replica"]

    @pytest.mark.asyncio
    async def test_removed_spec_fields_are_dropped(self, client, query, ref):
        """Fields removed from the spec disappear from the Deployment."""
        parent = client.stored(QUERIER, ref)
        parent["spec"].update(
            {
                "nodeSelector": {"disk": "ssd"},
                "podMetadata": {"labels": {"team": "a"}, "annotations": {"scrape": "true"}},
                "resources": {"limits": {"memory": "512Mi"}},
            }
        )
        client.put(QUERIER, parent)
        await query.reconcile(ref)
        template = client.stored(DEPLOYMENT, ref)["spec"]["template"]
        assert template["spec"]["nodeSelector"] == {"disk": "ssd"}
        assert template["metadata"]["labels"]["team"] == "a"

        parent = client.stored(QUERIER, ref)
        for key in ("nodeSelector", "podMetadata", "resources"):
            del parent["spec"][key]
        client.put(QUERIER, parent)
        result = await query.reconcile(ref)

        assert result.children[1].operation == OperationResult.UPDATED
        deployment = client.stored(DEPLOYMENT, ref)
        template = deployment["spec"]["template"]
        assert "nodeSelector" not in template["spec"]
        assert template["metadata"]["labels"] == {"app": "querier", "thanos": "thanos-query"}
        assert "annotations" not in template["metadata"]
        assert deployment["spec"]["selector"]["matchLabels"] == {"app": "querier", "thanos": "thanos-query"}
        assert template["spec"]["containers"][0]["resources"] == {"requests": {"memory": "1Gi"}}

        mutations = client.mutation_count()
        await query.reconcile(ref)
        assert client.mutation_count() == mutations

    @pytest.mark.asyncio
    async def test_live_status_mirrored(self, client, query, ref):
        await query.reconcile(ref)
        client.set_status(
            DEPLOYMENT,
            ref,
            {"replicas": 3, "updatedReplicas": 3, "availableReplicas": 2, "unavailableReplicas": 1},
        )

        result = await query.reconcile(ref)

        assert result.status.updated_replicas == 3
        assert result.status.available_replicas == 2
        assert result.status.unavailable_replicas == 1
        status = client.stored(QUERIER, ref)["status"]
        assert status["deploymentStatus"]["replicas"] == 3
        assert status["availableReplicas"] == 2

    @pytest.mark.asyncio
    async def test_foreign_status_keys_preserved(self, client, query):
        client.put(
            QUERIER,
            parent_manifest(QUERIER, "annotated", {"replicaLabel": "r"}, status={"observedBy": "other"}),
        )
        ref = ObjectRef(NAMESPACE, "annotated")

        await query.reconcile(ref)

        status = client.stored(QUERIER, ref)["status"]
        assert status["observedBy"] == "other"
        assert "conditions" in status


class TestIngestionReconcile:
    """Full passes for the ingestion role."""

    @pytest.fixture
    def ref(self, client):
        client.put(
            RECEIVER,
            parent_manifest(
                RECEIVER,
                "thanos-receive",
                {"objstoreType": "GCS", "bucketName": "metrics", "secretName": "gcs-key"},
            ),
        )
        return ObjectRef(NAMESPACE, "thanos-receive")

    @pytest.mark.asyncio
    async def test_stateful_set_with_defaults(self, client, ingestion, ref):
        """Empty storage, retention and prefix fall back to defaults."""
        await ingestion.reconcile(ref)

        stateful_set = client.stored(STATEFUL_SET, ref)
        assert stateful_set["spec"]["volumeClaimTemplates"][0]["spec"]["resources"]["requests"] == {
            "storage": "2Gi"
        }
        assert "--tsdb.retention=24h" in args_of(stateful_set)
        assert "--tsdb.path=/thanos-receive" in args_of(stateful_set)
        assert client.stored(DEPLOYMENT, ref) is None

    @pytest.mark.asyncio
    async def test_status_mirrors_stateful_set(self, client, ingestion, ref):
        await ingestion.reconcile(ref)
        client.set_status(STATEFUL_SET, ref, {"readyReplicas": 1})

        await ingestion.reconcile(ref)

        status = client.stored(RECEIVER, ref)["status"]
        assert status["statefulSetStatus"] == {"readyReplicas": 1}
        assert "deploymentStatus" not in status
        assert conditions_by_type(status)["StatefulSetUpToDate"]["reason"] == "EnsuredStatefulSet"

    @pytest.mark.asyncio
    async def test_idempotent(self, client, ingestion, ref):
        await ingestion.reconcile(ref)
        mutations = client.mutation_count()
        await ingestion.reconcile(ref)
        assert client.mutation_count() == mutations


class TestOwnershipSafety:
    """Children controlled by another parent are never mutated."""

    @pytest.fixture
    def ref(self, client):
        client.put(QUERIER, parent_manifest(QUERIER, "thanos-query", {"replicaLabel": "replica"}))
        foreign_service = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": "thanos-query",
                "namespace": NAMESPACE,
                "ownerReferences": [
                    {"kind": "Querier", "name": "someone-else", "uid": "uid-x", "controller": True}
                ],
            },
            "spec": {"selector": {"app": "legacy"}},
        }
        client.put(SERVICE, foreign_service)
        return ObjectRef(NAMESPACE, "thanos-query")

    @pytest.mark.asyncio
    async def test_orphan_not_mutated(self, client, query, ref):
        before = client.stored(SERVICE, ref)

        result = await query.reconcile(ref)

        assert client.stored(SERVICE, ref) == before
        assert client.mutation_count(SERVICE) == 0
        assert result.children[0].orphaned
        assert result.children[0].operation is None
        assert result.orphans == [result.children[0]]

    @pytest.mark.asyncio
    async def test_orphan_condition_and_pass_continues(self, client, query, ref):
        result = await query.reconcile(ref)

        conditions = conditions_by_type(client.stored(QUERIER, ref)["status"])
        assert conditions["ServiceUpToDate"]["status"] == "Unhealthy"
        assert conditions["ServiceUpToDate"]["reason"] == "OrphanService"
        assert "someone-else" in conditions["ServiceUpToDate"]["message"]
        assert conditions["DeploymentUpToDate"]["status"] == "Healthy"
        assert result.children[1].operation == OperationResult.CREATED

    @pytest.mark.asyncio
    async def test_orphan_requeue_hint(self, client, defaults, ref):
        reconciler = Reconciler(Role.QUERY, client, defaults, orphan_requeue_seconds=30.0)
        result = await reconciler.reconcile(ref)
        assert result.requeue_after == 30.0

    @pytest.mark.asyncio
    async def test_no_requeue_without_orphans(self, client, query):
        client.put(QUERIER, parent_manifest(QUERIER, "clean", {}))
        result = await query.reconcile(ObjectRef(NAMESPACE, "clean"))
        assert result.requeue_after is None


class TestFailurePaths:
    """Hard errors are recorded on the parent and raised."""

    @pytest.fixture
    def ref(self, client):
        client.put(STORE, parent_manifest(STORE, "thanos-store", {"bucketName": "metrics"}))
        return ObjectRef(NAMESPACE, "thanos-store")

    @pytest.fixture
    def gateway(self, client, defaults):
        return Reconciler(Role.GATEWAY, client, defaults)

    @pytest.mark.asyncio
    async def test_apply_failure(self, client, gateway, ref):
        client.fail_on("create", kind=DEPLOYMENT)

        with pytest.raises(ApplyError) as exc_info:
            await gateway.reconcile(ref)

        assert exc_info.value.kind == "Deployment"
        assert exc_info.value.code == "APPLY_ERROR"
        conditions = conditions_by_type(client.stored(STORE, ref)["status"])
        assert conditions["ServiceUpToDate"]["reason"] == "EnsuredService"
        assert conditions["DeploymentUpToDate"]["status"] == "Unhealthy"
        assert conditions["DeploymentUpToDate"]["reason"] == "UpdateError"

    @pytest.mark.asyncio
    async def test_apply_failure_stops_the_pass(self, client, gateway, ref):
        client.fail_on("create", kind=SERVICE)

        with pytest.raises(ApplyError):
            await gateway.reconcile(ref)

        assert client.stored(DEPLOYMENT, ref) is None

    @pytest.mark.asyncio
    async def test_apply_failure_with_status_failure(self, client, gateway, ref):
        """The apply error wins when the best-effort persist also fails."""
        client.fail_on("create", kind=DEPLOYMENT)
        client.fail_on("update_status")

        with pytest.raises(ApplyError):
            await gateway.reconcile(ref)

    @pytest.mark.asyncio
    async def test_read_back_failure(self, client, gateway, ref):
        # The first Deployment read is the existence check; the second is read-back.
        client.fail_on("get", kind=DEPLOYMENT, after=1)

        with pytest.raises(ReadBackError) as exc_info:
            await gateway.reconcile(ref)

        assert exc_info.value.kind == "Deployment"
        conditions = conditions_by_type(client.stored(STORE, ref)["status"])
        assert conditions["DeploymentUpToDate"]["reason"] == "ReadBackError"
        assert client.stored(DEPLOYMENT, ref) is not None

    @pytest.mark.asyncio
    async def test_status_persist_failure(self, client, gateway, ref):
        client.fail_on("update_status", kind=STORE)

        with pytest.raises(StatusUpdateError):
            await gateway.reconcile(ref)

        assert client.stored(SERVICE, ref) is not None
        assert client.stored(DEPLOYMENT, ref) is not None

    @pytest.mark.asyncio
    async def test_child_read_failure(self, client, gateway, ref):
        client.fail_on("get", kind=SERVICE, error=ClusterError("apiserver unavailable"))

        with pytest.raises(ReconcileError):
            await gateway.reconcile(ref)

        assert client.mutation_count() == 0

    @pytest.mark.asyncio
    async def test_retry_after_failure_converges(self, client, gateway, ref):
        client.fail_on("create", kind=DEPLOYMENT, times=1)
        with pytest.raises(ApplyError):
            await gateway.reconcile(ref)

        result = await gateway.reconcile(ref)

        assert [c.operation for c in result.children] == [
            OperationResult.UNCHANGED,
            OperationResult.CREATED,
        ]
        conditions = conditions_by_type(client.stored(STORE, ref)["status"])
        assert conditions["DeploymentUpToDate"]["status"] == "Healthy"


class TestInvalidSpec:
    """Specs that fail validation."""

    @pytest.mark.asyncio
    async def test_invalid_spec_recorded_and_raised(self, client, query):
        client.put(QUERIER, parent_manifest(QUERIER, "broken", {"replicas": "three"}))
        ref = ObjectRef(NAMESPACE, "broken")

        with pytest.raises(InvalidSpecError):
            await query.reconcile(ref)

        conditions = conditions_by_type(client.stored(QUERIER, ref)["status"])
        assert conditions["SpecValid"]["status"] == "Unhealthy"
        assert conditions["SpecValid"]["reason"] == "InvalidSpec"
        assert client.mutation_count() == 0

    @pytest.mark.asyncio
    async def test_invalid_quantity_recorded_and_raised(self, client, query):
        """A memory limit that is not a quantity is reported on the parent."""
        client.put(
            QUERIER,
            parent_manifest(QUERIER, "greedy", {"resources": {"limits": {"memory": "lots"}}}),
        )
        ref = ObjectRef(NAMESPACE, "greedy")

        with pytest.raises(InvalidSpecError):
            await query.reconcile(ref)

        conditions = conditions_by_type(client.stored(QUERIER, ref)["status"])
        assert conditions["SpecValid"]["status"] == "Unhealthy"
        assert conditions["SpecValid"]["reason"] == "InvalidSpec"
        assert "lots" in conditions["SpecValid"]["message"]
        assert client.status_update_count(QUERIER) == 1
        assert client.mutation_count() == 0

    @pytest.mark.asyncio
    async def test_fixed_spec_recovers(self, client, query):
        client.put(QUERIER, parent_manifest(QUERIER, "broken", {"replicas": "three"}))
        ref = ObjectRef(NAMESPACE, "broken")
        with pytest.raises(InvalidSpecError):
            await query.reconcile(ref)

        parent = client.stored(QUERIER, ref)
        parent["spec"] = {"replicas": 3}
        client.put(QUERIER, parent)
        await query.reconcile(ref)

        conditions = conditions_by_type(client.stored(QUERIER, ref)["status"])
        assert conditions["SpecValid"]["status"] == "Healthy"
        assert client.stored(DEPLOYMENT, ref)["spec"]["replicas"] == 3


class TestConcurrentParents:
    """Different parents reconcile in parallel without interference."""

    @pytest.mark.asyncio
    async def test_parallel_passes(self, client, query):
        names = [f"query-{i}" for i in range(5)]
        for name in names:
            client.put(QUERIER, parent_manifest(QUERIER, name, {"replicaLabel": name}))

        results = await asyncio.gather(*(query.reconcile(ObjectRef(NAMESPACE, n)) for n in names))

        assert all(r.mutated for r in results)
        for name in names:
            deployment = client.stored(DEPLOYMENT, ObjectRef(NAMESPACE, name))
            assert f"--query.replica-label={name}" in args_of(deployment)
