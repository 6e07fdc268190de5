#!/usr/bin/env python3
"""
KUBESTAGE TEST SUITE - Reconciliation Executor
----------------------------------------------
Apply/cleanup behavior against the in-memory store: idempotence,
write-once secrets, annotation preservation, fail-fast and cancellation.

Author: KubeStage Team
Date: 2026-10-17
"""

import pytest

from kubestage.core.errors import ReconcileCancelled, StoreConflict, StoreFailure
from kubestage.core.models import DesiredStateSpec, FragmentSet, PlatformCapabilities
from kubestage.model.naming import APPLIED_HASH_ANNOTATION
from kubestage.reconcile.cancel import CancelToken
from kubestage.reconcile.executor import ReconciliationExecutor, applied_hash, contained


@pytest.fixture
def executor(store):
    return ReconciliationExecutor(store)


def deployment_in(store):
    return store.find("Deployment", "bs1-deployment")


def test_first_apply_creates_everything(executor, store, assembler, instance, default_spec):
    model = assembler.assemble(instance, default_spec, FragmentSet())
    report = executor.apply(model)

    assert len(report.created) == 7
    assert report.patched == report.unchanged == []
    assert [m[0] for m in store.mutations] == ["create"] * 7
    assert APPLIED_HASH_ANNOTATION in deployment_in(store)["metadata"]["annotations"]


def test_second_apply_is_a_no_op(executor, store, assembler, instance, default_spec):
    """
    IDEMPOTENCY TEST: re-applying a freshly assembled model for the same
    spec performs no writes at all.
    """
    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    store.reset_history()

    report = executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))

    assert store.mutations == []
    assert len(report.unchanged) == 7
    assert not report.changed


def test_secret_is_write_once(executor, store, assembler, instance, default_spec):
    """
    WRITE-ONCE TEST: the generated password from the first cycle survives
    every later cycle even though each assembly generates a new one.
    """
    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    first = store.find("Secret", "bs1-default-dbsecret")["stringData"]["POSTGRES_PASSWORD"]

    model = assembler.assemble(instance, default_spec, FragmentSet())
    assert model.db_secret.body["stringData"]["POSTGRES_PASSWORD"] != first
    executor.apply(model)

    assert store.find("Secret", "bs1-default-dbsecret")["stringData"]["POSTGRES_PASSWORD"] == first
    assert ("patch", "Secret", "bs1-default-dbsecret") not in store.mutations


def test_spec_change_patches_only_the_deployment(executor, store, assembler, instance, default_spec):
    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    store.reset_history()

    spec = DesiredStateSpec.from_dict({"application": {"replicas": 4}})
    report = executor.apply(assembler.assemble(instance, spec, FragmentSet()))

    assert store.mutations == [("patch", "Deployment", "bs1-deployment")]
    assert report.patched == [("Deployment", "bs1-deployment")]
    assert deployment_in(store)["spec"]["replicas"] == 4


def test_foreign_annotations_survive_patches(executor, store, assembler, instance, default_spec):
    """
    ANNOTATION TEST: annotations added by other controllers on the
    deployment and its pod template are kept across patches.
    """
    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    live = next(body for body in store.objects.values() if body["kind"] == "Deployment")
    live["metadata"]["annotations"]["deployment.kubernetes.io/revision"] = "1"
    live["spec"]["template"].setdefault("metadata", {})["annotations"] = {"kubectl.kubernetes.io/restartedAt": "now"}
    store.reset_history()

    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    assert store.mutations == []

    spec = DesiredStateSpec.from_dict({"application": {"replicas": 2}})
    executor.apply(assembler.assemble(instance, spec, FragmentSet()))
    patched = deployment_in(store)
    assert patched["metadata"]["annotations"]["deployment.kubernetes.io/revision"] == "1"
    assert patched["spec"]["template"]["metadata"]["annotations"] == {"kubectl.kubernetes.io/restartedAt": "now"}
    assert patched["spec"]["replicas"] == 2


def test_removed_fields_trigger_patch(executor, store, assembler, instance):
    """
    DRIFT TEST: dropping something from the desired state (here the
    credential envFrom) is a change even though the rest is a subset.
    """
    with_secret = DesiredStateSpec.from_dict({"database": {"enableLocalDb": False, "authSecretName": "ext"}})
    without = DesiredStateSpec.from_dict({"database": {"enableLocalDb": False}})

    executor.apply(assembler.assemble(instance, with_secret, FragmentSet()))
    store.reset_history()
    executor.apply(assembler.assemble(instance, without, FragmentSet()))

    assert store.mutations == [("patch", "Deployment", "bs1-deployment")]
    container = deployment_in(store)["spec"]["template"]["spec"]["containers"][0]
    assert "envFrom" not in container


def test_live_drift_is_reverted(executor, store, assembler, instance, default_spec):
    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    live = next(body for body in store.objects.values() if body["kind"] == "Deployment")
    live["spec"]["replicas"] = 9
    store.reset_history()

    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    assert store.mutations == [("patch", "Deployment", "bs1-deployment")]
    assert deployment_in(store)["spec"]["replicas"] == 1


def test_cleanup_removes_database_and_route(executor, store, assembler, registry, instance, default_spec):
    """
    CLEANUP TEST: objects the current model no longer contains are
    deleted; absent candidates are silently skipped.
    """
    openshift = PlatformCapabilities(is_openshift=True)
    executor.apply(assembler.assemble(instance, default_spec, FragmentSet(), platform=openshift))
    store.reset_history()

    spec = DesiredStateSpec.from_dict({
        "application": {"route": {"enabled": False}},
        "database": {"enableLocalDb": False},
    })
    model = assembler.assemble(instance, spec, FragmentSet(), platform=openshift)
    report = executor.apply(model)
    executor.cleanup(instance, registry, model, spec=spec, report=report, platform=openshift)

    assert report.deleted == [
        ("StatefulSet", "bs1-db-statefulset"),
        ("Service", "bs1-db-service"),
        ("Secret", "bs1-default-dbsecret"),
        ("Route", "bs1-route"),
    ]
    assert store.find("Route", "bs1-route") is None
    assert store.find("Deployment", "bs1-deployment") is not None


def test_cleanup_never_deletes_external_credential(executor, store, assembler, registry, instance):
    store.seed({"apiVersion": "v1", "kind": "Secret",
                "metadata": {"name": "bs1-db-secret", "namespace": "ns1"}, "data": {}})
    spec = DesiredStateSpec.from_dict({"database": {"authSecretName": "bs1-db-secret"}})

    model = assembler.assemble(instance, spec, FragmentSet())
    executor.apply(model)
    executor.cleanup(instance, registry, model, spec=spec)

    assert store.find("Secret", "bs1-db-secret") is not None
    assert ("delete", "Secret", "bs1-db-secret") not in store.calls


def test_cleanup_skips_kinds_the_platform_lacks(executor, store, assembler, registry, instance):
    """
    CLEANUP TEST: without Routes on the platform no Route lookups or
    deletes are issued; other stale objects are still removed.
    """
    spec = DesiredStateSpec.from_dict({"database": {"enableLocalDb": False}})
    model = assembler.assemble(instance, spec, FragmentSet())
    executor.apply(model)
    store.reset_history()

    executor.cleanup(instance, registry, model, spec=spec, platform=PlatformCapabilities(is_openshift=False))

    assert not [call for call in store.calls if call[1] == "Route"]
    assert ("delete", "StatefulSet", "bs1-db-statefulset") in store.calls


def test_store_failure_aborts_the_cycle(executor, store, assembler, instance, default_spec):
    """
    FAIL-FAST TEST: the first hard store error stops the cycle; objects
    applied before it stay applied.
    """
    store.fail_on[("create", "Service")] = StoreFailure("boom", "Service", "bs1-service")

    with pytest.raises(StoreFailure):
        executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    assert store.mutations == [("create", "Deployment", "bs1-deployment")]


def test_conflict_on_patch_is_fatal(executor, store, assembler, instance, default_spec):
    executor.apply(assembler.assemble(instance, default_spec, FragmentSet()))
    store.fail_on[("patch", "Deployment")] = StoreConflict("stale", "Deployment", "bs1-deployment")

    spec = DesiredStateSpec.from_dict({"application": {"replicas": 5}})
    with pytest.raises(StoreConflict):
        executor.apply(assembler.assemble(instance, spec, FragmentSet()))


def test_stale_resource_version_conflicts(store):
    store.seed({"apiVersion": "v1", "kind": "ConfigMap",
                "metadata": {"name": "cm", "namespace": "ns1", "resourceVersion": "7"}})
    with pytest.raises(StoreConflict):
        store.patch({"apiVersion": "v1", "kind": "ConfigMap",
                     "metadata": {"name": "cm", "namespace": "ns1", "resourceVersion": "6"}})


@pytest.mark.parametrize("how", ["deadline", "explicit"])
def test_cancelled_cycle_makes_no_store_calls(executor, store, assembler, instance, default_spec, how):
    if how == "deadline":
        token = CancelToken(timeout=0)
    else:
        token = CancelToken()
        token.cancel()
    with pytest.raises(ReconcileCancelled):
        executor.apply(assembler.assemble(instance, default_spec, FragmentSet()), token)
    assert store.calls == []


def test_cancel_token_remaining():
    token = CancelToken(timeout=60)
    assert 0 < token.remaining() <= 60
    assert CancelToken().remaining() is None
    assert not token.cancelled
    token.cancel()
    assert token.cancelled


@pytest.mark.parametrize("desired, live, expected", [
    ({"a": 1}, {"a": 1, "b": 2}, True),
    ({"a": {"b": [1, 2]}}, {"a": {"b": [1, 2], "c": 3}}, True),
    ({"a": [1, 2]}, {"a": [1, 2, 3]}, False),
    ({"a": [{"x": 1}]}, {"a": [{"x": 1, "y": 2}]}, True),
    ({"a": 1}, {"a": "1"}, False),
    ({"a": 1}, {}, False),
])
def test_contained(desired, live, expected):
    assert contained(desired, live) is expected


def test_applied_hash_ignores_store_metadata():
    body = {"kind": "ConfigMap", "metadata": {"name": "x"}, "data": {"k": "v"}}
    stamped = {"kind": "ConfigMap",
               "metadata": {"name": "x", "resourceVersion": "42",
                            "annotations": {APPLIED_HASH_ANNOTATION: "old"}},
               "data": {"k": "v"}}
    assert applied_hash(body) == applied_hash(stamped)
    assert applied_hash(body) != applied_hash({**body, "data": {"k": "w"}})
