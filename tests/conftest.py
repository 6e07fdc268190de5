"""
Shared fixtures: a fixed settings object, the packaged registry, an
in-memory store and small builders for ConfigMap/Secret bodies.
"""

import base64

import pytest

from kubestage.core.config import Settings
from kubestage.core.models import ConfigFragment, DesiredStateSpec, FragmentKind, InstanceRef
from kubestage.model.assembler import ModelAssembler
from kubestage.model.registry import build_default_registry
from kubestage.reconcile.reconciler import Reconciler
from kubestage.reconcile.status import ConditionStatusReporter
from kubestage.reconcile.store import InMemoryStore


def config_map(name, data, namespace="ns1"):
    return {"apiVersion": "v1", "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace}, "data": dict(data)}


def secret(name, data, namespace="ns1"):
    encoded = {k: base64.b64encode(v.encode("utf-8")).decode("ascii") for k, v in data.items()}
    return {"apiVersion": "v1", "kind": "Secret",
            "metadata": {"name": name, "namespace": namespace}, "data": encoded}


def plain(name, data):
    return ConfigFragment(name=name, kind=FragmentKind.PLAIN, data=dict(data))


def sensitive(name, data):
    return ConfigFragment(name=name, kind=FragmentKind.SENSITIVE, data=dict(data))


@pytest.fixture
def settings():
    return Settings(
        default_config_dir=None,
        backstage_image=None,
        postgresql_image=None,
        owns_runtime=True,
        is_openshift=False,
    )


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def instance():
    return InstanceRef(name="bs1", namespace="ns1")


@pytest.fixture
def default_spec():
    return DesiredStateSpec()


@pytest.fixture
def assembler(registry, settings):
    return ModelAssembler(registry, settings)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def reporter():
    return ConditionStatusReporter()


@pytest.fixture
def reconciler(store, registry, settings, reporter):
    return Reconciler(store, registry, settings, reporter)
