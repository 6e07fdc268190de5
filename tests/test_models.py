import pytest

from kubestage.core.errors import ConfigurationError, MissingReferenceError
from kubestage.core.exporter import KubeExporter
from kubestage.core.models import (
    DEFAULT_MOUNT_PATH, DesiredStateSpec, FragmentKind, FragmentSet, InstanceRef, ObjectKeyRef,
)

from conftest import plain, sensitive

CR_SPEC = {
    "application": {
        "image": "quay.io/example/backstage:1.2",
        "replicas": 2,
        "imagePullSecrets": ["pull-a", "pull-b"],
        "appConfig": {
            "mountPath": "/opt/app-root/src/config",
            "configMaps": [{"name": "app-cfg"}, {"name": "app-cfg-2", "key": "extra.yaml"}],
        },
        "extraFiles": {
            "configMaps": [{"name": "files-cm", "mountPath": "/etc/files"}],
            "secrets": [{"name": "files-secret", "key": "token"}],
        },
        "extraEnvs": {
            "configMaps": [{"name": "env-cm"}],
            "secrets": [{"name": "env-secret", "key": "API_KEY"}],
            "envs": [{"name": "LOG_LEVEL", "value": "debug"}],
        },
        "dynamicPluginsConfigMapName": "my-plugins",
        "route": {"enabled": False, "host": "portal.example.com"},
    },
    "database": {"enableLocalDb": False, "authSecretName": "db-creds"},
    "rawRuntimeConfig": {"backstageConfig": "raw-bundle"},
}


def test_spec_parsing_full_manifest():
    """
    PARSING TEST: every camelCase field of the custom resource lands in
    the typed spec.
    """
    spec = DesiredStateSpec.from_dict(CR_SPEC)
    app = spec.application

    assert app.image == "quay.io/example/backstage:1.2"
    assert app.replicas == 2
    assert app.image_pull_secrets == ["pull-a", "pull-b"]
    assert app.app_config.mount_path == "/opt/app-root/src/config"
    assert app.app_config.config_maps[1] == ObjectKeyRef(name="app-cfg-2", key="extra.yaml")
    assert app.extra_files.mount_path == DEFAULT_MOUNT_PATH
    assert app.extra_files.config_maps[0].mount_path == "/etc/files"
    assert app.extra_envs.envs[0].name == "LOG_LEVEL"
    assert app.dynamic_plugins_config_map_name == "my-plugins"
    assert spec.route_enabled is False
    assert app.route.host == "portal.example.com"
    assert spec.local_db_enabled is False
    assert spec.auth_secret_name == "db-creds"
    assert spec.raw_config == "raw-bundle"


def test_spec_defaults():
    """DEFAULTS TEST: an empty spec means local db, route on, no overrides."""
    spec = DesiredStateSpec.from_dict(None)
    assert spec.local_db_enabled is True
    assert spec.route_enabled is True
    assert spec.auth_secret_name is None
    assert spec.raw_config is None
    assert spec.application.replicas is None
    assert spec.referenced_fragments() == []


def test_referenced_fragments_are_unique_and_ordered():
    spec = DesiredStateSpec.from_dict({
        "application": {
            "appConfig": {"configMaps": [{"name": "shared"}]},
            "extraFiles": {"configMaps": [{"name": "shared"}], "secrets": [{"name": "shared"}]},
        },
        "rawRuntimeConfig": {"backstageConfig": "raw"},
    })
    assert spec.referenced_fragments() == [
        (FragmentKind.PLAIN, "raw"),
        (FragmentKind.PLAIN, "shared"),
        (FragmentKind.SENSITIVE, "shared"),
    ]


@pytest.mark.parametrize("bad_spec", [
    {"application": {"replicas": "many"}},
    {"application": {"appConfig": {"configMaps": [{"key": "no-name"}]}}},
    ["not", "a", "mapping"],
])
def test_spec_rejects_malformed_input(bad_spec):
    with pytest.raises(ConfigurationError):
        DesiredStateSpec.from_dict(bad_spec)


def test_fragment_set_lookup_and_errors():
    """
    REFERENCE TEST: misses are reported the way the API server words them.
    """
    fragments = FragmentSet([plain("cm", {"b": "2", "a": "1"}), sensitive("cm", {"x": "y"})])

    assert fragments.get(FragmentKind.PLAIN, "cm").sorted_keys() == ["a", "b"]
    assert fragments.get(FragmentKind.SENSITIVE, "cm").data == {"x": "y"}
    assert len(fragments) == 2

    with pytest.raises(MissingReferenceError, match='configmaps "other" not found'):
        fragments.get(FragmentKind.PLAIN, "other")
    with pytest.raises(MissingReferenceError, match='secrets "other" not found'):
        fragments.get(FragmentKind.SENSITIVE, "other")
    with pytest.raises(MissingReferenceError, match='key "c" not found in configmaps "cm"'):
        fragments.require_key(FragmentKind.PLAIN, "cm", "c")


def test_instance_from_manifest():
    ref = InstanceRef.from_manifest({
        "apiVersion": "janus-idp.io/v1alpha1", "kind": "Backstage",
        "metadata": {"name": "portal", "namespace": "team-a", "uid": "1234"},
    })
    assert (ref.name, ref.namespace, ref.uid) == ("portal", "team-a", "1234")

    assert InstanceRef.from_manifest({"metadata": {"name": "p"}}, namespace="x").namespace == "x"
    with pytest.raises(ConfigurationError):
        InstanceRef.from_manifest({"metadata": {}})


def test_exporter_orders_top_level_keys():
    """
    EXPORT TEST: output starts with apiVersion/kind/metadata regardless of
    the insertion order of the body.
    """
    body = {"spec": {"replicas": 1}, "metadata": {"name": "x"}, "kind": "Deployment",
            "apiVersion": "apps/v1"}
    text = KubeExporter().export(body)
    lines = text.splitlines()
    assert lines[0] == "apiVersion: apps/v1"
    assert lines[1] == "kind: Deployment"
    assert lines[2] == "metadata:"


def test_exporter_multi_document_load():
    exporter = KubeExporter()
    text = exporter.export([{"kind": "ConfigMap", "metadata": {"name": "a"}},
                            {"kind": "Secret", "metadata": {"name": "b"}}])
    assert "---" in text
    docs = exporter.load_all(text)
    assert [d["kind"] for d in docs] == ["ConfigMap", "Secret"]


def test_exporter_rejects_invalid_yaml():
    with pytest.raises(ConfigurationError):
        KubeExporter().load("key: [unclosed", source="broken.yaml")
