import pytest

from kubestage.core.errors import ConfigurationError
from kubestage.core.models import FragmentKind
from kubestage.model import overlay
from kubestage.model.naming import MAX_NAME_LENGTH, object_name, volume_name
from kubestage.model.objects import BackstageDeployment, ObjectFactory
from kubestage.model.registry import (
    TemplateRegistry, always, build_default_registry, default_dynamic_plugins, local_db, route,
)
from kubestage.model.runtime import TemplateFlags

from conftest import plain

EXPECTED_KEYS = [
    "deployment.yaml", "service.yaml", "db-statefulset.yaml", "db-service.yaml",
    "db-secret.yaml", "app-config.yaml", "dynamic-plugins.yaml", "route.yaml",
]


def test_default_registry_order_and_content(registry):
    """
    ORDER TEST: iteration follows registration order, and every template
    ships non-empty default content.
    """
    assert registry.keys() == EXPECTED_KEYS
    assert [t.key for t in registry] == EXPECTED_KEYS
    for template in registry:
        assert template.default_content.strip()

    visited = []
    registry.for_each(lambda t: visited.append(t.key))
    assert visited == EXPECTED_KEYS


def test_duplicate_registration_is_a_programming_error():
    registry = TemplateRegistry()
    registry.register("deployment.yaml", ObjectFactory(BackstageDeployment), always, "")
    with pytest.raises(ValueError):
        registry.register("deployment.yaml", ObjectFactory(BackstageDeployment), always, "")


def test_registry_from_custom_config_dir(tmp_path, registry):
    for template in registry:
        (tmp_path / template.key).write_text(template.default_content)
    custom = build_default_registry(tmp_path)
    assert custom.keys() == EXPECTED_KEYS

    (tmp_path / "route.yaml").unlink()
    with pytest.raises(ConfigurationError):
        build_default_registry(tmp_path)


@pytest.mark.parametrize("flags, expected", [
    (TemplateFlags(), {"local_db": True, "plugins": True, "route": False}),
    (TemplateFlags(is_openshift=True), {"local_db": True, "plugins": True, "route": True}),
    (TemplateFlags(is_openshift=True, route_enabled=False), {"local_db": True, "plugins": True, "route": False}),
    (TemplateFlags(local_db_enabled=False, custom_dynamic_plugins=True),
     {"local_db": False, "plugins": False, "route": False}),
])
def test_predicates(flags, expected):
    assert local_db(flags) is expected["local_db"]
    assert default_dynamic_plugins(flags) is expected["plugins"]
    assert route(flags) is expected["route"]
    assert always(flags) is True


def test_factory_produces_fresh_objects():
    factory = ObjectFactory(BackstageDeployment)
    first, second = factory.new_object(), factory.new_object()
    assert first is not second
    assert first.body is not second.body

    empty = factory.empty_object()
    assert empty.body == {"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {}}
    assert factory.candidate_names("Portal") == ["portal-deployment"]


def test_overlay_prefers_override_entry():
    """
    OVERLAY TEST: an entry named like the template key replaces the
    default completely; other keys fall back to the default.
    """
    override = plain("raw", {"service.yaml": "kind: Service\nspec: {}\n"})

    content, overridden = overlay.resolve("service.yaml", "default", override)
    assert (content, overridden) == ("kind: Service\nspec: {}\n", True)

    content, overridden = overlay.resolve("deployment.yaml", "default", override)
    assert (content, overridden) == ("default", False)

    assert overlay.resolve("service.yaml", "default", None) == ("default", False)


def test_overlay_load_fills_missing_identity():
    body = overlay.load("service.yaml", "spec:\n  type: ClusterIP\n", "Service", "v1")
    assert body["kind"] == "Service"
    assert body["apiVersion"] == "v1"
    assert body["spec"] == {"type": "ClusterIP"}


@pytest.mark.parametrize("content", [
    "- just\n- a list\n",
    "kind: ConfigMap\n",
    "apiVersion: apps/v1\nkind: Service\n",
    "spec: [unclosed\n",
    "",
])
def test_overlay_load_rejects_bad_templates(content):
    with pytest.raises(ConfigurationError):
        overlay.load("service.yaml", content, "Service", "v1")


def test_object_names_are_lower_case():
    assert object_name("MyPortal", "deployment") == "myportal-deployment"


def test_volume_names():
    """
    NAMING TEST: volume names stay valid DNS labels, and truncated names
    remain distinct.
    """
    assert volume_name(FragmentKind.PLAIN, "app-cfg") == "vol-cm-app-cfg"
    assert volume_name(FragmentKind.SENSITIVE, "app-cfg") == "vol-secret-app-cfg"
    assert volume_name(FragmentKind.PLAIN, "My_Config.v2").startswith("vol-cm-my-config-v2-")

    long_a = "a" * 80 + "-one"
    long_b = "a" * 80 + "-two"
    name_a, name_b = volume_name(FragmentKind.PLAIN, long_a), volume_name(FragmentKind.PLAIN, long_b)
    assert len(name_a) <= MAX_NAME_LENGTH
    assert name_a.startswith("vol-cm-aaa")
    assert name_a != name_b
    assert volume_name(FragmentKind.PLAIN, long_a) == name_a


def test_sanitized_volume_names_stay_distinct():
    """
    NAMING TEST: names that only differ in characters a volume name cannot
    carry map to different volumes.
    """
    dotted = volume_name(FragmentKind.PLAIN, "app.files")
    dashed = volume_name(FragmentKind.PLAIN, "app-files")
    assert dashed == "vol-cm-app-files"
    assert dotted != dashed
    assert dotted.startswith("vol-cm-app-files-")
