#!/usr/bin/env python3
"""
KUBESTAGE CORE MODELS
---------------------
Defines the user-facing desired state of a Backstage instance and the
configuration fragments it references. These are the inputs of the model
assembler; none of them is ever mutated by it.

Author: KubeStage Team
Date: 2026-10-17
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from kubestage.core.errors import ConfigurationError, MissingReferenceError

DEFAULT_MOUNT_PATH = "/opt/app-root/src"

CR_API_VERSION = "janus-idp.io/v1alpha1"
CR_KIND = "Backstage"


class FragmentKind(str, Enum):
    """Where a fragment comes from: a ConfigMap (plain) or a Secret (sensitive)."""
    PLAIN = "ConfigMap"
    SENSITIVE = "Secret"

    @property
    def resource(self) -> str:
        # Plural resource name, used in not-found messages
        return "configmaps" if self is FragmentKind.PLAIN else "secrets"


@dataclass(frozen=True)
class ConfigFragment:
    """
    An externally loaded named bundle of key -> content entries.
    Content is text for plain entries and may be raw bytes for sensitive ones.
    """
    name: str
    kind: FragmentKind
    data: Dict[str, Union[str, bytes]] = field(default_factory=dict)

    def sorted_keys(self) -> List[str]:
        return sorted(self.data)

    def has_key(self, key: str) -> bool:
        return key in self.data


class FragmentSet:
    """
    Read-only index of pre-loaded fragments keyed by (kind, name).
    """

    def __init__(self, fragments: Iterable[ConfigFragment] = ()):
        self._items: Dict[Tuple[FragmentKind, str], ConfigFragment] = {}
        for fragment in fragments:
            self._items[(fragment.kind, fragment.name)] = fragment

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items.values())

    def get(self, kind: FragmentKind, name: str) -> ConfigFragment:
        fragment = self._items.get((kind, name))
        if fragment is None:
            raise MissingReferenceError(f'{kind.resource} "{name}" not found')
        return fragment

    def require_key(self, kind: FragmentKind, name: str, key: str) -> ConfigFragment:
        fragment = self.get(kind, name)
        if not fragment.has_key(key):
            raise MissingReferenceError(
                f'key "{key}" not found in {kind.resource} "{name}"'
            )
        return fragment


@dataclass(frozen=True)
class ObjectKeyRef:
    """Reference to a fragment, optionally narrowed to one key and one mount path."""
    name: str
    key: Optional[str] = None
    mount_path: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ObjectKeyRef":
        if not raw.get("name"):
            raise ConfigurationError("Reference without 'name' in Backstage resource.")
        return cls(name=raw["name"], key=raw.get("key") or None,
                   mount_path=raw.get("mountPath") or None)


@dataclass(frozen=True)
class EnvVar:
    name: str
    value: str = ""


@dataclass
class AppConfig:
    mount_path: str = DEFAULT_MOUNT_PATH
    config_maps: List[ObjectKeyRef] = field(default_factory=list)


@dataclass
class ExtraFiles:
    mount_path: str = DEFAULT_MOUNT_PATH
    config_maps: List[ObjectKeyRef] = field(default_factory=list)
    secrets: List[ObjectKeyRef] = field(default_factory=list)


@dataclass
class ExtraEnvs:
    config_maps: List[ObjectKeyRef] = field(default_factory=list)
    secrets: List[ObjectKeyRef] = field(default_factory=list)
    envs: List[EnvVar] = field(default_factory=list)


@dataclass
class RouteSettings:
    enabled: bool = True
    host: Optional[str] = None
    subdomain: Optional[str] = None


@dataclass
class Application:
    """Workload and configuration-injection settings."""
    image: Optional[str] = None
    replicas: Optional[int] = None
    image_pull_secrets: List[str] = field(default_factory=list)
    app_config: AppConfig = field(default_factory=AppConfig)
    extra_files: ExtraFiles = field(default_factory=ExtraFiles)
    extra_envs: ExtraEnvs = field(default_factory=ExtraEnvs)
    dynamic_plugins_config_map_name: Optional[str] = None
    route: RouteSettings = field(default_factory=RouteSettings)


@dataclass
class Database:
    enable_local_db: bool = True
    auth_secret_name: Optional[str] = None


@dataclass
class DesiredStateSpec:
    """
    The declarative description of one Backstage deployment.
    Every field is optional; the defaults describe a stock instance with a
    local PostgreSQL database.
    """
    application: Application = field(default_factory=Application)
    database: Database = field(default_factory=Database)
    raw_config: Optional[str] = None

    @property
    def local_db_enabled(self) -> bool:
        return self.database.enable_local_db

    @property
    def auth_secret_name(self) -> Optional[str]:
        return self.database.auth_secret_name or None

    @property
    def route_enabled(self) -> bool:
        return self.application.route.enabled

    def referenced_fragments(self) -> List[Tuple[FragmentKind, str]]:
        """
        Lists every fragment this state points at, in declaration order and
        without duplicates. Used to pre-load them before assembly.
        """
        app = self.application
        refs: List[Tuple[FragmentKind, str]] = []
        if self.raw_config:
            refs.append((FragmentKind.PLAIN, self.raw_config))
        refs += [(FragmentKind.PLAIN, r.name) for r in app.app_config.config_maps]
        refs += [(FragmentKind.PLAIN, r.name) for r in app.extra_files.config_maps]
        refs += [(FragmentKind.SENSITIVE, r.name) for r in app.extra_files.secrets]
        refs += [(FragmentKind.PLAIN, r.name) for r in app.extra_envs.config_maps]
        refs += [(FragmentKind.SENSITIVE, r.name) for r in app.extra_envs.secrets]
        if app.dynamic_plugins_config_map_name:
            refs.append((FragmentKind.PLAIN, app.dynamic_plugins_config_map_name))

        unique = []
        for ref in refs:
            if ref not in unique:
                unique.append(ref)
        return unique

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "DesiredStateSpec":
        """
        Builds a spec from the camelCase `spec` block of a Backstage custom
        resource. Unknown keys are ignored.
        """
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ConfigurationError("Backstage 'spec' must be a mapping.")

        app_raw = raw.get("application") or {}
        db_raw = raw.get("database") or {}

        def refs(block: Dict[str, Any], key: str) -> List[ObjectKeyRef]:
            return [ObjectKeyRef.from_dict(r) for r in (block.get(key) or [])]

        app_cfg_raw = app_raw.get("appConfig") or {}
        files_raw = app_raw.get("extraFiles") or {}
        envs_raw = app_raw.get("extraEnvs") or {}
        route_raw = app_raw.get("route") or {}

        replicas = app_raw.get("replicas")
        try:
            replicas = int(replicas) if replicas is not None else None
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid replica count: {replicas!r}")

        application = Application(
            image=app_raw.get("image") or None,
            replicas=replicas,
            image_pull_secrets=list(app_raw.get("imagePullSecrets") or []),
            app_config=AppConfig(
                mount_path=app_cfg_raw.get("mountPath") or DEFAULT_MOUNT_PATH,
                config_maps=refs(app_cfg_raw, "configMaps"),
            ),
            extra_files=ExtraFiles(
                mount_path=files_raw.get("mountPath") or DEFAULT_MOUNT_PATH,
                config_maps=refs(files_raw, "configMaps"),
                secrets=refs(files_raw, "secrets"),
            ),
            extra_envs=ExtraEnvs(
                config_maps=refs(envs_raw, "configMaps"),
                secrets=refs(envs_raw, "secrets"),
                envs=[EnvVar(name=e["name"], value=str(e.get("value", "")))
                      for e in (envs_raw.get("envs") or [])],
            ),
            dynamic_plugins_config_map_name=app_raw.get("dynamicPluginsConfigMapName") or None,
            route=RouteSettings(
                enabled=bool(route_raw.get("enabled", True)),
                host=route_raw.get("host") or None,
                subdomain=route_raw.get("subdomain") or None,
            ),
        )
        database = Database(
            enable_local_db=bool(db_raw.get("enableLocalDb", True)),
            auth_secret_name=db_raw.get("authSecretName") or None,
        )
        raw_cfg = raw.get("rawRuntimeConfig") or {}
        return cls(application=application, database=database,
                   raw_config=raw_cfg.get("backstageConfig") or None)


@dataclass(frozen=True)
class InstanceRef:
    """Identity of the managed custom resource, taken from the invocation context."""
    name: str
    namespace: str
    uid: Optional[str] = None
    api_version: str = CR_API_VERSION
    kind: str = CR_KIND

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any],
                      namespace: Optional[str] = None) -> "InstanceRef":
        meta = manifest.get("metadata") or {}
        name = meta.get("name")
        if not name:
            raise ConfigurationError("Backstage manifest has no metadata.name.")
        return cls(
            name=name,
            namespace=namespace or meta.get("namespace") or "default",
            uid=meta.get("uid"),
            api_version=manifest.get("apiVersion", CR_API_VERSION),
            kind=manifest.get("kind", CR_KIND),
        )


@dataclass(frozen=True)
class PlatformCapabilities:
    """Feature flags describing the target cluster."""
    is_openshift: bool = False
