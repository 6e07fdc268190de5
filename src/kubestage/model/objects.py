#!/usr/bin/env python3
"""
KUBESTAGE OBJECT KINDS
----------------------
The closed set of managed object kinds and their factories. Each kind
knows how it joins the model (handle, name, labels), which references it
resolves in the wiring pass, and what it checks or finalizes last.

Author: KubeStage Team
Date: 2026-10-17
"""

import logging
import secrets
from typing import Any, Dict, List, Optional, Type

from kubestage.core.errors import ValidationError
from kubestage.core.models import FragmentKind
from kubestage.model.naming import APP_LABEL, app_label_value, db_label_value, object_name
from kubestage.model.pod import (
    add_config_args, add_mount, add_volume, all_containers, check_mount_paths,
    ensure_path, ensure_secret_env_from, find_container, fragment_volume,
)
from kubestage.model.runtime import AssemblyContext, Model, PodContributor, RuntimeObject, Stage

logger = logging.getLogger("kubestage.objects")

MAIN_CONTAINER = "backstage-backend"
PLUGINS_INIT_CONTAINER = "install-dynamic-plugins"
DB_CONTAINER = "postgresql"

DYNAMIC_PLUGINS_KEY = "dynamic-plugins.yaml"
DYNAMIC_PLUGINS_PATH = "/opt/app-root/src/dynamic-plugins.yaml"

# Length of the generated database password
PASSWORD_LENGTH = 24


def _pod_spec(body: Dict[str, Any]) -> Dict[str, Any]:
    return ensure_path(body, "spec", "template", "spec")


def _set_selector(body: Dict[str, Any], value: str) -> None:
    """Pins the workload selector and the pod template label to one value."""
    ensure_path(body, "spec", "selector", "matchLabels")[APP_LABEL] = value
    ensure_path(body, "spec", "template", "metadata", "labels")[APP_LABEL] = value


class BackstageDeployment(RuntimeObject):
    """The primary workload running the Backstage backend."""
    kind = "Deployment"
    api_version = "apps/v1"
    suffix = "deployment"

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        model.deployment = self
        self.set_meta(ctx.instance)
        _set_selector(self.body, app_label_value(ctx.instance.name))
        return True

    @property
    def pod_spec(self) -> Dict[str, Any]:
        return _pod_spec(self.body)

    def main_container(self) -> Dict[str, Any]:
        """The backend container, or the first container if none is named so."""
        containers = self.pod_spec.get("containers") or []
        container = find_container(containers, MAIN_CONTAINER)
        if container is None:
            if not containers:
                raise ValidationError(f"{self.kind} template has no containers.")
            container = containers[0]
        return container

    def init_container(self, name: str) -> Optional[Dict[str, Any]]:
        return find_container(self.pod_spec.get("initContainers"), name)

    def wire(self, model: Model, ctx: AssemblyContext) -> None:
        credential = model.db_secret.name if model.db_secret else ctx.spec.auth_secret_name
        if credential:
            ensure_secret_env_from(self.main_container(), credential)
        elif not ctx.spec.local_db_enabled:
            message = "Local database disabled and no authSecretName given; backend has no database credentials."
            logger.warning(f"{ctx.instance.name}: {message}")
            ctx.warnings.append(message)

    def validate(self, model: Model, ctx: AssemblyContext) -> None:
        check_mount_paths(self.name, self.pod_spec)


class BackstageService(RuntimeObject):
    """Network endpoint in front of the backend pods."""
    kind = "Service"
    api_version = "v1"
    suffix = "service"

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        model.service = self
        self.set_meta(ctx.instance)
        ensure_path(self.body, "spec", "selector")[APP_LABEL] = app_label_value(ctx.instance.name)
        return True

    def first_port(self) -> Dict[str, Any]:
        ports = ensure_path(self.body, "spec").get("ports") or []
        if not ports:
            raise ValidationError(f"{self.kind} '{self.name}' exposes no ports.")
        return ports[0]


class DbStatefulSet(RuntimeObject):
    """Local PostgreSQL instance."""
    kind = "StatefulSet"
    api_version = "apps/v1"
    suffix = "db-statefulset"

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        model.db_statefulset = self
        self.set_meta(ctx.instance)
        _set_selector(self.body, db_label_value(ctx.instance.name))
        return True

    def db_container(self) -> Dict[str, Any]:
        containers = _pod_spec(self.body).get("containers") or []
        container = find_container(containers, DB_CONTAINER)
        if container is None:
            if not containers:
                raise ValidationError(f"{self.kind} template has no containers.")
            container = containers[0]
        return container

    def wire(self, model: Model, ctx: AssemblyContext) -> None:
        if model.db_service is not None:
            self.body["spec"]["serviceName"] = model.db_service.name
        credential = model.db_secret.name if model.db_secret else ctx.spec.auth_secret_name
        if credential:
            ensure_secret_env_from(self.db_container(), credential)

    def validate(self, model: Model, ctx: AssemblyContext) -> None:
        image = ctx.settings.postgresql_image
        if image:
            for container in all_containers(_pod_spec(self.body)):
                container["image"] = image
        check_mount_paths(self.name, _pod_spec(self.body))


class DbService(RuntimeObject):
    """Headless service for the local database."""
    kind = "Service"
    api_version = "v1"
    suffix = "db-service"

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        model.db_service = self
        self.set_meta(ctx.instance)
        ensure_path(self.body, "spec", "selector")[APP_LABEL] = db_label_value(ctx.instance.name)
        return True

    def port(self) -> Optional[int]:
        ports = ensure_path(self.body, "spec").get("ports") or []
        return ports[0].get("port") if ports else None


class DbSecret(RuntimeObject):
    """
    Database credentials. Generated by default; a raw-config override
    replaces the generated content and switches to the overridden name.
    Declined altogether when the user supplies an external credential.
    """
    kind = "Secret"
    api_version = "v1"
    suffix = "default-dbsecret"
    overridden_suffix = "db-secret"

    @classmethod
    def candidate_names(cls, instance_name: str) -> List[str]:
        return [object_name(instance_name, cls.suffix),
                object_name(instance_name, cls.overridden_suffix)]

    def object_suffix(self) -> str:
        return self.overridden_suffix if self.overridden else self.suffix

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        if ctx.spec.auth_secret_name:
            logger.debug(f"{ctx.instance.name}: using external database credential "
                         f"'{ctx.spec.auth_secret_name}'")
            return False
        model.db_secret = self
        self.set_meta(ctx.instance)
        return True

    def wire(self, model: Model, ctx: AssemblyContext) -> None:
        if self.overridden or model.db_service is None:
            return
        string_data = self.body.setdefault("stringData", {})
        string_data["POSTGRES_HOST"] = model.db_service.name
        port = model.db_service.port()
        if port is not None:
            string_data["POSTGRES_PORT"] = str(port)

    def validate(self, model: Model, ctx: AssemblyContext) -> None:
        if self.overridden:
            return
        # Same value for the application user and the admin account
        password = secrets.token_urlsafe(PASSWORD_LENGTH * 3 // 4)
        string_data = self.body.setdefault("stringData", {})
        string_data["POSTGRES_PASSWORD"] = password
        string_data["POSTGRESQL_ADMIN_PASSWORD"] = password
        string_data.setdefault("POSTGRES_USER", "postgres")


class AppConfigMap(RuntimeObject, PodContributor):
    """Default app-config shipped with every instance, mounted as `--config` files."""
    kind = "ConfigMap"
    api_version = "v1"
    suffix = "default-appconfig"
    stage = Stage.APP_CONFIG

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        model.app_config = self
        self.set_meta(ctx.instance)
        return True

    def update_pod(self, deployment: BackstageDeployment, ctx: AssemblyContext) -> None:
        mount_path = ctx.spec.application.app_config.mount_path
        container = deployment.main_container()
        volume = fragment_volume(FragmentKind.PLAIN, self.name)
        add_volume(deployment.pod_spec, volume)
        for key in sorted(self.body.get("data") or {}):
            path = f"{mount_path.rstrip('/')}/{key}"
            add_mount(container, volume["name"], path, sub_path=key)
            add_config_args(container, path)


class DynamicPluginsConfigMap(RuntimeObject, PodContributor):
    """Default dynamic-plugins list, consumed by the plugin installer init container."""
    kind = "ConfigMap"
    api_version = "v1"
    suffix = "default-dynamic-plugins"
    stage = Stage.DYNAMIC_PLUGINS

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        model.dynamic_plugins = self
        self.set_meta(ctx.instance)
        return True

    def update_pod(self, deployment: BackstageDeployment, ctx: AssemblyContext) -> None:
        mount_dynamic_plugins(deployment, self.name, ctx)


def mount_dynamic_plugins(deployment: BackstageDeployment, source: str, ctx: AssemblyContext) -> None:
    """Mounts the plugin list into the installer init container, if there is one."""
    container = deployment.init_container(PLUGINS_INIT_CONTAINER)
    if container is None:
        message = f"No '{PLUGINS_INIT_CONTAINER}' init container; dynamic plugins '{source}' not mounted."
        logger.warning(f"{ctx.instance.name}: {message}")
        ctx.warnings.append(message)
        return
    volume = fragment_volume(FragmentKind.PLAIN, source)
    add_volume(deployment.pod_spec, volume)
    add_mount(container, volume["name"], DYNAMIC_PLUGINS_PATH,
              sub_path=DYNAMIC_PLUGINS_KEY, read_only=True)


class BackstageRoute(RuntimeObject):
    """External route, only on platforms that serve route.openshift.io."""
    kind = "Route"
    api_version = "route.openshift.io/v1"
    suffix = "route"

    def add_to_model(self, model: Model, ctx: AssemblyContext) -> bool:
        model.route = self
        self.set_meta(ctx.instance)
        return True

    def wire(self, model: Model, ctx: AssemblyContext) -> None:
        spec = ensure_path(self.body, "spec")
        to = ensure_path(spec, "to")
        to["kind"] = "Service"
        to["name"] = model.service.name
        port = model.service.first_port()
        ensure_path(spec, "port")["targetPort"] = port.get("name") or port.get("port")

        route = ctx.spec.application.route
        if route.host:
            spec["host"] = route.host
        if route.subdomain:
            spec["subdomain"] = route.subdomain


class ObjectFactory:
    """
    Produces instances of one object kind. Stateless: every call returns a
    brand new object.
    """

    def __init__(self, object_type: Type[RuntimeObject]):
        self.object_type = object_type

    @property
    def kind(self) -> str:
        return self.object_type.kind

    @property
    def api_version(self) -> str:
        return self.object_type.api_version

    def new_object(self, body: Optional[Dict[str, Any]] = None) -> RuntimeObject:
        return self.object_type(body)

    def empty_object(self) -> RuntimeObject:
        return self.object_type()

    def candidate_names(self, instance_name: str) -> List[str]:
        return self.object_type.candidate_names(instance_name)
