#!/usr/bin/env python3
"""
KUBESTAGE POD CONTRIBUTORS
--------------------------
Contributors derived from the desired-state spec rather than from model
objects: app-config references, extra files, extra environment, workload
settings and a custom dynamic-plugins list.

Every referenced fragment must already be loaded; a missing fragment or
key aborts assembly with MissingReferenceError before anything reaches
the store.

Author: KubeStage Team
Date: 2026-10-17
"""

import logging
from typing import List

from kubestage.core.models import DesiredStateSpec, FragmentKind, ObjectKeyRef
from kubestage.model.objects import DYNAMIC_PLUGINS_KEY, BackstageDeployment, mount_dynamic_plugins
from kubestage.model.pod import (
    add_config_args, add_env, add_env_from, add_env_key_ref, add_mount,
    add_volume, all_containers, fragment_volume,
)
from kubestage.model.runtime import AssemblyContext, PodContributor, Stage

logger = logging.getLogger("kubestage.contributors")


def mount_reference(deployment: BackstageDeployment, ctx: AssemblyContext, kind: FragmentKind,
                    ref: ObjectKeyRef, group_mount_path: str, config_args: bool = False) -> None:
    """
    Mounts one referenced fragment into the backend container: the single
    `ref.key` entry, or every entry in key order when no key is given.
    """
    if ref.key:
        fragment = ctx.fragments.require_key(kind, ref.name, ref.key)
        keys = [ref.key]
    else:
        fragment = ctx.fragments.get(kind, ref.name)
        keys = fragment.sorted_keys()

    mount_path = (ref.mount_path or group_mount_path).rstrip("/")
    container = deployment.main_container()
    volume = fragment_volume(kind, fragment.name)
    add_volume(deployment.pod_spec, volume)
    for key in keys:
        path = f"{mount_path}/{key}"
        add_mount(container, volume["name"], path, sub_path=key)
        if config_args:
            add_config_args(container, path)
    logger.debug(f"Mounted {kind.value} '{fragment.name}' keys {keys} under {mount_path}")


class AppConfigRefs(PodContributor):
    """User app-config ConfigMaps, each key loaded with `--config`."""
    stage = Stage.APP_CONFIG

    def update_pod(self, deployment: BackstageDeployment, ctx: AssemblyContext) -> None:
        app_config = ctx.spec.application.app_config
        for ref in app_config.config_maps:
            mount_reference(deployment, ctx, FragmentKind.PLAIN, ref,
                            app_config.mount_path, config_args=True)


class ExtraFilesRefs(PodContributor):
    stage = Stage.EXTRA_FILES

    def update_pod(self, deployment: BackstageDeployment, ctx: AssemblyContext) -> None:
        extra_files = ctx.spec.application.extra_files
        for ref in extra_files.config_maps:
            mount_reference(deployment, ctx, FragmentKind.PLAIN, ref, extra_files.mount_path)
        for ref in extra_files.secrets:
            mount_reference(deployment, ctx, FragmentKind.SENSITIVE, ref, extra_files.mount_path)


class ExtraEnvsRefs(PodContributor):
    """
    Whole fragments become `envFrom`; keyed references become one variable
    each. Literal variables go last.
    """
    stage = Stage.EXTRA_ENVS

    def update_pod(self, deployment: BackstageDeployment, ctx: AssemblyContext) -> None:
        extra_envs = ctx.spec.application.extra_envs
        container = deployment.main_container()

        for kind, refs in ((FragmentKind.PLAIN, extra_envs.config_maps),
                           (FragmentKind.SENSITIVE, extra_envs.secrets)):
            for ref in refs:
                if ref.key:
                    ctx.fragments.require_key(kind, ref.name, ref.key)
                    add_env_key_ref(container, kind, ref.name, ref.key)
                else:
                    ctx.fragments.get(kind, ref.name)
                    add_env_from(container, kind, ref.name)

        for env in extra_envs.envs:
            add_env(container, env.name, env.value)


class WorkloadSettings(PodContributor):
    """Image, replica count and pull secrets."""
    stage = Stage.WORKLOAD

    def update_pod(self, deployment: BackstageDeployment, ctx: AssemblyContext) -> None:
        app = ctx.spec.application

        image = app.image or ctx.settings.backstage_image
        if image:
            for container in all_containers(deployment.pod_spec):
                container["image"] = image

        if app.replicas is not None:
            deployment.body["spec"]["replicas"] = app.replicas

        if app.image_pull_secrets:
            deployment.pod_spec["imagePullSecrets"] = [{"name": name} for name in app.image_pull_secrets]


class DynamicPluginsRef(PodContributor):
    """User-supplied dynamic-plugins ConfigMap, used instead of the default one."""
    stage = Stage.DYNAMIC_PLUGINS

    def __init__(self, name: str):
        self.name = name

    def update_pod(self, deployment: BackstageDeployment, ctx: AssemblyContext) -> None:
        ctx.fragments.require_key(FragmentKind.PLAIN, self.name, DYNAMIC_PLUGINS_KEY)
        mount_dynamic_plugins(deployment, self.name, ctx)


def spec_contributors(spec: DesiredStateSpec) -> List[PodContributor]:
    contributors: List[PodContributor] = [
        AppConfigRefs(), ExtraFilesRefs(), ExtraEnvsRefs(), WorkloadSettings(),
    ]
    if spec.application.dynamic_plugins_config_map_name:
        contributors.append(DynamicPluginsRef(spec.application.dynamic_plugins_config_map_name))
    return contributors
