#!/usr/bin/env python3
"""
KUBESTAGE MODEL ASSEMBLER
-------------------------
Builds the complete, validated object model for one instance. The passes
run in a fixed order:

1. Template filter   - drop templates whose predicate is false.
2. Overlay + factory - default or raw-config content, parsed and typed.
3. add_to_model      - handles, names, labels, owner references.
4. Wiring            - cross references by name (credentials, route target).
5. Pod contributions - staged edits of the primary workload's pod template.
6. Validation        - structural checks and last-minute finalization.

Assembly is pure: it never talks to the store, so every configuration
error surfaces before the first write.

Author: KubeStage Team
Date: 2026-10-17
"""

import logging
from typing import List, Optional

from kubestage.core.config import Settings, get_settings
from kubestage.core.errors import ValidationError
from kubestage.core.models import DesiredStateSpec, FragmentKind, FragmentSet, InstanceRef, PlatformCapabilities
from kubestage.model import overlay
from kubestage.model.contributors import spec_contributors
from kubestage.model.registry import TemplateRegistry
from kubestage.model.runtime import AssemblyContext, Model, PodContributor, TemplateFlags

logger = logging.getLogger("kubestage.assembler")


def template_flags(spec: DesiredStateSpec, platform: PlatformCapabilities) -> TemplateFlags:
    return TemplateFlags(
        local_db_enabled=spec.local_db_enabled,
        route_enabled=spec.route_enabled,
        is_openshift=platform.is_openshift,
        custom_dynamic_plugins=bool(spec.application.dynamic_plugins_config_map_name),
    )


class ModelAssembler:
    """
    Turns (instance, spec, fragments) into a Model using one registry.
    Holds no per-instance state; a single assembler serves every instance.
    """

    def __init__(self, registry: TemplateRegistry, settings: Optional[Settings] = None):
        self.registry = registry
        self.settings = settings or get_settings()

    def assemble(self, instance: InstanceRef, spec: DesiredStateSpec, fragments: FragmentSet,
                 owns_runtime: Optional[bool] = None,
                 platform: Optional[PlatformCapabilities] = None) -> Model:
        if owns_runtime is None:
            owns_runtime = self.settings.owns_runtime
        if platform is None:
            platform = PlatformCapabilities(is_openshift=self.settings.is_openshift)

        flags = template_flags(spec, platform)
        ctx = AssemblyContext(instance=instance, spec=spec, fragments=fragments,
                              settings=self.settings, flags=flags, owns_runtime=owns_runtime)

        override = fragments.get(FragmentKind.PLAIN, spec.raw_config) if spec.raw_config else None

        model = Model()
        for template in self.registry:
            if not template.predicate(flags):
                logger.debug(f"{instance.name}: skipping template {template.key}")
                continue

            content, overridden = overlay.resolve(template.key, template.default_content, override)
            body = overlay.load(template.key, content, template.factory.kind, template.factory.api_version)
            obj = template.factory.new_object(body)
            obj.overridden = overridden
            obj.template_key = template.key
            if overridden:
                logger.info(f"{instance.name}: template {template.key} overridden by '{spec.raw_config}'")

            if not obj.add_to_model(model, ctx):
                logger.debug(f"{instance.name}: {template.key} declined to join the model")
                continue
            if ctx.owns_runtime and instance.uid:
                obj.set_owner(instance)
            model.add(obj)

        self._check_invariants(model, flags)

        for obj in model:
            obj.wire(model, ctx)

        for contributor in self._contributors(model, spec):
            contributor.update_pod(model.deployment, ctx)

        for obj in model:
            obj.validate(model, ctx)

        model.warnings = list(ctx.warnings)
        logger.info(f"{instance.name}: assembled {len(model)} objects")
        return model

    def _contributors(self, model: Model, spec: DesiredStateSpec) -> List[PodContributor]:
        # Stable sort: within a stage, model objects run before spec references
        contributors = [obj for obj in model if isinstance(obj, PodContributor)]
        contributors += spec_contributors(spec)
        return sorted(contributors, key=lambda c: c.stage)

    def _check_invariants(self, model: Model, flags: TemplateFlags) -> None:
        if model.deployment is None or model.service is None:
            raise ValidationError("Model must contain exactly one deployment and one service.")
        if not flags.local_db_enabled and (model.db_statefulset or model.db_service or model.db_secret):
            raise ValidationError("Database objects present while the local database is disabled.")
        if flags.local_db_enabled and (model.db_statefulset is None or model.db_service is None):
            raise ValidationError("Local database enabled but its workload or service is missing.")


def assemble(instance: InstanceRef, spec: DesiredStateSpec, fragments: FragmentSet,
             registry: TemplateRegistry, owns_runtime: Optional[bool] = None,
             platform: Optional[PlatformCapabilities] = None,
             settings: Optional[Settings] = None) -> Model:
    return ModelAssembler(registry, settings).assemble(instance, spec, fragments, owns_runtime, platform)
