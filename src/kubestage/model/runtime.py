#!/usr/bin/env python3
"""
KUBESTAGE RUNTIME MODEL
-----------------------
Base types for the synthesized object graph:

* RuntimeObject  - one managed Kubernetes object, wrapping a dict body.
* PodContributor - capability of editing the primary workload's pod template.
* Model          - the ordered collection produced by one assembly pass.

Objects are only mutated while the model is being assembled. Afterwards
the executor treats them as read-only.

Author: KubeStage Team
Date: 2026-10-17
"""

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Set, Tuple

from kubestage.core.config import Settings
from kubestage.core.exporter import KubeExporter
from kubestage.core.models import DesiredStateSpec, FragmentSet, InstanceRef
from kubestage.model.naming import INSTANCE_LABEL, MANAGED_BY_LABEL, MANAGER, object_name
from kubestage.model.pod import ensure_path


class Stage(IntEnum):
    """Fixed order in which contributors edit the pod template."""
    APP_CONFIG = 1
    EXTRA_FILES = 2
    EXTRA_ENVS = 3
    WORKLOAD = 4
    DYNAMIC_PLUGINS = 5


@dataclass(frozen=True)
class TemplateFlags:
    """The switches template predicates are evaluated against."""
    local_db_enabled: bool = True
    route_enabled: bool = True
    is_openshift: bool = False
    custom_dynamic_plugins: bool = False


@dataclass
class AssemblyContext:
    """Everything an object may look at while it joins the model."""
    instance: InstanceRef
    spec: DesiredStateSpec
    fragments: FragmentSet
    settings: Settings
    flags: TemplateFlags
    owns_runtime: bool = True
    warnings: List[str] = field(default_factory=list)


class RuntimeObject:
    """
    A single managed object. Subclasses pin `kind`, `api_version` and the
    name `suffix`, and override the lifecycle hooks they care about.
    """

    kind: str = ""
    api_version: str = ""
    suffix: str = ""

    def __init__(self, body: Optional[Dict[str, Any]] = None):
        self.body: Dict[str, Any] = body if body is not None else {}
        self.body.setdefault("apiVersion", self.api_version)
        self.body.setdefault("kind", self.kind)
        if not isinstance(self.body.get("metadata"), dict):
            self.body["metadata"] = {}
        self.overridden = False
        self.template_key = ""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.kind}/{self.name or '?'}>"

    # --- identity -------------------------------------------------------

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.body["metadata"]

    @property
    def name(self) -> str:
        return self.metadata.get("name", "")

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace", "")

    @property
    def identity(self) -> Tuple[str, str]:
        return self.kind, self.name

    @classmethod
    def candidate_names(cls, instance_name: str) -> List[str]:
        """Every name this kind may have been created under."""
        return [object_name(instance_name, cls.suffix)]

    def object_suffix(self) -> str:
        return self.suffix

    def set_meta(self, instance: InstanceRef) -> None:
        self.metadata["name"] = object_name(instance.name, self.object_suffix())
        self.metadata["namespace"] = instance.namespace
        self.add_label(INSTANCE_LABEL, instance.name)
        self.add_label(MANAGED_BY_LABEL, MANAGER)

    def add_label(self, key: str, value: str) -> None:
        labels = self.metadata.get("labels")
        if not isinstance(labels, dict):
            labels = self.metadata["labels"] = {}
        labels[key] = value

    def set_owner(self, instance: InstanceRef) -> None:
        self.metadata["ownerReferences"] = [{
            "apiVersion": instance.api_version,
            "kind": instance.kind,
            "name": instance.name,
            "uid": instance.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }]

    # --- lifecycle hooks --------------------------------------------------

    def add_to_model(self, model: "Model", ctx: AssemblyContext) -> bool:
        """
        Names the object and registers its handle. Returning False declines
        the object: it is left out of the model.
        """
        self.set_meta(ctx.instance)
        return True

    def wire(self, model: "Model", ctx: AssemblyContext) -> None:
        """Resolves cross references to other objects through model handles."""

    def validate(self, model: "Model", ctx: AssemblyContext) -> None:
        """Last chance to check and finalize the object."""

    # --- output ----------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.body)

    def serialize(self) -> str:
        return KubeExporter().export(self.body)


class PodContributor:
    """
    Mixin for anything that edits the primary workload's pod template.
    Contributors run once each, ordered by `stage`.
    """

    stage: Stage = Stage.WORKLOAD

    def update_pod(self, deployment: "RuntimeObject", ctx: AssemblyContext) -> None:
        raise NotImplementedError


class Model:
    """
    Ordered set of objects for one instance, with typed handles to the
    objects other objects refer to.
    """

    def __init__(self):
        self.objects: List[RuntimeObject] = []
        self.warnings: List[str] = []
        self.deployment = None
        self.service = None
        self.db_statefulset = None
        self.db_service = None
        self.db_secret = None
        self.route = None
        self.app_config = None
        self.dynamic_plugins = None

    def __iter__(self):
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    def add(self, obj: RuntimeObject) -> None:
        self.objects.append(obj)

    def identities(self) -> Set[Tuple[str, str]]:
        return {obj.identity for obj in self.objects}

    def pod_spec(self) -> Dict[str, Any]:
        """Pod spec of the primary workload."""
        return ensure_path(self.deployment.body, "spec", "template", "spec")

    def serialize(self) -> str:
        return KubeExporter().export([obj.body for obj in self.objects])
