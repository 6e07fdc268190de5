#!/usr/bin/env python3
"""
KUBESTAGE RECONCILIATION EXECUTOR
---------------------------------
Drives the live store toward an assembled model, one object at a time, in
model order:

* Secrets are write-once: created if absent, never patched, so generated
  credentials survive every later cycle.
* Everything else is read first, created when absent, and patched only
  when the desired body differs from what was last applied.
* Cleanup deletes objects this instance may have created earlier but
  that the current model no longer contains.

Store errors other than not-found abort the cycle. Nothing is rolled back.

Author: KubeStage Team
Date: 2026-10-17
"""

import copy
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from kubestage.core.errors import StoreAlreadyExists, StoreNotFound
from kubestage.core.models import DesiredStateSpec, InstanceRef, PlatformCapabilities
from kubestage.model.naming import APPLIED_HASH_ANNOTATION
from kubestage.model.registry import TemplateRegistry
from kubestage.model.runtime import Model, RuntimeObject
from kubestage.reconcile.cancel import CancelToken
from kubestage.reconcile.store import Body, Store

logger = logging.getLogger("kubestage.executor")

# Kinds whose live annotations (object and pod template) are preserved
ANNOTATION_MERGE_KINDS = ("Deployment",)

# Kinds only some platforms serve, with the capability that marks them
PLATFORM_KINDS = {"Route": "is_openshift"}


@dataclass
class ApplyReport:
    """Outcome of one apply/cleanup run, as (kind, name) pairs."""
    created: List[Tuple[str, str]] = field(default_factory=list)
    patched: List[Tuple[str, str]] = field(default_factory=list)
    unchanged: List[Tuple[str, str]] = field(default_factory=list)
    deleted: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.patched or self.deleted)

    def summary(self) -> Dict[str, int]:
        return {
            "created": len(self.created),
            "patched": len(self.patched),
            "unchanged": len(self.unchanged),
            "deleted": len(self.deleted),
        }


def applied_hash(body: Body) -> str:
    """Digest of a desired body, ignoring store-assigned metadata."""
    content = copy.deepcopy(body)
    meta = content.get("metadata") or {}
    meta.pop("resourceVersion", None)
    annotations = meta.get("annotations")
    if isinstance(annotations, dict):
        annotations.pop(APPLIED_HASH_ANNOTATION, None)
        if not annotations:
            del meta["annotations"]
    encoded = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def contained(desired: Any, live: Any) -> bool:
    """
    True when every field of `desired` is present with the same value in
    `live`. Extra mapping keys in `live` (server defaults) are ignored;
    lists must match in length and element-wise.
    """
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        return all(key in live and contained(value, live[key]) for key, value in desired.items())
    if isinstance(desired, list):
        if not isinstance(live, list) or len(desired) != len(live):
            return False
        return all(contained(d, l) for d, l in zip(desired, live))
    return desired == live


def _merge_annotations(desired: Dict[str, Any], live: Dict[str, Any]) -> None:
    """Keeps annotations added by others; desired values win on conflict."""
    live_annotations = (live.get("metadata") or {}).get("annotations") or {}
    if not live_annotations:
        return
    meta = desired.setdefault("metadata", {})
    meta["annotations"] = {**live_annotations, **(meta.get("annotations") or {})}


class ReconciliationExecutor:
    """
    Applies a Model to a Store. Stateless between calls.
    """

    def __init__(self, store: Store):
        self.store = store

    def apply(self, model: Model, cancel: Optional[CancelToken] = None,
              report: Optional[ApplyReport] = None) -> ApplyReport:
        cancel = cancel or CancelToken()
        report = report if report is not None else ApplyReport()
        for obj in model:
            self._apply_one(obj, cancel, report)
        return report

    def _apply_one(self, obj: RuntimeObject, cancel: CancelToken, report: ApplyReport) -> None:
        desired = obj.to_dict()

        if obj.kind == "Secret":
            cancel.check(f"creating {obj.kind} {obj.name}")
            try:
                self.store.create(desired, timeout=cancel.remaining())
            except StoreAlreadyExists:
                logger.debug(f"{obj.kind} {obj.name} exists; secrets are never updated")
                report.unchanged.append(obj.identity)
                return
            logger.info(f"Created {obj.kind} {obj.name}")
            report.created.append(obj.identity)
            return

        desired_hash = applied_hash(desired)
        desired["metadata"].setdefault("annotations", {})[APPLIED_HASH_ANNOTATION] = desired_hash

        cancel.check(f"reading {obj.kind} {obj.name}")
        try:
            live = self.store.get(obj.api_version, obj.kind, obj.name, obj.namespace,
                                  timeout=cancel.remaining())
        except StoreNotFound:
            cancel.check(f"creating {obj.kind} {obj.name}")
            self.store.create(desired, timeout=cancel.remaining())
            logger.info(f"Created {obj.kind} {obj.name}")
            report.created.append(obj.identity)
            return

        live_meta = live.get("metadata") or {}
        if live_meta.get("resourceVersion"):
            desired["metadata"]["resourceVersion"] = live_meta["resourceVersion"]

        if obj.kind in ANNOTATION_MERGE_KINDS:
            _merge_annotations(desired, live)
            live_template = ((live.get("spec") or {}).get("template")) or {}
            desired_template = (desired.get("spec") or {}).get("template")
            if isinstance(desired_template, dict):
                _merge_annotations(desired_template, live_template)

        last_applied = (live_meta.get("annotations") or {}).get(APPLIED_HASH_ANNOTATION)
        if last_applied == desired_hash and contained(desired, live):
            logger.debug(f"{obj.kind} {obj.name} is up to date")
            report.unchanged.append(obj.identity)
            return

        cancel.check(f"patching {obj.kind} {obj.name}")
        self.store.patch(desired, timeout=cancel.remaining())
        logger.info(f"Patched {obj.kind} {obj.name}")
        report.patched.append(obj.identity)

    def cleanup(self, instance: InstanceRef, registry: TemplateRegistry, model: Model,
                cancel: Optional[CancelToken] = None, spec: Optional[DesiredStateSpec] = None,
                report: Optional[ApplyReport] = None,
                platform: Optional[PlatformCapabilities] = None) -> ApplyReport:
        """
        Deletes every object a registered template could have produced for
        this instance that the current model does not contain. A user's
        external database credential is never touched, and kinds the
        platform does not serve are not looked for.
        """
        cancel = cancel or CancelToken()
        platform = platform or PlatformCapabilities()
        report = report if report is not None else ApplyReport()
        keep = model.identities()
        protected = spec.auth_secret_name if spec is not None else None

        for template in registry:
            factory = template.factory
            capability = PLATFORM_KINDS.get(factory.kind)
            if capability and not getattr(platform, capability):
                logger.debug(f"Skipping cleanup of {factory.kind}: not served by this platform")
                continue
            for name in factory.candidate_names(instance.name):
                if (factory.kind, name) in keep or name == protected:
                    continue
                cancel.check(f"deleting {factory.kind} {name}")
                try:
                    self.store.delete(factory.api_version, factory.kind, name, instance.namespace,
                                      timeout=cancel.remaining())
                except StoreNotFound:
                    continue
                logger.info(f"Deleted {factory.kind} {name}")
                report.deleted.append((factory.kind, name))
        return report
