#!/usr/bin/env python3
"""
KUBESTAGE RECONCILER - The Cycle Orchestrator
---------------------------------------------
One reconciliation cycle for one instance:

    IN_PROGRESS -> preprocess -> assemble -> apply -> cleanup -> DEPLOYED

Any KubeStageError is reported as FAILED, with the phase it happened in,
and re-raised so the caller's scheduler can decide about requeueing.

Author: KubeStage Team
Date: 2026-10-17
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Union

from kubestage.core.config import Settings, get_settings
from kubestage.core.errors import ConfigurationError, KubeStageError, MissingReferenceError, StoreNotFound
from kubestage.core.models import (
    ConfigFragment, DesiredStateSpec, FragmentKind, FragmentSet, InstanceRef, PlatformCapabilities,
)
from kubestage.model.assembler import ModelAssembler
from kubestage.model.registry import TemplateRegistry
from kubestage.model.runtime import Model
from kubestage.reconcile.cancel import CancelToken
from kubestage.reconcile.executor import ApplyReport, ReconciliationExecutor
from kubestage.reconcile.status import ConditionStatusReporter, DeployStatus, StatusReporter
from kubestage.reconcile.store import Body, Store

logger = logging.getLogger("kubestage.reconciler")


def fragment_from_body(kind: FragmentKind, body: Body) -> ConfigFragment:
    """
    Builds a fragment from a ConfigMap or Secret body. Secret `data` is
    base64-decoded; `stringData` and ConfigMap `binaryData` are taken as is.
    """
    name = (body.get("metadata") or {}).get("name", "")
    data: Dict[str, Union[str, bytes]] = {}

    if kind is FragmentKind.SENSITIVE:
        for key, value in (body.get("data") or {}).items():
            try:
                raw = base64.b64decode(value or "", validate=True)
            except (binascii.Error, ValueError) as e:
                raise ConfigurationError(f'secrets "{name}": key "{key}" is not valid base64') from e
            try:
                data[key] = raw.decode("utf-8")
            except UnicodeDecodeError:
                data[key] = raw
        data.update(body.get("stringData") or {})
    else:
        data.update(body.get("binaryData") or {})
        data.update(body.get("data") or {})

    return ConfigFragment(name=name, kind=kind, data=data)


@dataclass
class ReconcileResult:
    model: Model
    report: ApplyReport


class Reconciler:
    """
    Wires store, registry and status reporting together. One reconciler
    serves every instance; it keeps nothing between cycles.
    """

    def __init__(self, store: Store, registry: TemplateRegistry,
                 settings: Optional[Settings] = None,
                 reporter: Optional[StatusReporter] = None,
                 platform: Optional[PlatformCapabilities] = None):
        self.store = store
        self.registry = registry
        self.settings = settings or get_settings()
        self.reporter = reporter or ConditionStatusReporter()
        self.platform = platform or PlatformCapabilities(is_openshift=self.settings.is_openshift)
        self.assembler = ModelAssembler(registry, self.settings)
        self.executor = ReconciliationExecutor(store)

    def preprocess(self, instance: InstanceRef, spec: DesiredStateSpec,
                   cancel: CancelToken) -> FragmentSet:
        """Loads every ConfigMap and Secret the desired state references."""
        fragments = []
        for kind, name in spec.referenced_fragments():
            cancel.check(f"reading {kind.value} {name}")
            try:
                body = self.store.get("v1", kind.value, name, instance.namespace,
                                      timeout=cancel.remaining())
            except StoreNotFound as e:
                raise MissingReferenceError(f'{kind.resource} "{name}" not found') from e
            fragments.append(fragment_from_body(kind, body))
        logger.debug(f"{instance.name}: loaded {len(fragments)} referenced fragments")
        return FragmentSet(fragments)

    def reconcile(self, instance: InstanceRef, spec: DesiredStateSpec,
                  cancel: Optional[CancelToken] = None) -> ReconcileResult:
        cancel = cancel or CancelToken()
        self.reporter.report(DeployStatus.in_progress())

        phase = "PreprocessFailed"
        try:
            fragments = self.preprocess(instance, spec, cancel)

            phase = "AssemblyFailed"
            model = self.assembler.assemble(instance, spec, fragments,
                                            owns_runtime=self.settings.owns_runtime,
                                            platform=self.platform)

            phase = "ApplyFailed"
            report = self.executor.apply(model, cancel)

            phase = "CleanupFailed"
            self.executor.cleanup(instance, self.registry, model, cancel, spec=spec, report=report,
                                  platform=self.platform)
        except KubeStageError as e:
            logger.error(f"{instance.name}: {phase}: {e}")
            self.reporter.report(DeployStatus.failed(phase, str(e)))
            raise

        logger.info(f"{instance.name}: reconciled {report.summary()}")
        self.reporter.report(DeployStatus.deployed())
        return ReconcileResult(model=model, report=report)
