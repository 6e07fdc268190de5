#!/usr/bin/env python3
"""
KUBESTAGE STATUS SIGNALING
--------------------------
Pass/fail signaling for a reconciliation cycle, expressed as a single
`Deployed` condition on the managed instance.

Author: KubeStage Team
Date: 2026-10-17
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from kubernetes import client
from kubernetes.client.rest import ApiException

from kubestage.core.config import Settings, get_settings
from kubestage.core.errors import StoreConflict
from kubestage.core.models import InstanceRef
from kubestage.reconcile.kube_store import translate

logger = logging.getLogger("kubestage.status")

DEPLOYED_CONDITION = "Deployed"


class DeployState(str, Enum):
    IN_PROGRESS = "InProgress"
    DEPLOYED = "Deployed"
    FAILED = "Failed"


@dataclass(frozen=True)
class DeployStatus:
    state: DeployState
    reason: str = ""
    message: str = ""

    @classmethod
    def in_progress(cls) -> "DeployStatus":
        return cls(DeployState.IN_PROGRESS, "Deploying", "Reconciliation in progress")

    @classmethod
    def deployed(cls) -> "DeployStatus":
        return cls(DeployState.DEPLOYED, "DeployOK", "All objects applied")

    @classmethod
    def failed(cls, reason: str, message: str) -> "DeployStatus":
        return cls(DeployState.FAILED, reason, message)


class StatusReporter(Protocol):
    def report(self, status: DeployStatus) -> None: ...


def _condition_status(state: DeployState) -> str:
    if state is DeployState.DEPLOYED:
        return "True"
    if state is DeployState.FAILED:
        return "False"
    return "Unknown"


def set_status_condition(conditions: List[Dict[str, Any]], new: Dict[str, Any]) -> None:
    """
    Upserts a condition by type. `lastTransitionTime` only moves when the
    condition's status actually changes.
    """
    for existing in conditions:
        if existing.get("type") != new["type"]:
            continue
        if existing.get("status") != new["status"]:
            existing["lastTransitionTime"] = new["lastTransitionTime"]
        existing.update({k: v for k, v in new.items() if k != "lastTransitionTime"})
        return
    conditions.append(dict(new))


class ConditionStatusReporter:
    """
    Keeps the condition list in memory. `history` records every status
    reported, in order.
    """

    def __init__(self):
        self.conditions: List[Dict[str, Any]] = []
        self.history: List[DeployStatus] = []

    @property
    def last(self) -> Optional[DeployStatus]:
        return self.history[-1] if self.history else None

    def report(self, status: DeployStatus) -> None:
        self.history.append(status)
        set_status_condition(self.conditions, {
            "type": DEPLOYED_CONDITION,
            "status": _condition_status(status.state),
            "reason": status.reason,
            "message": status.message,
            "lastTransitionTime": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        })
        if status.state is DeployState.FAILED:
            logger.error(f"{DEPLOYED_CONDITION}: {status.reason}: {status.message}")
        else:
            logger.info(f"{DEPLOYED_CONDITION}: {status.reason}")


class KubeStatusReporter(ConditionStatusReporter):
    """
    Also writes the condition list to the custom resource's status
    subresource. A write conflict is logged and dropped; the next cycle
    reports again.
    """

    def __init__(self, instance: InstanceRef, settings: Optional[Settings] = None,
                 api: Optional[client.CustomObjectsApi] = None):
        super().__init__()
        self.instance = instance
        self.settings = settings or get_settings()
        self.api = api or client.CustomObjectsApi()

    def report(self, status: DeployStatus) -> None:
        super().report(status)
        try:
            self.api.patch_namespaced_custom_object_status(
                self.settings.cr_group, self.settings.cr_version, self.instance.namespace,
                self.settings.cr_plural, self.instance.name,
                {"status": {"conditions": self.conditions}},
            )
        except ApiException as e:
            error = translate(e, "patch", self.instance.kind, self.instance.name)
            if isinstance(error, StoreConflict):
                logger.warning(f"Status update conflict for {self.instance.name}; skipped")
                return
            raise error from e
