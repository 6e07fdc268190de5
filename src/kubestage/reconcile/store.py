#!/usr/bin/env python3
"""
KUBESTAGE RESOURCE STORE
------------------------
The four-verb contract the executor reconciles through, and an in-memory
implementation used by tests and offline dry runs.

Bodies cross the boundary as plain dicts in Kubernetes wire form
(camelCase keys). `patch` replaces the whole object and is guarded by
`metadata.resourceVersion` when the body carries one.

Author: KubeStage Team
Date: 2026-10-17
"""

import copy
import uuid
from typing import Any, Dict, List, Optional, Protocol, Tuple

from kubestage.core.errors import StoreAlreadyExists, StoreConflict, StoreError, StoreNotFound

Body = Dict[str, Any]


class Store(Protocol):
    def get(self, api_version: str, kind: str, name: str, namespace: str,
            timeout: Optional[float] = None) -> Body: ...

    def create(self, body: Body, timeout: Optional[float] = None) -> Body: ...

    def patch(self, body: Body, timeout: Optional[float] = None) -> Body: ...

    def delete(self, api_version: str, kind: str, name: str, namespace: str,
               timeout: Optional[float] = None) -> None: ...


def body_key(body: Body) -> Tuple[str, str, str, str]:
    meta = body.get("metadata") or {}
    return body.get("apiVersion", ""), body.get("kind", ""), meta.get("namespace", ""), meta.get("name", "")


class InMemoryStore:
    """
    Dict-backed store. Every successful mutation is appended to
    `mutations` as (verb, kind, name); every call, reads included, to
    `calls`. `fail_on[(verb, kind)]` injects an error for that call.
    """

    def __init__(self):
        self.objects: Dict[Tuple[str, str, str, str], Body] = {}
        self.mutations: List[Tuple[str, str, str]] = []
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_on: Dict[Tuple[str, str], StoreError] = {}
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _enter(self, verb: str, kind: str, name: str) -> None:
        self.calls.append((verb, kind, name))
        error = self.fail_on.get((verb, kind))
        if error is not None:
            raise error

    def seed(self, *bodies: Body) -> None:
        """Adds objects without recording them as mutations."""
        for body in bodies:
            stored = copy.deepcopy(body)
            meta = stored.setdefault("metadata", {})
            meta.setdefault("resourceVersion", self._next_version())
            meta.setdefault("uid", str(uuid.uuid4()))
            self.objects[body_key(stored)] = stored

    def reset_history(self) -> None:
        self.mutations.clear()
        self.calls.clear()

    def get(self, api_version: str, kind: str, name: str, namespace: str,
            timeout: Optional[float] = None) -> Body:
        self._enter("get", kind, name)
        stored = self.objects.get((api_version, kind, namespace, name))
        if stored is None:
            raise StoreNotFound(f'{kind} "{name}" not found', kind, name)
        return copy.deepcopy(stored)

    def create(self, body: Body, timeout: Optional[float] = None) -> Body:
        kind, name = body.get("kind", ""), body["metadata"]["name"]
        self._enter("create", kind, name)
        key = body_key(body)
        if key in self.objects:
            raise StoreAlreadyExists(f'{kind} "{name}" already exists', kind, name)

        stored = copy.deepcopy(body)
        stored["metadata"]["resourceVersion"] = self._next_version()
        stored["metadata"]["uid"] = str(uuid.uuid4())
        self.objects[key] = stored
        self.mutations.append(("create", kind, name))
        return copy.deepcopy(stored)

    def patch(self, body: Body, timeout: Optional[float] = None) -> Body:
        kind, name = body.get("kind", ""), body["metadata"]["name"]
        self._enter("patch", kind, name)
        key = body_key(body)
        live = self.objects.get(key)
        if live is None:
            raise StoreNotFound(f'{kind} "{name}" not found', kind, name)

        version = body["metadata"].get("resourceVersion")
        if version and version != live["metadata"]["resourceVersion"]:
            raise StoreConflict(
                f'Operation cannot be fulfilled on {kind} "{name}": the object has been modified',
                kind, name,
            )

        stored = copy.deepcopy(body)
        stored["metadata"]["resourceVersion"] = self._next_version()
        stored["metadata"]["uid"] = live["metadata"]["uid"]
        self.objects[key] = stored
        self.mutations.append(("patch", kind, name))
        return copy.deepcopy(stored)

    def delete(self, api_version: str, kind: str, name: str, namespace: str,
               timeout: Optional[float] = None) -> None:
        self._enter("delete", kind, name)
        key = (api_version, kind, namespace, name)
        if key not in self.objects:
            raise StoreNotFound(f'{kind} "{name}" not found', kind, name)
        del self.objects[key]
        self.mutations.append(("delete", kind, name))

    def find(self, kind: str, name: str) -> Optional[Body]:
        """Looks an object up by kind and name only. Test convenience."""
        for (_, stored_kind, _, stored_name), body in self.objects.items():
            if stored_kind == kind and stored_name == name:
                return copy.deepcopy(body)
        return None
