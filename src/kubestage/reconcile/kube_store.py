#!/usr/bin/env python3
"""
KUBESTAGE KUBERNETES STORE
--------------------------
Store implementation backed by the official kubernetes client. Built-in
kinds go through their typed APIs (AppsV1Api / CoreV1Api); Routes go
through CustomObjectsApi. ApiException never leaves this module: it is
translated into the StoreError family here.

Author: KubeStage Team
Date: 2026-10-17
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from kubestage.core.errors import (
    StoreAlreadyExists, StoreConflict, StoreError, StoreFailure, StoreNotFound,
)
from kubestage.reconcile.store import Body

logger = logging.getLogger("kubestage.kube_store")

# kind -> (api attribute, method suffix)
TYPED_KINDS: Dict[str, Tuple[str, str]] = {
    "Deployment": ("apps_v1", "deployment"),
    "StatefulSet": ("apps_v1", "stateful_set"),
    "Service": ("core_v1", "service"),
    "Secret": ("core_v1", "secret"),
    "ConfigMap": ("core_v1", "config_map"),
}

# kind -> (group, version, plural)
CUSTOM_KINDS: Dict[str, Tuple[str, str, str]] = {
    "Route": ("route.openshift.io", "v1", "routes"),
}


def load_cluster_config() -> None:
    """In-cluster service account first, local kubeconfig as fallback."""
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.info("Loaded kubeconfig")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes config: {e}")
            raise StoreFailure("Cannot load Kubernetes configuration") from e


def translate(e: ApiException, verb: str, kind: str, name: str) -> StoreError:
    message = f"{verb} {kind} '{name}' failed: {e.status} {e.reason}"
    if e.status == 404:
        return StoreNotFound(message, kind, name)
    if e.status == 409:
        if verb == "create":
            return StoreAlreadyExists(message, kind, name)
        return StoreConflict(message, kind, name)
    return StoreFailure(message, kind, name)


class KubeStore:
    """
    Four-verb store over a live cluster. `request_timeout` bounds every
    call unless the caller passes a tighter one.
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None,
                 request_timeout: Optional[float] = None):
        self.api_client = api_client or client.ApiClient()
        self.apps_v1 = client.AppsV1Api(self.api_client)
        self.core_v1 = client.CoreV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)
        self.request_timeout = request_timeout

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        candidates = [t for t in (timeout, self.request_timeout) if t is not None]
        return min(candidates) if candidates else None

    def _typed(self, verb: str, kind: str) -> Callable[..., Any]:
        api_name, suffix = TYPED_KINDS[kind]
        return getattr(getattr(self, api_name), f"{verb}_namespaced_{suffix}")

    def _to_dict(self, result: Any) -> Body:
        if isinstance(result, dict):
            return result
        return self.api_client.sanitize_for_serialization(result)

    def _call(self, verb: str, kind: str, name: str, namespace: str,
              body: Optional[Body], timeout: Optional[float]) -> Any:
        kwargs: Dict[str, Any] = {}
        effective = self._timeout(timeout)
        if effective is not None:
            kwargs["_request_timeout"] = effective

        try:
            if kind in CUSTOM_KINDS:
                group, version, plural = CUSTOM_KINDS[kind]
                if verb == "read":
                    return self.custom.get_namespaced_custom_object(
                        group, version, namespace, plural, name, **kwargs)
                if verb == "create":
                    return self.custom.create_namespaced_custom_object(
                        group, version, namespace, plural, body, **kwargs)
                if verb == "replace":
                    return self.custom.replace_namespaced_custom_object(
                        group, version, namespace, plural, name, body, **kwargs)
                return self.custom.delete_namespaced_custom_object(
                    group, version, namespace, plural, name, **kwargs)

            if kind not in TYPED_KINDS:
                raise StoreFailure(f"Unsupported kind: {kind}", kind, name)

            method = self._typed(verb, kind)
            if verb == "create":
                return method(namespace=namespace, body=body, **kwargs)
            if verb == "replace":
                return method(name=name, namespace=namespace, body=body, **kwargs)
            return method(name=name, namespace=namespace, **kwargs)
        except ApiException as e:
            public_verb = {"read": "get", "replace": "patch"}.get(verb, verb)
            raise translate(e, public_verb, kind, name) from e

    def get(self, api_version: str, kind: str, name: str, namespace: str,
            timeout: Optional[float] = None) -> Body:
        return self._to_dict(self._call("read", kind, name, namespace, None, timeout))

    def create(self, body: Body, timeout: Optional[float] = None) -> Body:
        meta = body["metadata"]
        result = self._call("create", body["kind"], meta["name"], meta["namespace"], body, timeout)
        return self._to_dict(result)

    def patch(self, body: Body, timeout: Optional[float] = None) -> Body:
        meta = body["metadata"]
        result = self._call("replace", body["kind"], meta["name"], meta["namespace"], body, timeout)
        return self._to_dict(result)

    def delete(self, api_version: str, kind: str, name: str, namespace: str,
               timeout: Optional[float] = None) -> None:
        self._call("delete", kind, name, namespace, None, timeout)
