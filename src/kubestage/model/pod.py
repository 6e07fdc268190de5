#!/usr/bin/env python3
"""
KUBESTAGE POD SURGERY
---------------------
Small in-place editors for pod specs: volumes, mounts, environment and
container arguments. Every helper works on plain dict bodies, creating the
intermediate lists on demand.

Author: KubeStage Team
Date: 2026-10-17
"""

from typing import Any, Dict, List, Optional

from kubestage.core.errors import ValidationError
from kubestage.core.models import FragmentKind
from kubestage.model.naming import volume_name

# Default permission bits for projected files (0644)
DEFAULT_MODE = 420


def ensure_path(body: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    """Walks (and creates) nested mappings, returning the innermost one."""
    node = body
    for key in keys:
        if not isinstance(node.get(key), dict):
            node[key] = {}
        node = node[key]
    return node


def all_containers(pod_spec: Dict[str, Any]) -> List[Dict[str, Any]]:
    return list(pod_spec.get("initContainers") or []) + list(pod_spec.get("containers") or [])


def find_container(containers: Optional[List[Dict[str, Any]]], name: str) -> Optional[Dict[str, Any]]:
    for container in containers or []:
        if container.get("name") == name:
            return container
    return None


def add_volume(pod_spec: Dict[str, Any], volume: Dict[str, Any]) -> None:
    """
    Adds a volume once. The same definition added twice is a no-op; a
    different definition under an existing name is a conflict.
    """
    volumes = pod_spec.setdefault("volumes", [])
    for existing in volumes:
        if existing.get("name") != volume["name"]:
            continue
        if existing != volume:
            raise ValidationError(
                f"Conflicting definitions for volume '{volume['name']}'."
            )
        return
    volumes.append(volume)


def fragment_volume(kind: FragmentKind, source: str) -> Dict[str, Any]:
    """Volume projecting a whole ConfigMap or Secret."""
    if kind is FragmentKind.PLAIN:
        return {"name": volume_name(kind, source),
                "configMap": {"name": source, "defaultMode": DEFAULT_MODE}}
    return {"name": volume_name(kind, source),
            "secret": {"secretName": source, "defaultMode": DEFAULT_MODE}}


def add_mount(container: Dict[str, Any], name: str, mount_path: str,
              sub_path: Optional[str] = None, read_only: bool = False) -> Dict[str, Any]:
    mount: Dict[str, Any] = {"name": name, "mountPath": mount_path}
    if sub_path:
        mount["subPath"] = sub_path
    if read_only:
        mount["readOnly"] = True
    container.setdefault("volumeMounts", []).append(mount)
    return mount


def add_config_args(container: Dict[str, Any], path: str) -> None:
    container.setdefault("args", []).extend(["--config", path])


def add_env(container: Dict[str, Any], name: str, value: str) -> None:
    container.setdefault("env", []).append({"name": name, "value": value})


def add_env_key_ref(container: Dict[str, Any], kind: FragmentKind, source: str, key: str) -> None:
    """Single variable named after the key, read from one fragment entry."""
    ref_type = "configMapKeyRef" if kind is FragmentKind.PLAIN else "secretKeyRef"
    container.setdefault("env", []).append(
        {"name": key, "valueFrom": {ref_type: {"name": source, "key": key}}}
    )


def add_env_from(container: Dict[str, Any], kind: FragmentKind, source: str) -> None:
    ref_type = "configMapRef" if kind is FragmentKind.PLAIN else "secretRef"
    container.setdefault("envFrom", []).append({ref_type: {"name": source}})


def ensure_secret_env_from(container: Dict[str, Any], secret_name: str) -> None:
    """
    Adds a `secretRef` envFrom entry for `secret_name` unless the container
    already has one. Entries for other secrets are left alone.
    """
    env_from = container.setdefault("envFrom", [])
    for entry in env_from:
        if (entry.get("secretRef") or {}).get("name") == secret_name:
            return
    env_from.append({"secretRef": {"name": secret_name}})


def duplicate_mount_paths(container: Dict[str, Any]) -> List[str]:
    seen = set()
    duplicates = []
    for mount in container.get("volumeMounts") or []:
        path = mount.get("mountPath")
        if path in seen and path not in duplicates:
            duplicates.append(path)
        seen.add(path)
    return duplicates


def check_mount_paths(owner: str, pod_spec: Dict[str, Any]) -> None:
    """Raises ValidationError when a container mounts two volumes on one path."""
    for container in all_containers(pod_spec):
        duplicates = duplicate_mount_paths(container)
        if duplicates:
            raise ValidationError(
                f"{owner}: container '{container.get('name')}' mounts more than one "
                f"volume at {', '.join(duplicates)}."
            )
