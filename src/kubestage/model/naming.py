#!/usr/bin/env python3
"""
KUBESTAGE NAMING
----------------
Deterministic names and labels for every synthesized object. These are
part of the external contract: renaming anything here orphans the objects
created by earlier versions.

Author: KubeStage Team
Date: 2026-10-17
"""

import hashlib
import re

from kubestage.core.models import FragmentKind

INSTANCE_LABEL = "app.kubernetes.io/instance"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
APP_LABEL = "kubestage.io/app"
APPLIED_HASH_ANNOTATION = "kubestage.io/applied-hash"

MANAGER = "kubestage"

# Kubernetes DNS label limit (RFC 1123)
MAX_NAME_LENGTH = 63

_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")


def object_name(instance: str, suffix: str) -> str:
    """`<instance>-<suffix>`, lower-cased."""
    return f"{instance}-{suffix}".lower()


def app_label_value(instance: str) -> str:
    return f"backstage-{instance}"


def db_label_value(instance: str) -> str:
    return f"backstage-db-{instance}"


VOLUME_PREFIXES = {
    FragmentKind.PLAIN: "vol-cm-",
    FragmentKind.SENSITIVE: "vol-secret-",
}


def volume_name(kind: FragmentKind, source: str) -> str:
    """
    Volume name for a mounted ConfigMap or Secret: `vol-cm-<name>` or
    `vol-secret-<name>`. When the source name had to be sanitized or
    truncated, a short digest of the original name keeps it unique.
    """
    prefix = VOLUME_PREFIXES[kind]
    sanitized = _INVALID_CHARS.sub("-", source.lower()).strip("-")
    name = f"{prefix}{sanitized}"
    if sanitized == source and len(name) <= MAX_NAME_LENGTH:
        return name

    digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:8]
    head = name[:MAX_NAME_LENGTH - len(digest) - 1].rstrip("-")
    return f"{head}-{digest}"
