#!/usr/bin/env python3
"""
KUBESTAGE OVERLAY RESOLVER
--------------------------
Chooses between a template's default content and the user's override
bundle, then turns the chosen YAML into an object body. An override entry
named like the template key replaces the default completely; there is no
field-level merge.

Author: KubeStage Team
Date: 2026-10-17
"""

from typing import Any, Dict, Optional, Tuple

from kubestage.core.errors import ConfigurationError
from kubestage.core.exporter import KubeExporter
from kubestage.core.models import ConfigFragment


def resolve(key: str, default_content: str,
            override: Optional[ConfigFragment] = None) -> Tuple[str, bool]:
    """Returns (content, overridden)."""
    if override is not None and override.has_key(key):
        content = override.data[key]
        if isinstance(content, bytes):
            content = content.decode("utf-8")
        return content, True
    return default_content, False


def load(key: str, content: str, expected_kind: str,
         expected_api_version: Optional[str] = None) -> Dict[str, Any]:
    """
    Deserializes one template. The result must be a mapping whose kind (and
    apiVersion, when given) match the object type it feeds.
    """
    body = KubeExporter().load(content, source=key)
    if not isinstance(body, dict):
        raise ConfigurationError(f"{key}: expected a {expected_kind} mapping, got {type(body).__name__}.")

    kind = body.setdefault("kind", expected_kind)
    if kind != expected_kind:
        raise ConfigurationError(f"{key}: expected kind {expected_kind}, got {kind}.")

    if expected_api_version:
        api_version = body.setdefault("apiVersion", expected_api_version)
        if api_version != expected_api_version:
            raise ConfigurationError(
                f"{key}: expected apiVersion {expected_api_version}, got {api_version}."
            )
    return body
