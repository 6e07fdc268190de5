#!/usr/bin/env python3
"""
KUBESTAGE TEMPLATE REGISTRY
---------------------------
Catalog of the object templates an instance is assembled from. One entry
per managed kind, each with an applicability predicate and the default
YAML content it starts from. Iteration always follows registration order.

The registry is built explicitly at startup and is read-only afterwards.

Author: KubeStage Team
Date: 2026-10-17
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Union

from kubestage.core.errors import ConfigurationError
from kubestage.model.objects import (
    AppConfigMap, BackstageDeployment, BackstageRoute, BackstageService, DbSecret,
    DbService, DbStatefulSet, DynamicPluginsConfigMap, ObjectFactory,
)
from kubestage.model.runtime import TemplateFlags

logger = logging.getLogger("kubestage.registry")

Predicate = Callable[[TemplateFlags], bool]

PACKAGED_CONFIG_DIR = Path(__file__).resolve().parent / "default_config"


def always(flags: TemplateFlags) -> bool:
    return True


def local_db(flags: TemplateFlags) -> bool:
    return flags.local_db_enabled


def default_dynamic_plugins(flags: TemplateFlags) -> bool:
    return not flags.custom_dynamic_plugins


def route(flags: TemplateFlags) -> bool:
    return flags.route_enabled and flags.is_openshift


@dataclass(frozen=True)
class ObjectTemplate:
    key: str
    factory: ObjectFactory
    predicate: Predicate
    default_content: str


class TemplateRegistry:
    """
    Ordered, key-unique collection of ObjectTemplates.
    """

    def __init__(self):
        self._templates: Dict[str, ObjectTemplate] = {}

    def register(self, key: str, factory: ObjectFactory, predicate: Predicate = always,
                 default_content: str = "") -> ObjectTemplate:
        if key in self._templates:
            raise ValueError(f"Template '{key}' is already registered.")
        template = ObjectTemplate(key, factory, predicate, default_content)
        self._templates[key] = template
        return template

    def get(self, key: str) -> ObjectTemplate:
        return self._templates[key]

    def keys(self) -> List[str]:
        return list(self._templates)

    def for_each(self, visit: Callable[[ObjectTemplate], None]) -> None:
        for template in self._templates.values():
            visit(template)

    def __iter__(self) -> Iterator[ObjectTemplate]:
        return iter(list(self._templates.values()))

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, key: object) -> bool:
        return key in self._templates


# Registration order is also apply order.
DEFAULT_TEMPLATES = [
    ("deployment.yaml", BackstageDeployment, always),
    ("service.yaml", BackstageService, always),
    ("db-statefulset.yaml", DbStatefulSet, local_db),
    ("db-service.yaml", DbService, local_db),
    ("db-secret.yaml", DbSecret, local_db),
    ("app-config.yaml", AppConfigMap, always),
    ("dynamic-plugins.yaml", DynamicPluginsConfigMap, default_dynamic_plugins),
    ("route.yaml", BackstageRoute, route),
]


def build_default_registry(config_dir: Optional[Union[str, Path]] = None) -> TemplateRegistry:
    """
    Registers every managed kind with its default content, read from
    `config_dir` (one `<key>` file per template) or from the templates
    packaged with kubestage.
    """
    base = Path(config_dir) if config_dir else PACKAGED_CONFIG_DIR
    registry = TemplateRegistry()
    for key, object_type, predicate in DEFAULT_TEMPLATES:
        path = base / key
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read default template {path}: {e}") from e
        registry.register(key, ObjectFactory(object_type), predicate, content)

    logger.debug(f"Loaded {len(registry)} default templates from {base}")
    return registry
