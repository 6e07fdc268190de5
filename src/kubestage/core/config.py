#!/usr/bin/env python3
"""
KUBESTAGE SETTINGS
------------------
Process-wide operator settings read from the environment. CLI flags take
precedence over these values.

Author: KubeStage Team
Date: 2026-10-17
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="KUBESTAGE_", populate_by_name=True)

    # Directory holding one default template per registered key.
    # Empty means the templates packaged with kubestage.
    default_config_dir: Optional[Path] = None

    # Image overrides injected by the operator bundle (OLM "related images")
    backstage_image: Optional[str] = Field(default=None, validation_alias="RELATED_IMAGE_backstage")
    postgresql_image: Optional[str] = Field(default=None, validation_alias="RELATED_IMAGE_postgresql")

    # If true, every synthesized object gets an owner reference to the instance
    owns_runtime: bool = True

    # Platform capability: Route resources are available (OpenShift)
    is_openshift: bool = False

    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    # Per-request timeout for store calls, in seconds
    request_timeout: float = 30.0

    # Custom resource coordinates, used for status updates
    cr_group: str = "janus-idp.io"
    cr_version: str = "v1alpha1"
    cr_plural: str = "backstages"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
