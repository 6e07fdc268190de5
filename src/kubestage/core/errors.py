#!/usr/bin/env python3
"""
KUBESTAGE ERRORS
----------------
Failure taxonomy shared by the assembler, the executor and the store
adapters. Every fatal error aborts the current reconciliation cycle;
nothing already applied is rolled back.

Author: KubeStage Team
Date: 2026-10-17
"""


class KubeStageError(Exception):
    """Root of every error raised by KubeStage itself."""


class ConfigurationError(KubeStageError):
    """A template or override blob cannot be turned into the expected object."""


class MissingReferenceError(KubeStageError):
    """A referenced fragment, or a key inside it, does not exist."""


class ValidationError(KubeStageError):
    """Structural conflict in the assembled model (e.g. two files on one path)."""


class StoreError(KubeStageError):
    """Base class for failures reported by the live resource store."""

    def __init__(self, message: str, kind: str = "", name: str = ""):
        super().__init__(message)
        self.kind = kind
        self.name = name


class StoreNotFound(StoreError):
    """The addressed object is absent. Drives the create path, ignored on cleanup."""


class StoreAlreadyExists(StoreError):
    """Create was refused because the object is already present."""


class StoreConflict(StoreError):
    """Optimistic-concurrency token (resourceVersion) was stale."""


class StoreFailure(StoreError):
    """Any other store error. Always fatal for the cycle."""


class ReconcileCancelled(KubeStageError):
    """The caller's deadline expired or the cycle was cancelled explicitly."""
