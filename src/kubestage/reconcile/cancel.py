#!/usr/bin/env python3
"""
KUBESTAGE CANCELLATION
----------------------
Deadline and explicit-cancel signal for one reconciliation cycle. Checked
before every store call.

Author: KubeStage Team
Date: 2026-10-17
"""

import threading
import time
from typing import Optional

from kubestage.core.errors import ReconcileCancelled


class CancelToken:
    """
    `timeout` (seconds) starts counting at construction. `cancel()` may be
    called from another thread.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self, action: str = "") -> None:
        if self._event.is_set():
            raise ReconcileCancelled(f"Reconciliation cancelled{' before ' + action if action else ''}.")
        if self.expired:
            raise ReconcileCancelled(f"Reconciliation deadline exceeded{' before ' + action if action else ''}.")
