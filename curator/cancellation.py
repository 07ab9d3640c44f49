"""
Cooperative cancellation for playlist runs.

A CancellationToken is shared between the thread driving a batch run and
whoever may cancel it. Long operations call check_cancelled() at window and
scan-batch boundaries, never in the middle of a record.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional

from curator.exceptions import CancellationError


@dataclass
class CancellationToken:
    """Thread-safe cancel flag."""
    cancel_requested: bool = False
    reason: Optional[str] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def request_cancel(self, reason: str = "cancelled by user") -> None:
        with self._lock:
            self.cancel_requested = True
            self.reason = reason

    def is_cancelled(self) -> bool:
        with self._lock:
            return self.cancel_requested

    def check_cancelled(self, stage: str = "") -> None:
        """
        Raise CancellationError if cancellation was requested.

        Call this at stage boundaries.
        """
        if self.is_cancelled():
            where = f" during {stage}" if stage else ""
            raise CancellationError(f"Run {self.reason or 'cancelled'}{where}")


def check_cancelled(token: Optional[CancellationToken], stage: str = "") -> None:
    """check_cancelled() for an optional token."""
    if token is not None:
        token.check_cancelled(stage)
