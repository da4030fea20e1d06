"""
Cooperative cancellation for sync runs.

Workers poll the token between steps and use it for interruptible waits.
"""

import threading
from typing import List, Optional


class SyncCancelled(Exception):
    """Raised inside a worker when the run has been cancelled."""


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._children: List["CancellationToken"] = []
        if parent is not None:
            parent._link(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation and cascade to children. Later calls keep the first reason."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel(reason)

    def child(self) -> "CancellationToken":
        """Create a token cancelled whenever this one is."""
        return CancellationToken(parent=self)

    def _link(self, child: "CancellationToken") -> None:
        with self._lock:
            self._children.append(child)
            cancelled = self._event.is_set()
        if cancelled:
            child.cancel(self._reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelled(self._reason or "sync cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True early if cancelled."""
        return self._event.wait(timeout=max(seconds, 0.0))

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, reason={self._reason!r})"
