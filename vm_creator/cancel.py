"""Cancellation token observed at every vCenter call and at the clone task wait."""

import threading
import time
from typing import Callable, Optional

from vm_creator.errors import CloneCancelledError


class CancelToken:
    """
    Caller-supplied cancel signal with an optional deadline.

    ``cancel()`` may be called from another thread or a signal handler. An
    expired deadline counts as cancellation. Cancelling only stops local
    waiting; a task already running in vCenter keeps running.
    """

    def __init__(self, timeout: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._event = threading.Event()
        self._clock = clock
        self.deadline = clock() + timeout if timeout is not None else None
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by operator") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline is not None and self._clock() >= self.deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def raise_if_cancelled(self, step: str) -> None:
        if self.cancelled:
            raise CloneCancelledError(step, self.reason)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds`` (capped by the deadline); True if cancelled meanwhile."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled
