"""
Operation Context

A cancellable, deadline-bearing signal shared by every task of one operation.
Blocking pipe reads/writes and child processes register callbacks here so
that cancellation unblocks them instead of leaving threads behind.
"""

import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, List, Optional

from .exceptions import Cancelled, DeadlineExceeded


logger = logging.getLogger(__name__)


def format_duration(seconds: float) -> str:
    """Render a duration the way operators type it ("24h0m0s", "90ms")."""
    if seconds < 1:
        return f"{int(round(seconds * 1000))}ms"
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


class OperationContext:
    """Cancellation and deadline signal for one migration operation."""

    def __init__(self, timeout: Optional[float] = None):
        """
        Create a context.

        Args:
            timeout: Seconds until the context expires; None means no deadline
        """
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._error: Optional[Cancelled] = None
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None

        if timeout is not None:
            self._timer = threading.Timer(max(timeout, 0), self._expire)
            self._timer.daemon = True
            self._timer.start()

    def __enter__(self) -> 'OperationContext':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def cancel(self, message: str = "canceled by user") -> None:
        """Cancel the context; no-op when it already finished."""
        self._finish(Cancelled(message))

    def _expire(self) -> None:
        self._finish(DeadlineExceeded(f"timed out after {format_duration(self.timeout)}"))

    def _finish(self, error: Cancelled) -> None:
        with self._lock:
            if self._error is not None:
                return
            self._error = error
            callbacks, self._callbacks = self._callbacks, []
            self._event.set()

        logger.debug(f"Operation context finished: {error}")
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")

    def close(self) -> None:
        """Release the deadline timer and cancel whatever still listens."""
        if self._timer is not None:
            self._timer.cancel()
        self.cancel("operation context closed")

    def done(self) -> bool:
        return self._event.is_set()

    def error(self) -> Optional[Cancelled]:
        """The reason the context finished, or None while it is live."""
        with self._lock:
            return self._error

    def check(self) -> None:
        """Raise the context error if the context has finished."""
        error = self.error()
        if error is not None:
            raise error

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the context finishes; returns True if it did."""
        return self._event.wait(timeout)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def add_callback(self, callback: Callable[[], None]) -> None:
        """
        Register a callback run once when the context finishes.

        Runs immediately (in the caller's thread) if the context is already done.
        """
        with self._lock:
            if self._error is None:
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def as_future(self) -> Future:
        """A future resolved with the context error once the context finishes."""
        future: Future = Future()

        def _resolve():
            if not future.done():
                future.set_result(self.error())

        self.add_callback(_resolve)
        return future
