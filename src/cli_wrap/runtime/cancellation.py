"""Cooperative cancellation handle.

Provides:
- CancellationTokenSource: the owning side, which requests cancellation
- CancellationToken: the observing side handed to an execution
- CancellationRegistration: scoped callback registration on a token

Cancellation callbacks run synchronously on the thread that calls
``cancel()`` (or on the registering thread, if the token was already
cancelled). A failing callback is logged and does not stop the others.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Dict, Optional

from ..exceptions import ExecutionCancelledError

__all__ = [
    "CancellationRegistration",
    "CancellationToken",
    "CancellationTokenSource",
]

logger = logging.getLogger(__name__)


class CancellationRegistration:
    """Handle for a callback registered on a token.

    Disposing the registration (or leaving its ``with`` block) unregisters the
    callback, so a later ``cancel()`` no longer reaches it. If ``cancel()`` is
    running the callback on another thread, ``dispose()`` blocks until the
    callback returns.
    """

    def __init__(
        self,
        source: Optional["CancellationTokenSource"] = None,
        key: Optional[int] = None,
    ) -> None:
        self._source = source
        self._key = key

    def dispose(self) -> bool:
        """Unregister the callback.

        Returns:
            Whether the callback was still registered
        """
        if self._source is None or self._key is None:
            return False
        source, key = self._source, self._key
        self._source = None
        self._key = None
        return source._unregister(key)

    def __enter__(self) -> "CancellationRegistration":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class CancellationTokenSource:
    """Owner of a cancellation token.

    Example:
        ```python
        cts = CancellationTokenSource()
        cts.cancel_after(5.0)

        result = (
            Cli.wrap("long-running-tool")
            .set_cancellation_token(cts.token)
            .execute()
        )
        ```
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._cancelled = threading.Event()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._keys = itertools.count()
        self._timer: Optional[threading.Timer] = None
        # Callback currently run by cancel(), and the thread running it
        self._executing_key: Optional[int] = None
        self._executing_thread: Optional[int] = None
        self._token = CancellationToken(self)

    @property
    def token(self) -> "CancellationToken":
        """Token observing this source."""
        return self._token

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation and run registered callbacks once."""
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            self._executing_thread = threading.get_ident()
            pending = len(self._callbacks)

        logger.debug(f"Cancellation requested, running {pending} callback(s)")
        while True:
            with self._changed:
                self._executing_key = None
                self._changed.notify_all()
                if not self._callbacks:
                    self._executing_thread = None
                    return
                key = next(iter(self._callbacks))
                callback = self._callbacks.pop(key)
                self._executing_key = key
            self._invoke(callback)

    def cancel_after(self, delay: float) -> None:
        """Schedule ``cancel()`` after ``delay`` seconds.

        Args:
            delay: Delay in seconds (must not be negative)

        Raises:
            ValueError: If delay is negative
        """
        if delay < 0:
            raise ValueError(f"delay must not be negative, got {delay}")

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(delay, self.cancel)
            self._timer.daemon = True
            self._timer.start()

    def close(self) -> None:
        """Stop a pending ``cancel_after`` timer and drop callbacks."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._callbacks.clear()

    def _register(self, callback: Callable[[], None]) -> CancellationRegistration:
        with self._lock:
            if not self._cancelled.is_set():
                key = next(self._keys)
                self._callbacks[key] = callback
                return CancellationRegistration(self, key)

        # Already cancelled: run right away on the registering thread.
        self._invoke(callback)
        return CancellationRegistration()

    def _unregister(self, key: int) -> bool:
        with self._changed:
            if self._callbacks.pop(key, None) is not None:
                return True
            # Wait out a running callback unless it is disposing itself
            if self._executing_thread != threading.get_ident():
                self._changed.wait_for(lambda: self._executing_key != key)
            return False

    @staticmethod
    def _invoke(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:
            logger.warning(f"Error in cancellation callback {callback!r}: {e}")

    def __enter__(self) -> "CancellationTokenSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"CancellationTokenSource(cancelled={self.is_cancellation_requested})"


class CancellationToken:
    """Read-only view of a cancellation source."""

    def __init__(self, source: Optional[CancellationTokenSource] = None) -> None:
        self._source = source

    @classmethod
    def none(cls) -> "CancellationToken":
        """Token that is never cancelled."""
        return cls()

    @property
    def can_be_cancelled(self) -> bool:
        return self._source is not None

    @property
    def is_cancellation_requested(self) -> bool:
        return self._source is not None and self._source.is_cancellation_requested

    def register(self, callback: Callable[[], None]) -> CancellationRegistration:
        """Register a callback to run when cancellation is requested.

        Args:
            callback: Callable with no arguments

        Returns:
            Registration to dispose once the callback is no longer wanted
        """
        if self._source is None:
            return CancellationRegistration()
        return self._source._register(callback)

    def throw_if_cancellation_requested(self) -> None:
        """Raise ExecutionCancelledError if cancellation was requested."""
        if self.is_cancellation_requested:
            raise ExecutionCancelledError()

    def __repr__(self) -> str:
        return (
            f"CancellationToken(can_be_cancelled={self.can_be_cancelled}, "
            f"cancelled={self.is_cancellation_requested})"
        )
