"""One-shot completion signal shared between threads and event loops.

cli-wrap runtime module

The signal is released by a producer (usually a stream reader or exit
watcher thread) and observed by any number of waiters. Waiters can block a
thread with ``wait()`` or suspend a coroutine with ``wait_async()``; the
coroutine may run on any event loop, since release is marshalled onto the
waiter's loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import threading

__all__ = ["CompletionSignal"]

logger = logging.getLogger(__name__)


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


def _abandon(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.cancel()


class CompletionSignal:
    """Binary unset/set signal with blocking and asyncio waiters.

    Once released, the signal stays set until disposed, and every later
    ``wait()`` / ``wait_async()`` returns immediately.

    Example:
        with CompletionSignal() as done:
            threading.Thread(target=lambda: (work(), done.release())).start()
            done.wait()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._waiters: list[asyncio.Future[None]] = []
        self._disposed = False

    @property
    def is_set(self) -> bool:
        """Whether the signal has been released."""
        return self._event.is_set()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def release(self) -> None:
        """Set the signal and wake every waiter.

        Safe to call more than once and from any thread. Releasing a disposed
        signal does nothing.
        """
        with self._lock:
            if self._disposed or self._event.is_set():
                return
            self._event.set()
            waiters, self._waiters = self._waiters, []

        for future in waiters:
            self._schedule(future, _resolve)

    def wait(self, timeout: float | None = None) -> bool:
        """Block the calling thread until the signal is released.

        Args:
            timeout: Optional timeout in seconds

        Returns:
            True if the signal is set, False if the timeout expired

        Raises:
            RuntimeError: If the signal was disposed before being released
        """
        if self._event.is_set():
            return True
        self._check_not_disposed()
        return self._event.wait(timeout)

    async def wait_async(self) -> None:
        """Suspend the current task until the signal is released.

        Raises:
            RuntimeError: If the signal was disposed before being released
        """
        with self._lock:
            if self._event.is_set():
                return
            self._check_not_disposed()
            future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(future)

        try:
            await future
        except asyncio.CancelledError:
            with self._lock:
                if future in self._waiters:
                    self._waiters.remove(future)
            if self._disposed and not self._event.is_set():
                raise RuntimeError("CompletionSignal was disposed while waiting") from None
            raise

    def dispose(self) -> None:
        """Release resources held by pending waiters.

        Pending asyncio waiters are cancelled; blocking waiters on an unset
        signal are left to their timeouts.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            waiters, self._waiters = self._waiters, []

        for future in waiters:
            self._schedule(future, _abandon)

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise RuntimeError("CompletionSignal is disposed")

    @staticmethod
    def _schedule(future: asyncio.Future[None], action) -> None:
        loop = future.get_loop()
        try:
            loop.call_soon_threadsafe(action, future)
        except RuntimeError:
            # Waiter's loop already closed; nobody is left to resume.
            logger.debug("Skipping waiter on closed event loop")

    def __enter__(self) -> CompletionSignal:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "set" if self.is_set else "unset"
        if self._disposed:
            state += ", disposed"
        return f"CompletionSignal({state})"
