"""Cooperative cancellation shared by the indexing pipeline.

A single :class:`CancellationToken` is created per run and threaded through
every call that may suspend. Stop requests may come from any thread (signal
handlers, watchdog callbacks), so the flag is a ``threading.Event``.
"""

import asyncio
import threading
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from .exceptions import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """Thread-safe cancellation flag with callbacks."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")

    def check(self) -> None:
        """Raise if cancellation was requested.

        Raises:
            OperationCancelledError: If the token is cancelled
        """
        if self._event.is_set():
            raise OperationCancelledError()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback fired on cancel.

        The callback runs immediately when the token is already cancelled.

        Returns:
            A function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def remove() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return remove

        callback()
        return lambda: None

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` and abort it if the token is cancelled meanwhile.

        The in-flight task is cancelled (which closes any outbound HTTP
        request it is awaiting) and :class:`OperationCancelledError` raised.

        Raises:
            OperationCancelledError: If cancelled before or during the await
        """
        if self.is_cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError()

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(awaitable)
        cancelled = loop.create_future()

        def _on_cancel() -> None:
            loop.call_soon_threadsafe(_resolve)

        def _resolve() -> None:
            if not cancelled.done():
                cancelled.set_result(None)

        unregister = self.add_callback(_on_cancel)
        try:
            await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            unregister()
            if not cancelled.done():
                cancelled.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise OperationCancelledError()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early on cancellation.

        Raises:
            OperationCancelledError: If cancelled before or during the sleep
        """
        await self.guard(asyncio.sleep(delay))


async def run_cancellable(
    awaitable: Awaitable[T], token: CancellationToken | None
) -> T:
    """Await ``awaitable`` under ``token`` when one is supplied."""
    if token is None:
        return await awaitable
    return await token.guard(awaitable)
