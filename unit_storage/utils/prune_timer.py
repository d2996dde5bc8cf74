"""
A restartable periodic task used by the cache and key registries to sweep
expired entries.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

log = logging.getLogger(__name__)


class PruneTimer:
    """
    Runs ``callback`` every ``interval_ms`` on the running event loop.

    ``pause`` cancels the task but keeps the interval so ``resume`` can restart
    it; ``stop`` also forgets the interval, making ``resume`` a no-op until
    ``start`` is called again.
    """

    def __init__(
        self, callback: Callable[[], Any | Awaitable[Any]], name: str = "prune"
    ):
        self._callback = callback
        self._name = name
        self._interval_ms: int | None = None
        self._task: asyncio.Task | None = None

    @property
    def interval_ms(self) -> int | None:
        return self._interval_ms

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_ms: int) -> None:
        """Starts (or restarts) the timer. Must be called inside an event loop."""
        if interval_ms <= 0:
            raise ValueError("Prune interval must be positive.")
        self._interval_ms = interval_ms
        self._spawn()

    def pause(self) -> None:
        self._cancel()

    def resume(self) -> None:
        if self._interval_ms:
            self._spawn()

    def stop(self) -> None:
        self._cancel()
        self._interval_ms = None

    def _spawn(self) -> None:
        self._cancel()
        self._task = asyncio.get_running_loop().create_task(self._loop())
        log.debug(f"Started {self._name} timer ({self._interval_ms} ms).")

    def _cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _loop(self) -> None:
        interval_s = self._interval_ms / 1000
        while True:
            await asyncio.sleep(interval_s)
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.warning(f"Error in {self._name} sweep: {e}")
