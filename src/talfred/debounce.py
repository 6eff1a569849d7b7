"""Debounced callables for bursty page events.

Each call cancels the pending one and schedules a fresh delayed call, so a
burst collapses into a single trailing invocation once the input has been
quiet for ``wait`` seconds.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Wraps *fn* so bursts of calls produce one trailing call.

    Attributes:
        wait: Quiet period in seconds.
        invocations: How many times *fn* has actually been called.
    """

    def __init__(self, fn: Callable[..., Any], wait: float = 0.5) -> None:
        self._fn = fn
        self.wait = wait
        self.invocations = 0
        self._pending: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        """Schedule (or reschedule) the trailing call.

        Must be called from inside a running event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._pending = loop.create_task(self._fire(args, kwargs))

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        task = self._pending
        self._pending = None
        if task is not None and not task.done():
            task.cancel()

    async def join(self) -> None:
        """Wait until no call is pending (including ones scheduled meanwhile)."""
        while (task := self._pending) is not None and not task.done():
            await asyncio.wait({task})

    async def _fire(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        await asyncio.sleep(self.wait)
        self.invocations += 1
        try:
            result = self._fn(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Debounced call to %r failed", self._fn)


def debounce(fn: Callable[..., Any], wait: float = 0.5) -> Debouncer:
    """Functional form of :class:`Debouncer`."""
    return Debouncer(fn, wait)
