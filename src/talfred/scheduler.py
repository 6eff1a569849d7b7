"""Polling scheduler for recurring page tasks.

A single repeating timer ticks every ``tick_seconds`` and walks the task
pool.  Each task has its own interval and an ``is_executing`` flag: a task
whose previous run is still in flight is skipped, never double-invoked.
Tasks run concurrently with each other; the tick itself never waits on them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from talfred.errors import SchedulerTaskError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class RepeatingTimer:
    """Calls *callback* every *period* seconds until cancelled.

    Once ``cancel()`` returns, the callback is not called again, even if the
    underlying sleep has already finished.
    """

    def __init__(self, period: float, callback: Callable[[], None]) -> None:
        self.period = period
        self._callback = callback
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self._task is not None and not self._cancelled

    def start(self) -> None:
        if self._cancelled:
            msg = "a cancelled timer cannot be restarted"
            raise RuntimeError(msg)
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._loop())

    def cancel(self) -> None:
        self._cancelled = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.period)
            if self._cancelled:
                return
            self._callback()


@dataclass(eq=False)
class IntervalInstance:
    """A task registered with an :class:`IntervalManager`.

    Only ``stop()`` should be used to change it from outside.
    """

    name: str
    interval: float
    run: Callable[[], Awaitable[Any]]
    stop_when: Callable[[], bool]
    id: int
    last_run_time: float | None = None
    is_executing: bool = False
    failures: list[SchedulerTaskError] = field(default_factory=list)
    _manager: IntervalManager | None = field(default=None, repr=False)

    def stop(self) -> None:
        if self._manager is not None:
            self._manager.remove(self)


@dataclass
class SchedulerStats:
    ticks: int = 0
    executions: int = 0


class IntervalManager:
    """Owns the task pool and the timer that drives it.

    The timer starts with the first ``add()`` and stops when the pool
    empties.  Must be used from inside a running event loop.
    """

    def __init__(
        self,
        tick_seconds: float = 0.5,
        default_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tick_seconds = tick_seconds
        self.default_interval = default_interval
        self._clock = clock
        self._next_id = 0
        self._pool: dict[int, IntervalInstance] = {}
        self._timer: RepeatingTimer | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self.stats = SchedulerStats()

    @property
    def size(self) -> int:
        return len(self._pool)

    @property
    def running(self) -> bool:
        return self._timer is not None and self._timer.active

    def __contains__(self, instance: object) -> bool:
        return isinstance(instance, IntervalInstance) and (
            self._pool.get(instance.id) is instance
        )

    def add(
        self,
        name: str,
        run: Callable[[], Awaitable[Any]],
        interval: float | None = None,
        stop_when: Callable[[], bool] | None = None,
    ) -> IntervalInstance:
        """Register a recurring task and return its handle."""
        instance = IntervalInstance(
            name=name,
            interval=interval or self.default_interval,
            run=run,
            stop_when=stop_when or (lambda: False),
            id=self._next_id,
            _manager=self,
        )
        self._next_id += 1
        self._pool[instance.id] = instance
        logger.debug("Added interval task %s (id=%d)", name, instance.id)
        self.start()
        return instance

    def remove(self, instance: IntervalInstance) -> None:
        if self._pool.get(instance.id) is instance:
            del self._pool[instance.id]
            logger.debug("Removed interval task %s (id=%d)", instance.name, instance.id)
        if not self._pool:
            self.stop()

    def start(self) -> None:
        if self.running or not self._pool:
            return
        self._timer = RepeatingTimer(self.tick_seconds, self._tick)
        self._timer.start()

    def stop(self) -> None:
        """Stop ticking.  Work already in flight is left to finish."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def join(self) -> None:
        """Wait for every in-flight task execution to settle."""
        while self._inflight:
            await asyncio.wait(set(self._inflight))

    def _tick(self) -> None:
        self.stats.ticks += 1
        logger.debug(
            "interval manager stats: %s, pool size: %d", self.stats, self.size
        )
        now = self._clock()
        for instance in list(self._pool.values()):
            try:
                should_stop = instance.stop_when()
            except Exception as exc:
                logger.exception("stop_when for %s raised", instance.name)
                instance.failures.append(SchedulerTaskError(instance.name, exc))
                continue

            if should_stop:
                self.remove(instance)
            elif not instance.is_executing and (
                instance.last_run_time is None
                or now - instance.last_run_time >= instance.interval
            ):
                instance.is_executing = True
                self.stats.executions += 1
                task = asyncio.get_running_loop().create_task(self._execute(instance))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
            else:
                logger.debug("skip run for: %s", instance.name)

    async def _execute(self, instance: IntervalInstance) -> None:
        try:
            await instance.run()
        except Exception as exc:
            logger.exception("Scheduled task %s failed", instance.name)
            instance.failures.append(SchedulerTaskError(instance.name, exc))
        finally:
            # Either finished or failed: stamp and release.
            instance.last_run_time = self._clock()
            instance.is_executing = False
