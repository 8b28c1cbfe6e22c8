"""Cron-driven scheduler for recurring payment passes."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Set, Union

from croniter import croniter

from ...domain.errors import ConfigurationError
from ...domain.payments.entities import IntervalConfig

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]
CheckInterval = Union[str, IntervalConfig]

# Largest step each cron field can express
_MAX_INTERVAL = {"minute": 59, "hour": 23, "day": 31}


def to_cron_expression(interval: CheckInterval) -> str:
    """Translate a check interval into a cron expression.

    Raw strings are passed through after validation. Structured intervals map
    to: minute -> "*/N * * * *", hour -> "0 */N * * *", day -> "0 0 */N * *".

    Raises:
        ConfigurationError: If the expression is not valid cron, or a structured
            interval is too large for its unit.
    """
    if isinstance(interval, IntervalConfig):
        n = interval.interval_number
        limit = _MAX_INTERVAL[interval.interval_unit]
        if n > limit:
            raise ConfigurationError(
                f"An interval of {n} {interval.interval_unit}(s) cannot be "
                f"scheduled; the maximum is {limit}"
            )
        if interval.interval_unit == "minute":
            expression = f"*/{n} * * * *"
        elif interval.interval_unit == "hour":
            expression = f"0 */{n} * * *"
        else:
            expression = f"0 0 */{n} * *"
    else:
        expression = interval.strip()

    if not croniter.is_valid(expression):
        raise ConfigurationError(f"Invalid cron expression: {expression!r}")
    return expression


class ScheduledJob:
    """A controllable recurring job firing an async action on a cron schedule.

    Firings never wait for the previous action to finish, so passes may
    overlap. Stopping cancels future firings only; in-flight actions run to
    completion.
    """

    def __init__(
        self,
        action: Action,
        cron_expression: str,
        *,
        fire_immediately: bool = False,
        now: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.cron_expression = cron_expression
        self.firings = 0
        self._action = action
        self._fire_immediately = fire_immediately
        self._now = now
        self._sleep = sleep
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._in_flight: Set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> None:
        """Start firing. Must be called with a running event loop."""
        if self.running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Scheduled job started (%s)", self.cron_expression)

    def stop(self) -> None:
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        self._loop_task = None
        logger.info("Scheduled job stopped (%s)", self.cron_expression)

    async def wait_idle(self) -> None:
        """Wait until every action started so far has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _run(self) -> None:
        if self._fire_immediately:
            self._fire()

        cron = croniter(self.cron_expression, self._now())
        next_at = cron.get_next(float)
        while True:
            delay = next_at - self._now()
            if delay > 0:
                await self._sleep(delay)
            self._fire()

            # Instants missed while sleeping are not replayed
            now = self._now()
            next_at = cron.get_next(float)
            while next_at <= now:
                next_at = cron.get_next(float)

    def _fire(self) -> None:
        self.firings += 1
        task = asyncio.get_running_loop().create_task(self._invoke())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _invoke(self) -> None:
        try:
            await self._action()
        except Exception:
            logger.exception("Scheduled action failed (%s)", self.cron_expression)


def schedule(
    action: Action,
    interval: CheckInterval,
    *,
    fire_immediately: bool = False,
    now: Callable[[], float] = time.time,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ScheduledJob:
    """Create and start a ScheduledJob for `action`."""
    job = ScheduledJob(
        action,
        to_cron_expression(interval),
        fire_immediately=fire_immediately,
        now=now,
        sleep=sleep,
    )
    job.start()
    return job
