"""
Synthetic upload progress
The finalize PUT reports no byte-level progress, so the pipeline shows an
estimate that creeps toward a ceiling and only reaches 1.0 on completion.
"""

import asyncio
import contextlib
import logging
from typing import Callable, Optional

from incidentwatch.core.config import Settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class ProgressEstimator:
    """
    Monotonic progress estimate driven by a periodic asyncio task.

    Each tick moves ``current`` to
    ``current + max(min_step, (ceiling - current) * rate)``, staying strictly
    below ``ceiling``; when ``min_step`` would overshoot, the step shrinks
    geometrically instead. ``complete()`` snaps to 1.0, ``abort()`` resets to
    a failure value; both stop the tick task.

    Usage:
        async with ProgressEstimator(on_progress=print) as progress:
            await do_transfer()
            progress.complete()
    """

    def __init__(
        self,
        ceiling: float = 0.9,
        rate: float = 0.05,
        min_step: float = 0.01,
        tick_interval_ms: int = 280,
        initial: float = 0.0,
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Initialize estimator.

        Args:
            ceiling: Upper bound ticking never reaches (0 < ceiling <= 1)
            rate: Fraction of the remaining gap covered per tick (0 < rate <= 1)
            min_step: Smallest step while it does not overshoot the ceiling
            tick_interval_ms: Delay between ticks
            initial: Value shown as soon as ticking starts
            on_progress: Called with every new value
        """
        if not 0 < ceiling <= 1:
            raise ValueError(f"ceiling must be in (0, 1], got {ceiling}")
        if not 0 < rate <= 1:
            raise ValueError(f"rate must be in (0, 1], got {rate}")
        if min_step < 0:
            raise ValueError(f"min_step must be >= 0, got {min_step}")
        if tick_interval_ms <= 0:
            raise ValueError(f"tick_interval_ms must be > 0, got {tick_interval_ms}")
        if not 0 <= initial < ceiling:
            raise ValueError(f"initial must be in [0, ceiling), got {initial}")

        self.ceiling = ceiling
        self.rate = rate
        self.min_step = min_step
        self.tick_interval_ms = tick_interval_ms
        self.initial = initial
        self.on_progress = on_progress

        self._value = 0.0
        self._task: Optional[asyncio.Task] = None
        self._stopped = True
        self._completed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        on_progress: Optional[ProgressCallback] = None
    ) -> "ProgressEstimator":
        return cls(
            ceiling=settings.progress_ceiling,
            rate=settings.progress_rate,
            min_step=settings.progress_min_step,
            tick_interval_ms=settings.progress_tick_interval_ms,
            initial=settings.progress_initial,
            on_progress=on_progress,
        )

    @property
    def value(self) -> float:
        return self._value

    @property
    def running(self) -> bool:
        return self._task is not None and not self._stopped

    @property
    def completed(self) -> bool:
        return self._completed

    def next_value(self, current: float) -> float:
        """Value following ``current``; never reaches the ceiling."""
        gap = self.ceiling - current
        if gap <= 0:
            return current
        step = max(self.min_step, gap * self.rate)
        if current + step >= self.ceiling:
            step = gap * self.rate
        candidate = current + step
        return candidate if candidate < self.ceiling else current

    def tick(self) -> float:
        """Advance one step. No-op once completed."""
        if not self._completed:
            self._set(self.next_value(self._value))
        return self._value

    def start(self) -> None:
        """Show the initial value and begin ticking on the running loop."""
        if self.running:
            raise RuntimeError("ProgressEstimator already running")
        self._stopped = False
        self._completed = False
        self._set(max(self._value, self.initial))
        self._task = asyncio.get_running_loop().create_task(self._run())

    def complete(self) -> None:
        """Stop ticking and report 1.0."""
        self._stop()
        self._completed = True
        self._set(1.0)

    def abort(self, failure_value: float = 0.0) -> None:
        """Stop ticking and reset to ``failure_value``."""
        self._stop()
        self._completed = False
        self._set(failure_value)

    async def aclose(self) -> None:
        """Stop ticking and wait until the tick task has finished."""
        self._stop()
        task, self._task = self._task, None
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> "ProgressEstimator":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self._stopped:
            self.abort()
        await self.aclose()

    async def _run(self) -> None:
        interval = self.tick_interval_ms / 1000
        while not self._stopped:
            await asyncio.sleep(interval)
            if self._stopped:
                return
            self.tick()

    def _stop(self) -> None:
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _set(self, value: float) -> None:
        self._value = value
        if self.on_progress is not None:
            self.on_progress(value)
