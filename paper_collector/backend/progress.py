"""
Simulated progress reporting.

The extraction service gives no progress feedback, so while a request
is in flight a :class:`ProgressEmitter` advances a counter on a fixed
interval and reports the resulting percentage.  The emitter stops on
its own just short of the ceiling and never reports 100%; the
orchestrator sets the final value once the real outcome is known.

The emitter runs as an asyncio task on the caller's event loop, so its
ticks only ever interleave with the orchestration code at ``await``
points.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProgressState:
    status: str = ''
    completed: int = 0
    total: int = 100
    percentage: int = 0

    def copy(self) -> 'ProgressState':
        return replace(self)


ProgressCallback = Callable[[ProgressState], None]


def notify_progress(callback: Optional[ProgressCallback], state: ProgressState) -> None:
    """Push a copy of ``state`` to ``callback``, logging listener errors."""
    if callback is None:
        return
    try:
        callback(state.copy())
    except Exception as e:
        logger.error(f"Progress listener failed: {e}")


class ProgressEmitter:
    """Time-driven progress counter for a single research run."""

    def __init__(
        self,
        state: ProgressState,
        on_progress: Optional[ProgressCallback],
        tick: float = 0.2,
        step: int = 2,
        stop_at: int = 95,
    ) -> None:
        self.state = state
        self.on_progress = on_progress
        self.tick = tick
        self.step = step
        self.stop_at = stop_at
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking.  Must be called from a running event loop."""
        if self.active:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Stop ticking.  Safe to call repeatedly."""
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    def advance(self) -> None:
        self.state.completed += self.step
        self.state.percentage = min(99, math.floor(self.state.completed / self.state.total * 100))
        notify_progress(self.on_progress, self.state)

    async def _run(self) -> None:
        while self.state.completed < self.stop_at:
            await asyncio.sleep(self.tick)
            self.advance()
        logger.debug(f"Progress emitter reached {self.state.percentage}%, stopping")
