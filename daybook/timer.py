"""Focus timer state machine.

Remaining time is always recomputed from ``now - start_time`` of the stored
session, never counted down in memory, so a timer picks up where it was
after a restart or from another process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from daybook.clock import Clock
from daybook.errors import InvalidTransition
from daybook.models import FOCUS_SESSION_SECONDS, FocusSession, TimerSnapshot, TimerState
from daybook.progress import round_half_up
from daybook.repositories import FocusSessionRepository

log = logging.getLogger(__name__)


def format_clock(seconds: int) -> str:
    """Render seconds as zero-padded ``MM:SS``."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


class Ticker:
    """Cooperative periodic callback on the running event loop. Cancelable."""

    def __init__(self, callback: Callable[[], Awaitable[None]], interval: float = 1.0) -> None:
        self.callback = callback
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self) -> None:
        """Schedule the loop. Must be called from inside a running event loop."""
        if self.running:
            return
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.interval)
            if self._stopped:
                break
            await self.callback()

    def stop(self) -> None:
        """Stop ticking. Safe to call from within the callback itself."""
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # The callback's own task ends at the loop check instead
        if task is not current:
            task.cancel()

    async def wait(self) -> None:
        """Wait until the loop ends; re-raises errors from the callback."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._stopped:
                raise


class TimerEngine:
    """Drives one focus session through IDLE, RUNNING, PAUSED and COMPLETED.

    Pausing is a display concern: it freezes the shown values and stops the
    ticker but leaves the stored ``start_time`` alone, so wall-clock time keeps
    counting towards completion.
    """

    def __init__(
        self,
        sessions: FocusSessionRepository,
        clock: Clock,
        *,
        duration: int = FOCUS_SESSION_SECONDS,
        tick_interval: float = 1.0,
    ) -> None:
        self._sessions = sessions
        self._clock = clock
        self.duration = duration
        self.tick_interval = tick_interval
        self.state = TimerState.IDLE
        self.session: Optional[FocusSession] = None
        self._frozen_elapsed: Optional[int] = None
        self._ticker: Optional[Ticker] = None

    # -- derived values ------------------------------------------------------

    def _live_elapsed(self) -> int:
        assert self.session is not None
        delta = self._clock.now() - self.session.start_time
        return max(0, int(delta.total_seconds()))

    @property
    def elapsed_seconds(self) -> int:
        if self.session is None:
            return 0
        if self.state is TimerState.COMPLETED:
            return self.session.duration
        if self._frozen_elapsed is not None:
            return self._frozen_elapsed
        return self._live_elapsed()

    @property
    def seconds_remaining(self) -> int:
        if self.session is None:
            return self.duration
        return max(0, self.session.duration - self.elapsed_seconds)

    @property
    def progress_percent(self) -> int:
        if self.session is None:
            return 0
        if self.session.duration <= 0:
            return 100
        percent = round_half_up(100 * self.elapsed_seconds / self.session.duration)
        return min(100, max(0, percent))

    @property
    def formatted(self) -> str:
        return format_clock(self.seconds_remaining)

    def snapshot(self) -> TimerSnapshot:
        return TimerSnapshot(
            state=self.state,
            session_id=self.session.id if self.session else None,
            duration=self.session.duration if self.session else self.duration,
            elapsed_seconds=self.elapsed_seconds,
            seconds_remaining=self.seconds_remaining,
            progress_percent=self.progress_percent,
            formatted=self.formatted,
        )

    # -- transitions ---------------------------------------------------------

    async def restore(self) -> TimerState:
        """Adopt the stored current session, if any, as RUNNING.

        A session whose time already ran out completes on the next tick.
        """
        self._stop_ticker()
        self._frozen_elapsed = None
        self.session = await self._sessions.get_current_focus_session()
        self.state = TimerState.RUNNING if self.session else TimerState.IDLE
        if self.session is not None:
            log.info("Timer restored session %s.", self.session.id)
        return self.state

    async def start(self) -> FocusSession:
        """Open a new session. Raises Conflict if another is stored as current."""
        if self.state in (TimerState.RUNNING, TimerState.PAUSED):
            raise InvalidTransition(self.state.value, "start")
        session = await self._sessions.start_focus_session(self.duration)
        self.session = session
        self._frozen_elapsed = None
        self.state = TimerState.RUNNING
        log.info("Timer started session %s.", session.id)
        return session

    def pause(self) -> None:
        if self.state is not TimerState.RUNNING:
            raise InvalidTransition(self.state.value, "pause")
        self._frozen_elapsed = self._live_elapsed()
        self.state = TimerState.PAUSED
        self._stop_ticker()
        log.info("Timer paused at %d s.", self._frozen_elapsed)

    def resume(self) -> None:
        if self.state is not TimerState.PAUSED:
            raise InvalidTransition(self.state.value, "resume")
        self._frozen_elapsed = None
        self.state = TimerState.RUNNING
        log.info("Timer resumed.")

    async def tick(self) -> TimerState:
        """Complete the session once its time is up. No-op unless RUNNING."""
        if self.state is not TimerState.RUNNING or self.session is None:
            return self.state
        elapsed = self._live_elapsed()
        if self.session.duration - elapsed <= 0:
            await self._complete(elapsed)
        return self.state

    async def finish(self) -> FocusSession:
        """Close the session early, recording the wall-clock time spent so far."""
        if self.state not in (TimerState.RUNNING, TimerState.PAUSED) or self.session is None:
            raise InvalidTransition(self.state.value, "finish")
        await self._complete(self._live_elapsed())
        return self.session

    def reset(self) -> None:
        """Forget the session locally. The stored session stays incomplete."""
        self._stop_ticker()
        self.session = None
        self._frozen_elapsed = None
        self.state = TimerState.IDLE
        log.info("Timer reset.")

    async def _complete(self, elapsed: int) -> None:
        assert self.session is not None
        self.session = await self._sessions.complete_focus_session(self.session.id, elapsed)
        self._frozen_elapsed = None
        self.state = TimerState.COMPLETED
        self._stop_ticker()
        log.info("Timer completed session %s.", self.session.id)

    # -- ticking -------------------------------------------------------------

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    async def run(
        self, on_tick: Optional[Callable[[TimerSnapshot], None]] = None
    ) -> TimerState:
        """Tick every ``tick_interval`` seconds until the timer leaves RUNNING.

        Returns the state it stopped in: COMPLETED, or PAUSED/IDLE if paused or
        reset meanwhile.
        """
        if self.state is not TimerState.RUNNING:
            return self.state

        async def step() -> None:
            await self.tick()
            if on_tick is not None:
                on_tick(self.snapshot())

        ticker = Ticker(step, self.tick_interval)
        self._ticker = ticker
        ticker.start()
        try:
            await ticker.wait()
        finally:
            ticker.stop()
            if self._ticker is ticker:
                self._ticker = None
        return self.state
