"""
Countdown timers for roulette sessions and private chats.
Owns one asyncio task per session/chat id.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], Awaitable[Optional[bool]]]
ExpireCallback = Callable[[], Awaitable[None]]


class TimerAlreadyRunningError(RuntimeError):
    """Raised when a countdown is started for an id that already has one."""


class SessionRegistry:
    """Maps session/chat ids to their running countdown."""

    def __init__(self, tick_seconds: float = 1.0):
        """
        Initialize registry.

        Args:
            tick_seconds: Seconds between two countdown ticks
        """
        self.tick_seconds = tick_seconds
        self._timers: Dict[str, asyncio.Task] = {}

    def start(
        self,
        timer_id: str,
        total_seconds: int,
        on_tick: TickCallback,
        on_expire: ExpireCallback,
    ) -> None:
        """
        Start a countdown.

        Every tick decrements the remaining counter and awaits
        ``on_tick(remaining)``. When remaining reaches 0, ``on_expire()`` is
        awaited once. If ``on_tick`` returns False the countdown stops
        silently without expiring.

        Args:
            timer_id: Session or chat id
            total_seconds: Number of ticks before expiry
            on_tick: Called with the remaining seconds after each tick
            on_expire: Called once when the countdown reaches zero

        Raises:
            TimerAlreadyRunningError: If a live countdown exists for timer_id
        """
        if self.is_running(timer_id):
            raise TimerAlreadyRunningError(f"Countdown already running for {timer_id}")

        task = asyncio.create_task(
            self._countdown(timer_id, total_seconds, on_tick, on_expire),
            name=f"countdown:{timer_id}",
        )
        self._timers[timer_id] = task

    def cancel(self, timer_id: str) -> bool:
        """
        Stop and forget a countdown. Safe to call when absent.

        Returns:
            True if a live countdown was cancelled
        """
        task = self._timers.pop(timer_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def is_running(self, timer_id: str) -> bool:
        task = self._timers.get(timer_id)
        return task is not None and not task.done()

    @property
    def active_count(self) -> int:
        return sum(1 for task in self._timers.values() if not task.done())

    async def shutdown(self) -> None:
        """Cancel every countdown and wait for the tasks to finish."""
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Cancelled {len(tasks)} countdown(s)")

    def _release(self, timer_id: str) -> None:
        # Only drop the handle if it still belongs to this task
        if self._timers.get(timer_id) is asyncio.current_task():
            del self._timers[timer_id]

    async def _countdown(
        self,
        timer_id: str,
        total_seconds: int,
        on_tick: TickCallback,
        on_expire: ExpireCallback,
    ) -> None:
        remaining = total_seconds
        while remaining > 0:
            await asyncio.sleep(self.tick_seconds)
            remaining -= 1
            try:
                keep_going = await on_tick(remaining)
            except Exception as e:
                logger.error(f"Countdown tick failed for {timer_id}: {e}", exc_info=True)
                continue
            if keep_going is False:
                logger.debug(f"Countdown {timer_id} stopped at {remaining}s")
                self._release(timer_id)
                return

        # Released before expiring so the expiry path can call cancel() safely
        self._release(timer_id)
        try:
            await on_expire()
        except Exception as e:
            logger.error(f"Countdown expiry failed for {timer_id}: {e}", exc_info=True)
