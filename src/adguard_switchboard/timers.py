"""
Auto-revert timer for switch groups.

A group switched away from its default state arms a timer; when the timer
fires the group is driven back to its default. Deadlines are persisted so a
timer that was running at shutdown is finished (or expired) at the next start.
"""

import asyncio
import math
import time
from typing import Awaitable, Callable, Optional

from .audit_logger import AuditLogger, NullLogger
from .enums import TimerState
from .exceptions import StorageFailed
from .state_store import TimerSlots


MS_PER_MINUTE = 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


class AutoRevertTimer:
    """
    Single pending expiry per group.

    Idle means no deadline; Armed means a deadline is persisted and one
    expiry action is scheduled. Arming always cancels the pending action first.
    """

    COMPONENT = "AutoRevertTimer"

    def __init__(
        self,
        group_name: str,
        slots: TimerSlots,
        on_expire: Callable[[], Awaitable[None]],
        clock: Optional[Callable[[], int]] = None,
        logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the timer.

        Args:
            group_name: Name of the owning group (selects the durable slot)
            slots: Durable timer slots
            on_expire: Coroutine function run when the timer fires
            clock: Returns the current time in epoch milliseconds
            logger: Optional logger
            sleep: Coroutine function used to wait for the deadline
        """
        self._group_name = group_name
        self._slots = slots
        self._on_expire = on_expire
        self._clock = clock or now_ms
        self._logger = logger or NullLogger()
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._deadline: Optional[int] = None
        self._pending_minutes = 0

    @property
    def state(self) -> TimerState:
        if self._task is not None and not self._task.done():
            return TimerState.ARMED
        return TimerState.IDLE

    @property
    def deadline(self) -> Optional[int]:
        return self._deadline if self.state is TimerState.ARMED else None

    @property
    def pending_minutes(self) -> int:
        """Delay of the currently scheduled expiry, 0 when idle."""
        return self._pending_minutes if self.state is TimerState.ARMED else 0

    async def arm(self, minutes: int) -> None:
        """
        Start a new timer, replacing any pending one.

        Args:
            minutes: Delay before reverting; 0 clears the timer
        """
        minutes = max(0, int(minutes))
        if self._task is not None:
            self._logger.info(self.COMPONENT, f"Clearing existing timer for '{self._group_name}'")
        self._cancel_pending()

        if minutes == 0:
            self._logger.debug(self.COMPONENT, f"No timer for '{self._group_name}'")
            await self._write(0)
            return

        deadline = self._clock() + minutes * MS_PER_MINUTE
        self._logger.info(
            self.COMPONENT,
            f"Starting new timer for '{self._group_name}': {minutes} minutes",
            {"deadline": deadline},
        )
        await self._write(deadline)

        # Another arm may have run while the deadline was being written.
        self._cancel_pending()
        self._deadline = deadline
        self._pending_minutes = minutes
        self._task = asyncio.ensure_future(self._wait_and_expire(minutes * 60))

    async def expire(self) -> None:
        """Clear the persisted deadline and run the expiry action."""
        self._logger.info(self.COMPONENT, f"Timer expired for '{self._group_name}'")
        await self._write(0)
        await self._on_expire()

    async def restore_on_startup(self) -> None:
        """
        Resume a timer left over from a previous run.

        A missing or unreadable deadline is reset, a zero deadline is left
        alone, a past deadline expires immediately and a future deadline is
        re-armed with the remaining whole minutes (rounded up).
        """
        try:
            deadline = await self._slots.read(self._group_name)
        except StorageFailed as e:
            self._logger.warn(self.COMPONENT, f"Unreadable timer for '{self._group_name}'", {
                "code": e.code,
                "error": e.message,
            })
            deadline = None

        if deadline is None:
            await self._write(0)
            return
        if deadline == 0:
            return

        now = self._clock()
        if now >= deadline:
            self._logger.info(self.COMPONENT, f"Cleaning up expired timer for '{self._group_name}'")
            await self.expire()
            return

        remaining = math.ceil((deadline - now) / MS_PER_MINUTE)
        self._logger.info(
            self.COMPONENT,
            f"Restarting timer for '{self._group_name}' to expire in {remaining} minutes",
        )
        await self.arm(remaining)

    def cancel(self) -> None:
        """Drop the pending expiry without touching the persisted deadline."""
        self._cancel_pending()

    def _cancel_pending(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._deadline = None
        self._pending_minutes = 0

    async def _wait_and_expire(self, delay_seconds: float) -> None:
        await self._sleep(delay_seconds)
        # Detach first so a re-arm from the expiry path cannot cancel it.
        self._task = None
        self._deadline = None
        self._pending_minutes = 0
        try:
            await self.expire()
        except Exception as e:
            self._logger.log_error(
                self.COMPONENT,
                f"Expiry for '{self._group_name}' failed",
                error=e,
            )

    async def _write(self, deadline_ms: int) -> None:
        try:
            await self._slots.write(self._group_name, deadline_ms)
        except StorageFailed as e:
            self._logger.warn(self.COMPONENT, f"Failed to write timer for '{self._group_name}'", {
                "code": e.code,
                "error": e.message,
            })
