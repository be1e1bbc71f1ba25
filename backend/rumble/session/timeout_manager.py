"""Auto-cancel timers for public battles that never launch."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

# Callback type: (battle_id) -> Awaitable[None]
TimeoutCallback = Callable[[str], Awaitable[None]]

DEFAULT_JOIN_TIMEOUT_SECONDS = 600.0


class JoinTimeoutManager:
    """Manage one-shot join timeouts keyed by battle id.

    The manager only keeps time. Whether the battle is still eligible for
    cancellation when the timer fires is decided by the callback, against the
    latest stored record.
    """

    def __init__(self, on_timeout: TimeoutCallback, timeout_seconds: float = DEFAULT_JOIN_TIMEOUT_SECONDS) -> None:
        self._on_timeout = on_timeout
        self._timeout_seconds = timeout_seconds
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def schedule(self, battle_id: str, seconds: float | None = None) -> None:
        """Start (or restart) the timeout for a battle."""
        self.cancel(battle_id)
        delay = self._timeout_seconds if seconds is None else max(0.0, seconds)
        self._tasks[battle_id] = asyncio.create_task(self._run_timer(battle_id, delay))

    def has_timer(self, battle_id: str) -> bool:
        task = self._tasks.get(battle_id)
        return task is not None and not task.done()

    def cancel(self, battle_id: str) -> None:
        task = self._tasks.pop(battle_id, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for battle_id in list(self._tasks):
            self.cancel(battle_id)

    async def _run_timer(self, battle_id: str, seconds: float) -> None:
        try:
            await asyncio.sleep(seconds)
            # drop the entry first so the callback cannot cancel its own task
            if self._tasks.get(battle_id) is asyncio.current_task():
                del self._tasks[battle_id]
            await self._on_timeout(battle_id)
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("join timeout callback failed", battle_id=battle_id)
