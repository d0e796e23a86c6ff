from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

PollTick = Callable[[], Awaitable[bool]]


class PollScheduler:
    """One cancellable periodic asyncio task per task id.

    A tick returns ``True`` to keep polling and ``False`` to stop.
    """

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.Task[None]] = {}

    def start(self, task_id: str, tick: PollTick, interval: float) -> None:
        self.cancel(task_id)
        handle = asyncio.create_task(self._run(tick, interval), name=f"poll:{task_id}")
        self._handles[task_id] = handle
        handle.add_done_callback(lambda done: self._forget(task_id, done))
        logger.debug("Polling started", extra={"task_id": task_id, "interval": interval})

    def is_polling(self, task_id: str) -> bool:
        handle = self._handles.get(task_id)
        return handle is not None and not handle.done()

    def cancel(self, task_id: str) -> None:
        handle = self._handles.pop(task_id, None)
        # A tick that stops its own loop just returns.
        if handle is None or handle.done() or handle is asyncio.current_task():
            return
        handle.cancel()
        logger.debug("Polling cancelled", extra={"task_id": task_id})

    async def cancel_all(self) -> None:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()
        await asyncio.gather(*handles, return_exceptions=True)

    @staticmethod
    async def _run(tick: PollTick, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if not await tick():
                return

    def _forget(self, task_id: str, handle: asyncio.Task[None]) -> None:
        if self._handles.get(task_id) is handle:
            self._handles.pop(task_id, None)
        if not handle.cancelled() and handle.exception() is not None:
            logger.error(
                "Polling loop crashed",
                extra={"task_id": task_id},
                exc_info=handle.exception(),
            )
