"""Serial execution of pipeline runs for the webhook server.

A run builds, deploys and releases one commit as a single sequential thread
of control, and the deployment target is shared, so the server never runs
two at once. Accepted events wait their turn and run in arrival order.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from src.release_pipeline.trigger.models import TriggerEvent


logger = logging.getLogger(__name__)


class SerialRunQueue:
    """Runs submitted events one at a time, first come first served.

    Example:
        >>> queue = SerialRunQueue(run_pipeline)
        >>> queue.submit(first_event)
        >>> queue.submit(second_event)  # starts once the first run ends
        >>> await queue.drain()
    """

    def __init__(self, run_event: Callable[[TriggerEvent], Awaitable[Any]]):
        self._run_event = run_event
        self._lock: Optional[asyncio.Lock] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Runs queued or in progress."""
        return len(self._tasks)

    def submit(self, event: TriggerEvent) -> asyncio.Task:
        """Queue a run. Must be called from the server's event loop."""
        if self._lock is None:
            # Bound to the running loop on first use
            self._lock = asyncio.Lock()

        task = asyncio.create_task(self._run(event, self._lock))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            "Queued pipeline run",
            extra={"commit_sha": event.commit_sha, "pending": len(self._tasks)},
        )
        return task

    async def drain(self) -> None:
        """Wait for every queued run to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, event: TriggerEvent, lock: asyncio.Lock) -> None:
        async with lock:
            try:
                await self._run_event(event)
            except Exception:
                logger.exception(
                    "Pipeline run crashed",
                    extra={"commit_sha": event.commit_sha},
                )
