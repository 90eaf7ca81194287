"""Serial effect queue — at most one effect in flight, FIFO.

Learn: Effects share physical resources (the webcam source, the mic, the
TTS voice), so they must run one after another. Each enqueued effect
becomes a task that first waits for the task before it, then runs its
handler, then sleeps for the effect's hold:

    enqueue(A) ─→ [A.apply ... hold A]
    enqueue(B) ─→                      [B.apply ... hold B]

The queue only keeps the tail task; every new task chains off it. A
failing handler is logged and the hold still runs, so one broken effect
cannot wedge the chain.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from mxeaez.bridge.registry import Effect, EffectContext

logger = structlog.get_logger()


@dataclass(frozen=True)
class QueuedEffect:
    effect: Effect
    context: EffectContext
    hold_ms: int = 0

    @property
    def item_id(self) -> str:
        return self.effect.item_id


class EffectQueue:
    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep
        self._tail: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self.in_flight: Optional[str] = None

    @property
    def pending(self) -> int:
        """Tasks not yet finished, including the one in flight."""
        return len(self._tasks)

    @property
    def idle(self) -> bool:
        return not self._tasks

    def enqueue(self, item: QueuedEffect) -> asyncio.Task:
        """Append to the chain. Returns without waiting for it to run."""
        previous = self._tail
        task = asyncio.create_task(self._run(previous, item))
        self._tail = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("queue.enqueued", item_id=item.item_id, pending=self.pending)
        return task

    async def _run(self, previous: Optional[asyncio.Task], item: QueuedEffect) -> None:
        # asyncio.wait never raises the previous task's error or cancellation
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        self.in_flight = item.item_id
        logger.info(
            "queue.start",
            item_id=item.item_id,
            viewer=item.context.viewer.label,
            hold_ms=item.hold_ms,
        )
        try:
            await item.effect.apply(item.context)
        except Exception as e:
            logger.error("queue.handler_failed", item_id=item.item_id, error=str(e))
        finally:
            try:
                if item.hold_ms > 0:
                    await self._sleep(item.hold_ms / 1000)
            finally:
                self.in_flight = None
                logger.info("queue.done", item_id=item.item_id)

    async def drain(self) -> None:
        """Wait until everything enqueued so far (and since) has finished."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    async def close(self) -> None:
        """Cancel everything still queued or running."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        self._tail = None
        self.in_flight = None
