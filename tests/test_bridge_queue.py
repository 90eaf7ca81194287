"""Execution queue tests — FIFO, one in flight, holds, failure isolation.

Learn: RecordingEffect logs start/end times from the loop clock and keeps
a running count of concurrent handlers, so overlap would show up as
max_active > 1 regardless of scheduling luck.
"""

import asyncio

import pytest

from mxeaez.bridge.queue import EffectQueue, QueuedEffect
from mxeaez.bridge.registry import Effect, EffectContext
from mxeaez.events import Viewer


class Tracker:
    def __init__(self):
        self.log: list[tuple[str, str, float]] = []
        self.active = 0
        self.max_active = 0


class RecordingEffect(Effect):
    def __init__(self, item_id, tracker, hold_ms=0, work=0.0, fail=False):
        super().__init__(item_id, hold_ms)
        self.tracker = tracker
        self.work = work
        self.fail = fail

    async def apply(self, ctx):
        t = self.tracker
        loop = asyncio.get_running_loop()
        t.active += 1
        t.max_active = max(t.max_active, t.active)
        t.log.append(("start", self.item_id, loop.time()))
        try:
            await asyncio.sleep(self.work)
            if self.fail:
                raise RuntimeError("effect exploded")
        finally:
            t.active -= 1
            t.log.append(("end", self.item_id, loop.time()))


def _item(effect):
    ctx = EffectContext(item_id=effect.item_id, viewer=Viewer(login="alice"))
    return QueuedEffect(effect=effect, context=ctx, hold_ms=effect.hold_ms)


def _starts(tracker):
    return [name for kind, name, _ in tracker.log if kind == "start"]


@pytest.mark.asyncio
async def test_fifo_order():
    tracker = Tracker()
    queue = EffectQueue()
    for name in ("a", "b", "c", "d"):
        queue.enqueue(_item(RecordingEffect(name, tracker, work=0.01)))
    await queue.drain()
    assert _starts(tracker) == ["a", "b", "c", "d"]


@pytest.mark.asyncio
async def test_never_more_than_one_in_flight():
    tracker = Tracker()
    queue = EffectQueue()
    for i in range(5):
        queue.enqueue(_item(RecordingEffect(f"e{i}", tracker, work=0.01)))
    await queue.drain()
    assert tracker.max_active == 1


@pytest.mark.asyncio
async def test_hold_delays_next_start():
    tracker = Tracker()
    queue = EffectQueue()
    queue.enqueue(_item(RecordingEffect("a", tracker, hold_ms=80)))
    queue.enqueue(_item(RecordingEffect("b", tracker)))
    await queue.drain()

    a_end = next(t for kind, name, t in tracker.log if (kind, name) == ("end", "a"))
    b_start = next(t for kind, name, t in tracker.log if (kind, name) == ("start", "b"))
    assert b_start - a_end >= 0.07


@pytest.mark.asyncio
async def test_failure_does_not_break_chain():
    tracker = Tracker()
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    queue = EffectQueue(sleep=fake_sleep)
    queue.enqueue(_item(RecordingEffect("bad", tracker, hold_ms=3000, fail=True)))
    queue.enqueue(_item(RecordingEffect("good", tracker)))
    await queue.drain()

    assert _starts(tracker) == ["bad", "good"]
    # The hold still applies after a failed handler
    assert sleeps == [3.0]


@pytest.mark.asyncio
async def test_enqueue_does_not_wait():
    tracker = Tracker()
    queue = EffectQueue()
    task = queue.enqueue(_item(RecordingEffect("slow", tracker, work=0.05)))
    assert not task.done()
    assert queue.pending == 1
    await queue.drain()
    assert queue.idle


@pytest.mark.asyncio
async def test_in_flight_reports_current_item():
    gate = asyncio.Event()

    class Blocking(Effect):
        async def apply(self, ctx):
            await gate.wait()

    queue = EffectQueue()
    queue.enqueue(_item(Blocking("blocker")))
    queue.enqueue(_item(Blocking("next")))
    await asyncio.sleep(0.01)

    assert queue.in_flight == "blocker"
    assert queue.pending == 2

    gate.set()
    await queue.drain()
    assert queue.in_flight is None


@pytest.mark.asyncio
async def test_close_cancels_outstanding():
    class Forever(Effect):
        async def apply(self, ctx):
            await asyncio.Event().wait()

    queue = EffectQueue()
    queue.enqueue(_item(Forever("stuck")))
    queue.enqueue(_item(Forever("waiting")))
    await asyncio.sleep(0.01)

    await queue.close()
    assert queue.idle
    assert queue.in_flight is None


@pytest.mark.asyncio
async def test_negative_hold_rejected():
    with pytest.raises(ValueError):
        RecordingEffect("bad", Tracker(), hold_ms=-1)
