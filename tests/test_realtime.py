"""Tests for scheduled tasks and the realtime analyzer."""

import asyncio

import pytest

from gateway_client.realtime import PLACEHOLDER_SCORES, RealtimeAnalyzer
from gateway_client.visibility import VisibilityTracker
from shared.errors import GatewayError
from shared.scheduling import PeriodicTask


@pytest.mark.asyncio
async def test_periodic_task_runs_when_due(clock):
    runs = []

    async def callback():
        runs.append(clock.now())

    task = PeriodicTask("tick", 5, callback, clock)
    assert await task.run_pending() is False

    task.start()
    assert await task.run_pending() is True
    assert await task.run_pending() is False
    clock.advance(5)
    assert await task.run_pending() is True
    assert len(runs) == 2


@pytest.mark.asyncio
async def test_periodic_task_survives_callback_errors(clock):
    async def callback():
        raise RuntimeError("boom")

    task = PeriodicTask("tick", 1, callback, clock)
    task.start()

    assert await task.run_pending() is True
    assert task.run_count == 1
    assert task.active


def test_periodic_task_rejects_non_positive_interval(clock):
    async def callback():
        pass

    with pytest.raises(ValueError):
        PeriodicTask("tick", 0, callback, clock)


class ScriptedAnalyzer:
    def __init__(self):
        self.calls = []
        self.gates = {}

    async def __call__(self, image_data):
        self.calls.append(image_data)
        gate = self.gates.get(image_data)
        if gate is not None:
            await gate.wait()
        return {"comfort": len(self.calls), "image": image_data}


@pytest.mark.asyncio
async def test_tick_commits_result_for_active_subject(clock):
    analyze = ScriptedAnalyzer()
    updates = []
    analyzer = RealtimeAnalyzer(
        analyze, VisibilityTracker(True), clock, on_update=lambda s, r: updates.append((s, r))
    )

    assert analyzer.current("frame-1") == PLACEHOLDER_SCORES

    analyzer.set_subject("frame-1", "img-1")
    result = await analyzer.tick()

    assert result == {"comfort": 1, "image": "img-1"}
    assert analyzer.current() == result
    assert updates == [("frame-1", result)]


@pytest.mark.asyncio
async def test_ticks_inside_stale_window_reuse_result(clock):
    analyze = ScriptedAnalyzer()
    analyzer = RealtimeAnalyzer(analyze, VisibilityTracker(True), clock, stale_window=3)
    analyzer.set_subject("frame-1", "img-1")

    await analyzer.tick()
    clock.advance(1)
    analyzer.touch()
    await analyzer.tick()
    clock.advance(3)
    analyzer.touch()
    await analyzer.tick()

    assert analyze.calls == ["img-1", "img-1"]


@pytest.mark.asyncio
async def test_tick_skipped_while_hidden_or_idle(clock):
    analyze = ScriptedAnalyzer()
    tracker = VisibilityTracker(False)
    analyzer = RealtimeAnalyzer(analyze, tracker, clock, idle_timeout=30)
    analyzer.set_subject("frame-1", "img-1")

    assert await analyzer.tick() is None

    tracker.set_visible(True)
    clock.advance(31)
    assert await analyzer.tick() is None
    assert analyze.calls == []

    analyzer.touch()
    assert await analyzer.tick() is not None


@pytest.mark.asyncio
async def test_subject_change_cancels_and_drops_old_result(clock):
    analyze = ScriptedAnalyzer()
    analyze.gates["img-1"] = asyncio.Event()
    analyzer = RealtimeAnalyzer(analyze, VisibilityTracker(True), clock)

    analyzer.set_subject("frame-1", "img-1")
    stale = asyncio.create_task(analyzer.tick())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert analyzer.dedup.in_flight("frame-1")

    analyzer.set_subject("frame-2", "img-2")

    assert await stale is None
    assert "frame-1" not in analyzer.latest

    fresh = await analyzer.tick()
    assert fresh["image"] == "img-2"


@pytest.mark.asyncio
async def test_gateway_errors_keep_previous_result(clock):
    calls = 0

    async def analyze(image_data):
        nonlocal calls
        calls += 1
        if calls > 1:
            raise GatewayError("Gateway unreachable")
        return {"comfort": 90}

    analyzer = RealtimeAnalyzer(analyze, VisibilityTracker(True), clock, stale_window=1)
    analyzer.set_subject("frame-1", "img-1")
    await analyzer.tick()
    clock.advance(2)
    analyzer.touch()

    assert await analyzer.tick() is None
    assert analyzer.current() == {"comfort": 90}


@pytest.mark.asyncio
async def test_start_and_stop(clock):
    analyze = ScriptedAnalyzer()
    analyzer = RealtimeAnalyzer(analyze, VisibilityTracker(True), clock, interval=5)
    analyzer.set_subject("frame-1", "img-1")

    analyzer.start()
    for _ in range(5):
        await asyncio.sleep(0)
    await analyzer.stop()

    assert analyze.calls
    assert not analyzer.task.active
