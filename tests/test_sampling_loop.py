"""Sampling loop tests."""

import asyncio
import threading

import pytest

from libs.core.application.fusion_engine import FusionEngine
from libs.core.application.incident_machine import IncidentStateMachine
from libs.core.application.sampling_loop import (
    IntervalRefreshSignal,
    SamplingConfig,
    SamplingLoop,
)
from libs.core.domain.entities import BoundingBox, Detection, IncidentState
from tests.fakes import (
    FakeFrameSource,
    FakeHandle,
    ManualRefreshSignal,
    RecordingDispatcher,
    ScriptedModel,
    cold_frame,
    fire_frame,
    wait_for,
)


class _Harness:
    def __init__(self, grace_sec: float = 0.0) -> None:
        self.source = FakeFrameSource([cold_frame()])
        self.handle = FakeHandle()
        self.model = ScriptedModel()
        self.model.load()
        self.dispatcher = RecordingDispatcher()
        self.machine = IncidentStateMachine(self.dispatcher)
        self.refresh = ManualRefreshSignal()
        self.ticks: list[float] = []
        self.loop = SamplingLoop(
            read_frame=lambda: self.source.read_frame(self.handle),
            model=self.model,
            engine=FusionEngine(),
            machine=self.machine,
            refresh=self.refresh,
            config=SamplingConfig(grace_sec=grace_sec),
            on_tick=lambda frame, detections, score: self.ticks.append(
                frame.captured_at
            ),
        )

    def attempted(self) -> int:
        return self.loop.ticks_processed + self.loop.ticks_failed

    async def tick(self) -> None:
        before = self.attempted()
        self.refresh.fire()
        await wait_for(lambda: self.attempted() > before)


@pytest.mark.asyncio
async def test_five_fire_frames_alert_once() -> None:
    harness = _Harness()
    harness.source.push(*[fire_frame(captured_at=i) for i in range(7)])
    harness.loop.start()

    for _ in range(7):
        await harness.tick()
    await harness.loop.stop()

    incident = harness.machine.snapshot()
    assert incident.state == IncidentState.ALERTED
    assert len(harness.dispatcher.requests) == 1
    assert harness.loop.ticks_processed == 7


@pytest.mark.asyncio
async def test_failed_detection_leaves_incident_untouched() -> None:
    harness = _Harness()
    harness.source.push(*[fire_frame() for _ in range(4)])
    harness.loop.start()
    for _ in range(3):
        await harness.tick()
    before = harness.machine.snapshot()

    harness.model.results.append(RuntimeError("inference backend crashed"))
    await harness.tick()

    assert harness.machine.snapshot() == before
    assert harness.loop.ticks_failed == 1
    await harness.loop.stop()


@pytest.mark.asyncio
async def test_malformed_detection_is_skipped() -> None:
    harness = _Harness()
    harness.source.push(fire_frame())
    harness.loop.start()
    bad = Detection(label="person", score=7.0, bbox=BoundingBox(0, 0, 1, 1))
    harness.model.results.append([bad])

    await harness.tick()

    assert harness.loop.ticks_failed == 1
    assert harness.machine.snapshot().state == IncidentState.IDLE
    await harness.loop.stop()


@pytest.mark.asyncio
async def test_refresh_during_inflight_tick_is_dropped() -> None:
    harness = _Harness()
    harness.model.gate = threading.Event()
    harness.loop.start()

    harness.refresh.fire()
    await wait_for(lambda: harness.model.detect_calls == 1)
    harness.refresh.fire(3)
    await wait_for(lambda: harness.loop.refreshes_skipped == 3)

    harness.model.gate.set()
    await wait_for(lambda: harness.loop.ticks_processed == 1)
    assert harness.model.detect_calls == 1
    await harness.loop.stop()


@pytest.mark.asyncio
async def test_ticks_apply_in_capture_order() -> None:
    harness = _Harness()
    harness.source = FakeFrameSource(
        [cold_frame(captured_at=float(i)) for i in range(1, 6)]
    )
    harness.loop.start()

    for _ in range(5):
        await harness.tick()
    await harness.loop.stop()

    assert harness.ticks == [1.0, 2.0, 3.0, 4.0, 5.0]


@pytest.mark.asyncio
async def test_grace_delay_postpones_first_tick() -> None:
    harness = _Harness(grace_sec=0.2)
    harness.loop.start()
    harness.refresh.fire()

    await asyncio.sleep(0.05)
    assert harness.attempted() == 0

    await wait_for(lambda: harness.attempted() == 1)
    await harness.loop.stop()


@pytest.mark.asyncio
async def test_stop_cancels_inflight_tick() -> None:
    harness = _Harness()
    harness.source.push(fire_frame())
    harness.model.gate = threading.Event()
    harness.loop.start()
    harness.refresh.fire()
    await wait_for(lambda: harness.model.detect_calls == 1)

    await harness.loop.stop()
    harness.model.gate.set()
    await asyncio.sleep(0.05)

    assert harness.loop.running is False
    assert harness.loop.ticks_processed == 0
    assert harness.machine.snapshot().consecutive_positive_count == 0


@pytest.mark.asyncio
async def test_missing_frame_is_not_a_tick() -> None:
    harness = _Harness()
    harness.loop = SamplingLoop(
        read_frame=lambda: None,
        model=harness.model,
        engine=FusionEngine(),
        machine=harness.machine,
        refresh=harness.refresh,
        config=SamplingConfig(grace_sec=0.0),
    )
    harness.loop.start()
    harness.refresh.fire(2)
    await asyncio.sleep(0.05)

    assert harness.model.detect_calls == 0
    assert harness.attempted() == 0
    await harness.loop.stop()


@pytest.mark.asyncio
async def test_interval_refresh_signal_waits_one_period() -> None:
    signal = IntervalRefreshSignal(refresh_hz=100.0)
    loop = asyncio.get_running_loop()
    started = loop.time()

    await signal.wait()

    assert loop.time() - started >= 0.009


def test_interval_refresh_signal_rejects_zero_rate() -> None:
    with pytest.raises(ValueError):
        IntervalRefreshSignal(refresh_hz=0)
