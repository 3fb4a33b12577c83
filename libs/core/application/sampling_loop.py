"""Refresh-driven tick scheduler for fusion and incident updates."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Protocol

from libs.core.application.contracts import DetectionModel
from libs.core.application.fusion_engine import FusionEngine
from libs.core.application.incident_machine import IncidentStateMachine
from libs.core.domain.entities import Detection, Frame, FusedScore

logger = logging.getLogger(__name__)

REFRESH_HZ = 60.0
GRACE_SEC = 2.0


@dataclass
class SamplingConfig:
    refresh_hz: float = REFRESH_HZ
    grace_sec: float = GRACE_SEC


class RefreshSignal(Protocol):
    """Display refresh cadence; one tick is attempted per refresh."""

    async def wait(self) -> None: ...


class IntervalRefreshSignal:
    def __init__(self, refresh_hz: float = REFRESH_HZ) -> None:
        if refresh_hz <= 0:
            raise ValueError("refresh_hz must be > 0")
        self._interval = 1.0 / refresh_hz

    async def wait(self) -> None:
        await asyncio.sleep(self._interval)


TickListener = Callable[[Frame, list[Detection], FusedScore], None]


class SamplingLoop:
    """Runs at most one fusion tick at a time, dropping refreshes while busy."""

    def __init__(
        self,
        read_frame: Callable[[], Frame | None],
        model: DetectionModel,
        engine: FusionEngine,
        machine: IncidentStateMachine,
        refresh: RefreshSignal,
        config: SamplingConfig | None = None,
        on_tick: TickListener | None = None,
    ) -> None:
        self._read_frame = read_frame
        self._model = model
        self._engine = engine
        self._machine = machine
        self._refresh = refresh
        self._config = config or SamplingConfig()
        self._on_tick = on_tick
        self._runner: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[None] | None = None
        self._stopped = False
        self.ticks_processed = 0
        self.ticks_failed = 0
        self.refreshes_skipped = 0

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    @property
    def busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._runner = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        self._stopped = True
        tasks = [task for task in (self._runner, self._in_flight) if task]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._runner = None
        self._in_flight = None

    async def _run(self) -> None:
        if self._config.grace_sec > 0:
            await asyncio.sleep(self._config.grace_sec)
        logger.info("Sampling loop started")
        while True:
            await self._refresh.wait()
            if self.busy:
                self.refreshes_skipped += 1
                continue
            self._in_flight = asyncio.get_running_loop().create_task(self._tick())

    async def _tick(self) -> None:
        try:
            frame = await asyncio.to_thread(self._read_frame)
            if frame is None:
                return
            detections = list(await asyncio.to_thread(self._model.detect, frame))
            score = self._engine.fuse(frame, detections)
        except Exception as error:
            self.ticks_failed += 1
            logger.warning("Skipping tick, detection failed: %s", error)
            logger.debug("Detection failure details", exc_info=True)
            return

        if self._stopped:
            return
        self._machine.apply(score)
        self.ticks_processed += 1
        if self._on_tick is not None:
            self._on_tick(frame, detections, score)
