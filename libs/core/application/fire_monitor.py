from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from libs.core.application.alert_dispatcher import (
    DEBOUNCE_SEC,
    AlertDispatcher,
    RetryPolicy,
)
from libs.core.application.contracts import (
    MODEL_ERROR,
    MODEL_READY,
    AlertNotifier,
    AlertRecordRepository,
    DetectionModel,
    FrameSource,
    StreamHandle,
)
from libs.core.application.errors import AcquisitionError, ModelLoadError
from libs.core.application.fusion_engine import FusionConfig, FusionEngine
from libs.core.application.incident_machine import (
    IncidentConfig,
    IncidentStateMachine,
)
from libs.core.application.sampling_loop import (
    IntervalRefreshSignal,
    RefreshSignal,
    SamplingConfig,
    SamplingLoop,
)
from libs.core.domain.entities import Detection, Frame, FusedScore, Incident

logger = logging.getLogger(__name__)

OverlayRenderer = Callable[[Frame, list[Detection], FusedScore], bytes]


@dataclass
class MonitorStatus:
    """Read-only view of the monitor for dashboards."""

    incident_id: str
    state: str
    confidence_percent: int
    alert_sent: bool
    stream_active: bool
    model_ready: bool
    model_error: str | None
    camera_error: str | None
    ticks_processed: int
    ticks_failed: int
    refreshes_skipped: int


@dataclass
class MonitorOptions:
    fusion: FusionConfig | None = None
    incident: IncidentConfig | None = None
    sampling: SamplingConfig | None = None
    retry: RetryPolicy | None = None
    debounce_sec: float = DEBOUNCE_SEC


class FireMonitor:
    """Owns one camera, one detection model and the single live incident."""

    def __init__(
        self,
        frame_source: FrameSource,
        model: DetectionModel,
        notifier: AlertNotifier,
        records: AlertRecordRepository,
        options: MonitorOptions | None = None,
        refresh: RefreshSignal | None = None,
        overlay_renderer: OverlayRenderer | None = None,
    ) -> None:
        options = options or MonitorOptions()
        sampling = options.sampling or SamplingConfig()
        self._source = frame_source
        self._model = model
        self._overlay_renderer = overlay_renderer
        self._handle: StreamHandle | None = None
        self._handle_lock = threading.Lock()
        self._camera_error: str | None = None
        self._latest_overlay: bytes | None = None

        self.dispatcher = AlertDispatcher(
            notifier=notifier,
            records=records,
            debounce_sec=options.debounce_sec,
            retry_policy=options.retry,
        )
        self.engine = FusionEngine(options.fusion)
        self.machine = IncidentStateMachine(self.dispatcher, options.incident)
        self.loop = SamplingLoop(
            read_frame=self._read_frame,
            model=model,
            engine=self.engine,
            machine=self.machine,
            refresh=refresh or IntervalRefreshSignal(sampling.refresh_hz),
            config=sampling,
            on_tick=self._render_overlay if overlay_renderer else None,
        )

    @property
    def stream_active(self) -> bool:
        return self._handle is not None and self._handle.active

    @property
    def model_ready(self) -> bool:
        return self._model.status == MODEL_READY

    async def start(self) -> None:
        await self.start_camera()
        await self.load_model()

    async def start_camera(self) -> bool:
        """(Re)open the stream. The sampling loop is paused while handles swap."""
        await self.loop.stop()
        await asyncio.to_thread(self._release_handle)
        try:
            handle = await asyncio.to_thread(self._source.start_stream)
        except AcquisitionError as error:
            self._camera_error = str(error)
            logger.warning("Camera unavailable: %s", error)
            return False

        with self._handle_lock:
            self._handle = handle
        self._camera_error = None
        logger.info(
            "Camera stream active (%dx%d)", self._handle.width, self._handle.height
        )
        self._start_loop_when_ready()
        return True

    async def load_model(self) -> bool:
        if self.model_ready:
            return True
        if self._model.status == MODEL_ERROR:
            return False
        try:
            await asyncio.to_thread(self._model.load)
        except ModelLoadError as error:
            logger.error("Detection model failed to load: %s", error)
            return False
        logger.info("Detection model ready")
        self._start_loop_when_ready()
        return True

    def reset(self) -> Incident:
        return self.machine.reset()

    def status(self) -> MonitorStatus:
        incident = self.machine.snapshot()
        return MonitorStatus(
            incident_id=incident.incident_id,
            state=incident.state.value,
            confidence_percent=round(incident.last_confidence * 100),
            alert_sent=incident.alert_dispatched,
            stream_active=self.stream_active,
            model_ready=self.model_ready,
            model_error=self._model.error_message,
            camera_error=self._camera_error,
            ticks_processed=self.loop.ticks_processed,
            ticks_failed=self.loop.ticks_failed,
            refreshes_skipped=self.loop.refreshes_skipped,
        )

    def latest_overlay(self) -> bytes | None:
        return self._latest_overlay

    async def aclose(self) -> None:
        await self.loop.stop()
        await asyncio.to_thread(self._release_handle)
        await self.dispatcher.aclose()
        logger.info("Fire monitor stopped")

    def _start_loop_when_ready(self) -> None:
        if self.stream_active and self.model_ready and not self.loop.running:
            self.loop.start()

    def _release_handle(self) -> None:
        # Blocks until a read left running in a worker thread by loop.stop() returns.
        with self._handle_lock:
            if self._handle is not None:
                self._source.stop_stream(self._handle)
                self._handle = None

    def _read_frame(self) -> Frame | None:
        with self._handle_lock:
            handle = self._handle
            if handle is None or not handle.active:
                return None
            return self._source.read_frame(handle)

    def _render_overlay(
        self,
        frame: Frame,
        detections: list[Detection],
        score: FusedScore,
    ) -> None:
        try:
            self._latest_overlay = self._overlay_renderer(frame, detections, score)
        except ValueError as error:
            logger.debug("Overlay rendering skipped: %s", error)
