from libs.core.application.alert_dispatcher import RetryPolicy
from libs.core.application.contracts import AlertNotifier, DetectionModel, FrameSource
from libs.core.application.fire_monitor import FireMonitor, MonitorOptions
from libs.core.application.fusion_engine import FusionConfig
from libs.core.application.incident_machine import IncidentConfig
from libs.core.application.sampling_loop import SamplingConfig
from libs.infra.camera import DirectoryFrameSource, OpenCvCameraSource
from libs.infra.detection_models import ColorOnlyDetectionModel, YoloDetectionModel
from libs.infra.http_notifier import HttpAlertNotifier
from libs.infra.overlay import OverlayRenderer
from services.api_gateway.infrastructure.memory_store import (
    InMemoryAlertRecordRepository,
)
from services.api_gateway.settings import Settings, get_settings

alert_repository = InMemoryAlertRecordRepository()

_monitor: FireMonitor | None = None
_notifier: HttpAlertNotifier | None = None


def build_monitor(settings: Settings) -> FireMonitor:
    global _notifier

    frame_source: FrameSource
    if settings.frames_dir:
        frame_source = DirectoryFrameSource(settings.frames_dir, loop=True)
    else:
        frame_source = OpenCvCameraSource(settings.camera_source)

    model: DetectionModel
    if settings.model_path:
        model = YoloDetectionModel(settings.model_path)
    else:
        model = ColorOnlyDetectionModel()

    _notifier = HttpAlertNotifier(
        api_base=settings.api_base,
        token=settings.api_token or None,
    )
    fusion = FusionConfig()
    options = MonitorOptions(
        fusion=fusion,
        incident=IncidentConfig(
            confirmation_threshold=settings.confirmation_threshold,
            source_name=settings.source_name,
        ),
        sampling=SamplingConfig(
            refresh_hz=settings.refresh_hz,
            grace_sec=settings.grace_sec,
        ),
        retry=RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            backoff_sec=settings.retry_backoff_sec,
        ),
        debounce_sec=settings.debounce_sec,
    )
    return FireMonitor(
        frame_source=frame_source,
        model=model,
        notifier=_notifier,
        records=alert_repository,
        options=options,
        overlay_renderer=(
            OverlayRenderer(fusion.fire_context_classes)
            if settings.overlay_enabled
            else None
        ),
    )


def get_monitor() -> FireMonitor:
    global _monitor
    if _monitor is None:
        _monitor = build_monitor(get_settings())
    return _monitor


def set_monitor(
    frame_source: FrameSource,
    model: DetectionModel,
    notifier: AlertNotifier,
    options: MonitorOptions | None = None,
) -> FireMonitor:
    global _monitor
    _monitor = FireMonitor(
        frame_source=frame_source,
        model=model,
        notifier=notifier,
        records=alert_repository,
        options=options,
    )
    return _monitor


async def shutdown() -> None:
    global _monitor, _notifier
    if _monitor is not None:
        await _monitor.aclose()
        _monitor = None
    if _notifier is not None:
        await _notifier.aclose()
        _notifier = None


def reset_state() -> None:
    global _monitor
    _monitor = None
    alert_repository.clear()
