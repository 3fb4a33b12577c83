from typing import Protocol, TypedDict

from libs.core.domain.entities import AlertRecord, Detection, Frame

MODEL_NOT_READY = "not_ready"
MODEL_READY = "ready"
MODEL_ERROR = "error"


class IncidentContext(TypedDict):
    """Payload handed to the alert notifier."""

    incident_id: str
    confidence: float
    detected_at: float
    auto_detected: bool
    source_name: str


class StreamHandle(Protocol):
    """Live stream opened by a frame source."""

    @property
    def active(self) -> bool: ...

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...


class FrameSource(Protocol):
    """Camera acquisition contract."""

    def start_stream(self) -> StreamHandle: ...

    def stop_stream(self, handle: StreamHandle) -> None: ...

    def read_frame(self, handle: StreamHandle) -> Frame | None: ...


class DetectionModel(Protocol):
    """Object detection contract."""

    @property
    def status(self) -> str: ...

    @property
    def error_message(self) -> str | None: ...

    def load(self) -> None: ...

    def detect(self, frame: Frame) -> list[Detection]: ...


class AlertNotifier(Protocol):
    """One-shot fire station notification contract."""

    async def notify(self, context: IncidentContext) -> None: ...


class AlertRecordRepository(Protocol):
    """Alert dispatch history persistence contract."""

    def add(self, record: AlertRecord) -> None: ...

    def update(self, record: AlertRecord) -> None: ...

    def list(self, status: str | None = None) -> list[AlertRecord]: ...

    def clear(self) -> None: ...


class AlertRequester(Protocol):
    """Non-blocking entry point used by the incident state machine."""

    def request(self, context: IncidentContext) -> None: ...
