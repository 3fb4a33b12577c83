from dataclasses import asdict
from pathlib import Path

import cv2
from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel, Field

from libs.core.application.errors import MalformedDetectionError
from libs.core.domain.entities import AlertRecord, BoundingBox, Detection
from libs.infra.camera import to_frame
from services.api_gateway.dependencies import alert_repository, get_monitor
from services.api_gateway.presentation.http.ui_page import build_ui_html

router = APIRouter()

ALERT_STATUSES = {"queued", "delivered", "failed"}


class DetectionRequest(BaseModel):
    bbox: tuple[float, float, float, float]
    score: float = Field(ge=0.0, le=1.0)
    label: str = "person"


class AnalyzeRequest(BaseModel):
    image_uri: str
    detections: list[DetectionRequest] = Field(default_factory=list)


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/", response_class=HTMLResponse)
def ui_index() -> str:
    return build_ui_html()


@router.get("/favicon.ico")
def favicon() -> Response:
    return Response(status_code=204)


@router.get("/ready")
def ready() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/version")
def version() -> dict[str, str]:
    return {"version": "0.1.0"}


@router.get("/v1/detector/status")
def get_detector_status() -> dict[str, object]:
    return asdict(get_monitor().status())


@router.post("/v1/detector/reset")
async def reset_detector() -> dict[str, object]:
    # async so the incident is swapped on the loop that runs the ticks
    monitor = get_monitor()
    monitor.reset()
    return asdict(monitor.status())


@router.post("/v1/detector/camera/start")
async def start_camera() -> dict[str, object]:
    monitor = get_monitor()
    if not await monitor.start_camera():
        raise HTTPException(
            status_code=409,
            detail=monitor.status().camera_error or "Camera unavailable",
        )
    await monitor.load_model()
    return asdict(monitor.status())


@router.get("/v1/detector/frame")
def get_latest_frame() -> Response:
    overlay = get_monitor().latest_overlay()
    if overlay is None:
        raise HTTPException(status_code=404, detail="No frame processed yet")
    return Response(content=overlay, media_type="image/jpeg")


@router.post("/v1/detector/analyze")
def analyze_frame(payload: AnalyzeRequest) -> dict[str, object]:
    frame_path = Path(payload.image_uri)
    if not frame_path.is_absolute():
        raise HTTPException(status_code=400, detail="Frame URI is not local path")
    if not frame_path.exists():
        raise HTTPException(status_code=404, detail="Frame file not found")

    image = cv2.imread(str(frame_path), cv2.IMREAD_COLOR)
    if image is None:
        raise HTTPException(status_code=400, detail="Frame file is not an image")

    detections = [
        Detection(
            label=item.label,
            score=item.score,
            bbox=BoundingBox(*item.bbox),
        )
        for item in payload.detections
    ]
    try:
        score = get_monitor().engine.fuse(to_frame(image), detections)
    except MalformedDetectionError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error

    return {
        "color_confidence": round(score.color_confidence, 4),
        "object_confidence": round(score.object_confidence, 4),
        "combined_confidence": round(score.combined_confidence, 4),
        "confidence_percent": score.display_percent,
        "is_positive": score.is_positive,
    }


@router.get("/v1/alerts")
def get_alerts(status: str | None = None) -> list[dict[str, object]]:
    if status is not None and status not in ALERT_STATUSES:
        raise HTTPException(status_code=400, detail="Unknown alert status")
    records = sorted(
        alert_repository.list(status=status),
        key=lambda record: record.requested_at,
    )
    return [_alert_to_dict(record) for record in records]


def _alert_to_dict(record: AlertRecord) -> dict[str, object]:
    return {
        "alert_id": record.alert_id,
        "incident_id": record.incident_id,
        "confidence": record.confidence,
        "requested_at": record.requested_at,
        "status": record.status,
        "attempts": record.attempts,
        "error": record.error,
    }
