"""Detection model adapters."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import cv2

from libs.core.application.contracts import MODEL_ERROR, MODEL_NOT_READY, MODEL_READY
from libs.core.application.errors import ModelLoadError
from libs.core.domain.entities import BoundingBox, Detection, Frame

logger = logging.getLogger(__name__)

DEFAULT_MODEL_PATH = "yolov8n.pt"
DEFAULT_CONFIDENCE = 0.25


class YoloDetectionModel:
    """COCO object detector backed by ultralytics YOLO."""

    def __init__(
        self,
        model_path: str | Path = DEFAULT_MODEL_PATH,
        confidence_threshold: float = DEFAULT_CONFIDENCE,
        device: str | None = None,
    ) -> None:
        self._model_path = str(model_path)
        self._confidence_threshold = confidence_threshold
        self._device = device
        self._model = None
        self._status = MODEL_NOT_READY
        self._error_message: str | None = None
        self._lock = threading.Lock()

    @property
    def status(self) -> str:
        return self._status

    @property
    def error_message(self) -> str | None:
        return self._error_message

    def load(self) -> None:
        try:
            from ultralytics import YOLO

            self._model = YOLO(self._model_path)
        except ImportError as error:
            self._fail("Detection libraries are not installed (pip install ultralytics).")
            raise ModelLoadError(self._error_message) from error
        except (OSError, RuntimeError, ValueError) as error:
            self._fail("Failed to load detection model. Please restart and try again.")
            raise ModelLoadError(f"{self._error_message} ({error})") from error

        self._status = MODEL_READY
        self._error_message = None
        logger.info("Loaded YOLO model from %s", self._model_path)

    def detect(self, frame: Frame) -> list[Detection]:
        if self._model is None:
            raise RuntimeError("detection model is not loaded")

        image = cv2.cvtColor(frame.pixels, cv2.COLOR_RGBA2BGR)
        with self._lock:
            results = self._model.predict(
                image,
                conf=self._confidence_threshold,
                device=self._device,
                verbose=False,
            )

        detections: list[Detection] = []
        for result in results:
            names = result.names
            for box in result.boxes:
                x1, y1, x2, y2 = (float(v) for v in box.xyxy[0].tolist())
                detections.append(
                    Detection(
                        label=names[int(box.cls[0])],
                        score=float(box.conf[0]),
                        bbox=BoundingBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1),
                    )
                )
        return detections

    def _fail(self, message: str) -> None:
        self._status = MODEL_ERROR
        self._error_message = message
        logger.error(message)


class ColorOnlyDetectionModel:
    """Reports no objects, leaving the color heuristic as the only signal."""

    def __init__(self) -> None:
        self._status = MODEL_NOT_READY

    @property
    def status(self) -> str:
        return self._status

    @property
    def error_message(self) -> str | None:
        return None

    def load(self) -> None:
        self._status = MODEL_READY

    def detect(self, frame: Frame) -> list[Detection]:
        return []
