"""OpenCV-backed frame sources: live capture and folder replay."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from libs.core.application.errors import AcquisitionError
from libs.core.domain.entities import Frame

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg"}
IDEAL_WIDTH = 640
IDEAL_HEIGHT = 480


def to_frame(image_bgr: np.ndarray, captured_at: float | None = None) -> Frame:
    """Convert an OpenCV BGR image into an RGBA frame."""
    if image_bgr.ndim == 2:
        rgba = cv2.cvtColor(image_bgr, cv2.COLOR_GRAY2RGBA)
    elif image_bgr.shape[2] == 4:
        rgba = cv2.cvtColor(image_bgr, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGBA)
    height, width = rgba.shape[:2]
    return Frame(
        width=width,
        height=height,
        pixels=rgba,
        captured_at=captured_at if captured_at is not None else time.time(),
    )


@dataclass
class CaptureHandle:
    capture: cv2.VideoCapture
    width: int
    height: int
    active: bool = True


class OpenCvCameraSource:
    """Live camera or network stream read through cv2.VideoCapture."""

    def __init__(self, source: int | str = 0) -> None:
        self._source = source

    def start_stream(self) -> CaptureHandle:
        capture = cv2.VideoCapture(self._source)
        if not capture.isOpened():
            capture.release()
            raise AcquisitionError(f"camera source {self._source!r} is unavailable")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, IDEAL_WIDTH)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, IDEAL_HEIGHT)
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return CaptureHandle(capture=capture, width=width, height=height)

    def stop_stream(self, handle: CaptureHandle) -> None:
        handle.active = False
        handle.capture.release()

    def read_frame(self, handle: CaptureHandle) -> Frame | None:
        ok, image = handle.capture.read()
        if not ok or image is None:
            return None
        return to_frame(image)


@dataclass
class ReplayHandle:
    frame_files: list[Path]
    width: int
    height: int
    position: int = 0
    active: bool = True


class DirectoryFrameSource:
    """Replays a folder of still images as if they came from a camera."""

    def __init__(self, frames_dir: str | Path, loop: bool = False) -> None:
        self._frames_dir = Path(frames_dir)
        self._loop = loop

    def start_stream(self) -> ReplayHandle:
        if not self._frames_dir.is_dir():
            raise AcquisitionError(f"frames dir not found: {self._frames_dir}")

        frame_files = sorted(
            path
            for path in self._frames_dir.iterdir()
            if path.suffix.lower() in IMAGE_SUFFIXES
        )
        if not frame_files:
            raise AcquisitionError(f"no frames found in {self._frames_dir}")

        first = cv2.imread(str(frame_files[0]), cv2.IMREAD_COLOR)
        if first is None:
            raise AcquisitionError(f"cannot decode frame: {frame_files[0]}")
        height, width = first.shape[:2]
        logger.info("Replaying %d frames from %s", len(frame_files), self._frames_dir)
        return ReplayHandle(frame_files=frame_files, width=width, height=height)

    def stop_stream(self, handle: ReplayHandle) -> None:
        handle.active = False

    def read_frame(self, handle: ReplayHandle) -> Frame | None:
        if handle.position >= len(handle.frame_files):
            if not self._loop:
                handle.active = False
                return None
            handle.position = 0

        frame_path = handle.frame_files[handle.position]
        handle.position += 1
        image = cv2.imread(str(frame_path), cv2.IMREAD_COLOR)
        if image is None:
            logger.warning("Skipping undecodable frame %s", frame_path.name)
            return None
        return to_frame(image)
