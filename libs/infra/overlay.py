"""Drawing detection boxes and the fire warning on frames."""

from collections.abc import Collection

import cv2
import numpy as np

from libs.core.domain.entities import Detection, Frame, FusedScore

CONTEXT_COLOR = (255, 255, 0)  # cyan in BGR
FIRE_COLOR = (0, 0, 255)
FIRE_BOX_SIZE = 200


def draw_overlay(
    frame: Frame,
    detections: list[Detection],
    score: FusedScore,
    context_classes: Collection[str],
) -> np.ndarray:
    """
    Return an annotated BGR copy of the frame.

    Context-class detections get a box and a "label (NN%)" caption; a positive
    score adds a centered red box captioned "FIRE! (NN%)".
    """
    canvas = cv2.cvtColor(frame.pixels, cv2.COLOR_RGBA2BGR)

    for detection in detections:
        if detection.label not in context_classes:
            continue
        box = detection.bbox
        x1, y1 = int(box.x), int(box.y)
        x2, y2 = int(box.x + box.width), int(box.y + box.height)
        cv2.rectangle(canvas, (x1, y1), (x2, y2), CONTEXT_COLOR, 2)
        cv2.putText(
            canvas,
            f"{detection.label} ({round(detection.score * 100)}%)",
            (x1, max(0, y1 - 5)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            CONTEXT_COLOR,
            1,
            cv2.LINE_AA,
        )

    if score.is_positive:
        x1 = frame.width // 2 - FIRE_BOX_SIZE // 2
        y1 = frame.height // 2 - FIRE_BOX_SIZE // 2
        cv2.rectangle(
            canvas,
            (x1, y1),
            (x1 + FIRE_BOX_SIZE, y1 + FIRE_BOX_SIZE),
            FIRE_COLOR,
            3,
        )
        cv2.putText(
            canvas,
            f"FIRE! ({score.display_percent}%)",
            (x1, max(0, y1 - 10)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.8,
            FIRE_COLOR,
            2,
            cv2.LINE_AA,
        )

    return canvas


def encode_jpeg(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".jpg", image)
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


class OverlayRenderer:
    """Callable used by the monitor to keep the latest annotated JPEG."""

    def __init__(self, context_classes: Collection[str]) -> None:
        self._context_classes = context_classes

    def __call__(
        self,
        frame: Frame,
        detections: list[Detection],
        score: FusedScore,
    ) -> bytes:
        return encode_jpeg(draw_overlay(frame, detections, score, self._context_classes))
