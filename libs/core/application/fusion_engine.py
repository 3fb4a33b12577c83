from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from libs.core.application.errors import MalformedDetectionError
from libs.core.domain.entities import Detection, Frame, FusedScore

DEFAULT_FIRE_CONTEXT_CLASSES = ("person", "cell phone")
PIXEL_STRIDE = 10
AREA_FRACTION_THRESHOLD = 0.01
RED_MIN = 200
GREEN_RANGE = (60, 150)
BLUE_MAX = 60
OBJECT_BOOST_MIN = 0.5
COLOR_WEIGHT = 0.7
OBJECT_WEIGHT = 0.3
POSITIVE_THRESHOLD = 0.65


@dataclass
class FusionConfig:
    """Tunable constants of the color and object heuristics."""

    fire_context_classes: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_FIRE_CONTEXT_CLASSES)
    )
    pixel_stride: int = PIXEL_STRIDE
    area_fraction_threshold: float = AREA_FRACTION_THRESHOLD
    red_min: int = RED_MIN
    green_range: tuple[int, int] = GREEN_RANGE
    blue_max: int = BLUE_MAX
    object_boost_min: float = OBJECT_BOOST_MIN
    color_weight: float = COLOR_WEIGHT
    object_weight: float = OBJECT_WEIGHT
    positive_threshold: float = POSITIVE_THRESHOLD


class FusionEngine:
    """Combines the pixel color heuristic with object detections."""

    def __init__(self, config: FusionConfig | None = None) -> None:
        self._config = config or FusionConfig()

    @property
    def config(self) -> FusionConfig:
        return self._config

    def fuse(self, frame: Frame, detections: list[Detection]) -> FusedScore:
        color_confidence = self.color_confidence(frame)
        object_confidence = self.object_confidence(detections)

        config = self._config
        combined = color_confidence
        if object_confidence > config.object_boost_min:
            combined = (
                color_confidence * config.color_weight
                + object_confidence * config.object_weight
            )

        return FusedScore(
            color_confidence=color_confidence,
            object_confidence=object_confidence,
            combined_confidence=combined,
            is_positive=combined > config.positive_threshold,
        )

    def color_confidence(self, frame: Frame) -> float:
        area = frame.width * frame.height
        if area <= 0:
            return 0.0

        config = self._config
        sampled = frame.pixels.reshape(-1, frame.pixels.shape[-1])[
            :: config.pixel_stride
        ]
        red = sampled[:, 0].astype(np.int16)
        green = sampled[:, 1].astype(np.int16)
        blue = sampled[:, 2].astype(np.int16)
        green_low, green_high = config.green_range
        fire_mask = (
            (red > config.red_min)
            & (green > green_low)
            & (green < green_high)
            & (blue < config.blue_max)
        )
        fire_pixels = int(np.count_nonzero(fire_mask))
        return min(fire_pixels / (area * config.area_fraction_threshold), 1.0)

    def object_confidence(self, detections: list[Detection]) -> float:
        best = 0.0
        for detection in detections:
            score = _validated_score(detection)
            if detection.label in self._config.fire_context_classes:
                best = max(best, score)
        return best


def _validated_score(detection: object) -> float:
    label = getattr(detection, "label", None)
    score = getattr(detection, "score", None)
    if not isinstance(label, str):
        raise MalformedDetectionError(f"detection label is not a string: {label!r}")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise MalformedDetectionError(f"detection score is not numeric: {score!r}")
    if math.isnan(score) or not 0.0 <= score <= 1.0:
        raise MalformedDetectionError(f"detection score out of range: {score!r}")
    return float(score)
