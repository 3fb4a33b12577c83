from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class Frame:
    """Immutable RGBA snapshot of the video source."""

    width: int
    height: int
    pixels: np.ndarray
    captured_at: float


@dataclass
class BoundingBox:
    x: float
    y: float
    width: float
    height: float


@dataclass
class Detection:
    """Single labeled object returned by the detection model."""

    label: str
    score: float
    bbox: BoundingBox


@dataclass
class FusedScore:
    """Per-frame blend of color and object evidence."""

    color_confidence: float
    object_confidence: float
    combined_confidence: float
    is_positive: bool

    @property
    def display_percent(self) -> int:
        return round(self.combined_confidence * 100)


class IncidentState(str, Enum):
    IDLE = "idle"
    SUSPECTED = "suspected"
    CONFIRMED = "confirmed"
    ALERTED = "alerted"
    CONTROLLED = "controlled"


@dataclass
class Incident:
    """The single live emergency-candidate lifecycle."""

    incident_id: str
    state: IncidentState = IncidentState.IDLE
    consecutive_positive_count: int = 0
    alert_dispatched: bool = False
    last_confidence: float = 0.0
    confirmed_at: Optional[float] = None


@dataclass
class AlertRecord:
    """Outcome of one notification request sent to the fire station."""

    alert_id: str
    incident_id: str
    confidence: float
    requested_at: float
    status: str = "queued"
    attempts: int = 0
    error: Optional[str] = None
