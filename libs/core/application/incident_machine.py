from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from uuid import uuid4

from libs.core.application.contracts import AlertRequester, IncidentContext
from libs.core.domain.entities import FusedScore, Incident, IncidentState

logger = logging.getLogger(__name__)

CONFIRMATION_THRESHOLD = 5


@dataclass
class IncidentConfig:
    confirmation_threshold: int = CONFIRMATION_THRESHOLD
    source_name: str = "camera"


class IncidentStateMachine:
    """Hysteresis over per-frame classifications with a single alert per incident.

    Positive ticks escalate Idle -> Suspected -> Confirmed. Confirmation asks the
    dispatcher once and moves straight to Alerted, whatever the delivery outcome.
    Alerted only tracks confidence until an operator reset.
    """

    def __init__(
        self,
        dispatcher: AlertRequester,
        config: IncidentConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._dispatcher = dispatcher
        self._config = config or IncidentConfig()
        if self._config.confirmation_threshold < 1:
            raise ValueError("confirmation_threshold must be >= 1")
        self._clock = clock
        self._incident = _new_incident()

    @property
    def confirmation_threshold(self) -> int:
        return self._config.confirmation_threshold

    def snapshot(self) -> Incident:
        return replace(self._incident)

    def apply(self, score: FusedScore) -> Incident:
        incident = self._incident
        incident.last_confidence = score.combined_confidence

        if incident.state == IncidentState.ALERTED:
            return self.snapshot()

        if not score.is_positive:
            if incident.state != IncidentState.IDLE:
                logger.info(
                    "Incident %s back to idle after %d positive ticks",
                    incident.incident_id,
                    incident.consecutive_positive_count,
                )
            incident.state = IncidentState.IDLE
            incident.consecutive_positive_count = 0
            return self.snapshot()

        incident.consecutive_positive_count += 1
        if incident.state == IncidentState.IDLE:
            incident.state = IncidentState.SUSPECTED
            logger.info(
                "Incident %s suspected (confidence=%.2f)",
                incident.incident_id,
                score.combined_confidence,
            )
        else:
            logger.debug(
                "Incident %s positive tick %d/%d",
                incident.incident_id,
                incident.consecutive_positive_count,
                self._config.confirmation_threshold,
            )

        if incident.consecutive_positive_count >= self._config.confirmation_threshold:
            self._confirm(incident)
        return self.snapshot()

    def reset(self) -> Incident:
        """Operator reset: close the incident through Controlled and start a new one.

        An untouched idle incident keeps its id; only the displayed confidence
        is cleared.
        """
        incident = self._incident
        if (
            incident.state == IncidentState.IDLE
            and incident.consecutive_positive_count == 0
            and not incident.alert_dispatched
        ):
            incident.last_confidence = 0.0
            return self.snapshot()

        incident.state = IncidentState.CONTROLLED
        logger.info("Incident %s controlled by operator", incident.incident_id)
        self._incident = _new_incident()
        return self.snapshot()

    def _confirm(self, incident: Incident) -> None:
        incident.state = IncidentState.CONFIRMED
        incident.confirmed_at = self._clock()
        logger.info(
            "Incident %s confirmed after %d consecutive positive ticks",
            incident.incident_id,
            incident.consecutive_positive_count,
        )

        if not incident.alert_dispatched:
            incident.alert_dispatched = True
            context: IncidentContext = {
                "incident_id": incident.incident_id,
                "confidence": incident.last_confidence,
                "detected_at": incident.confirmed_at,
                "auto_detected": True,
                "source_name": self._config.source_name,
            }
            self._dispatcher.request(context)

        incident.state = IncidentState.ALERTED


def _new_incident() -> Incident:
    return Incident(incident_id=str(uuid4()))
