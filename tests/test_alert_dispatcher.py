"""Alert dispatcher tests."""

import asyncio

import pytest

from libs.core.application.alert_dispatcher import AlertDispatcher, RetryPolicy
from libs.core.application.contracts import IncidentContext
from services.api_gateway.infrastructure.memory_store import (
    InMemoryAlertRecordRepository,
)
from tests.fakes import RecordingNotifier


def _context(incident_id: str = "incident-1", confidence: float = 0.9) -> IncidentContext:
    return {
        "incident_id": incident_id,
        "confidence": confidence,
        "detected_at": 100.0,
        "auto_detected": True,
        "source_name": "lobby",
    }


@pytest.mark.asyncio
async def test_delivers_after_debounce_window() -> None:
    notifier = RecordingNotifier()
    records = InMemoryAlertRecordRepository()
    dispatcher = AlertDispatcher(notifier, records, debounce_sec=0.05)

    dispatcher.request(_context())
    assert dispatcher.pending is True
    assert notifier.calls == []

    await dispatcher.wait_idle()

    assert len(notifier.calls) == 1
    [record] = records.list()
    assert record.status == "delivered"
    assert record.attempts == 1
    assert record.incident_id == "incident-1"


@pytest.mark.asyncio
async def test_request_inside_window_replaces_pending() -> None:
    notifier = RecordingNotifier()
    dispatcher = AlertDispatcher(
        notifier, InMemoryAlertRecordRepository(), debounce_sec=0.1
    )

    dispatcher.request(_context("first"))
    await asyncio.sleep(0.02)
    dispatcher.request(_context("second"))
    await dispatcher.wait_idle()

    assert [call["incident_id"] for call in notifier.calls] == ["second"]


@pytest.mark.asyncio
async def test_failure_is_recorded_without_retry_by_default() -> None:
    notifier = RecordingNotifier(failures=1)
    records = InMemoryAlertRecordRepository()
    dispatcher = AlertDispatcher(notifier, records, debounce_sec=0)

    dispatcher.request(_context())
    await dispatcher.wait_idle()

    assert len(notifier.calls) == 1
    [record] = records.list()
    assert record.status == "failed"
    assert record.error == "backend unreachable"


class _CrashingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    async def notify(self, context: IncidentContext) -> None:
        self.calls += 1
        raise RuntimeError("serializer exploded")


@pytest.mark.asyncio
async def test_unexpected_notifier_error_is_recorded_as_failed(caplog) -> None:
    notifier = _CrashingNotifier()
    records = InMemoryAlertRecordRepository()
    dispatcher = AlertDispatcher(
        notifier,
        records,
        debounce_sec=0,
        retry_policy=RetryPolicy(max_attempts=2, backoff_sec=0.01),
    )

    dispatcher.request(_context())
    await dispatcher.wait_idle()

    assert notifier.calls == 2
    [record] = records.list()
    assert record.status == "failed"
    assert record.attempts == 2
    assert record.error == "serializer exploded"
    assert "Alert notifier crashed" in caplog.text


@pytest.mark.asyncio
async def test_retry_policy_retries_with_backoff() -> None:
    notifier = RecordingNotifier(failures=2)
    records = InMemoryAlertRecordRepository()
    dispatcher = AlertDispatcher(
        notifier,
        records,
        debounce_sec=0,
        retry_policy=RetryPolicy(max_attempts=3, backoff_sec=0.01),
    )

    dispatcher.request(_context())
    await dispatcher.wait_idle()

    assert len(notifier.calls) == 3
    [record] = records.list()
    assert record.status == "delivered"
    assert record.attempts == 3
    assert record.error is None


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_attempts() -> None:
    notifier = RecordingNotifier(failures=5)
    records = InMemoryAlertRecordRepository()
    dispatcher = AlertDispatcher(
        notifier,
        records,
        debounce_sec=0,
        retry_policy=RetryPolicy(max_attempts=2, backoff_sec=0.01),
    )

    dispatcher.request(_context())
    await dispatcher.wait_idle()

    assert len(notifier.calls) == 2
    assert records.list(status="failed")[0].attempts == 2


def test_backoff_grows_geometrically() -> None:
    policy = RetryPolicy(max_attempts=4, backoff_sec=1.0, backoff_factor=3.0)

    assert [policy.delay_before(attempt) for attempt in (2, 3, 4)] == [1.0, 3.0, 9.0]


def test_zero_attempts_rejected() -> None:
    with pytest.raises(ValueError):
        AlertDispatcher(
            RecordingNotifier(),
            InMemoryAlertRecordRepository(),
            retry_policy=RetryPolicy(max_attempts=0),
        )


@pytest.mark.asyncio
async def test_aclose_cancels_pending_window() -> None:
    notifier = RecordingNotifier()
    dispatcher = AlertDispatcher(
        notifier, InMemoryAlertRecordRepository(), debounce_sec=0.05
    )

    dispatcher.request(_context())
    await dispatcher.aclose()
    await asyncio.sleep(0.1)

    assert dispatcher.pending is False
    assert notifier.calls == []
