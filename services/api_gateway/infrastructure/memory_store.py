"""In-memory storage for alert dispatch history."""

import threading
from dataclasses import replace

from libs.core.application.contracts import AlertRecordRepository
from libs.core.domain.entities import AlertRecord


class InMemoryAlertRecordRepository(AlertRecordRepository):
    """Alert history kept for the lifetime of the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, AlertRecord] = {}

    def add(self, record: AlertRecord) -> None:
        with self._lock:
            self._records[record.alert_id] = record

    def update(self, record: AlertRecord) -> None:
        with self._lock:
            self._records[record.alert_id] = record

    def list(self, status: str | None = None) -> list[AlertRecord]:
        with self._lock:
            records = [replace(record) for record in self._records.values()]
        if status is None:
            return records
        return [record for record in records if record.status == status]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
