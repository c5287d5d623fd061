"""Shared test data builders and fakes."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from app.rules.models import AlertItem, RuleConfig, TaskRecord
from app.services.notifier import DispatchFailureError, NotificationDispatcher
from app.services.snapshot import TaskSnapshotProvider

TZ = ZoneInfo("Asia/Shanghai")

# 10:00 in Shanghai on the evaluation date
NOW = datetime(2026, 10, 18, 2, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 18)


def fixed_clock() -> datetime:
    return NOW


def due_in(days: int) -> str:
    """ISO due date ``days`` from the evaluation date."""
    return (TODAY + timedelta(days=days)).isoformat()


def make_record(record_id: str, **fields) -> TaskRecord:
    defaults = {
        "task_id": f"T-{record_id}",
        "name": f"Task {record_id}",
        "assignee": "张三",
        "project": "Apollo",
        "status": "进行中",
    }
    defaults.update(fields)
    return TaskRecord(record_id=record_id, **defaults)


class StaticSnapshotProvider(TaskSnapshotProvider):
    """Serves a fixed, mutable list of records."""

    def __init__(
        self,
        records: list[TaskRecord] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.records = list(records or [])
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch(self, project: str | None = None) -> list[TaskRecord]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)


class RecordingDispatcher(NotificationDispatcher):
    """Records sends; fails or stalls for selected record ids."""

    def __init__(
        self,
        fail_for: set[str] | None = None,
        stall_for: set[str] | None = None,
    ) -> None:
        self.fail_for = fail_for or set()
        self.stall_for = stall_for or set()
        self.sent: list[tuple[str, str]] = []
        self.attempts: list[tuple[str, str]] = []

    async def send(self, alert: AlertItem, rule: RuleConfig) -> None:
        self.attempts.append((alert.record_id, rule.key))
        if alert.record_id in self.stall_for:
            await asyncio.sleep(3600)
        if alert.record_id in self.fail_for:
            raise DispatchFailureError(f"send failed for {alert.record_id}")
        self.sent.append((alert.record_id, rule.key))
