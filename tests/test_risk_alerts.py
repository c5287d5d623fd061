"""Tests for on-demand evaluation and the scheduled notification scan."""

import asyncio

import pytest

from app.rules.models import AlertFilters, RuleOverrides
from app.rules.validation import RuleValidationError
from app.services.risk_alerts import RiskAlertService, ScanStatus
from app.services.snapshot import SnapshotUnavailableError
from tests.factories import TODAY, RecordingDispatcher, StaticSnapshotProvider, due_in, make_record


class TestListAlerts:
    """Interactive, read-only evaluation."""

    @pytest.mark.asyncio
    async def test_lists_alerts(self, risk_service: RiskAlertService, snapshot_provider) -> None:
        snapshot_provider.records = [
            make_record("soon", end_date=due_in(2), progress=10),
            make_record("fine", end_date=due_in(30), progress=10),
        ]

        listing = await risk_service.list_alerts()

        assert listing.snapshot_available is True
        assert listing.evaluation_date == TODAY
        assert [a.record_id for a in listing.items] == ["soon"]
        assert len(listing.rules) == 3

    @pytest.mark.asyncio
    async def test_never_touches_dedup(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test interactive evaluation neither notifies nor claims."""
        snapshot_provider.records = [make_record("soon", end_date=due_in(2), progress=10)]

        await risk_service.list_alerts()

        assert dispatcher.attempts == []
        assert len(risk_service.dedup) == 0

    @pytest.mark.asyncio
    async def test_overrides_are_not_persisted(
        self, risk_service: RiskAlertService, snapshot_provider
    ) -> None:
        snapshot_provider.records = [make_record("later", end_date=due_in(20), progress=10)]

        listing = await risk_service.list_alerts(overrides=RuleOverrides(threshold_days=30))

        assert [a.record_id for a in listing.items] == ["later"]
        assert risk_service.rule_store.get("deadline_progress").threshold_days == 7
        assert await risk_service.rule_store.audit_log.list() == []

    @pytest.mark.asyncio
    async def test_invalid_override_rejected(self, risk_service: RiskAlertService) -> None:
        with pytest.raises(RuleValidationError):
            await risk_service.list_alerts(overrides=RuleOverrides(progress_threshold=150))

    @pytest.mark.asyncio
    async def test_filters(self, risk_service: RiskAlertService, snapshot_provider) -> None:
        snapshot_provider.records = [
            make_record("a", blocked="是", project="Apollo"),
            make_record("b", blocked="是", project="Gemini"),
        ]

        listing = await risk_service.list_alerts(AlertFilters(project="Gemini"))

        assert [a.record_id for a in listing.items] == ["b"]

    @pytest.mark.asyncio
    async def test_snapshot_unavailable_degrades(
        self, risk_service: RiskAlertService, snapshot_provider
    ) -> None:
        snapshot_provider.error = SnapshotUnavailableError("table offline")

        listing = await risk_service.list_alerts()

        assert listing.snapshot_available is False
        assert listing.items == []

    @pytest.mark.asyncio
    async def test_snapshot_timeout_degrades(
        self, risk_service: RiskAlertService, snapshot_provider
    ) -> None:
        snapshot_provider.delay = 5

        listing = await risk_service.list_alerts()

        assert listing.snapshot_available is False


class TestScheduledScan:
    """Auto-notify scan with at-most-once notification per condition."""

    @pytest.mark.asyncio
    async def test_notifies_each_condition_once(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test a persisting condition notifies on the first scan only."""
        snapshot_provider.records = [make_record("r1", end_date=due_in(-1), progress=10)]

        first = await risk_service.run_scheduled_scan()
        second = await risk_service.run_scheduled_scan()

        assert sorted(dispatcher.sent) == [
            ("r1", "deadline_progress"),
            ("r1", "overdue_tasks"),
        ]
        assert first.dispatched == 2
        assert second.dispatched == 0
        assert second.already_notified == 2

    @pytest.mark.asyncio
    async def test_recurrence_notifies_again(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test clear then recur produces a second notification."""
        blocked = make_record("r1", blocked="是")
        snapshot_provider.records = [blocked]
        await risk_service.run_scheduled_scan()

        snapshot_provider.records = [make_record("r1", blocked="否")]
        cleared = await risk_service.run_scheduled_scan()

        snapshot_provider.records = [blocked]
        await risk_service.run_scheduled_scan()

        assert cleared.cleared == 1
        assert dispatcher.sent == [("r1", "blocked_tasks"), ("r1", "blocked_tasks")]

    @pytest.mark.asyncio
    async def test_only_auto_notify_rules_dispatch(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        await risk_service.rule_store.update("blocked_tasks", {"auto_notify": False})
        snapshot_provider.records = [make_record("r1", blocked="是")]

        report = await risk_service.run_scheduled_scan()

        assert report.alerts == 1
        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_disabled_rule_does_not_dispatch(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        await risk_service.rule_store.update("blocked_tasks", {"enabled": False})
        snapshot_provider.records = [make_record("r1", blocked="是")]

        await risk_service.run_scheduled_scan()

        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_reenabled_rule_notifies_again(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test turning a rule off and on again starts its dedup fresh."""
        snapshot_provider.records = [make_record("r1", blocked="是")]
        await risk_service.run_scheduled_scan()

        store = risk_service.rule_store
        await store.update("blocked_tasks", {"auto_notify": False})
        await store.update("blocked_tasks", {"auto_notify": True})
        await risk_service.run_scheduled_scan()

        assert dispatcher.sent == [("r1", "blocked_tasks"), ("r1", "blocked_tasks")]

    @pytest.mark.asyncio
    async def test_rule_turned_off_during_send_notifies_after_reenable(
        self, risk_service: RiskAlertService, snapshot_provider
    ) -> None:
        """Test a delivery that lands after its rule was disabled is not remembered."""
        entered = asyncio.Event()
        gate = asyncio.Event()

        class GatedDispatcher(RecordingDispatcher):
            async def send(self, alert, rule) -> None:
                entered.set()
                await gate.wait()
                await super().send(alert, rule)

        dispatcher = GatedDispatcher()
        risk_service.dispatcher = dispatcher
        snapshot_provider.records = [make_record("r1", blocked="是")]
        store = risk_service.rule_store

        scan = asyncio.create_task(risk_service.run_scheduled_scan())
        await entered.wait()
        await store.update("blocked_tasks", {"enabled": False})
        gate.set()
        first = await scan

        await store.update("blocked_tasks", {"enabled": True})
        second = await risk_service.run_scheduled_scan()

        assert first.dispatched == 1
        assert second.dispatched == 1
        assert dispatcher.sent == [("r1", "blocked_tasks"), ("r1", "blocked_tasks")]

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_isolated_and_retried(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test one failed send neither stops the pass nor is forgotten."""
        snapshot_provider.records = [
            make_record("bad", blocked="是"),
            make_record("good", blocked="是"),
        ]
        dispatcher.fail_for = {"bad"}

        report = await risk_service.run_scheduled_scan()

        assert report.failed == 1
        assert report.dispatched == 1
        assert dispatcher.sent == [("good", "blocked_tasks")]

        dispatcher.fail_for = set()
        retry = await risk_service.run_scheduled_scan()

        assert retry.dispatched == 1
        assert dispatcher.sent[-1] == ("bad", "blocked_tasks")

    @pytest.mark.asyncio
    async def test_dispatch_timeout_releases_claim(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        snapshot_provider.records = [
            make_record("slow", blocked="是"),
            make_record("fast", blocked="是"),
        ]
        dispatcher.stall_for = {"slow"}

        report = await risk_service.run_scheduled_scan()

        assert report.failed == 1
        assert dispatcher.sent == [("fast", "blocked_tasks")]
        assert risk_service.dedup.first_seen_at("slow", "blocked_tasks") is None

    @pytest.mark.asyncio
    async def test_cancellation_releases_claim(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test a scan cancelled mid-send leaves the condition unclaimed."""
        risk_service.dispatch_timeout = 60
        snapshot_provider.records = [make_record("slow", blocked="是")]
        dispatcher.stall_for = {"slow"}

        task = asyncio.create_task(risk_service.run_scheduled_scan())
        while not dispatcher.attempts:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(risk_service.dedup) == 0
        assert risk_service.scan_in_progress is False

    @pytest.mark.asyncio
    async def test_overlapping_scan_is_skipped(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test a scan started while another runs is skipped, not queued."""
        snapshot_provider.records = [make_record("r1", blocked="是")]
        snapshot_provider.delay = 0.1

        first, second = await asyncio.gather(
            risk_service.run_scheduled_scan(),
            risk_service.run_scheduled_scan(),
        )

        assert first.status == ScanStatus.COMPLETED
        assert second.status == ScanStatus.SKIPPED
        assert dispatcher.sent == [("r1", "blocked_tasks")]

    @pytest.mark.asyncio
    async def test_snapshot_unavailable_keeps_dedup(
        self, risk_service: RiskAlertService, snapshot_provider, dispatcher
    ) -> None:
        """Test an unavailable snapshot neither notifies nor clears state."""
        snapshot_provider.records = [make_record("r1", blocked="是")]
        await risk_service.run_scheduled_scan()

        snapshot_provider.error = SnapshotUnavailableError("offline")
        report = await risk_service.run_scheduled_scan()

        assert report.status == ScanStatus.SNAPSHOT_UNAVAILABLE
        assert risk_service.dedup.first_seen_at("r1", "blocked_tasks") is not None

        snapshot_provider.error = None
        await risk_service.run_scheduled_scan()
        assert dispatcher.sent == [("r1", "blocked_tasks")]

    @pytest.mark.asyncio
    async def test_report_to_dict(self, risk_service: RiskAlertService) -> None:
        report = await risk_service.run_scheduled_scan()

        data = report.to_dict()

        assert data["status"] == "completed"
        assert data["records"] == 0
        assert isinstance(data["started_at"], str)


@pytest.mark.asyncio
async def test_aclose_closes_adapters(risk_service: RiskAlertService) -> None:
    closed = []

    class ClosingProvider(StaticSnapshotProvider):
        async def aclose(self) -> None:
            closed.append("snapshot")

    class ClosingDispatcher(RecordingDispatcher):
        async def aclose(self) -> None:
            closed.append("dispatcher")

    risk_service.snapshot_provider = ClosingProvider()
    risk_service.dispatcher = ClosingDispatcher()

    await risk_service.aclose()

    assert closed == ["snapshot", "dispatcher"]
