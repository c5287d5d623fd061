"""Risk alert service.

Two entry points share one evaluator:
- list_alerts(): interactive, read-only, safe to run concurrently
- run_scheduled_scan(): auto-notify pass, never overlaps with itself and is
  the only caller of the dedup tracker
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings
from app.db.base import utc_now
from app.rules.engine import AlertEvaluator
from app.rules.loader import load_seed_rules
from app.rules.models import AlertFilters, AlertItem, RuleConfig, RuleOverrides, TaskRecord
from app.rules.validation import validate_overrides
from app.services.audit import RuleAuditLog
from app.services.dedup import NotificationDedupTracker
from app.services.notifier import (
    DispatchFailureError,
    NotificationDispatcher,
    WebhookNotificationDispatcher,
)
from app.services.persistence import (
    SqlAuditPersistence,
    SqlDedupPersistence,
    SqlRulePersistence,
)
from app.services.rule_store import RuleStore
from app.services.snapshot import (
    FeishuSnapshotProvider,
    SnapshotUnavailableError,
    TaskSnapshotProvider,
)

logger = logging.getLogger(__name__)


class ScanStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    SNAPSHOT_UNAVAILABLE = "snapshot_unavailable"


@dataclass
class ScanReport:
    """Outcome of one scheduled scan."""

    status: ScanStatus
    started_at: datetime
    records: int = 0
    alerts: int = 0
    dispatched: int = 0
    failed: int = 0
    already_notified: int = 0
    cleared: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["started_at"] = self.started_at.isoformat()
        return data


@dataclass
class AlertListing:
    """Result of an interactive evaluation."""

    generated_at: datetime
    evaluation_date: date
    rules: list[RuleConfig]
    items: list[AlertItem] = field(default_factory=list)
    snapshot_available: bool = True


class RiskAlertService:
    """Evaluates risks on demand and runs the auto-notify pass."""

    def __init__(
        self,
        rule_store: RuleStore,
        dedup: NotificationDedupTracker,
        snapshot_provider: TaskSnapshotProvider,
        dispatcher: NotificationDispatcher,
        evaluator: AlertEvaluator,
        snapshot_timeout: float = 15.0,
        dispatch_timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.rule_store = rule_store
        self.dedup = dedup
        self.snapshot_provider = snapshot_provider
        self.dispatcher = dispatcher
        self.evaluator = evaluator
        self.snapshot_timeout = snapshot_timeout
        self.dispatch_timeout = dispatch_timeout
        self.clock = clock
        self._scan_lock = asyncio.Lock()

    @property
    def scan_in_progress(self) -> bool:
        return self._scan_lock.locked()

    def today(self) -> date:
        """Evaluation date in the configured zone."""
        return self.clock().astimezone(self.evaluator.tz).date()

    async def fetch_snapshot(self) -> list[TaskRecord]:
        """Fetch the task snapshot with a bounded wait.

        Raises:
            SnapshotUnavailableError: On provider failure or timeout
        """
        try:
            return await asyncio.wait_for(
                self.snapshot_provider.fetch(),
                timeout=self.snapshot_timeout,
            )
        except asyncio.TimeoutError as e:
            raise SnapshotUnavailableError(
                f"Task snapshot timed out after {self.snapshot_timeout}s"
            ) from e

    async def list_alerts(
        self,
        filters: AlertFilters | None = None,
        overrides: RuleOverrides | None = None,
    ) -> AlertListing:
        """Evaluate current alerts for display.

        Overrides are applied to copies of the stored rules and never
        persisted. This path does not read or write dedup state.

        Raises:
            RuleValidationError: If an override is out of range
        """
        overrides = validate_overrides(overrides or RuleOverrides())
        rules = overrides.apply(self.rule_store.get_all())
        now = self.clock()
        today = self.today()

        try:
            records = await self.fetch_snapshot()
        except SnapshotUnavailableError as e:
            logger.warning(f"Risk evaluation skipped, snapshot unavailable: {e}")
            return AlertListing(
                generated_at=now,
                evaluation_date=today,
                rules=rules,
                snapshot_available=False,
            )

        items = self.evaluator.evaluate(rules, records, filters, today=today)
        return AlertListing(
            generated_at=now,
            evaluation_date=today,
            rules=rules,
            items=items,
        )

    async def run_scheduled_scan(self) -> ScanReport:
        """Run one auto-notify pass unless another is still in flight."""
        if self._scan_lock.locked():
            logger.warning("Risk scan skipped: previous scan still running")
            return ScanReport(status=ScanStatus.SKIPPED, started_at=self.clock())

        async with self._scan_lock:
            return await self._scan()

    async def _scan(self) -> ScanReport:
        report = ScanReport(status=ScanStatus.COMPLETED, started_at=self.clock())
        rules = self.rule_store.get_all()
        notify_rules = [rule for rule in rules if rule.enabled and rule.auto_notify]

        try:
            records = await self.fetch_snapshot()
        except SnapshotUnavailableError as e:
            # Nothing is known about current conditions; leave dedup state as is
            logger.warning(f"Risk scan aborted, snapshot unavailable: {e}")
            report.status = ScanStatus.SNAPSHOT_UNAVAILABLE
            return report

        alerts = self.evaluator.evaluate(rules, records, today=self.today())
        report.records = len(records)
        report.alerts = len(alerts)

        for rule in notify_rules:
            active = [alert for alert in alerts if rule.key in alert.matched_rule_keys]
            report.cleared += await self.dedup.clear_resolved(
                rule.key, [alert.record_id for alert in active]
            )

            for alert in active:
                if not self.dedup.should_notify(alert.record_id, rule.key):
                    report.already_notified += 1
                    continue
                if await self._dispatch(alert, rule):
                    report.dispatched += 1
                else:
                    report.failed += 1

        logger.info(
            f"Risk scan finished: records={report.records} alerts={report.alerts} "
            f"dispatched={report.dispatched} failed={report.failed} "
            f"cleared={report.cleared}"
        )
        return report

    async def _dispatch(self, alert: AlertItem, rule: RuleConfig) -> bool:
        """Send one claimed notification; release the claim unless delivered."""
        try:
            await asyncio.wait_for(
                self.dispatcher.send(alert, rule),
                timeout=self.dispatch_timeout,
            )
        except asyncio.CancelledError:
            self.dedup.release(alert.record_id, rule.key)
            raise
        except (DispatchFailureError, asyncio.TimeoutError) as e:
            self.dedup.release(alert.record_id, rule.key)
            logger.warning(
                f"Risk notification failed for {alert.record_id}: {str(e) or 'timed out'}",
                extra={"rule_key": rule.key, "record_id": alert.record_id},
            )
            return False
        except Exception:
            self.dedup.release(alert.record_id, rule.key)
            logger.exception(
                f"Unexpected error sending risk notification for {alert.record_id}",
                extra={"rule_key": rule.key, "record_id": alert.record_id},
            )
            return False

        await self.dedup.mark_notified(alert.record_id, rule.key)
        return True

    async def aclose(self) -> None:
        await self.snapshot_provider.aclose()
        await self.dispatcher.aclose()


async def build_risk_alert_service(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> RiskAlertService:
    """Wire the service from settings.

    Loads and seeds the stored rules and restores delivered notifications,
    so a fresh process does not repeat them.
    """
    seed_rules, ruleset_hash = load_seed_rules(settings.risk_rules_file)
    audit_log = RuleAuditLog(SqlAuditPersistence(session_factory))
    rule_store = RuleStore(
        persistence=SqlRulePersistence(session_factory),
        audit_log=audit_log,
        seed_rules=seed_rules,
        ruleset_hash=ruleset_hash,
    )
    await rule_store.load()

    dedup = NotificationDedupTracker(SqlDedupPersistence(session_factory))
    await dedup.load()
    rule_store.subscribe(dedup.on_rule_changed)

    snapshot_provider = FeishuSnapshotProvider(
        base_url=settings.feishu_base_url,
        app_id=settings.feishu_app_id,
        app_secret=settings.feishu_app_secret,
        app_token=settings.feishu_app_token,
        table_id=settings.feishu_table_id,
        page_size=settings.feishu_page_size,
        timeout=settings.snapshot_timeout_seconds,
    )
    if not snapshot_provider.configured:
        logger.warning("Feishu task table is not configured; snapshots will be unavailable")
    dispatcher = WebhookNotificationDispatcher(
        webhook_url=settings.feishu_webhook_url,
        timeout=settings.dispatch_timeout_seconds,
    )
    evaluator = AlertEvaluator(
        tz=ZoneInfo(settings.risk_timezone),
        done_statuses=settings.risk_done_statuses,
    )

    return RiskAlertService(
        rule_store=rule_store,
        dedup=dedup,
        snapshot_provider=snapshot_provider,
        dispatcher=dispatcher,
        evaluator=evaluator,
        snapshot_timeout=settings.snapshot_timeout_seconds,
        dispatch_timeout=settings.dispatch_timeout_seconds,
    )
