"""Scheduled risk scan.

Evaluates the task table against the auto-notify rules and sends one
notification per newly detected (task, rule) condition. Delivered
notifications are stored, so in-process and one-shot runs share the same
dedup state.

Usage:
    # In-process: enabled with RISK_SCAN_ENABLED=true, runs every
    # RISK_SCAN_INTERVAL_SECONDS while the API is up.

    # One-shot run (e.g. from cron)
    python -m app.tasks.risk_scan
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, JobEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.logging import setup_logging
from app.db.init_db import create_tables
from app.services.risk_alerts import (
    RiskAlertService,
    ScanReport,
    build_risk_alert_service,
)

logger = logging.getLogger(__name__)

JOB_ID = "risk_scan"


def job_listener(event: JobEvent) -> None:
    """Log failed and overlapping scan ticks."""
    if event.code == EVENT_JOB_MAX_INSTANCES:
        logger.warning(f"Job {event.job_id} skipped: previous run still in progress")
    elif getattr(event, "exception", None):
        logger.error(f"Job {event.job_id} failed with exception: {event.exception}")


class RiskScanScheduler:
    """Runs the scheduled scan on an interval inside the API's event loop.

    At most one scan job runs at a time and missed ticks are coalesced into
    one. A manual scan that collides with a tick is skipped by the
    service's own lock.
    """

    def __init__(self, service: RiskAlertService, interval_seconds: int) -> None:
        self.service = service
        self.interval_seconds = interval_seconds
        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": interval_seconds,
            },
        )
        self.scheduler.add_listener(job_listener, EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Schedule the scan and start the scheduler; the first scan runs immediately."""
        if self.running:
            logger.warning("Risk scan scheduler already running")
            return

        self.scheduler.add_job(
            self.service.run_scheduled_scan,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Risk detection scan",
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Risk scan scheduler started (every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Shut the scheduler down; a scan in flight is cancelled and its claims released."""
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        logger.info("Risk scan scheduler stopped")


async def run_risk_scan_task(database_url: str | None = None) -> ScanReport:
    """Run a single scan against the configured database and task table.

    Args:
        database_url: Database connection string. Defaults to settings.

    Returns:
        Scan report
    """
    engine = create_async_engine(database_url or settings.database_url, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        await create_tables(engine)
        service = await build_risk_alert_service(settings, session_factory)
        try:
            report = await service.run_scheduled_scan()
        finally:
            await service.aclose()

        logger.info(f"Risk scan complete: {report.to_dict()}")
        return report

    finally:
        await engine.dispose()


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Run one risk detection scan")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (overrides DATABASE_URL env var)",
    )
    args = parser.parse_args()

    setup_logging()

    try:
        report = asyncio.run(run_risk_scan_task(database_url=args.database_url))
        print(f"Scan finished: {report.to_dict()}")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Scan failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
