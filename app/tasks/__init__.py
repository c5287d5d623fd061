"""Scheduled tasks for the risk engine.

This package contains the periodic risk scan that evaluates the task
table and sends auto-notify alerts.
"""

from app.tasks.risk_scan import RiskScanScheduler, run_risk_scan_task

__all__ = [
    "RiskScanScheduler",
    "run_risk_scan_task",
]
