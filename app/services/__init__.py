"""Business logic services."""

from app.services.audit import RuleAuditLog
from app.services.dedup import NotificationDedupTracker
from app.services.risk_alerts import RiskAlertService, build_risk_alert_service
from app.services.rule_store import RuleStore, UnknownRuleKeyError

__all__ = [
    "RuleAuditLog",
    "NotificationDedupTracker",
    "RiskAlertService",
    "build_risk_alert_service",
    "RuleStore",
    "UnknownRuleKeyError",
]
