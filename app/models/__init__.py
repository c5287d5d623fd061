"""Database models for the risk engine."""

from app.models.risk_notification import RiskNotification
from app.models.risk_rule import RiskRule, RiskRuleLog

__all__ = [
    "RiskNotification",
    "RiskRule",
    "RiskRuleLog",
]
