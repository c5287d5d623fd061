"""Deterministic risk detection rules.

Rule types form a closed set; there is no expression language. All alert
decisions are reproducible from (rules, task snapshot, evaluation date).
"""

from app.rules.engine import AlertEvaluator, evaluate_alerts
from app.rules.loader import compute_ruleset_hash, load_ruleset, load_seed_rules
from app.rules.models import (
    AlertFilters,
    AlertItem,
    ChangeAction,
    RiskLevel,
    RuleConfig,
    RuleOverrides,
    RuleType,
    TaskRecord,
)
from app.rules.severity import compute_risk_level

__all__ = [
    "AlertEvaluator",
    "evaluate_alerts",
    "compute_ruleset_hash",
    "load_ruleset",
    "load_seed_rules",
    "AlertFilters",
    "AlertItem",
    "ChangeAction",
    "RiskLevel",
    "RuleConfig",
    "RuleOverrides",
    "RuleType",
    "TaskRecord",
    "compute_risk_level",
]
