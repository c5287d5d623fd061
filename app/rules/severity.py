"""Severity derivation for matched records.

Severity is a total function of the matched rule types and the record's
pre-existing risk tag. Each rule type contributes a fixed floor; the result
is the highest-ranked of the floors and the hint.
"""

from typing import Iterable

from app.rules.models import RiskLevel, RuleType

# Floor severity contributed by each matched rule type
RULE_TYPE_SEVERITY: dict[RuleType, RiskLevel] = {
    RuleType.OVERDUE: RiskLevel.HIGH,
    RuleType.DEADLINE_PROGRESS: RiskLevel.MEDIUM,
    RuleType.BLOCKED: RiskLevel.LOW,
}

# Accepted spellings of the task table's 风险等级 column
RISK_HINT_LEVELS: dict[str, RiskLevel] = {
    "低": RiskLevel.LOW,
    "中": RiskLevel.MEDIUM,
    "高": RiskLevel.HIGH,
    "low": RiskLevel.LOW,
    "medium": RiskLevel.MEDIUM,
    "high": RiskLevel.HIGH,
}


def parse_risk_level(value: str | None) -> RiskLevel | None:
    """Map a risk tag to a level, or None if unset or unrecognised."""
    if not value:
        return None
    return RISK_HINT_LEVELS.get(value.strip().lower())


def compute_risk_level(
    matched_types: Iterable[RuleType],
    hint: str | None = None,
) -> RiskLevel:
    """Derive alert severity.

    Args:
        matched_types: Types of the rules that fired on the record
        hint: Pre-existing risk tag on the record (低/中/高 or low/medium/high)

    Returns:
        The maximum of the rule floors and the hint; LOW when neither
        contributes anything
    """
    candidates = [RULE_TYPE_SEVERITY[rule_type] for rule_type in matched_types]

    hinted = parse_risk_level(hint)
    if hinted is not None:
        candidates.append(hinted)

    if not candidates:
        return RiskLevel.LOW
    return max(candidates, key=lambda level: level.rank)
