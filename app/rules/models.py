"""Risk rule data models.

A stored rule is a flat, toggleable configuration record (``RuleConfig``).
Evaluation never reads the flat record directly: each rule is turned into
one of a closed set of condition variants carrying only the fields its rule
type needs.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Union


class RuleType(str, Enum):
    """Closed set of risk rule types."""

    DEADLINE_PROGRESS = "deadline_progress"
    BLOCKED = "blocked"
    OVERDUE = "overdue"


class RiskLevel(str, Enum):
    """Derived alert severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return RISK_LEVEL_RANK[self]


RISK_LEVEL_RANK = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
}


class ChangeAction(str, Enum):
    """Rule change log actions, one per field category."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    THRESHOLD_UPDATED = "threshold_updated"
    BLOCKED_VALUE_UPDATED = "blocked_value_updated"
    AUTO_NOTIFY_TOGGLED = "auto_notify_toggled"
    INCLUDE_MILESTONES_TOGGLED = "include_milestones_toggled"


@dataclass(frozen=True)
class DeadlineProgressCondition:
    """Due soon and behind on progress."""

    threshold_days: int
    progress_threshold: int
    include_milestones: bool


@dataclass(frozen=True)
class BlockedCondition:
    """Blocked field equals the configured marker value."""

    blocked_value: str | None
    include_milestones: bool


@dataclass(frozen=True)
class OverdueCondition:
    """Past due and not in a terminal status."""

    include_milestones: bool


RuleCondition = Union[DeadlineProgressCondition, BlockedCondition, OverdueCondition]


@dataclass(frozen=True)
class RuleConfig:
    """A named, independently toggleable risk rule."""

    key: str
    type: RuleType
    name: str = ""
    enabled: bool = True
    threshold_days: int = 0
    progress_threshold: int = 0
    include_milestones: bool = False
    auto_notify: bool = False
    blocked_value: str | None = None

    def condition(self) -> RuleCondition:
        """Build the evaluation condition for this rule's type."""
        if self.type is RuleType.DEADLINE_PROGRESS:
            return DeadlineProgressCondition(
                threshold_days=self.threshold_days,
                progress_threshold=self.progress_threshold,
                include_milestones=self.include_milestones,
            )
        if self.type is RuleType.BLOCKED:
            return BlockedCondition(
                blocked_value=self.blocked_value,
                include_milestones=self.include_milestones,
            )
        if self.type is RuleType.OVERDUE:
            return OverdueCondition(include_milestones=self.include_milestones)
        raise ValueError(f"Unsupported rule type: {self.type}")

    def describe(self) -> str:
        """Human-readable summary shown next to alerts."""
        if self.type is RuleType.DEADLINE_PROGRESS:
            return f"截止日期 ≤ {self.threshold_days} 天 且 进度 < {self.progress_threshold}%"
        if self.type is RuleType.BLOCKED:
            if not self.blocked_value:
                return "是否阻塞 未配置"
            return f"是否阻塞 = {self.blocked_value}"
        return "截止日期已过期"

    def with_changes(self, **fields: Any) -> "RuleConfig":
        return replace(self, **fields)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RuleConfig":
        """Create a rule from a seed or storage dictionary."""
        return cls(
            key=data["key"],
            type=RuleType(data["type"]),
            name=data.get("name", ""),
            enabled=data.get("enabled", True),
            threshold_days=data.get("threshold_days", 0),
            progress_threshold=data.get("progress_threshold", 0),
            include_milestones=data.get("include_milestones", False),
            auto_notify=data.get("auto_notify", False),
            blocked_value=data.get("blocked_value"),
        )


@dataclass(frozen=True)
class RuleChangeLogEntry:
    """One audited field change of a rule. Immutable once written."""

    rule_id: str
    action: ChangeAction
    note: str
    created_at: datetime
    id: int | None = None


@dataclass(frozen=True)
class RuleChangeLogFilter:
    """Filter parameters for reading the rule change log."""

    rule_id: str | None = None
    action: ChangeAction | None = None
    limit: int | None = None
    offset: int = 0

    def matches(self, entry: RuleChangeLogEntry) -> bool:
        if self.rule_id and entry.rule_id != self.rule_id:
            return False
        if self.action is not None and entry.action is not self.action:
            return False
        return True


@dataclass(frozen=True)
class TaskRecord:
    """One task or milestone row from the synchronized task table.

    Date and progress fields hold the raw source values; they are parsed
    during evaluation and may be malformed.
    """

    record_id: str
    task_id: str = ""
    name: str = ""
    assignee: str = ""
    project: str = ""
    status: str = ""
    start_date: Any = None
    end_date: Any = None
    progress: Any = None
    is_milestone: bool = False
    blocked: str = ""
    blocked_reason: str = ""
    risk_level_hint: str | None = None


@dataclass(frozen=True)
class AlertItem:
    """An at-risk record produced by one evaluation pass."""

    record_id: str
    task_id: str
    task_name: str
    assignee: str
    project: str
    status: str
    start_date: str | None
    end_date: str | None
    days_left: int | None
    progress: float
    risk_level: RiskLevel
    blocked: str
    blocked_reason: str
    is_milestone: bool
    matched_rule_keys: tuple[str, ...]


@dataclass(frozen=True)
class AlertFilters:
    """Display-layer narrowing applied after rule matching."""

    project: str | None = None
    status: str | None = None
    assignee: str | None = None
    risk_level: RiskLevel | None = None
    rule_key: str | None = None

    def matches(self, alert: AlertItem) -> bool:
        project = (self.project or "").strip()
        status = (self.status or "").strip()
        assignee = (self.assignee or "").strip().lower()

        if project and alert.project != project:
            return False
        if status and alert.status != status:
            return False
        if assignee and assignee not in alert.assignee.lower():
            return False
        if self.risk_level is not None and alert.risk_level is not self.risk_level:
            return False
        if self.rule_key and self.rule_key not in alert.matched_rule_keys:
            return False
        return True


@dataclass(frozen=True)
class RuleOverrides:
    """Ad-hoc what-if values for deadline_progress rules. Never stored."""

    threshold_days: int | None = None
    progress_threshold: int | None = None
    include_milestones: bool | None = None

    def is_empty(self) -> bool:
        return (
            self.threshold_days is None
            and self.progress_threshold is None
            and self.include_milestones is None
        )

    def apply(self, rules: list[RuleConfig]) -> list[RuleConfig]:
        """Return copies of the rules with the overrides applied."""
        if self.is_empty():
            return list(rules)

        changes: dict[str, Any] = {}
        if self.threshold_days is not None:
            changes["threshold_days"] = self.threshold_days
        if self.progress_threshold is not None:
            changes["progress_threshold"] = self.progress_threshold
        if self.include_milestones is not None:
            changes["include_milestones"] = self.include_milestones

        return [
            rule.with_changes(**changes)
            if rule.type is RuleType.DEADLINE_PROGRESS
            else rule
            for rule in rules
        ]
