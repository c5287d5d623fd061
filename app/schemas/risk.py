"""Risk rule, alert and change log schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from app.rules.models import (
    AlertItem,
    ChangeAction,
    RiskLevel,
    RuleChangeLogEntry,
    RuleConfig,
    RuleType,
)


class RuleRead(BaseModel):
    """Schema for reading a risk rule."""

    key: str
    type: RuleType
    name: str
    description: str
    enabled: bool
    threshold_days: int
    progress_threshold: int
    include_milestones: bool
    auto_notify: bool
    blocked_value: str | None

    @classmethod
    def from_rule(cls, rule: RuleConfig) -> "RuleRead":
        return cls(description=rule.describe(), **rule.to_dict())


class RuleUpdate(BaseModel):
    """Partial rule update. Range checks happen in the rule store."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = None
    threshold_days: int | None = None
    progress_threshold: int | None = None
    include_milestones: bool | None = None
    auto_notify: bool | None = None
    blocked_value: str | None = None


class AlertRead(BaseModel):
    """Schema for reading one risk alert."""

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
    matched_rule_keys: list[str]

    @classmethod
    def from_alert(cls, alert: AlertItem) -> "AlertRead":
        return cls(
            record_id=alert.record_id,
            task_id=alert.task_id,
            task_name=alert.task_name,
            assignee=alert.assignee,
            project=alert.project,
            status=alert.status,
            start_date=alert.start_date,
            end_date=alert.end_date,
            days_left=alert.days_left,
            progress=alert.progress,
            risk_level=alert.risk_level,
            blocked=alert.blocked,
            blocked_reason=alert.blocked_reason,
            is_milestone=alert.is_milestone,
            matched_rule_keys=list(alert.matched_rule_keys),
        )


class RiskListResponse(BaseModel):
    """Result of an on-demand risk evaluation."""

    generated_at: datetime
    evaluation_date: date
    snapshot_available: bool
    rules: list[RuleRead]
    count: int
    items: list[AlertRead]


class RuleChangeLogRead(BaseModel):
    """Schema for reading a rule change log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None
    rule_id: str
    action: ChangeAction
    note: str
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: RuleChangeLogEntry) -> "RuleChangeLogRead":
        return cls.model_validate(entry)


class ScanReportRead(BaseModel):
    """Outcome of a scan triggered through the API."""

    status: str
    started_at: datetime
    records: int
    alerts: int
    dispatched: int
    failed: int
    already_notified: int
    cleared: int
