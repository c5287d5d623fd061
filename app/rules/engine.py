"""Deterministic risk alert evaluator.

Scans a snapshot of task records against the enabled risk rules and
produces an ordered list of alerts. Evaluation is:
- Pure (no I/O; the evaluation date is an explicit input)
- Deterministic (same rules, records and date = identical output)
- Tolerant (a malformed field only disables the rule types that need it)
"""

from dataclasses import dataclass
from datetime import date, timezone, tzinfo
from typing import Iterable, Sequence, assert_never

from app.rules.models import (
    AlertFilters,
    AlertItem,
    BlockedCondition,
    DeadlineProgressCondition,
    OverdueCondition,
    RuleConfig,
    TaskRecord,
)
from app.rules.records import days_until, format_date, parse_date, parse_progress
from app.rules.severity import compute_risk_level

DEFAULT_DONE_STATUSES = frozenset({"已完成"})


@dataclass(frozen=True)
class ParsedRecord:
    """A task record with its date and progress fields parsed once."""

    record: TaskRecord
    start_date: str | None
    end_date: str | None
    days_left: int | None
    progress: float


class AlertEvaluator:
    """Evaluates task records against risk rules.

    Holds only immutable evaluation context (zone and terminal statuses),
    so one instance can serve any number of concurrent callers.
    """

    def __init__(
        self,
        tz: tzinfo = timezone.utc,
        done_statuses: Iterable[str] = DEFAULT_DONE_STATUSES,
    ) -> None:
        self.tz = tz
        self.done_statuses = frozenset(done_statuses)

    def parse_record(self, record: TaskRecord, today: date) -> ParsedRecord:
        """Parse the date and progress fields of a record."""
        start = parse_date(record.start_date, self.tz)
        end = parse_date(record.end_date, self.tz)

        return ParsedRecord(
            record=record,
            start_date=format_date(start, self.tz),
            end_date=format_date(end, self.tz),
            days_left=days_until(end, today, self.tz),
            progress=parse_progress(record.progress),
        )

    def rule_matches(self, rule: RuleConfig, parsed: ParsedRecord) -> bool:
        """Test one enabled rule against one parsed record."""
        condition = rule.condition()
        record = parsed.record

        if record.is_milestone and not condition.include_milestones:
            return False

        if isinstance(condition, DeadlineProgressCondition):
            if parsed.days_left is None:
                return False
            return (
                parsed.days_left <= condition.threshold_days
                and parsed.progress < condition.progress_threshold
            )
        elif isinstance(condition, BlockedCondition):
            # An unset marker means "not configured", never a wildcard
            if not condition.blocked_value:
                return False
            return record.blocked == condition.blocked_value
        elif isinstance(condition, OverdueCondition):
            if parsed.days_left is None:
                return False
            return parsed.days_left < 0 and record.status not in self.done_statuses
        else:
            assert_never(condition)

    def matched_rules(
        self,
        rules: Sequence[RuleConfig],
        parsed: ParsedRecord,
    ) -> list[RuleConfig]:
        """All enabled rules that fire on the record."""
        return [
            rule
            for rule in rules
            if rule.enabled and self.rule_matches(rule, parsed)
        ]

    def evaluate(
        self,
        rules: Sequence[RuleConfig],
        records: Iterable[TaskRecord],
        filters: AlertFilters | None = None,
        *,
        today: date,
    ) -> list[AlertItem]:
        """Evaluate records against rules.

        Filters narrow the result after matching; they never change which
        rules fire on a record.

        Args:
            rules: Rules to apply (disabled rules are ignored)
            records: Task snapshot
            filters: Optional display filters
            today: Evaluation date in the configured zone

        Returns:
            Alerts sorted by days left (no due date last), then record ID
        """
        alerts: list[AlertItem] = []

        for record in records:
            parsed = self.parse_record(record, today)
            matched = self.matched_rules(rules, parsed)
            if not matched:
                continue

            alert = AlertItem(
                record_id=record.record_id,
                task_id=record.task_id,
                task_name=record.name,
                assignee=record.assignee,
                project=record.project,
                status=record.status,
                start_date=parsed.start_date,
                end_date=parsed.end_date,
                days_left=parsed.days_left,
                progress=parsed.progress,
                risk_level=compute_risk_level(
                    [rule.type for rule in matched],
                    record.risk_level_hint,
                ),
                blocked=record.blocked,
                blocked_reason=record.blocked_reason,
                is_milestone=record.is_milestone,
                matched_rule_keys=tuple(sorted(rule.key for rule in matched)),
            )

            if filters is None or filters.matches(alert):
                alerts.append(alert)

        alerts.sort(key=alert_sort_key)
        return alerts


def alert_sort_key(alert: AlertItem) -> tuple[bool, int, str]:
    """Ascending days left, records without a due date last."""
    return (
        alert.days_left is None,
        alert.days_left if alert.days_left is not None else 0,
        alert.record_id,
    )


def evaluate_alerts(
    rules: Sequence[RuleConfig],
    records: Iterable[TaskRecord],
    filters: AlertFilters | None = None,
    *,
    today: date,
    tz: tzinfo = timezone.utc,
    done_statuses: Iterable[str] = DEFAULT_DONE_STATUSES,
) -> list[AlertItem]:
    """Convenience function to evaluate with a throwaway evaluator."""
    evaluator = AlertEvaluator(tz=tz, done_statuses=done_statuses)
    return evaluator.evaluate(rules, records, filters, today=today)
