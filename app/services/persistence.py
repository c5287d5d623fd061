"""Durable storage for risk rules, the rule change log and delivered notifications.

Two backends are provided for each store: an in-memory one for tests and
ephemeral runs, and a SQLAlchemy one backed by the risk_rules,
risk_rule_logs and risk_notifications tables.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.risk_notification import RiskNotification
from app.models.risk_rule import RiskRule, RiskRuleLog
from app.rules.models import (
    ChangeAction,
    RuleChangeLogEntry,
    RuleChangeLogFilter,
    RuleConfig,
    RuleType,
)


class RulePersistence(ABC):
    """Abstract storage for rule configurations."""

    @abstractmethod
    async def load(self) -> list[RuleConfig]:
        """Return every stored rule."""
        pass

    @abstractmethod
    async def save(self, rule: RuleConfig) -> None:
        """Insert or replace the rule with the same key."""
        pass


class AuditPersistence(ABC):
    """Abstract append-only storage for rule change log entries."""

    @abstractmethod
    async def append(self, entry: RuleChangeLogEntry) -> RuleChangeLogEntry:
        """Store an entry and return it with its assigned id."""
        pass

    @abstractmethod
    async def list(self, filters: RuleChangeLogFilter) -> list[RuleChangeLogEntry]:
        """Return matching entries in insertion order."""
        pass


@dataclass(frozen=True)
class NotifiedCondition:
    """A (record, rule) condition whose notification was delivered."""

    record_id: str
    rule_key: str
    first_seen_at: datetime
    notified_at: datetime


class DedupPersistence(ABC):
    """Abstract storage for delivered notifications."""

    @abstractmethod
    async def load(self) -> list[NotifiedCondition]:
        """Return every stored condition."""
        pass

    @abstractmethod
    async def save(self, condition: NotifiedCondition) -> None:
        """Insert or replace the condition with the same (record, rule)."""
        pass

    @abstractmethod
    async def delete(self, record_id: str, rule_key: str) -> None:
        """Remove one condition; a missing one is ignored."""
        pass

    @abstractmethod
    async def delete_rule(self, rule_key: str) -> None:
        """Remove every condition of one rule."""
        pass


class InMemoryRulePersistence(RulePersistence):
    def __init__(self, rules: list[RuleConfig] | None = None) -> None:
        self._rules: dict[str, RuleConfig] = {rule.key: rule for rule in rules or []}

    async def load(self) -> list[RuleConfig]:
        return list(self._rules.values())

    async def save(self, rule: RuleConfig) -> None:
        self._rules[rule.key] = rule


class InMemoryAuditPersistence(AuditPersistence):
    def __init__(self) -> None:
        self._entries: list[RuleChangeLogEntry] = []

    async def append(self, entry: RuleChangeLogEntry) -> RuleChangeLogEntry:
        stored = replace(entry, id=len(self._entries) + 1)
        self._entries.append(stored)
        return stored

    async def list(self, filters: RuleChangeLogFilter) -> list[RuleChangeLogEntry]:
        matching = [entry for entry in self._entries if filters.matches(entry)]
        end = None if filters.limit is None else filters.offset + filters.limit
        return matching[filters.offset:end]


class InMemoryDedupPersistence(DedupPersistence):
    def __init__(self) -> None:
        self._conditions: dict[tuple[str, str], NotifiedCondition] = {}

    async def load(self) -> list[NotifiedCondition]:
        return list(self._conditions.values())

    async def save(self, condition: NotifiedCondition) -> None:
        self._conditions[(condition.record_id, condition.rule_key)] = condition

    async def delete(self, record_id: str, rule_key: str) -> None:
        self._conditions.pop((record_id, rule_key), None)

    async def delete_rule(self, rule_key: str) -> None:
        for key in [key for key in self._conditions if key[1] == rule_key]:
            del self._conditions[key]


def _as_utc(value: datetime) -> datetime:
    # SQLite drops the offset on read
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _rule_from_row(row: RiskRule) -> RuleConfig:
    return RuleConfig(
        key=row.key,
        type=RuleType(row.type),
        name=row.name,
        enabled=row.enabled,
        threshold_days=row.threshold_days,
        progress_threshold=row.progress_threshold,
        include_milestones=row.include_milestones,
        auto_notify=row.auto_notify,
        blocked_value=row.blocked_value,
    )


def _entry_from_row(row: RiskRuleLog) -> RuleChangeLogEntry:
    return RuleChangeLogEntry(
        id=row.id,
        rule_id=row.rule_id,
        action=ChangeAction(row.action),
        note=row.note,
        created_at=row.created_at,
    )


class SqlRulePersistence(RulePersistence):
    """Rule storage on the risk_rules table. One session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def load(self) -> list[RuleConfig]:
        async with self.session_factory() as session:
            result = await session.execute(select(RiskRule).order_by(RiskRule.key))
            return [_rule_from_row(row) for row in result.scalars().all()]

    async def save(self, rule: RuleConfig) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(RiskRule).where(RiskRule.key == rule.key)
            )
            row = result.scalar_one_or_none()

            if row is None:
                row = RiskRule(key=rule.key)
                session.add(row)

            row.type = rule.type.value
            row.name = rule.name
            row.enabled = rule.enabled
            row.threshold_days = rule.threshold_days
            row.progress_threshold = rule.progress_threshold
            row.include_milestones = rule.include_milestones
            row.auto_notify = rule.auto_notify
            row.blocked_value = rule.blocked_value

            await session.commit()


class SqlAuditPersistence(AuditPersistence):
    """Change log storage on the risk_rule_logs table.

    Only insert and select are issued; rows are never updated or deleted.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def append(self, entry: RuleChangeLogEntry) -> RuleChangeLogEntry:
        async with self.session_factory() as session:
            row = RiskRuleLog(
                rule_id=entry.rule_id,
                action=entry.action.value,
                note=entry.note,
                created_at=entry.created_at,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return replace(entry, id=row.id)

    async def list(self, filters: RuleChangeLogFilter) -> list[RuleChangeLogEntry]:
        query = select(RiskRuleLog).order_by(RiskRuleLog.id)

        if filters.rule_id:
            query = query.where(RiskRuleLog.rule_id == filters.rule_id)
        if filters.action is not None:
            query = query.where(RiskRuleLog.action == filters.action.value)

        query = query.offset(filters.offset)
        if filters.limit is not None:
            query = query.limit(filters.limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_entry_from_row(row) for row in result.scalars().all()]


class SqlDedupPersistence(DedupPersistence):
    """Delivered notification storage on the risk_notifications table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def load(self) -> list[NotifiedCondition]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(RiskNotification).order_by(
                    RiskNotification.rule_key, RiskNotification.record_id
                )
            )
            return [
                NotifiedCondition(
                    record_id=row.record_id,
                    rule_key=row.rule_key,
                    first_seen_at=_as_utc(row.first_seen_at),
                    notified_at=_as_utc(row.notified_at),
                )
                for row in result.scalars().all()
            ]

    async def save(self, condition: NotifiedCondition) -> None:
        async with self.session_factory() as session:
            row = await session.get(
                RiskNotification, (condition.record_id, condition.rule_key)
            )
            if row is None:
                row = RiskNotification(
                    record_id=condition.record_id,
                    rule_key=condition.rule_key,
                )
                session.add(row)

            row.first_seen_at = condition.first_seen_at
            row.notified_at = condition.notified_at
            await session.commit()

    async def delete(self, record_id: str, rule_key: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                delete(RiskNotification).where(
                    RiskNotification.record_id == record_id,
                    RiskNotification.rule_key == rule_key,
                )
            )
            await session.commit()

    async def delete_rule(self, rule_key: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                delete(RiskNotification).where(RiskNotification.rule_key == rule_key)
            )
            await session.commit()
