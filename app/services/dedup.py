"""At-most-once notification tracking per (record, rule) condition onset.

Claims live in memory only. Once a notification is delivered the condition
is written to the dedup store, so it stays suppressed across restarts and
one-shot runs until it resolves.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from app.db.base import utc_now
from app.rules.models import RuleConfig
from app.services.persistence import (
    DedupPersistence,
    InMemoryDedupPersistence,
    NotifiedCondition,
)

logger = logging.getLogger(__name__)


@dataclass
class DedupEntry:
    """Tracked condition. ``notified`` stays False while a send is in flight."""

    first_seen_at: datetime
    notified: bool = False


class NotificationDedupTracker:
    """Remembers which (record, rule) conditions have already notified.

    Only the scheduled notification path uses the tracker; callers must
    serialize access (the scheduled scan holds a lock for the whole pass).

    A failed write to the store is logged and the in-memory state is kept,
    so this process still suppresses the condition.
    """

    def __init__(
        self,
        persistence: DedupPersistence | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.persistence = persistence or InMemoryDedupPersistence()
        self.clock = clock
        self._entries: dict[tuple[str, str], DedupEntry] = {}

    async def load(self) -> int:
        """Restore delivered conditions from the store.

        Returns:
            Number of conditions restored
        """
        conditions = await self.persistence.load()
        for condition in conditions:
            self._entries[(condition.record_id, condition.rule_key)] = DedupEntry(
                first_seen_at=condition.first_seen_at,
                notified=True,
            )
        logger.info(f"Restored {len(conditions)} delivered risk notifications")
        return len(conditions)

    def should_notify(self, record_id: str, rule_key: str) -> bool:
        """Claim the condition for notification.

        Returns True the first time a condition is seen, False on every
        later call until the condition is cleared or released.
        """
        key = (record_id, rule_key)
        if key in self._entries:
            return False
        self._entries[key] = DedupEntry(first_seen_at=self.clock())
        return True

    async def mark_notified(self, record_id: str, rule_key: str) -> bool:
        """Record that the notification for a claimed condition was delivered.

        A condition without a claim (cleared while its send was in flight)
        is left untracked, so a later recurrence notifies again.

        Returns:
            True if the claim was marked
        """
        entry = self._entries.get((record_id, rule_key))
        if entry is None:
            logger.info(
                f"Notification for {record_id} delivered after its claim was cleared",
                extra={"rule_key": rule_key, "record_id": record_id},
            )
            return False

        entry.notified = True
        condition = NotifiedCondition(
            record_id=record_id,
            rule_key=rule_key,
            first_seen_at=entry.first_seen_at,
            notified_at=self.clock(),
        )
        try:
            await self.persistence.save(condition)
        except Exception:
            logger.exception(
                f"Failed to store delivered notification for {record_id}",
                extra={"rule_key": rule_key, "record_id": record_id},
            )
        return True

    def release(self, record_id: str, rule_key: str) -> None:
        """Drop an undelivered claim so the next pass retries it."""
        key = (record_id, rule_key)
        entry = self._entries.get(key)
        if entry is not None and not entry.notified:
            del self._entries[key]

    async def clear(self, record_id: str, rule_key: str) -> None:
        """Forget a condition that no longer holds; a recurrence notifies again."""
        entry = self._entries.pop((record_id, rule_key), None)
        if entry is None or not entry.notified:
            return
        try:
            await self.persistence.delete(record_id, rule_key)
        except Exception:
            logger.exception(
                f"Failed to remove delivered notification for {record_id}",
                extra={"rule_key": rule_key, "record_id": record_id},
            )

    async def clear_resolved(self, rule_key: str, active_record_ids: Iterable[str]) -> int:
        """Clear every tracked condition of a rule whose record is no longer flagged.

        Returns:
            Number of entries cleared
        """
        active = set(active_record_ids)
        resolved = [
            record_id
            for (record_id, key) in self._entries
            if key == rule_key and record_id not in active
        ]
        for record_id in resolved:
            await self.clear(record_id, rule_key)
        return len(resolved)

    async def forget_rule(self, rule_key: str) -> int:
        """Clear all tracked conditions of one rule, in flight claims included."""
        keys = [key for key in self._entries if key[1] == rule_key]
        for key in keys:
            del self._entries[key]
        try:
            await self.persistence.delete_rule(rule_key)
        except Exception:
            logger.exception(
                f"Failed to remove delivered notifications for rule {rule_key}",
                extra={"rule_key": rule_key},
            )
        return len(keys)

    async def on_rule_changed(self, old: RuleConfig, new: RuleConfig) -> None:
        """Rule store listener: a rule that stops notifying starts fresh later."""
        stopped = (old.enabled and not new.enabled) or (
            old.auto_notify and not new.auto_notify
        )
        if stopped:
            cleared = await self.forget_rule(new.key)
            logger.info(f"Cleared {cleared} dedup entries for rule {new.key}")

    def first_seen_at(self, record_id: str, rule_key: str) -> datetime | None:
        entry = self._entries.get((record_id, rule_key))
        return entry.first_seen_at if entry else None

    def __len__(self) -> int:
        return len(self._entries)
