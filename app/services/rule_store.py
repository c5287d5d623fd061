"""Risk rule store with validated, audited updates.

The set of rule keys is fixed when the store loads (seeded once per rule
type). Rules can be toggled and re-tuned but never created or deleted
through the store.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable

from app.db.base import utc_now
from app.rules.models import ChangeAction, RuleChangeLogEntry, RuleConfig
from app.rules.validation import validate_rule_update
from app.services.audit import RuleAuditLog
from app.services.persistence import RulePersistence

logger = logging.getLogger(__name__)

RuleChangeListener = Callable[[RuleConfig, RuleConfig], Awaitable[None] | None]

# Audited fields in log order: (attribute, display label)
AUDITED_FIELDS = (
    ("enabled", "enabled"),
    ("threshold_days", "thresholdDays"),
    ("progress_threshold", "progressThreshold"),
    ("blocked_value", "blockedValue"),
    ("auto_notify", "autoNotify"),
    ("include_milestones", "includeMilestones"),
)


class UnknownRuleKeyError(LookupError):
    """Raised when an update references a rule key that does not exist."""

    pass


def _render_value(value: Any) -> str:
    if value is None:
        return "(unset)"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _action_for(field: str, new_value: Any) -> ChangeAction:
    if field == "enabled":
        return ChangeAction.ENABLED if new_value else ChangeAction.DISABLED
    if field in ("threshold_days", "progress_threshold"):
        return ChangeAction.THRESHOLD_UPDATED
    if field == "blocked_value":
        return ChangeAction.BLOCKED_VALUE_UPDATED
    if field == "auto_notify":
        return ChangeAction.AUTO_NOTIFY_TOGGLED
    if field == "include_milestones":
        return ChangeAction.INCLUDE_MILESTONES_TOGGLED
    raise ValueError(f"Field is not audited: {field}")


def build_change_entries(
    old: RuleConfig,
    new: RuleConfig,
    created_at: datetime,
) -> list[RuleChangeLogEntry]:
    """One log entry per changed field, all sharing one timestamp."""
    entries = []
    for field, label in AUDITED_FIELDS:
        before = getattr(old, field)
        after = getattr(new, field)
        if before == after:
            continue
        entries.append(
            RuleChangeLogEntry(
                rule_id=new.key,
                action=_action_for(field, after),
                note=f"{label}: {_render_value(before)} → {_render_value(after)}",
                created_at=created_at,
            )
        )
    return entries


class RuleStore:
    """Holds the configured rules and serializes updates per rule key."""

    def __init__(
        self,
        persistence: RulePersistence,
        audit_log: RuleAuditLog,
        seed_rules: Iterable[RuleConfig] = (),
        ruleset_hash: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.persistence = persistence
        self.audit_log = audit_log
        self.seed_rules = list(seed_rules)
        self.ruleset_hash = ruleset_hash
        self.clock = clock
        self._rules: dict[str, RuleConfig] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[RuleChangeListener] = []

    async def load(self) -> list[RuleConfig]:
        """Load stored rules, persisting any seed rule not yet stored.

        Stored rules always win over seed values, so edits survive restarts.
        """
        stored = {rule.key: rule for rule in await self.persistence.load()}

        rules: dict[str, RuleConfig] = {}
        for seed in self.seed_rules:
            if seed.key in stored:
                rules[seed.key] = stored.pop(seed.key)
            else:
                await self.persistence.save(seed)
                rules[seed.key] = seed
                logger.info(
                    f"Seeded risk rule {seed.key} from ruleset sha256={self.ruleset_hash}"
                )

        # Rules stored by an earlier deployment but absent from the seed file
        for key in sorted(stored):
            rules[key] = stored[key]

        self._rules = rules
        self._locks = {key: asyncio.Lock() for key in rules}
        logger.info(f"Loaded {len(rules)} risk rules (ruleset sha256={self.ruleset_hash})")
        return self.get_all()

    def get_all(self) -> list[RuleConfig]:
        """Current rules in seed order."""
        return list(self._rules.values())

    def get(self, key: str) -> RuleConfig:
        try:
            return self._rules[key]
        except KeyError:
            raise UnknownRuleKeyError(f"Unknown rule key: {key}") from None

    def subscribe(self, listener: RuleChangeListener) -> None:
        """Register a callback invoked with (old, new) after each update.

        Coroutine callbacks are awaited before the update returns.
        """
        self._listeners.append(listener)

    async def update(self, key: str, fields: dict[str, Any]) -> RuleConfig:
        """Apply a partial update to one rule.

        The update is validated as a whole before anything changes. On
        success one audit entry per changed field is appended; an audit
        failure is logged and does not undo the update.

        Args:
            key: Rule key
            fields: Field name to new value (snake_case)

        Returns:
            The updated rule (unchanged if no field differs)

        Raises:
            UnknownRuleKeyError: If the key does not exist
            RuleValidationError: If any field is invalid
        """
        self.get(key)
        validated = validate_rule_update(fields)

        async with self._locks[key]:
            current = self._rules[key]
            changes = {
                name: value
                for name, value in validated.items()
                if getattr(current, name) != value
            }
            if not changes:
                return current

            updated = current.with_changes(**changes)
            await self.persistence.save(updated)
            self._rules[key] = updated

            for entry in build_change_entries(current, updated, self.clock()):
                try:
                    await self.audit_log.append(entry)
                except Exception:
                    logger.exception(
                        f"Failed to append audit entry for rule {key}: {entry.note}",
                        extra={"action": entry.action.value, "rule_key": key},
                    )

        await self._emit(current, updated)
        return updated

    async def _emit(self, old: RuleConfig, new: RuleConfig) -> None:
        for listener in self._listeners:
            try:
                result = listener(old, new)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Rule change listener failed for {new.key}")
