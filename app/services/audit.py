"""Append-only rule change audit log."""

from app.core.logging import audit_logger
from app.rules.models import RuleChangeLogEntry, RuleChangeLogFilter
from app.services.persistence import AuditPersistence


class RuleAuditLog:
    """Audit trail of rule configuration changes.

    Note: This class only appends and reads. There is no update or delete
    path; entries are immutable once written. Entries are returned in
    insertion order.
    """

    def __init__(self, persistence: AuditPersistence) -> None:
        self.persistence = persistence

    async def append(self, entry: RuleChangeLogEntry) -> RuleChangeLogEntry:
        """Write an entry to durable storage and the audit logger.

        Args:
            entry: Entry to store (its id is assigned by storage)

        Returns:
            The stored entry
        """
        stored = await self.persistence.append(entry)

        audit_logger.log(
            action=stored.action.value,
            rule_key=stored.rule_id,
            note=stored.note,
            entry_id=stored.id,
        )

        return stored

    async def list(
        self,
        filters: RuleChangeLogFilter | None = None,
    ) -> list[RuleChangeLogEntry]:
        """Read entries, optionally filtered by rule or action."""
        return await self.persistence.list(filters or RuleChangeLogFilter())
