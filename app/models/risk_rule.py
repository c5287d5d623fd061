"""Risk rule and rule change log persistence models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UuidPrimaryKeyMixin, utc_now


class RiskRule(UuidPrimaryKeyMixin, TimestampMixin, Base):
    """Stored configuration of one risk rule.

    Rows are seeded at startup, one per rule type, and afterwards only
    updated; there is no delete path.
    """

    __tablename__ = "risk_rules"

    key: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="",
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    threshold_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress_threshold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    include_milestones: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    auto_notify: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    blocked_value: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<RiskRule {self.key} type={self.type} enabled={self.enabled}>"


class RiskRuleLog(Base):
    """Append-only record of a single rule field change.

    IMPORTANT: This model intentionally has no update or delete
    operations. Entries are immutable once created.
    """

    __tablename__ = "risk_rule_logs"

    # Integer sequence preserves insertion order for entries sharing a timestamp
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    note: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<RiskRuleLog {self.id} {self.action} on {self.rule_id}>"
