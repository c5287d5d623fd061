"""Delivered risk notification model."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, utc_now


class RiskNotification(Base):
    """One (record, rule) condition whose notification was delivered.

    A row exists only while the condition stays active. Claims whose send
    is still in flight or failed are never stored.
    """

    __tablename__ = "risk_notifications"

    record_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    rule_key: Mapped[str] = mapped_column(String(100), primary_key=True, index=True)
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    notified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<RiskNotification {self.record_id} rule={self.rule_key}>"
