"""Delivered risk notifications.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the delivered notification table."""
    op.create_table(
        "risk_notifications",
        sa.Column("record_id", sa.String(100), nullable=False),
        sa.Column("rule_key", sa.String(100), nullable=False),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("record_id", "rule_key", name="pk_risk_notifications"),
    )
    op.create_index("ix_risk_notifications_rule_key", "risk_notifications", ["rule_key"])


def downgrade() -> None:
    """Remove the delivered notification table."""
    op.drop_index("ix_risk_notifications_rule_key", table_name="risk_notifications")
    op.drop_table("risk_notifications")
