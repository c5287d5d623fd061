"""Risk rules and rule change log.

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create risk rule and rule change log tables."""

    # Create risk_rules table
    op.create_table(
        "risk_rules",
        sa.Column("id", sa.Uuid(as_uuid=False), nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False, server_default=""),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("threshold_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress_threshold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("include_milestones", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_notify", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("blocked_value", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_risk_rules"),
    )
    op.create_index("ix_risk_rules_key", "risk_rules", ["key"], unique=True)

    # Create risk_rule_logs table (append-only)
    op.create_table(
        "risk_rule_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("rule_id", sa.String(100), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_risk_rule_logs"),
    )
    op.create_index("ix_risk_rule_logs_rule_id", "risk_rule_logs", ["rule_id"])
    op.create_index("ix_risk_rule_logs_action", "risk_rule_logs", ["action"])


def downgrade() -> None:
    """Remove risk rule tables."""
    op.drop_table("risk_rule_logs")
    op.drop_table("risk_rules")
