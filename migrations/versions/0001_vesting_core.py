"""create tenants, equity grants, vesting events, price history and audit logs

Revision ID: 0001_vesting_core
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_vesting_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "equity_grants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("employee_id", sa.String(length=255), nullable=False),
        sa.Column("grant_date", sa.Date(), nullable=False),
        sa.Column("share_amount", sa.Numeric(18, 3), nullable=False),
        sa.Column("vested_amount", sa.Numeric(18, 3), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("share_amount > 0", name="ck_equity_grants_share_amount_positive"),
        sa.CheckConstraint("vested_amount >= 0", name="ck_equity_grants_vested_amount_nonnegative"),
        sa.CheckConstraint("vested_amount <= share_amount", name="ck_equity_grants_vested_within_total"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="ck_equity_grants_status"),
    )
    op.create_index("ix_equity_grants_org_id", "equity_grants", ["org_id"])
    op.create_index("ix_equity_grants_employee_id", "equity_grants", ["employee_id"])

    op.create_table(
        "vesting_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "grant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("equity_grants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("vest_date", sa.Date(), nullable=False),
        sa.Column("shares_vested", sa.Numeric(18, 3), nullable=False),
        sa.Column("price_per_share", sa.Numeric(18, 6), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=False, server_default="scheduled"),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("shares_vested > 0", name="ck_vesting_events_shares_positive"),
        sa.CheckConstraint("source IN ('scheduled', 'manual')", name="ck_vesting_events_source"),
        sa.UniqueConstraint("grant_id", "vest_date", name="uq_vesting_events_grant_date"),
    )
    op.create_index("ix_vesting_events_org_id", "vesting_events", ["org_id"])
    op.create_index("ix_vesting_events_grant_id", "vesting_events", ["grant_id"])
    op.create_index("ix_vesting_events_vest_date", "vesting_events", ["vest_date"])

    op.create_table(
        "price_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("price_per_share", sa.Numeric(18, 6), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price_per_share >= 0", name="ck_price_history_price_nonnegative"),
        sa.UniqueConstraint("org_id", "effective_date", name="uq_price_history_org_date"),
    )
    op.create_index("ix_price_history_org_id", "price_history", ["org_id"])
    op.create_index("ix_price_history_effective_date", "price_history", ["effective_date"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_org_id", "audit_logs", ["org_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_org_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_price_history_effective_date", table_name="price_history")
    op.drop_index("ix_price_history_org_id", table_name="price_history")
    op.drop_table("price_history")
    op.drop_index("ix_vesting_events_vest_date", table_name="vesting_events")
    op.drop_index("ix_vesting_events_grant_id", table_name="vesting_events")
    op.drop_index("ix_vesting_events_org_id", table_name="vesting_events")
    op.drop_table("vesting_events")
    op.drop_index("ix_equity_grants_employee_id", table_name="equity_grants")
    op.drop_index("ix_equity_grants_org_id", table_name="equity_grants")
    op.drop_table("equity_grants")
    op.drop_table("tenants")
