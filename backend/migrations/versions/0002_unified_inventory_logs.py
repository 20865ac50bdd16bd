"""Unified inventory_logs table replacing consignment_logs and stock_adjustments

Revision ID: 0002_unified_inventory_logs
Revises: 0001_initial_schema
Create Date: 2026-03-09

Existing rows are converted by the same rules as `flask ledger migrate-legacy`
(consignment logs first, then adjustments) and the legacy tables are dropped
in the same transaction. Downgrade recreates empty legacy tables; converted
history stays in inventory_logs and is not split back.
"""

from alembic import op
import sqlalchemy as sa

from consignbook.services.legacy_service import (
    consignment_logs_table,
    convert_legacy_records,
    stock_adjustments_table,
)


# revision identifiers, used by Alembic.
revision = "0002_unified_inventory_logs"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    inventory_logs = op.create_table(
        "inventory_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("date", sa.DateTime(), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("partner_id", sa.String(32), nullable=True),
        sa.Column("product_id", sa.String(32), nullable=True),
        sa.Column("consignment_id", sa.String(32), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("reason", sa.String(32), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_logs", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_logs_type", ["type"], unique=False)
        batch_op.create_index("ix_inventory_logs_date", ["date"], unique=False)
        batch_op.create_index("ix_inventory_logs_partner_id", ["partner_id"], unique=False)
        batch_op.create_index("ix_inventory_logs_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_inventory_logs_consignment_id", ["consignment_id"], unique=False)
        batch_op.create_index("ix_inventory_logs_partner_date", ["partner_id", "date"], unique=False)

    bind = op.get_bind()
    old_logs = bind.execute(
        sa.select(consignment_logs_table).order_by(consignment_logs_table.c.id)
    ).mappings().all()
    old_adjustments = bind.execute(
        sa.select(stock_adjustments_table).order_by(stock_adjustments_table.c.id)
    ).mappings().all()

    records = convert_legacy_records(old_logs, old_adjustments)
    if records:
        op.bulk_insert(inventory_logs, records)

    op.drop_table("consignment_logs")
    op.drop_table("stock_adjustments")


def downgrade():
    op.create_table(
        "consignment_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("partner_id", sa.String(32), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "stock_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(32), nullable=False),
        sa.Column("type", sa.String(8), nullable=False),
        sa.Column("reason", sa.String(32), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.drop_table("inventory_logs")
