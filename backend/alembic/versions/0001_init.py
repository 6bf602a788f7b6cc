"""init: machines, job orders, rolls, receiving, data quality

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "machines",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("section", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("code", name="uq_machines_code"),
    )
    op.create_index("ix_machines_section", "machines", ["section"])

    op.create_table(
        "job_orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_ref", sa.Text(), nullable=False),
        sa.Column("item_name", sa.Text(), nullable=True),
        sa.Column("target_quantity", sa.Float(), nullable=False),
        sa.Column("requires_printing", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_job_orders_order_ref", "job_orders", ["order_ref"])

    op.create_table(
        "rolls",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_order_id", sa.Uuid(), sa.ForeignKey("job_orders.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("roll_number", sa.Integer(), nullable=False),
        sa.Column("extrude_qty", sa.Float(), nullable=True),
        sa.Column("print_qty", sa.Float(), nullable=True),
        sa.Column("cut_qty", sa.Float(), nullable=True),
        sa.Column("extruded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("extruded_by", sa.Text(), nullable=True),
        sa.Column("printed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("printed_by", sa.Text(), nullable=True),
        sa.Column("cut_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cut_by", sa.Text(), nullable=True),
        sa.Column("extrusion_machine_id", sa.Uuid(), sa.ForeignKey("machines.id", ondelete="SET NULL"), nullable=True),
        sa.Column("printing_machine_id", sa.Uuid(), sa.ForeignKey("machines.id", ondelete="SET NULL"), nullable=True),
        sa.Column("cutting_machine_id", sa.Uuid(), sa.ForeignKey("machines.id", ondelete="SET NULL"), nullable=True),
        sa.Column("terminal_status", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        # Left-to-right population; print may be skipped for unprinted items (checked in the service).
        sa.CheckConstraint("print_qty is null or extrude_qty is not null", name="ck_rolls_print_after_extrude"),
        sa.CheckConstraint("cut_qty is null or extrude_qty is not null", name="ck_rolls_cut_after_extrude"),
    )
    op.create_index("ux_rolls_job_order_roll_number", "rolls", ["job_order_id", "roll_number"], unique=True)
    op.create_index("ix_rolls_job_order_id", "rolls", ["job_order_id"])

    op.create_table(
        "receiving_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("job_order_id", sa.Uuid(), sa.ForeignKey("job_orders.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("roll_id", sa.Uuid(), sa.ForeignKey("rolls.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("received_by", sa.Text(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("quantity > 0", name="ck_receiving_transactions_quantity_positive"),
    )
    op.create_index("ix_receiving_transactions_job_order_id", "receiving_transactions", ["job_order_id"])
    op.create_index("ix_receiving_transactions_roll_id", "receiving_transactions", ["roll_id"])

    op.create_table(
        "data_quality_warnings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("roll_id", sa.Uuid(), sa.ForeignKey("rolls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("job_order_id", sa.Uuid(), sa.ForeignKey("job_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("from_stage", sa.Text(), nullable=False),
        sa.Column("to_stage", sa.Text(), nullable=False),
        sa.Column("from_qty", sa.Float(), nullable=False),
        sa.Column("to_qty", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_data_quality_warnings_roll_id", "data_quality_warnings", ["roll_id"])
    op.create_index("ix_data_quality_warnings_created_at", "data_quality_warnings", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_data_quality_warnings_created_at", table_name="data_quality_warnings")
    op.drop_index("ix_data_quality_warnings_roll_id", table_name="data_quality_warnings")
    op.drop_table("data_quality_warnings")

    op.drop_index("ix_receiving_transactions_roll_id", table_name="receiving_transactions")
    op.drop_index("ix_receiving_transactions_job_order_id", table_name="receiving_transactions")
    op.drop_table("receiving_transactions")

    op.drop_index("ix_rolls_job_order_id", table_name="rolls")
    op.drop_index("ux_rolls_job_order_roll_number", table_name="rolls")
    op.drop_table("rolls")

    op.drop_index("ix_job_orders_order_ref", table_name="job_orders")
    op.drop_table("job_orders")

    op.drop_index("ix_machines_section", table_name="machines")
    op.drop_table("machines")
