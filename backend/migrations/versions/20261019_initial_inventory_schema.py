"""Initial inventory transfer and reconciliation schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    # Master data
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False, server_default="OUTLET"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("kind IN ('HQ', 'DISTRIBUTOR', 'OUTLET')", name="ck_locations_kind"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_locations_code", "locations", ["code"], unique=True)

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_code", sa.String(64), nullable=False),
        sa.Column("stock_no", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("size", sa.String(32), nullable=True),
        sa.Column("brand", sa.String(128), nullable=True),
        sa.Column("colour", sa.String(64), nullable=True),
        sa.Column("retail_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("dealer_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_items_item_code", "items", ["item_code"], unique=True)
    op.create_index("ix_items_stock_no", "items", ["stock_no"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_username", "users", ["username"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_session_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_session_tokens_is_revoked", ["is_revoked"], unique=False)
        batch_op.create_index("ix_session_tokens_user_active", ["user_id", "is_revoked"], unique=False)

    # Ledgers
    for table, prefix in (("stock_ledger", "stock_ledger"), ("quarantine_ledger", "quarantine_ledger")):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("location_id", sa.Integer(), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
            sa.CheckConstraint("quantity >= 0", name=f"ck_{prefix}_quantity_non_negative"),
            sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("location_id", "item_id", name=f"uq_{prefix}_location_item"),
            sqlite_autoincrement=True,
        )
        op.create_index(f"ix_{prefix}_location_id", table, ["location_id"], unique=False)
        op.create_index(f"ix_{prefix}_item_id", table, ["item_id"], unique=False)

    # Transfers
    op.create_table(
        "transfer_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(40), nullable=False),
        sa.Column("from_location_id", sa.Integer(), nullable=True),
        sa.Column("to_location_id", sa.Integer(), nullable=False),
        sa.Column("priority", sa.String(16), nullable=False, server_default="Normal"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_by_name", sa.String(128), nullable=False, server_default="Unknown"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discrepancy_note", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "from_location_id IS NULL OR from_location_id <> to_location_id",
            name="ck_transfer_transactions_distinct_locations",
        ),
        sa.ForeignKeyConstraint(["from_location_id"], ["locations.id"]),
        sa.ForeignKeyConstraint(["to_location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transfer_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_transfer_transactions_code", ["code"], unique=True)
        batch_op.create_index("ix_transfer_transactions_from_location_id", ["from_location_id"], unique=False)
        batch_op.create_index("ix_transfer_transactions_to_location_id", ["to_location_id"], unique=False)
        batch_op.create_index("ix_transfer_transactions_status", ["status"], unique=False)
        batch_op.create_index("ix_transfer_transactions_status_created", ["status", "created_at"], unique=False)
        batch_op.create_index("ix_transfer_transactions_to_status", ["to_location_id", "status"], unique=False)

    op.create_table(
        "transfer_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_transfer_lines_quantity_positive"),
        sa.ForeignKeyConstraint(["transfer_id"], ["transfer_transactions.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_transfer_lines_transfer_id", "transfer_lines", ["transfer_id"], unique=False)
    op.create_index("ix_transfer_lines_item_id", "transfer_lines", ["item_id"], unique=False)

    # Legacy flat mirror: no foreign keys on purpose
    op.create_table(
        "transfer_master",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("transaction_code", sa.String(40), nullable=False),
        sa.Column("from_location_id", sa.Integer(), nullable=True),
        sa.Column("to_location_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("transfer_date", sa.Date(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("stock_no", sa.String(64), nullable=True),
        sa.Column("size", sa.String(32), nullable=True),
        sa.Column("dealer_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("discrepancy_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_transfer_master_transfer", "transfer_master", ["transfer_id"], unique=False)
    op.create_index("ix_transfer_master_code", "transfer_master", ["transaction_code"], unique=False)

    # Exchanges
    op.create_table(
        "exchanges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("original_sale_ref", sa.String(64), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(128), nullable=True),
        sa.Column("customer_mobile", sa.String(32), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_by_name", sa.String(128), nullable=False, server_default="Unknown"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_exchanges_sale_ref", "exchanges", ["original_sale_ref"], unique=False)
    op.create_index("ix_exchanges_location_id", "exchanges", ["location_id"], unique=False)

    op.create_table(
        "exchange_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("exchange_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("size", sa.String(32), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="ck_exchange_lines_quantity_positive"),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_exchange_lines_price_non_negative"),
        sa.CheckConstraint("direction IN ('return', 'issue')", name="ck_exchange_lines_direction"),
        sa.ForeignKeyConstraint(["exchange_id"], ["exchanges.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_exchange_lines_exchange_id", "exchange_lines", ["exchange_id"], unique=False)

    op.create_table(
        "exchange_settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("exchange_id", sa.Integer(), nullable=False),
        sa.Column("original_total_cents", sa.Integer(), nullable=False),
        sa.Column("new_total_cents", sa.Integer(), nullable=False),
        sa.Column("due_cents", sa.Integer(), nullable=False),
        sa.Column("paid_cents", sa.Integer(), nullable=False),
        sa.Column("accepted_partial", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["exchange_id"], ["exchanges.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("exchange_id", name="uq_exchange_settlements_exchange"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "exchange_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("settlement_id", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(8), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("ref", sa.String(128), nullable=True),
        sa.CheckConstraint("amount_cents > 0", name="ck_exchange_payments_amount_positive"),
        sa.CheckConstraint("method IN ('cash', 'card', 'upi')", name="ck_exchange_payments_method"),
        sa.ForeignKeyConstraint(["settlement_id"], ["exchange_settlements.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_exchange_payments_settlement_id", "exchange_payments", ["settlement_id"], unique=False)

    op.create_table(
        "exchange_sale_links",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("original_sale_ref", sa.String(64), nullable=False),
        sa.Column("exchange_id", sa.Integer(), nullable=True),
        sa.Column("new_sale_ref", sa.String(64), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_exchange_sale_links_sale_ref", "exchange_sale_links", ["original_sale_ref"], unique=False)

    # Hold bills
    op.create_table(
        "held_bills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(128), nullable=True),
        sa.Column("customer_mobile", sa.String(32), nullable=True),
        sa.Column("discount_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("held_by_user_id", sa.Integer(), nullable=True),
        sa.Column("held_by_name", sa.String(128), nullable=False, server_default="Unknown"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("held_bills", schema=None) as batch_op:
        batch_op.create_index("ix_held_bills_token", ["token"], unique=True)
        batch_op.create_index("ix_held_bills_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_held_bills_created_at", ["created_at"], unique=False)

    op.create_table(
        "held_bill_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("held_bill_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("size", sa.String(32), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="ck_held_bill_lines_quantity_positive"),
        sa.ForeignKeyConstraint(["held_bill_id"], ["held_bills.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_held_bill_lines_held_bill_id", "held_bill_lines", ["held_bill_id"], unique=False)

    # Audit
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_ref", sa.String(64), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_name", sa.String(128), nullable=False, server_default="Unknown"),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("audit_events", schema=None) as batch_op:
        batch_op.create_index("ix_audit_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_audit_events_entity", ["entity_type", "entity_ref"], unique=False)
        batch_op.create_index("ix_audit_events_occurred", ["occurred_at"], unique=False)


def downgrade():
    for table in (
        "audit_events",
        "held_bill_lines",
        "held_bills",
        "exchange_sale_links",
        "exchange_payments",
        "exchange_settlements",
        "exchange_lines",
        "exchanges",
        "transfer_master",
        "transfer_lines",
        "transfer_transactions",
        "quarantine_ledger",
        "stock_ledger",
        "session_tokens",
        "users",
        "items",
        "locations",
    ):
        op.drop_table(table)
