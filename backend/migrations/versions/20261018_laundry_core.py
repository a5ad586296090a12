"""Branches, customers, orders, ledger, audit log, cash management, loyalty, notifications

Revision ID: 20261018_laundry_core
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_laundry_core"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=nullable)


def _money(name, nullable=False, default=True):
    if default:
        return sa.Column(name, sa.Numeric(12, 2), nullable=nullable, server_default=sa.text("0"))
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable)


def upgrade():
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_branches_code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "branch_features",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("feature_key", sa.String(64), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "feature_key", name="uq_branch_features_branch_key"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("branch_features", schema=None) as batch_op:
        batch_op.create_index("ix_branch_features_branch_id", ["branch_id"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phone", name="uq_customers_phone"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_branch_id", ["branch_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("receipt_number", sa.String(64), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("item_name", sa.String(128), nullable=False),
        sa.Column("service_type", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _money("unit_price"),
        _money("total_amount", default=False),
        _money("paid_amount"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="not_paid"),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="cash"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("ready_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("collected_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("paid_amount >= 0", name="ck_orders_paid_non_negative"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_receipt_number", ["receipt_number"], unique=False)
        batch_op.create_index("ix_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_orders_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_orders_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_branch_receipt", ["branch_id", "receipt_number"], unique=False)
        batch_op.create_index("ix_orders_branch_order_date", ["branch_id", "order_date"], unique=False)

    op.create_table(
        "receipt_numbers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("business_date", sa.Date(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("receipt_number", sa.String(64), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "receipt_number", name="uq_receipt_numbers_branch_number"),
        sa.UniqueConstraint("branch_id", "business_date", "sequence", name="uq_receipt_numbers_branch_day_seq"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        _money("amount", default=False),
        sa.Column("payment_method", sa.String(16), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.create_index("ix_transactions_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_transactions_branch_date", ["branch_id", "transaction_date"], unique=False)
        batch_op.create_index(
            "ix_transactions_order_type_date", ["order_id", "transaction_type", "transaction_date"], unique=False,
        )

    op.create_table(
        "payment_audit_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("old_payment_status", sa.String(16), nullable=True),
        sa.Column("new_payment_status", sa.String(16), nullable=True),
        _money("old_paid_amount", nullable=True, default=False),
        _money("new_paid_amount", nullable=True, default=False),
        sa.Column("old_payment_method", sa.String(16), nullable=True),
        sa.Column("new_payment_method", sa.String(16), nullable=True),
        sa.Column("changed_by", sa.String(128), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("payment_audit_log", schema=None) as batch_op:
        batch_op.create_index("ix_payment_audit_log_transaction_id", ["transaction_id"], unique=False)
        batch_op.create_index("ix_payment_audit_log_order_changed", ["order_id", "changed_at"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        _money("amount", default=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("payment_source", sa.String(16), nullable=False, server_default="cash"),
        sa.Column("expense_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.create_index("ix_expenses_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_expenses_branch_date", ["branch_id", "expense_date"], unique=False)

    op.create_table(
        "bank_deposits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        _money("amount", default=False),
        sa.Column("reference", sa.String(64), nullable=True),
        sa.Column("bank_name", sa.String(128), nullable=True),
        sa.Column("deposit_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_bank_deposits_amount_positive"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("bank_deposits", schema=None) as batch_op:
        batch_op.create_index("ix_bank_deposits_branch_date", ["branch_id", "deposit_date"], unique=False)

    op.create_table(
        "daily_cash_summaries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        _money("opening_balance"),
        _money("cash_sales"),
        _money("book_sales"),
        _money("card_sales"),
        _money("mobile_money_sales"),
        _money("bank_deposits"),
        _money("expenses_from_cash"),
        _money("expenses_from_bank"),
        _money("expenses_from_mpesa"),
        _money("cash_in_hand"),
        _money("closing_balance"),
        _money("bank_payments"),
        _money("mpesa_received"),
        _money("mpesa_paid"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_reconciled", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("reconciled_by", sa.String(128), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date", "branch_id", name="uq_daily_cash_summaries_date_branch"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("daily_cash_summaries", schema=None) as batch_op:
        batch_op.create_index("ix_daily_cash_summaries_date", ["date"], unique=False)
        batch_op.create_index("ix_daily_cash_summaries_branch_id", ["branch_id"], unique=False)

    op.create_table(
        "loyalty_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("current_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tier", sa.String(16), nullable=False, server_default="Bronze"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("customer_id", name="uq_loyalty_accounts_customer"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("loyalty_accounts", schema=None) as batch_op:
        batch_op.create_index("ix_loyalty_accounts_customer_id", ["customer_id"], unique=False)

    op.create_table(
        "loyalty_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        _money("amount", nullable=True, default=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("loyalty_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_loyalty_transactions_order_id", ["order_id"], unique=False)
        batch_op.create_index(
            "ix_loyalty_transactions_customer_created", ["customer_id", "created_at"], unique=False,
        )

    op.create_table(
        "notification_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("recipient", sa.String(128), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("notification_log", schema=None) as batch_op:
        batch_op.create_index("ix_notification_log_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_notification_log_kind_created", ["kind", "created_at"], unique=False)


def downgrade():
    op.drop_table("notification_log")
    op.drop_table("loyalty_transactions")
    op.drop_table("loyalty_accounts")
    op.drop_table("daily_cash_summaries")
    op.drop_table("bank_deposits")
    op.drop_table("expenses")
    op.drop_table("payment_audit_log")
    op.drop_table("transactions")
    op.drop_table("receipt_numbers")
    op.drop_table("orders")
    op.drop_table("customers")
    op.drop_table("branch_features")
    op.drop_table("branches")
