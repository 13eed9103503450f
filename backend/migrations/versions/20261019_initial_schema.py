"""Initial schema: products, ledger, orders, parcels, cash flow, expenses, cuts

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


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("initial_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("image_url", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "category", "type", "name", name="uq_products_user_category_type_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_products_user_name", ["user_id", "name"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("cause", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.String(64), nullable=False),
        sa.Column("occurrence", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "cause", "reference_id", "product_id", "occurrence",
            name="uq_invtx_user_cause_ref_product_occurrence",
        ),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_transactions_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_cause", ["cause"], unique=False)
        batch_op.create_index("ix_invtx_user_product_created", ["user_id", "product_id", "created_at"], unique=False)
        batch_op.create_index("ix_invtx_user_reference", ["user_id", "reference_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("shop", sa.String(16), nullable=False),
        sa.Column("buyer_name", sa.String(255), nullable=True),
        sa.Column("buyer_contact", sa.String(64), nullable=True),
        sa.Column("buyer_address", sa.Text(), nullable=True),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="Shipped"),
        sa.Column("released_date", sa.Date(), nullable=True),
        sa.Column("released_time", sa.Time(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "order_number", name="uq_orders_user_order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_user_status", ["user_id", "status"], unique=False)
        batch_op.create_index("ix_orders_user_shop_date", ["user_id", "shop", "order_date"], unique=False)

    op.create_table(
        "order_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_lines", schema=None) as batch_op:
        batch_op.create_index("ix_order_lines_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_lines_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_order_lines_order_position", ["order_id", "position"], unique=False)

    op.create_table(
        "order_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("shipping_fee_buyer_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_fee_charged_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_fee_rebate_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("service_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("transaction_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("withholding_tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("platform_voucher_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("seller_voucher_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("coin_redeem_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_buyer_payment_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )

    op.create_table(
        "returned_parcels",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("order_number", sa.String(64), nullable=False),
        sa.Column("shop", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("return_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "order_number", name="uq_returned_parcels_user_order"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("returned_parcels", schema=None) as batch_op:
        batch_op.create_index("ix_returned_parcels_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_returned_parcels_user_status", ["user_id", "status"], unique=False)

    op.create_table(
        "returned_parcel_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("parcel_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["parcel_id"], ["returned_parcels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("returned_parcel_lines", schema=None) as batch_op:
        batch_op.create_index("ix_returned_parcel_lines_parcel_id", ["parcel_id"], unique=False)

    op.create_table(
        "cashflow_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="income"),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cashflow_entries", schema=None) as batch_op:
        batch_op.create_index("ix_cashflow_entries_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_cashflow_user_date", ["user_id", "entry_date"], unique=False)
        batch_op.create_index("ix_cashflow_user_reference", ["user_id", "reference_id"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("delivery_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("image_url", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.create_index("ix_expenses_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_expenses_user_date", ["user_id", "expense_date"], unique=False)

    op.create_table(
        "fabric_cuts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("yards", sa.Integer(), nullable=False),
        sa.Column("cut_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("fabric_cuts", schema=None) as batch_op:
        batch_op.create_index("ix_fabric_cuts_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_fabric_cuts_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_fabric_cuts_user_date", ["user_id", "cut_date"], unique=False)


def downgrade():
    op.drop_table("fabric_cuts")
    op.drop_table("expenses")
    op.drop_table("cashflow_entries")
    op.drop_table("returned_parcel_lines")
    op.drop_table("returned_parcels")
    op.drop_table("order_payments")
    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("inventory_transactions")
    op.drop_table("products")
