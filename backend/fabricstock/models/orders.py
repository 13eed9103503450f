from __future__ import annotations

from ..extensions import db
from fabricstock.time_utils import to_utc_z, to_iso_date, to_hhmm


PAYMENT_FIELDS = (
    "shipping_fee_buyer_cents",
    "shipping_fee_charged_cents",
    "shipping_fee_rebate_cents",
    "service_fee_cents",
    "transaction_fee_cents",
    "withholding_tax_cents",
    "platform_voucher_cents",
    "seller_voucher_cents",
    "payment_discount_cents",
    "coin_redeem_cents",
    "total_buyer_payment_cents",
)


class Order(db.Model):
    """
    Marketplace sales order.

    LIFECYCLE (see services/order_state.py):
    Shipped -> Delivered -> Completed, any -> Cancelled, Cancelled -> Delivered.

    - order_number is usually the marketplace's own order number; it is the
      reference id used by the inventory ledger, cash-flow entries and
      returned parcels.
    - released_date/released_time are only meaningful while Delivered; the
      auto-completion target is always recomputed from them.
    - income_status is derived from status, never stored.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("user_id", "order_number", name="uq_orders_user_order_number"),
        db.Index("ix_orders_user_status", "user_id", "status"),
        db.Index("ix_orders_user_shop_date", "user_id", "shop", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    order_number = db.Column(db.String(64), nullable=False)
    shop = db.Column(db.String(16), nullable=False)

    buyer_name = db.Column(db.String(255), nullable=True)
    buyer_contact = db.Column(db.String(64), nullable=True)
    buyer_address = db.Column(db.Text, nullable=True)

    order_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="Shipped", index=True)

    released_date = db.Column(db.Date, nullable=True)
    released_time = db.Column(db.Time, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "OrderLine",
        backref="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.position",
        lazy="selectin",
    )
    payment = db.relationship(
        "OrderPayment",
        backref="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def total_cents(self) -> int:
        return sum(line.subtotal_cents for line in self.lines)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def income_status(self) -> str:
        from ..services.order_state import income_status_for

        return income_status_for(self.status).value

    @property
    def estimated_income_cents(self) -> int:
        from ..services.order_state import estimated_order_income

        return estimated_order_income(self.total_cents, self.payment)

    def quantities_by_product(self) -> dict[int, int]:
        """Line quantities aggregated per product (stock effects are per product)."""
        totals: dict[int, int] = {}
        for line in self.lines:
            totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
        return totals

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_number={self.order_number!r} status={self.status} shop={self.shop}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "shop": self.shop,
            "buyer_name": self.buyer_name,
            "buyer_contact": self.buyer_contact,
            "buyer_address": self.buyer_address,
            "order_date": to_iso_date(self.order_date),
            "status": self.status,
            "income_status": self.income_status,
            "released_date": to_iso_date(self.released_date),
            "released_time": to_hhmm(self.released_time),
            "completed_at": to_utc_z(self.completed_at),
            "cancellation_reason": self.cancellation_reason,
            "lines": [line.to_dict() for line in self.lines],
            "payment": self.payment.to_dict() if self.payment else None,
            "total_quantity": self.total_quantity,
            "total_cents": self.total_cents,
            "estimated_income_cents": self.estimated_income_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = (
        db.Index("ix_order_lines_order_position", "order_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=1)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class OrderPayment(db.Model):
    """
    Optional payment breakdown attached 1:1 to an order.

    Only shipping_fee_charged, shipping_fee_rebate, service_fee, transaction_fee
    and withholding_tax feed the estimated order income; the rest are kept as
    reported by the marketplace.
    """
    __tablename__ = "order_payments"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    shipping_fee_buyer_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_charged_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee_rebate_cents = db.Column(db.Integer, nullable=False, default=0)
    service_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    withholding_tax_cents = db.Column(db.Integer, nullable=False, default=0)
    platform_voucher_cents = db.Column(db.Integer, nullable=False, default=0)
    seller_voucher_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    coin_redeem_cents = db.Column(db.Integer, nullable=False, default=0)
    total_buyer_payment_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {field: getattr(self, field) or 0 for field in PAYMENT_FIELDS}
