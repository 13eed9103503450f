from __future__ import annotations

from ..extensions import db
from fabricstock.time_utils import to_utc_z


CAUSE_SALE = "sale"
CAUSE_CANCELLATION = "cancellation"
CAUSE_CUT = "cut"
CAUSE_RESTOCK = "restock"
CAUSE_ADJUSTMENT = "adjustment"

LEDGER_CAUSES = (CAUSE_SALE, CAUSE_CANCELLATION, CAUSE_CUT, CAUSE_RESTOCK, CAUSE_ADJUSTMENT)


class Product(db.Model):
    """
    Stock-keeping item (a bolt of fabric or a garment line).

    QUANTITY INVARIANT:
    quantity == initial_quantity + SUM(inventory_transactions.quantity_delta)
    for this product. `quantity` is a denormalized projection kept for fast
    reads; it is only ever changed by ledger_service.apply_transaction, which
    updates it atomically in the same DB transaction as the ledger insert.

    Products are scoped to the user supplied by the auth provider.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("user_id", "category", "type", "name", name="uq_products_user_category_type_name"),
        db.Index("ix_products_user_name", "user_id", "name"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    # e.g. Plain / Printed
    type = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    # Opening stock at creation; the ledger explains everything after it
    initial_quantity = db.Column(db.Integer, nullable=False, default=0)

    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity} user_id={self.user_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "type": self.type,
            "quantity": self.quantity,
            "initial_quantity": self.initial_quantity,
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only ledger of quantity deltas.

    - product_id is a reference, not ownership: deleting a product keeps its
      history (product_name is snapshotted for that reason).
    - (user_id, cause, reference_id, product_id, occurrence) is unique. This is
      the de-duplication key that makes order sync and cancellation idempotent.
      `occurrence` only increases when an order is legitimately re-deducted
      after being un-cancelled.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "cause", "reference_id", "product_id", "occurrence",
            name="uq_invtx_user_cause_ref_product_occurrence",
        ),
        db.Index("ix_invtx_user_product_created", "user_id", "product_id", "created_at"),
        db.Index("ix_invtx_user_reference", "user_id", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    cause = db.Column(db.String(32), nullable=False, index=True)

    # order number, cut-<id>, parcel-<id>, restock-<hex> or adjust-<hex>
    reference_id = db.Column(db.String(64), nullable=False)
    occurrence = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} product_id={self.product_id} "
            f"delta={self.quantity_delta} cause={self.cause} ref={self.reference_id!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity_delta": self.quantity_delta,
            "cause": self.cause,
            "reference_id": self.reference_id,
            "occurrence": self.occurrence,
            "created_at": to_utc_z(self.created_at),
        }
