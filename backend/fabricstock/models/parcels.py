from __future__ import annotations

from ..extensions import db
from fabricstock.time_utils import to_utc_z


PARCEL_STATUS_PENDING = "Pending"
PARCEL_STATUS_RESTOCKED = "Restocked"


class ReturnedParcel(db.Model):
    """
    Cancelled-order merchandise expected to come back physically.

    LIFECYCLE:
    1. Pending: created when an order moves into Cancelled (re-cancelling
       replaces the existing row, never duplicates it)
    2. Removed: when restocked, or when the order leaves Cancelled

    At most one parcel exists per (user_id, order_number).
    """
    __tablename__ = "returned_parcels"
    __table_args__ = (
        db.UniqueConstraint("user_id", "order_number", name="uq_returned_parcels_user_order"),
        db.Index("ix_returned_parcels_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    order_number = db.Column(db.String(64), nullable=False)
    shop = db.Column(db.String(16), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PARCEL_STATUS_PENDING)
    return_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "ReturnedParcelLine",
        backref="parcel",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "shop": self.shop,
            "status": self.status,
            "return_date": to_utc_z(self.return_date),
            "products": [line.to_dict() for line in self.lines],
            "total_quantity": self.total_quantity,
        }


class ReturnedParcelLine(db.Model):
    __tablename__ = "returned_parcel_lines"

    id = db.Column(db.Integer, primary_key=True)
    parcel_id = db.Column(
        db.Integer, db.ForeignKey("returned_parcels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
        }
