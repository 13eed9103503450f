from __future__ import annotations

from ..extensions import db
from fabricstock.time_utils import to_utc_z, to_iso_date


CASHFLOW_TYPE_INCOME = "income"
CASHFLOW_TYPE_EXPENSE = "expense"

CATEGORY_RELEASED_INCOME = "Released Income"


class CashFlowEntry(db.Model):
    """
    Money in / money out.

    Entries with category "Released Income" are system-generated: exactly one
    per Completed order, linked through reference_id = order number, and
    deleted together with the order. All other entries are manual.
    """
    __tablename__ = "cashflow_entries"
    __table_args__ = (
        db.Index("ix_cashflow_user_date", "user_id", "entry_date"),
        db.Index("ix_cashflow_user_reference", "user_id", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, default=CASHFLOW_TYPE_INCOME)
    category = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    entry_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    reference_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "entry_date": to_iso_date(self.entry_date),
            "notes": self.notes,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_user_date", "user_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    expense_date = db.Column(db.Date, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(64), nullable=False)

    fee_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_date": to_iso_date(self.expense_date),
            "name": self.name,
            "type": self.type,
            "fee_cents": self.fee_cents,
            "delivery_fee_cents": self.delivery_fee_cents,
            "total_cents": self.total_cents,
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
        }
