# Overview: Service-layer operations for business expenses.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Expense
from ..validation import require_cents

EXPENSE_MUTABLE_FIELDS = {"expense_date", "name", "type", "fee_cents", "delivery_fee_cents", "image_url"}


def _recompute_total(expense: Expense) -> None:
    expense.total_cents = (expense.fee_cents or 0) + (expense.delivery_fee_cents or 0)


def list_expenses(user_id: str) -> list[Expense]:
    return (
        db.session.query(Expense)
        .filter(Expense.user_id == user_id)
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .all()
    )


def get_expense(user_id: str, expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id, user_id=user_id).first()
    if expense is None:
        raise NotFoundError(f"Expense {expense_id} not found")
    return expense


def create_expense(user_id: str, *, patch: dict) -> Expense:
    """total_cents is always fee + delivery fee; a client-sent total is ignored."""
    expense = Expense(user_id=user_id)
    for k, v in patch.items():
        if k in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, k, v)
    expense.fee_cents = require_cents("fee_cents", expense.fee_cents)
    expense.delivery_fee_cents = require_cents("delivery_fee_cents", expense.delivery_fee_cents)
    if expense.expense_date is None:
        raise ValidationError("expense_date is required")
    _recompute_total(expense)

    db.session.add(expense)
    db.session.commit()
    return expense


def update_expense(user_id: str, expense_id: int, *, patch: dict) -> Expense:
    expense = get_expense(user_id, expense_id)
    for k, v in patch.items():
        if k in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, k, v)
    _recompute_total(expense)
    db.session.commit()
    return expense


def delete_expense(user_id: str, expense_id: int) -> None:
    expense = get_expense(user_id, expense_id)
    db.session.delete(expense)
    db.session.commit()


def expense_total(user_id: str) -> int:
    return sum(e.total_cents for e in list_expenses(user_id))
