# Overview: Service-layer operations for the cash-flow ledger; released order income and manual entries.

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import (
    CASHFLOW_TYPE_EXPENSE,
    CASHFLOW_TYPE_INCOME,
    CATEGORY_RELEASED_INCOME,
    CashFlowEntry,
)
from ..time_utils import parse_date
from ..validation import MAX_AMOUNT_CENTS, coerce_int
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

ENTRY_MUTABLE_FIELDS = {"type", "category", "amount_cents", "description", "entry_date", "notes"}


def _month_bounds(month: str) -> tuple[date, date]:
    """'YYYY-MM' -> [first day, first day of next month)."""
    try:
        year_s, month_s = month.strip().split("-", 1)
        year, mon = int(year_s), int(month_s)
        start = date(year, mon, 1)
    except ValueError:
        raise ValidationError("month must be YYYY-MM")
    end = date(year + 1, 1, 1) if mon == 12 else date(year, mon + 1, 1)
    return start, end


def _reject_reserved_category(category) -> None:
    if category is not None and str(category).strip().lower() == CATEGORY_RELEASED_INCOME.lower():
        raise ValidationError(f'"{CATEGORY_RELEASED_INCOME}" entries are recorded by completing an order')


def _check_entry_fields(type_: str, amount_cents: int, description: str, category: str) -> None:
    if type_ not in (CASHFLOW_TYPE_INCOME, CASHFLOW_TYPE_EXPENSE):
        raise ValidationError("type must be 'income' or 'expense'")
    if abs(amount_cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")
    if not description or not str(description).strip():
        raise ValidationError("description is required")
    if not category or not str(category).strip():
        raise ValidationError("category is required")


def add_entry(
    *,
    user_id: str,
    category: str,
    amount_cents: int,
    description: str,
    reference_id: str | None = None,
    type_: str = CASHFLOW_TYPE_INCOME,
    entry_date: date | None = None,
    notes: str | None = None,
) -> CashFlowEntry:
    """Core insert without commit; used inside order transactions."""
    amount_cents = coerce_int("amount_cents", amount_cents)
    _check_entry_fields(type_, amount_cents, description, category)

    entry = CashFlowEntry(
        user_id=user_id,
        type=type_,
        category=str(category).strip(),
        amount_cents=amount_cents,
        description=str(description).strip(),
        reference_id=reference_id,
        entry_date=entry_date or date.today(),
        notes=notes,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def create_entry(
    user_id: str,
    *,
    category: str,
    amount_cents,
    description: str,
    reference_id: str | None = None,
    type_: str = CASHFLOW_TYPE_INCOME,
    entry_date=None,
    notes: str | None = None,
) -> CashFlowEntry:
    """Manual entry. The Released Income category is reserved for completed orders."""
    _reject_reserved_category(category)
    try:
        parsed_date = parse_date(entry_date)
    except ValueError:
        raise ValidationError("entry_date must be a YYYY-MM-DD date")

    def _op():
        entry = add_entry(
            user_id=user_id,
            category=category,
            amount_cents=amount_cents,
            description=description,
            reference_id=reference_id,
            type_=type_,
            entry_date=parsed_date,
            notes=notes,
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def find_released_income(user_id: str, order_number: str) -> CashFlowEntry | None:
    return (
        db.session.query(CashFlowEntry)
        .filter_by(user_id=user_id, reference_id=order_number, category=CATEGORY_RELEASED_INCOME)
        .first()
    )


def record_released_income(
    *,
    user_id: str,
    order_number: str,
    shop: str,
    amount_cents: int,
    entry_date: date | None = None,
) -> CashFlowEntry:
    """
    One "Released Income" entry per Completed order (no commit).

    An existing entry for the order is returned unchanged, so a repeated
    completion never records income twice.
    """
    existing = find_released_income(user_id, order_number)
    if existing is not None:
        logger.info("Released income for order %s already recorded (entry %s)", order_number, existing.id)
        return existing

    entry = add_entry(
        user_id=user_id,
        category=CATEGORY_RELEASED_INCOME,
        amount_cents=amount_cents,
        description=f"Sale from {shop} - Order #{order_number}",
        reference_id=order_number,
        type_=CASHFLOW_TYPE_INCOME,
        entry_date=entry_date,
    )
    logger.info("Recorded released income %s for order %s", amount_cents, order_number)
    return entry


def remove_released_income(user_id: str, order_number: str) -> int:
    """Delete the order's Released Income entry only (no commit)."""
    removed = (
        db.session.query(CashFlowEntry)
        .filter_by(user_id=user_id, reference_id=order_number, category=CATEGORY_RELEASED_INCOME)
        .delete(synchronize_session=False)
    )
    if removed:
        logger.info("Removed released income for order %s", order_number)
    return removed


def remove_by_reference(user_id: str, reference_id: str) -> int:
    """Delete every entry linked to reference_id (no commit). Returns the count."""
    removed = (
        db.session.query(CashFlowEntry)
        .filter_by(user_id=user_id, reference_id=reference_id)
        .delete(synchronize_session=False)
    )
    if removed:
        logger.info("Removed %s cash-flow entr%s for reference %s", removed, "y" if removed == 1 else "ies", reference_id)
    return removed


def delete_by_reference(user_id: str, reference_id: str) -> int:
    def _op():
        removed = remove_by_reference(user_id, reference_id)
        db.session.commit()
        return removed

    return run_with_retry(_op)


def get_entry(user_id: str, entry_id: int) -> CashFlowEntry:
    entry = db.session.query(CashFlowEntry).filter_by(id=entry_id, user_id=user_id).first()
    if entry is None:
        raise NotFoundError(f"Cash-flow entry {entry_id} not found")
    return entry


def list_entries(
    user_id: str,
    *,
    type_: str | None = None,
    month: str | None = None,
    search: str | None = None,
) -> list[CashFlowEntry]:
    """Newest first."""
    q = db.session.query(CashFlowEntry).filter(CashFlowEntry.user_id == user_id)
    if type_:
        q = q.filter(CashFlowEntry.type == type_)
    if month:
        start, end = _month_bounds(month)
        q = q.filter(CashFlowEntry.entry_date >= start, CashFlowEntry.entry_date < end)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(CashFlowEntry.description.ilike(like), CashFlowEntry.category.ilike(like)))
    return q.order_by(CashFlowEntry.entry_date.desc(), CashFlowEntry.id.desc()).all()


def update_entry(user_id: str, entry_id: int, *, patch: dict) -> CashFlowEntry:
    entry = get_entry(user_id, entry_id)
    changes = {k: v for k, v in patch.items() if k in ENTRY_MUTABLE_FIELDS}
    if entry.category == CATEGORY_RELEASED_INCOME and changes.keys() - {"notes"}:
        raise ValidationError(f'"{CATEGORY_RELEASED_INCOME}" entries follow their order; only notes can be edited')
    _reject_reserved_category(changes.get("category"))
    _check_entry_fields(
        changes.get("type", entry.type),
        changes.get("amount_cents", entry.amount_cents),
        changes.get("description", entry.description),
        changes.get("category", entry.category),
    )
    for k, v in changes.items():
        setattr(entry, k, v)
    db.session.commit()
    return entry


def delete_entry(user_id: str, entry_id: int) -> None:
    entry = get_entry(user_id, entry_id)
    if entry.category == CATEGORY_RELEASED_INCOME:
        raise ValidationError(f'"{CATEGORY_RELEASED_INCOME}" entries are removed with their order')
    db.session.delete(entry)
    db.session.commit()


def cashflow_summary(user_id: str, month: str | None = None) -> dict:
    q = (
        db.session.query(
            CashFlowEntry.type,
            func.coalesce(func.sum(CashFlowEntry.amount_cents), 0),
        )
        .filter(CashFlowEntry.user_id == user_id)
    )
    if month:
        start, end = _month_bounds(month)
        q = q.filter(CashFlowEntry.entry_date >= start, CashFlowEntry.entry_date < end)

    totals = {row_type: int(total or 0) for row_type, total in q.group_by(CashFlowEntry.type).all()}
    income = totals.get(CASHFLOW_TYPE_INCOME, 0)
    expenses = totals.get(CASHFLOW_TYPE_EXPENSE, 0)
    return {
        "total_income_cents": income,
        "total_expenses_cents": expenses,
        "balance_cents": income - expenses,
        "month": month,
    }
