# Overview: Service-layer operations for the inventory ledger; the only code path that changes Product.quantity.

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import (
    CAUSE_CANCELLATION,
    CAUSE_RESTOCK,
    CAUSE_SALE,
    LEDGER_CAUSES,
    InventoryTransaction,
    Product,
)
from .concurrency import run_with_retry

"""
Inventory Ledger Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted (product deletion
  keeps its history).
- Product.quantity == Product.initial_quantity + SUM(quantity_delta) at all
  times. The quantity projection is changed by one atomic statement
      UPDATE products SET quantity = quantity + :delta
  flushed in the same DB transaction as the ledger insert.
- Negative deltas are conditional (WHERE quantity + :delta >= 0); stock can
  never go below zero, and a refused delta writes nothing.
- (user_id, cause, reference_id, product_id, occurrence) is unique. Writing
  an entry that already exists is a silent no-op reported as
  LedgerResult.duplicate, so retried operations never double-apply.
- Order-scoped entries (sale, cancellation, parcel restock) use the order
  number as reference_id; the stock an order currently holds out is
  -SUM(delta) over those entries.
"""

logger = logging.getLogger(__name__)

ORDER_CAUSES = (CAUSE_SALE, CAUSE_CANCELLATION, CAUSE_RESTOCK)


@dataclass(frozen=True)
class LedgerResult:
    entry: InventoryTransaction | None
    quantity: int
    duplicate: bool = False


def _find_entry(
    *, user_id: str, cause: str, reference_id: str, product_id: int, occurrence: int
) -> InventoryTransaction | None:
    return (
        db.session.query(InventoryTransaction)
        .filter_by(
            user_id=user_id,
            cause=cause,
            reference_id=reference_id,
            product_id=product_id,
            occurrence=occurrence,
        )
        .first()
    )


def _current_quantity(user_id: str, product_id: int) -> int:
    qty = db.session.execute(
        select(Product.quantity).where(Product.id == product_id, Product.user_id == user_id)
    ).scalar()
    return int(qty or 0)


def apply_transaction(
    *,
    user_id: str,
    product_id: int,
    quantity_delta: int,
    cause: str,
    reference_id: str,
    occurrence: int = 1,
) -> LedgerResult:
    """Core ledger write without retry or commit.

    Called by record_transaction() and by the order/parcel/cut services that
    bundle several ledger writes into one transaction.

    Raises:
        ValidationError: unknown cause, zero delta, or not enough stock
        NotFoundError: product does not exist for this user
    """
    if cause not in LEDGER_CAUSES:
        raise ValidationError(f"cause must be one of: {', '.join(LEDGER_CAUSES)}")
    if not reference_id:
        raise ValidationError("reference_id is required")
    if quantity_delta == 0:
        raise ValidationError("quantity_delta cannot be zero")

    existing = _find_entry(
        user_id=user_id,
        cause=cause,
        reference_id=reference_id,
        product_id=product_id,
        occurrence=occurrence,
    )
    if existing is not None:
        logger.info(
            "Duplicate ledger write ignored: cause=%s ref=%s product=%s occurrence=%s",
            cause, reference_id, product_id, occurrence,
        )
        return LedgerResult(entry=existing, quantity=_current_quantity(user_id, product_id), duplicate=True)

    product = db.session.query(Product).filter_by(id=product_id, user_id=user_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    stmt = update(Product).where(Product.id == product_id, Product.user_id == user_id)
    if quantity_delta < 0:
        stmt = stmt.where(Product.quantity + quantity_delta >= 0)
    stmt = stmt.values(quantity=Product.quantity + quantity_delta, updated_at=func.now())
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount == 0:
        raise ValidationError(
            f"Not enough stock for {product.name}: requested {-quantity_delta}, available {product.quantity}"
        )

    entry = InventoryTransaction(
        user_id=user_id,
        product_id=product_id,
        product_name=product.name,
        quantity_delta=quantity_delta,
        cause=cause,
        reference_id=reference_id,
        occurrence=occurrence,
    )
    db.session.add(entry)
    db.session.flush()

    # The ORM copy was loaded before the UPDATE
    db.session.refresh(product)
    logger.info(
        "Ledger %s %+d on product %s (ref=%s) -> quantity %s",
        cause, quantity_delta, product_id, reference_id, product.quantity,
    )
    return LedgerResult(entry=entry, quantity=product.quantity)


def record_transaction(
    *,
    user_id: str,
    product_id: int,
    quantity_delta: int,
    cause: str,
    reference_id: str,
    occurrence: int = 1,
) -> LedgerResult:
    """
    Append a ledger entry and move the product quantity, as one transaction.

    Returns the product's new quantity. A repeated call with the same
    (cause, reference_id, product_id, occurrence) returns duplicate=True and
    changes nothing. A concurrent duplicate loses the unique-key race, is
    retried by run_with_retry, and then observes the committed row.
    """
    def _op():
        res = apply_transaction(
            user_id=user_id,
            product_id=product_id,
            quantity_delta=quantity_delta,
            cause=cause,
            reference_id=reference_id,
            occurrence=occurrence,
        )
        db.session.commit()
        return res

    return run_with_retry(_op)


def next_occurrence(*, user_id: str, cause: str, reference_id: str, product_id: int) -> int:
    count = (
        db.session.query(func.count(InventoryTransaction.id))
        .filter_by(user_id=user_id, cause=cause, reference_id=reference_id, product_id=product_id)
        .scalar()
    )
    return int(count or 0) + 1


def order_outstanding(*, user_id: str, order_number: str, product_id: int) -> int:
    """Quantity of a product currently held out of stock by an order."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity_delta), 0))
        .filter(
            InventoryTransaction.user_id == user_id,
            InventoryTransaction.reference_id == order_number,
            InventoryTransaction.product_id == product_id,
            InventoryTransaction.cause.in_(ORDER_CAUSES),
        )
        .scalar()
    )
    return -int(total or 0)


def ledger_balance(*, user_id: str, product_id: int) -> int:
    """SUM(quantity_delta) over every entry for the product."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity_delta), 0))
        .filter(
            InventoryTransaction.user_id == user_id,
            InventoryTransaction.product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def product_history(*, user_id: str, product_id: int, limit: int = 200) -> list[InventoryTransaction]:
    return (
        db.session.query(InventoryTransaction)
        .filter_by(user_id=user_id, product_id=product_id)
        .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )


def entries_for_reference(*, user_id: str, reference_id: str) -> list[InventoryTransaction]:
    return (
        db.session.query(InventoryTransaction)
        .filter_by(user_id=user_id, reference_id=reference_id)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


def verify_quantities(user_id: str | None = None) -> list[dict]:
    """
    Conservation audit.

    Returns one dict per product whose quantity differs from
    initial_quantity + SUM(deltas). An empty list means the ledger and the
    quantity projection agree.
    """
    balances = (
        db.session.query(
            InventoryTransaction.user_id,
            InventoryTransaction.product_id,
            func.sum(InventoryTransaction.quantity_delta).label("delta"),
        )
        .group_by(InventoryTransaction.user_id, InventoryTransaction.product_id)
    )
    if user_id is not None:
        balances = balances.filter(InventoryTransaction.user_id == user_id)
    delta_by_key = {(row.user_id, row.product_id): int(row.delta or 0) for row in balances.all()}

    products = db.session.query(Product)
    if user_id is not None:
        products = products.filter(Product.user_id == user_id)

    discrepancies = []
    for product in products.order_by(Product.id.asc()).all():
        expected = product.initial_quantity + delta_by_key.get((product.user_id, product.id), 0)
        if product.quantity != expected:
            discrepancies.append({
                "user_id": product.user_id,
                "product_id": product.id,
                "name": product.name,
                "quantity": product.quantity,
                "expected_quantity": expected,
            })

    if discrepancies:
        logger.warning("Ledger audit found %s product(s) out of balance", len(discrepancies))
    return discrepancies
