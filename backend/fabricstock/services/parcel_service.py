# Overview: Service-layer operations for the returned-parcel queue.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError, PartialBatchFailure
from ..models import (
    CAUSE_RESTOCK,
    PARCEL_STATUS_PENDING,
    PARCEL_STATUS_RESTOCKED,
    Order,
    Product,
    ReturnedParcel,
    ReturnedParcelLine,
)
from .concurrency import run_with_retry
from .ledger_service import apply_transaction, next_occurrence, order_outstanding

"""
Returned-Parcel Invariants (authoritative)

- At most one parcel per (user_id, order_number). Cancelling again replaces
  the parcel instead of adding a second one.
- Restocking credits each product only with the quantity the order still
  holds out of stock. The cancellation ledger entry has normally restored
  everything already, so restocking is then a quantity no-op: stock is never
  credited twice for the same order.
- Restock entries reference the order number, which keeps the
  "held out of stock" arithmetic in one place (ledger_service.order_outstanding).
- Restocking is terminal: the parcel row is deleted and only ledger entries
  remain.
"""

logger = logging.getLogger(__name__)


def _find_for_order(user_id: str, order_number: str) -> ReturnedParcel | None:
    return (
        db.session.query(ReturnedParcel)
        .filter_by(user_id=user_id, order_number=order_number)
        .first()
    )


def upsert_parcel_for_order(order: Order) -> ReturnedParcel:
    """Create (or replace) the pending parcel for a cancelled order. No commit."""
    existing = _find_for_order(order.user_id, order.order_number)
    if existing is not None:
        db.session.delete(existing)
        db.session.flush()

    parcel = ReturnedParcel(
        user_id=order.user_id,
        order_number=order.order_number,
        shop=order.shop,
        status=PARCEL_STATUS_PENDING,
    )
    for line in order.lines:
        parcel.lines.append(ReturnedParcelLine(
            product_id=line.product_id,
            product_name=line.product_name,
            quantity=line.quantity,
        ))
    db.session.add(parcel)
    db.session.flush()
    logger.info("Returned parcel %s queued for order %s", parcel.id, order.order_number)
    return parcel


def remove_parcel_for_order(user_id: str, order_number: str) -> bool:
    """No commit. Returns True if a parcel was removed."""
    parcel = _find_for_order(user_id, order_number)
    if parcel is None:
        return False
    db.session.delete(parcel)
    db.session.flush()
    logger.info("Returned parcel for order %s removed", order_number)
    return True


def list_parcels(user_id: str, status: str | None = None) -> list[ReturnedParcel]:
    q = db.session.query(ReturnedParcel).filter(ReturnedParcel.user_id == user_id)
    if status:
        q = q.filter(ReturnedParcel.status == status)
    return q.order_by(ReturnedParcel.return_date.desc(), ReturnedParcel.id.desc()).all()


def get_parcel(user_id: str, parcel_id: int) -> ReturnedParcel:
    parcel = db.session.query(ReturnedParcel).filter_by(id=parcel_id, user_id=user_id).first()
    if parcel is None:
        raise NotFoundError(f"Returned parcel {parcel_id} not found")
    return parcel


def restock_parcel(user_id: str, parcel_id: int, *, skip_missing: bool = False) -> dict:
    """
    Put a returned parcel's merchandise back into stock and close the parcel.

    Returns:
        {"parcel": <parcel dict>, "restocked": [...], "skipped": [...]}

    Raises:
        NotFoundError: parcel does not exist
        PartialBatchFailure: some products no longer exist and skip_missing
            is False; nothing is committed
    """
    def _op():
        parcel = get_parcel(user_id, parcel_id)
        snapshot = parcel.to_dict()

        quantities: dict[int, int] = {}
        names: dict[int, str] = {}
        for line in parcel.lines:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
            names[line.product_id] = line.product_name

        restocked = []
        missing = []
        for product_id, quantity in quantities.items():
            exists = db.session.query(Product.id).filter_by(id=product_id, user_id=user_id).first()
            if exists is None:
                missing.append({
                    "product_id": product_id,
                    "product_name": names[product_id],
                    "quantity": quantity,
                    "error": "Product no longer exists",
                })
                continue

            outstanding = order_outstanding(
                user_id=user_id, order_number=parcel.order_number, product_id=product_id
            )
            credit = min(outstanding, quantity)
            if credit > 0:
                apply_transaction(
                    user_id=user_id,
                    product_id=product_id,
                    quantity_delta=credit,
                    cause=CAUSE_RESTOCK,
                    reference_id=parcel.order_number,
                    occurrence=next_occurrence(
                        user_id=user_id,
                        cause=CAUSE_RESTOCK,
                        reference_id=parcel.order_number,
                        product_id=product_id,
                    ),
                )
            restocked.append({"product_id": product_id, "quantity": quantity, "credited": max(credit, 0)})

        if missing and not skip_missing:
            raise PartialBatchFailure(
                f"{len(missing)} product(s) in parcel {parcel_id} no longer exist",
                failures=missing,
            )
        for item in missing:
            logger.warning(
                "Parcel %s: skipped product %s (%s), it no longer exists",
                parcel_id, item["product_id"], item["product_name"],
            )

        snapshot["status"] = PARCEL_STATUS_RESTOCKED
        db.session.delete(parcel)
        db.session.commit()
        logger.info("Returned parcel %s for order %s restocked", parcel_id, snapshot["order_number"])
        return {"parcel": snapshot, "restocked": restocked, "skipped": missing}

    return run_with_retry(_op)
