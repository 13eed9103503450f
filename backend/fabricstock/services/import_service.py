# Overview: Service-layer operations for order imports; feeds pre-parsed marketplace records through create_order.

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any

from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PartialBatchFailure, ValidationError
from ..models import Order, Product
from .order_service import create_order
from .order_state import OrderStatus

"""
Order Import (authoritative)

- Input is already parsed: CSV/Excel text handling happens upstream.
- Records are either grouped orders ({..., "lines": [...]}) or flat line rows
  that share an order_number; flat rows are grouped first, keeping file order.
- Each order goes through create_order() in its own transaction, exactly like
  a manually entered order. One bad order never blocks the others.
- An order number that already exists is skipped, not overwritten. A number
  refused for any other reason (e.g. it belonged to a deleted order) is an error.
"""

logger = logging.getLogger(__name__)

ORDER_LEVEL_FIELDS = (
    "order_number", "shop", "order_date", "status",
    "buyer_name", "buyer_contact", "buyer_address",
    "released_date", "released_time", "cancellation_reason", "payment",
)
LINE_FIELDS = ("product_id", "product_name", "quantity", "unit_price_cents")


def map_import_status(raw: Any) -> str:
    """Marketplace status text -> order status. Unknown values mean Shipped."""
    text = str(raw or "").strip().upper()
    if text == "COMPLETED":
        return OrderStatus.COMPLETED.value
    if text == "DELIVERED":
        return OrderStatus.DELIVERED.value
    if text in ("CANCELLED", "CANCELED"):
        return OrderStatus.CANCELLED.value
    return OrderStatus.SHIPPED.value


def group_rows(records: list[dict]) -> list[dict]:
    """Merge flat line rows into one record per order_number."""
    grouped: "OrderedDict[str, dict]" = OrderedDict()
    for index, record in enumerate(records, start=1):
        if not isinstance(record, dict):
            raise ValidationError(f"record {index} must be an object")
        if "lines" in record:
            key = str(record.get("order_number") or f"__row{index}")
            grouped[key] = dict(record)
            continue

        key = str(record.get("order_number") or f"__row{index}")
        order = grouped.get(key)
        if order is None:
            order = {k: record[k] for k in ORDER_LEVEL_FIELDS if k in record}
            order["lines"] = []
            grouped[key] = order
        order["lines"].append({k: record[k] for k in LINE_FIELDS if k in record})
    return list(grouped.values())


def _resolve_products(user_id: str, lines: list[dict]) -> list[dict]:
    """Lines may name their product instead of giving its id."""
    resolved = []
    for line in lines or []:
        line = dict(line)
        if line.get("product_id") in (None, "") and line.get("product_name"):
            name = str(line["product_name"]).strip()
            product = (
                db.session.query(Product)
                .filter(Product.user_id == user_id, func.lower(Product.name) == name.lower())
                .order_by(Product.id.asc())
                .first()
            )
            if product is None:
                raise NotFoundError(f"Product '{name}' not found")
            line["product_id"] = product.id
        line.pop("product_name", None)
        resolved.append(line)
    return resolved


def _order_exists(user_id: str, order_number) -> bool:
    return (
        db.session.query(Order.id).filter_by(user_id=user_id, order_number=str(order_number).strip()).first()
        is not None
    )


def import_orders(user_id: str, records: list[dict]) -> dict:
    """
    Returns:
        {"inserted": [order numbers], "skipped": [order numbers],
         "errors": [{"order_number": ..., "error": ..., "details": [...]}]}
    """
    if not isinstance(records, list):
        raise ValidationError("records must be a list")

    inserted: list[str] = []
    skipped: list[str] = []
    errors: list[dict] = []

    for record in group_rows(records):
        order_number = record.get("order_number")
        if order_number and _order_exists(user_id, order_number):
            skipped.append(order_number)
            continue
        try:
            payload = {k: record[k] for k in ORDER_LEVEL_FIELDS if k in record}
            payload["status"] = map_import_status(record.get("status"))
            payload["lines"] = _resolve_products(user_id, record.get("lines"))
            order = create_order(user_id, payload)
            inserted.append(order.order_number)
        except PartialBatchFailure as exc:
            errors.append({"order_number": order_number, "error": str(exc), "details": exc.failures})
        except (ValidationError, NotFoundError, ConflictError) as exc:
            errors.append({"order_number": order_number, "error": str(exc)})

    logger.info(
        "Order import for user %s: %s inserted, %s skipped, %s failed",
        user_id, len(inserted), len(skipped), len(errors),
    )
    return {"inserted": inserted, "skipped": skipped, "errors": errors}
