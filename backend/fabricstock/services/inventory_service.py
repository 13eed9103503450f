# Overview: Service-layer operations for products and their stock; encapsulates business logic and database work.

from __future__ import annotations

import logging
import uuid

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import CAUSE_ADJUSTMENT, CAUSE_RESTOCK, Product
from ..validation import require_quantity
from .concurrency import run_with_retry
from .ledger_service import LedgerResult, apply_transaction

"""
Product Quantity Store (authoritative)

- Every quantity change after creation goes through the ledger
  (ledger_service.apply_transaction). There is no direct write to
  Product.quantity anywhere in the code base.
- A product is created with quantity == initial_quantity and no ledger rows.
- update_quantity() keeps the "set quantity to N" contract but records the
  difference as an `adjustment` entry, so the conservation audit holds.
- Deleting a product removes the row only; ledger history is preserved.
"""

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {"name", "category", "type", "image_url"}

DEFAULT_LOW_STOCK_THRESHOLD = 50


def _new_reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _get_owned_product(user_id: str, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, user_id=user_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _find_by_identity(user_id: str, category: str, type_: str, name: str) -> Product | None:
    return (
        db.session.query(Product)
        .filter(
            Product.user_id == user_id,
            func.lower(Product.category) == category.lower(),
            func.lower(Product.type) == type_.lower(),
            func.lower(Product.name) == name.lower(),
        )
        .first()
    )


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    user_id: str,
    *,
    search: str | None = None,
    category: str | None = None,
    type_: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    User-scoped product listing with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product).filter(Product.user_id == user_id)
    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(like), Product.category.ilike(like)))
    if category:
        base_query = base_query.filter(func.lower(Product.category) == category.lower())
    if type_:
        base_query = base_query.filter(func.lower(Product.type) == type_.lower())
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(user_id: str, product_id: int) -> Product:
    return _get_owned_product(user_id, product_id)


def create_product(user_id: str, *, patch: dict) -> Product:
    """
    Create a product from a validated patch dict.

    The opening quantity becomes initial_quantity; no ledger entry is
    written for it.

    Raises:
        ConflictError: a product with the same category/type/name exists
    """
    def _op():
        if _find_by_identity(user_id, patch["category"], patch["type"], patch["name"]):
            raise ConflictError("A product with this category, type and name already exists.")

        quantity = require_quantity("quantity", patch.get("quantity", 0), allow_zero=True)
        p = Product(user_id=user_id, quantity=quantity, initial_quantity=quantity)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.commit()
        logger.info("Created product %s (%s) with quantity %s", p.id, p.name, quantity)
        return p

    return run_with_retry(_op)


def update_product(user_id: str, product_id: int, *, patch: dict) -> Product:
    """
    Update descriptive fields. Quantity is not writable here; use
    restock_product() or update_quantity().
    """
    if "quantity" in patch:
        raise ValidationError("quantity cannot be edited directly; use the quantity endpoint")

    p = _get_owned_product(user_id, product_id)

    new_identity = (
        patch.get("category", p.category),
        patch.get("type", p.type),
        patch.get("name", p.name),
    )
    clash = _find_by_identity(user_id, *new_identity)
    if clash is not None and clash.id != p.id:
        raise ConflictError("A product with this category, type and name already exists.")

    apply_product_patch(p, patch)
    db.session.commit()
    return p


def delete_product(user_id: str, product_id: int) -> None:
    """Delete the product row. Its ledger entries stay for audit."""
    p = _get_owned_product(user_id, product_id)
    db.session.delete(p)
    db.session.commit()
    logger.info("Deleted product %s; ledger history preserved", product_id)


def restock_product(user_id: str, product_id: int, quantity) -> LedgerResult:
    """Add stock to an existing product through a `restock` ledger entry."""
    qty = require_quantity("quantity", quantity)
    reference_id = _new_reference("restock")

    def _op():
        _get_owned_product(user_id, product_id)
        res = apply_transaction(
            user_id=user_id,
            product_id=product_id,
            quantity_delta=qty,
            cause=CAUSE_RESTOCK,
            reference_id=reference_id,
        )
        db.session.commit()
        return res

    return run_with_retry(_op)


def add_stock(
    user_id: str,
    *,
    name: str,
    category: str,
    type_: str,
    quantity,
    image_url: str | None = None,
) -> tuple[Product, bool]:
    """
    Quick add: merge into the matching product or create a new one.

    Returns:
        (product, created)
    """
    qty = require_quantity("quantity", quantity)
    for key, value in (("name", name), ("category", category), ("type", type_)):
        if not value or not str(value).strip():
            raise ValidationError(f"{key} is required")
    name, category, type_ = str(name).strip(), str(category).strip(), str(type_).strip()
    reference_id = _new_reference("restock")

    def _op():
        existing = _find_by_identity(user_id, category, type_, name)
        if existing is None:
            p = Product(
                user_id=user_id,
                name=name,
                category=category,
                type=type_,
                quantity=qty,
                initial_quantity=qty,
                image_url=image_url,
            )
            db.session.add(p)
            db.session.commit()
            logger.info("Quick add created product %s (%s) with quantity %s", p.id, name, qty)
            return p, True

        apply_transaction(
            user_id=user_id,
            product_id=existing.id,
            quantity_delta=qty,
            cause=CAUSE_RESTOCK,
            reference_id=reference_id,
        )
        if image_url:
            existing.image_url = image_url
        db.session.commit()
        return existing, False

    return run_with_retry(_op)


def update_quantity(user_id: str, product_id: int, new_quantity) -> Product:
    """
    Set a product's quantity to an absolute value.

    The difference is written as an `adjustment` ledger entry; setting the
    current value again writes nothing.
    """
    target = require_quantity("quantity", new_quantity, allow_zero=True)
    reference_id = _new_reference("adjust")

    def _op():
        p = _get_owned_product(user_id, product_id)
        delta = target - p.quantity
        if delta != 0:
            apply_transaction(
                user_id=user_id,
                product_id=product_id,
                quantity_delta=delta,
                cause=CAUSE_ADJUSTMENT,
                reference_id=reference_id,
            )
        db.session.commit()
        return p

    return run_with_retry(_op)


def inventory_summary(user_id: str, low_stock_threshold: int | None = None) -> dict:
    if low_stock_threshold is None:
        low_stock_threshold = current_app.config.get("LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD)

    base = db.session.query(Product).filter(Product.user_id == user_id)
    total_items = (
        db.session.query(func.coalesce(func.sum(Product.quantity), 0))
        .filter(Product.user_id == user_id)
        .scalar()
    )
    return {
        "total_products": base.count(),
        "total_items": int(total_items or 0),
        "low_stock": base.filter(Product.quantity <= low_stock_threshold).count(),
        "out_of_stock": base.filter(Product.quantity == 0).count(),
        "low_stock_threshold": low_stock_threshold,
    }
