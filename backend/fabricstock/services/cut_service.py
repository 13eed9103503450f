# Overview: Service-layer operations for fabric cuts.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import CAUSE_CUT, FabricCut, Product
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import coerce_int, require_quantity
from .concurrency import run_with_retry
from .ledger_service import apply_transaction

logger = logging.getLogger(__name__)


def record_cut(user_id: str, product_id, yards, cut_date=None) -> FabricCut:
    """
    Cut yardage from a bolt.

    The cut row and its `cut` ledger entry (reference "cut-<id>") are written
    in one transaction. The stock check is repeated by the ledger's
    conditional update, so a concurrent sale cannot drive the bolt negative.

    Raises:
        ValidationError: no product, yards missing/not positive, or more yards
            than the product holds; nothing is written
        NotFoundError: product does not exist for this user
    """
    if product_id in (None, ""):
        raise ValidationError("product_id is required")
    product_id = coerce_int("product_id", product_id)
    # Yards share the product's integer stock unit
    if isinstance(yards, float) or (isinstance(yards, str) and "." in yards):
        raise ValidationError("yards must be a whole number")
    yards = require_quantity("yards", yards)

    if isinstance(cut_date, str):
        try:
            cut_date = parse_iso_datetime(cut_date)
        except ValueError:
            raise ValidationError("cut_date must be an ISO-8601 datetime")

    def _op():
        product = db.session.query(Product).filter_by(id=product_id, user_id=user_id).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if yards > product.quantity:
            raise ValidationError(f"Not enough stock! Available: {product.quantity} yards")

        cut = FabricCut(
            user_id=user_id,
            product_id=product.id,
            product_name=product.name,
            yards=yards,
            cut_date=cut_date or utcnow(),
        )
        db.session.add(cut)
        db.session.flush()

        apply_transaction(
            user_id=user_id,
            product_id=product.id,
            quantity_delta=-yards,
            cause=CAUSE_CUT,
            reference_id=cut.reference_id,
        )
        db.session.commit()
        logger.info("Cut %s yards from product %s (cut %s)", yards, product.id, cut.id)
        return cut

    return run_with_retry(_op)


def list_cuts(user_id: str) -> list[FabricCut]:
    return (
        db.session.query(FabricCut)
        .filter(FabricCut.user_id == user_id)
        .order_by(FabricCut.cut_date.desc(), FabricCut.id.desc())
        .all()
    )


def mark_cut_used(user_id: str, cut_id: int) -> None:
    """Remove the cut from the active list. Stock is not restored."""
    cut = db.session.query(FabricCut).filter_by(id=cut_id, user_id=user_id).first()
    if cut is None:
        raise NotFoundError(f"Cut {cut_id} not found")
    db.session.delete(cut)
    db.session.commit()
    logger.info("Cut %s marked used", cut_id)
