# Overview: Service-layer operations for marketplace orders; applies order_state plans through the ledger, parcel and cash-flow services.

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PartialBatchFailure, ValidationError
from ..models import (
    CAUSE_CANCELLATION,
    CAUSE_SALE,
    PAYMENT_FIELDS,
    InventoryTransaction,
    Order,
    OrderLine,
    OrderPayment,
    Product,
)
from ..time_utils import business_now, local_to_utc, parse_date, parse_time, utcnow
from ..validation import coerce_int, require_cents, require_quantity, require_shop
from .cashflow_service import find_released_income, record_released_income, remove_released_income
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import LedgerResult, apply_transaction, next_occurrence, order_outstanding
from .order_state import (
    DEFAULT_COMPLETION_WINDOW_HOURS,
    Effect,
    OrderStatus,
    TransitionPlan,
    completion_due_at,
    holds_stock,
    is_completion_due,
    plan_transition,
)
from .parcel_service import remove_parcel_for_order, upsert_parcel_for_order

"""
Order Lifecycle Invariants (authoritative)

- Status changes are planned by order_state.plan_transition() and applied
  here, effect by effect, inside ONE database transaction per order. Either
  every line item is deducted/restored or none is (PartialBatchFailure lists
  every failing line and the transaction is rolled back).
- Stock effects are per product (line items for the same product are
  summed) and are idempotent: the ledger already knows how much stock the
  order holds out (ledger_service.order_outstanding), so deducting an order
  that is already deducted, or restoring one that was already restored,
  writes nothing.
- A Completed order has exactly one "Released Income" cash-flow entry,
  referenced by its order number. Cancelling a Completed order or deleting
  it removes that entry in the same transaction.
- Auto-completion is evaluated from released_date/released_time on every
  sweep; nothing is cached.
"""

logger = logging.getLogger(__name__)

BUYER_FIELDS = ("buyer_name", "buyer_contact", "buyer_address")
ORDER_EDITABLE_FIELDS = set(BUYER_FIELDS) | {
    "shop", "order_date", "released_date", "released_time", "cancellation_reason", "payment", "lines",
}


def _config(key: str, default):
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return default


def _business_tz() -> str:
    return _config("BUSINESS_TIMEZONE", "UTC")


def _window_hours() -> int:
    return int(_config("AUTO_COMPLETE_HOURS", DEFAULT_COMPLETION_WINDOW_HOURS))


def _generate_order_number() -> str:
    return f"sale_{uuid.uuid4().hex[:12]}"


def _order_query(user_id: str):
    return db.session.query(Order).filter(Order.user_id == user_id)


def get_order(user_id: str, order_number: str, *, lock: bool = False) -> Order:
    q = _order_query(user_id).filter(Order.order_number == order_number)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFoundError(f"Order {order_number} not found")
    return order


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def _optional_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_lines(user_id: str, raw_lines) -> list[OrderLine]:
    """
    Validate line items and resolve product names.

    Every line is checked before anything is raised, so the caller sees all
    problems at once.
    """
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("At least one line item is required")

    problems: list[str] = []
    lines: list[OrderLine] = []
    for index, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            problems.append(f"line {index}: must be an object")
            continue
        try:
            if raw.get("product_id") in (None, ""):
                raise ValidationError("no product selected")
            product_id = coerce_int("product_id", raw["product_id"])
            quantity = require_quantity("quantity", raw.get("quantity"))
            unit_price = require_cents("unit_price_cents", raw.get("unit_price_cents"))
        except ValidationError as exc:
            problems.append(f"line {index}: {exc}")
            continue

        product = db.session.query(Product).filter_by(id=product_id, user_id=user_id).first()
        if product is None:
            problems.append(f"line {index}: product {product_id} not found")
            continue

        lines.append(OrderLine(
            position=index,
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            unit_price_cents=unit_price,
            subtotal_cents=quantity * unit_price,
        ))

    if problems:
        raise ValidationError("; ".join(problems))
    return lines


def _parse_payment(raw) -> dict | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("payment must be an object")
    unknown = sorted(set(raw) - set(PAYMENT_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown payment fields: {', '.join(unknown)}")
    return {field: require_cents(field, raw.get(field)) for field in PAYMENT_FIELDS}


def _parse_release(released_date, released_time) -> tuple[date | None, object]:
    try:
        return parse_date(released_date), parse_time(released_time)
    except ValueError:
        raise ValidationError("released_date must be YYYY-MM-DD and released_time HH:MM")


def _apply_payment(order: Order, values: dict | None) -> None:
    if values is None:
        return
    if order.payment is None:
        order.payment = OrderPayment()
    for field, cents in values.items():
        setattr(order.payment, field, cents)


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------

def _deduct_stock(order: Order) -> list[LedgerResult]:
    """Take every line's quantity out of stock unless the order already holds it."""
    written: list[LedgerResult] = []
    failures: list[dict] = []
    for product_id, quantity in order.quantities_by_product().items():
        held = order_outstanding(user_id=order.user_id, order_number=order.order_number, product_id=product_id)
        if held > 0:
            continue
        try:
            written.append(apply_transaction(
                user_id=order.user_id,
                product_id=product_id,
                quantity_delta=-quantity,
                cause=CAUSE_SALE,
                reference_id=order.order_number,
                occurrence=next_occurrence(
                    user_id=order.user_id,
                    cause=CAUSE_SALE,
                    reference_id=order.order_number,
                    product_id=product_id,
                ),
            ))
        except (ValidationError, NotFoundError) as exc:
            failures.append({"product_id": product_id, "quantity": quantity, "error": str(exc)})

    if failures:
        logger.warning("Order %s: %s line item(s) could not be deducted", order.order_number, len(failures))
        raise PartialBatchFailure(
            f"Could not deduct stock for {len(failures)} line item(s) of order {order.order_number}",
            failures=failures,
        )
    return written


def _restore_stock(order: Order, skip_missing: bool = False) -> tuple[list[LedgerResult], list[dict]]:
    """
    Put back whatever the order still holds out of stock.

    Lines whose product was deleted raise PartialBatchFailure unless
    skip_missing is set, in which case they are returned as skipped.
    """
    written: list[LedgerResult] = []
    missing: list[dict] = []
    product_ids = set(order.quantities_by_product())
    product_ids.update(
        row.product_id
        for row in db.session.query(InventoryTransaction.product_id)
        .filter_by(user_id=order.user_id, reference_id=order.order_number, cause=CAUSE_SALE)
        .distinct()
    )
    for product_id in sorted(product_ids):
        held = order_outstanding(user_id=order.user_id, order_number=order.order_number, product_id=product_id)
        if held <= 0:
            continue
        exists = db.session.query(Product.id).filter_by(id=product_id, user_id=order.user_id).first()
        if exists is None:
            missing.append({"product_id": product_id, "quantity": held, "error": "Product no longer exists"})
            continue
        written.append(apply_transaction(
            user_id=order.user_id,
            product_id=product_id,
            quantity_delta=held,
            cause=CAUSE_CANCELLATION,
            reference_id=order.order_number,
            occurrence=next_occurrence(
                user_id=order.user_id,
                cause=CAUSE_CANCELLATION,
                reference_id=order.order_number,
                product_id=product_id,
            ),
        ))

    if missing and not skip_missing:
        raise PartialBatchFailure(
            f"Could not restore stock for {len(missing)} line item(s) of order {order.order_number}",
            failures=missing,
        )
    for line in missing:
        logger.warning(
            "Order %s: product %s no longer exists, %s unit(s) not restored",
            order.order_number, line["product_id"], line["quantity"],
        )
    return written, missing


def _apply_plan(
    order: Order,
    plan: TransitionPlan,
    *,
    released_date: date | None = None,
    released_time=None,
    completed_at: datetime | None = None,
    skip_missing: bool = False,
) -> None:
    """Run every effect of the plan against the current session (no commit)."""
    for effect in plan.effects:
        if effect is Effect.DEDUCT_STOCK:
            _deduct_stock(order)
        elif effect is Effect.RESTORE_STOCK:
            _restore_stock(order, skip_missing)
        elif effect is Effect.CREATE_PARCEL:
            upsert_parcel_for_order(order)
        elif effect is Effect.REMOVE_PARCEL:
            remove_parcel_for_order(order.user_id, order.order_number)
        elif effect is Effect.STAMP_RELEASE:
            now_local = business_now(_business_tz())
            order.released_date = released_date or now_local.date()
            if released_time is not None:
                order.released_time = released_time
            elif released_date is None:
                order.released_time = now_local.time().replace(second=0, microsecond=0)
            else:
                order.released_time = None
        elif effect is Effect.STAMP_COMPLETED:
            order.completed_at = completed_at or utcnow()
        elif effect is Effect.RECORD_INCOME:
            record_released_income(
                user_id=order.user_id,
                order_number=order.order_number,
                shop=order.shop,
                amount_cents=order.estimated_income_cents,
                entry_date=business_now(_business_tz()).date(),
            )
        elif effect is Effect.REMOVE_INCOME:
            remove_released_income(order.user_id, order.order_number)

    if plan.status is OrderStatus.CANCELLED:
        order.completed_at = None
    order.status = plan.status.value


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def create_order(user_id: str, payload: dict) -> Order:
    """
    Create an order and apply the effects of entering its initial status.

    Raises:
        ValidationError: bad shop, lines, payment or status
        ConflictError: order number already used
        PartialBatchFailure: stock could not be deducted for some lines
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    shop = require_shop(payload.get("shop"))
    plan = plan_transition(None, payload.get("status") or OrderStatus.SHIPPED.value)
    payment_values = _parse_payment(payload.get("payment"))
    released_date, released_time = _parse_release(payload.get("released_date"), payload.get("released_time"))
    try:
        order_date = parse_date(payload.get("order_date"))
    except ValueError:
        raise ValidationError("order_date must be a YYYY-MM-DD date")
    order_number = _optional_text(payload.get("order_number")) or _generate_order_number()
    if len(order_number) > 64:
        raise ValidationError("order_number exceeds max length 64")

    def _op():
        if _order_query(user_id).filter(Order.order_number == order_number).first():
            raise ConflictError(f"Order {order_number} already exists")
        history = (
            db.session.query(InventoryTransaction.id)
            .filter_by(user_id=user_id, reference_id=order_number)
            .first()
        )
        if history is not None:
            raise ConflictError(f"Order number {order_number} was used by a deleted order")

        order = Order(
            user_id=user_id,
            order_number=order_number,
            shop=shop,
            order_date=order_date or business_now(_business_tz()).date(),
            status=plan.status.value,
            cancellation_reason=_optional_text(payload.get("cancellation_reason")),
        )
        for field in BUYER_FIELDS:
            setattr(order, field, _optional_text(payload.get(field)))
        order.lines = _parse_lines(user_id, payload.get("lines"))
        _apply_payment(order, payment_values)

        db.session.add(order)
        db.session.flush()

        _apply_plan(
            order,
            plan,
            released_date=released_date,
            released_time=released_time,
            completed_at=utcnow(),
        )
        db.session.commit()
        logger.info("Created order %s (%s, %s line(s))", order.order_number, order.status, len(order.lines))
        return order

    return run_with_retry(_op)


def change_status(
    user_id: str,
    order_number: str,
    status,
    *,
    released_date=None,
    released_time=None,
    cancellation_reason: str | None = None,
    skip_missing: bool = False,
) -> Order:
    """
    Move an order to a new status and apply the transition's effects.

    Requesting the current status is a no-op, so UI retries are harmless.
    With skip_missing, a cancellation goes ahead without restoring lines whose
    product was deleted; those lines are logged.

    Raises:
        TransitionError: move not allowed from the current status
        PartialBatchFailure: stock could not be deducted, or restored, for some lines
    """
    parsed_date, parsed_time = _parse_release(released_date, released_time)

    def _op():
        order = get_order(user_id, order_number, lock=True)
        plan = plan_transition(order.status, status)
        if plan.is_noop:
            return order

        _apply_plan(
            order, plan, released_date=parsed_date, released_time=parsed_time, skip_missing=skip_missing,
        )
        if plan.status is OrderStatus.CANCELLED and cancellation_reason is not None:
            order.cancellation_reason = _optional_text(cancellation_reason)
        db.session.commit()
        logger.info("Order %s: %s -> %s", order_number, plan.previous.value, plan.status.value)
        return order

    return run_with_retry(_op)


def sync_order_inventory(user_id: str, order_number: str, *, skip_missing: bool = False) -> dict:
    """
    Re-apply the stock position implied by the order's current status.

    Delivered/Completed orders hold their line quantities out of stock;
    Cancelled orders hold nothing. Running this any number of times writes
    at most one ledger entry per product. Missing products behave as in
    change_status; skipped lines are returned.
    """
    def _op():
        order = get_order(user_id, order_number, lock=True)
        skipped: list[dict] = []
        if holds_stock(order.status):
            written = _deduct_stock(order)
        elif OrderStatus.parse(order.status) is OrderStatus.CANCELLED:
            written, skipped = _restore_stock(order, skip_missing)
        else:
            written = []
        db.session.commit()
        return {"order": order, "entries": [res.entry for res in written], "skipped": skipped}

    return run_with_retry(_op)


def update_order(user_id: str, order_number: str, patch: dict) -> Order:
    """
    Edit an order without changing its status.

    - Line items can only be replaced while the order holds no stock
      (Shipped or Cancelled); a Cancelled order's parcel follows the new lines.
    - Editing released_date/released_time moves the auto-completion target.
    - Editing the payment of a Completed order re-prices its released income.
    """
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(patch) - ORDER_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    shop = require_shop(patch["shop"]) if "shop" in patch else None
    payment_values = _parse_payment(patch.get("payment")) if "payment" in patch else None
    release = None
    if "released_date" in patch or "released_time" in patch:
        release = _parse_release(patch.get("released_date"), patch.get("released_time"))
    order_date = None
    if "order_date" in patch:
        try:
            order_date = parse_date(patch["order_date"])
        except ValueError:
            raise ValidationError("order_date must be a YYYY-MM-DD date")
        if order_date is None:
            raise ValidationError("order_date cannot be null")

    def _op():
        order = get_order(user_id, order_number, lock=True)
        status = OrderStatus.parse(order.status)

        if "lines" in patch:
            if holds_stock(status):
                raise ValidationError(f"Line items cannot be changed while the order is {status.value}")
            new_lines = _parse_lines(user_id, patch["lines"])
            order.lines.clear()
            db.session.flush()
            order.lines.extend(new_lines)
            db.session.flush()
            if status is OrderStatus.CANCELLED:
                upsert_parcel_for_order(order)

        if shop is not None:
            order.shop = shop
        for field in BUYER_FIELDS:
            if field in patch:
                setattr(order, field, _optional_text(patch[field]))
        if order_date is not None:
            order.order_date = order_date
        if "cancellation_reason" in patch:
            order.cancellation_reason = _optional_text(patch["cancellation_reason"])
        if release is not None:
            if "released_date" in patch:
                order.released_date = release[0]
            if "released_time" in patch:
                order.released_time = release[1]

        _apply_payment(order, payment_values)

        if status is OrderStatus.COMPLETED:
            income = find_released_income(user_id, order.order_number)
            if income is not None:
                income.amount_cents = order.estimated_income_cents

        db.session.commit()
        return order

    return run_with_retry(_op)


def _delete_order_rows(order: Order) -> None:
    if OrderStatus.parse(order.status) is OrderStatus.COMPLETED:
        remove_released_income(order.user_id, order.order_number)
    remove_parcel_for_order(order.user_id, order.order_number)
    db.session.delete(order)


def delete_order(user_id: str, order_number: str) -> None:
    """
    Delete an order with its lines, payment row, returned parcel and, when
    Completed, its released-income entry. Ledger entries are kept.
    """
    def _op():
        order = get_order(user_id, order_number, lock=True)
        _delete_order_rows(order)
        db.session.commit()
        logger.info("Deleted order %s", order_number)

    return run_with_retry(_op)


def delete_all_orders(user_id: str) -> int:
    def _op():
        orders = _order_query(user_id).all()
        for order in orders:
            _delete_order_rows(order)
        db.session.commit()
        logger.info("Deleted %s order(s) for user %s", len(orders), user_id)
        return len(orders)

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Auto-completion sweep
# ---------------------------------------------------------------------------

def _complete_one(user_id: str, order_number: str, now: datetime, window_hours: int, tz_name: str) -> bool:
    def _op():
        order = get_order(user_id, order_number, lock=True)
        # Re-check under the lock: the order may have moved since the scan
        if not is_completion_due(order.status, order.released_date, order.released_time, now, window_hours):
            return False
        due = completion_due_at(order.released_date, order.released_time, window_hours)
        plan = plan_transition(order.status, OrderStatus.COMPLETED)
        _apply_plan(order, plan, completed_at=local_to_utc(due, tz_name))
        db.session.commit()
        return True

    return run_with_retry(_op)


def complete_due_orders(now: datetime | None = None, user_id: str | None = None) -> list[str]:
    """
    Promote every Delivered order whose release + AUTO_COMPLETE_HOURS has
    passed to Completed, recording its released income.

    `now` is business-local wall-clock time (defaults to the current time in
    BUSINESS_TIMEZONE). An order that fails is logged and left for the next
    sweep; the others still complete.

    Returns:
        Order numbers completed by this sweep.
    """
    tz_name = _business_tz()
    window_hours = _window_hours()
    if now is None:
        now = business_now(tz_name)

    q = db.session.query(Order.user_id, Order.order_number, Order.released_date, Order.released_time).filter(
        Order.status == OrderStatus.DELIVERED.value,
        Order.released_date.isnot(None),
        Order.released_date <= now.date(),
    )
    if user_id is not None:
        q = q.filter(Order.user_id == user_id)
    candidates = q.order_by(Order.id.asc()).all()

    completed: list[str] = []
    for row in candidates:
        if not is_completion_due(OrderStatus.DELIVERED, row.released_date, row.released_time, now, window_hours):
            continue
        try:
            if _complete_one(row.user_id, row.order_number, now, window_hours, tz_name):
                completed.append(row.order_number)
        except Exception:
            logger.exception("Auto-completion failed for order %s", row.order_number)

    if completed:
        logger.info("Auto-completed %s order(s): %s", len(completed), ", ".join(completed))
    return completed


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_orders(
    user_id: str,
    *,
    shop: str | None = None,
    status: str | None = None,
    search: str | None = None,
    order_date=None,
) -> list[Order]:
    """Newest first."""
    q = _order_query(user_id)
    if shop:
        q = q.filter(Order.shop == require_shop(shop))
    if status:
        q = q.filter(Order.status == OrderStatus.parse(status).value)
    if order_date:
        try:
            q = q.filter(Order.order_date == parse_date(order_date))
        except ValueError:
            raise ValidationError("order_date must be a YYYY-MM-DD date")
    if search:
        like = f"%{search.strip()}%"
        matching_lines = db.session.query(OrderLine.order_id).filter(OrderLine.product_name.ilike(like))
        q = q.filter(or_(
            Order.order_number.ilike(like),
            Order.buyer_name.ilike(like),
            Order.id.in_(matching_lines),
        ))
    return q.order_by(Order.order_date.desc(), Order.id.desc()).all()


def sales_summary(user_id: str, *, shop: str | None = None) -> dict:
    """
    Dashboard figures. Cancelled orders are counted but excluded from the
    money totals.
    """
    orders = list_orders(user_id, shop=shop)

    by_status = {status.value: 0 for status in OrderStatus}
    gross = net = pending = released = quantity = 0
    for order in orders:
        by_status[order.status] = by_status.get(order.status, 0) + 1
        status = OrderStatus.parse(order.status)
        if status is OrderStatus.CANCELLED:
            continue
        income = order.estimated_income_cents
        gross += order.total_cents
        net += income
        quantity += order.total_quantity
        if holds_stock(status):
            released += income
        else:
            pending += income

    return {
        "total_orders": len(orders),
        "orders_by_status": by_status,
        "total_quantity": quantity,
        "gross_sales_cents": gross,
        "net_income_cents": net,
        "pending_income_cents": pending,
        "released_income_cents": released,
        "shop": shop,
    }
