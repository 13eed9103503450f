"""
Order status state machine.

Pure module: no database access, no Flask. order_service applies the effects
this module plans, so every transition rule can be tested without a UI or a
store.

TRANSITIONS:
    (new)     -> Shipped | Delivered | Completed | Cancelled
    Shipped   -> Delivered | Completed | Cancelled
    Delivered -> Completed | Cancelled
    Completed -> Cancelled
    Cancelled -> Delivered

Requesting the status an order already has is an empty plan, which makes
repeated status-change calls harmless.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum

from ..errors import TransitionError, ValidationError


DEFAULT_COMPLETION_WINDOW_HOURS = 12


class OrderStatus(str, Enum):
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for status in cls:
            if status.value.lower() == text:
                return status
        raise ValidationError(f"status must be one of: {', '.join(s.value for s in cls)}")


class IncomeStatus(str, Enum):
    PENDING = "Pending"
    RELEASED = "Released"


class Effect(str, Enum):
    DEDUCT_STOCK = "deduct_stock"
    RESTORE_STOCK = "restore_stock"
    CREATE_PARCEL = "create_parcel"
    REMOVE_PARCEL = "remove_parcel"
    STAMP_RELEASE = "stamp_release"
    STAMP_COMPLETED = "stamp_completed"
    RECORD_INCOME = "record_income"
    REMOVE_INCOME = "remove_income"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.DELIVERED}),
}


@dataclass(frozen=True)
class TransitionPlan:
    previous: OrderStatus | None
    status: OrderStatus
    effects: tuple[Effect, ...] = ()

    @property
    def is_noop(self) -> bool:
        return self.previous == self.status

    def has(self, effect: Effect) -> bool:
        return effect in self.effects


def _effects_for(previous: OrderStatus | None, target: OrderStatus) -> tuple[Effect, ...]:
    if target is OrderStatus.SHIPPED:
        return ()

    if target is OrderStatus.DELIVERED:
        effects = [Effect.DEDUCT_STOCK, Effect.STAMP_RELEASE]
        if previous is OrderStatus.CANCELLED:
            effects.append(Effect.REMOVE_PARCEL)
        return tuple(effects)

    if target is OrderStatus.COMPLETED:
        # DEDUCT_STOCK is a no-op when the stock was already taken on delivery
        return (Effect.DEDUCT_STOCK, Effect.STAMP_COMPLETED, Effect.RECORD_INCOME)

    effects = [Effect.RESTORE_STOCK, Effect.CREATE_PARCEL]
    if previous is OrderStatus.COMPLETED:
        effects.append(Effect.REMOVE_INCOME)
    return tuple(effects)


def plan_transition(current, target) -> TransitionPlan:
    """
    (current_state, requested_state) -> (next_state, [effects]).

    current=None means the order is being created.

    Raises:
        TransitionError: if the move is not in ALLOWED_TRANSITIONS
    """
    target_status = OrderStatus.parse(target)
    if current is None:
        return TransitionPlan(previous=None, status=target_status, effects=_effects_for(None, target_status))

    current_status = OrderStatus.parse(current)
    if current_status is target_status:
        return TransitionPlan(previous=current_status, status=target_status)

    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise TransitionError(f"Cannot change order status from {current_status.value} to {target_status.value}")

    return TransitionPlan(
        previous=current_status,
        status=target_status,
        effects=_effects_for(current_status, target_status),
    )


def holds_stock(status) -> bool:
    """Whether an order in this status should have its line items deducted."""
    return OrderStatus.parse(status) in (OrderStatus.DELIVERED, OrderStatus.COMPLETED)


def income_status_for(status) -> IncomeStatus:
    if OrderStatus.parse(status) in (OrderStatus.DELIVERED, OrderStatus.COMPLETED):
        return IncomeStatus.RELEASED
    return IncomeStatus.PENDING


def completion_due_at(
    released_date: date | None,
    released_time: time | None,
    window_hours: int = DEFAULT_COMPLETION_WINDOW_HOURS,
) -> datetime | None:
    """Released date + time (midnight when absent) + window. None without a date."""
    if released_date is None:
        return None
    released_at = datetime.combine(released_date, released_time or time(0, 0))
    return released_at + timedelta(hours=window_hours)


def is_completion_due(
    status,
    released_date: date | None,
    released_time: time | None,
    now: datetime,
    window_hours: int = DEFAULT_COMPLETION_WINDOW_HOURS,
) -> bool:
    """
    True iff a Delivered order's completion target has been reached.

    Evaluated from the stored release values every time, never from a cached
    "next check" timestamp, so editing the release moves the target.
    """
    if OrderStatus.parse(status) is not OrderStatus.DELIVERED:
        return False
    due = completion_due_at(released_date, released_time, window_hours)
    return due is not None and now >= due


def _payment_value(payment, field: str) -> int:
    if payment is None:
        return 0
    if isinstance(payment, dict):
        return int(payment.get(field) or 0)
    return int(getattr(payment, field, 0) or 0)


def estimated_order_income(merchandise_subtotal_cents: int, payment=None) -> int:
    """
    Released income for an order, in cents:

        merchandise subtotal
        - (shipping fee charged - shipping fee rebate)
        - (service fee + transaction fee + withholding tax)
    """
    net_shipping = (
        _payment_value(payment, "shipping_fee_charged_cents")
        - _payment_value(payment, "shipping_fee_rebate_cents")
    )
    total_fees = (
        _payment_value(payment, "service_fee_cents")
        + _payment_value(payment, "transaction_fee_cents")
        + _payment_value(payment, "withholding_tax_cents")
    )
    return merchandise_subtotal_cents - net_shipping - total_fees
