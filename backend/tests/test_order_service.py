# Overview: Pytest coverage for order lifecycle effects (stock, parcels, income).

"""
Order Lifecycle Tests

Covers:
- Stock conservation across Delivered/Cancelled/Delivered cycles
- Idempotent status changes and inventory sync
- All-or-nothing deduction for multi-line orders
- Released income 1:1 with Completed orders
- Deletion cascades
"""

from datetime import date, time

import pytest

from fabricstock.extensions import db
from fabricstock.errors import ConflictError, NotFoundError, PartialBatchFailure, TransitionError, ValidationError
from fabricstock.models import (
    CAUSE_CANCELLATION,
    CAUSE_SALE,
    CATEGORY_RELEASED_INCOME,
    CashFlowEntry,
    InventoryTransaction,
    Order,
    ReturnedParcel,
)
from fabricstock.services import inventory_service, order_service, parcel_service

from conftest import OTHER_USER_ID, USER_ID, order_payload, quantity_of


def _entries(order_number="O1"):
    return (
        db.session.query(InventoryTransaction).filter_by(reference_id=order_number)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


def _income_entries(order_number="O1"):
    return db.session.query(CashFlowEntry).filter_by(reference_id=order_number, category=CATEGORY_RELEASED_INCOME).all()


class TestExampleScenario:

    def test_deliver_cancel_restock(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Delivered"))
        assert quantity_of(product.id) == 90
        entries = _entries()
        assert [(e.quantity_delta, e.cause) for e in entries] == [(-10, CAUSE_SALE)]

        order_service.change_status(USER_ID, "O1", "Cancelled")
        assert quantity_of(product.id) == 100
        entries = _entries()
        assert [(e.quantity_delta, e.cause) for e in entries] == [(-10, CAUSE_SALE), (10, CAUSE_CANCELLATION)]

        parcel = db.session.query(ReturnedParcel).filter_by(order_number="O1").one()
        assert parcel.status == "Pending"
        assert [(l.product_id, l.quantity) for l in parcel.lines] == [(product.id, 10)]

        result = parcel_service.restock_parcel(USER_ID, parcel.id)
        assert quantity_of(product.id) == 100
        assert result["restocked"] == [{"product_id": product.id, "quantity": 10, "credited": 0}]
        assert db.session.query(ReturnedParcel).count() == 0


class TestStockEffects:

    def test_shipped_order_does_not_touch_stock(self, db_session, product):
        order = order_service.create_order(USER_ID, order_payload(product.id, 10))
        assert order.status == "Shipped"
        assert order.income_status == "Pending"
        assert quantity_of(product.id) == 100

    def test_conservation_over_cycles(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10))
        for _ in range(3):
            order_service.change_status(USER_ID, "O1", "Delivered")
            assert quantity_of(product.id) == 90
            order_service.change_status(USER_ID, "O1", "Cancelled")
            assert quantity_of(product.id) == 100

        # At most one parcel per order, and none once it is delivered again
        assert db.session.query(ReturnedParcel).count() == 1
        order_service.change_status(USER_ID, "O1", "Delivered")
        assert db.session.query(ReturnedParcel).count() == 0
        assert quantity_of(product.id) == 90
        assert len(_entries()) == 7

    def test_repeated_status_change_is_noop(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Delivered"))
        order_service.change_status(USER_ID, "O1", "Delivered")
        order_service.change_status(USER_ID, "O1", "Delivered")
        assert quantity_of(product.id) == 90
        assert len(_entries()) == 1

    def test_sync_is_idempotent(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Delivered"))
        result = order_service.sync_order_inventory(USER_ID, "O1")
        assert result["entries"] == []
        order_service.sync_order_inventory(USER_ID, "O1")
        assert quantity_of(product.id) == 90
        assert len(_entries()) == 1

    def test_lines_for_same_product_are_summed(self, db_session, product):
        payload = order_payload(product.id, 4, status="Delivered")
        payload["lines"].append({"product_id": product.id, "quantity": 6, "unit_price_cents": 100})
        order_service.create_order(USER_ID, payload)
        assert quantity_of(product.id) == 90
        assert [e.quantity_delta for e in _entries()] == [-10]

    def test_multi_line_deduction_is_all_or_nothing(self, db_session, product, second_product):
        payload = order_payload(product.id, 10, status="Delivered")
        payload["lines"].append({"product_id": second_product.id, "quantity": 50, "unit_price_cents": 100})

        with pytest.raises(PartialBatchFailure) as exc:
            order_service.create_order(USER_ID, payload)

        assert exc.value.failures[0]["product_id"] == second_product.id
        assert quantity_of(product.id) == 100
        assert quantity_of(second_product.id) == 20
        assert db.session.query(Order).count() == 0
        assert db.session.query(InventoryTransaction).count() == 0

    def test_failed_redelivery_leaves_order_cancelled(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 60, status="Delivered"))
        order_service.change_status(USER_ID, "O1", "Cancelled")
        order_service.create_order(USER_ID, order_payload(product.id, 60, order_number="O2", status="Delivered"))

        with pytest.raises(PartialBatchFailure):
            order_service.change_status(USER_ID, "O1", "Delivered")

        db_session.expire_all()
        assert order_service.get_order(USER_ID, "O1").status == "Cancelled"
        assert db.session.query(ReturnedParcel).filter_by(order_number="O1").count() == 1
        assert quantity_of(product.id) == 40

    def test_cancel_reports_deleted_product(self, db_session, product, second_product):
        payload = order_payload(product.id, 10, status="Delivered")
        payload["lines"].append({"product_id": second_product.id, "quantity": 5, "unit_price_cents": 100})
        order_service.create_order(USER_ID, payload)

        inventory_service.delete_product(USER_ID, second_product.id)

        with pytest.raises(PartialBatchFailure) as exc:
            order_service.change_status(USER_ID, "O1", "Cancelled")
        assert exc.value.failures == [
            {"product_id": second_product.id, "quantity": 5, "error": "Product no longer exists"}
        ]
        db_session.expire_all()
        assert quantity_of(product.id) == 90
        assert order_service.get_order(USER_ID, "O1").status == "Delivered"
        assert db.session.query(ReturnedParcel).count() == 0

    def test_cancel_can_skip_deleted_product(self, db_session, product, second_product):
        payload = order_payload(product.id, 10, status="Delivered")
        payload["lines"].append({"product_id": second_product.id, "quantity": 5, "unit_price_cents": 100})
        order_service.create_order(USER_ID, payload)
        inventory_service.delete_product(USER_ID, second_product.id)

        order_service.change_status(USER_ID, "O1", "Cancelled", skip_missing=True)
        assert quantity_of(product.id) == 100
        assert order_service.get_order(USER_ID, "O1").status == "Cancelled"

    def test_sync_returns_skipped_lines(self, db_session, product, second_product):
        payload = order_payload(product.id, 10, status="Delivered")
        payload["lines"].append({"product_id": second_product.id, "quantity": 5, "unit_price_cents": 100})
        order_service.create_order(USER_ID, payload)
        inventory_service.delete_product(USER_ID, second_product.id)
        # Status flipped outside the transition path, stock still held
        order = order_service.get_order(USER_ID, "O1")
        order.status = "Cancelled"
        db_session.commit()

        with pytest.raises(PartialBatchFailure):
            order_service.sync_order_inventory(USER_ID, "O1")

        result = order_service.sync_order_inventory(USER_ID, "O1", skip_missing=True)
        assert [s["product_id"] for s in result["skipped"]] == [second_product.id]
        assert quantity_of(product.id) == 100


class TestTransitions:

    def test_invalid_transition(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Completed"))
        with pytest.raises(TransitionError):
            order_service.change_status(USER_ID, "O1", "Delivered")

    def test_delivered_stamps_release(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10))
        order = order_service.change_status(
            USER_ID, "O1", "Delivered", released_date="2026-03-02", released_time="09:15"
        )
        assert order.released_date == date(2026, 3, 2)
        assert order.released_time == time(9, 15)
        assert order.income_status == "Released"

    def test_delivered_without_release_uses_now(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10))
        order = order_service.change_status(USER_ID, "O1", "Delivered")
        assert order.released_date is not None
        assert order.released_time is not None
        assert order.released_time.second == 0

    def test_cancellation_reason_saved(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10))
        order = order_service.change_status(USER_ID, "O1", "Cancelled", cancellation_reason="Buyer changed mind")
        assert order.cancellation_reason == "Buyer changed mind"


class TestIncome:

    PAYMENT = {
        "shipping_fee_charged_cents": 500,
        "shipping_fee_rebate_cents": 200,
        "service_fee_cents": 1000,
        "transaction_fee_cents": 300,
        "withholding_tax_cents": 100,
    }

    def test_completed_records_one_income_entry(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 2, payment=self.PAYMENT))
        order_service.change_status(USER_ID, "O1", "Completed")
        order_service.change_status(USER_ID, "O1", "Completed")

        entries = _income_entries()
        assert len(entries) == 1
        assert entries[0].amount_cents == 30000 - 300 - 1400
        assert entries[0].description == "Sale from Shopee - Order #O1"
        assert entries[0].type == "income"
        assert quantity_of(product.id) == 98

    def test_cancelling_completed_removes_income(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 2, status="Completed"))
        assert len(_income_entries()) == 1

        order = order_service.change_status(USER_ID, "O1", "Cancelled")
        assert _income_entries() == []
        assert order.completed_at is None
        assert quantity_of(product.id) == 100

    def test_payment_edit_reprices_completed_income(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 2, status="Completed"))
        order_service.update_order(USER_ID, "O1", {"payment": self.PAYMENT})
        assert _income_entries()[0].amount_cents == 28300

    def test_unknown_payment_field(self, db_session, product):
        with pytest.raises(ValidationError, match="Unknown payment fields"):
            order_service.create_order(USER_ID, order_payload(product.id, 2, payment={"tip_cents": 5}))


class TestCreateAndUpdate:

    def test_line_errors_are_collected(self, db_session, product):
        payload = order_payload(product.id, 0)
        payload["lines"].append({"product_id": 999, "quantity": 1})
        with pytest.raises(ValidationError) as exc:
            order_service.create_order(USER_ID, payload)
        assert "line 1" in str(exc.value)
        assert "line 2" in str(exc.value)

    def test_requires_lines_and_shop(self, db_session, product):
        with pytest.raises(ValidationError):
            order_service.create_order(USER_ID, {"shop": "Shopee", "lines": []})
        with pytest.raises(ValidationError):
            order_service.create_order(USER_ID, order_payload(product.id, 1, shop="Amazon"))

    def test_generated_order_number(self, db_session, product):
        payload = order_payload(product.id, 1)
        del payload["order_number"]
        order = order_service.create_order(USER_ID, payload)
        assert order.order_number.startswith("sale_")

    def test_duplicate_order_number(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1))
        with pytest.raises(ConflictError):
            order_service.create_order(USER_ID, order_payload(product.id, 1))

    def test_lines_locked_while_holding_stock(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1, status="Delivered"))
        with pytest.raises(ValidationError):
            order_service.update_order(USER_ID, "O1", {"lines": [{"product_id": product.id, "quantity": 3}]})

    def test_update_lines_of_shipped_order(self, db_session, product, second_product):
        order_service.create_order(USER_ID, order_payload(product.id, 1))
        order = order_service.update_order(
            USER_ID, "O1",
            {"lines": [{"product_id": second_product.id, "quantity": 3, "unit_price_cents": 250}]},
        )
        assert [(l.product_id, l.quantity, l.subtotal_cents) for l in order.lines] == [(second_product.id, 3, 750)]
        assert order.total_cents == 750

    def test_update_rejects_status(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1))
        with pytest.raises(ValidationError):
            order_service.update_order(USER_ID, "O1", {"status": "Delivered"})

    def test_orders_are_user_scoped(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1))
        with pytest.raises(NotFoundError):
            order_service.get_order(OTHER_USER_ID, "O1")
        # Another user's product cannot be put on an order
        with pytest.raises(ValidationError):
            order_service.create_order(OTHER_USER_ID, order_payload(product.id, 1))


class TestDelete:

    def test_delete_completed_order_removes_income_keeps_ledger(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Completed"))
        order_service.delete_order(USER_ID, "O1")

        assert db.session.query(Order).count() == 0
        assert _income_entries() == []
        assert len(_entries()) == 1
        assert quantity_of(product.id) == 90

    def test_delete_cancelled_order_removes_parcel(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Delivered"))
        order_service.change_status(USER_ID, "O1", "Cancelled")
        order_service.delete_order(USER_ID, "O1")
        assert db.session.query(ReturnedParcel).count() == 0

    def test_deleted_order_number_cannot_be_reused(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Delivered"))
        order_service.delete_order(USER_ID, "O1")
        with pytest.raises(ConflictError, match="deleted order"):
            order_service.create_order(USER_ID, order_payload(product.id, 10, status="Delivered"))

    def test_delete_all(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1))
        order_service.create_order(USER_ID, order_payload(product.id, 1, order_number="O2", status="Completed"))
        assert order_service.delete_all_orders(USER_ID) == 2
        assert db.session.query(CashFlowEntry).count() == 0


class TestQueries:

    def test_list_filters(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1))
        order_service.create_order(
            USER_ID, order_payload(product.id, 1, order_number="O2", shop="TikTok", buyer_name="Ben Reyes")
        )
        assert [o.order_number for o in order_service.list_orders(USER_ID, shop="tiktok")] == ["O2"]
        assert [o.order_number for o in order_service.list_orders(USER_ID, search="ben")] == ["O2"]
        assert len(order_service.list_orders(USER_ID, search="twill")) == 2
        assert len(order_service.list_orders(USER_ID, status="Shipped")) == 2

    def test_sales_summary_excludes_cancelled(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1, unit_price_cents=1000))
        order_service.create_order(
            USER_ID, order_payload(product.id, 2, order_number="O2", status="Completed", unit_price_cents=1000)
        )
        order_service.create_order(
            USER_ID, order_payload(product.id, 5, order_number="O3", status="Cancelled", unit_price_cents=1000)
        )
        summary = order_service.sales_summary(USER_ID)
        assert summary["total_orders"] == 3
        assert summary["orders_by_status"]["Cancelled"] == 1
        assert summary["gross_sales_cents"] == 3000
        assert summary["pending_income_cents"] == 1000
        assert summary["released_income_cents"] == 2000
        assert summary["total_quantity"] == 3
