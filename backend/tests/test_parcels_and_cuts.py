# Overview: Pytest coverage for the returned-parcel queue and fabric cuts.

import pytest

from fabricstock.errors import NotFoundError, PartialBatchFailure, ValidationError
from fabricstock.extensions import db
from fabricstock.models import CAUSE_CUT, CAUSE_RESTOCK, CAUSE_SALE, FabricCut, InventoryTransaction, ReturnedParcel
from fabricstock.services import cut_service, inventory_service, ledger_service, order_service, parcel_service

from conftest import OTHER_USER_ID, USER_ID, order_payload, quantity_of


def _cancelled_order(product, quantity=10, order_number="O1", **extra):
    order_service.create_order(USER_ID, order_payload(product.id, quantity, order_number=order_number,
                                                      status="Delivered", **extra))
    order_service.change_status(USER_ID, order_number, "Cancelled")
    return db.session.query(ReturnedParcel).filter_by(order_number=order_number).one()


class TestReturnedParcels:

    def test_recancel_replaces_parcel(self, db_session, product):
        first = _cancelled_order(product)
        order_service.change_status(USER_ID, "O1", "Delivered")
        order_service.change_status(USER_ID, "O1", "Cancelled")

        parcels = parcel_service.list_parcels(USER_ID)
        assert len(parcels) == 1
        assert parcels[0].order_number == "O1"
        assert parcels[0].id != first.id

    def test_restock_never_double_credits(self, db_session, product):
        parcel = _cancelled_order(product)
        assert quantity_of(product.id) == 100

        result = parcel_service.restock_parcel(USER_ID, parcel.id)
        assert result["parcel"]["status"] == "Restocked"
        assert quantity_of(product.id) == 100
        assert ledger_service.verify_quantities(USER_ID) == []

    def test_restock_credits_what_order_still_holds(self, db_session, product):
        # A cancelled order created directly never took stock
        order_service.create_order(USER_ID, order_payload(product.id, 10, status="Cancelled"))
        parcel = db.session.query(ReturnedParcel).filter_by(order_number="O1").one()

        # Stock taken for the order outside the status flow
        ledger_service.record_transaction(
            user_id=USER_ID, product_id=product.id, quantity_delta=-4,
            cause=CAUSE_SALE, reference_id="O1",
        )
        assert quantity_of(product.id) == 96

        result = parcel_service.restock_parcel(USER_ID, parcel.id)
        assert result["restocked"][0]["credited"] == 4
        assert quantity_of(product.id) == 100

        restock = db.session.query(InventoryTransaction).filter_by(cause=CAUSE_RESTOCK).one()
        assert restock.reference_id == "O1"
        assert restock.quantity_delta == 4

    def test_missing_product_fails_whole_parcel(self, db_session, product, second_product):
        payload = order_payload(product.id, 10, status="Delivered")
        payload["lines"].append({"product_id": second_product.id, "quantity": 5, "unit_price_cents": 100})
        order_service.create_order(USER_ID, payload)
        order_service.change_status(USER_ID, "O1", "Cancelled")
        parcel = db.session.query(ReturnedParcel).one()
        inventory_service.delete_product(USER_ID, second_product.id)

        with pytest.raises(PartialBatchFailure) as exc:
            parcel_service.restock_parcel(USER_ID, parcel.id)
        assert exc.value.failures[0]["product_id"] == second_product.id
        assert db.session.query(ReturnedParcel).count() == 1

        result = parcel_service.restock_parcel(USER_ID, parcel.id, skip_missing=True)
        assert [s["product_id"] for s in result["skipped"]] == [second_product.id]
        assert db.session.query(ReturnedParcel).count() == 0

    def test_parcels_are_user_scoped(self, db_session, product):
        parcel = _cancelled_order(product)
        with pytest.raises(NotFoundError):
            parcel_service.restock_parcel(OTHER_USER_ID, parcel.id)
        assert parcel_service.list_parcels(OTHER_USER_ID) == []

    def test_parcel_follows_edited_lines(self, db_session, product, second_product):
        _cancelled_order(product)
        order_service.update_order(
            USER_ID, "O1", {"lines": [{"product_id": second_product.id, "quantity": 2}]}
        )
        parcel = db.session.query(ReturnedParcel).one()
        assert [(l.product_id, l.quantity) for l in parcel.lines] == [(second_product.id, 2)]


class TestFabricCuts:

    def test_cut_deducts_through_ledger(self, db_session, product):
        cut = cut_service.record_cut(USER_ID, product.id, 12)
        assert quantity_of(product.id) == 88

        entry = db.session.query(InventoryTransaction).one()
        assert entry.cause == CAUSE_CUT
        assert entry.reference_id == f"cut-{cut.id}"
        assert entry.quantity_delta == -12

    def test_cut_over_stock_writes_nothing(self, db_session, product):
        with pytest.raises(ValidationError, match="Available: 100 yards"):
            cut_service.record_cut(USER_ID, product.id, 101)
        assert quantity_of(product.id) == 100
        assert db.session.query(FabricCut).count() == 0
        assert db.session.query(InventoryTransaction).count() == 0

    @pytest.mark.parametrize("yards", [0, -3, "2.5", None])
    def test_invalid_yards(self, db_session, product, yards):
        with pytest.raises(ValidationError):
            cut_service.record_cut(USER_ID, product.id, yards)

    @pytest.mark.parametrize("yards", [2.5, "2.5", 3.0])
    def test_fractional_yards_message(self, db_session, product, yards):
        with pytest.raises(ValidationError, match="yards must be a whole number"):
            cut_service.record_cut(USER_ID, product.id, yards)
        assert quantity_of(product.id) == 100

    def test_cut_requires_product(self, db_session):
        with pytest.raises(ValidationError):
            cut_service.record_cut(USER_ID, None, 5)
        with pytest.raises(NotFoundError):
            cut_service.record_cut(USER_ID, 12345, 5)

    def test_mark_used_keeps_stock_deducted(self, db_session, product):
        cut = cut_service.record_cut(USER_ID, product.id, 10)
        cut_service.mark_cut_used(USER_ID, cut.id)
        assert cut_service.list_cuts(USER_ID) == []
        assert quantity_of(product.id) == 90
