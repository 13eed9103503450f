# Overview: Pytest coverage for the 12-hour auto-completion sweep.

import threading
from datetime import datetime

from fabricstock import create_app
from fabricstock.config import Config
from fabricstock.extensions import db
from fabricstock.models import CATEGORY_RELEASED_INCOME, CashFlowEntry
from fabricstock.services import order_service, sweeper
from fabricstock.services.sweeper import AutoCompletionSweeper, run_sweep_once

from conftest import OTHER_USER_ID, USER_ID, make_product, order_payload, quantity_of


def _deliver(product, order_number="O1", released_date="2026-03-01", released_time="08:00", user_id=USER_ID):
    return order_service.create_order(user_id, order_payload(
        product.id, 10,
        order_number=order_number,
        status="Delivered",
        released_date=released_date,
        released_time=released_time,
    ))


def _income(order_number):
    return db.session.query(CashFlowEntry).filter_by(
        reference_id=order_number, category=CATEGORY_RELEASED_INCOME
    ).all()


class TestCompleteDueOrders:

    def test_completes_only_when_due(self, db_session, product):
        _deliver(product)

        assert order_service.complete_due_orders(now=datetime(2026, 3, 1, 19, 59)) == []
        assert order_service.get_order(USER_ID, "O1").status == "Delivered"
        assert _income("O1") == []

        assert order_service.complete_due_orders(now=datetime(2026, 3, 1, 20, 0)) == ["O1"]
        db_session.expire_all()
        order = order_service.get_order(USER_ID, "O1")
        assert order.status == "Completed"
        assert order.completed_at.replace(tzinfo=None) == datetime(2026, 3, 1, 20, 0)
        assert len(_income("O1")) == 1
        # Stock was taken on delivery and is not taken again
        assert quantity_of(product.id) == 90

    def test_second_sweep_is_noop(self, db_session, product):
        _deliver(product)
        now = datetime(2026, 3, 2, 9, 0)
        assert order_service.complete_due_orders(now=now) == ["O1"]
        assert order_service.complete_due_orders(now=now) == []
        assert len(_income("O1")) == 1

    def test_missing_release_time_means_midnight(self, db_session, product):
        _deliver(product, released_time=None)
        assert order_service.complete_due_orders(now=datetime(2026, 3, 1, 11, 59)) == []
        assert order_service.complete_due_orders(now=datetime(2026, 3, 1, 12, 0)) == ["O1"]

    def test_editing_release_moves_target(self, db_session, product):
        _deliver(product)
        order_service.update_order(USER_ID, "O1", {"released_date": "2026-03-05"})
        assert order_service.complete_due_orders(now=datetime(2026, 3, 2, 9, 0)) == []
        assert order_service.complete_due_orders(now=datetime(2026, 3, 5, 20, 0)) == ["O1"]

    def test_ignores_other_statuses(self, db_session, product):
        order_service.create_order(USER_ID, order_payload(product.id, 1, order_number="S1"))
        _deliver(product, order_number="C1")
        order_service.change_status(USER_ID, "C1", "Cancelled")
        assert order_service.complete_due_orders(now=datetime(2030, 1, 1)) == []

    def test_user_filter(self, db_session, product):
        other_product = make_product(db_session, user_id=OTHER_USER_ID)
        _deliver(product)
        _deliver(other_product, order_number="X1", user_id=OTHER_USER_ID)

        now = datetime(2026, 3, 2, 9, 0)
        assert order_service.complete_due_orders(now=now, user_id=OTHER_USER_ID) == ["X1"]
        assert order_service.get_order(USER_ID, "O1").status == "Delivered"

    def test_failure_does_not_stop_sweep(self, db_session, product, monkeypatch):
        _deliver(product, order_number="O1")
        _deliver(product, order_number="O2")

        real = order_service._complete_one

        def flaky(user_id, order_number, *args):
            if order_number == "O1":
                raise RuntimeError("boom")
            return real(user_id, order_number, *args)

        monkeypatch.setattr(order_service, "_complete_one", flaky)
        assert order_service.complete_due_orders(now=datetime(2026, 3, 2, 9, 0)) == ["O2"]


class TestSweeper:

    def test_run_sweep_once(self, app, db_session, product):
        _deliver(product, released_date="2020-01-01")
        db_session.commit()

        assert run_sweep_once(app) == ["O1"]
        db_session.expire_all()
        assert order_service.get_order(USER_ID, "O1").status == "Completed"

    def test_background_thread_start_stop(self, app, monkeypatch):
        ran = threading.Event()

        def fake_sweep(_app):
            ran.set()
            return []

        monkeypatch.setattr(sweeper, "run_sweep_once", fake_sweep)

        worker = AutoCompletionSweeper(app, interval_seconds=3600)
        worker.start()
        try:
            assert worker.running
            assert ran.wait(5)
        finally:
            worker.stop()
        assert not worker.running

    def test_failed_pass_keeps_thread_alive(self, app, monkeypatch):
        calls = []
        second = threading.Event()

        def failing_sweep(_app):
            calls.append(1)
            if len(calls) >= 2:
                second.set()
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(sweeper, "run_sweep_once", failing_sweep)

        worker = AutoCompletionSweeper(app, interval_seconds=0.01)
        worker.start()
        try:
            assert second.wait(5)
            assert worker.running
        finally:
            worker.stop()

    def test_default_config_starts_sweeper(self, tmp_path, monkeypatch):
        assert Config.AUTO_COMPLETE_SWEEPER is True
        ran = threading.Event()

        def fake_sweep(_app):
            ran.set()
            return []

        monkeypatch.setattr(sweeper, "run_sweep_once", fake_sweep)

        served = create_app({
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'sweep.sqlite3'}",
            "SWEEP_INTERVAL_SECONDS": 3600,
        })
        worker = served.extensions["fabricstock.sweeper"]
        try:
            assert worker.running
            assert ran.wait(5)
        finally:
            worker.stop()

    def test_testing_app_has_no_sweeper(self, app):
        assert "fabricstock.sweeper" not in app.extensions
