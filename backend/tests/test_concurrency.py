# Overview: Threaded tests for concurrent ledger writes against a file-backed database.

"""
Concurrency Tests

Several threads write to the same product at once (each with its own app
context and session) against a file-backed SQLite database:
1. No update is lost: stored quantity always equals initial + ledger sum
2. Stock never goes negative when cuts together exceed it
3. Racing status changes for one order deduct exactly once
"""

import threading

import pytest

from fabricstock import create_app
from fabricstock.errors import DependencyFailure, ValidationError
from fabricstock.extensions import db
from fabricstock.models import CAUSE_SALE, InventoryTransaction, Product
from fabricstock.services import cut_service, ledger_service, order_service

from conftest import USER_ID, make_product, order_payload

# Busy store after every retry; the write was not applied
TOLERATED = (DependencyFailure,)


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "AUTO_COMPLETE_SWEEPER": False,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_threads(app, jobs):
    """Start every job behind a barrier; return (results, errors)."""
    barrier = threading.Barrier(len(jobs))
    results, errors = [], []
    lock = threading.Lock()

    def worker(job):
        with app.app_context():
            try:
                barrier.wait()
                value = job()
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(job,)) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join(60)
    return results, errors


def _quantity(app, product_id):
    with app.app_context():
        try:
            return db.session.get(Product, product_id).quantity
        finally:
            db.session.remove()


class TestConcurrentLedgerWrites:

    def test_cuts_and_deliveries_stay_balanced(self, file_app):
        with file_app.app_context():
            product_id = make_product(db.session, quantity=100).id
            for n in range(4):
                order_service.create_order(USER_ID, order_payload(product_id, 5, order_number=f"O{n}"))
            db.session.remove()

        jobs = [lambda: cut_service.record_cut(USER_ID, product_id, 3).yards for _ in range(5)]
        # Two racing deliveries per order
        for n in range(4):
            for _ in range(2):
                jobs.append(lambda n=n: order_service.change_status(USER_ID, f"O{n}", "Delivered").order_number)

        results, errors = _run_threads(file_app, jobs)
        assert all(isinstance(e, TOLERATED) for e in errors), errors

        with file_app.app_context():
            assert ledger_service.verify_quantities() == []

            delivered = [
                o.order_number for o in order_service.list_orders(USER_ID) if o.status == "Delivered"
            ]
            for n in range(4):
                sales = (
                    db.session.query(InventoryTransaction)
                    .filter_by(reference_id=f"O{n}", cause=CAUSE_SALE)
                    .count()
                )
                assert sales == (1 if f"O{n}" in delivered else 0)

            cut_yards = sum(c.yards for c in cut_service.list_cuts(USER_ID))
            expected = 100 - cut_yards - 5 * len(delivered)
            db.session.remove()

        assert _quantity(file_app, product_id) == expected
        assert len(results) + len(errors) == len(jobs)

    def test_cuts_cannot_oversell(self, file_app):
        with file_app.app_context():
            product_id = make_product(db.session, quantity=10).id
            db.session.remove()

        jobs = [lambda: cut_service.record_cut(USER_ID, product_id, 6).yards for _ in range(4)]
        results, errors = _run_threads(file_app, jobs)

        assert all(isinstance(e, (ValidationError,) + TOLERATED) for e in errors), errors
        assert len(results) <= 1
        assert _quantity(file_app, product_id) == 10 - 6 * len(results)

        with file_app.app_context():
            assert ledger_service.verify_quantities() == []
            db.session.remove()
