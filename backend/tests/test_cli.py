# Overview: Pytest coverage for the Flask CLI maintenance commands.

import json

from sqlalchemy import update

from fabricstock.models import Product
from fabricstock.services import order_service

from conftest import USER_ID, order_payload


def test_ledger_verify_ok(app, db_session, product):
    result = app.test_cli_runner().invoke(args=["ledger", "verify"])
    assert result.exit_code == 0
    assert "All product quantities match" in result.output


def test_ledger_verify_reports_drift(app, db_session, product):
    db_session.execute(update(Product).where(Product.id == product.id).values(quantity=1))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["ledger", "verify", "--user", USER_ID])
    assert result.exit_code == 1
    assert "expected=100" in result.output


def test_orders_sweep(app, db_session, product):
    order_service.create_order(USER_ID, order_payload(
        product.id, 1, status="Delivered", released_date="2020-01-01",
    ))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["orders", "sweep"])
    assert result.exit_code == 0
    assert "Completed 1 order(s): O1" in result.output


def test_orders_import(app, db_session, product, tmp_path):
    path = tmp_path / "orders.json"
    path.write_text(json.dumps([
        {"order_number": "F1", "shop": "Shopee", "product_id": product.id, "quantity": 1},
    ]), encoding="utf-8")

    result = app.test_cli_runner().invoke(args=["orders", "import", str(path), "--user", USER_ID])
    assert result.exit_code == 0
    assert "Inserted: 1" in result.output
