# Overview: Excel export through the external spreadsheet service.

from __future__ import annotations

import logging
from typing import Iterable

import httpx
from flask import current_app

from ..errors import DependencyFailure, ValidationError
from ..models import Order
from ..time_utils import to_iso_date
from .order_service import list_orders

"""
Excel Export

The spreadsheet itself is produced by an external service: we POST
{"data": [flattened records], "template": ..., "filename": ...} and get the
.xlsx bytes back. It is a reporting sink only; nothing here changes state.
"""

logger = logging.getLogger(__name__)

EXPORT_TEMPLATES = ("default", "bir", "summary")


class ExportClient:
    """Thin httpx wrapper around the export endpoint."""

    def __init__(self, url: str, timeout: float = 30.0, transport: httpx.BaseTransport | None = None):
        if not url:
            raise DependencyFailure("Export service is not configured")
        self.url = url
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def render(self, records: list[dict], template: str, filename: str) -> bytes:
        try:
            response = self.client.post(
                self.url,
                json={"data": records, "template": template, "filename": filename},
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Export service call failed: %s", exc)
            raise DependencyFailure("Export failed") from exc
        return response.content

    def close(self) -> None:
        self.client.close()


def flatten_orders(orders: Iterable[Order]) -> list[dict]:
    """One record per line item; order-level money is repeated on each line."""
    records = []
    for order in orders:
        payment = order.payment
        net_total = order.estimated_income_cents
        for line in order.lines:
            records.append({
                "orderId": order.order_number,
                "orderDate": to_iso_date(order.order_date),
                "shop": order.shop,
                "buyerName": order.buyer_name or "",
                "productName": line.product_name,
                "quantity": line.quantity,
                "unitPrice": line.unit_price_cents / 100,
                "subtotal": line.subtotal_cents / 100,
                "shippingFee": (payment.shipping_fee_charged_cents if payment else 0) / 100,
                "serviceFee": (payment.service_fee_cents if payment else 0) / 100,
                "transactionFee": (payment.transaction_fee_cents if payment else 0) / 100,
                "tax": (payment.withholding_tax_cents if payment else 0) / 100,
                "netTotal": net_total / 100,
                "status": order.status,
                "incomeStatus": order.income_status,
                "totalAmount": order.total_cents / 100,
            })
    return records


def export_orders(
    user_id: str,
    template: str = "default",
    filename: str = "sales_export",
    *,
    shop: str | None = None,
    status: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> bytes:
    """
    Raises:
        ValidationError: unknown template
        DependencyFailure: export service missing, unreachable or failing
    """
    if template not in EXPORT_TEMPLATES:
        raise ValidationError(f"template must be one of: {', '.join(EXPORT_TEMPLATES)}")

    records = flatten_orders(list_orders(user_id, shop=shop, status=status))
    client = ExportClient(
        current_app.config.get("EXPORT_SERVICE_URL", ""),
        timeout=current_app.config.get("EXPORT_TIMEOUT_SECONDS", 30.0),
        transport=transport,
    )
    try:
        content = client.render(records, template, filename)
    finally:
        client.close()
    logger.info("Exported %s record(s) for user %s (%s template)", len(records), user_id, template)
    return content
