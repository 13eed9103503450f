# Overview: Flask API routes for products and stock; parses input and returns JSON responses.

"""
Product and stock routes.

All routes are scoped to g.user_id (set by @require_user). Quantity is never
written directly by these routes: restock, quick add and set-quantity all go
through the inventory ledger.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_user
from ..models import Product
from ..services import inventory_service, ledger_service
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "type", "quantity", "image_url"},
    required_on_create={"name", "category", "type"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_user
@handle_service_errors("list products")
def list_products():
    """
    Query params:
    - search: matches name or category
    - category, type: exact (case-insensitive) filters
    - page, per_page: optional pagination (per_page max 100)
    """
    result = inventory_service.list_products(
        g.user_id,
        search=request.args.get("search"),
        category=request.args.get("category"),
        type_=request.args.get("type"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.post("")
@require_user
@handle_service_errors("create product")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = inventory_service.create_product(g.user_id, patch=patch)
    return jsonify({"product": product.to_dict()}), 201


@products_bp.post("/quick-add")
@require_user
@handle_service_errors("quick add stock")
def quick_add_route():
    """Merge into the matching product (restock) or create it."""
    payload = request.get_json(silent=True) or {}
    product, created = inventory_service.add_stock(
        g.user_id,
        name=payload.get("name"),
        category=payload.get("category"),
        type_=payload.get("type"),
        quantity=payload.get("quantity"),
        image_url=payload.get("image_url"),
    )
    return jsonify({"product": product.to_dict(), "created": created}), 201 if created else 200


@products_bp.get("/summary")
@require_user
@handle_service_errors("load inventory summary")
def inventory_summary_route():
    return jsonify(inventory_service.inventory_summary(g.user_id)), 200


@products_bp.get("/audit")
@require_user
@handle_service_errors("audit product quantities")
def audit_route():
    discrepancies = ledger_service.verify_quantities(g.user_id)
    return jsonify({"balanced": not discrepancies, "discrepancies": discrepancies}), 200


@products_bp.get("/<int:product_id>")
@require_user
@handle_service_errors("load product")
def get_product_route(product_id: int):
    product = inventory_service.get_product(g.user_id, product_id)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.put("/<int:product_id>")
@require_user
@handle_service_errors("update product")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)

    product = inventory_service.update_product(g.user_id, product_id, patch=patch)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_user
@handle_service_errors("delete product")
def delete_product_route(product_id: int):
    inventory_service.delete_product(g.user_id, product_id)
    return jsonify({"ok": True}), 200


@products_bp.post("/<int:product_id>/restock")
@require_user
@handle_service_errors("restock product")
def restock_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    result = inventory_service.restock_product(g.user_id, product_id, payload.get("quantity"))
    return jsonify({"quantity": result.quantity, "entry": result.entry.to_dict()}), 200


@products_bp.put("/<int:product_id>/quantity")
@require_user
@handle_service_errors("set product quantity")
def set_quantity_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    product = inventory_service.update_quantity(g.user_id, product_id, payload.get("quantity"))
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/<int:product_id>/history")
@require_user
@handle_service_errors("load product history")
def history_route(product_id: int):
    limit = min(request.args.get("limit", default=200, type=int), 1000)
    entries = ledger_service.product_history(user_id=g.user_id, product_id=product_id, limit=limit)
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
