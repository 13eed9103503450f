# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order routes.

Status changes always go through order_service.change_status(), which
applies the state machine's stock, parcel and income effects in one
transaction. Orders are addressed by their order number.
"""
from flask import Blueprint, Response, g, jsonify, request

from ..decorators import handle_service_errors, require_user
from ..services import export_service, import_service, order_service

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_user
@handle_service_errors("list orders")
def list_orders_route():
    """
    Query params: shop, status, search (order number, buyer or product),
    order_date (YYYY-MM-DD).
    """
    orders = order_service.list_orders(
        g.user_id,
        shop=request.args.get("shop"),
        status=request.args.get("status"),
        search=request.args.get("search"),
        order_date=request.args.get("order_date"),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.post("")
@require_user
@handle_service_errors("create order")
def create_order_route():
    payload = request.get_json(silent=True)
    order = order_service.create_order(g.user_id, payload if payload is not None else {})
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.delete("")
@require_user
@handle_service_errors("delete all orders")
def delete_all_orders_route():
    if request.args.get("confirm") != "yes":
        return jsonify({"error": "Pass confirm=yes to delete every order"}), 400
    deleted = order_service.delete_all_orders(g.user_id)
    return jsonify({"deleted": deleted}), 200


@orders_bp.get("/summary")
@require_user
@handle_service_errors("load sales summary")
def sales_summary_route():
    return jsonify(order_service.sales_summary(g.user_id, shop=request.args.get("shop"))), 200


@orders_bp.post("/import")
@require_user
@handle_service_errors("import orders")
def import_orders_route():
    """Body: {"records": [...]} of pre-parsed order or line rows."""
    payload = request.get_json(silent=True) or {}
    result = import_service.import_orders(g.user_id, payload.get("records"))
    return jsonify(result), 200


@orders_bp.post("/export")
@require_user
@handle_service_errors("export orders")
def export_orders_route():
    payload = request.get_json(silent=True) or {}
    filename = payload.get("filename") or "sales_export"
    content = export_service.export_orders(
        g.user_id,
        template=payload.get("template") or "default",
        filename=filename,
        shop=payload.get("shop"),
        status=payload.get("status"),
    )
    return Response(
        content,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}.xlsx"'},
    )


@orders_bp.post("/sweep")
@require_user
@handle_service_errors("run auto-completion sweep")
def sweep_route():
    """Complete the caller's due Delivered orders now."""
    completed = order_service.complete_due_orders(user_id=g.user_id)
    return jsonify({"completed": completed, "count": len(completed)}), 200


@orders_bp.get("/<order_number>")
@require_user
@handle_service_errors("load order")
def get_order_route(order_number: str):
    order = order_service.get_order(g.user_id, order_number)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.put("/<order_number>")
@require_user
@handle_service_errors("update order")
def update_order_route(order_number: str):
    payload = request.get_json(silent=True)
    order = order_service.update_order(g.user_id, order_number, payload if payload is not None else {})
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.delete("/<order_number>")
@require_user
@handle_service_errors("delete order")
def delete_order_route(order_number: str):
    order_service.delete_order(g.user_id, order_number)
    return jsonify({"ok": True}), 200


@orders_bp.post("/<order_number>/status")
@require_user
@handle_service_errors("change order status")
def change_status_route(order_number: str):
    """
    Body:
    - status: Shipped | Delivered | Completed | Cancelled (required)
    - released_date / released_time: used when moving to Delivered
    - cancellation_reason: used when moving to Cancelled
    - skip_missing: cancel even when some line products were deleted
    """
    payload = request.get_json(silent=True) or {}
    if not payload.get("status"):
        return jsonify({"error": "status is required"}), 400

    order = order_service.change_status(
        g.user_id,
        order_number,
        payload["status"],
        released_date=payload.get("released_date"),
        released_time=payload.get("released_time"),
        cancellation_reason=payload.get("cancellation_reason"),
        skip_missing=bool(payload.get("skip_missing")),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<order_number>/sync")
@require_user
@handle_service_errors("sync order inventory")
def sync_route(order_number: str):
    payload = request.get_json(silent=True) or {}
    result = order_service.sync_order_inventory(
        g.user_id, order_number, skip_missing=bool(payload.get("skip_missing"))
    )
    return jsonify({
        "order": result["order"].to_dict(),
        "entries": [e.to_dict() for e in result["entries"]],
        "skipped": result["skipped"],
    }), 200
