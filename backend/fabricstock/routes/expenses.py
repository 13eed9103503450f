# Overview: Flask API routes for business expenses.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_user
from ..models import Expense
from ..services import expense_service
from ..validation import ModelValidationPolicy, enforce_rules_expense, validate_payload

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"expense_date", "name", "type", "fee_cents", "delivery_fee_cents", "image_url"},
    required_on_create={"expense_date", "name", "type"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_user
@handle_service_errors("list expenses")
def list_expenses_route():
    expenses = expense_service.list_expenses(g.user_id)
    return jsonify({
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total_cents": sum(e.total_cents for e in expenses),
    }), 200


@expenses_bp.post("")
@require_user
@handle_service_errors("create expense")
def create_expense_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    enforce_rules_expense(patch)

    expense = expense_service.create_expense(g.user_id, patch=patch)
    return jsonify({"expense": expense.to_dict()}), 201


@expenses_bp.put("/<int:expense_id>")
@require_user
@handle_service_errors("update expense")
def update_expense_route(expense_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    enforce_rules_expense(patch)

    expense = expense_service.update_expense(g.user_id, expense_id, patch=patch)
    return jsonify({"expense": expense.to_dict()}), 200


@expenses_bp.delete("/<int:expense_id>")
@require_user
@handle_service_errors("delete expense")
def delete_expense_route(expense_id: int):
    expense_service.delete_expense(g.user_id, expense_id)
    return jsonify({"ok": True}), 200
