# Overview: Flask API routes for the cash-flow ledger.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_user
from ..models import CashFlowEntry
from ..services import cashflow_service
from ..validation import ModelValidationPolicy, enforce_rules_cashflow, validate_payload

CASHFLOW_POLICY = ModelValidationPolicy(
    writable_fields={"type", "category", "amount_cents", "description", "entry_date", "notes", "reference_id"},
    required_on_create={"type", "category", "amount_cents", "description"},
)

cashflows_bp = Blueprint("cashflows", __name__, url_prefix="/api/cashflows")


@cashflows_bp.get("")
@require_user
@handle_service_errors("list cash-flow entries")
def list_entries_route():
    """Query params: type (income|expense), month (YYYY-MM), search."""
    entries = cashflow_service.list_entries(
        g.user_id,
        type_=request.args.get("type"),
        month=request.args.get("month"),
        search=request.args.get("search"),
    )
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200


@cashflows_bp.get("/summary")
@require_user
@handle_service_errors("load cash-flow summary")
def summary_route():
    return jsonify(cashflow_service.cashflow_summary(g.user_id, month=request.args.get("month"))), 200


@cashflows_bp.post("")
@require_user
@handle_service_errors("create cash-flow entry")
def create_entry_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=CashFlowEntry, payload=payload, policy=CASHFLOW_POLICY, partial=False)
    enforce_rules_cashflow(patch)

    entry = cashflow_service.create_entry(
        g.user_id,
        category=patch["category"],
        amount_cents=patch["amount_cents"],
        description=patch["description"],
        reference_id=patch.get("reference_id"),
        type_=patch["type"],
        entry_date=patch.get("entry_date"),
        notes=patch.get("notes"),
    )
    return jsonify({"entry": entry.to_dict()}), 201


@cashflows_bp.put("/<int:entry_id>")
@require_user
@handle_service_errors("update cash-flow entry")
def update_entry_route(entry_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=CashFlowEntry, payload=payload, policy=CASHFLOW_POLICY, partial=True)
    enforce_rules_cashflow(patch)

    entry = cashflow_service.update_entry(g.user_id, entry_id, patch=patch)
    return jsonify({"entry": entry.to_dict()}), 200


@cashflows_bp.delete("/<int:entry_id>")
@require_user
@handle_service_errors("delete cash-flow entry")
def delete_entry_route(entry_id: int):
    cashflow_service.delete_entry(g.user_id, entry_id)
    return jsonify({"ok": True}), 200
