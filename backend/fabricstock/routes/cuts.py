# Overview: Flask API routes for fabric cuts.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_user
from ..services import cut_service

cuts_bp = Blueprint("cuts", __name__, url_prefix="/api/cuts")


@cuts_bp.get("")
@require_user
@handle_service_errors("list cuts")
def list_cuts_route():
    cuts = cut_service.list_cuts(g.user_id)
    return jsonify({
        "items": [c.to_dict() for c in cuts],
        "count": len(cuts),
        "total_yards": sum(c.yards for c in cuts),
    }), 200


@cuts_bp.post("")
@require_user
@handle_service_errors("record cut")
def create_cut_route():
    payload = request.get_json(silent=True) or {}
    cut = cut_service.record_cut(
        g.user_id,
        payload.get("product_id"),
        payload.get("yards"),
        cut_date=payload.get("cut_date"),
    )
    return jsonify({"cut": cut.to_dict()}), 201


@cuts_bp.post("/<int:cut_id>/used")
@require_user
@handle_service_errors("mark cut used")
def mark_used_route(cut_id: int):
    cut_service.mark_cut_used(g.user_id, cut_id)
    return jsonify({"ok": True}), 200
