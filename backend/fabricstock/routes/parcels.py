# Overview: Flask API routes for the returned-parcel queue.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, require_user
from ..services import parcel_service

parcels_bp = Blueprint("parcels", __name__, url_prefix="/api/parcels")


@parcels_bp.get("")
@require_user
@handle_service_errors("list returned parcels")
def list_parcels_route():
    parcels = parcel_service.list_parcels(g.user_id, status=request.args.get("status"))
    return jsonify({"items": [p.to_dict() for p in parcels], "count": len(parcels)}), 200


@parcels_bp.get("/<int:parcel_id>")
@require_user
@handle_service_errors("load returned parcel")
def get_parcel_route(parcel_id: int):
    parcel = parcel_service.get_parcel(g.user_id, parcel_id)
    return jsonify({"parcel": parcel.to_dict()}), 200


@parcels_bp.post("/<int:parcel_id>/restock")
@require_user
@handle_service_errors("restock returned parcel")
def restock_parcel_route(parcel_id: int):
    """
    Body (optional): {"skip_missing": true} to restock the remaining lines
    when some products were deleted; otherwise such a parcel fails with 422.
    """
    payload = request.get_json(silent=True) or {}
    result = parcel_service.restock_parcel(
        g.user_id, parcel_id, skip_missing=bool(payload.get("skip_missing"))
    )
    return jsonify(result), 200
