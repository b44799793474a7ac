"""
Customer profile endpoints
"""
from flask import Blueprint, g, jsonify, request

from .auth import customer_required, get_platform
from .schemas import ProfileUpdate, validate

profile_bp = Blueprint("profile", __name__)


@profile_bp.route("/profile", methods=["GET"])
@customer_required
def show_profile():
    return jsonify({"data": g.customer.to_dict()})


@profile_bp.route("/profile", methods=["PUT"])
@customer_required
def update_profile():
    payload = validate(ProfileUpdate, request.get_json(silent=True))
    customer = get_platform().customer_service.update_profile(g.customer.customer_id,
                                                              payload.model_dump(exclude_unset=True))
    return jsonify({"message": "Perfil actualizado.", "data": customer.to_dict()})
