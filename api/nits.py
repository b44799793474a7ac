"""
NIT (tax id) endpoints
"""
from flask import Blueprint, g, jsonify, request

from .auth import customer_required, get_platform
from .schemas import NitCreate, NitUpdate, validate

nits_bp = Blueprint("nits", __name__)


@nits_bp.route("/nits", methods=["GET"])
@customer_required
def list_nits():
    nits = get_platform().customer_service.list_nits(g.customer.customer_id)
    return jsonify({"data": [nit.to_dict() for nit in nits]})


@nits_bp.route("/nits", methods=["POST"])
@customer_required
def create_nit():
    payload = validate(NitCreate, request.get_json(silent=True))
    nit = get_platform().customer_service.create_nit(g.customer.customer_id, payload.model_dump())
    return jsonify({"message": "NIT creado exitosamente.", "data": nit.to_dict()}), 201


@nits_bp.route("/nits/<int:nit_id>", methods=["GET"])
@customer_required
def show_nit(nit_id):
    nit = get_platform().customer_service.get_nit(g.customer.customer_id, nit_id)
    return jsonify({"data": nit.to_dict()})


@nits_bp.route("/nits/<int:nit_id>", methods=["PUT"])
@customer_required
def update_nit(nit_id):
    payload = validate(NitUpdate, request.get_json(silent=True))
    nit = get_platform().customer_service.update_nit(g.customer.customer_id, nit_id,
                                                     payload.model_dump(exclude_unset=True))
    return jsonify({"message": "NIT actualizado exitosamente.", "data": nit.to_dict()})


@nits_bp.route("/nits/<int:nit_id>", methods=["DELETE"])
@customer_required
def delete_nit(nit_id):
    get_platform().customer_service.delete_nit(g.customer.customer_id, nit_id)
    return jsonify({"message": "NIT eliminado exitosamente."})


@nits_bp.route("/nits/<int:nit_id>/default", methods=["POST"])
@customer_required
def set_default_nit(nit_id):
    nit = get_platform().customer_service.set_default_nit(g.customer.customer_id, nit_id)
    return jsonify({"message": "NIT marcado como predeterminado.", "data": nit.to_dict()})
