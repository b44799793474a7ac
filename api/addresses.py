"""
Saved delivery address endpoints
"""
from flask import Blueprint, g, jsonify, request

from .auth import customer_required, get_platform
from .schemas import AddressCreate, AddressUpdate, LocationCheck, validate

addresses_bp = Blueprint("addresses", __name__)


@addresses_bp.route("/addresses", methods=["GET"])
@customer_required
def list_addresses():
    addresses = get_platform().customer_service.list_addresses(g.customer.customer_id)
    return jsonify({"data": [address.to_dict() for address in addresses]})


@addresses_bp.route("/addresses", methods=["POST"])
@customer_required
def create_address():
    payload = validate(AddressCreate, request.get_json(silent=True))
    address = get_platform().customer_service.create_address(g.customer.customer_id, payload.model_dump())
    return jsonify({"message": "Dirección creada exitosamente.", "data": address.to_dict()}), 201


@addresses_bp.route("/addresses/validate-location", methods=["POST"])
@customer_required
def validate_location():
    payload = validate(LocationCheck, request.get_json(silent=True))
    result = get_platform().delivery_validation.validate_coordinates(payload.latitude, payload.longitude)
    return jsonify({"data": result.to_dict()})


@addresses_bp.route("/addresses/<int:address_id>", methods=["GET"])
@customer_required
def show_address(address_id):
    address = get_platform().customer_service.get_address(g.customer.customer_id, address_id)
    return jsonify({"data": address.to_dict()})


@addresses_bp.route("/addresses/<int:address_id>", methods=["PUT"])
@customer_required
def update_address(address_id):
    payload = validate(AddressUpdate, request.get_json(silent=True))
    address = get_platform().customer_service.update_address(g.customer.customer_id, address_id,
                                                             payload.model_dump(exclude_unset=True))
    return jsonify({"message": "Dirección actualizada exitosamente.", "data": address.to_dict()})


@addresses_bp.route("/addresses/<int:address_id>", methods=["DELETE"])
@customer_required
def delete_address(address_id):
    get_platform().customer_service.delete_address(g.customer.customer_id, address_id)
    return jsonify({"message": "Dirección eliminada exitosamente."})


@addresses_bp.route("/addresses/<int:address_id>/default", methods=["POST"])
@customer_required
def set_default_address(address_id):
    address = get_platform().customer_service.set_default_address(g.customer.customer_id, address_id)
    return jsonify({"message": "Dirección marcada como predeterminada.", "data": address.to_dict()})
