"""
Mobile device registration endpoints
"""
from flask import Blueprint, g, jsonify, request

from .auth import customer_required, get_platform
from .schemas import DeviceRegister, validate

devices_bp = Blueprint("devices", __name__)


@devices_bp.route("/devices", methods=["GET"])
@customer_required
def list_devices():
    devices = get_platform().customer_service.list_devices(g.customer.customer_id)
    return jsonify({"data": [device.to_dict() for device in devices]})


@devices_bp.route("/devices/register", methods=["POST"])
@customer_required
def register_device():
    payload = validate(DeviceRegister, request.get_json(silent=True))
    device = get_platform().customer_service.register_device(g.customer.customer_id, payload.model_dump())
    return jsonify({"message": "Dispositivo registrado exitosamente.", "data": device.to_dict()})


@devices_bp.route("/devices/<int:device_id>", methods=["DELETE"])
@customer_required
def deactivate_device(device_id):
    get_platform().customer_service.deactivate_device(g.customer.customer_id, device_id)
    return jsonify({"message": "Dispositivo desactivado exitosamente."})
