"""
Apple Wallet web service

Devices call these endpoints to register for pass updates and to fetch the
latest version of a pass. Bodies are empty unless Apple expects JSON.
"""
import structlog
from flask import Blueprint, Response, jsonify, request
from werkzeug.http import http_date

from errors import NotFoundError
from .auth import get_platform
from .wallet import PKPASS_MIMETYPE

logger = structlog.get_logger(__name__)

apple_wallet_bp = Blueprint("apple_wallet", __name__)

REGISTRATION_PATH = "/devices/<device_id>/registrations/<pass_type>/<serial_number>"


def _authorized(serial_number: str) -> bool:
    header = request.headers.get("Authorization", "")
    if not header.startswith("ApplePass "):
        return False
    return get_platform().apple_wallet.validate_auth_token(header[len("ApplePass "):], serial_number)


def _empty(status: int) -> Response:
    return Response(status=status)


@apple_wallet_bp.route(REGISTRATION_PATH, methods=["POST"])
def register_device(device_id, pass_type, serial_number):
    if not _authorized(serial_number):
        return _empty(401)
    push_token = (request.get_json(silent=True) or {}).get("pushToken")
    if not push_token:
        return _empty(400)

    try:
        created = get_platform().apple_wallet.register_device(device_id, pass_type, serial_number, push_token)
    except NotFoundError:
        return _empty(404)
    return _empty(201 if created else 200)


@apple_wallet_bp.route(REGISTRATION_PATH, methods=["DELETE"])
def unregister_device(device_id, pass_type, serial_number):
    if not _authorized(serial_number):
        return _empty(401)
    get_platform().apple_wallet.unregister_device(device_id, pass_type, serial_number)
    return _empty(200)


@apple_wallet_bp.route("/devices/<device_id>/registrations/<pass_type>", methods=["GET"])
def serial_numbers(device_id, pass_type):
    updated = get_platform().apple_wallet.updated_serial_numbers(device_id, pass_type,
                                                                 request.args.get("passesUpdatedSince"))
    if updated is None:
        return _empty(204)
    return jsonify(updated)


@apple_wallet_bp.route("/passes/<pass_type>/<serial_number>", methods=["GET"])
def latest_pass(pass_type, serial_number):
    if not _authorized(serial_number):
        return _empty(401)

    try:
        pass_data, last_modified = get_platform().apple_wallet.latest_pass(serial_number)
    except NotFoundError:
        return _empty(404)
    except Exception as e:
        logger.error("apple_pass_refresh_failed", serial_number=serial_number, error=str(e))
        return _empty(500)

    return Response(pass_data, mimetype=PKPASS_MIMETYPE, headers={
        "Content-Disposition": 'attachment; filename="loyalty-card.pkpass"',
        "Last-Modified": http_date(last_modified.timestamp()),
    })


@apple_wallet_bp.route("/log", methods=["POST"])
def device_log():
    for entry in (request.get_json(silent=True) or {}).get("logs", []):
        logger.info("apple_wallet_device_log", message=entry)
    return _empty(200)
