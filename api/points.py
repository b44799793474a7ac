"""
Loyalty points and rewards endpoints
"""
from flask import Blueprint, g, jsonify, request

from services.points_service import ORDER_REFERENCE
from .auth import customer_required, get_platform
from .schemas import PointsRedeem, validate

points_bp = Blueprint("points", __name__)


@points_bp.route("/points/balance", methods=["GET"])
@customer_required
def balance():
    return jsonify({"data": get_platform().points_service.get_balance(g.customer.customer_id)})


@points_bp.route("/points/history", methods=["GET"])
@customer_required
def history():
    page = max(request.args.get("page", 1, type=int), 1)
    per_page = min(max(request.args.get("per_page", 20, type=int), 1), 100)
    return jsonify(get_platform().points_service.get_history(g.customer.customer_id, page, per_page))


@points_bp.route("/points/redeem", methods=["POST"])
@customer_required
def redeem():
    # Points are always redeemed against one of the customer's orders
    payload = validate(PointsRedeem, request.get_json(silent=True))
    platform = get_platform()
    order = platform.order_service.get_owned_order(payload.order_id, g.customer.customer_id)
    transaction_id = platform.points_service.redeem_points(
        g.customer.customer_id, payload.points_to_redeem, ORDER_REFERENCE, order.order_id,
        f"Redimidos {payload.points_to_redeem} puntos en orden #{order.order_number}",
    )
    return jsonify({
        "message": "Puntos redimidos exitosamente.",
        "data": {
            "transaction_id": transaction_id,
            "new_balance": platform.points_service.get_balance(g.customer.customer_id)["points"],
        },
    })


@points_bp.route("/rewards", methods=["GET"])
@customer_required
def rewards():
    return jsonify({"data": get_platform().points_service.get_rewards()})
