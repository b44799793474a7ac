"""
Order endpoints
"""
from flask import Blueprint, g, jsonify, request

from models.order import CANCELLATION_REASONS
from .auth import customer_required, get_platform
from .cart import cart_payload
from .schemas import OrderCancel, OrderCreate, OrderReviewCreate, validate

orders_bp = Blueprint("orders", __name__)


def _owned_order(order_id: int):
    return get_platform().order_service.get_owned_order(order_id, g.customer.customer_id)


@orders_bp.route("/orders", methods=["POST"])
@customer_required
def create_order():
    payload = validate(OrderCreate, request.get_json(silent=True))
    platform = get_platform()
    cart = platform.cart_service.get_or_create_cart(g.customer.customer_id)
    order = platform.order_service.create_from_cart(cart, payload.model_dump())
    return jsonify({"message": "Orden creada exitosamente.", "data": order.to_dict()}), 201


@orders_bp.route("/orders", methods=["GET"])
@customer_required
def list_orders():
    page = max(request.args.get("page", 1, type=int), 1)
    per_page = min(max(request.args.get("per_page", 15, type=int), 1), 50)
    history = get_platform().order_service.get_history(g.customer.customer_id, page, per_page,
                                                       request.args.get("status"))
    return jsonify({"data": [order.to_dict() for order in history["data"]], "meta": history["meta"]})


@orders_bp.route("/orders/active", methods=["GET"])
@customer_required
def active_orders():
    orders = get_platform().order_service.get_active_orders(g.customer.customer_id)
    return jsonify({"data": [order.to_dict() for order in orders]})


@orders_bp.route("/orders/recent", methods=["GET"])
@customer_required
def recent_orders():
    orders = get_platform().order_service.get_recent_orders(g.customer.customer_id)
    return jsonify({"data": [order.to_dict() for order in orders]})


@orders_bp.route("/orders/cancellation-reasons", methods=["GET"])
@customer_required
def cancellation_reasons():
    return jsonify({"data": CANCELLATION_REASONS})


@orders_bp.route("/orders/<int:order_id>", methods=["GET"])
@customer_required
def show_order(order_id):
    return jsonify({"data": _owned_order(order_id).to_dict()})


@orders_bp.route("/orders/<int:order_id>/track", methods=["GET"])
@customer_required
def track_order(order_id):
    return jsonify({"data": get_platform().order_service.track(_owned_order(order_id))})


@orders_bp.route("/orders/<int:order_id>/cancel", methods=["POST"])
@customer_required
def cancel_order(order_id):
    payload = validate(OrderCancel, request.get_json(silent=True))
    order = get_platform().order_service.cancel(_owned_order(order_id), payload.reason)
    return jsonify({"message": "Orden cancelada exitosamente.", "data": order.to_dict()})


@orders_bp.route("/orders/<int:order_id>/reorder", methods=["POST"])
@customer_required
def reorder(order_id):
    cart = get_platform().order_service.reorder(_owned_order(order_id), g.customer.customer_id)
    return jsonify({"message": "Productos agregados al carrito.", "data": cart_payload(cart)})


@orders_bp.route("/orders/<int:order_id>/review", methods=["POST"])
@customer_required
def review_order(order_id):
    payload = validate(OrderReviewCreate, request.get_json(silent=True))
    review = get_platform().order_service.review(_owned_order(order_id), g.customer.customer_id,
                                                 payload.model_dump())
    return jsonify({"message": "Gracias por tu calificación.", "data": review.to_dict()}), 201
