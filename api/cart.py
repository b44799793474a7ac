"""
Cart endpoints
"""
from typing import Dict, Any

from flask import Blueprint, g, jsonify, request

from errors import AddressOutsideDeliveryZoneError, NotFoundError
from models.cart import Cart
from .auth import customer_required, get_platform
from .schemas import (
    CartDeliveryAddressUpdate, CartItemCreate, CartItemUpdate, CartRestaurantUpdate, CartServiceTypeUpdate,
    validate,
)

cart_bp = Blueprint("cart", __name__)


def cart_payload(cart: Cart) -> Dict[str, Any]:
    # Cart with items, per item discounts and the priced summary
    platform = get_platform()
    summary = platform.cart_service.get_cart_summary(cart)
    restaurant = platform.restaurant_repo.get_restaurant(cart.restaurant_id) if cart.restaurant_id else None

    items = []
    for item in cart.items:
        data = item.to_dict()
        discount = summary.item_discounts.get(item.cart_item_id)
        if discount:
            data["discount_info"] = {
                "promotion": discount["promotion"],
                "original_price": f"{discount['original_price']:.2f}",
                "discount": f"{discount['discount']:.2f}",
                "final_price": f"{discount['final_price']:.2f}",
            }
        items.append(data)

    return {
        "id": cart.cart_id,
        "service_type": cart.service_type,
        "zone": cart.zone,
        "restaurant": restaurant.to_dict() if restaurant else None,
        "delivery_address_id": cart.delivery_address_id,
        "expires_at": cart.expires_at.isoformat() if cart.expires_at else None,
        "items": items,
        "summary": summary.to_dict(),
    }


def _current_cart() -> Cart:
    return get_platform().cart_service.get_or_create_cart(g.customer.customer_id)


@cart_bp.route("/cart", methods=["GET"])
@customer_required
def show_cart():
    return jsonify({"data": cart_payload(_current_cart())})


@cart_bp.route("/cart/items", methods=["POST"])
@customer_required
def add_item():
    payload = validate(CartItemCreate, request.get_json(silent=True))
    cart_service = get_platform().cart_service
    cart = _current_cart()
    item = cart_service.add_item(cart, payload.model_dump())
    return jsonify({
        "message": "Producto agregado al carrito.",
        "data": {"item": item.to_dict(), "cart": cart_payload(cart_service.reload(cart))},
    }), 201


@cart_bp.route("/cart/items/<int:item_id>", methods=["PUT"])
@customer_required
def update_item(item_id):
    payload = validate(CartItemUpdate, request.get_json(silent=True))
    cart_service = get_platform().cart_service
    cart = _current_cart()
    item = cart_service.update_item(cart, item_id, payload.model_dump(exclude_unset=True))
    return jsonify({
        "message": "Item actualizado.",
        "data": {"item": item.to_dict(), "cart": cart_payload(cart_service.reload(cart))},
    })


@cart_bp.route("/cart/items/<int:item_id>", methods=["DELETE"])
@customer_required
def remove_item(item_id):
    cart_service = get_platform().cart_service
    cart = _current_cart()
    cart_service.remove_item(cart, item_id)
    return jsonify({"message": "Item eliminado del carrito.", "data": cart_payload(cart_service.reload(cart))})


@cart_bp.route("/cart", methods=["DELETE"])
@customer_required
def clear_cart():
    cart_service = get_platform().cart_service
    cart = _current_cart()
    cart_service.clear_cart(cart)
    return jsonify({"message": "Carrito vaciado.", "data": cart_payload(cart_service.reload(cart))})


@cart_bp.route("/cart/restaurant", methods=["PUT"])
@customer_required
def update_restaurant():
    payload = validate(CartRestaurantUpdate, request.get_json(silent=True))
    platform = get_platform()
    restaurant = platform.restaurant_repo.get_restaurant(payload.restaurant_id)
    if not restaurant or not restaurant.is_active:
        raise NotFoundError("Restaurante no encontrado.")

    cart = platform.cart_service.update_restaurant(_current_cart(), restaurant)
    return jsonify({"message": "Restaurante actualizado.", "data": cart_payload(cart)})


@cart_bp.route("/cart/service-type", methods=["PUT"])
@customer_required
def update_service_type():
    payload = validate(CartServiceTypeUpdate, request.get_json(silent=True))
    cart = get_platform().cart_service.update_service_type(_current_cart(), payload.service_type, payload.zone)
    return jsonify({"message": "Tipo de servicio actualizado.", "data": cart_payload(cart)})


@cart_bp.route("/cart/delivery-address", methods=["PUT"])
@customer_required
def update_delivery_address():
    # The address decides the restaurant and price zone
    payload = validate(CartDeliveryAddressUpdate, request.get_json(silent=True))
    platform = get_platform()
    address = platform.customer_service.get_address(g.customer.customer_id, payload.delivery_address_id)

    result = platform.delivery_validation.validate_delivery_address(address)
    if not result.is_valid:
        raise AddressOutsideDeliveryZoneError(address.latitude, address.longitude, result.error_message,
                                              result.nearby_pickup_restaurants)

    cart = platform.cart_service.update_delivery_address(_current_cart(), address, result.restaurant, result.zone)
    return jsonify({
        "message": "Dirección de entrega actualizada.",
        "data": {
            "cart": cart_payload(cart),
            "assigned_restaurant": result.restaurant.to_dict(),
            "zone": result.zone,
        },
    })


@cart_bp.route("/cart/validate", methods=["POST"])
@customer_required
def validate_cart():
    messages = get_platform().cart_service.checkout_messages(_current_cart())
    return jsonify({"data": {"is_valid": not messages, "errors": messages}})
