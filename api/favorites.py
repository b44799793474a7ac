"""
Favorites and product view endpoints
"""
from flask import Blueprint, g, jsonify, request

from errors import NotFoundError
from models.customer import Favorable, FavorableKind
from .auth import customer_required, get_platform
from .schemas import FavoriteCreate, validate

favorites_bp = Blueprint("favorites", __name__)


@favorites_bp.route("/favorites", methods=["GET"])
@customer_required
def list_favorites():
    favorites = get_platform().customer_service.list_favorites(g.customer.customer_id)
    return jsonify({"data": [favorite.to_dict() for favorite in favorites]})


@favorites_bp.route("/favorites", methods=["POST"])
@customer_required
def add_favorite():
    payload = validate(FavoriteCreate, request.get_json(silent=True))
    favorable = Favorable.parse(payload.favorable_type, payload.favorable_id)
    favorite = get_platform().customer_service.add_favorite(g.customer.customer_id, favorable)
    return jsonify({"message": "Agregado a favoritos.", "data": favorite.to_dict()}), 201


@favorites_bp.route("/favorites/<kind>/<int:target_id>", methods=["DELETE"])
@customer_required
def remove_favorite(kind, target_id):
    if kind not in {member.value for member in FavorableKind}:
        raise NotFoundError("El favorito no existe.")
    get_platform().customer_service.remove_favorite(g.customer.customer_id, Favorable.parse(kind, target_id))
    return jsonify({"message": "Eliminado de favoritos."})


@favorites_bp.route("/products/<int:product_id>/view", methods=["POST"])
@customer_required
def view_product(product_id):
    get_platform().customer_service.record_view(g.customer.customer_id,
                                                Favorable(FavorableKind.PRODUCT, product_id))
    return jsonify({"message": "Vista registrada."})


@favorites_bp.route("/combos/<int:combo_id>/view", methods=["POST"])
@customer_required
def view_combo(combo_id):
    get_platform().customer_service.record_view(g.customer.customer_id,
                                                Favorable(FavorableKind.COMBO, combo_id))
    return jsonify({"message": "Vista registrada."})


@favorites_bp.route("/me/recently-viewed", methods=["GET"])
@customer_required
def recently_viewed():
    views = get_platform().customer_service.recently_viewed(g.customer.customer_id)
    return jsonify({"data": [view.to_dict() for view in views]})
