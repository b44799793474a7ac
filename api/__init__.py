"""
API package for the ordering platform
Flask blueprints for the customer API and the Apple Wallet web service
"""

from .cart import cart_bp
from .addresses import addresses_bp
from .nits import nits_bp
from .devices import devices_bp
from .favorites import favorites_bp
from .orders import orders_bp
from .points import points_bp
from .profile import profile_bp
from .wallet import wallet_bp
from .apple_wallet import apple_wallet_bp

API_PREFIX = "/api/v1"


def register_blueprints(app):
    for blueprint in (cart_bp, addresses_bp, nits_bp, devices_bp, favorites_bp, orders_bp,
                      points_bp, profile_bp, wallet_bp):
        app.register_blueprint(blueprint, url_prefix=API_PREFIX)
    app.register_blueprint(apple_wallet_bp, url_prefix="/v1")


__all__ = ['register_blueprints', 'API_PREFIX']
