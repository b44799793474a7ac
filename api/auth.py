"""
Bearer token authentication for customer endpoints
"""
from functools import wraps

from flask import current_app, g, request

from errors import AuthenticationError


def get_platform():
    return current_app.extensions["ordering_platform"]


def bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return ""
    return header[len("Bearer "):].strip()


def customer_required(view):
    # Resolves the calling customer into g.customer
    @wraps(view)
    def wrapper(*args, **kwargs):
        customer = get_platform().customer_service.authenticate(bearer_token())
        if customer is None:
            raise AuthenticationError("No autenticado.")
        g.customer = customer
        return view(*args, **kwargs)
    return wrapper
