"""
Domain exceptions mapped to HTTP responses by the API layer
"""
from typing import Any, Dict, List, Optional


class OrderingError(Exception):
    """Base class for all expected business failures"""
    status_code = 422
    error_code: Optional[str] = None

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message}
        if self.error_code:
            payload["error_code"] = self.error_code
        if self.data is not None:
            payload["data"] = self.data
        return payload


class NotFoundError(OrderingError):
    status_code = 404


class ForbiddenError(OrderingError):
    status_code = 403


class AuthenticationError(OrderingError):
    status_code = 401


class PayloadValidationError(OrderingError):
    """Field level validation failure"""

    def __init__(self, errors: Dict[str, List[str]], message: str = "Los datos proporcionados no son válidos."):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "errors": self.errors}


class InvalidCartItemError(OrderingError):
    error_code = "INVALID_CART_ITEM"


class CartValidationError(OrderingError):
    error_code = "CART_INVALID"

    def __init__(self, messages: List[str]):
        super().__init__("El carrito no es válido: " + ", ".join(messages), {"errors": messages})
        self.messages = messages


class AddressOutsideDeliveryZoneError(OrderingError):
    error_code = "ADDRESS_OUTSIDE_DELIVERY_ZONE"

    def __init__(self, lat: float, lng: float, message: str,
                 nearby_pickup_restaurants: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, {
            "latitude": lat,
            "longitude": lng,
            "nearest_pickup_locations": nearby_pickup_restaurants or [],
        })
        self.lat = lat
        self.lng = lng
        self.nearby_pickup_restaurants = nearby_pickup_restaurants or []


class MinimumOrderAmountError(OrderingError):
    error_code = "MINIMUM_ORDER_AMOUNT"

    def __init__(self, minimum, current, restaurant_name: str):
        super().__init__(
            f"El monto mínimo de orden en {restaurant_name} es Q{minimum}. Tu carrito tiene Q{current}.",
            {"minimum_amount": str(minimum), "current_amount": str(current)},
        )


class RestaurantClosedError(OrderingError):
    error_code = "RESTAURANT_CLOSED"

    def __init__(self, restaurant_name: str, service_type: str, last_order_time: Optional[str] = None):
        super().__init__(
            f"{restaurant_name} no está aceptando pedidos de {service_type} en este momento.",
            {"service_type": service_type, "last_order_time": last_order_time},
        )


class PromotionExpiredError(OrderingError):
    error_code = "PROMOTION_EXPIRED"

    def __init__(self, promotion_name: str, promotion_id: int):
        super().__init__(
            f"La promoción '{promotion_name}' ya no está vigente. Revisa tu carrito.",
            {"promotion_id": promotion_id},
        )


class InvalidStatusTransitionError(OrderingError):
    error_code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, new: str):
        super().__init__(f"Transición de estado inválida: {current} -> {new}")


class OrderNotCancellableError(OrderingError):
    error_code = "ORDER_NOT_CANCELLABLE"

    def __init__(self):
        super().__init__("La orden no puede ser cancelada en su estado actual")


class ReviewNotAllowedError(OrderingError):
    error_code = "REVIEW_NOT_ALLOWED"


class InsufficientPointsError(OrderingError):
    error_code = "INSUFFICIENT_POINTS"

    def __init__(self, available: int, requested: int):
        super().__init__(
            "No tienes suficientes puntos disponibles.",
            {"available": available, "requested": requested},
        )


class LoyaltyCardMissingError(OrderingError):
    error_code = "LOYALTY_CARD_MISSING"

    def __init__(self):
        super().__init__("No tienes una tarjeta de lealtad asignada.")


class WalletConfigurationError(RuntimeError):
    """Wallet credentials are missing or unreadable"""


class WalletServiceError(RuntimeError):
    """A wallet provider rejected a request"""
