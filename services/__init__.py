"""
Services package for the ordering platform
Contains business logic services
"""

from .product_service import ProductService
from .promotion_service import PromotionService
from .cart_service import CartService
from .delivery_validation_service import DeliveryValidationService, DeliveryValidationResult
from .points_service import PointsService
from .order_service import OrderService
from .customer_service import CustomerService

__all__ = [
    'ProductService', 'PromotionService', 'CartService', 'DeliveryValidationService',
    'DeliveryValidationResult', 'PointsService', 'OrderService', 'CustomerService'
]
