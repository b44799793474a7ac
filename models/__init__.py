"""
Models package for the ordering platform
Contains data models and type definitions
"""

from .catalog import (
    ServiceType, Zone, PromotionType, PriceList, Section, SectionOption,
    Product, ProductVariant, Combo, ComboItem, ComboItemOption,
    Promotion, PromotionItem, money,
)
from .restaurant import Restaurant, parse_geofence
from .cart import Cart, CartItem, CartStatus, CartSummary, CartValidation
from .order import (
    Order, OrderItem, OrderStatus, OrderStatusHistory, OrderReview,
    PaymentMethod, CANCELLATION_REASONS,
)
from .customer import (
    Customer, CustomerType, CustomerAddress, CustomerNit, CustomerDevice,
    Favorable, FavorableKind, Favorite, ProductView,
)
from .loyalty import (
    PointsSettings, PointsTransaction, PointsTransactionType, AppleWalletRegistration,
)

__all__ = [
    'ServiceType', 'Zone', 'PromotionType', 'PriceList', 'Section', 'SectionOption',
    'Product', 'ProductVariant', 'Combo', 'ComboItem', 'ComboItemOption',
    'Promotion', 'PromotionItem', 'money',
    'Restaurant', 'parse_geofence',
    'Cart', 'CartItem', 'CartStatus', 'CartSummary', 'CartValidation',
    'Order', 'OrderItem', 'OrderStatus', 'OrderStatusHistory', 'OrderReview',
    'PaymentMethod', 'CANCELLATION_REASONS',
    'Customer', 'CustomerType', 'CustomerAddress', 'CustomerNit', 'CustomerDevice',
    'Favorable', 'FavorableKind', 'Favorite', 'ProductView',
    'PointsSettings', 'PointsTransaction', 'PointsTransactionType', 'AppleWalletRegistration',
]
