"""
Database package for the ordering platform
Contains database connection and repository classes
"""

from .connection import DatabaseConnection
from .repository import CatalogRepository, RestaurantRepository, CartRepository, OrderRepository
from .customer_repository import CustomerRepository
from .loyalty_repository import PointsRepository, WalletRegistrationRepository

__all__ = [
    'DatabaseConnection',
    'CatalogRepository', 'RestaurantRepository', 'CartRepository', 'OrderRepository',
    'CustomerRepository',
    'PointsRepository', 'WalletRegistrationRepository',
]
