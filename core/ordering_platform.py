"""
OrderingPlatform - builds repositories and services around one database
"""
from datetime import datetime
from typing import Callable, Optional

import structlog

from config import Settings
from database.connection import DatabaseConnection
from database.repository import CatalogRepository, RestaurantRepository, CartRepository, OrderRepository
from database.customer_repository import CustomerRepository
from database.loyalty_repository import PointsRepository, WalletRegistrationRepository
from services.product_service import ProductService
from services.promotion_service import PromotionService
from services.cart_service import CartService
from services.delivery_validation_service import DeliveryValidationService
from services.points_service import PointsService
from services.order_service import OrderService
from services.customer_service import CustomerService
from services.wallet import AppleWalletService, GoogleWalletService, SignedUrlSigner

logger = structlog.get_logger(__name__)


class OrderingPlatform:
    # Central object the API and CLI talk to

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], datetime] = datetime.now):
        self.settings = settings or Settings()
        self.clock = clock

        # Database
        self.db_connection = DatabaseConnection(self.settings.database_path)

        # Repositories (data access layer)
        self.catalog_repo = CatalogRepository(self.db_connection)
        self.restaurant_repo = RestaurantRepository(self.db_connection)
        self.cart_repo = CartRepository(self.db_connection)
        self.order_repo = OrderRepository(self.db_connection)
        self.customer_repo = CustomerRepository(self.db_connection)
        self.points_repo = PointsRepository(self.db_connection)
        self.registration_repo = WalletRegistrationRepository(self.db_connection)

        # Services (business logic layer)
        self.product_service = ProductService(self.catalog_repo)
        self.promotion_service = PromotionService(self.catalog_repo, clock)
        self.delivery_validation = DeliveryValidationService(self.restaurant_repo)
        self.cart_service = CartService(self.cart_repo, self.restaurant_repo, self.product_service,
                                        self.promotion_service, self.settings.delivery_fee,
                                        self.settings.cart_ttl_days, clock)
        self.points_service = PointsService(self.db_connection, self.points_repo, self.customer_repo,
                                            self.catalog_repo, clock)
        self.order_service = OrderService(self.db_connection, self.order_repo, self.cart_repo,
                                          self.restaurant_repo, self.customer_repo, self.cart_service,
                                          self.product_service, self.promotion_service, self.points_service,
                                          self.delivery_validation, clock)
        self.customer_service = CustomerService(self.customer_repo, self.catalog_repo,
                                                self.delivery_validation, clock)

        # Wallet pass issuers
        self.apple_wallet = AppleWalletService(self.settings.apple_wallet, self.customer_repo,
                                               self.registration_repo, clock)
        self.google_wallet = GoogleWalletService(self.settings.google_wallet)
        self.signed_urls = SignedUrlSigner(self.settings.secret_key, self.settings.signed_url_minutes)

        # Devices pull updated Apple passes on their own; Google objects are pushed
        if self.settings.google_wallet.issuer_id:
            self.points_service.wallet_listeners.append(self.google_wallet.update_customer_object)

    def init_database(self):
        self.db_connection.init_database()
        logger.info("database_initialized", path=self.settings.database_path)
