"""
Shared fixtures for the test suite
"""
import os
import tempfile
import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from config import Settings
from core.ordering_platform import OrderingPlatform
from models.catalog import PriceList

WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# Square around Guatemala City's Zona 10, written as KML
CAPITAL_GEOFENCE = (
    "<coordinates>-90.5200,14.5900,0 -90.4900,14.5900,0 -90.4900,14.6200,0 "
    "-90.5200,14.6200,0</coordinates>"
)
INSIDE_CAPITAL = (14.6050, -90.5050)
OUTSIDE_EVERYTHING = (15.4700, -90.3700)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def price_list(pickup: str, delivery: str = None, interior: str = None) -> PriceList:
    delivery = delivery or pickup
    return PriceList(
        pickup_capital=Decimal(pickup),
        delivery_capital=Decimal(delivery),
        pickup_interior=Decimal(interior or pickup),
        delivery_interior=Decimal(interior or delivery),
    )


class PlatformTestCase(unittest.TestCase):
    """Fresh temporary database and platform for every test"""

    # Wednesday, inside opening hours
    start = datetime(2026, 3, 4, 12, 0, 0)

    def setUp(self):
        """Set up test database"""
        self.test_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        self.test_db.close()
        self.clock = FakeClock(self.start)
        self.settings = self.make_settings()
        self.platform = OrderingPlatform(self.settings, self.clock)

    def tearDown(self):
        """Clean up test database"""
        os.unlink(self.test_db.name)

    def make_settings(self) -> Settings:
        return Settings(database_path=self.test_db.name, secret_key="test-secret")

    # ---- builders ----

    def make_restaurant(self, name="Zona 10", geofence=CAPITAL_GEOFENCE, latitude=INSIDE_CAPITAL[0],
                        longitude=INSIDE_CAPITAL[1], price_location="capital",
                        minimum_order_amount="0.00", **kwargs) -> int:
        kwargs.setdefault("schedule", {day: {"open": "07:00", "close": "22:00", "is_open": True} for day in WEEK})
        return self.platform.restaurant_repo.create_restaurant(
            name, address=f"{name} address", latitude=latitude, longitude=longitude, geofence=geofence,
            price_location=price_location, minimum_order_amount=Decimal(minimum_order_amount), **kwargs)

    def make_product(self, name="Sub de Pollo", pickup="35.00", delivery=None, interior=None,
                     category_id=None, **kwargs) -> int:
        return self.platform.catalog_repo.create_product(
            name, price_list(pickup, delivery, interior), category_id=category_id, **kwargs)

    def make_customer(self, name="Ana López", email="ana@example.com", api_token="token-ana",
                      loyalty_card="8000123412341234", **kwargs) -> int:
        return self.platform.customer_repo.create_customer(
            name, email, self.clock(), api_token=api_token, loyalty_card=loyalty_card, **kwargs)

    def make_address(self, customer_id: int, location=INSIDE_CAPITAL, label="Casa") -> int:
        address = self.platform.customer_service.create_address(customer_id, {
            "label": label,
            "address_line": "12 Calle 1-25, Zona 10",
            "latitude": location[0],
            "longitude": location[1],
        })
        return address.address_id

    def cart_for(self, customer_id: int):
        return self.platform.cart_service.get_or_create_cart(customer_id)
