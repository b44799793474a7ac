#!/usr/bin/env python3
"""
Database initialization script
Creates the schema and loads a small demo catalog, restaurants and customer.
"""
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any

from config import Settings
from core.ordering_platform import OrderingPlatform
from models.catalog import PriceList, PromotionType

WEEK = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# Zona 10, Guatemala City
CAPITAL_GEOFENCE = (
    "<coordinates>-90.5200,14.5900,0 -90.4900,14.5900,0 -90.4900,14.6200,0 "
    "-90.5200,14.6200,0 -90.5200,14.5900,0</coordinates>"
)
# Antigua Guatemala
INTERIOR_GEOFENCE = "[[14.54, -90.75], [14.54, -90.72], [14.58, -90.72], [14.58, -90.75]]"


def prices(pickup: str, delivery: str, interior_markup: str = "2.00") -> PriceList:
    markup = Decimal(interior_markup)
    return PriceList(
        pickup_capital=Decimal(pickup),
        delivery_capital=Decimal(delivery),
        pickup_interior=Decimal(pickup) + markup,
        delivery_interior=Decimal(delivery) + markup,
    )


def seed_demo(platform: OrderingPlatform) -> Dict[str, Any]:
    """Insert demo data and return the ids a client needs to try the API"""
    catalog = platform.catalog_repo
    now = platform.clock()
    schedule = {day: {"open": "07:00", "close": "22:00", "is_open": True} for day in WEEK}

    # Restaurants
    capital_id = platform.restaurant_repo.create_restaurant(
        "Zona 10", address="1a Avenida 13-45, Zona 10", latitude=14.6050, longitude=-90.5050,
        geofence=CAPITAL_GEOFENCE, price_location="capital", schedule=schedule,
        minimum_order_amount=Decimal("40.00"), phone="2222-1010",
    )
    interior_id = platform.restaurant_repo.create_restaurant(
        "Antigua", address="5a Avenida Norte 8, Antigua Guatemala", latitude=14.5586, longitude=-90.7339,
        geofence=INTERIOR_GEOFENCE, price_location="interior", schedule=schedule,
        minimum_order_amount=Decimal("40.00"), phone="7832-2020",
    )

    # Catalog
    subs_id = catalog.create_category("Subs")
    drinks_id = catalog.create_category("Bebidas")
    sides_id = catalog.create_category("Complementos")

    sub_id = catalog.create_product("Sub de Pollo", prices("35.00", "38.00"), category_id=subs_id,
                                    description="Pechuga de pollo a la parrilla")
    catalog.create_variant(sub_id, "15 cm", prices("35.00", "38.00"), is_redeemable=True, points_cost=60)
    catalog.create_variant(sub_id, "30 cm", prices("55.00", "58.00"), is_redeemable=True, points_cost=95,
                           sort_order=1)
    bread_id, _ = catalog.create_section("Pan", [("Blanco", Decimal("0.00")), ("Integral", Decimal("0.00")),
                                                 ("Orégano y parmesano", Decimal("3.00"))],
                                         is_required=True, min_selections=1, max_selections=1)
    extras_id, _ = catalog.create_section("Extras", [("Queso extra", Decimal("6.00")),
                                                     ("Tocino", Decimal("8.00"))],
                                          max_selections=2)
    catalog.attach_section(sub_id, bread_id)
    catalog.attach_section(sub_id, extras_id, sort_order=1)

    soda_id = catalog.create_product("Gaseosa", prices("12.00", "14.00"), category_id=drinks_id,
                                     is_redeemable=True, points_cost=20)
    water_id = catalog.create_product("Agua pura", prices("8.00", "10.00"), category_id=drinks_id)
    cookie_id = catalog.create_product("Galleta", prices("7.00", "8.00"), category_id=sides_id,
                                       is_redeemable=True, points_cost=12)

    combo_id = catalog.create_combo("Combo Sub de Pollo", prices("49.00", "54.00"),
                                    description="Sub de pollo 15 cm, bebida y galleta")
    catalog.add_combo_item(combo_id, product_id=sub_id)
    catalog.add_combo_item(combo_id, choice_label="Bebida", option_product_ids=[soda_id, water_id], sort_order=1)
    catalog.add_combo_item(combo_id, product_id=cookie_id, sort_order=2)

    catalog.create_promotion("Galletas 2x1", PromotionType.TWO_FOR_ONE.value,
                             [{"product_id": cookie_id}], created_at=now)
    catalog.create_promotion("Bebidas 15%", PromotionType.PERCENTAGE_DISCOUNT.value,
                             [{"category_id": drinks_id, "discount_percentage": Decimal("15")}], created_at=now)

    # Loyalty tiers and a demo customer
    customers = platform.customer_repo
    regular_id = customers.create_customer_type("Regular", 0, Decimal("1.00"), color="#008938")
    customers.create_customer_type("Oro", 500, Decimal("1.25"), color="#F2B700")
    customers.create_customer_type("Platino", 1500, Decimal("1.50"), color="#9CA3AF")

    api_token = secrets.token_hex(20)
    customer_id = customers.create_customer("Cliente Demo", "demo@example.com", now, phone="5555-0000",
                                            api_token=api_token, loyalty_card="8000123412341234",
                                            customer_type_id=regular_id)
    platform.points_service.add_adjustment(customer_id, 150, "Puntos de bienvenida", transaction_type="bonus")

    return {
        "restaurants": [capital_id, interior_id],
        "products": [sub_id, soda_id, water_id, cookie_id],
        "combos": [combo_id],
        "customer_id": customer_id,
        "api_token": api_token,
    }


if __name__ == "__main__":
    print("=== Database initialization ===")
    settings = Settings.from_env()
    platform = OrderingPlatform(settings, datetime.now)
    result = seed_demo(platform)
    print(f"Database ready at {settings.database_path}")
    print(f"Demo customer #{result['customer_id']} token: {result['api_token']}")
