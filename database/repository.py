"""
Database repository classes for catalog, restaurants, carts and orders
"""
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any, Tuple

from models.catalog import (
    PriceList, Product, ProductVariant, Section, SectionOption,
    Combo, ComboItem, ComboItemOption, Promotion, PromotionItem,
)
from models.restaurant import Restaurant, parse_geofence
from models.cart import Cart, CartItem, CartStatus
from models.order import Order, OrderItem, OrderStatusHistory, OrderReview
from .connection import DatabaseConnection
from .converters import (
    to_db_time, from_db_time, from_db_date, from_db_clock,
    to_db_money, from_db_money, to_db_json, from_db_json,
)


PRICE_COLUMNS = (
    "price_pickup_capital", "price_delivery_capital",
    "price_pickup_interior", "price_delivery_interior",
)


def _prices_from_row(row: sqlite3.Row) -> PriceList:
    return PriceList(
        pickup_capital=from_db_money(row["price_pickup_capital"]),
        delivery_capital=from_db_money(row["price_delivery_capital"]),
        pickup_interior=from_db_money(row["price_pickup_interior"]),
        delivery_interior=from_db_money(row["price_delivery_interior"]),
    )


def _prices_to_params(prices: Optional[PriceList]) -> Tuple:
    prices = prices or PriceList()
    return (
        to_db_money(prices.pickup_capital),
        to_db_money(prices.delivery_capital),
        to_db_money(prices.pickup_interior),
        to_db_money(prices.delivery_interior),
    )


class CatalogRepository:
    # Read access to products, combos and promotions, plus inserts used by seeding

    def __init__(self, db_connection: DatabaseConnection):
        # DatabaseConnection instance is injected
        self.db = db_connection

    def get_product(self, product_id: int) -> Optional[Product]:
        # Product with its option sections and variants
        with self.db.get_connection() as conn:
            row = conn.execute("""
            SELECT p.*, c.name AS category_name
            FROM products p LEFT JOIN categories c ON c.id = p.category_id
            WHERE p.id = ?
            """, (product_id,)).fetchone()
            if not row:
                return None

            product = self._product_from_row(row)
            product.variants = self._load_variants(conn, product_id)
            product.sections = self._load_sections(conn, product_id)
            return product

    def get_variant(self, variant_id: int) -> Optional[ProductVariant]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM product_variants WHERE id = ?", (variant_id,)).fetchone()
            return self._variant_from_row(row) if row else None

    def get_combo(self, combo_id: int) -> Optional[Combo]:
        # Combo with fixed items and choice groups, each flagged with product availability
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM combos WHERE id = ?", (combo_id,)).fetchone()
            if not row:
                return None

            combo = self._combo_from_row(row)
            item_rows = conn.execute("""
            SELECT ci.*, p.name AS product_name, p.is_active AS product_active
            FROM combo_items ci LEFT JOIN products p ON p.id = ci.product_id
            WHERE ci.combo_id = ?
            ORDER BY ci.sort_order, ci.id
            """, (combo_id,)).fetchall()

            for item_row in item_rows:
                item = ComboItem(
                    combo_item_id=item_row["id"],
                    combo_id=combo_id,
                    quantity=item_row["quantity"],
                    product_id=item_row["product_id"],
                    product_name=item_row["product_name"] or "",
                    variant_id=item_row["variant_id"],
                    product_active=bool(item_row["product_active"]) if item_row["product_id"] else True,
                    is_choice_group=bool(item_row["is_choice_group"]),
                    choice_label=item_row["choice_label"],
                )
                if item.is_choice_group:
                    option_rows = conn.execute("""
                    SELECT o.*, p.name AS product_name, p.is_active AS product_active
                    FROM combo_item_options o JOIN products p ON p.id = o.product_id
                    WHERE o.combo_item_id = ?
                    ORDER BY o.id
                    """, (item.combo_item_id,)).fetchall()
                    item.options = [
                        ComboItemOption(
                            option_id=option_row["id"],
                            combo_item_id=item.combo_item_id,
                            product_id=option_row["product_id"],
                            product_name=option_row["product_name"],
                            variant_id=option_row["variant_id"],
                            product_active=bool(option_row["product_active"]),
                        )
                        for option_row in option_rows
                    ]
                combo.items.append(item)

            return combo

    def get_active_promotions(self) -> List[Promotion]:
        # Newest first; date and time windows are checked by the service
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM promotions WHERE is_active = 1 ORDER BY created_at DESC, id DESC
            """).fetchall()
            return [self._promotion_with_items(conn, row) for row in rows]

    def get_promotion(self, promotion_id: int) -> Optional[Promotion]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM promotions WHERE id = ?", (promotion_id,)).fetchone()
            return self._promotion_with_items(conn, row) if row else None

    def get_redeemable_items(self) -> List[Dict[str, Any]]:
        # Products, variants and combos that can be bought with points
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT 'product' AS kind, id, name, points_cost, NULL AS product_id
            FROM products WHERE is_active = 1 AND is_redeemable = 1 AND points_cost IS NOT NULL
            UNION ALL
            SELECT 'variant', v.id, p.name || ' ' || v.name, v.points_cost, v.product_id
            FROM product_variants v JOIN products p ON p.id = v.product_id
            WHERE v.is_active = 1 AND p.is_active = 1 AND v.is_redeemable = 1 AND v.points_cost IS NOT NULL
            UNION ALL
            SELECT 'combo', id, name, points_cost, NULL
            FROM combos WHERE is_active = 1 AND is_redeemable = 1 AND points_cost IS NOT NULL
            """).fetchall()

            return [
                {
                    "type": row["kind"],
                    "id": row["id"],
                    "name": row["name"],
                    "points_cost": row["points_cost"],
                    "product_id": row["product_id"],
                }
                for row in rows
            ]

    def create_category(self, name: str) -> int:
        with self.db.transaction() as conn:
            return conn.execute("INSERT INTO categories (name) VALUES (?)", (name,)).lastrowid

    def create_product(self, name: str, prices: PriceList, category_id: Optional[int] = None,
                       description: Optional[str] = None, is_active: bool = True,
                       is_redeemable: bool = False, points_cost: Optional[int] = None) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute(f"""
            INSERT INTO products (category_id, name, description, is_active, {", ".join(PRICE_COLUMNS)},
                                  is_redeemable, points_cost)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (category_id, name, description, int(is_active), *_prices_to_params(prices),
                  int(is_redeemable), points_cost))
            return cursor.lastrowid

    def create_variant(self, product_id: int, name: str, prices: Optional[PriceList] = None,
                       is_active: bool = True, is_redeemable: bool = False,
                       points_cost: Optional[int] = None, sort_order: int = 0) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute(f"""
            INSERT INTO product_variants (product_id, name, is_active, {", ".join(PRICE_COLUMNS)},
                                          is_redeemable, points_cost, sort_order)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (product_id, name, int(is_active), *_prices_to_params(prices),
                  int(is_redeemable), points_cost, sort_order))
            return cursor.lastrowid

    def create_section(self, name: str, options: List[Tuple[str, Decimal]], is_required: bool = False,
                       min_selections: int = 0, max_selections: int = 1) -> Tuple[int, List[int]]:
        # Returns the section id and its option ids in insertion order
        with self.db.transaction() as conn:
            section_id = conn.execute("""
            INSERT INTO sections (name, is_required, min_selections, max_selections) VALUES (?, ?, ?, ?)
            """, (name, int(is_required), min_selections, max_selections)).lastrowid
            option_ids = []
            for option_name, modifier in options:
                option_ids.append(conn.execute("""
                INSERT INTO section_options (section_id, name, price_modifier) VALUES (?, ?, ?)
                """, (section_id, option_name, to_db_money(modifier))).lastrowid)
            return section_id, option_ids

    def attach_section(self, product_id: int, section_id: int, sort_order: int = 0):
        with self.db.transaction() as conn:
            conn.execute("""
            INSERT OR IGNORE INTO product_sections (product_id, section_id, sort_order) VALUES (?, ?, ?)
            """, (product_id, section_id, sort_order))

    def create_combo(self, name: str, prices: PriceList, description: Optional[str] = None,
                     is_active: bool = True, is_redeemable: bool = False,
                     points_cost: Optional[int] = None) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute(f"""
            INSERT INTO combos (name, description, is_active, {", ".join(PRICE_COLUMNS)},
                                is_redeemable, points_cost)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (name, description, int(is_active), *_prices_to_params(prices),
                  int(is_redeemable), points_cost))
            return cursor.lastrowid

    def add_combo_item(self, combo_id: int, product_id: Optional[int] = None, quantity: int = 1,
                       variant_id: Optional[int] = None, choice_label: Optional[str] = None,
                       option_product_ids: Optional[List[int]] = None, sort_order: int = 0) -> Tuple[int, List[int]]:
        # A non-empty option list turns the item into a choice group
        is_choice_group = bool(option_product_ids)
        with self.db.transaction() as conn:
            item_id = conn.execute("""
            INSERT INTO combo_items (combo_id, product_id, variant_id, quantity, is_choice_group, choice_label, sort_order)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (combo_id, None if is_choice_group else product_id, variant_id, quantity,
                  int(is_choice_group), choice_label, sort_order)).lastrowid
            option_ids = []
            for option_product_id in option_product_ids or []:
                option_ids.append(conn.execute("""
                INSERT INTO combo_item_options (combo_item_id, product_id) VALUES (?, ?)
                """, (item_id, option_product_id)).lastrowid)
            return item_id, option_ids

    def create_promotion(self, name: str, promotion_type: str, items: List[Dict[str, Any]],
                         created_at: datetime, is_active: bool = True,
                         valid_from: Optional[str] = None, valid_until: Optional[str] = None,
                         time_from: Optional[str] = None, time_until: Optional[str] = None,
                         weekdays: Optional[List[int]] = None) -> int:
        with self.db.transaction() as conn:
            promotion_id = conn.execute("""
            INSERT INTO promotions (name, type, is_active, valid_from, valid_until, time_from, time_until,
                                    weekdays, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (name, promotion_type, int(is_active), valid_from, valid_until, time_from, time_until,
                  to_db_json(weekdays), to_db_time(created_at))).lastrowid
            for item in items:
                conn.execute("""
                INSERT INTO promotion_items (promotion_id, product_id, variant_id, category_id, discount_percentage)
                VALUES (?, ?, ?, ?, ?)
                """, (promotion_id, item.get("product_id"), item.get("variant_id"), item.get("category_id"),
                      to_db_money(item.get("discount_percentage"))))
            return promotion_id

    def set_product_active(self, product_id: int, is_active: bool):
        with self.db.transaction() as conn:
            conn.execute("UPDATE products SET is_active = ? WHERE id = ?", (int(is_active), product_id))

    def set_promotion_active(self, promotion_id: int, is_active: bool):
        with self.db.transaction() as conn:
            conn.execute("UPDATE promotions SET is_active = ? WHERE id = ?", (int(is_active), promotion_id))

    def _product_from_row(self, row: sqlite3.Row) -> Product:
        return Product(
            product_id=row["id"],
            name=row["name"],
            category_id=row["category_id"],
            category_name=row["category_name"],
            description=row["description"],
            is_active=bool(row["is_active"]),
            prices=_prices_from_row(row),
            is_redeemable=bool(row["is_redeemable"]),
            points_cost=row["points_cost"],
        )

    def _variant_from_row(self, row: sqlite3.Row) -> ProductVariant:
        return ProductVariant(
            variant_id=row["id"],
            product_id=row["product_id"],
            name=row["name"],
            is_active=bool(row["is_active"]),
            prices=_prices_from_row(row),
            is_redeemable=bool(row["is_redeemable"]),
            points_cost=row["points_cost"],
        )

    def _combo_from_row(self, row: sqlite3.Row) -> Combo:
        return Combo(
            combo_id=row["id"],
            name=row["name"],
            description=row["description"],
            is_active=bool(row["is_active"]),
            prices=_prices_from_row(row),
            is_redeemable=bool(row["is_redeemable"]),
            points_cost=row["points_cost"],
        )

    def _load_variants(self, conn: sqlite3.Connection, product_id: int) -> List[ProductVariant]:
        rows = conn.execute("""
        SELECT * FROM product_variants WHERE product_id = ? ORDER BY sort_order, id
        """, (product_id,)).fetchall()
        return [self._variant_from_row(row) for row in rows]

    def _load_sections(self, conn: sqlite3.Connection, product_id: int) -> List[Section]:
        rows = conn.execute("""
        SELECT s.* FROM sections s
        JOIN product_sections ps ON ps.section_id = s.id
        WHERE ps.product_id = ?
        ORDER BY ps.sort_order, s.id
        """, (product_id,)).fetchall()

        sections = []
        for row in rows:
            option_rows = conn.execute("""
            SELECT * FROM section_options WHERE section_id = ? ORDER BY id
            """, (row["id"],)).fetchall()
            sections.append(Section(
                section_id=row["id"],
                name=row["name"],
                is_required=bool(row["is_required"]),
                min_selections=row["min_selections"],
                max_selections=row["max_selections"],
                options=[
                    SectionOption(
                        option_id=option_row["id"],
                        section_id=row["id"],
                        name=option_row["name"],
                        price_modifier=from_db_money(option_row["price_modifier"]),
                    )
                    for option_row in option_rows
                ],
            ))
        return sections

    def _promotion_with_items(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Promotion:
        item_rows = conn.execute("""
        SELECT * FROM promotion_items WHERE promotion_id = ? ORDER BY id
        """, (row["id"],)).fetchall()
        return Promotion(
            promotion_id=row["id"],
            name=row["name"],
            promotion_type=row["type"],
            is_active=bool(row["is_active"]),
            valid_from=from_db_date(row["valid_from"]),
            valid_until=from_db_date(row["valid_until"]),
            time_from=from_db_clock(row["time_from"]),
            time_until=from_db_clock(row["time_until"]),
            weekdays=from_db_json(row["weekdays"]),
            items=[
                PromotionItem(
                    item_id=item_row["id"],
                    promotion_id=row["id"],
                    product_id=item_row["product_id"],
                    variant_id=item_row["variant_id"],
                    category_id=item_row["category_id"],
                    discount_percentage=from_db_money(item_row["discount_percentage"]),
                )
                for item_row in item_rows
            ],
        )


class RestaurantRepository:
    # Restaurant lookups for delivery validation and checkout

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    def get_restaurant(self, restaurant_id: int) -> Optional[Restaurant]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM restaurants WHERE id = ?", (restaurant_id,)).fetchone()
            return self._from_row(row) if row else None

    def list_delivery_candidates(self) -> List[Restaurant]:
        # Active restaurants with delivery enabled and a geofence stored
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM restaurants
            WHERE is_active = 1 AND delivery_active = 1 AND geofence IS NOT NULL AND geofence != ''
            ORDER BY id
            """).fetchall()
            return [self._from_row(row) for row in rows]

    def list_pickup_locations(self) -> List[Restaurant]:
        # Active pickup restaurants that have coordinates
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM restaurants
            WHERE is_active = 1 AND pickup_active = 1 AND latitude IS NOT NULL AND longitude IS NOT NULL
            ORDER BY id
            """).fetchall()
            return [self._from_row(row) for row in rows]

    def create_restaurant(self, name: str, address: str = "", latitude: Optional[float] = None,
                          longitude: Optional[float] = None, geofence: Optional[str] = None,
                          price_location: str = "capital", is_active: bool = True,
                          delivery_active: bool = True, pickup_active: bool = True,
                          schedule: Optional[Dict[str, Any]] = None,
                          minimum_order_amount: Decimal = Decimal("0.00"),
                          estimated_pickup_time: int = 30, estimated_delivery_time: int = 45,
                          phone: Optional[str] = None) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute("""
            INSERT INTO restaurants (name, address, latitude, longitude, geofence, price_location, is_active,
                                     delivery_active, pickup_active, schedule, minimum_order_amount,
                                     estimated_pickup_time, estimated_delivery_time, phone)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (name, address, latitude, longitude, geofence, price_location, int(is_active),
                  int(delivery_active), int(pickup_active), to_db_json(schedule),
                  to_db_money(minimum_order_amount), estimated_pickup_time, estimated_delivery_time, phone))
            return cursor.lastrowid

    def _from_row(self, row: sqlite3.Row) -> Restaurant:
        return Restaurant(
            restaurant_id=row["id"],
            name=row["name"],
            address=row["address"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            geofence=parse_geofence(row["geofence"]),
            price_location=row["price_location"] or "capital",
            is_active=bool(row["is_active"]),
            delivery_active=bool(row["delivery_active"]),
            pickup_active=bool(row["pickup_active"]),
            schedule=from_db_json(row["schedule"]),
            minimum_order_amount=from_db_money(row["minimum_order_amount"]),
            estimated_pickup_time=row["estimated_pickup_time"],
            estimated_delivery_time=row["estimated_delivery_time"],
            phone=row["phone"],
        )


CART_ITEM_SELECT = """
SELECT ci.*,
       COALESCE(c.name, p.name || COALESCE(' ' || v.name, ''), '') AS display_name
FROM cart_items ci
LEFT JOIN products p ON p.id = ci.product_id
LEFT JOIN product_variants v ON v.id = ci.variant_id
LEFT JOIN combos c ON c.id = ci.combo_id
"""

CART_COLUMNS = ("restaurant_id", "service_type", "zone", "status", "delivery_address_id", "expires_at")


class CartRepository:
    # Cart data access layer (CRUD on carts and cart items)

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    def find_active_cart(self, customer_id: int, now: datetime) -> Optional[Cart]:
        # Active cart that has not expired yet, newest first
        with self.db.get_connection() as conn:
            row = conn.execute("""
            SELECT * FROM carts
            WHERE customer_id = ? AND status = ? AND (expires_at IS NULL OR expires_at > ?)
            ORDER BY id DESC LIMIT 1
            """, (customer_id, CartStatus.ACTIVE.value, to_db_time(now))).fetchone()
            if not row:
                return None
            return self._cart_with_items(conn, row)

    def get_cart(self, cart_id: int) -> Optional[Cart]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM carts WHERE id = ?", (cart_id,)).fetchone()
            return self._cart_with_items(conn, row) if row else None

    def create_cart(self, customer_id: int, expires_at: datetime, now: datetime) -> int:
        # Older active carts of this customer are abandoned first
        with self.db.transaction() as conn:
            conn.execute("""
            UPDATE carts SET status = ? WHERE customer_id = ? AND status = ?
            """, (CartStatus.ABANDONED.value, customer_id, CartStatus.ACTIVE.value))
            cursor = conn.execute("""
            INSERT INTO carts (customer_id, service_type, zone, status, expires_at, created_at)
            VALUES (?, 'pickup', 'capital', ?, ?, ?)
            """, (customer_id, CartStatus.ACTIVE.value, to_db_time(expires_at), to_db_time(now)))
            return cursor.lastrowid

    def update_cart(self, cart_id: int, fields: Dict[str, Any], conn: Optional[sqlite3.Connection] = None):
        # Only known cart columns may be updated
        unknown = set(fields) - set(CART_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown cart columns: {sorted(unknown)}")
        if not fields:
            return

        values = [to_db_time(value) if isinstance(value, datetime) else value for value in fields.values()]
        assignments = ", ".join(f"{column} = ?" for column in fields)
        with self.db.use(conn) as conn:
            conn.execute(f"UPDATE carts SET {assignments} WHERE id = ?", (*values, cart_id))

    def get_item(self, cart_item_id: int) -> Optional[CartItem]:
        with self.db.get_connection() as conn:
            row = conn.execute(CART_ITEM_SELECT + " WHERE ci.id = ?", (cart_item_id,)).fetchone()
            return self._item_from_row(row) if row else None

    def add_item(self, cart_id: int, quantity: int, unit_price: Decimal, subtotal: Decimal,
                 now: datetime, product_id: Optional[int] = None, variant_id: Optional[int] = None,
                 combo_id: Optional[int] = None, selected_options: Optional[List[Dict[str, Any]]] = None,
                 combo_selections: Optional[List[Dict[str, Any]]] = None, notes: Optional[str] = None) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute("""
            INSERT INTO cart_items (cart_id, product_id, variant_id, combo_id, quantity, unit_price, subtotal,
                                    selected_options, combo_selections, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (cart_id, product_id, variant_id, combo_id, quantity, to_db_money(unit_price),
                  to_db_money(subtotal), to_db_json(selected_options or []),
                  to_db_json(combo_selections or []), notes, to_db_time(now)))
            return cursor.lastrowid

    def update_item(self, cart_item_id: int, quantity: int, unit_price: Decimal, subtotal: Decimal,
                    selected_options: List[Dict[str, Any]], notes: Optional[str]):
        with self.db.transaction() as conn:
            conn.execute("""
            UPDATE cart_items SET quantity = ?, unit_price = ?, subtotal = ?, selected_options = ?, notes = ?
            WHERE id = ?
            """, (quantity, to_db_money(unit_price), to_db_money(subtotal), to_db_json(selected_options),
                  notes, cart_item_id))

    def update_item_price(self, cart_item_id: int, unit_price: Decimal, subtotal: Decimal,
                          conn: Optional[sqlite3.Connection] = None):
        with self.db.use(conn) as conn:
            conn.execute("""
            UPDATE cart_items SET unit_price = ?, subtotal = ? WHERE id = ?
            """, (to_db_money(unit_price), to_db_money(subtotal), cart_item_id))

    def delete_item(self, cart_item_id: int):
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM cart_items WHERE id = ?", (cart_item_id,))

    def clear_items(self, cart_id: int):
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM cart_items WHERE cart_id = ?", (cart_id,))

    def _cart_with_items(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Cart:
        cart = Cart(
            cart_id=row["id"],
            customer_id=row["customer_id"],
            service_type=row["service_type"],
            zone=row["zone"],
            status=row["status"],
            restaurant_id=row["restaurant_id"],
            delivery_address_id=row["delivery_address_id"],
            expires_at=from_db_time(row["expires_at"]),
            created_at=from_db_time(row["created_at"]),
        )
        item_rows = conn.execute(CART_ITEM_SELECT + " WHERE ci.cart_id = ? ORDER BY ci.id", (cart.cart_id,)).fetchall()
        cart.items = [self._item_from_row(item_row) for item_row in item_rows]
        return cart

    def _item_from_row(self, row: sqlite3.Row) -> CartItem:
        return CartItem(
            cart_item_id=row["id"],
            cart_id=row["cart_id"],
            quantity=row["quantity"],
            unit_price=from_db_money(row["unit_price"]),
            subtotal=from_db_money(row["subtotal"]),
            product_id=row["product_id"],
            variant_id=row["variant_id"],
            combo_id=row["combo_id"],
            selected_options=from_db_json(row["selected_options"], []),
            combo_selections=from_db_json(row["combo_selections"], []),
            notes=row["notes"],
            name=row["display_name"],
            created_at=from_db_time(row["created_at"]),
        )


ORDER_UPDATABLE_COLUMNS = (
    "status", "ready_at", "delivered_at", "points_earned", "cancellation_reason",
    "payment_status", "estimated_ready_at",
)


class OrderRepository:
    # Order data access layer

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    def count_orders_with_prefix(self, prefix: str, conn: Optional[sqlite3.Connection] = None) -> int:
        # Used to build sequential order numbers per restaurant and day
        with self.db.use(conn) as conn:
            row = conn.execute("""
            SELECT COUNT(*) FROM orders WHERE order_number LIKE ?
            """, (prefix + "%",)).fetchone()
            return row[0]

    def create_order(self, order: Order, conn: Optional[sqlite3.Connection] = None) -> int:
        # Insert the order header; the id of the passed model is ignored
        with self.db.use(conn) as conn:
            cursor = conn.execute("""
            INSERT INTO orders (order_number, customer_id, restaurant_id, service_type, zone,
                                delivery_address_id, delivery_address_snapshot, nit_id, nit_snapshot,
                                subtotal, discount_total, delivery_fee, points_redeemed, points_discount,
                                points_earned, total, status, payment_method, payment_status, estimated_ready_at,
                                scheduled_for, scheduled_pickup_time, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                order.order_number, order.customer_id, order.restaurant_id, order.service_type, order.zone,
                order.delivery_address_id, to_db_json(order.delivery_address_snapshot),
                order.nit_id, to_db_json(order.nit_snapshot),
                to_db_money(order.subtotal), to_db_money(order.discount_total), to_db_money(order.delivery_fee),
                order.points_redeemed, to_db_money(order.points_discount), order.points_earned,
                to_db_money(order.total),
                order.status, order.payment_method, order.payment_status, to_db_time(order.estimated_ready_at),
                to_db_time(order.scheduled_for), to_db_time(order.scheduled_pickup_time), order.notes,
                to_db_time(order.created_at),
            ))
            return cursor.lastrowid

    def add_item(self, order_id: int, item: OrderItem, conn: Optional[sqlite3.Connection] = None) -> int:
        with self.db.use(conn) as conn:
            cursor = conn.execute("""
            INSERT INTO order_items (order_id, product_id, variant_id, combo_id, product_snapshot, quantity,
                                     unit_price, subtotal, selected_options, combo_selections, notes,
                                     promotion_id, promotion_snapshot)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                order_id, item.product_id, item.variant_id, item.combo_id, to_db_json(item.product_snapshot),
                item.quantity, to_db_money(item.unit_price), to_db_money(item.subtotal),
                to_db_json(item.selected_options), to_db_json(item.combo_selections), item.notes,
                item.promotion_id, to_db_json(item.promotion_snapshot),
            ))
            return cursor.lastrowid

    def add_status_history(self, order_id: int, previous_status: Optional[str], new_status: str,
                           created_at: datetime, changed_by_type: str = "system",
                           changed_by_id: Optional[int] = None, notes: Optional[str] = None,
                           conn: Optional[sqlite3.Connection] = None) -> int:
        with self.db.use(conn) as conn:
            cursor = conn.execute("""
            INSERT INTO order_status_history (order_id, previous_status, new_status, changed_by_type,
                                              changed_by_id, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (order_id, previous_status, new_status, changed_by_type, changed_by_id, notes,
                  to_db_time(created_at)))
            return cursor.lastrowid

    def update_order(self, order_id: int, fields: Dict[str, Any], conn: Optional[sqlite3.Connection] = None):
        unknown = set(fields) - set(ORDER_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown order columns: {sorted(unknown)}")
        if not fields:
            return

        values = [to_db_time(value) if isinstance(value, datetime) else value for value in fields.values()]
        assignments = ", ".join(f"{column} = ?" for column in fields)
        with self.db.use(conn) as conn:
            conn.execute(f"UPDATE orders SET {assignments} WHERE id = ?", (*values, order_id))

    def get_order(self, order_id: int) -> Optional[Order]:
        # Order with items, status history and review
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
            return self._full_order(conn, row) if row else None

    def list_for_customer(self, customer_id: int, statuses: Optional[List[str]] = None,
                          limit: int = 15, offset: int = 0) -> Tuple[List[Order], int]:
        # Newest first, with the total count for pagination
        with self.db.get_connection() as conn:
            where = "WHERE customer_id = ?"
            params: List[Any] = [customer_id]
            if statuses:
                where += f" AND status IN ({', '.join('?' for _ in statuses)})"
                params.extend(statuses)

            total = conn.execute(f"SELECT COUNT(*) FROM orders {where}", params).fetchone()[0]
            rows = conn.execute(f"""
            SELECT * FROM orders {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?
            """, (*params, limit, offset)).fetchall()
            return [self._full_order(conn, row) for row in rows], total

    def add_review(self, review: OrderReview) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute("""
            INSERT INTO order_reviews (order_id, customer_id, overall_rating, food_quality_rating, speed_rating,
                                       service_rating, comment, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (review.order_id, review.customer_id, review.overall_rating, review.food_quality_rating,
                  review.speed_rating, review.service_rating, review.comment, to_db_time(review.created_at)))
            return cursor.lastrowid

    def _full_order(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Order:
        order = Order(
            order_id=row["id"],
            order_number=row["order_number"],
            customer_id=row["customer_id"],
            restaurant_id=row["restaurant_id"],
            service_type=row["service_type"],
            zone=row["zone"],
            subtotal=from_db_money(row["subtotal"]),
            discount_total=from_db_money(row["discount_total"]),
            total=from_db_money(row["total"]),
            status=row["status"],
            delivery_fee=from_db_money(row["delivery_fee"]),
            delivery_address_id=row["delivery_address_id"],
            delivery_address_snapshot=from_db_json(row["delivery_address_snapshot"]),
            nit_id=row["nit_id"],
            nit_snapshot=from_db_json(row["nit_snapshot"]),
            points_redeemed=row["points_redeemed"],
            points_discount=from_db_money(row["points_discount"]),
            points_earned=row["points_earned"],
            payment_method=row["payment_method"],
            payment_status=row["payment_status"],
            estimated_ready_at=from_db_time(row["estimated_ready_at"]),
            ready_at=from_db_time(row["ready_at"]),
            delivered_at=from_db_time(row["delivered_at"]),
            scheduled_for=from_db_time(row["scheduled_for"]),
            scheduled_pickup_time=from_db_time(row["scheduled_pickup_time"]),
            notes=row["notes"],
            cancellation_reason=row["cancellation_reason"],
            created_at=from_db_time(row["created_at"]),
        )

        for item_row in conn.execute("SELECT * FROM order_items WHERE order_id = ? ORDER BY id", (order.order_id,)):
            order.items.append(OrderItem(
                order_item_id=item_row["id"],
                order_id=order.order_id,
                quantity=item_row["quantity"],
                unit_price=from_db_money(item_row["unit_price"]),
                subtotal=from_db_money(item_row["subtotal"]),
                product_snapshot=from_db_json(item_row["product_snapshot"], {}),
                product_id=item_row["product_id"],
                variant_id=item_row["variant_id"],
                combo_id=item_row["combo_id"],
                selected_options=from_db_json(item_row["selected_options"], []),
                combo_selections=from_db_json(item_row["combo_selections"], []),
                notes=item_row["notes"],
                promotion_id=item_row["promotion_id"],
                promotion_snapshot=from_db_json(item_row["promotion_snapshot"]),
            ))

        for history_row in conn.execute("""
        SELECT * FROM order_status_history WHERE order_id = ? ORDER BY id
        """, (order.order_id,)):
            order.status_history.append(OrderStatusHistory(
                history_id=history_row["id"],
                order_id=order.order_id,
                previous_status=history_row["previous_status"],
                new_status=history_row["new_status"],
                changed_by_type=history_row["changed_by_type"],
                changed_by_id=history_row["changed_by_id"],
                notes=history_row["notes"],
                created_at=from_db_time(history_row["created_at"]),
            ))

        review_row = conn.execute("SELECT * FROM order_reviews WHERE order_id = ?", (order.order_id,)).fetchone()
        if review_row:
            order.review = OrderReview(
                review_id=review_row["id"],
                order_id=order.order_id,
                customer_id=review_row["customer_id"],
                overall_rating=review_row["overall_rating"],
                food_quality_rating=review_row["food_quality_rating"],
                speed_rating=review_row["speed_rating"],
                service_rating=review_row["service_rating"],
                comment=review_row["comment"],
                created_at=from_db_time(review_row["created_at"]),
            )

        return order
