"""
Database connection management
"""
import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional


SCHEMA = '''
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category_id INTEGER REFERENCES categories(id),
    name TEXT NOT NULL,
    description TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    price_pickup_capital TEXT,
    price_delivery_capital TEXT,
    price_pickup_interior TEXT,
    price_delivery_interior TEXT,
    is_redeemable INTEGER NOT NULL DEFAULT 0,
    points_cost INTEGER
);

CREATE TABLE IF NOT EXISTS product_variants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL REFERENCES products(id),
    name TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    price_pickup_capital TEXT,
    price_delivery_capital TEXT,
    price_pickup_interior TEXT,
    price_delivery_interior TEXT,
    is_redeemable INTEGER NOT NULL DEFAULT 0,
    points_cost INTEGER,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS sections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    is_required INTEGER NOT NULL DEFAULT 0,
    min_selections INTEGER NOT NULL DEFAULT 0,
    max_selections INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS section_options (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    section_id INTEGER NOT NULL REFERENCES sections(id),
    name TEXT NOT NULL,
    price_modifier TEXT NOT NULL DEFAULT '0.00'
);

CREATE TABLE IF NOT EXISTS product_sections (
    product_id INTEGER NOT NULL REFERENCES products(id),
    section_id INTEGER NOT NULL REFERENCES sections(id),
    sort_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (product_id, section_id)
);

CREATE TABLE IF NOT EXISTS combos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    price_pickup_capital TEXT,
    price_delivery_capital TEXT,
    price_pickup_interior TEXT,
    price_delivery_interior TEXT,
    is_redeemable INTEGER NOT NULL DEFAULT 0,
    points_cost INTEGER
);

CREATE TABLE IF NOT EXISTS combo_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    combo_id INTEGER NOT NULL REFERENCES combos(id),
    product_id INTEGER REFERENCES products(id),
    variant_id INTEGER REFERENCES product_variants(id),
    quantity INTEGER NOT NULL DEFAULT 1,
    is_choice_group INTEGER NOT NULL DEFAULT 0,
    choice_label TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS combo_item_options (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    combo_item_id INTEGER NOT NULL REFERENCES combo_items(id),
    product_id INTEGER NOT NULL REFERENCES products(id),
    variant_id INTEGER REFERENCES product_variants(id)
);

CREATE TABLE IF NOT EXISTS promotions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    valid_from TEXT,
    valid_until TEXT,
    time_from TEXT,
    time_until TEXT,
    weekdays TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS promotion_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    promotion_id INTEGER NOT NULL REFERENCES promotions(id),
    product_id INTEGER REFERENCES products(id),
    variant_id INTEGER REFERENCES product_variants(id),
    category_id INTEGER REFERENCES categories(id),
    discount_percentage TEXT
);

CREATE TABLE IF NOT EXISTS restaurants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    address TEXT NOT NULL DEFAULT '',
    latitude REAL,
    longitude REAL,
    geofence TEXT,
    price_location TEXT NOT NULL DEFAULT 'capital',
    is_active INTEGER NOT NULL DEFAULT 1,
    delivery_active INTEGER NOT NULL DEFAULT 1,
    pickup_active INTEGER NOT NULL DEFAULT 1,
    schedule TEXT,
    minimum_order_amount TEXT NOT NULL DEFAULT '0.00',
    estimated_pickup_time INTEGER NOT NULL DEFAULT 30,
    estimated_delivery_time INTEGER NOT NULL DEFAULT 45,
    phone TEXT
);

CREATE TABLE IF NOT EXISTS customer_types (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    min_points INTEGER NOT NULL DEFAULT 0,
    multiplier TEXT NOT NULL DEFAULT '1.00',
    color TEXT
);

CREATE TABLE IF NOT EXISTS customers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    phone TEXT,
    api_token TEXT UNIQUE,
    loyalty_card TEXT,
    points INTEGER NOT NULL DEFAULT 0,
    points_updated_at TEXT,
    points_last_activity_at TEXT,
    customer_type_id INTEGER REFERENCES customer_types(id),
    last_purchase_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS customer_addresses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    label TEXT NOT NULL,
    address_line TEXT NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    delivery_notes TEXT,
    zone TEXT NOT NULL DEFAULT 'capital',
    is_default INTEGER NOT NULL DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS customer_nits (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    nit TEXT NOT NULL,
    name TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS customer_devices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    fcm_token TEXT NOT NULL,
    device_identifier TEXT,
    device_name TEXT,
    device_type TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    login_count INTEGER NOT NULL DEFAULT 0,
    last_used_at TEXT
);

CREATE TABLE IF NOT EXISTS favorites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    favorable_type TEXT NOT NULL,
    favorable_id INTEGER NOT NULL,
    created_at TEXT,
    UNIQUE (customer_id, favorable_type, favorable_id)
);

CREATE TABLE IF NOT EXISTS product_views (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    viewable_type TEXT NOT NULL,
    viewable_id INTEGER NOT NULL,
    viewed_at TEXT NOT NULL,
    UNIQUE (customer_id, viewable_type, viewable_id)
);

CREATE TABLE IF NOT EXISTS carts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    restaurant_id INTEGER REFERENCES restaurants(id),
    service_type TEXT NOT NULL DEFAULT 'pickup',
    zone TEXT NOT NULL DEFAULT 'capital',
    status TEXT NOT NULL DEFAULT 'active',
    delivery_address_id INTEGER REFERENCES customer_addresses(id),
    expires_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS cart_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    cart_id INTEGER NOT NULL REFERENCES carts(id),
    product_id INTEGER REFERENCES products(id),
    variant_id INTEGER REFERENCES product_variants(id),
    combo_id INTEGER REFERENCES combos(id),
    quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity >= 1),
    unit_price TEXT NOT NULL,
    subtotal TEXT NOT NULL,
    selected_options TEXT,
    combo_selections TEXT,
    notes TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_number TEXT NOT NULL UNIQUE,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    restaurant_id INTEGER NOT NULL REFERENCES restaurants(id),
    service_type TEXT NOT NULL,
    zone TEXT NOT NULL,
    delivery_address_id INTEGER,
    delivery_address_snapshot TEXT,
    nit_id INTEGER,
    nit_snapshot TEXT,
    subtotal TEXT NOT NULL,
    discount_total TEXT NOT NULL DEFAULT '0.00',
    delivery_fee TEXT NOT NULL DEFAULT '0.00',
    points_redeemed INTEGER NOT NULL DEFAULT 0,
    points_discount TEXT NOT NULL DEFAULT '0.00',
    total TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    payment_method TEXT NOT NULL DEFAULT 'cash',
    payment_status TEXT NOT NULL DEFAULT 'pending',
    estimated_ready_at TEXT,
    ready_at TEXT,
    delivered_at TEXT,
    scheduled_for TEXT,
    scheduled_pickup_time TEXT,
    points_earned INTEGER NOT NULL DEFAULT 0,
    notes TEXT,
    cancellation_reason TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS order_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL REFERENCES orders(id),
    product_id INTEGER,
    variant_id INTEGER,
    combo_id INTEGER,
    product_snapshot TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    unit_price TEXT NOT NULL,
    subtotal TEXT NOT NULL,
    selected_options TEXT,
    combo_selections TEXT,
    notes TEXT,
    promotion_id INTEGER,
    promotion_snapshot TEXT
);

CREATE TABLE IF NOT EXISTS order_status_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL REFERENCES orders(id),
    previous_status TEXT,
    new_status TEXT NOT NULL,
    changed_by_type TEXT NOT NULL DEFAULT 'system',
    changed_by_id INTEGER,
    notes TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS order_reviews (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL UNIQUE REFERENCES orders(id),
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    overall_rating INTEGER NOT NULL CHECK (overall_rating BETWEEN 1 AND 5),
    food_quality_rating INTEGER,
    speed_rating INTEGER,
    service_rating INTEGER,
    comment TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS points_settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    quetzales_per_point TEXT NOT NULL DEFAULT '10',
    rounding_threshold TEXT NOT NULL DEFAULT '0.70',
    expiration_months INTEGER NOT NULL DEFAULT 6,
    point_value TEXT NOT NULL DEFAULT '0.10'
);

CREATE TABLE IF NOT EXISTS customer_points_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    points INTEGER NOT NULL,
    type TEXT NOT NULL,
    reference_type TEXT,
    reference_id INTEGER,
    description TEXT,
    expires_at TEXT,
    is_expired INTEGER NOT NULL DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS apple_wallet_registrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_library_identifier TEXT NOT NULL,
    push_token TEXT NOT NULL,
    pass_type_identifier TEXT NOT NULL,
    serial_number TEXT NOT NULL,
    customer_id INTEGER NOT NULL REFERENCES customers(id),
    created_at TEXT,
    updated_at TEXT,
    UNIQUE (device_library_identifier, pass_type_identifier, serial_number)
);

CREATE INDEX IF NOT EXISTS idx_carts_customer_status ON carts(customer_id, status);
CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id, created_at);
CREATE INDEX IF NOT EXISTS idx_points_customer ON customer_points_transactions(customer_id);
'''


class DatabaseConnection:
    # Owns the sqlite file and hands out connections

    def __init__(self, db_path: str = "ordering.db"):
        # Set the database file path and make sure the schema exists
        self.db_path = db_path
        self.init_database()

    def init_database(self):
        # Create every table, then the single points settings row
        with self.get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.execute("INSERT OR IGNORE INTO points_settings (id) VALUES (1)")
            conn.commit()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        # Context manager closes the connection automatically
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        # Commit on success, roll back everything on any exception
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    @contextmanager
    def use(self, conn: Optional[sqlite3.Connection] = None) -> Generator[sqlite3.Connection, None, None]:
        # Join the caller's transaction when one is passed in
        if conn is not None:
            yield conn
            return
        with self.transaction() as own:
            yield own
