"""
Customer repository: profile, tiers, addresses, NITs, devices, favorites and product views
"""
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any

from models.customer import (
    Customer, CustomerType, CustomerAddress, CustomerNit, CustomerDevice,
    Favorable, Favorite, ProductView,
)
from .connection import DatabaseConnection
from .converters import to_db_time, from_db_time


CUSTOMER_COLUMNS = (
    "name", "email", "phone", "loyalty_card", "points", "points_updated_at",
    "points_last_activity_at", "customer_type_id", "last_purchase_at",
)

ADDRESS_COLUMNS = ("label", "address_line", "latitude", "longitude", "delivery_notes", "zone")
NIT_COLUMNS = ("nit", "name")


def _assignments(fields: Dict[str, Any], allowed) -> tuple:
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown columns: {sorted(unknown)}")
    values = [to_db_time(value) if isinstance(value, datetime) else value for value in fields.values()]
    return ", ".join(f"{column} = ?" for column in fields), values


class CustomerRepository:
    # Customer data access layer

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    # ---- customers and tiers ----

    def get_customer(self, customer_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Customer]:
        with self.db.use(conn) as conn:
            row = conn.execute("""
            SELECT c.*, t.name AS type_name, t.min_points AS type_min_points,
                   t.multiplier AS type_multiplier, t.color AS type_color
            FROM customers c LEFT JOIN customer_types t ON t.id = c.customer_type_id
            WHERE c.id = ?
            """, (customer_id,)).fetchone()
            return self._customer_from_row(row) if row else None

    def find_by_token(self, api_token: str) -> Optional[Customer]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT id FROM customers WHERE api_token = ?", (api_token,)).fetchone()
        return self.get_customer(row["id"]) if row else None

    def create_customer(self, name: str, email: str, now: datetime, phone: Optional[str] = None,
                        api_token: Optional[str] = None, loyalty_card: Optional[str] = None,
                        customer_type_id: Optional[int] = None) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute("""
            INSERT INTO customers (name, email, phone, api_token, loyalty_card, customer_type_id,
                                   points_last_activity_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (name, email, phone, api_token, loyalty_card, customer_type_id, to_db_time(now), to_db_time(now)))
            return cursor.lastrowid

    def update_customer(self, customer_id: int, fields: Dict[str, Any],
                        conn: Optional[sqlite3.Connection] = None):
        if not fields:
            return
        assignments, values = _assignments(fields, CUSTOMER_COLUMNS)
        with self.db.use(conn) as conn:
            conn.execute(f"UPDATE customers SET {assignments} WHERE id = ?", (*values, customer_id))

    def list_customer_types(self) -> List[CustomerType]:
        # Highest threshold first
        with self.db.get_connection() as conn:
            rows = conn.execute("SELECT * FROM customer_types ORDER BY min_points DESC, id").fetchall()
            return [
                CustomerType(
                    type_id=row["id"],
                    name=row["name"],
                    min_points=row["min_points"],
                    multiplier=Decimal(row["multiplier"]),
                    color=row["color"],
                )
                for row in rows
            ]

    def create_customer_type(self, name: str, min_points: int, multiplier: Decimal,
                             color: Optional[str] = None) -> int:
        with self.db.transaction() as conn:
            return conn.execute("""
            INSERT INTO customer_types (name, min_points, multiplier, color) VALUES (?, ?, ?, ?)
            """, (name, min_points, str(multiplier), color)).lastrowid

    def list_inactive_with_points(self, cutoff: datetime) -> List[Customer]:
        # Customers holding points whose last activity is older than the cutoff
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT id FROM customers
            WHERE points > 0 AND (points_last_activity_at IS NULL OR points_last_activity_at < ?)
            ORDER BY id
            """, (to_db_time(cutoff),)).fetchall()
        return [self.get_customer(row["id"]) for row in rows]

    # ---- addresses ----

    def list_addresses(self, customer_id: int) -> List[CustomerAddress]:
        # Default address first, then newest
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM customer_addresses WHERE customer_id = ?
            ORDER BY is_default DESC, created_at DESC, id DESC
            """, (customer_id,)).fetchall()
            return [self._address_from_row(row) for row in rows]

    def get_address(self, address_id: int) -> Optional[CustomerAddress]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM customer_addresses WHERE id = ?", (address_id,)).fetchone()
            return self._address_from_row(row) if row else None

    def create_address(self, customer_id: int, label: str, address_line: str, latitude: float,
                       longitude: float, zone: str, now: datetime, delivery_notes: Optional[str] = None,
                       is_default: bool = False) -> int:
        with self.db.transaction() as conn:
            if is_default:
                self._clear_default(conn, "customer_addresses", customer_id)
            cursor = conn.execute("""
            INSERT INTO customer_addresses (customer_id, label, address_line, latitude, longitude,
                                            delivery_notes, zone, is_default, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (customer_id, label, address_line, latitude, longitude, delivery_notes, zone,
                  int(is_default), to_db_time(now)))
            return cursor.lastrowid

    def update_address(self, address_id: int, fields: Dict[str, Any]):
        if not fields:
            return
        assignments, values = _assignments(fields, ADDRESS_COLUMNS)
        with self.db.transaction() as conn:
            conn.execute(f"UPDATE customer_addresses SET {assignments} WHERE id = ?", (*values, address_id))

    def delete_address(self, address_id: int):
        with self.db.transaction() as conn:
            conn.execute("UPDATE carts SET delivery_address_id = NULL WHERE delivery_address_id = ?", (address_id,))
            conn.execute("DELETE FROM customer_addresses WHERE id = ?", (address_id,))

    def set_default_address(self, customer_id: int, address_id: int):
        # Clearing and setting run in one transaction
        with self.db.transaction() as conn:
            self._clear_default(conn, "customer_addresses", customer_id)
            conn.execute("UPDATE customer_addresses SET is_default = 1 WHERE id = ? AND customer_id = ?",
                         (address_id, customer_id))

    # ---- NITs ----

    def list_nits(self, customer_id: int) -> List[CustomerNit]:
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM customer_nits WHERE customer_id = ?
            ORDER BY is_default DESC, created_at DESC, id DESC
            """, (customer_id,)).fetchall()
            return [self._nit_from_row(row) for row in rows]

    def get_nit(self, nit_id: int) -> Optional[CustomerNit]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM customer_nits WHERE id = ?", (nit_id,)).fetchone()
            return self._nit_from_row(row) if row else None

    def create_nit(self, customer_id: int, nit: str, now: datetime, name: Optional[str] = None,
                   is_default: bool = False) -> int:
        with self.db.transaction() as conn:
            if is_default:
                self._clear_default(conn, "customer_nits", customer_id)
            return conn.execute("""
            INSERT INTO customer_nits (customer_id, nit, name, is_default, created_at) VALUES (?, ?, ?, ?, ?)
            """, (customer_id, nit, name, int(is_default), to_db_time(now))).lastrowid

    def update_nit(self, nit_id: int, fields: Dict[str, Any]):
        if not fields:
            return
        assignments, values = _assignments(fields, NIT_COLUMNS)
        with self.db.transaction() as conn:
            conn.execute(f"UPDATE customer_nits SET {assignments} WHERE id = ?", (*values, nit_id))

    def delete_nit(self, nit_id: int):
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM customer_nits WHERE id = ?", (nit_id,))

    def set_default_nit(self, customer_id: int, nit_id: int):
        with self.db.transaction() as conn:
            self._clear_default(conn, "customer_nits", customer_id)
            conn.execute("UPDATE customer_nits SET is_default = 1 WHERE id = ? AND customer_id = ?",
                         (nit_id, customer_id))

    # ---- devices ----

    def list_active_devices(self, customer_id: int) -> List[CustomerDevice]:
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM customer_devices WHERE customer_id = ? AND is_active = 1
            ORDER BY last_used_at DESC, id DESC
            """, (customer_id,)).fetchall()
            return [self._device_from_row(row) for row in rows]

    def get_device(self, device_id: int) -> Optional[CustomerDevice]:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM customer_devices WHERE id = ?", (device_id,)).fetchone()
            return self._device_from_row(row) if row else None

    def find_device(self, customer_id: int, device_identifier: Optional[str],
                    fcm_token: str) -> Optional[CustomerDevice]:
        # Match on device identifier first, then on the push token
        with self.db.get_connection() as conn:
            row = None
            if device_identifier:
                row = conn.execute("""
                SELECT * FROM customer_devices WHERE customer_id = ? AND device_identifier = ?
                """, (customer_id, device_identifier)).fetchone()
            if row is None:
                row = conn.execute("""
                SELECT * FROM customer_devices WHERE customer_id = ? AND fcm_token = ?
                """, (customer_id, fcm_token)).fetchone()
            return self._device_from_row(row) if row else None

    def create_device(self, customer_id: int, fcm_token: str, now: datetime,
                      device_identifier: Optional[str] = None, device_name: Optional[str] = None,
                      device_type: Optional[str] = None) -> int:
        with self.db.transaction() as conn:
            return conn.execute("""
            INSERT INTO customer_devices (customer_id, fcm_token, device_identifier, device_name, device_type,
                                          is_active, login_count, last_used_at)
            VALUES (?, ?, ?, ?, ?, 1, 1, ?)
            """, (customer_id, fcm_token, device_identifier, device_name, device_type, to_db_time(now))).lastrowid

    def touch_device(self, device_id: int, fcm_token: str, now: datetime,
                     device_identifier: Optional[str] = None, device_name: Optional[str] = None,
                     device_type: Optional[str] = None):
        # Reactivate, refresh the token and count the login
        with self.db.transaction() as conn:
            conn.execute("""
            UPDATE customer_devices
            SET fcm_token = ?, device_identifier = COALESCE(?, device_identifier),
                device_name = COALESCE(?, device_name), device_type = COALESCE(?, device_type),
                is_active = 1, login_count = login_count + 1, last_used_at = ?
            WHERE id = ?
            """, (fcm_token, device_identifier, device_name, device_type, to_db_time(now), device_id))

    def deactivate_device(self, device_id: int):
        with self.db.transaction() as conn:
            conn.execute("UPDATE customer_devices SET is_active = 0 WHERE id = ?", (device_id,))

    # ---- favorites and views ----

    def list_favorites(self, customer_id: int) -> List[Favorite]:
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT f.*, COALESCE(p.name, c.name) AS display_name
            FROM favorites f
            LEFT JOIN products p ON f.favorable_type = 'product' AND p.id = f.favorable_id
            LEFT JOIN combos c ON f.favorable_type = 'combo' AND c.id = f.favorable_id
            WHERE f.customer_id = ?
            ORDER BY f.created_at DESC, f.id DESC
            """, (customer_id,)).fetchall()
            return [
                Favorite(
                    favorite_id=row["id"],
                    customer_id=customer_id,
                    favorable=Favorable.parse(row["favorable_type"], row["favorable_id"]),
                    name=row["display_name"],
                    created_at=from_db_time(row["created_at"]),
                )
                for row in rows
            ]

    def add_favorite(self, customer_id: int, favorable: Favorable, now: datetime) -> int:
        # Adding an existing favorite returns the stored row
        with self.db.transaction() as conn:
            conn.execute("""
            INSERT OR IGNORE INTO favorites (customer_id, favorable_type, favorable_id, created_at)
            VALUES (?, ?, ?, ?)
            """, (customer_id, favorable.kind.value, favorable.target_id, to_db_time(now)))
            row = conn.execute("""
            SELECT id FROM favorites WHERE customer_id = ? AND favorable_type = ? AND favorable_id = ?
            """, (customer_id, favorable.kind.value, favorable.target_id)).fetchone()
            return row["id"]

    def remove_favorite(self, customer_id: int, favorable: Favorable) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("""
            DELETE FROM favorites WHERE customer_id = ? AND favorable_type = ? AND favorable_id = ?
            """, (customer_id, favorable.kind.value, favorable.target_id))
            return cursor.rowcount > 0

    def record_view(self, customer_id: int, viewable: Favorable, now: datetime):
        with self.db.transaction() as conn:
            conn.execute("""
            INSERT INTO product_views (customer_id, viewable_type, viewable_id, viewed_at) VALUES (?, ?, ?, ?)
            ON CONFLICT (customer_id, viewable_type, viewable_id) DO UPDATE SET viewed_at = excluded.viewed_at
            """, (customer_id, viewable.kind.value, viewable.target_id, to_db_time(now)))

    def recent_views(self, customer_id: int, limit: int = 20) -> List[ProductView]:
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT v.*, COALESCE(p.name, c.name) AS display_name
            FROM product_views v
            LEFT JOIN products p ON v.viewable_type = 'product' AND p.id = v.viewable_id
            LEFT JOIN combos c ON v.viewable_type = 'combo' AND c.id = v.viewable_id
            WHERE v.customer_id = ?
            ORDER BY v.viewed_at DESC, v.id DESC
            LIMIT ?
            """, (customer_id, limit)).fetchall()
            return [
                ProductView(
                    view_id=row["id"],
                    customer_id=customer_id,
                    viewable=Favorable.parse(row["viewable_type"], row["viewable_id"]),
                    viewed_at=from_db_time(row["viewed_at"]),
                    name=row["display_name"],
                )
                for row in rows
            ]

    # ---- row mapping ----

    def _clear_default(self, conn: sqlite3.Connection, table: str, customer_id: int):
        conn.execute(f"UPDATE {table} SET is_default = 0 WHERE customer_id = ?", (customer_id,))

    def _customer_from_row(self, row: sqlite3.Row) -> Customer:
        customer_type = None
        if row["customer_type_id"] is not None and row["type_name"] is not None:
            customer_type = CustomerType(
                type_id=row["customer_type_id"],
                name=row["type_name"],
                min_points=row["type_min_points"],
                multiplier=Decimal(row["type_multiplier"]),
                color=row["type_color"],
            )
        return Customer(
            customer_id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            api_token=row["api_token"],
            loyalty_card=row["loyalty_card"],
            points=row["points"],
            points_updated_at=from_db_time(row["points_updated_at"]),
            points_last_activity_at=from_db_time(row["points_last_activity_at"]),
            customer_type_id=row["customer_type_id"],
            customer_type=customer_type,
            last_purchase_at=from_db_time(row["last_purchase_at"]),
            created_at=from_db_time(row["created_at"]),
        )

    def _address_from_row(self, row: sqlite3.Row) -> CustomerAddress:
        return CustomerAddress(
            address_id=row["id"],
            customer_id=row["customer_id"],
            label=row["label"],
            address_line=row["address_line"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            delivery_notes=row["delivery_notes"],
            zone=row["zone"],
            is_default=bool(row["is_default"]),
            created_at=from_db_time(row["created_at"]),
        )

    def _nit_from_row(self, row: sqlite3.Row) -> CustomerNit:
        return CustomerNit(
            nit_id=row["id"],
            customer_id=row["customer_id"],
            nit=row["nit"],
            name=row["name"],
            is_default=bool(row["is_default"]),
            created_at=from_db_time(row["created_at"]),
        )

    def _device_from_row(self, row: sqlite3.Row) -> CustomerDevice:
        return CustomerDevice(
            device_id=row["id"],
            customer_id=row["customer_id"],
            fcm_token=row["fcm_token"],
            device_identifier=row["device_identifier"],
            device_name=row["device_name"],
            device_type=row["device_type"],
            is_active=bool(row["is_active"]),
            login_count=row["login_count"],
            last_used_at=from_db_time(row["last_used_at"]),
        )
