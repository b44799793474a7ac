"""
Loyalty repositories: points settings, points ledger and Apple Wallet device registrations
"""
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from models.loyalty import PointsSettings, PointsTransaction, AppleWalletRegistration
from .connection import DatabaseConnection
from .converters import to_db_time, from_db_time


class PointsRepository:
    # Points settings and the append-only transaction ledger

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    def get_settings(self) -> PointsSettings:
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT * FROM points_settings WHERE id = 1").fetchone()
            if not row:
                return PointsSettings()
            return PointsSettings(
                quetzales_per_point=Decimal(row["quetzales_per_point"]),
                rounding_threshold=Decimal(row["rounding_threshold"]),
                expiration_months=row["expiration_months"],
                point_value=Decimal(row["point_value"]),
            )

    def save_settings(self, settings: PointsSettings):
        with self.db.transaction() as conn:
            conn.execute("""
            UPDATE points_settings
            SET quetzales_per_point = ?, rounding_threshold = ?, expiration_months = ?, point_value = ?
            WHERE id = 1
            """, (str(settings.quetzales_per_point), str(settings.rounding_threshold),
                  settings.expiration_months, str(settings.point_value)))

    def add_transaction(self, customer_id: int, points: int, transaction_type: str, created_at: datetime,
                        reference_type: Optional[str] = None, reference_id: Optional[int] = None,
                        description: Optional[str] = None, expires_at: Optional[datetime] = None,
                        conn: Optional[sqlite3.Connection] = None) -> int:
        # Rows are never updated except for the expiry flag
        with self.db.use(conn) as conn:
            cursor = conn.execute("""
            INSERT INTO customer_points_transactions (customer_id, points, type, reference_type, reference_id,
                                                      description, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (customer_id, points, transaction_type, reference_type, reference_id, description,
                  to_db_time(expires_at), to_db_time(created_at)))
            return cursor.lastrowid

    def mark_credits_expired(self, customer_id: int, conn: Optional[sqlite3.Connection] = None):
        with self.db.use(conn) as conn:
            conn.execute("""
            UPDATE customer_points_transactions SET is_expired = 1
            WHERE customer_id = ? AND points > 0 AND is_expired = 0
            """, (customer_id,))

    def sum_points(self, customer_id: int, conn: Optional[sqlite3.Connection] = None) -> int:
        with self.db.use(conn) as conn:
            row = conn.execute("""
            SELECT COALESCE(SUM(points), 0) FROM customer_points_transactions WHERE customer_id = ?
            """, (customer_id,)).fetchone()
            return int(row[0])

    def find_for_reference(self, customer_id: int, transaction_type: str, reference_type: str,
                           reference_id: int) -> List[PointsTransaction]:
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM customer_points_transactions
            WHERE customer_id = ? AND type = ? AND reference_type = ? AND reference_id = ?
            ORDER BY id
            """, (customer_id, transaction_type, reference_type, reference_id)).fetchall()
            return [self._from_row(row) for row in rows]

    def list_for_customer(self, customer_id: int, limit: int = 20,
                          offset: int = 0) -> Tuple[List[PointsTransaction], int]:
        with self.db.get_connection() as conn:
            total = conn.execute("""
            SELECT COUNT(*) FROM customer_points_transactions WHERE customer_id = ?
            """, (customer_id,)).fetchone()[0]
            rows = conn.execute("""
            SELECT * FROM customer_points_transactions WHERE customer_id = ?
            ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?
            """, (customer_id, limit, offset)).fetchall()
            return [self._from_row(row) for row in rows], total

    def _from_row(self, row: sqlite3.Row) -> PointsTransaction:
        return PointsTransaction(
            transaction_id=row["id"],
            customer_id=row["customer_id"],
            points=row["points"],
            transaction_type=row["type"],
            reference_type=row["reference_type"],
            reference_id=row["reference_id"],
            description=row["description"],
            expires_at=from_db_time(row["expires_at"]),
            is_expired=bool(row["is_expired"]),
            created_at=from_db_time(row["created_at"]),
        )


class WalletRegistrationRepository:
    # Devices registered through the Apple Wallet web service

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection

    def find(self, device_library_identifier: str, pass_type_identifier: str,
             serial_number: str) -> Optional[AppleWalletRegistration]:
        with self.db.get_connection() as conn:
            row = conn.execute("""
            SELECT * FROM apple_wallet_registrations
            WHERE device_library_identifier = ? AND pass_type_identifier = ? AND serial_number = ?
            """, (device_library_identifier, pass_type_identifier, serial_number)).fetchone()
            return self._from_row(row) if row else None

    def create(self, device_library_identifier: str, push_token: str, pass_type_identifier: str,
               serial_number: str, customer_id: int, now: datetime) -> int:
        with self.db.transaction() as conn:
            return conn.execute("""
            INSERT INTO apple_wallet_registrations (device_library_identifier, push_token, pass_type_identifier,
                                                    serial_number, customer_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (device_library_identifier, push_token, pass_type_identifier, serial_number, customer_id,
                  to_db_time(now), to_db_time(now))).lastrowid

    def update_push_token(self, registration_id: int, push_token: str, now: datetime):
        with self.db.transaction() as conn:
            conn.execute("""
            UPDATE apple_wallet_registrations SET push_token = ?, updated_at = ? WHERE id = ?
            """, (push_token, to_db_time(now), registration_id))

    def delete(self, device_library_identifier: str, pass_type_identifier: str, serial_number: str) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("""
            DELETE FROM apple_wallet_registrations
            WHERE device_library_identifier = ? AND pass_type_identifier = ? AND serial_number = ?
            """, (device_library_identifier, pass_type_identifier, serial_number))
            return cursor.rowcount > 0

    def updated_serials(self, device_library_identifier: str, pass_type_identifier: str,
                        since: Optional[datetime] = None) -> List[Tuple[str, Optional[datetime]]]:
        # Serial numbers on this device whose customer points changed after `since`
        with self.db.get_connection() as conn:
            sql = """
            SELECT r.serial_number, c.points_updated_at
            FROM apple_wallet_registrations r JOIN customers c ON c.id = r.customer_id
            WHERE r.device_library_identifier = ? AND r.pass_type_identifier = ?
            """
            params = [device_library_identifier, pass_type_identifier]
            if since is not None:
                sql += " AND c.points_updated_at > ?"
                params.append(to_db_time(since))
            sql += " ORDER BY r.serial_number"
            rows = conn.execute(sql, params).fetchall()
            return [(row["serial_number"], from_db_time(row["points_updated_at"])) for row in rows]

    def list_for_customer(self, customer_id: int) -> List[AppleWalletRegistration]:
        with self.db.get_connection() as conn:
            rows = conn.execute("""
            SELECT * FROM apple_wallet_registrations WHERE customer_id = ? ORDER BY id
            """, (customer_id,)).fetchall()
            return [self._from_row(row) for row in rows]

    def _from_row(self, row: sqlite3.Row) -> AppleWalletRegistration:
        return AppleWalletRegistration(
            registration_id=row["id"],
            device_library_identifier=row["device_library_identifier"],
            push_token=row["push_token"],
            pass_type_identifier=row["pass_type_identifier"],
            serial_number=row["serial_number"],
            customer_id=row["customer_id"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )
