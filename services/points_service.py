"""
Points service - loyalty ledger: earning, redemption, refunds, expiry and tiers
"""
import math
import sqlite3
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from typing import Callable, Dict, List, Any, Optional

import structlog

from errors import InsufficientPointsError, NotFoundError
from models.customer import Customer
from models.loyalty import PointsSettings, PointsTransactionType
from models.order import Order
from database.connection import DatabaseConnection
from database.customer_repository import CustomerRepository
from database.loyalty_repository import PointsRepository
from database.repository import CatalogRepository

logger = structlog.get_logger(__name__)

ORDER_REFERENCE = "order"


def add_months(moment: datetime, months: int) -> datetime:
    # Clamp the day to the length of the target month
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = [31, 29 if year % 4 == 0 and (year % 100 != 0 or year % 400 == 0) else 28,
                     31, 30, 31, 30, 31, 31, 30, 31, 30, 31][month - 1]
    return moment.replace(year=year, month=month, day=min(moment.day, days_in_month))


class PointsService:
    # Append-only ledger; the customer balance is kept equal to the ledger sum

    def __init__(self, db_connection: DatabaseConnection, points_repository: PointsRepository,
                 customer_repository: CustomerRepository, catalog_repository: CatalogRepository,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db_connection
        self.points_repo = points_repository
        self.customer_repo = customer_repository
        self.catalog_repo = catalog_repository
        self.clock = clock
        self.wallet_listeners: List[Callable[[Customer], None]] = []

    def settings(self) -> PointsSettings:
        return self.points_repo.get_settings()

    def round_with_threshold(self, value: Decimal, settings: Optional[PointsSettings] = None) -> int:
        # Round up only with at least one whole point and a decimal part above the threshold
        settings = settings or self.settings()
        int_part = int(math.floor(value))
        if settings.rounding_threshold <= 0:
            return int_part

        decimal_part = (value - int_part).quantize(Decimal("0.01"), rounding=ROUND_DOWN)
        if int_part >= 1 and decimal_part >= settings.rounding_threshold:
            return int_part + 1
        return int_part

    def multiplier_for(self, customer: Optional[Customer]) -> Decimal:
        if not customer or not customer.customer_type:
            return Decimal("1")
        multiplier = customer.customer_type.multiplier
        return multiplier if multiplier > 0 else Decimal("1")

    def calculate_points_to_earn(self, total: Decimal, customer: Optional[Customer] = None) -> int:
        settings = self.settings()
        base_points = self.round_with_threshold(Decimal(total) / settings.quetzales_per_point, settings)

        multiplier = self.multiplier_for(customer)
        if multiplier > 1:
            return self.round_with_threshold(base_points * multiplier, settings)
        return base_points

    def points_value(self, points: int) -> Decimal:
        return (self.settings().point_value * points).quantize(Decimal("0.01"))

    def points_covering(self, amount: Decimal) -> int:
        # Fewest points worth at least the amount
        point_value = self.settings().point_value
        if amount <= 0 or point_value <= 0:
            return 0
        return int(math.ceil(amount / point_value))

    def credit_points(self, customer_id: int, order: Order) -> int:
        customer = self._get_customer(customer_id)
        points = self.calculate_points_to_earn(order.total, customer)
        if points <= 0:
            return 0

        now = self.clock()
        settings = self.settings()
        with self.db.transaction() as conn:
            self.points_repo.add_transaction(
                customer_id, points, PointsTransactionType.EARNED.value, now,
                reference_type=ORDER_REFERENCE, reference_id=order.order_id,
                description=f"Puntos ganados en orden #{order.order_number}",
                expires_at=add_months(now, settings.expiration_months),
                conn=conn,
            )
            self._sync_balance(customer_id, now, conn)

        logger.info("points_credited", customer_id=customer_id, order_id=order.order_id, points=points)
        self.refresh_wallets(customer_id)
        return points

    def redeem_points(self, customer_id: int, points: int, reference_type: Optional[str] = None,
                      reference_id: Optional[int] = None, description: Optional[str] = None,
                      conn: Optional[sqlite3.Connection] = None) -> int:
        # Pass conn to take part in the caller's transaction
        customer = self._get_customer(customer_id, conn)
        if points <= 0 or customer.points < points:
            raise InsufficientPointsError(customer.points, points)

        now = self.clock()
        joined = conn is not None
        with self.db.use(conn) as conn:
            transaction_id = self.points_repo.add_transaction(
                customer_id, -points, PointsTransactionType.REDEEMED.value, now,
                reference_type=reference_type, reference_id=reference_id,
                description=description or f"Canje de {points} puntos",
                conn=conn,
            )
            self._sync_balance(customer_id, now, conn)

        logger.info("points_redeemed", customer_id=customer_id, points=points,
                    reference_type=reference_type, reference_id=reference_id)
        # Callers joining a transaction refresh wallets after their commit
        if not joined:
            self.refresh_wallets(customer_id)
        return transaction_id

    def refund_points(self, customer_id: int, points: int, reference_type: Optional[str] = None,
                      reference_id: Optional[int] = None, description: Optional[str] = None) -> Optional[int]:
        if points <= 0:
            return None

        now = self.clock()
        with self.db.transaction() as conn:
            transaction_id = self.points_repo.add_transaction(
                customer_id, points, PointsTransactionType.ADJUSTMENT.value, now,
                reference_type=reference_type, reference_id=reference_id,
                description=description or f"Devolución de {points} puntos",
                conn=conn,
            )
            self._sync_balance(customer_id, now, conn)

        logger.info("points_refunded", customer_id=customer_id, points=points, reference_id=reference_id)
        self.refresh_wallets(customer_id)
        return transaction_id

    def add_adjustment(self, customer_id: int, points: int, description: str,
                       transaction_type: str = PointsTransactionType.ADJUSTMENT.value) -> int:
        # Manual bonus or correction; the balance may not go below zero
        if transaction_type not in (PointsTransactionType.BONUS.value, PointsTransactionType.ADJUSTMENT.value):
            raise ValueError(f"Unsupported adjustment type: {transaction_type}")

        customer = self._get_customer(customer_id)
        if customer.points + points < 0:
            raise InsufficientPointsError(customer.points, -points)

        now = self.clock()
        with self.db.transaction() as conn:
            transaction_id = self.points_repo.add_transaction(
                customer_id, points, transaction_type, now, description=description, conn=conn,
            )
            self._sync_balance(customer_id, now, conn)

        self.refresh_wallets(customer_id)
        return transaction_id

    def expire_inactive_points(self, now: Optional[datetime] = None) -> int:
        # Customers inactive for the configured months lose their whole balance
        now = now or self.clock()
        settings = self.settings()
        cutoff = add_months(now, -settings.expiration_months)

        expired_customers = 0
        for customer in self.customer_repo.list_inactive_with_points(cutoff):
            with self.db.transaction() as conn:
                self.points_repo.add_transaction(
                    customer.customer_id, -customer.points, PointsTransactionType.EXPIRED.value, now,
                    description=f"Puntos vencidos por inactividad ({settings.expiration_months} meses)",
                    conn=conn,
                )
                self.points_repo.mark_credits_expired(customer.customer_id, conn=conn)
                self._sync_balance(customer.customer_id, now, conn, touch_activity=False)

            logger.info("points_expired", customer_id=customer.customer_id, points=customer.points)
            self.refresh_wallets(customer.customer_id)
            expired_customers += 1

        return expired_customers

    def get_balance(self, customer_id: int) -> Dict[str, Any]:
        customer = self._get_customer(customer_id)
        settings = self.settings()
        return {
            "points": customer.points,
            "points_value": f"{self.points_value(customer.points):.2f}",
            "points_updated_at": customer.points_updated_at.isoformat() if customer.points_updated_at else None,
            "customer_type": customer.customer_type.to_dict() if customer.customer_type else None,
            "settings": settings.to_dict(),
        }

    def get_history(self, customer_id: int, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        page = max(1, page)
        per_page = min(max(1, per_page), 100)
        transactions, total = self.points_repo.list_for_customer(customer_id, per_page, (page - 1) * per_page)
        return {
            "data": [transaction.to_dict() for transaction in transactions],
            "meta": {"current_page": page, "per_page": per_page, "total": total},
        }

    def get_rewards(self) -> List[Dict[str, Any]]:
        rewards = self.catalog_repo.get_redeemable_items()
        rewards.sort(key=lambda reward: (reward["points_cost"], reward["type"], reward["id"]))
        return rewards

    def _get_customer(self, customer_id: int, conn: Optional[sqlite3.Connection] = None) -> Customer:
        customer = self.customer_repo.get_customer(customer_id, conn)
        if not customer:
            raise NotFoundError("Cliente no encontrado.")
        return customer

    def _sync_balance(self, customer_id: int, now: datetime, conn: sqlite3.Connection,
                      touch_activity: bool = True):
        # Cached balance follows the ledger, then the tier follows the balance
        balance = self.points_repo.sum_points(customer_id, conn)
        fields: Dict[str, Any] = {"points": balance, "points_updated_at": now}
        if touch_activity:
            fields["points_last_activity_at"] = now

        tier = next((t for t in self.customer_repo.list_customer_types() if t.min_points <= balance), None)
        if tier:
            fields["customer_type_id"] = tier.type_id
        self.customer_repo.update_customer(customer_id, fields, conn)

    def refresh_wallets(self, customer_id: int):
        # Wallet refresh must never break a points operation
        if not self.wallet_listeners:
            return
        customer = self.customer_repo.get_customer(customer_id)
        for listener in self.wallet_listeners:
            try:
                listener(customer)
            except Exception as e:
                logger.warning("wallet_refresh_failed", customer_id=customer_id, error=str(e))
