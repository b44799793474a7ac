"""
Tests for the loyalty points ledger
"""
import unittest
from datetime import datetime
from decimal import Decimal

from errors import InsufficientPointsError
from models.loyalty import PointsSettings, PointsTransactionType
from models.order import Order
from services.points_service import ORDER_REFERENCE, add_months
from support import PlatformTestCase


def completed_order(order_id: int, total: str) -> Order:
    return Order(order_id=order_id, order_number=f"ORD-TEST-{order_id}", customer_id=0, restaurant_id=1,
                 service_type="pickup", zone="capital", subtotal=Decimal(total),
                 discount_total=Decimal("0.00"), total=Decimal(total), status="completed")


class TestAddMonths(unittest.TestCase):
    """Test cases for the month arithmetic helper"""

    def test_clamps_to_month_end(self):
        self.assertEqual(add_months(datetime(2026, 8, 31), 6), datetime(2027, 2, 28))
        self.assertEqual(add_months(datetime(2027, 8, 31), 6), datetime(2028, 2, 29))

    def test_negative_months(self):
        self.assertEqual(add_months(datetime(2026, 3, 4, 12, 0), -6), datetime(2025, 9, 4, 12, 0))


class TestPointsService(PlatformTestCase):
    """Test cases for PointsService"""

    def setUp(self):
        super().setUp()
        self.customer_id = self.make_customer()
        self.points = self.platform.points_service
        self.customers = self.platform.customer_repo

    def balance(self) -> int:
        return self.customers.get_customer(self.customer_id).points

    def bonus(self, points: int):
        return self.points.add_adjustment(self.customer_id, points, "Bono", PointsTransactionType.BONUS.value)

    def test_rounding_threshold(self):
        # Q10 per point, round up from .70
        self.assertEqual(self.points.calculate_points_to_earn(Decimal("66.00")), 6)
        self.assertEqual(self.points.calculate_points_to_earn(Decimal("67.00")), 7)
        self.assertEqual(self.points.calculate_points_to_earn(Decimal("66.90")), 6)
        # Less than one whole point never rounds up
        self.assertEqual(self.points.calculate_points_to_earn(Decimal("9.90")), 0)

    def test_threshold_zero_floors(self):
        self.platform.points_repo.save_settings(PointsSettings(rounding_threshold=Decimal("0")))
        self.assertEqual(self.points.calculate_points_to_earn(Decimal("69.90")), 6)

    def test_tier_multiplier(self):
        gold_id = self.customers.create_customer_type("Oro", 0, Decimal("1.5"))
        self.customers.update_customer(self.customer_id, {"customer_type_id": gold_id})
        customer = self.customers.get_customer(self.customer_id)

        # 100 / 10 = 10 base points, times 1.5
        self.assertEqual(self.points.calculate_points_to_earn(Decimal("100.00"), customer), 15)
        # 50 / 10 = 5, times 1.5 = 7.5 stays 7
        self.assertEqual(self.points.calculate_points_to_earn(Decimal("50.00"), customer), 7)

    def test_credit_points_with_expiry(self):
        earned = self.points.credit_points(self.customer_id, completed_order(42, "70.00"))

        self.assertEqual(earned, 7)
        self.assertEqual(self.balance(), 7)
        [credit] = self.platform.points_repo.find_for_reference(
            self.customer_id, PointsTransactionType.EARNED.value, ORDER_REFERENCE, 42)
        self.assertEqual(credit.points, 7)
        self.assertEqual(credit.expires_at, datetime(2026, 9, 4, 12, 0))
        self.assertEqual(self.customers.get_customer(self.customer_id).points_last_activity_at, self.start)

    def test_small_orders_credit_nothing(self):
        self.assertEqual(self.points.credit_points(self.customer_id, completed_order(1, "5.00")), 0)
        self.assertEqual(self.points.get_history(self.customer_id)["meta"]["total"], 0)

    def test_redeem_points(self):
        self.bonus(100)
        self.points.redeem_points(self.customer_id, 40, ORDER_REFERENCE, 7)
        self.assertEqual(self.balance(), 60)

        with self.assertRaises(InsufficientPointsError) as ctx:
            self.points.redeem_points(self.customer_id, 61)
        self.assertEqual(ctx.exception.data, {"available": 60, "requested": 61})
        with self.assertRaises(InsufficientPointsError):
            self.points.redeem_points(self.customer_id, 0)

    def test_points_value(self):
        self.assertEqual(self.points.points_value(50), Decimal("5.00"))
        self.assertEqual(self.points.points_value(3), Decimal("0.30"))

    def test_adjustments(self):
        self.bonus(20)
        self.points.add_adjustment(self.customer_id, -5, "Corrección")
        self.assertEqual(self.balance(), 15)

        with self.assertRaises(InsufficientPointsError):
            self.points.add_adjustment(self.customer_id, -16, "Corrección")
        with self.assertRaises(ValueError):
            self.points.add_adjustment(self.customer_id, 5, "Canje", PointsTransactionType.REDEEMED.value)

    def test_refund_points(self):
        self.bonus(50)
        self.points.redeem_points(self.customer_id, 30, ORDER_REFERENCE, 9)
        self.points.refund_points(self.customer_id, 30, ORDER_REFERENCE, 9)

        self.assertEqual(self.balance(), 50)
        self.assertIsNone(self.points.refund_points(self.customer_id, 0))

    def test_balance_matches_ledger(self):
        self.bonus(30)
        self.points.credit_points(self.customer_id, completed_order(3, "120.00"))
        self.points.redeem_points(self.customer_id, 12)
        self.points.add_adjustment(self.customer_id, -1, "Ajuste")

        self.assertEqual(self.balance(), self.platform.points_repo.sum_points(self.customer_id))
        self.assertEqual(self.balance(), 29)

    def test_expire_inactive_points(self):
        self.bonus(80)
        other_id = self.make_customer(name="Luis", email="luis@example.com", api_token="token-luis")
        self.clock.advance(days=200)
        self.points.add_adjustment(other_id, 10, "Reciente", PointsTransactionType.BONUS.value)

        expired = self.points.expire_inactive_points()

        self.assertEqual(expired, 1)
        customer = self.customers.get_customer(self.customer_id)
        self.assertEqual(customer.points, 0)
        # Expiry does not count as activity
        self.assertEqual(customer.points_last_activity_at, self.start)
        self.assertEqual(self.customers.get_customer(other_id).points, 10)

        history = self.points.get_history(self.customer_id)["data"]
        self.assertEqual(history[0]["type"], "expired")
        self.assertEqual(history[0]["points"], -80)
        self.assertTrue(history[1]["is_expired"])

    def test_tier_follows_balance(self):
        regular_id = self.customers.create_customer_type("Regular", 0, Decimal("1"))
        gold_id = self.customers.create_customer_type("Oro", 100, Decimal("1.25"))

        self.bonus(10)
        self.assertEqual(self.customers.get_customer(self.customer_id).customer_type_id, regular_id)
        self.bonus(95)
        self.assertEqual(self.customers.get_customer(self.customer_id).customer_type_id, gold_id)
        self.points.redeem_points(self.customer_id, 50)
        self.assertEqual(self.customers.get_customer(self.customer_id).customer_type_id, regular_id)

    def test_wallet_listener_failures_are_swallowed(self):
        seen = []

        def broken_listener(customer):
            raise RuntimeError("wallet down")

        self.points.wallet_listeners.extend([broken_listener, lambda customer: seen.append(customer.points)])
        self.bonus(25)

        self.assertEqual(self.balance(), 25)
        self.assertEqual(seen, [25])

    def test_history_pagination(self):
        for points in (5, 10, 15):
            self.bonus(points)
            self.clock.advance(minutes=1)

        page = self.points.get_history(self.customer_id, page=2, per_page=2)
        self.assertEqual(page["meta"], {"current_page": 2, "per_page": 2, "total": 3})
        self.assertEqual([entry["points"] for entry in page["data"]], [5])

    def test_balance_payload(self):
        self.bonus(25)
        balance = self.points.get_balance(self.customer_id)
        self.assertEqual(balance["points"], 25)
        self.assertEqual(balance["points_value"], "2.50")
        self.assertEqual(balance["settings"]["quetzales_per_point"], "10")

    def test_rewards_sorted_by_cost(self):
        catalog = self.platform.catalog_repo
        cookie_id = self.make_product(name="Galleta", pickup="7.00", is_redeemable=True, points_cost=70)
        sub_id = self.make_product(is_redeemable=True, points_cost=350)
        self.make_product(name="No canjeable", pickup="5.00")
        catalog.create_variant(sub_id, "15 cm", None, is_redeemable=True, points_cost=200)

        rewards = self.points.get_rewards()
        self.assertEqual([(reward["type"], reward["points_cost"]) for reward in rewards],
                         [("product", 70), ("variant", 200), ("product", 350)])
        self.assertEqual(rewards[0]["id"], cookie_id)
        self.assertEqual(rewards[1]["name"], "Sub de Pollo 15 cm")


if __name__ == '__main__':
    unittest.main()
