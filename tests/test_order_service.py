"""
Tests for order creation, the status machine, cancellation and reorders
"""
import unittest
from datetime import timedelta
from decimal import Decimal

from errors import (
    AddressOutsideDeliveryZoneError, CartValidationError, InvalidStatusTransitionError,
    MinimumOrderAmountError, OrderingError, OrderNotCancellableError, RestaurantClosedError,
    ReviewNotAllowedError,
)
from models.loyalty import PointsTransactionType
from support import OUTSIDE_EVERYTHING, PlatformTestCase


class TestOrderService(PlatformTestCase):
    """Test cases for OrderService"""

    def setUp(self):
        super().setUp()
        self.customer_id = self.make_customer()
        self.restaurant_id = self.make_restaurant()
        self.product_id = self.make_product(pickup="35.00", delivery="38.00", interior="40.00")
        self.orders = self.platform.order_service
        self.cart_service = self.platform.cart_service

    def filled_cart(self, quantity=2, product_id=None):
        cart = self.cart_for(self.customer_id)
        self.cart_service.add_item(cart, {"product_id": product_id or self.product_id, "quantity": quantity})
        return self.cart_service.reload(cart)

    def place_pickup(self, quantity=2, **data):
        data.setdefault("service_type", "pickup")
        data.setdefault("restaurant_id", self.restaurant_id)
        return self.orders.create_from_cart(self.filled_cart(quantity), data)

    def walk(self, order, *statuses):
        for status in statuses:
            order = self.orders.update_status(order, status)
        return order

    def test_create_pickup_order(self):
        order = self.place_pickup()

        self.assertEqual(order.order_number, f"ORD-20260304-{self.restaurant_id}-0001")
        self.assertEqual(order.status, "pending")
        self.assertEqual(order.total, Decimal("70.00"))
        self.assertEqual(order.points_earned, 7)
        self.assertEqual(order.scheduled_pickup_time, self.start + timedelta(minutes=30))
        self.assertEqual(len(order.items), 1)
        self.assertEqual(order.items[0].product_snapshot["name"], "Sub de Pollo")
        self.assertEqual([entry.new_status for entry in order.status_history], ["pending"])

        # The cart is converted and the next call starts a new one
        new_cart = self.cart_for(self.customer_id)
        self.assertTrue(new_cart.is_empty())

        second = self.place_pickup(quantity=1)
        self.assertEqual(second.order_number, f"ORD-20260304-{self.restaurant_id}-0002")

    def test_empty_cart_is_rejected(self):
        with self.assertRaises(CartValidationError):
            self.orders.create_from_cart(self.cart_for(self.customer_id),
                                         {"service_type": "pickup", "restaurant_id": self.restaurant_id})

    def test_minimum_order_amount(self):
        restaurant_id = self.make_restaurant(name="Mínimo", minimum_order_amount="50.00")
        with self.assertRaises(MinimumOrderAmountError) as ctx:
            self.orders.create_from_cart(self.filled_cart(1), {"service_type": "pickup",
                                                               "restaurant_id": restaurant_id})
        self.assertEqual(ctx.exception.data["minimum_amount"], "50.00")

    def test_closed_restaurant(self):
        self.clock.now = self.start.replace(hour=23)
        with self.assertRaises(RestaurantClosedError) as ctx:
            self.place_pickup()
        # Pickup closes 30 minutes before the restaurant
        self.assertEqual(ctx.exception.data["last_order_time"], "21:30")

    def test_scheduled_time_in_the_past(self):
        with self.assertRaises(OrderingError):
            self.place_pickup(scheduled_pickup_time=self.start - timedelta(minutes=10))

        order = self.place_pickup(scheduled_pickup_time=self.start - timedelta(minutes=1))
        self.assertEqual(order.scheduled_pickup_time, self.start - timedelta(minutes=1))

    def test_delivery_outside_every_zone(self):
        address_id = self.make_address(self.customer_id, location=OUTSIDE_EVERYTHING)
        with self.assertRaises(AddressOutsideDeliveryZoneError) as ctx:
            self.orders.create_from_cart(self.filled_cart(), {"service_type": "delivery",
                                                              "delivery_address_id": address_id})
        self.assertEqual(ctx.exception.data["nearest_pickup_locations"][0]["id"], self.restaurant_id)

    def test_delivery_assigns_restaurant_and_zone(self):
        interior_id = self.make_restaurant(name="Interior", price_location="interior")
        address_id = self.make_address(self.customer_id)
        # The first restaurant covers the same square; make it pickup only
        with self.platform.db_connection.transaction() as conn:
            conn.execute("UPDATE restaurants SET delivery_active = 0 WHERE id = ?", (self.restaurant_id,))

        order = self.orders.create_from_cart(self.filled_cart(1), {"service_type": "delivery",
                                                                   "delivery_address_id": address_id})

        self.assertEqual(order.restaurant_id, interior_id)
        self.assertEqual(order.zone, "interior")
        self.assertEqual(order.subtotal, Decimal("40.00"))
        self.assertEqual(order.delivery_address_snapshot["label"], "Casa")
        self.assertEqual(order.scheduled_for, self.start + timedelta(minutes=45))

    def test_redeem_points_on_order(self):
        self.platform.points_service.add_adjustment(self.customer_id, 100, "Bienvenida",
                                                    PointsTransactionType.BONUS.value)
        order = self.place_pickup(points_to_redeem=50)

        self.assertEqual(order.points_redeemed, 50)
        self.assertEqual(order.points_discount, Decimal("5.00"))
        self.assertEqual(order.total, Decimal("65.00"))
        self.assertEqual(self.platform.customer_repo.get_customer(self.customer_id).points, 50)

    def test_redeem_is_capped_at_the_order_total(self):
        cookie_id = self.make_product(name="Galleta", pickup="5.00")
        self.platform.points_service.add_adjustment(self.customer_id, 1000, "Bienvenida",
                                                    PointsTransactionType.BONUS.value)
        cart = self.filled_cart(1, product_id=cookie_id)
        order = self.orders.create_from_cart(cart, {"service_type": "pickup", "restaurant_id": self.restaurant_id,
                                                    "points_to_redeem": 1000})

        # Q5.00 at Q0.10 per point needs 50 points
        self.assertEqual(order.points_redeemed, 50)
        self.assertEqual(order.points_discount, Decimal("5.00"))
        self.assertEqual(order.total, Decimal("0.00"))
        self.assertEqual(self.platform.customer_repo.get_customer(self.customer_id).points, 950)

    def test_rejected_order_leaves_the_cart_untouched(self):
        restaurant_id = self.make_restaurant(name="Interior", price_location="interior",
                                             minimum_order_amount="500.00")
        cart = self.filled_cart(1)
        with self.assertRaises(MinimumOrderAmountError):
            self.orders.create_from_cart(cart, {"service_type": "pickup", "restaurant_id": restaurant_id})

        cart = self.cart_service.reload(cart)
        self.assertIsNone(cart.restaurant_id)
        self.assertEqual(cart.zone, "capital")
        self.assertEqual(cart.items[0].unit_price, Decimal("35.00"))

    def test_redeeming_more_than_the_balance_fails_without_an_order(self):
        with self.assertRaises(OrderingError):
            self.place_pickup(points_to_redeem=10)
        self.assertEqual(self.orders.get_history(self.customer_id)["meta"]["total"], 0)
        self.assertEqual(len(self.cart_for(self.customer_id).items), 1)

    def test_pickup_status_machine(self):
        order = self.place_pickup()
        with self.assertRaises(InvalidStatusTransitionError):
            self.orders.update_status(order, "completed")

        order = self.walk(order, "preparing", "ready")
        self.assertEqual(order.ready_at, self.start)
        with self.assertRaises(InvalidStatusTransitionError):
            self.orders.update_status(order, "out_for_delivery")

        order = self.orders.update_status(order, "completed")
        self.assertEqual(order.status, "completed")
        self.assertEqual([entry.new_status for entry in order.status_history],
                         ["pending", "preparing", "ready", "completed"])
        with self.assertRaises(InvalidStatusTransitionError):
            self.orders.update_status(order, "cancelled")

    def test_delivery_status_machine(self):
        address_id = self.make_address(self.customer_id)
        order = self.orders.create_from_cart(self.filled_cart(), {"service_type": "delivery",
                                                                  "delivery_address_id": address_id})
        order = self.walk(order, "preparing", "ready")
        with self.assertRaises(InvalidStatusTransitionError):
            self.orders.update_status(order, "completed")

        order = self.walk(order, "out_for_delivery", "delivered")
        self.assertEqual(order.delivered_at, self.start)
        with self.assertRaises(InvalidStatusTransitionError):
            self.orders.update_status(order, "cancelled")
        self.assertEqual(self.walk(order, "completed").status, "completed")

    def test_points_credited_on_completion(self):
        order = self.walk(self.place_pickup(), "preparing", "ready")
        self.assertEqual(self.platform.customer_repo.get_customer(self.customer_id).points, 0)

        order = self.orders.update_status(order, "completed")
        customer = self.platform.customer_repo.get_customer(self.customer_id)
        self.assertEqual(customer.points, 7)
        self.assertEqual(order.points_earned, 7)
        self.assertEqual(customer.last_purchase_at, self.start)

    def test_cancel_only_while_pending(self):
        self.platform.points_service.add_adjustment(self.customer_id, 100, "Bienvenida",
                                                    PointsTransactionType.BONUS.value)
        order = self.place_pickup(points_to_redeem=30)

        cancelled = self.orders.cancel(order, "Cambié de opinión")
        self.assertEqual(cancelled.status, "cancelled")
        self.assertEqual(cancelled.cancellation_reason, "Cambié de opinión")
        # Redeemed points come back
        self.assertEqual(self.platform.customer_repo.get_customer(self.customer_id).points, 100)

        preparing = self.walk(self.place_pickup(), "preparing")
        with self.assertRaises(OrderNotCancellableError):
            self.orders.cancel(preparing, "Tarde")

    def test_reorder_skips_unavailable_items(self):
        soda_id = self.make_product(name="Gaseosa", pickup="12.00")
        cart = self.filled_cart(2)
        self.cart_service.add_item(cart, {"product_id": soda_id})
        order = self.orders.create_from_cart(self.cart_service.reload(cart),
                                             {"service_type": "pickup", "restaurant_id": self.restaurant_id})
        self.platform.catalog_repo.set_product_active(soda_id, False)

        new_cart = self.orders.reorder(order, self.customer_id)

        self.assertEqual(new_cart.restaurant_id, self.restaurant_id)
        self.assertEqual([(item.product_id, item.quantity) for item in new_cart.items], [(self.product_id, 2)])

    def test_review_once_after_completion(self):
        order = self.place_pickup()
        with self.assertRaises(ReviewNotAllowedError):
            self.orders.review(order, self.customer_id, {"overall_rating": 5})

        order = self.walk(order, "preparing", "ready", "completed")
        review = self.orders.review(order, self.customer_id, {"overall_rating": 4, "comment": "Rico"})
        self.assertEqual(review.overall_rating, 4)

        with self.assertRaises(ReviewNotAllowedError):
            self.orders.review(self.orders.get_order(order.order_id), self.customer_id, {"overall_rating": 5})

    def test_history_and_active_orders(self):
        first = self.place_pickup()
        self.place_pickup()
        self.walk(first, "preparing", "ready", "completed")

        history = self.orders.get_history(self.customer_id, page=1, per_page=1)
        self.assertEqual(history["meta"]["total"], 2)
        self.assertEqual(history["meta"]["last_page"], 2)
        self.assertEqual(len(history["data"]), 1)

        active = self.orders.get_active_orders(self.customer_id)
        self.assertEqual(len(active), 1)
        self.assertEqual([order.order_id for order in self.orders.get_recent_orders(self.customer_id)],
                         [first.order_id])


if __name__ == '__main__':
    unittest.main()
