"""
Tests for promotion matching and discounts
"""
import unittest
from datetime import timedelta
from decimal import Decimal

from models.catalog import PromotionType
from support import PlatformTestCase, price_list

PERCENTAGE = PromotionType.PERCENTAGE_DISCOUNT.value
TWO_FOR_ONE = PromotionType.TWO_FOR_ONE.value


class TestPromotionService(PlatformTestCase):
    """Test cases for PromotionService"""

    def setUp(self):
        super().setUp()
        self.customer_id = self.make_customer()
        self.catalog = self.platform.catalog_repo
        self.cart_service = self.platform.cart_service
        self.promotions = self.platform.promotion_service
        self.cart = self.cart_for(self.customer_id)

    def add(self, product_id, quantity=1, **data):
        data.update({"product_id": product_id, "quantity": quantity})
        return self.cart_service.add_item(self.cart, data)

    def items(self):
        return self.cart_service.reload(self.cart).items

    def test_two_for_one_frees_cheapest_units(self):
        cheap_id = self.make_product(name="Galleta", pickup="7.00")
        pricey_id = self.make_product(name="Brownie", pickup="10.00")
        self.catalog.create_promotion("2x1", TWO_FOR_ONE, [{"product_id": cheap_id}, {"product_id": pricey_id}],
                                      created_at=self.clock())
        cheap = self.add(cheap_id, 1)
        self.add(pricey_id, 2)

        result = self.promotions.apply_promotions(self.items())
        # Three qualifying units: one free, the cheapest
        self.assertEqual(result["discounts"], Decimal("7.00"))
        self.assertEqual(result["item_discounts"][cheap.cart_item_id]["discount"], Decimal("7.00"))
        self.assertEqual(result["promotions_applied"][0]["value"], "2x1")

    def test_two_for_one_needs_two_units(self):
        cookie_id = self.make_product(name="Galleta", pickup="7.00")
        self.catalog.create_promotion("2x1", TWO_FOR_ONE, [{"product_id": cookie_id}], created_at=self.clock())
        self.add(cookie_id, 1)

        result = self.promotions.apply_promotions(self.items())
        self.assertEqual(result["discounts"], Decimal("0.00"))
        self.assertEqual(result["promotions_applied"], [])

    def test_percentage_on_category(self):
        drinks_id = self.catalog.create_category("Bebidas")
        soda_id = self.make_product(name="Gaseosa", pickup="12.50", category_id=drinks_id)
        self.catalog.create_promotion("Bebidas", PERCENTAGE,
                                      [{"category_id": drinks_id, "discount_percentage": Decimal("15")}],
                                      created_at=self.clock())
        item = self.add(soda_id, 1)

        result = self.promotions.apply_promotions(self.items())
        # 12.50 * 15% = 1.875, rounded half up
        self.assertEqual(result["discounts"], Decimal("1.88"))
        detail = result["item_discounts"][item.cart_item_id]
        self.assertEqual(detail["final_price"], Decimal("10.62"))
        self.assertEqual(detail["promotion"]["value"], "15%")

    def test_percentage_follows_item_category(self):
        drinks_id = self.catalog.create_category("Bebidas")
        desserts_id = self.catalog.create_category("Postres")
        soda_id = self.make_product(name="Gaseosa", pickup="100.00", category_id=desserts_id)
        self.catalog.create_promotion("Bebidas y postres", PERCENTAGE, [
            {"category_id": drinks_id, "discount_percentage": Decimal("10")},
            {"category_id": desserts_id, "discount_percentage": Decimal("50")},
        ], created_at=self.clock())
        item = self.add(soda_id, 1)

        result = self.promotions.apply_promotions(self.items())
        self.assertEqual(result["discounts"], Decimal("50.00"))
        self.assertEqual(result["item_discounts"][item.cart_item_id]["final_price"], Decimal("50.00"))

    def test_variant_target_only_matches_that_variant(self):
        product_id = self.make_product()
        small_id = self.catalog.create_variant(product_id, "15 cm", price_list("30.00"))
        large_id = self.catalog.create_variant(product_id, "30 cm", price_list("50.00"))
        self.catalog.create_promotion("30 cm", PERCENTAGE,
                                      [{"variant_id": large_id, "discount_percentage": Decimal("10")}],
                                      created_at=self.clock())
        small = self.add(product_id, variant_id=small_id)
        large = self.add(product_id, variant_id=large_id)

        result = self.promotions.apply_promotions(self.items())
        self.assertNotIn(small.cart_item_id, result["item_discounts"])
        self.assertEqual(result["item_discounts"][large.cart_item_id]["discount"], Decimal("5.00"))

    def test_newest_promotion_wins(self):
        product_id = self.make_product(pickup="20.00")
        self.catalog.create_promotion("Vieja", PERCENTAGE,
                                      [{"product_id": product_id, "discount_percentage": Decimal("10")}],
                                      created_at=self.clock() - timedelta(days=2))
        newest_id = self.catalog.create_promotion("Nueva", PERCENTAGE,
                                                  [{"product_id": product_id, "discount_percentage": Decimal("25")}],
                                                  created_at=self.clock())
        item = self.add(product_id)

        result = self.promotions.apply_promotions(self.items())
        self.assertEqual(result["item_discounts"][item.cart_item_id]["promotion_id"], newest_id)
        self.assertEqual(result["discounts"], Decimal("5.00"))

    def test_validity_windows(self):
        product_id = self.make_product()
        promotion_id = self.catalog.create_promotion(
            "Almuerzo", PERCENTAGE, [{"product_id": product_id, "discount_percentage": Decimal("10")}],
            created_at=self.clock(), time_from="11:00", time_until="14:00", weekdays=[1, 2, 3, 4, 5])
        promotion = self.promotions.get_promotion(promotion_id)

        self.assertTrue(self.promotions.is_valid_now(promotion))
        self.assertFalse(self.promotions.is_valid_now(promotion, self.start.replace(hour=15)))
        # Saturday
        self.assertFalse(self.promotions.is_valid_now(promotion, self.start + timedelta(days=3)))

        expired_id = self.catalog.create_promotion(
            "Vencida", PERCENTAGE, [{"product_id": product_id, "discount_percentage": Decimal("10")}],
            created_at=self.clock(), valid_until="2026-03-01")
        self.assertFalse(self.promotions.is_valid_now(self.promotions.get_promotion(expired_id)))

    def test_inactive_promotions_are_ignored(self):
        product_id = self.make_product()
        promotion_id = self.catalog.create_promotion(
            "Apagada", PERCENTAGE, [{"product_id": product_id, "discount_percentage": Decimal("50")}],
            created_at=self.clock())
        self.catalog.set_promotion_active(promotion_id, False)
        self.add(product_id)

        self.assertEqual(self.promotions.apply_promotions(self.items())["discounts"], Decimal("0.00"))

    def test_combos_never_take_part(self):
        sub_id = self.make_product()
        combo_id = self.catalog.create_combo("Combo", price_list("49.00"))
        self.catalog.add_combo_item(combo_id, product_id=sub_id)
        self.catalog.create_promotion("Sub", PERCENTAGE,
                                      [{"product_id": sub_id, "discount_percentage": Decimal("50")}],
                                      created_at=self.clock())
        self.cart_service.add_item(self.cart, {"combo_id": combo_id})

        self.assertEqual(self.promotions.apply_promotions(self.items())["discounts"], Decimal("0.00"))


if __name__ == '__main__':
    unittest.main()
