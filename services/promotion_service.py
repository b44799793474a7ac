"""
Promotion service - finds applicable promotions and computes cart discounts
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Any, Optional

from models.cart import CartItem
from models.catalog import Promotion, PromotionType
from database.repository import CatalogRepository

CENT = Decimal("0.01")


class PromotionService:
    # Percentage and 2x1 promotions over product items

    def __init__(self, catalog_repository: CatalogRepository, clock: Callable[[], datetime] = datetime.now):
        self.catalog_repo = catalog_repository
        self.clock = clock

    def is_valid_now(self, promotion: Promotion, now: Optional[datetime] = None) -> bool:
        return promotion.is_valid_at(now or self.clock())

    def get_promotion(self, promotion_id: int) -> Optional[Promotion]:
        return self.catalog_repo.get_promotion(promotion_id)

    def find_promotion_for(self, item: CartItem, category_id: Optional[int],
                           promotions: List[Promotion], now: datetime) -> Optional[Promotion]:
        # Promotions arrive newest first; combos never take part
        if item.is_combo():
            return None
        for promotion in promotions:
            if not promotion.is_valid_at(now):
                continue
            for target in promotion.items:
                if target.variant_id is not None:
                    if target.variant_id == item.variant_id:
                        return promotion
                elif target.product_id is not None:
                    if target.product_id == item.product_id:
                        return promotion
                elif target.category_id is not None and target.category_id == category_id:
                    return promotion
        return None

    def apply_promotions(self, items: List[CartItem], now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or self.clock()
        promotions = self.catalog_repo.get_active_promotions()
        if not promotions or not items:
            return {"discounts": Decimal("0.00"), "promotions_applied": [], "item_discounts": {}}

        categories: Dict[int, Optional[int]] = {}
        matched: Dict[int, List[CartItem]] = {}
        by_id: Dict[int, Promotion] = {}
        for item in items:
            if item.is_combo():
                continue
            if item.product_id not in categories:
                product = self.catalog_repo.get_product(item.product_id)
                categories[item.product_id] = product.category_id if product else None
            promotion = self.find_promotion_for(item, categories[item.product_id], promotions, now)
            if promotion:
                matched.setdefault(promotion.promotion_id, []).append(item)
                by_id[promotion.promotion_id] = promotion

        item_discounts: Dict[int, Dict[str, Any]] = {}
        promotions_applied = []
        total_discount = Decimal("0.00")

        for promotion_id, promo_items in matched.items():
            promotion = by_id[promotion_id]
            if promotion.promotion_type == PromotionType.TWO_FOR_ONE.value:
                discounts = self._two_for_one(promo_items)
            else:
                discounts = self._percentage(promotion, promo_items, categories)

            promotion_total = Decimal("0.00")
            for item in promo_items:
                discount = discounts.get(item.cart_item_id, Decimal("0.00"))
                item_discounts[item.cart_item_id] = {
                    "promotion_id": promotion.promotion_id,
                    "promotion": promotion.snapshot(),
                    "original_price": item.subtotal,
                    "discount": discount,
                    "final_price": item.subtotal - discount,
                }
                promotion_total += discount

            if promotion_total > 0:
                applied = promotion.snapshot()
                applied["discount_amount"] = f"{promotion_total:.2f}"
                promotions_applied.append(applied)
                total_discount += promotion_total

        return {
            "discounts": total_discount.quantize(CENT),
            "promotions_applied": promotions_applied,
            "item_discounts": item_discounts,
        }

    def _percentage(self, promotion: Promotion, items: List[CartItem],
                    categories: Dict[int, Optional[int]]) -> Dict[int, Decimal]:
        discounts = {}
        for item in items:
            percentage = self._percentage_for(promotion, item, categories.get(item.product_id))
            discounts[item.cart_item_id] = (item.subtotal * percentage / Decimal("100")).quantize(
                CENT, rounding=ROUND_HALF_UP)
        return discounts

    def _percentage_for(self, promotion: Promotion, item: CartItem, category_id: Optional[int]) -> Decimal:
        # The most specific target that carries a percentage wins
        fallback = Decimal("0")
        for target in promotion.items:
            if target.discount_percentage is None:
                continue
            if target.variant_id is not None and target.variant_id == item.variant_id:
                return target.discount_percentage
            if target.variant_id is None and target.product_id == item.product_id:
                return target.discount_percentage
            if (target.category_id is not None and category_id is not None
                    and target.category_id == category_id and not fallback):
                fallback = target.discount_percentage
        return fallback

    def _two_for_one(self, items: List[CartItem]) -> Dict[int, Decimal]:
        # Half of the qualifying units (rounded down) are free, cheapest first
        units = []
        for item in items:
            units.extend([(item.unit_price, item.cart_item_id)] * item.quantity)
        units.sort()

        discounts: Dict[int, Decimal] = {}
        for unit_price, cart_item_id in units[:len(units) // 2]:
            discounts[cart_item_id] = discounts.get(cart_item_id, Decimal("0.00")) + unit_price
        return discounts
