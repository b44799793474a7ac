"""
Catalog related data models (products, variants, options, combos, promotions)
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any


class ServiceType(Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class Zone(Enum):
    CAPITAL = "capital"
    INTERIOR = "interior"


class PromotionType(Enum):
    PERCENTAGE_DISCOUNT = "percentage_discount"
    TWO_FOR_ONE = "two_for_one"


def money(value) -> Optional[Decimal]:
    """Normalize a stored amount to a 2 decimal Decimal"""
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


@dataclass
class PriceList:
    """Prices by service type and zone"""
    pickup_capital: Optional[Decimal] = None
    delivery_capital: Optional[Decimal] = None
    pickup_interior: Optional[Decimal] = None
    delivery_interior: Optional[Decimal] = None

    def price_for(self, zone: str, service_type: str) -> Optional[Decimal]:
        # Unknown combinations fall back to the capital pickup price
        key = f"{service_type}_{zone}"
        if key not in ("pickup_capital", "delivery_capital", "pickup_interior", "delivery_interior"):
            key = "pickup_capital"
        return getattr(self, key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pickup_capital": _fmt(self.pickup_capital),
            "delivery_capital": _fmt(self.delivery_capital),
            "pickup_interior": _fmt(self.pickup_interior),
            "delivery_interior": _fmt(self.delivery_interior),
        }


def _fmt(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else f"{value:.2f}"


@dataclass
class SectionOption:
    """Selectable option inside a section (e.g. bread type, extra cheese)"""
    option_id: int
    section_id: int
    name: str
    price_modifier: Decimal = Decimal("0.00")


@dataclass
class Section:
    """Group of options attached to a product"""
    section_id: int
    name: str
    is_required: bool = False
    min_selections: int = 0
    max_selections: int = 1
    options: List[SectionOption] = field(default_factory=list)

    def option_ids(self) -> List[int]:
        return [option.option_id for option in self.options]


@dataclass
class ProductVariant:
    """Product variant data model (e.g. 15cm / 30cm)"""
    variant_id: int
    product_id: int
    name: str
    is_active: bool = True
    prices: PriceList = field(default_factory=PriceList)
    is_redeemable: bool = False
    points_cost: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.variant_id,
            "product_id": self.product_id,
            "name": self.name,
            "is_active": self.is_active,
            "prices": self.prices.to_dict(),
            "points_cost": self.points_cost,
        }


@dataclass
class Product:
    """Product data model"""
    product_id: int
    name: str
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    prices: PriceList = field(default_factory=PriceList)
    is_redeemable: bool = False
    points_cost: Optional[int] = None
    sections: List[Section] = field(default_factory=list)
    variants: List[ProductVariant] = field(default_factory=list)

    def find_variant(self, variant_id: int) -> Optional[ProductVariant]:
        for variant in self.variants:
            if variant.variant_id == variant_id:
                return variant
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.product_id,
            "name": self.name,
            "category_id": self.category_id,
            "category": self.category_name,
            "description": self.description,
            "is_active": self.is_active,
            "prices": self.prices.to_dict(),
            "points_cost": self.points_cost,
            "variants": [variant.to_dict() for variant in self.variants],
        }


@dataclass
class ComboItemOption:
    """Allowed product for a combo choice group"""
    option_id: int
    combo_item_id: int
    product_id: int
    product_name: str = ""
    variant_id: Optional[int] = None
    product_active: bool = True


@dataclass
class ComboItem:
    """Combo component: a fixed product or a choice group"""
    combo_item_id: int
    combo_id: int
    quantity: int = 1
    product_id: Optional[int] = None
    product_name: str = ""
    variant_id: Optional[int] = None
    product_active: bool = True
    is_choice_group: bool = False
    choice_label: Optional[str] = None
    options: List[ComboItemOption] = field(default_factory=list)

    def option_ids(self) -> List[int]:
        return [option.option_id for option in self.options]


@dataclass
class Combo:
    """Combo data model"""
    combo_id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True
    prices: PriceList = field(default_factory=PriceList)
    is_redeemable: bool = False
    points_cost: Optional[int] = None
    items: List[ComboItem] = field(default_factory=list)

    def is_available(self) -> bool:
        # Fixed items need an active product, choice groups need one active option
        for item in self.items:
            if item.is_choice_group:
                if not any(option.product_active for option in item.options):
                    return False
            elif not item.product_active:
                return False
        return True

    def choice_groups(self) -> List[ComboItem]:
        return [item for item in self.items if item.is_choice_group]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.combo_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "prices": self.prices.to_dict(),
            "points_cost": self.points_cost,
            "items": [
                {
                    "id": item.combo_item_id,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "is_choice_group": item.is_choice_group,
                    "choice_label": item.choice_label,
                }
                for item in self.items
            ],
        }


@dataclass
class PromotionItem:
    """What a promotion targets: a product, a variant or a whole category"""
    item_id: int
    promotion_id: int
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    category_id: Optional[int] = None
    discount_percentage: Optional[Decimal] = None


@dataclass
class Promotion:
    """Promotion data model"""
    promotion_id: int
    name: str
    promotion_type: str
    is_active: bool = True
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    time_from: Optional[time] = None
    time_until: Optional[time] = None
    weekdays: Optional[List[int]] = None  # ISO weekdays, 1 = Monday
    items: List[PromotionItem] = field(default_factory=list)

    def is_valid_at(self, moment: datetime) -> bool:
        if not self.is_active:
            return False
        if self.weekdays and moment.isoweekday() not in self.weekdays:
            return False
        today = moment.date()
        if self.valid_from and today < self.valid_from:
            return False
        if self.valid_until and today > self.valid_until:
            return False
        now_time = moment.time()
        if self.time_from and now_time < self.time_from:
            return False
        if self.time_until and now_time > self.time_until:
            return False
        return True

    def snapshot(self) -> Dict[str, Any]:
        value = None
        percentages = [item.discount_percentage for item in self.items if item.discount_percentage]
        if self.promotion_type == PromotionType.PERCENTAGE_DISCOUNT.value and percentages:
            value = f"{percentages[0].normalize():f}%"
        elif self.promotion_type == PromotionType.TWO_FOR_ONE.value:
            value = "2x1"
        return {
            "id": self.promotion_id,
            "name": self.name,
            "type": self.promotion_type,
            "value": value,
        }
