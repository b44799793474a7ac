"""
Cart related data models
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Dict, Any


class CartStatus(Enum):
    ACTIVE = "active"
    CONVERTED = "converted"
    ABANDONED = "abandoned"


@dataclass
class CartItem:
    """Cart item data model"""
    cart_item_id: int
    cart_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    combo_id: Optional[int] = None
    selected_options: List[Dict[str, Any]] = field(default_factory=list)
    combo_selections: List[Dict[str, Any]] = field(default_factory=list)
    notes: Optional[str] = None
    name: str = ""
    created_at: Optional[datetime] = None

    def is_product(self) -> bool:
        return self.product_id is not None

    def is_combo(self) -> bool:
        return self.combo_id is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.cart_item_id,
            "type": "combo" if self.is_combo() else "product",
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "combo_id": self.combo_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": f"{self.unit_price:.2f}",
            "subtotal": f"{self.subtotal:.2f}",
            "selected_options": self.selected_options,
            "combo_selections": self.combo_selections,
            "notes": self.notes,
        }


@dataclass
class Cart:
    """Cart data model"""
    cart_id: int
    customer_id: int
    service_type: str = "pickup"
    zone: str = "capital"
    status: str = CartStatus.ACTIVE.value
    restaurant_id: Optional[int] = None
    delivery_address_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[CartItem] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.items

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass
class CartSummary:
    """Cart summary data model"""
    subtotal: Decimal
    discounts: Decimal
    delivery_fee: Decimal
    total: Decimal
    items_count: int
    promotions_applied: List[Dict[str, Any]] = field(default_factory=list)
    item_discounts: Dict[int, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "subtotal": f"{self.subtotal:.2f}",
            "total_discount": f"{self.discounts:.2f}",
            "promotions_applied": self.promotions_applied,
            "delivery_fee": f"{self.delivery_fee:.2f}",
            "total": f"{self.total:.2f}",
            "items_count": self.items_count,
        }


@dataclass
class CartValidation:
    """Result of validating a cart's contents"""
    valid: bool
    messages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.valid, "errors": self.messages}
