"""
Order related data models
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any
from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    CASH = "cash"
    CARD = "card"


TERMINAL_STATUSES = frozenset({
    OrderStatus.COMPLETED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.REFUNDED.value,
})

REVIEWABLE_STATUSES = frozenset({
    OrderStatus.COMPLETED.value,
    OrderStatus.DELIVERED.value,
})

ACTIVE_STATUSES = (
    OrderStatus.PENDING.value,
    OrderStatus.PREPARING.value,
    OrderStatus.READY.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
)

CANCELLATION_REASONS = [
    {"code": "changed_mind", "label": "Cambié de opinión"},
    {"code": "wrong_order", "label": "Me equivoqué en el pedido"},
    {"code": "long_wait", "label": "El tiempo de espera es muy largo"},
    {"code": "wrong_address", "label": "La dirección de entrega es incorrecta"},
    {"code": "payment_issue", "label": "Problemas con el método de pago"},
    {"code": "other", "label": "Otro motivo"},
]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class OrderItem:
    """Order item data model"""
    order_item_id: int
    order_id: int
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    product_snapshot: Dict[str, Any] = field(default_factory=dict)
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    combo_id: Optional[int] = None
    selected_options: List[Dict[str, Any]] = field(default_factory=list)
    combo_selections: List[Dict[str, Any]] = field(default_factory=list)
    notes: Optional[str] = None
    promotion_id: Optional[int] = None
    promotion_snapshot: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.order_item_id,
            "type": "combo" if self.combo_id is not None else "product",
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "combo_id": self.combo_id,
            "name": self.product_snapshot.get("name"),
            "product_snapshot": self.product_snapshot,
            "quantity": self.quantity,
            "unit_price": f"{self.unit_price:.2f}",
            "subtotal": f"{self.subtotal:.2f}",
            "selected_options": self.selected_options,
            "combo_selections": self.combo_selections,
            "notes": self.notes,
            "promotion": self.promotion_snapshot,
        }


@dataclass
class OrderStatusHistory:
    """Single status change of an order"""
    history_id: int
    order_id: int
    previous_status: Optional[str]
    new_status: str
    changed_by_type: str = "system"
    changed_by_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "changed_by_type": self.changed_by_type,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
        }


@dataclass
class OrderReview:
    """Customer review of a finished order"""
    review_id: int
    order_id: int
    customer_id: int
    overall_rating: int
    food_quality_rating: Optional[int] = None
    speed_rating: Optional[int] = None
    service_rating: Optional[int] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.review_id,
            "order_id": self.order_id,
            "overall_rating": self.overall_rating,
            "food_quality_rating": self.food_quality_rating,
            "speed_rating": self.speed_rating,
            "service_rating": self.service_rating,
            "comment": self.comment,
            "created_at": _iso(self.created_at),
        }


@dataclass
class Order:
    """Order data model"""
    order_id: int
    order_number: str
    customer_id: int
    restaurant_id: int
    service_type: str
    zone: str
    subtotal: Decimal
    discount_total: Decimal
    total: Decimal
    status: str = OrderStatus.PENDING.value
    delivery_fee: Decimal = Decimal("0.00")
    delivery_address_id: Optional[int] = None
    delivery_address_snapshot: Optional[Dict[str, Any]] = None
    nit_id: Optional[int] = None
    nit_snapshot: Optional[Dict[str, Any]] = None
    points_redeemed: int = 0
    points_discount: Decimal = Decimal("0.00")
    points_earned: int = 0
    payment_method: str = PaymentMethod.CASH.value
    payment_status: str = "pending"
    estimated_ready_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    scheduled_for: Optional[datetime] = None
    scheduled_pickup_time: Optional[datetime] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItem] = field(default_factory=list)
    status_history: List[OrderStatusHistory] = field(default_factory=list)
    review: Optional[OrderReview] = None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_be_cancelled(self) -> bool:
        # Customers may only cancel before the kitchen starts preparing
        return self.status == OrderStatus.PENDING.value

    def can_be_reviewed(self) -> bool:
        return self.status in REVIEWABLE_STATUSES and self.review is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.order_id,
            "order_number": self.order_number,
            "restaurant_id": self.restaurant_id,
            "service_type": self.service_type,
            "zone": self.zone,
            "status": self.status,
            "subtotal": f"{self.subtotal:.2f}",
            "discount_total": f"{self.discount_total:.2f}",
            "delivery_fee": f"{self.delivery_fee:.2f}",
            "points_redeemed": self.points_redeemed,
            "points_discount": f"{self.points_discount:.2f}",
            "total": f"{self.total:.2f}",
            "points_earned": self.points_earned,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "delivery_address": self.delivery_address_snapshot,
            "nit": self.nit_snapshot,
            "estimated_ready_at": _iso(self.estimated_ready_at),
            "ready_at": _iso(self.ready_at),
            "delivered_at": _iso(self.delivered_at),
            "scheduled_for": _iso(self.scheduled_for),
            "scheduled_pickup_time": _iso(self.scheduled_pickup_time),
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "can_be_cancelled": self.can_be_cancelled(),
            "can_be_reviewed": self.can_be_reviewed(),
            "created_at": _iso(self.created_at),
            "items": [item.to_dict() for item in self.items],
            "status_history": [entry.to_dict() for entry in self.status_history],
            "review": self.review.to_dict() if self.review else None,
        }
