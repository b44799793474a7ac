"""
Order service - handles order creation from carts, status changes, cancellation and reorders
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Any, Optional

import structlog

from errors import (
    AddressOutsideDeliveryZoneError, CartValidationError, ForbiddenError, InvalidCartItemError,
    InvalidStatusTransitionError, MinimumOrderAmountError, NotFoundError, OrderingError,
    OrderNotCancellableError, PromotionExpiredError, RestaurantClosedError, ReviewNotAllowedError,
)
from models.cart import Cart, CartItem, CartStatus, CartSummary
from models.catalog import ServiceType
from models.order import (
    ACTIVE_STATUSES, REVIEWABLE_STATUSES, Order, OrderItem, OrderReview, OrderStatus,
)
from database.connection import DatabaseConnection
from database.customer_repository import CustomerRepository
from database.repository import CartRepository, OrderRepository, RestaurantRepository
from .cart_service import CartService
from .delivery_validation_service import DeliveryValidationService
from .points_service import ORDER_REFERENCE, PointsService
from .product_service import ProductService
from .promotion_service import PromotionService

logger = structlog.get_logger(__name__)

SCHEDULE_GRACE = timedelta(minutes=2)

_BASE_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PREPARING.value, OrderStatus.CANCELLED.value},
    OrderStatus.PREPARING.value: {OrderStatus.READY.value, OrderStatus.CANCELLED.value},
    OrderStatus.COMPLETED.value: set(),
    OrderStatus.CANCELLED.value: set(),
    OrderStatus.REFUNDED.value: set(),
}

_PICKUP_TRANSITIONS = {
    OrderStatus.READY.value: {OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value},
}

_DELIVERY_TRANSITIONS = {
    OrderStatus.READY.value: {OrderStatus.OUT_FOR_DELIVERY.value, OrderStatus.CANCELLED.value},
    OrderStatus.OUT_FOR_DELIVERY.value: {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value},
    OrderStatus.DELIVERED.value: {OrderStatus.COMPLETED.value},
}


def allowed_transitions(current: str, service_type: str) -> set:
    table = dict(_BASE_TRANSITIONS)
    table.update(_PICKUP_TRANSITIONS if service_type == ServiceType.PICKUP.value else _DELIVERY_TRANSITIONS)
    return table.get(current, set())


class OrderService:
    # Cart to order transition and the order lifecycle

    def __init__(self, db_connection: DatabaseConnection, order_repository: OrderRepository,
                 cart_repository: CartRepository, restaurant_repository: RestaurantRepository,
                 customer_repository: CustomerRepository, cart_service: CartService,
                 product_service: ProductService, promotion_service: PromotionService,
                 points_service: PointsService, delivery_validation: DeliveryValidationService,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db_connection
        self.order_repo = order_repository
        self.cart_repo = cart_repository
        self.restaurant_repo = restaurant_repository
        self.customer_repo = customer_repository
        self.cart_service = cart_service
        self.product_service = product_service
        self.promotion_service = promotion_service
        self.points_service = points_service
        self.delivery_validation = delivery_validation
        self.clock = clock

    def create_from_cart(self, cart: Cart, data: Dict[str, Any]) -> Order:
        # Validate everything first, then write the order in one transaction
        validation = self.cart_service.validate_cart(cart)
        if not validation.valid:
            raise CartValidationError(validation.messages)

        now = self.clock()
        service_type = data.get("service_type") or cart.service_type
        restaurant_id = data.get("restaurant_id") or cart.restaurant_id
        restaurant = self.restaurant_repo.get_restaurant(restaurant_id) if restaurant_id else None

        address = None
        scheduled_pickup_time = None
        scheduled_for = None

        if service_type == ServiceType.PICKUP.value:
            if not restaurant:
                raise NotFoundError("Restaurante no encontrado.")
            cart = self.cart_service.preview_pricing(cart, restaurant, service_type,
                                                     restaurant.price_location or "capital")
        else:
            address_id = data.get("delivery_address_id") or cart.delivery_address_id
            if not address_id:
                raise OrderingError("La dirección de entrega es requerida para delivery.")
            address = self.customer_repo.get_address(address_id)
            if not address or address.customer_id != cart.customer_id:
                raise NotFoundError("Dirección no encontrada.")

            # The geofence decides the restaurant and the price zone
            result = self.delivery_validation.validate_delivery_address(address)
            if not result.is_valid:
                raise AddressOutsideDeliveryZoneError(
                    address.latitude, address.longitude,
                    result.error_message or "La dirección está fuera de las zonas de entrega.",
                    result.nearby_pickup_restaurants,
                )
            restaurant = result.restaurant
            cart = self.cart_service.preview_pricing(cart, restaurant, service_type, result.zone,
                                                     address.address_id)

        zone = cart.zone
        summary = self.cart_service.get_cart_summary(cart)
        if restaurant.minimum_order_amount > 0 and summary.total < restaurant.minimum_order_amount:
            raise MinimumOrderAmountError(restaurant.minimum_order_amount, summary.total, restaurant.name)

        if not restaurant.can_accept_orders_now(service_type, now):
            raise RestaurantClosedError(restaurant.name, service_type,
                                        restaurant.last_order_time(service_type, now))

        if service_type == ServiceType.PICKUP.value:
            scheduled_pickup_time = self._scheduled_time(
                data.get("scheduled_pickup_time"), now, restaurant.estimated_pickup_time,
                "La hora de recogida ya no está disponible. Por favor selecciona una nueva hora.")
            estimated_minutes = restaurant.estimated_pickup_time
        else:
            scheduled_for = self._scheduled_time(
                data.get("scheduled_delivery_time"), now, restaurant.estimated_delivery_time,
                "La hora de entrega ya no está disponible. Por favor selecciona una nueva hora.")
            estimated_minutes = restaurant.estimated_delivery_time

        nit = None
        if data.get("nit_id"):
            nit = self.customer_repo.get_nit(data["nit_id"])
            if not nit or nit.customer_id != cart.customer_id:
                raise OrderingError("El NIT no pertenece al cliente.")

        self._check_applied_promotions(summary, now)

        customer = self.customer_repo.get_customer(cart.customer_id)
        points_to_redeem = int(data.get("points_to_redeem") or 0)
        points_discount = Decimal("0.00")
        if points_to_redeem > 0:
            # Only the points the order total can absorb are taken
            points_to_redeem = min(points_to_redeem, self.points_service.points_covering(summary.total))
            points_discount = min(self.points_service.points_value(points_to_redeem), summary.total)
        total = summary.total - points_discount

        order = Order(
            order_id=0,
            order_number="",
            customer_id=cart.customer_id,
            restaurant_id=restaurant.restaurant_id,
            service_type=service_type,
            zone=zone,
            subtotal=summary.subtotal,
            discount_total=summary.discounts,
            delivery_fee=summary.delivery_fee,
            total=total,
            status=OrderStatus.PENDING.value,
            delivery_address_id=address.address_id if address else None,
            delivery_address_snapshot=address.snapshot() if address else None,
            nit_id=nit.nit_id if nit else None,
            nit_snapshot=nit.snapshot() if nit else None,
            points_redeemed=points_to_redeem,
            points_discount=points_discount,
            points_earned=self.points_service.calculate_points_to_earn(total, customer),
            payment_method=data.get("payment_method") or "cash",
            estimated_ready_at=now + timedelta(minutes=estimated_minutes),
            scheduled_for=scheduled_for,
            scheduled_pickup_time=scheduled_pickup_time,
            notes=data.get("notes"),
            created_at=now,
        )
        order_items = [self._order_item(item, summary) for item in cart.items]

        with self.db.transaction() as conn:
            prefix = f"ORD-{now:%Y%m%d}-{restaurant.restaurant_id}-"
            order.order_number = f"{prefix}{self.order_repo.count_orders_with_prefix(prefix, conn) + 1:04d}"
            order.order_id = self.order_repo.create_order(order, conn)
            for order_item in order_items:
                self.order_repo.add_item(order.order_id, order_item, conn)

            if points_to_redeem > 0:
                self.points_service.redeem_points(
                    cart.customer_id, points_to_redeem, ORDER_REFERENCE, order.order_id,
                    f"Canje en orden #{order.order_number}", conn=conn,
                )

            self.order_repo.add_status_history(
                order.order_id, None, OrderStatus.PENDING.value, now,
                changed_by_type="customer", changed_by_id=cart.customer_id, notes="Orden creada", conn=conn,
            )
            self.cart_service.save_pricing(cart, conn)
            self.cart_repo.update_cart(cart.cart_id, {"status": CartStatus.CONVERTED.value}, conn)

        logger.info("order_created", order_id=order.order_id, order_number=order.order_number,
                    customer_id=cart.customer_id, restaurant_id=restaurant.restaurant_id,
                    service_type=service_type, total=str(total), items=len(order_items))
        if points_to_redeem > 0:
            self.points_service.refresh_wallets(cart.customer_id)
        return self.order_repo.get_order(order.order_id)

    def _scheduled_time(self, requested: Optional[datetime], now: datetime, default_minutes: int,
                        message: str) -> datetime:
        # Requested times may lag the clock by a small grace period only
        if requested is None:
            return now + timedelta(minutes=default_minutes)
        if requested.tzinfo is not None:
            requested = requested.astimezone().replace(tzinfo=None)
        if requested < now - SCHEDULE_GRACE:
            raise OrderingError(message)
        return requested

    def _check_applied_promotions(self, summary: CartSummary, now: datetime):
        checked = set()
        for discount in summary.item_discounts.values():
            promotion_id = discount["promotion_id"]
            if discount["discount"] <= 0 or promotion_id in checked:
                continue
            promotion = self.promotion_service.get_promotion(promotion_id)
            if not promotion or not self.promotion_service.is_valid_now(promotion, now):
                raise PromotionExpiredError(discount["promotion"]["name"], promotion_id)
            checked.add(promotion_id)

    def _order_item(self, item: CartItem, summary: CartSummary) -> OrderItem:
        # Snapshot names and prices as they are right now
        if item.is_combo():
            combo = self.product_service.get_combo(item.combo_id)
            snapshot = {
                "combo_id": item.combo_id,
                "name": combo.name,
                "description": combo.description,
                "items": [
                    {
                        "product_id": combo_item.product_id,
                        "product_name": combo_item.product_name,
                        "variant_id": combo_item.variant_id,
                        "quantity": combo_item.quantity,
                        "choice_label": combo_item.choice_label,
                    }
                    for combo_item in combo.items
                ],
            }
        else:
            product = self.product_service.get_product(item.product_id)
            variant = product.find_variant(item.variant_id) if item.variant_id else None
            snapshot = {
                "product_id": product.product_id,
                "name": product.name,
                "description": product.description,
                "category_id": product.category_id,
                "category": product.category_name,
                "variant_id": item.variant_id,
                "variant": variant.name if variant else None,
            }

        promotion_id = None
        promotion_snapshot = None
        discount = summary.item_discounts.get(item.cart_item_id)
        if discount and discount["discount"] > 0:
            promotion_id = discount["promotion_id"]
            promotion_snapshot = dict(discount["promotion"])
            promotion_snapshot.update({
                "discount_amount": f"{discount['discount']:.2f}",
                "original_price": f"{discount['original_price']:.2f}",
                "final_price": f"{discount['final_price']:.2f}",
            })

        return OrderItem(
            order_item_id=0,
            order_id=0,
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=item.subtotal,
            product_snapshot=snapshot,
            product_id=item.product_id,
            variant_id=item.variant_id,
            combo_id=item.combo_id,
            selected_options=item.selected_options,
            combo_selections=item.combo_selections,
            notes=item.notes,
            promotion_id=promotion_id,
            promotion_snapshot=promotion_snapshot,
        )

    def get_order(self, order_id: int) -> Order:
        order = self.order_repo.get_order(order_id)
        if not order:
            raise NotFoundError("Orden no encontrada.")
        return order

    def get_owned_order(self, order_id: int, customer_id: int) -> Order:
        order = self.get_order(order_id)
        if order.customer_id != customer_id:
            raise ForbiddenError("No tienes permiso para ver esta orden.")
        return order

    def update_status(self, order: Order, new_status: str, notes: Optional[str] = None,
                      changed_by_type: str = "system", changed_by_id: Optional[int] = None) -> Order:
        previous_status = order.status
        if new_status not in allowed_transitions(previous_status, order.service_type):
            raise InvalidStatusTransitionError(previous_status, new_status)

        now = self.clock()
        fields: Dict[str, Any] = {"status": new_status}
        if new_status == OrderStatus.READY.value:
            fields["ready_at"] = now
        elif new_status == OrderStatus.DELIVERED.value:
            fields["delivered_at"] = now

        with self.db.transaction() as conn:
            self.order_repo.update_order(order.order_id, fields, conn)
            self.order_repo.add_status_history(order.order_id, previous_status, new_status, now,
                                               changed_by_type=changed_by_type, changed_by_id=changed_by_id,
                                               notes=notes, conn=conn)

        logger.info("order_status_changed", order_id=order.order_id, previous_status=previous_status,
                    new_status=new_status, changed_by_type=changed_by_type)

        if new_status == OrderStatus.COMPLETED.value:
            earned = self.points_service.credit_points(order.customer_id, order)
            self.order_repo.update_order(order.order_id, {"points_earned": earned})
            self.customer_repo.update_customer(order.customer_id, {"last_purchase_at": now})
        elif new_status == OrderStatus.CANCELLED.value:
            self._refund_redeemed_points(order)

        return self.get_order(order.order_id)

    def cancel(self, order: Order, reason: str) -> Order:
        # Customers may only cancel orders the kitchen has not started
        if not order.can_be_cancelled():
            raise OrderNotCancellableError()

        now = self.clock()
        with self.db.transaction() as conn:
            self.order_repo.update_order(order.order_id, {
                "status": OrderStatus.CANCELLED.value,
                "cancellation_reason": reason,
            }, conn)
            self.order_repo.add_status_history(
                order.order_id, order.status, OrderStatus.CANCELLED.value, now,
                changed_by_type="customer", changed_by_id=order.customer_id,
                notes=f"Cancelada: {reason}", conn=conn,
            )

        logger.info("order_cancelled", order_id=order.order_id, reason=reason)
        self._refund_redeemed_points(order)
        return self.get_order(order.order_id)

    def _refund_redeemed_points(self, order: Order):
        if order.points_redeemed > 0:
            self.points_service.refund_points(
                order.customer_id, order.points_redeemed, ORDER_REFERENCE, order.order_id,
                f"Devolución de puntos por cancelación de orden #{order.order_number}",
            )

    def reorder(self, order: Order, customer_id: int) -> Cart:
        # Items that no longer validate are skipped
        cart = self.cart_service.get_or_create_cart(customer_id)
        self.cart_service.clear_cart(cart)

        if order.restaurant_id:
            self.cart_repo.update_cart(cart.cart_id, {
                "restaurant_id": order.restaurant_id,
                "service_type": order.service_type,
                "zone": order.zone,
            })
            cart = self.cart_repo.get_cart(cart.cart_id)

        for order_item in order.items:
            if order_item.product_id is None and order_item.combo_id is None:
                continue
            item_data: Dict[str, Any] = {
                "quantity": order_item.quantity,
                "notes": order_item.notes,
            }
            if order_item.combo_id is not None:
                item_data["combo_id"] = order_item.combo_id
                item_data["combo_selections"] = self.cart_service.selection_input(order_item.combo_selections)
            else:
                item_data["product_id"] = order_item.product_id
                item_data["variant_id"] = order_item.variant_id
                item_data["selected_options"] = order_item.selected_options

            try:
                self.cart_service.add_item(cart, item_data)
            except InvalidCartItemError as e:
                logger.info("reorder_item_skipped", order_id=order.order_id,
                            product_id=order_item.product_id, combo_id=order_item.combo_id, reason=e.message)

        return self.cart_repo.get_cart(cart.cart_id)

    def get_active_orders(self, customer_id: int) -> List[Order]:
        orders, _ = self.order_repo.list_for_customer(customer_id, list(ACTIVE_STATUSES), limit=100)
        return orders

    def get_history(self, customer_id: int, page: int = 1, per_page: int = 15,
                    status: Optional[str] = None) -> Dict[str, Any]:
        page = max(1, page)
        per_page = min(max(1, per_page), 50)
        statuses = [status] if status else None
        orders, total = self.order_repo.list_for_customer(customer_id, statuses, per_page, (page - 1) * per_page)
        return {
            "data": orders,
            "meta": {
                "current_page": page,
                "per_page": per_page,
                "total": total,
                "last_page": max(1, -(-total // per_page)),
            },
        }

    def get_recent_orders(self, customer_id: int, limit: int = 5) -> List[Order]:
        orders, _ = self.order_repo.list_for_customer(customer_id, list(REVIEWABLE_STATUSES), limit=limit)
        return orders

    def track(self, order: Order) -> Dict[str, Any]:
        restaurant = self.restaurant_repo.get_restaurant(order.restaurant_id)
        return {
            "order_number": order.order_number,
            "status": order.status,
            "service_type": order.service_type,
            "estimated_ready_at": order.estimated_ready_at.isoformat() if order.estimated_ready_at else None,
            "ready_at": order.ready_at.isoformat() if order.ready_at else None,
            "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
            "restaurant": {
                "id": restaurant.restaurant_id,
                "name": restaurant.name,
                "address": restaurant.address,
                "phone": restaurant.phone,
                "latitude": restaurant.latitude,
                "longitude": restaurant.longitude,
            } if restaurant else None,
            "timeline": [entry.to_dict() for entry in order.status_history],
        }

    def review(self, order: Order, customer_id: int, ratings: Dict[str, Any]) -> OrderReview:
        # One review per completed or delivered order
        if order.status not in REVIEWABLE_STATUSES:
            raise ReviewNotAllowedError("Solo puedes calificar órdenes completadas o entregadas.")
        if order.review is not None:
            raise ReviewNotAllowedError("Esta orden ya fue calificada.")

        review = OrderReview(
            review_id=0,
            order_id=order.order_id,
            customer_id=customer_id,
            overall_rating=ratings["overall_rating"],
            food_quality_rating=ratings.get("food_quality_rating"),
            speed_rating=ratings.get("speed_rating"),
            service_rating=ratings.get("service_rating"),
            comment=ratings.get("comment"),
            created_at=self.clock(),
        )
        review.review_id = self.order_repo.add_review(review)
        logger.info("order_reviewed", order_id=order.order_id, overall_rating=review.overall_rating)
        return review
