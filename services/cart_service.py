"""
Cart service - handles cart operations, pricing and checkout checks
"""
import sqlite3
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Any, Optional

import structlog

from errors import ForbiddenError, InvalidCartItemError, NotFoundError
from models.cart import Cart, CartItem, CartSummary, CartValidation
from models.catalog import ServiceType
from models.customer import CustomerAddress
from models.restaurant import Restaurant
from database.repository import CartRepository, RestaurantRepository
from .product_service import ProductService
from .promotion_service import PromotionService

logger = structlog.get_logger(__name__)


class CartService:
    # Business logic around the customer's active cart

    def __init__(self, cart_repository: CartRepository, restaurant_repository: RestaurantRepository,
                 product_service: ProductService, promotion_service: PromotionService,
                 delivery_fee: Decimal = Decimal("0.00"), cart_ttl_days: int = 7,
                 clock: Callable[[], datetime] = datetime.now):
        self.cart_repo = cart_repository
        self.restaurant_repo = restaurant_repository
        self.product_service = product_service
        self.promotion_service = promotion_service
        self.delivery_fee = delivery_fee
        self.cart_ttl_days = cart_ttl_days
        self.clock = clock

    def get_or_create_cart(self, customer_id: int) -> Cart:
        # At most one active, non expired cart per customer
        now = self.clock()
        cart = self.cart_repo.find_active_cart(customer_id, now)
        if cart:
            return cart

        cart_id = self.cart_repo.create_cart(customer_id, now + timedelta(days=self.cart_ttl_days), now)
        logger.info("cart_created", customer_id=customer_id, cart_id=cart_id)
        return self.cart_repo.get_cart(cart_id)

    def reload(self, cart: Cart) -> Cart:
        return self.cart_repo.get_cart(cart.cart_id)

    def get_owned_item(self, cart: Cart, cart_item_id: int) -> CartItem:
        item = self.cart_repo.get_item(cart_item_id)
        if not item:
            raise NotFoundError("El item no existe.")
        if item.cart_id != cart.cart_id:
            raise ForbiddenError("No tienes permiso para modificar este item.")
        return item

    def add_item(self, cart: Cart, data: Dict[str, Any]) -> CartItem:
        # Validate the configuration, price it for the cart's zone and store it
        quantity = data.get("quantity", 1)
        self.product_service.check_quantity(quantity)
        line = self.product_service.price_line(data, cart.zone, cart.service_type)

        subtotal = line.unit_price * quantity
        item_id = self.cart_repo.add_item(
            cart.cart_id, quantity, line.unit_price, subtotal, self.clock(),
            product_id=line.product_id, variant_id=line.variant_id, combo_id=line.combo_id,
            selected_options=line.selected_options, combo_selections=line.combo_selections,
            notes=data.get("notes"),
        )
        logger.info("cart_item_added", cart_id=cart.cart_id, cart_item_id=item_id,
                    product_id=line.product_id, combo_id=line.combo_id, quantity=quantity)
        return self.cart_repo.get_item(item_id)

    def update_item(self, cart: Cart, cart_item_id: int, data: Dict[str, Any]) -> CartItem:
        # Quantity, options and notes; the price is recomputed
        item = self.get_owned_item(cart, cart_item_id)
        quantity = data.get("quantity") if data.get("quantity") is not None else item.quantity
        self.product_service.check_quantity(quantity)

        unit_price = item.unit_price
        selected_options = item.selected_options
        if item.is_product():
            if "selected_options" in data and data["selected_options"] is not None:
                selected_options = data["selected_options"]
            line = self.product_service.price_line({
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "selected_options": selected_options,
            }, cart.zone, cart.service_type)
            unit_price = line.unit_price
            selected_options = line.selected_options

        notes = data["notes"] if "notes" in data else item.notes
        self.cart_repo.update_item(item.cart_item_id, quantity, unit_price, unit_price * quantity,
                                   selected_options, notes)
        return self.cart_repo.get_item(item.cart_item_id)

    def remove_item(self, cart: Cart, cart_item_id: int):
        item = self.get_owned_item(cart, cart_item_id)
        self.cart_repo.delete_item(item.cart_item_id)

    def clear_cart(self, cart: Cart):
        self.cart_repo.clear_items(cart.cart_id)

    def update_restaurant(self, cart: Cart, restaurant: Restaurant) -> Cart:
        # Choosing a restaurant means pickup at that location
        self.cart_repo.update_cart(cart.cart_id, {
            "restaurant_id": restaurant.restaurant_id,
            "service_type": ServiceType.PICKUP.value,
            "zone": restaurant.price_location or "capital",
            "delivery_address_id": None,
        })
        return self._reprice(cart.cart_id)

    def update_service_type(self, cart: Cart, service_type: str, zone: Optional[str] = None) -> Cart:
        fields = {"service_type": service_type}
        if zone:
            fields["zone"] = zone
        if service_type == ServiceType.PICKUP.value:
            fields["delivery_address_id"] = None
        self.cart_repo.update_cart(cart.cart_id, fields)
        return self._reprice(cart.cart_id)

    def update_delivery_address(self, cart: Cart, address: CustomerAddress, restaurant: Restaurant,
                                zone: str) -> Cart:
        self.cart_repo.update_cart(cart.cart_id, {
            "delivery_address_id": address.address_id,
            "restaurant_id": restaurant.restaurant_id,
            "service_type": ServiceType.DELIVERY.value,
            "zone": zone,
        })
        return self._reprice(cart.cart_id)

    def _reprice(self, cart_id: int) -> Cart:
        # Items that no longer validate keep their last price and show up in validate_cart
        cart = self.cart_repo.get_cart(cart_id)
        for item in cart.items:
            unit_price = self._current_price(item, cart.zone, cart.service_type)
            if unit_price is not None and unit_price != item.unit_price:
                self.cart_repo.update_item_price(item.cart_item_id, unit_price, unit_price * item.quantity)
        return self.cart_repo.get_cart(cart_id)

    def _current_price(self, item: CartItem, zone: str, service_type: str) -> Optional[Decimal]:
        try:
            line = self.product_service.price_line({
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "combo_id": item.combo_id,
                "selected_options": item.selected_options,
                "combo_selections": self.selection_input(item.combo_selections),
            }, zone, service_type)
        except InvalidCartItemError as e:
            logger.warning("cart_item_reprice_failed", cart_item_id=item.cart_item_id, reason=e.message)
            return None
        return line.unit_price

    def preview_pricing(self, cart: Cart, restaurant: Restaurant, service_type: str, zone: str,
                        delivery_address_id: Optional[int] = None) -> Cart:
        """
        Copy of the cart priced for another restaurant, service type or zone.
        Nothing is saved; save_pricing() writes the copy back.
        """
        items = []
        for item in cart.items:
            unit_price = self._current_price(item, zone, service_type)
            if unit_price is None:
                items.append(item)
            else:
                items.append(replace(item, unit_price=unit_price, subtotal=unit_price * item.quantity))
        return replace(cart, restaurant_id=restaurant.restaurant_id, service_type=service_type, zone=zone,
                       delivery_address_id=delivery_address_id, items=items)

    def save_pricing(self, cart: Cart, conn: Optional[sqlite3.Connection] = None):
        self.cart_repo.update_cart(cart.cart_id, {
            "restaurant_id": cart.restaurant_id,
            "service_type": cart.service_type,
            "zone": cart.zone,
            "delivery_address_id": cart.delivery_address_id,
        }, conn)
        for item in cart.items:
            self.cart_repo.update_item_price(item.cart_item_id, item.unit_price, item.subtotal, conn)

    def selection_input(self, combo_selections: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                "combo_item_id": group["combo_item_id"],
                "selections": [{"option_id": pick["option_id"]} for pick in group.get("selections", [])],
            }
            for group in combo_selections
        ]

    def get_cart_summary(self, cart: Cart) -> CartSummary:
        # total = max(0, subtotal - discounts + delivery_fee)
        subtotal = sum((item.subtotal for item in cart.items), Decimal("0.00"))
        promotions = self.promotion_service.apply_promotions(cart.items)
        discounts = promotions["discounts"]
        delivery_fee = self.delivery_fee if cart.service_type == ServiceType.DELIVERY.value else Decimal("0.00")
        total = max(Decimal("0.00"), subtotal - discounts + delivery_fee)

        return CartSummary(
            subtotal=subtotal.quantize(Decimal("0.01")),
            discounts=discounts,
            delivery_fee=delivery_fee.quantize(Decimal("0.01")),
            total=total.quantize(Decimal("0.01")),
            items_count=sum(item.quantity for item in cart.items),
            promotions_applied=promotions["promotions_applied"],
            item_discounts=promotions["item_discounts"],
        )

    def validate_cart(self, cart: Cart) -> CartValidation:
        messages = []
        if cart.is_empty():
            messages.append("El carrito está vacío.")

        for item in cart.items:
            problem = self.product_service.availability_problem(item.product_id, item.variant_id, item.combo_id)
            if problem:
                messages.append(problem)

        return CartValidation(valid=not messages, messages=messages)

    def checkout_messages(self, cart: Cart) -> List[str]:
        # Everything that would block creating an order right now
        messages = list(self.validate_cart(cart).messages)

        restaurant = self.restaurant_repo.get_restaurant(cart.restaurant_id) if cart.restaurant_id else None
        if not restaurant:
            messages.append("Debes seleccionar un restaurante.")
        elif not restaurant.is_active:
            messages.append("El restaurante seleccionado no está disponible.")
        else:
            if cart.service_type == ServiceType.PICKUP.value and not restaurant.pickup_active:
                messages.append("El restaurante no acepta pedidos para recoger.")
            if cart.service_type == ServiceType.DELIVERY.value and not restaurant.delivery_active:
                messages.append("El restaurante no acepta pedidos a domicilio.")
            summary = self.get_cart_summary(cart)
            if summary.subtotal < restaurant.minimum_order_amount:
                messages.append(f"El monto mínimo de orden es Q{restaurant.minimum_order_amount:.2f}.")

        if cart.service_type == ServiceType.DELIVERY.value and not cart.delivery_address_id:
            messages.append("Debes seleccionar una dirección de entrega.")

        return messages
