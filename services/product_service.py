"""
Product service - handles item configuration checks and zone pricing
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Any, Optional

from errors import InvalidCartItemError
from models.catalog import Product, ProductVariant, Combo, PriceList
from database.repository import CatalogRepository

MIN_QUANTITY = 1
MAX_QUANTITY = 10


@dataclass
class PricedLine:
    """A validated product or combo configuration with its unit price"""
    unit_price: Decimal
    name: str
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    combo_id: Optional[int] = None
    category_id: Optional[int] = None
    selected_options: List[Dict[str, Any]] = field(default_factory=list)
    combo_selections: List[Dict[str, Any]] = field(default_factory=list)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "type": "combo" if self.combo_id is not None else "product",
            "name": self.name,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "combo_id": self.combo_id,
            "category_id": self.category_id,
            "unit_price": f"{self.unit_price:.2f}",
        }


class ProductService:
    # Validates item configurations against the catalog and prices them

    def __init__(self, catalog_repository: CatalogRepository):
        self.catalog_repo = catalog_repository

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.catalog_repo.get_product(product_id)

    def get_combo(self, combo_id: int) -> Optional[Combo]:
        return self.catalog_repo.get_combo(combo_id)

    def check_quantity(self, quantity: int):
        if quantity is None or quantity < MIN_QUANTITY or quantity > MAX_QUANTITY:
            raise InvalidCartItemError(f"La cantidad debe estar entre {MIN_QUANTITY} y {MAX_QUANTITY}.")

    def zone_price(self, prices: PriceList, zone: str, service_type: str) -> Optional[Decimal]:
        return prices.price_for(zone, service_type)

    def price_line(self, data: Dict[str, Any], zone: str, service_type: str) -> PricedLine:
        # Exactly one of product_id / combo_id must be given
        product_id = data.get("product_id")
        combo_id = data.get("combo_id")
        if (product_id is None) == (combo_id is None):
            raise InvalidCartItemError("Debes indicar un producto o un combo, pero no ambos.")

        if product_id is not None:
            return self._price_product(product_id, data.get("variant_id"),
                                       data.get("selected_options") or [], zone, service_type)
        return self._price_combo(combo_id, data.get("combo_selections") or [], zone, service_type)

    def _price_product(self, product_id: int, variant_id: Optional[int], selected_options: List[Dict[str, Any]],
                       zone: str, service_type: str) -> PricedLine:
        product = self.catalog_repo.get_product(product_id)
        if not product or not product.is_active:
            raise InvalidCartItemError("El producto no está disponible.")

        variant = self._resolve_variant(product, variant_id)
        options = self._resolve_options(product, selected_options)

        # Variant prices override the product price when set
        base_price = None
        if variant:
            base_price = self.zone_price(variant.prices, zone, service_type)
        if base_price is None:
            base_price = self.zone_price(product.prices, zone, service_type)
        if base_price is None:
            raise InvalidCartItemError(f"{product.name} no tiene precio para este tipo de servicio.")

        modifiers = sum((Decimal(option["price_modifier"]) for option in options), Decimal("0.00"))
        return PricedLine(
            unit_price=(base_price + modifiers).quantize(Decimal("0.01")),
            name=f"{product.name} {variant.name}" if variant else product.name,
            product_id=product.product_id,
            variant_id=variant.variant_id if variant else None,
            category_id=product.category_id,
            selected_options=options,
        )

    def _resolve_variant(self, product: Product, variant_id: Optional[int]) -> Optional[ProductVariant]:
        active_variants = [variant for variant in product.variants if variant.is_active]
        if variant_id is None:
            if active_variants:
                raise InvalidCartItemError(f"Debes seleccionar una variante de {product.name}.")
            return None

        variant = product.find_variant(variant_id)
        if not variant:
            raise InvalidCartItemError("La variante no pertenece al producto.")
        if not variant.is_active:
            raise InvalidCartItemError("La variante no está disponible.")
        return variant

    def _resolve_options(self, product: Product, selected_options: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # Every selection must point at an option of one of the product's sections
        sections = {section.section_id: section for section in product.sections}
        chosen: Dict[int, List[Dict[str, Any]]] = {section_id: [] for section_id in sections}

        for selection in selected_options:
            section = sections.get(selection.get("section_id"))
            if section is None:
                raise InvalidCartItemError("La sección seleccionada no pertenece al producto.")
            option = next((opt for opt in section.options if opt.option_id == selection.get("option_id")), None)
            if option is None:
                raise InvalidCartItemError(f"Opción inválida para {section.name}.")
            chosen[section.section_id].append({
                "section_id": section.section_id,
                "section_name": section.name,
                "option_id": option.option_id,
                "name": option.name,
                "price_modifier": f"{option.price_modifier:.2f}",
            })

        for section_id, section in sections.items():
            count = len(chosen[section_id])
            required = max(1, section.min_selections) if section.is_required else section.min_selections
            if count < required:
                raise InvalidCartItemError(f"Debes seleccionar una opción en {section.name}.")
            if section.max_selections and count > section.max_selections:
                raise InvalidCartItemError(
                    f"Puedes seleccionar máximo {section.max_selections} opciones en {section.name}."
                )

        return [option for section_id in sections for option in chosen[section_id]]

    def _price_combo(self, combo_id: int, combo_selections: List[Dict[str, Any]],
                     zone: str, service_type: str) -> PricedLine:
        combo = self.catalog_repo.get_combo(combo_id)
        if not combo or not combo.is_active:
            raise InvalidCartItemError("El combo no está disponible.")
        if not combo.is_available():
            raise InvalidCartItemError(f"El combo {combo.name} tiene productos no disponibles.")

        by_item = {selection.get("combo_item_id"): selection for selection in combo_selections}
        normalized = []
        for group in combo.choice_groups():
            selection = by_item.get(group.combo_item_id)
            picks = (selection or {}).get("selections") or []
            label = group.choice_label or "el combo"
            if len(picks) != group.quantity:
                raise InvalidCartItemError(f"Debes elegir {group.quantity} opción(es) para {label}.")

            options = {option.option_id: option for option in group.options}
            chosen = []
            for pick in picks:
                option = options.get(pick.get("option_id"))
                if option is None or not option.product_active:
                    raise InvalidCartItemError(f"Opción inválida para {label}.")
                chosen.append({"option_id": option.option_id, "product_id": option.product_id,
                               "name": option.product_name})
            normalized.append({"combo_item_id": group.combo_item_id, "label": group.choice_label,
                               "selections": chosen})

        price = self.zone_price(combo.prices, zone, service_type)
        if price is None:
            raise InvalidCartItemError(f"{combo.name} no tiene precio para este tipo de servicio.")

        return PricedLine(
            unit_price=price,
            name=combo.name,
            combo_id=combo.combo_id,
            combo_selections=normalized,
        )

    def availability_problem(self, product_id: Optional[int], variant_id: Optional[int],
                             combo_id: Optional[int]) -> Optional[str]:
        # Message describing why a stored item can no longer be ordered
        if combo_id is not None:
            combo = self.catalog_repo.get_combo(combo_id)
            if not combo or not combo.is_active:
                return "Un combo de tu carrito ya no está disponible."
            if not combo.is_available():
                return f"El combo {combo.name} tiene productos no disponibles."
            return None

        product = self.catalog_repo.get_product(product_id) if product_id is not None else None
        if not product or not product.is_active:
            return "Un producto de tu carrito ya no está disponible."
        if variant_id is not None:
            variant = product.find_variant(variant_id)
            if not variant or not variant.is_active:
                return f"La variante seleccionada de {product.name} ya no está disponible."
        return None
