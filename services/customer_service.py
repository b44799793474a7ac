"""
Customer service - profile, saved addresses, NITs, devices, favorites and product views
"""
from datetime import datetime
from typing import Callable, Dict, List, Any, Optional

import structlog

from errors import ForbiddenError, NotFoundError
from models.customer import (
    Customer, CustomerAddress, CustomerDevice, CustomerNit, Favorable, FavorableKind, Favorite, ProductView,
)
from database.customer_repository import CustomerRepository
from database.repository import CatalogRepository
from .delivery_validation_service import DeliveryValidationService

logger = structlog.get_logger(__name__)

RECENT_VIEWS_LIMIT = 20


class CustomerService:
    # Everything a customer manages about their own account

    def __init__(self, customer_repository: CustomerRepository, catalog_repository: CatalogRepository,
                 delivery_validation: DeliveryValidationService,
                 clock: Callable[[], datetime] = datetime.now):
        self.customer_repo = customer_repository
        self.catalog_repo = catalog_repository
        self.delivery_validation = delivery_validation
        self.clock = clock

    # ---- profile ----

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.customer_repo.get_customer(customer_id)
        if not customer:
            raise NotFoundError("Cliente no encontrado.")
        return customer

    def authenticate(self, api_token: str) -> Optional[Customer]:
        if not api_token:
            return None
        return self.customer_repo.find_by_token(api_token)

    def update_profile(self, customer_id: int, data: Dict[str, Any]) -> Customer:
        fields = {key: value for key, value in data.items() if key in ("name", "phone", "email") and value is not None}
        self.customer_repo.update_customer(customer_id, fields)
        return self.get_customer(customer_id)

    # ---- addresses ----

    def list_addresses(self, customer_id: int) -> List[CustomerAddress]:
        return self.customer_repo.list_addresses(customer_id)

    def get_address(self, customer_id: int, address_id: int) -> CustomerAddress:
        address = self.customer_repo.get_address(address_id)
        if not address:
            raise NotFoundError("Dirección no encontrada.")
        if address.customer_id != customer_id:
            raise ForbiddenError("No tienes permiso para acceder a esta dirección.")
        return address

    def zone_for(self, lat: float, lng: float) -> str:
        # Addresses outside every geofence are still saved, priced as capital
        result = self.delivery_validation.validate_coordinates(lat, lng)
        return result.zone if result.is_valid else "capital"

    def create_address(self, customer_id: int, data: Dict[str, Any]) -> CustomerAddress:
        # The first address always becomes the default
        is_default = bool(data.get("is_default")) or not self.customer_repo.list_addresses(customer_id)
        address_id = self.customer_repo.create_address(
            customer_id,
            label=data["label"],
            address_line=data["address_line"],
            latitude=data["latitude"],
            longitude=data["longitude"],
            zone=self.zone_for(data["latitude"], data["longitude"]),
            now=self.clock(),
            delivery_notes=data.get("delivery_notes"),
            is_default=is_default,
        )
        return self.customer_repo.get_address(address_id)

    def update_address(self, customer_id: int, address_id: int, data: Dict[str, Any]) -> CustomerAddress:
        address = self.get_address(customer_id, address_id)
        fields = {
            key: value for key, value in data.items()
            if key in ("label", "address_line", "latitude", "longitude", "delivery_notes") and value is not None
        }
        latitude = fields.get("latitude", address.latitude)
        longitude = fields.get("longitude", address.longitude)
        if latitude != address.latitude or longitude != address.longitude:
            fields["zone"] = self.zone_for(latitude, longitude)

        self.customer_repo.update_address(address_id, fields)
        if data.get("is_default"):
            self.customer_repo.set_default_address(customer_id, address_id)
        return self.customer_repo.get_address(address_id)

    def delete_address(self, customer_id: int, address_id: int):
        self.get_address(customer_id, address_id)
        self.customer_repo.delete_address(address_id)

    def set_default_address(self, customer_id: int, address_id: int) -> CustomerAddress:
        self.get_address(customer_id, address_id)
        self.customer_repo.set_default_address(customer_id, address_id)
        return self.customer_repo.get_address(address_id)

    # ---- NITs ----

    def list_nits(self, customer_id: int) -> List[CustomerNit]:
        return self.customer_repo.list_nits(customer_id)

    def get_nit(self, customer_id: int, nit_id: int) -> CustomerNit:
        nit = self.customer_repo.get_nit(nit_id)
        if not nit:
            raise NotFoundError("NIT no encontrado.")
        if nit.customer_id != customer_id:
            raise ForbiddenError("No tienes permiso para acceder a este NIT.")
        return nit

    def create_nit(self, customer_id: int, data: Dict[str, Any]) -> CustomerNit:
        is_default = bool(data.get("is_default")) or not self.customer_repo.list_nits(customer_id)
        nit_id = self.customer_repo.create_nit(customer_id, data["nit"], self.clock(),
                                               name=data.get("name"), is_default=is_default)
        return self.customer_repo.get_nit(nit_id)

    def update_nit(self, customer_id: int, nit_id: int, data: Dict[str, Any]) -> CustomerNit:
        self.get_nit(customer_id, nit_id)
        fields = {key: value for key, value in data.items() if key in ("nit", "name") and value is not None}
        self.customer_repo.update_nit(nit_id, fields)
        if data.get("is_default"):
            self.customer_repo.set_default_nit(customer_id, nit_id)
        return self.customer_repo.get_nit(nit_id)

    def delete_nit(self, customer_id: int, nit_id: int):
        self.get_nit(customer_id, nit_id)
        self.customer_repo.delete_nit(nit_id)

    def set_default_nit(self, customer_id: int, nit_id: int) -> CustomerNit:
        self.get_nit(customer_id, nit_id)
        self.customer_repo.set_default_nit(customer_id, nit_id)
        return self.customer_repo.get_nit(nit_id)

    # ---- devices ----

    def list_devices(self, customer_id: int) -> List[CustomerDevice]:
        return self.customer_repo.list_active_devices(customer_id)

    def register_device(self, customer_id: int, data: Dict[str, Any]) -> CustomerDevice:
        # Same device identifier or push token updates the existing row
        now = self.clock()
        existing = self.customer_repo.find_device(customer_id, data.get("device_identifier"), data["fcm_token"])
        if existing:
            self.customer_repo.touch_device(existing.device_id, data["fcm_token"], now,
                                            device_identifier=data.get("device_identifier"),
                                            device_name=data.get("device_name"),
                                            device_type=data.get("device_type"))
            device_id = existing.device_id
        else:
            device_id = self.customer_repo.create_device(customer_id, data["fcm_token"], now,
                                                         device_identifier=data.get("device_identifier"),
                                                         device_name=data.get("device_name"),
                                                         device_type=data.get("device_type"))
        logger.info("device_registered", customer_id=customer_id, device_id=device_id, existing=bool(existing))
        return self.customer_repo.get_device(device_id)

    def deactivate_device(self, customer_id: int, device_id: int):
        device = self.customer_repo.get_device(device_id)
        if not device:
            raise NotFoundError("Dispositivo no encontrado.")
        if device.customer_id != customer_id:
            raise ForbiddenError("No tienes permiso para modificar este dispositivo.")
        self.customer_repo.deactivate_device(device_id)

    # ---- favorites and views ----

    def _ensure_exists(self, favorable: Favorable):
        if favorable.kind == FavorableKind.PRODUCT:
            found = self.catalog_repo.get_product(favorable.target_id)
        else:
            found = self.catalog_repo.get_combo(favorable.target_id)
        if not found:
            raise NotFoundError("El producto no existe.")

    def list_favorites(self, customer_id: int) -> List[Favorite]:
        return self.customer_repo.list_favorites(customer_id)

    def add_favorite(self, customer_id: int, favorable: Favorable) -> Favorite:
        self._ensure_exists(favorable)
        favorite_id = self.customer_repo.add_favorite(customer_id, favorable, self.clock())
        return next(fav for fav in self.customer_repo.list_favorites(customer_id) if fav.favorite_id == favorite_id)

    def remove_favorite(self, customer_id: int, favorable: Favorable):
        if not self.customer_repo.remove_favorite(customer_id, favorable):
            raise NotFoundError("El favorito no existe.")

    def record_view(self, customer_id: int, viewable: Favorable):
        self._ensure_exists(viewable)
        self.customer_repo.record_view(customer_id, viewable, self.clock())

    def recently_viewed(self, customer_id: int) -> List[ProductView]:
        return self.customer_repo.recent_views(customer_id, RECENT_VIEWS_LIMIT)
