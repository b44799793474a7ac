"""
Delivery validation service - assigns a restaurant and zone to a delivery location
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

import structlog

from models.customer import CustomerAddress
from models.restaurant import Restaurant
from database.repository import RestaurantRepository
from .geo import haversine_km, point_in_polygon

logger = structlog.get_logger(__name__)

OUTSIDE_ZONE_MESSAGE = "Lo sentimos, esta dirección está fuera de nuestras zonas de entrega."
NEARBY_PICKUP_LIMIT = 5


@dataclass
class DeliveryValidationResult:
    """Outcome of a delivery coverage check"""
    is_valid: bool
    restaurant: Optional[Restaurant] = None
    zone: Optional[str] = None
    error_message: Optional[str] = None
    nearby_pickup_restaurants: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        if self.is_valid:
            return {
                "is_valid": True,
                "restaurant": self.restaurant.to_dict() if self.restaurant else None,
                "zone": self.zone,
            }
        return {
            "is_valid": False,
            "error_message": self.error_message,
            "nearby_pickup_restaurants": self.nearby_pickup_restaurants,
        }


class DeliveryValidationService:
    # Linear scan over restaurant geofences

    def __init__(self, restaurant_repository: RestaurantRepository):
        self.restaurant_repo = restaurant_repository

    def validate_coordinates(self, lat: float, lng: float) -> DeliveryValidationResult:
        # When several geofences contain the point the closest restaurant wins
        matches = []
        for restaurant in self.restaurant_repo.list_delivery_candidates():
            if not point_in_polygon(lat, lng, restaurant.geofence):
                continue
            distance = (haversine_km(lat, lng, restaurant.latitude, restaurant.longitude)
                        if restaurant.has_coordinates() else float("inf"))
            matches.append((distance, restaurant.restaurant_id, restaurant))

        if matches:
            matches.sort(key=lambda match: (match[0], match[1]))
            restaurant = matches[0][2]
            logger.debug("delivery_zone_matched", restaurant_id=restaurant.restaurant_id,
                         candidates=len(matches))
            return DeliveryValidationResult(
                is_valid=True,
                restaurant=restaurant,
                zone=restaurant.price_location or "capital",
            )

        logger.info("delivery_zone_not_found", latitude=lat, longitude=lng)
        return DeliveryValidationResult(
            is_valid=False,
            error_message=OUTSIDE_ZONE_MESSAGE,
            nearby_pickup_restaurants=self.nearby_pickup_restaurants(lat, lng),
        )

    def validate_delivery_address(self, address: CustomerAddress) -> DeliveryValidationResult:
        return self.validate_coordinates(address.latitude, address.longitude)

    def nearby_pickup_restaurants(self, lat: float, lng: float,
                                  limit: int = NEARBY_PICKUP_LIMIT) -> List[Dict[str, Any]]:
        # Closest pickup locations, ascending by distance
        nearby = []
        for restaurant in self.restaurant_repo.list_pickup_locations():
            distance = haversine_km(lat, lng, restaurant.latitude, restaurant.longitude)
            nearby.append({
                "id": restaurant.restaurant_id,
                "name": restaurant.name,
                "address": restaurant.address,
                "distance_km": round(distance, 2),
            })

        nearby.sort(key=lambda entry: (entry["distance_km"], entry["id"]))
        return nearby[:limit]
