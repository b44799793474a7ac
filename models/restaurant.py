"""
Restaurant data model with delivery geofence and opening hours
"""
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple


_COORDINATES_RE = re.compile(r"<coordinates>(.*?)</coordinates>", re.DOTALL | re.IGNORECASE)


def parse_geofence(raw: Optional[str]) -> List[Tuple[float, float]]:
    """Parse a KML <coordinates> block (lng,lat[,alt]) or a JSON list of [lat, lng]"""
    if not raw or not raw.strip():
        return []

    text = raw.strip()
    if text.startswith("["):
        return [(float(point[0]), float(point[1])) for point in json.loads(text)]

    match = _COORDINATES_RE.search(text)
    if match:
        text = match.group(1)

    points = []
    for chunk in text.split():
        parts = chunk.split(",")
        if len(parts) < 2:
            continue
        points.append((float(parts[1]), float(parts[0])))
    return points


@dataclass
class Restaurant:
    """Restaurant data model"""
    restaurant_id: int
    name: str
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geofence: List[Tuple[float, float]] = field(default_factory=list)  # (lat, lng) vertices
    price_location: str = "capital"
    is_active: bool = True
    delivery_active: bool = True
    pickup_active: bool = True
    schedule: Optional[Dict[str, Dict[str, Any]]] = None
    minimum_order_amount: Decimal = Decimal("0.00")
    estimated_pickup_time: int = 30
    estimated_delivery_time: int = 45
    phone: Optional[str] = None

    def has_geofence(self) -> bool:
        return len(self.geofence) >= 3

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def _today_schedule(self, now: datetime) -> Optional[Dict[str, Any]]:
        if not self.schedule:
            return None
        today = now.strftime("%A").lower()
        today_schedule = self.schedule.get(today)
        if not today_schedule or not today_schedule.get("is_open"):
            return None
        return today_schedule

    def is_open_now(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        today_schedule = self._today_schedule(now)
        if not today_schedule:
            return False
        current = now.strftime("%H:%M")
        return today_schedule["open"] <= current <= today_schedule["close"]

    def last_order_time(self, service_type: str, now: datetime) -> Optional[str]:
        # Pickup orders close earlier by the preparation time
        today_schedule = self._today_schedule(now)
        if not today_schedule:
            return None
        close_time = today_schedule["close"]
        if service_type == "pickup":
            close_dt = datetime.strptime(close_time, "%H:%M")
            return (close_dt - timedelta(minutes=self.estimated_pickup_time)).strftime("%H:%M")
        return close_time

    def can_accept_orders_now(self, service_type: str, now: datetime) -> bool:
        if not self.is_active:
            return False
        if service_type == "pickup" and not self.pickup_active:
            return False
        if service_type == "delivery" and not self.delivery_active:
            return False

        today_schedule = self._today_schedule(now)
        if not today_schedule:
            return False

        current = now.strftime("%H:%M")
        if current < today_schedule["open"]:
            return False
        return current <= self.last_order_time(service_type, now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.restaurant_id,
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "price_location": self.price_location,
            "is_active": self.is_active,
            "delivery_active": self.delivery_active,
            "pickup_active": self.pickup_active,
            "minimum_order_amount": f"{self.minimum_order_amount:.2f}",
            "estimated_pickup_time": self.estimated_pickup_time,
            "estimated_delivery_time": self.estimated_delivery_time,
            "phone": self.phone,
        }
