"""
Customer related data models (profile, addresses, NITs, devices, favorites)
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class FavorableKind(Enum):
    PRODUCT = "product"
    COMBO = "combo"


@dataclass(frozen=True)
class Favorable:
    """Reference to a product or a combo"""
    kind: FavorableKind
    target_id: int

    @classmethod
    def parse(cls, kind: str, target_id: int) -> "Favorable":
        return cls(FavorableKind(kind), int(target_id))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "id": self.target_id}


@dataclass
class CustomerType:
    """Loyalty tier"""
    type_id: int
    name: str
    min_points: int = 0
    multiplier: Decimal = Decimal("1.00")
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.type_id,
            "name": self.name,
            "min_points": self.min_points,
            "multiplier": f"{self.multiplier:.2f}",
            "color": self.color,
        }


@dataclass
class Customer:
    """Customer data model"""
    customer_id: int
    name: str
    email: str
    phone: Optional[str] = None
    api_token: Optional[str] = None
    loyalty_card: Optional[str] = None
    points: int = 0
    points_updated_at: Optional[datetime] = None
    points_last_activity_at: Optional[datetime] = None
    customer_type_id: Optional[int] = None
    customer_type: Optional[CustomerType] = None
    last_purchase_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.customer_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "loyalty_card": self.loyalty_card,
            "points": self.points,
            "points_updated_at": _iso(self.points_updated_at),
            "customer_type": self.customer_type.to_dict() if self.customer_type else None,
            "last_purchase_at": _iso(self.last_purchase_at),
        }


@dataclass
class CustomerAddress:
    """Saved delivery address"""
    address_id: int
    customer_id: int
    label: str
    address_line: str
    latitude: float
    longitude: float
    delivery_notes: Optional[str] = None
    zone: str = "capital"
    is_default: bool = False
    created_at: Optional[datetime] = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "address_line": self.address_line,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "delivery_notes": self.delivery_notes,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.snapshot()
        data.update({
            "id": self.address_id,
            "zone": self.zone,
            "is_default": self.is_default,
            "created_at": _iso(self.created_at),
        })
        return data


@dataclass
class CustomerNit:
    """Tax identification number used for invoices"""
    nit_id: int
    customer_id: int
    nit: str
    name: Optional[str] = None
    is_default: bool = False
    created_at: Optional[datetime] = None

    def snapshot(self) -> Dict[str, Any]:
        return {"nit": self.nit, "name": self.name}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.nit_id,
            "nit": self.nit,
            "name": self.name,
            "is_default": self.is_default,
            "created_at": _iso(self.created_at),
        }


@dataclass
class CustomerDevice:
    """Registered mobile device"""
    device_id: int
    customer_id: int
    fcm_token: str
    device_identifier: Optional[str] = None
    device_name: Optional[str] = None
    device_type: Optional[str] = None
    is_active: bool = True
    login_count: int = 0
    last_used_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.device_id,
            "device_identifier": self.device_identifier,
            "device_name": self.device_name,
            "device_type": self.device_type,
            "is_active": self.is_active,
            "login_count": self.login_count,
            "last_used_at": _iso(self.last_used_at),
        }


@dataclass
class Favorite:
    favorite_id: int
    customer_id: int
    favorable: Favorable
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.favorable.to_dict()
        data.update({"favorite_id": self.favorite_id, "name": self.name, "created_at": _iso(self.created_at)})
        return data


@dataclass
class ProductView:
    view_id: int
    customer_id: int
    viewable: Favorable
    viewed_at: datetime
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.viewable.to_dict()
        data.update({"name": self.name, "viewed_at": _iso(self.viewed_at)})
        return data
