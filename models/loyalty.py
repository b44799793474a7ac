"""
Loyalty points data models
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any


class PointsTransactionType(Enum):
    EARNED = "earned"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    BONUS = "bonus"
    ADJUSTMENT = "adjustment"


@dataclass
class PointsSettings:
    """Points accrual and redemption settings"""
    quetzales_per_point: Decimal = Decimal("10")
    rounding_threshold: Decimal = Decimal("0.70")
    expiration_months: int = 6
    point_value: Decimal = Decimal("0.10")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quetzales_per_point": str(self.quetzales_per_point),
            "rounding_threshold": str(self.rounding_threshold),
            "expiration_months": self.expiration_months,
            "point_value": str(self.point_value),
        }


@dataclass
class PointsTransaction:
    """Ledger entry; positive points are credits, negative are debits"""
    transaction_id: int
    customer_id: int
    points: int
    transaction_type: str
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.transaction_id,
            "points": self.points,
            "type": self.transaction_type,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_expired": self.is_expired,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class AppleWalletRegistration:
    """Device registered for pass update pushes"""
    registration_id: int
    device_library_identifier: str
    push_token: str
    pass_type_identifier: str
    serial_number: str
    customer_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
