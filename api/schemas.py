"""
Request payload schemas for the customer API

Each model validates one JSON body; `validate()` turns pydantic errors into
the `{field: [messages]}` shape returned with HTTP 422.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from errors import PayloadValidationError

Payload = TypeVar("Payload", bound=BaseModel)


def validate(schema: Type[Payload], data: Optional[Dict[str, Any]]) -> Payload:
    try:
        return schema.model_validate(data or {})
    except ValidationError as e:
        errors: Dict[str, List[str]] = {}
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "body"
            errors.setdefault(field, []).append(error["msg"])
        raise PayloadValidationError(errors)


def _local_naive(value: Optional[datetime]) -> Optional[datetime]:
    # Stored times are naive local time
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


# ---- cart ----

class SelectedOption(BaseModel):
    section_id: int
    option_id: int


class ComboPick(BaseModel):
    option_id: int


class ComboSelection(BaseModel):
    combo_item_id: int
    selections: List[ComboPick] = []


class CartItemCreate(BaseModel):
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    combo_id: Optional[int] = None
    quantity: int = Field(1, ge=1, le=10)
    selected_options: List[SelectedOption] = []
    combo_selections: List[ComboSelection] = []
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def product_or_combo(self):
        if (self.product_id is None) == (self.combo_id is None):
            raise ValueError("Debes enviar product_id o combo_id, pero no ambos.")
        return self


class CartItemUpdate(BaseModel):
    quantity: Optional[int] = Field(None, ge=1, le=10)
    selected_options: Optional[List[SelectedOption]] = None
    notes: Optional[str] = Field(None, max_length=500)


class CartRestaurantUpdate(BaseModel):
    restaurant_id: int


class CartServiceTypeUpdate(BaseModel):
    service_type: Literal["pickup", "delivery"]
    zone: Optional[Literal["capital", "interior"]] = None


class CartDeliveryAddressUpdate(BaseModel):
    delivery_address_id: int


# ---- addresses, NITs, devices, favorites ----

class AddressCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=100)
    address_line: str = Field(..., min_length=1, max_length=500)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    delivery_notes: Optional[str] = Field(None, max_length=500)
    is_default: bool = False


class AddressUpdate(BaseModel):
    label: Optional[str] = Field(None, min_length=1, max_length=100)
    address_line: Optional[str] = Field(None, min_length=1, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    delivery_notes: Optional[str] = Field(None, max_length=500)
    is_default: bool = False


class LocationCheck(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class NitCreate(BaseModel):
    nit: str = Field(..., min_length=1, max_length=20, pattern=r"^(CF|[0-9]{1,12}-?[0-9kK])$")
    name: Optional[str] = Field(None, max_length=255)
    is_default: bool = False


class NitUpdate(BaseModel):
    nit: Optional[str] = Field(None, min_length=1, max_length=20, pattern=r"^(CF|[0-9]{1,12}-?[0-9kK])$")
    name: Optional[str] = Field(None, max_length=255)
    is_default: bool = False


class DeviceRegister(BaseModel):
    fcm_token: str = Field(..., min_length=1, max_length=500)
    device_identifier: Optional[str] = Field(None, max_length=255)
    device_name: Optional[str] = Field(None, max_length=255)
    device_type: Optional[Literal["ios", "android", "web"]] = None


class FavoriteCreate(BaseModel):
    favorable_type: Literal["product", "combo"]
    favorable_id: int


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = Field(None, max_length=30)


# ---- orders and points ----

class OrderCreate(BaseModel):
    service_type: Literal["pickup", "delivery"]
    restaurant_id: Optional[int] = None
    delivery_address_id: Optional[int] = None
    payment_method: Literal["cash", "card"] = "cash"
    nit_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=500)
    scheduled_pickup_time: Optional[datetime] = None
    scheduled_delivery_time: Optional[datetime] = None
    points_to_redeem: int = Field(0, ge=0)

    @field_validator("scheduled_pickup_time", "scheduled_delivery_time")
    @classmethod
    def naive_times(cls, value):
        return _local_naive(value)


class OrderCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


class OrderReviewCreate(BaseModel):
    overall_rating: int = Field(..., ge=1, le=5)
    food_quality_rating: Optional[int] = Field(None, ge=1, le=5)
    speed_rating: Optional[int] = Field(None, ge=1, le=5)
    service_rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class PointsRedeem(BaseModel):
    order_id: int
    points_to_redeem: int = Field(..., ge=1)
