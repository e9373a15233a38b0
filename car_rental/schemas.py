from pydantic import BaseModel, Field, field_validator
from datetime import date
from decimal import Decimal
from typing import Dict, List, Literal, Optional

RentalStatus = Literal["pending", "completed", "cancelled"]
PaymentStatus = Literal["pending", "completed", "failed"]
PaymentMethod = Literal["credit_card", "paypal", "cash"]


def _not_null(value):
    if value is None:
        raise ValueError("Field may not be null")
    return value


def _two_places(value):
    if value is not None and Decimal(str(value)).as_tuple().exponent < -2:
        raise ValueError("Amount may not have more than 2 decimal places")
    return value


class CarBase(BaseModel):
    company: str = Field(min_length=1, max_length=80)
    model: str = Field(min_length=1, max_length=80)
    license_plate: str = Field(min_length=1, max_length=20)
    price_per_day: float = Field(ge=0)
    year: Optional[int] = Field(None, ge=1886, le=2100)
    color: Optional[str] = Field(None, max_length=40)

    check_price = field_validator("price_per_day")(_two_places)


class CarCreate(CarBase):
    pass


class CarUpdate(BaseModel):
    company: Optional[str] = Field(None, min_length=1, max_length=80)
    model: Optional[str] = Field(None, min_length=1, max_length=80)
    license_plate: Optional[str] = Field(None, min_length=1, max_length=20)
    price_per_day: Optional[float] = Field(None, ge=0)
    year: Optional[int] = Field(None, ge=1886, le=2100)
    color: Optional[str] = Field(None, max_length=40)

    check_required = field_validator(
        "company", "model", "license_plate", "price_per_day", mode="before"
    )(_not_null)
    check_price = field_validator("price_per_day")(_two_places)


class CarResponse(CarBase):
    id: int

    class Config:
        from_attributes = True


class PaginationResponse(BaseModel):
    page: int
    page_size: int = Field(serialization_alias="pageSize")
    total_elements: int = Field(serialization_alias="totalElements")
    items: list[CarResponse]

    class Config:
        populate_by_name = True


class CarDeleteResponse(BaseModel):
    message: str
    car: CarResponse


class RentalCreate(BaseModel):
    car_id: int
    start_date: date
    end_date: date
    total_amount: float = Field(ge=0)
    status: RentalStatus = "pending"

    check_amount = field_validator("total_amount")(_two_places)


class RentalUpdate(BaseModel):
    car_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_amount: Optional[float] = Field(None, ge=0)
    status: Optional[RentalStatus] = None

    check_required = field_validator(
        "car_id", "start_date", "end_date", "total_amount", "status", mode="before"
    )(_not_null)
    check_amount = field_validator("total_amount")(_two_places)


class RentalResponse(BaseModel):
    id: int
    user_id: int
    car_id: int
    start_date: date
    end_date: date
    total_amount: float
    status: RentalStatus

    class Config:
        from_attributes = True


class RentalDeleteResponse(BaseModel):
    message: str
    rental: RentalResponse


class PaymentCreate(BaseModel):
    rental_id: int
    amount: float = Field(gt=0)
    method: PaymentMethod
    status: PaymentStatus = "pending"

    check_amount = field_validator("amount")(_two_places)


class PaymentUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    method: Optional[PaymentMethod] = None
    status: Optional[PaymentStatus] = None

    check_required = field_validator("amount", "method", "status", mode="before")(_not_null)
    check_amount = field_validator("amount")(_two_places)


class PaymentResponse(BaseModel):
    id: int
    rental_id: int
    user_id: int
    amount: float
    method: PaymentMethod
    status: PaymentStatus
    checkout_session_id: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentDeleteResponse(BaseModel):
    message: str
    payment: PaymentResponse


class CheckoutRequest(BaseModel):
    rental_id: int
    amount: float = Field(gt=0)
    method: PaymentMethod = "credit_card"
    company_name: Optional[str] = None
    model_name: Optional[str] = None

    check_amount = field_validator("amount")(_two_places)


class CheckoutResponse(BaseModel):
    url: str
    session_id: str
    payment: PaymentResponse


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    message: str
    errors: Optional[Dict[str, List[str]]] = None
