"""Offer schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import require_text, validate_email, validate_phone

OFFER_STATUSES = ("draft", "sent", "viewed", "accepted", "rejected", "expired")
DEFAULT_VAT_RATE = 23.0


class OfferCustomer(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    nip: Optional[str] = None  # Polish tax id

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)


class OfferVehicle(BaseModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    plate: Optional[str] = None


class OfferItem(BaseModel):
    name: str
    description: Optional[str] = None
    quantity: float = 1
    unitPriceNet: float

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v):
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("unitPriceNet")
    @classmethod
    def validate_price(cls, v):
        if v < 0:
            raise ValueError("Price cannot be negative")
        return v


def _vat(v):
    if v is not None and not 0 <= v <= 100:
        raise ValueError("VAT rate must be between 0 and 100")
    return v


class OfferCreate(BaseModel):
    customer: OfferCustomer
    vehicle: Optional[OfferVehicle] = None
    items: list[OfferItem] = []
    vatRate: float = DEFAULT_VAT_RATE
    notes: Optional[str] = None
    paymentTerms: Optional[str] = None
    validUntil: Optional[date] = None

    @field_validator("vatRate")
    @classmethod
    def validate_vat(cls, v):
        return _vat(v)


class OfferUpdate(BaseModel):
    customer: Optional[OfferCustomer] = None
    vehicle: Optional[OfferVehicle] = None
    items: Optional[list[OfferItem]] = None
    vatRate: Optional[float] = None
    notes: Optional[str] = None
    paymentTerms: Optional[str] = None
    validUntil: Optional[date] = None

    @field_validator("vatRate")
    @classmethod
    def validate_vat(cls, v):
        return _vat(v)


class OfferResponse(BaseModel):
    id: int
    offer_number: str
    public_token: str
    status: str
    customer_data: dict
    vehicle_data: Optional[dict] = None
    items: list[dict] = []
    vat_rate: float
    total_net: float
    total_gross: float
    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    valid_until: Optional[date] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PublicOfferResponse(BaseModel):
    """What the customer sees behind the public link"""

    offer_number: str
    status: str
    customer_data: dict
    vehicle_data: Optional[dict] = None
    items: list[dict] = []
    vat_rate: float
    total_net: float
    total_gross: float
    notes: Optional[str] = None
    payment_terms: Optional[str] = None
    valid_until: Optional[date] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OfferViewRequest(BaseModel):
    durationSeconds: Optional[int] = None
