"""Order submission schemas.

Field names are snake_case in Python and camelCase on the wire, matching the
checkout frontend and the payment providers.
"""

from __future__ import annotations

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .common import metadata_to_string

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class OrderItem(_WireModel):
    title: str = Field(..., min_length=1)
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    tangible: bool
    external_ref: str = Field(..., min_length=1, description="Product id in the catalog")


class Address(_WireModel):
    street: str = Field(..., min_length=1)
    street_number: str = Field(..., min_length=1)
    neighborhood: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=5)
    country: str = Field(..., min_length=2)
    complement: str


class Shipping(_WireModel):
    fee: float = Field(..., ge=0)
    address: Address


class Document(_WireModel):
    number: str = Field(..., min_length=1)
    type: str = Field(..., min_length=2)


class Customer(_WireModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    phone: str = Field(..., min_length=8)
    document: Document


class PixOptions(_WireModel):
    expires_in_days: int = Field(..., gt=0)


class OrderData(_WireModel):
    """Order as submitted by the checkout, validated before any provider call."""

    amount: float = Field(..., gt=0)
    payment_method: str = Field(..., min_length=2)
    pix: PixOptions | None = None
    items: list[OrderItem] = Field(..., min_length=1)
    shipping: Shipping
    customer: Customer
    metadata: str
    external_ref: str = Field(..., min_length=1)
    ip: str = Field(..., min_length=1)
    postback_url: AnyHttpUrl | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _normalize_metadata(cls, value: object) -> object:
        return metadata_to_string(value)

    def to_wire(self) -> dict[str, object]:
        """Serialize with camelCase keys, as sent to payment providers."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def product_ids(self) -> list[dict[str, int | str]]:
        """Catalog identifiers of the ordered products."""
        ids: list[dict[str, int | str]] = []
        for item in self.items:
            ref = item.external_ref
            ids.append({"Id": int(ref) if ref.isdigit() else ref})
        return ids


class PaymentRequest(_WireModel):
    """Body of ``POST /payments/{provider}``."""

    order_data: OrderData


class OrderStatusUpdate(BaseModel):
    """Payment status notification for an order already in the record store."""

    external_ref: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
