# storefront/schemas/order.py
import json
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, field_validator, model_validator
from sqlmodel import SQLModel, Field

OrderFlow = Literal["cart", "buy_now"]
OrderStatus = Literal["pending", "confirmed", "cancelled", "shipped", "delivered"]

# Legacy field names some clients still send, mapped to the canonical ones.
ADDRESS_ALIASES: dict[str, tuple[str, ...]] = {
    "label": ("name",),
    "line1": ("address_line1", "address1"),
    "line2": ("address_line2", "address2"),
    "pincode": ("zip", "postcode"),
}


class ShippingAddress(SQLModel):
    """
    Normalized shipping address.

    Canonical keys only; the known legacy aliases are folded in before
    validation, anything else is rejected.
    """

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    label: str | None = None
    line1: str
    line2: str | None = None
    city: str
    state: str
    pincode: str
    country: str = "India"
    phone: str

    @model_validator(mode="before")
    @classmethod
    def fold_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for canonical, aliases in ADDRESS_ALIASES.items():
            for alias in aliases:
                if alias not in data:
                    continue
                value = data.pop(alias)
                if data.get(canonical) is None:
                    data[canonical] = value
        # numeric ids/pincodes/phones arrive as JSON numbers
        for key in ("id", "pincode", "phone"):
            if isinstance(data.get(key), int) and not isinstance(data[key], bool):
                data[key] = str(data[key])
        return data

    @field_validator("line1", "city", "state", "pincode", "phone", "country")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("label", "line2")
    @classmethod
    def normalize_optional(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderLineIn(SQLModel):
    """
    One requested line.

    Cart flow: `cart_row_id` is required.
    Buy-now flow: `product_id` is required.

    `quantity` is deliberately loose here; the cart resolver owns the
    positive-integer rule so the error names the offending line.
    """

    model_config = ConfigDict(extra="forbid")

    cart_row_id: uuid.UUID | None = None
    product_id: uuid.UUID | None = None
    quantity: Any = None
    selected_size: str | None = None
    selected_color: str | None = None


class PlaceOrderRequest(SQLModel):
    """
    Payload for POST /orders/place.

    Backend derives:
      - user_id from token
      - unit prices from the catalog at placement time
      - total_amount from the frozen line prices
    """

    model_config = ConfigDict(extra="forbid")

    flow: OrderFlow
    lines: list[OrderLineIn]
    shipping_address: ShippingAddress
    payment_method: str = ""
    payment_details: dict[str, Any] = Field(default_factory=dict)
    declared_total: float | None = None


class PlaceOrderResponse(SQLModel):
    order_id: uuid.UUID


class ResolvedLine(SQLModel):
    """
    A requested line after resolution: concrete product, quantity and the
    price/stock the resolver observed.
    """

    product_id: uuid.UUID
    quantity: int
    unit_price: float
    observed_stock: int
    selected_size: str | None = None
    selected_color: str | None = None
    source_cart_row_id: uuid.UUID | None = None


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    order_id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    unit_price: float
    price: float
    selected_color: str | None = None
    selected_size: str | None = None


class OrderRead(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    user_id: uuid.UUID
    address_id: str | None
    shipping_address: dict[str, Any]
    payment_method: str
    payment_details: dict[str, Any]
    total_amount: float
    declared_total: float | None
    status: OrderStatus
    created_at: datetime

    @classmethod
    def from_order(cls, order) -> "OrderRead":
        return cls(
            id=order.id,
            user_id=order.user_id,
            address_id=order.address_id,
            shipping_address=json.loads(order.shipping_address_json or "{}"),
            payment_method=order.payment_method,
            payment_details=json.loads(order.payment_details_json or "{}"),
            total_amount=order.total_amount,
            declared_total=order.declared_total,
            status=order.status,
            created_at=order.created_at,
        )


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items.
    """

    items: list[OrderItemRead]


class OrderStatusUpdate(SQLModel):
    """
    Admin payload to change order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus


class PaymentVerification(SQLModel):
    """
    Gateway callback data proving the customer paid for an order.
    """

    model_config = ConfigDict(extra="forbid")

    gateway_order_id: str
    payment_id: str
    signature: str
